import httpx
import pytest

from fenceops.services import geocoding
from fenceops.services.geocoding import Geocoder


class DictCache:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ttl=3600):
        self.store[key] = value
        return True


@pytest.fixture
def fake_cache(monkeypatch):
    fake = DictCache()
    monkeypatch.setattr(geocoding, "cache", fake)
    return fake


@pytest.fixture
def nominatim(monkeypatch):
    """Route the geocoder's HTTP calls to a handler the test controls"""
    requests = []
    state = {"handler": lambda request: httpx.Response(200, json=[])}
    real_client = httpx.Client

    def handler(request):
        requests.append(request)
        return state["handler"](request)

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(geocoding.httpx, "Client", client_factory)
    state["requests"] = requests
    return state


def test_zip_code_resolves_offline(nominatim, fake_cache):
    coords = Geocoder().geocode(zip_code="75201")
    assert coords is not None
    assert coords[0] == pytest.approx(32.78, abs=0.2)
    assert coords[1] == pytest.approx(-96.80, abs=0.2)
    assert nominatim["requests"] == []


def test_zip_plus_four(nominatim, fake_cache):
    assert Geocoder().geocode(zip_code="75201-4321") == Geocoder().geocode(zip_code="75201")


def test_nothing_to_geocode(nominatim, fake_cache):
    assert Geocoder().geocode() is None
    assert Geocoder().geocode(address="   ") is None
    assert nominatim["requests"] == []


def test_falls_back_to_nominatim_and_caches(nominatim, fake_cache):
    nominatim["handler"] = lambda request: httpx.Response(200, json=[{"lat": "30.2672", "lon": "-97.7431"}])

    coords = Geocoder().geocode(address="100 Congress Ave", city="Austin", state="TX")
    assert coords == (30.2672, -97.7431)
    assert len(nominatim["requests"]) == 1
    request = nominatim["requests"][0]
    assert request.url.params["q"] == "100 Congress Ave, Austin, TX"
    assert request.headers["User-Agent"]

    again = Geocoder().geocode(address="100 Congress Ave", city="Austin", state="TX")
    assert again == coords
    assert len(nominatim["requests"]) == 1


def test_no_result(nominatim, fake_cache):
    assert Geocoder().geocode(address="nowhere at all") is None
    assert fake_cache.store == {}


def test_http_error_returns_none(nominatim, fake_cache):
    nominatim["handler"] = lambda request: httpx.Response(503)
    assert Geocoder().geocode(address="1 Main St", city="Plano", state="TX") is None


def test_transport_error_returns_none(nominatim, fake_cache):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    nominatim["handler"] = refuse
    assert Geocoder().geocode(address="1 Main St") is None


def test_malformed_payload(nominatim, fake_cache):
    nominatim["handler"] = lambda request: httpx.Response(200, json=[{"display_name": "Somewhere"}])
    assert Geocoder().geocode(address="1 Main St") is None


def test_non_json_body_returns_none(nominatim, fake_cache):
    nominatim["handler"] = lambda request: httpx.Response(200, text="<html>rate limited</html>")
    assert Geocoder().geocode(address="1 Main St") is None
    assert fake_cache.store == {}
