from datetime import date, timedelta

import pytest

from .conftest import DALLAS

DALLAS_QUOTE = {
    "customer_name": "Pat Doe",
    "zip_code": "75201",
    "latitude": DALLAS[0],
    "longitude": DALLAS[1],
    "fence_perimeter": 500,
}


@pytest.fixture
def api(client, headers):
    response = client.post("/ratebook/seed", headers=headers)
    assert response.status_code == 200
    return client


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_tenant_header_is_required(client):
    response = client.post("/quotes/preview", json=DALLAS_QUOTE)
    assert response.status_code == 400


def test_malformed_tenant_header(client):
    response = client.get("/ratebook/zones", headers={"X-Tenant-ID": "bad tenant!"})
    assert response.status_code == 400


def test_seed_reports_inserted_rows(client, headers):
    first = client.post("/ratebook/seed", headers=headers).json()
    assert first["inserted"]["pricing_zones"] == 15
    second = client.post("/ratebook/seed", headers=headers).json()
    assert set(second["inserted"].values()) == {0}


def test_zone_resolution_endpoint(api, headers):
    body = api.get("/ratebook/zones/resolve", params={"zip_code": "75201"}, headers=headers).json()
    assert body["zone_name"] == "Dallas-Fort Worth"
    assert body["matched_by"] == "zip_code"


def test_quote_flow(api, headers):
    created = api.post("/quotes", json=DALLAS_QUOTE, headers=headers)
    assert created.status_code == 201
    priced = created.json()
    assert priced["totals"]["one_time_installation"] == pytest.approx(3448.44)
    quote_id = priced["quote_id"]

    detail = api.get(f"/quotes/{quote_id}", headers=headers).json()
    assert detail["status"] == "pending"
    assert detail["breakdown"]["totals"]["one_time_installation"] == pytest.approx(3448.44)

    listed = api.get("/quotes", params={"status": "pending"}, headers=headers).json()
    assert [q["id"] for q in listed] == [quote_id]

    accepted = api.put(f"/quotes/{quote_id}/status", json={"status": "accepted"}, headers=headers)
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"

    again = api.put(f"/quotes/{quote_id}/status", json={"status": "rejected"}, headers=headers)
    assert again.status_code == 409
    assert again.json()["code"] == "workflow_state_conflict"


def test_quotes_are_tenant_scoped(api, headers):
    quote_id = api.post("/quotes", json=DALLAS_QUOTE, headers=headers).json()["quote_id"]
    response = api.get(f"/quotes/{quote_id}", headers={"X-Tenant-ID": "other-fence"})
    assert response.status_code == 404


def test_invalid_quote_request(api, headers):
    response = api.post("/quotes/preview", json={**DALLAS_QUOTE, "fence_perimeter": -1}, headers=headers)
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_cluster_capacity_conflict(api, headers):
    cluster = api.post(
        "/scheduling/clusters",
        json={
            "cluster_date": (date.today() + timedelta(days=2)).isoformat(),
            "center_latitude": DALLAS[0],
            "center_longitude": DALLAS[1],
            "max_jobs": 1,
        },
        headers=headers,
    ).json()
    job = {"latitude": DALLAS[0], "longitude": DALLAS[1]}

    assert api.post(f"/scheduling/clusters/{cluster['id']}/jobs", json=job, headers=headers).status_code == 201
    conflict = api.post(f"/scheduling/clusters/{cluster['id']}/jobs", json=job, headers=headers)
    assert conflict.status_code == 409
    assert conflict.json()["code"] == "capacity_conflict"

    route = api.get(f"/scheduling/clusters/{cluster['id']}/route", headers=headers).json()
    assert len(route["ordered_job_ids"]) == 1
    assert not route["cached"]


def test_discount_resolution_endpoint(api, headers):
    body = api.get(
        "/scheduling/discounts/resolve", params={"total_jobs": 3, "base_price": 1000}, headers=headers
    ).json()
    assert body["matched"]
    assert body["discount_type"] == "Three Job Cluster"
    assert body["amount"] == pytest.approx(123.5)


def test_approval_flow(api, headers):
    evaluation = api.post(
        "/approvals/evaluate",
        json={"quote": {"property_type": "Commercial"}, "requested_price": 4000, "requested_by": "rep-1"},
        headers=headers,
    ).json()
    assert not evaluation["auto_approved"]
    assert evaluation["required_level"] == "director"
    approval_id = evaluation["approval_id"]

    pending = api.get("/approvals/pending", params={"level": "manager"}, headers=headers).json()
    assert [a["id"] for a in pending] == [approval_id]

    skipped = api.post(
        f"/approvals/{approval_id}/decision",
        json={"approver_id": "d-1", "approver_level": "director", "decision": "approved"},
        headers=headers,
    )
    assert skipped.status_code == 409

    manager = api.post(
        f"/approvals/{approval_id}/decision",
        json={"approver_id": "m-1", "approver_level": "manager", "decision": "approved"},
        headers=headers,
    ).json()
    assert manager["next_level"] == "director"

    director = api.post(
        f"/approvals/{approval_id}/decision",
        json={"approver_id": "d-1", "approver_level": "director", "decision": "approved"},
        headers=headers,
    ).json()
    assert director["status"] == "approved"

    detail = api.get(f"/approvals/{approval_id}", headers=headers).json()
    assert [s["status"] for s in detail["steps"]] == ["approved", "approved"]


def test_evaluation_needs_exactly_one_source(api, headers):
    response = api.post("/approvals/evaluate", json={"requested_price": 100}, headers=headers)
    assert response.status_code == 422


def test_unknown_approval(api, headers):
    assert api.get("/approvals/9999", headers=headers).status_code == 404
