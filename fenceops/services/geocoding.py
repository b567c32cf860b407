"""
Geocoding Service

Turns a postal address into (latitude, longitude).
The offline zipcodes dataset answers most requests; anything it cannot place
goes to OpenStreetMap Nominatim, with results cached in Redis.
"""

import logging
from typing import Optional, Tuple

import httpx
import zipcodes

from ..cache import build_geocode_key, cache
from ..config import (
    GEOCODE_CACHE_SECONDS,
    GEOCODE_TIMEOUT_SECONDS,
    NOMINATIM_BASE_URL,
    NOMINATIM_USER_AGENT,
)
from ..shared.validators import normalize_zipcode

logger = logging.getLogger(__name__)

Coordinates = Tuple[float, float]


class Geocoder:
    """Postal address -> coordinates, None when the address cannot be placed"""

    def __init__(self, timeout: float = GEOCODE_TIMEOUT_SECONDS):
        self.timeout = timeout

    def geocode(
        self,
        zip_code: Optional[str] = None,
        address: Optional[str] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
    ) -> Optional[Coordinates]:
        zip5 = normalize_zipcode(zip_code)
        if zip5:
            coords = self._lookup_zipcode(zip5)
            if coords:
                return coords

        parts = [p.strip() for p in (address, city, state, zip5) if p and p.strip()]
        if not parts:
            return None
        return self._lookup_nominatim(", ".join(parts))

    def _lookup_zipcode(self, zip5: str) -> Optional[Coordinates]:
        try:
            matches = zipcodes.matching(zip5)
        except (TypeError, ValueError) as e:
            logger.debug(f"ZIP code {zip5} rejected by zipcodes: {e}")
            return None

        if not matches:
            logger.debug(f"ZIP code {zip5} not found in dataset")
            return None

        zip_data = matches[0]
        try:
            return float(zip_data["lat"]), float(zip_data["long"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"⚠️ ZIP code {zip5} has no usable coordinates")
            return None

    def _lookup_nominatim(self, query: str) -> Optional[Coordinates]:
        cache_key = build_geocode_key(query)
        cached = cache.get(cache_key)
        if cached:
            return float(cached[0]), float(cached[1])

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(
                    f"{NOMINATIM_BASE_URL}/search",
                    params={"q": query, "format": "json", "limit": 1, "countrycodes": "us"},
                    headers={"User-Agent": NOMINATIM_USER_AGENT},
                )
                response.raise_for_status()
                results = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️ Nominatim lookup failed for '{query}': {e}")
            return None

        if not results:
            logger.info(f"📍 No geocoding result for '{query}'")
            return None

        try:
            coords = (float(results[0]["lat"]), float(results[0]["lon"]))
        except (KeyError, TypeError, ValueError):
            logger.warning(f"⚠️ Unexpected Nominatim payload for '{query}'")
            return None

        cache.set(cache_key, list(coords), ttl=GEOCODE_CACHE_SECONDS)
        logger.info(f"📍 Geocoded '{query}' -> {coords}")
        return coords
