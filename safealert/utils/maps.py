# safealert/utils/maps.py
import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from safealert.config import Settings
from safealert.exceptions import ProviderError
from safealert.schemas.panic import Location

logger = logging.getLogger(__name__)

# Azure Maps POI category codes
HOSPITAL_CATEGORY = "7321"
POLICE_STATION_CATEGORY = "7322"

API_VERSION = "1.0"


class AzureMapsClient:
    """Nearby-place search and reverse geocoding against Azure Maps. No retries."""

    def __init__(self, settings: Settings, session: aiohttp.ClientSession):
        self.endpoint = settings.azure_maps_endpoint.rstrip("/")
        self.subscription_key = settings.azure_maps_key
        self.radius_m = settings.nearby_search_radius_m
        self.timeout = aiohttp.ClientTimeout(total=settings.provider_timeout_seconds)
        self.session = session

    async def find_nearby_places(self, location: Location, category_code: str) -> List[Dict[str, Any]]:
        """
        Search POIs of one category around a location.
        Candidates may be partially populated (poi.name, dist, address.freeformAddress);
        callers apply their own defaults.
        """
        data = await self._get("/search/nearby/json", {
            "lat": str(location.lat),
            "lon": str(location.lng),
            "categorySet": category_code,
            "radius": str(self.radius_m),
        })
        return data.get("results") or []

    async def reverse_geocode(self, location: Location) -> Optional[Dict[str, Any]]:
        """Best address candidate for a coordinate, or None."""
        data = await self._get("/search/address/reverse/json", {
            "query": f"{location.lat},{location.lng}",
        })
        addresses = data.get("addresses") or []
        return addresses[0] if addresses else None

    async def _get(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        if not self.subscription_key:
            raise ProviderError("Azure Maps subscription key not configured")

        query = {"api-version": API_VERSION, "subscription-key": self.subscription_key, **params}
        try:
            async with self.session.get(f"{self.endpoint}{path}", params=query, timeout=self.timeout) as resp:
                if resp.status < 200 or resp.status >= 300:
                    body = await resp.text()
                    raise ProviderError(f"Azure Maps error: {resp.status} - {body[:200]}")
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ProviderError(f"Network error calling Azure Maps: {e}") from e
