"""Address search against a Nominatim instance."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import httpx

from ...config import settings

logger = logging.getLogger(__name__)


class GeocodingError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class GeocodeResult:
    display_name: str
    lat: float
    lon: float


class NominatimClient:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        country_suffix: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.nominatim_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.geocode_timeout_seconds
        self.country_suffix = country_suffix if country_suffix is not None else settings.geocode_country_suffix
        self._transport = transport

    def build_query(self, raw: str) -> str:
        """Append the country unless the query already names it."""
        query = raw.strip()
        if not self.country_suffix:
            return query
        pattern = rf"{re.escape(self.country_suffix)}|norway" if self.country_suffix.lower() == "norge" else re.escape(self.country_suffix)
        if re.search(pattern, query, flags=re.IGNORECASE):
            return query
        return f"{query}, {self.country_suffix}"

    def search(self, raw_query: str, limit: int = 10) -> list[GeocodeResult]:
        query = self.build_query(raw_query or "")
        if not query:
            return []

        params: dict[str, str | int] = {
            "format": "jsonv2",
            "limit": limit,
            "addressdetails": 1,
            "q": query,
        }
        if settings.geocode_countrycodes:
            params["countrycodes"] = settings.geocode_countrycodes
        if settings.geocode_viewbox:
            params["viewbox"] = settings.geocode_viewbox
            params["bounded"] = 1
        headers = {
            "Accept": "application/json",
            "Accept-Language": "no",
            "User-Agent": settings.geocode_user_agent,
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(f"{self.base_url}/search", params=params, headers=headers)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Geocoding '{query}' failed: {e}")
            raise GeocodingError(f"Address search failed: {e}") from e

        results: list[GeocodeResult] = []
        for item in data or []:
            if not item.get("lat") or not item.get("lon"):
                continue
            try:
                results.append(
                    GeocodeResult(
                        display_name=str(item.get("display_name", "")),
                        lat=float(item["lat"]),
                        lon=float(item["lon"]),
                    )
                )
            except (TypeError, ValueError):
                continue
        return results
