"""HTTP client for interacting with OSRM services."""

from __future__ import annotations

import logging
import time

import httpx

from ...config import settings
from ...models.domain import LatLng
from .models import ProviderRoute

logger = logging.getLogger(__name__)


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.osrm_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds

    def _get_client(self) -> httpx.Client:
        """Create a short-lived HTTP client; route lookups run on worker threads."""
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=5.0),
            limits=httpx.Limits(max_connections=1, max_keepalive_connections=0),
        )

    def route(self, origin: LatLng, destination: LatLng) -> ProviderRoute:
        """Get the driving route geometry from ``origin`` to ``destination``.

        Both arguments are (lat, lng). OSRM speaks (lng, lat) on the wire, so
        coordinates are transposed on the way out and on the way back.

        Raises:
            httpx.HTTPError / ConnectionError after retries are exhausted, or
            ValueError when OSRM answers without a usable geometry.
        """
        coordinate_str = ";".join(f"{lng},{lat}" for lat, lng in (origin, destination))
        params = {
            "overview": "full",
            "geometries": "geojson",
            "steps": "false",
        }
        url = f"{self.base_url}/route/v1/{self.profile}/{coordinate_str}"

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    return _parse_route(response.json())
                except httpx.HTTPStatusError as e:
                    # 4xx means the request itself is wrong; retrying will not help
                    if e.response.status_code < 500:
                        raise
                    attempt += 1
                    if attempt > self.max_retries:
                        raise
                    time.sleep(self.backoff_seconds * attempt)
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"OSRM route request timed out after {self.max_retries} attempts: {e}")
                        raise
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM route timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except (httpx.ConnectError, httpx.NetworkError, OSError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(
                            f"Failed to connect to OSRM service at {self.base_url}: {e}"
                        ) from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
        finally:
            client.close()


def _parse_route(data: dict) -> ProviderRoute:
    if not isinstance(data, dict):
        raise ValueError(f"OSRM route response is not a JSON object: {type(data).__name__}")
    if data.get("code") != "Ok":
        error_msg = data.get("message", "Unknown OSRM route error")
        raise ValueError(f"OSRM route request failed: {error_msg}")

    routes = data.get("routes") or []
    if not routes:
        raise ValueError("OSRM returned no routes.")
    first = routes[0]
    if not isinstance(first, dict):
        raise ValueError("OSRM route entry is not a JSON object.")
    coordinates = (first.get("geometry") or {}).get("coordinates") or []
    points = [(float(lat), float(lng)) for lng, lat, *_ in coordinates]
    if len(points) < 2:
        raise ValueError(f"OSRM route geometry is degenerate ({len(points)} points).")
    return ProviderRoute(
        points=points,
        distance_m=first.get("distance"),
        duration_s=first.get("duration"),
    )


def check_health(base_url: str | None = None) -> bool:
    """Check OSRM service health with a minimal route request.

    Public OSRM endpoints may not have a /health endpoint, so connectivity is
    tested by routing between two fixed points (central Oslo).
    """
    base = base_url or settings.osrm_base_url
    if not base:
        return False
    try:
        test_coords = "10.7522,59.9139;10.7461,59.9111"
        url = f"{base.rstrip('/')}/route/v1/{settings.osrm_profile}/{test_coords}"
        response = httpx.get(url, params={"overview": "false"}, timeout=5.0)
        response.raise_for_status()
        return response.json().get("code") == "Ok"
    except httpx.HTTPError:
        return False
    except ValueError:
        return False
