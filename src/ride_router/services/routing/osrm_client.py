"""HTTP client for interacting with OSRM services."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

import httpx

from ...config import settings
from ...errors import GatewayFailure
from ...models.domain import Coordinates

logger = logging.getLogger(__name__)


class DistanceGateway(Protocol):
    async def batch_distances(
        self, origins: Sequence[Coordinates], destinations: Sequence[Coordinates]
    ) -> list[list[float | None]]:
        """Cost block with one row per origin and one column per destination."""
        ...


class DirectionsGateway(Protocol):
    async def route(self, coordinates: Sequence[Coordinates]) -> dict:
        ...


def _format_coordinates(coordinates: Sequence[Coordinates]) -> str:
    # OSRM expects lon,lat pairs
    return ";".join(f"{lng},{lat}" for lat, lng in coordinates)


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        metric: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.osrm_base_url
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.base_url = self.base_url.rstrip("/")
        self.profile = profile or settings.osrm_profile
        self.metric = metric or settings.matrix_metric
        self.timeout = timeout or settings.request_timeout_seconds
        self._transport = transport

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
        )

    async def _get_json(self, url: str, params: dict) -> dict:
        async with self._get_client() as client:
            try:
                response = await client.get(url, params=params)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                if status_code == 414:
                    raise GatewayFailure(
                        "OSRM request URL too large; lower the matrix chunk size.",
                        status=status_code,
                        retryable=False,
                    ) from exc
                raise GatewayFailure(
                    f"OSRM returned HTTP {status_code}",
                    status=status_code,
                    retryable=_is_retryable(status_code),
                ) from exc
            except httpx.TimeoutException as exc:
                raise GatewayFailure(f"OSRM request timed out: {exc}", status="timeout") from exc
            except httpx.HTTPError as exc:
                raise GatewayFailure(f"Failed to connect to OSRM service at {self.base_url}: {exc}") from exc
        try:
            data = response.json()
        except ValueError as exc:
            raise GatewayFailure("OSRM returned invalid JSON", retryable=False) from exc
        if data.get("code", "Ok") != "Ok":
            raise GatewayFailure(
                f"OSRM request failed: {data.get('message', data.get('code'))}",
                status=data.get("code"),
                retryable=False,
            )
        return data

    async def batch_distances(
        self, origins: Sequence[Coordinates], destinations: Sequence[Coordinates]
    ) -> list[list[float | None]]:
        """Single OSRM table request from ``origins`` to ``destinations``."""
        if not origins or not destinations:
            raise ValueError("At least one origin and one destination are required for OSRM table.")

        coordinates = [*origins, *destinations]
        params = {
            "annotations": self.metric,
            "sources": ";".join(str(i) for i in range(len(origins))),
            "destinations": ";".join(str(i) for i in range(len(origins), len(coordinates))),
        }
        url = f"{self.base_url}/table/v1/{self.profile}/{_format_coordinates(coordinates)}"
        logger.debug(f"OSRM table request: {len(origins)} sources x {len(destinations)} destinations")
        data = await self._get_json(url, params)

        key = "distances" if self.metric == "distance" else "durations"
        if key not in data:
            raise GatewayFailure(f"OSRM response missing {key}.", retryable=False)
        return data[key]

    async def route(self, coordinates: Sequence[Coordinates]) -> dict:
        """Get the street-following path through ``coordinates`` in order.

        Returns a dict with ``distance`` (metres), ``duration`` (seconds) and
        ``path`` as decoded (lat, lng) pairs.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM route.")

        params = {"overview": "full", "geometries": "polyline", "steps": "false"}
        url = f"{self.base_url}/route/v1/{self.profile}/{_format_coordinates(coordinates)}"
        data = await self._get_json(url, params)

        routes = data.get("routes") or []
        if not routes:
            raise GatewayFailure("OSRM returned no route", status="NoRoute", retryable=False)
        best = routes[0]
        return {
            "distance": best.get("distance"),
            "duration": best.get("duration"),
            "path": decode_polyline(best.get("geometry") or ""),
        }


def _decode_value(polyline: str, index: int) -> tuple[int, int]:
    shift = 0
    result = 0
    while True:
        b = ord(polyline[index]) - 63
        index += 1
        result |= (b & 0x1F) << shift
        shift += 5
        if b < 0x20:
            break
    value = ~(result >> 1) if (result & 1) else (result >> 1)
    return value, index


def decode_polyline(polyline: str) -> list[Coordinates]:
    """Decode a Google-encoded polyline into (lat, lng) pairs."""
    coordinates: list[Coordinates] = []
    index = lat = lng = 0
    while index < len(polyline):
        dlat, index = _decode_value(polyline, index)
        dlng, index = _decode_value(polyline, index)
        lat += dlat
        lng += dlng
        coordinates.append((lat / 1e5, lng / 1e5))
    return coordinates


async def check_health(base_url: str | None = None) -> bool:
    """Check OSRM by making a minimal two-point table request."""
    base = base_url or settings.osrm_base_url
    if not base:
        return False
    try:
        client = OSRMClient(base_url=base, timeout=5.0)
        block = await client.batch_distances([(52.517037, 13.388860)], [(52.496891, 13.385983)])
        return bool(block and block[0])
    except (GatewayFailure, ValueError) as exc:
        logger.warning(f"OSRM health check failed: {exc}")
        return False
