"""HTTP client for a Nominatim-compatible geocoding service."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Protocol

import httpx

from ...config import settings
from ...errors import GatewayFailure, ValidationFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GeocodeResult:
    formatted_address: str
    lat: float
    lng: float


class GeocodeGateway(Protocol):
    async def resolve(self, address: str) -> GeocodeResult:
        """Resolve an address or raise ValidationFailure / GatewayFailure."""
        ...


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class NominatimGeocoder:
    def __init__(
        self,
        base_url: str | None = None,
        user_agent: str | None = None,
        country_codes: str | None = None,
        timeout: float | None = None,
        min_interval: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.nominatim_base_url).rstrip("/")
        self.user_agent = user_agent or settings.nominatim_user_agent
        self.country_codes = country_codes if country_codes is not None else settings.geocode_country_codes
        self.timeout = timeout or settings.request_timeout_seconds
        self.min_interval = settings.geocode_delay_seconds if min_interval is None else min_interval
        self._transport = transport
        self._cache: dict[str, GeocodeResult] = {}
        self._last_request: float | None = None

    async def _throttle(self) -> None:
        """Keep at least ``min_interval`` seconds between outgoing requests."""
        if self._last_request is not None and self.min_interval:
            wait_time = self.min_interval - (time.monotonic() - self._last_request)
            if wait_time > 0:
                await asyncio.sleep(wait_time)
        self._last_request = time.monotonic()

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={"User-Agent": self.user_agent},
            transport=self._transport,
        )

    async def resolve(self, address: str) -> GeocodeResult:
        key = address.strip().lower()
        if key in self._cache:
            return self._cache[key]

        params = {"q": address.strip(), "format": "json", "limit": 1, "addressdetails": 0}
        if self.country_codes:
            params["countrycodes"] = self.country_codes

        await self._throttle()
        logger.debug(f"Geocoding '{address}'")
        async with self._get_client() as client:
            try:
                response = await client.get(f"{self.base_url}/search", params=params)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                raise GatewayFailure(
                    f"Geocoder returned HTTP {status_code} for '{address}'",
                    status=status_code,
                    retryable=_is_retryable(status_code),
                ) from exc
            except httpx.HTTPError as exc:
                raise GatewayFailure(f"Geocoder request failed for '{address}': {exc}") from exc

        try:
            results = response.json()
        except ValueError as exc:
            raise GatewayFailure(f"Geocoder returned invalid JSON for '{address}'", retryable=False) from exc
        if not results:
            raise ValidationFailure("Address could not be found", address=address)

        best = results[0]
        try:
            result = GeocodeResult(
                formatted_address=best.get("display_name") or address,
                lat=float(best["lat"]),
                lng=float(best["lon"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationFailure("Geocoder result has no coordinates", address=address) from exc
        self._cache[key] = result
        return result


async def check_health(base_url: str | None = None) -> bool:
    """Check the geocoder by resolving a well-known place."""
    base = (base_url or settings.nominatim_base_url).rstrip("/")
    try:
        async with httpx.AsyncClient(timeout=5.0, headers={"User-Agent": settings.nominatim_user_agent}) as client:
            response = await client.get(f"{base}/search", params={"q": "Washington, DC", "format": "json", "limit": 1})
            response.raise_for_status()
            return isinstance(response.json(), list)
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning(f"Geocoder health check failed: {exc}")
        return False
