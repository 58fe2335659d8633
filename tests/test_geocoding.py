import asyncio
import time

import httpx
import pytest

from ride_router.errors import GatewayFailure, ValidationFailure
from ride_router.models.domain import Address, Invalid, Stop, Valid
from ride_router.services.geocoding.nominatim_client import GeocodeResult, NominatimGeocoder
from ride_router.services.geocoding.service import validate, validate_stop


def _stop(sid: str, street: str) -> Stop:
    return Stop(id=sid, name=sid, address=Address(street=street, city="Springfield", state="IL", zip="62701"))


class DummyGeocoder:
    def __init__(self):
        self.calls = []

    async def resolve(self, address):
        self.calls.append(address)
        if address.startswith("404"):
            raise ValidationFailure("Address could not be found", address=address)
        if address.startswith("503"):
            raise GatewayFailure("Geocoder returned HTTP 503", status=503)
        return GeocodeResult(formatted_address=f"{address}, USA", lat=39.8, lng=-89.6)


def test_validate_marks_each_stop_and_continues_after_failures() -> None:
    stops = [_stop("a", "1 Main St"), _stop("b", "404 Nowhere Rd"), _stop("c", "503 Busy Ave"), _stop("d", "2 Oak St")]
    geocoder = DummyGeocoder()

    report = asyncio.run(validate(stops, geocoder, max_attempts=2, backoff_seconds=0))

    addresses = [stop.full_address for stop in stops]
    assert geocoder.calls == [addresses[0], addresses[1], addresses[2], addresses[2], addresses[3]]
    assert [stop.id for stop in report.validated] == ["a", "d"]
    assert [stop.id for stop in report.rejected] == ["b", "c"]
    assert report.has_rejections
    assert isinstance(stops[0].validation, Valid)
    assert stops[0].coordinates == (39.8, -89.6)
    assert stops[0].formatted_address == "1 Main St, Springfield, IL 62701, USA"
    assert stops[1].validation == Invalid(reason="Address could not be found")
    assert "503" in stops[2].validation.reason


class ThrottledGeocoder:
    """Fails with a retryable error a set number of times before answering."""

    def __init__(self, failures: int, retryable: bool = True):
        self.failures = failures
        self.retryable = retryable
        self.calls = 0

    async def resolve(self, address):
        self.calls += 1
        if self.failures:
            self.failures -= 1
            raise GatewayFailure("Geocoder returned HTTP 429", status=429, retryable=self.retryable)
        return GeocodeResult(formatted_address=address, lat=39.8, lng=-89.6)


def test_validate_stop_retries_transient_failures() -> None:
    geocoder = ThrottledGeocoder(failures=1)
    stop = _stop("a", "1 Main St")

    asyncio.run(validate_stop(stop, geocoder, max_attempts=3, backoff_seconds=0))

    assert geocoder.calls == 2
    assert stop.is_valid
    assert stop.coordinates == (39.8, -89.6)


def test_validate_stop_rejects_after_attempts_run_out() -> None:
    geocoder = ThrottledGeocoder(failures=10)
    stop = _stop("a", "1 Main St")

    asyncio.run(validate_stop(stop, geocoder, max_attempts=3, backoff_seconds=0))

    assert geocoder.calls == 3
    assert stop.validation == Invalid(reason="Geocoder returned HTTP 429")


def test_validate_stop_does_not_retry_permanent_failures() -> None:
    geocoder = ThrottledGeocoder(failures=10, retryable=False)
    stop = _stop("a", "1 Main St")

    asyncio.run(validate_stop(stop, geocoder, max_attempts=3, backoff_seconds=0))

    assert geocoder.calls == 1
    assert not stop.is_valid


def _geocoder(handler) -> NominatimGeocoder:
    return NominatimGeocoder(
        base_url="http://geocoder.test",
        user_agent="RouteTests/1.0",
        country_codes="us",
        min_interval=0,
        transport=httpx.MockTransport(handler),
    )


def test_nominatim_resolve_parses_first_result_and_caches() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json=[{"lat": "39.7817", "lon": "-89.6501", "display_name": "Springfield, Illinois, USA"}],
        )

    geocoder = _geocoder(handler)

    result = asyncio.run(geocoder.resolve("1 Main St, Springfield, IL 62701"))
    again = asyncio.run(geocoder.resolve("1 main st, springfield, il 62701 "))

    assert result == GeocodeResult(formatted_address="Springfield, Illinois, USA", lat=39.7817, lng=-89.6501)
    assert again == result
    assert len(requests) == 1
    request = requests[0]
    assert request.url.path == "/search"
    assert request.url.params["q"] == "1 Main St, Springfield, IL 62701"
    assert request.url.params["format"] == "json"
    assert request.url.params["countrycodes"] == "us"
    assert request.headers["User-Agent"] == "RouteTests/1.0"


def test_nominatim_empty_result_is_validation_failure() -> None:
    geocoder = _geocoder(lambda request: httpx.Response(200, json=[]))

    with pytest.raises(ValidationFailure) as excinfo:
        asyncio.run(geocoder.resolve("404 Nowhere Rd"))
    assert excinfo.value.address == "404 Nowhere Rd"


@pytest.mark.parametrize("status_code,retryable", [(503, True), (429, True), (403, False)])
def test_nominatim_http_errors_are_gateway_failures(status_code: int, retryable: bool) -> None:
    geocoder = _geocoder(lambda request: httpx.Response(status_code))

    with pytest.raises(GatewayFailure) as excinfo:
        asyncio.run(geocoder.resolve("1 Main St"))
    assert excinfo.value.status == status_code
    assert excinfo.value.retryable is retryable


def test_nominatim_network_error_is_gateway_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GatewayFailure):
        asyncio.run(_geocoder(handler).resolve("1 Main St"))


def test_nominatim_spaces_requests_but_not_cache_hits() -> None:
    request_times = []

    def handler(request: httpx.Request) -> httpx.Response:
        request_times.append(time.monotonic())
        return httpx.Response(200, json=[{"lat": "1.0", "lon": "2.0", "display_name": request.url.params["q"]}])

    geocoder = NominatimGeocoder(
        base_url="http://geocoder.test",
        min_interval=0.05,
        transport=httpx.MockTransport(handler),
    )

    async def scenario():
        await geocoder.resolve("1 Main St")
        await geocoder.resolve("2 Oak St")
        started = time.monotonic()
        await geocoder.resolve("1 Main St")
        return time.monotonic() - started

    cached_elapsed = asyncio.run(scenario())

    assert len(request_times) == 2
    assert request_times[1] - request_times[0] >= 0.04
    assert cached_elapsed < 0.04
