import asyncio

import pytest

from ride_router.errors import EmptyRouteError
from ride_router.models.domain import Address, Stop, Valid
from ride_router.services.export import build_deep_link
from ride_router.services.routing.directions import render_directions


def _stop(index: int) -> Stop:
    return Stop(
        id=f"s{index}",
        name=f"Stop {index}",
        address=Address(street=f"{index} Main St", city="Springfield", state="IL", zip="62701"),
        validation=Valid(coordinates=(39.0, -89.0 + index / 100)),
    )


def _route(intermediate: int) -> list[Stop]:
    origin = _stop(0)
    return [origin, *(_stop(i) for i in range(1, intermediate + 1)), origin]


class DummyDirections:
    def __init__(self):
        self.coordinates = None

    async def route(self, coordinates):
        self.coordinates = list(coordinates)
        return {"distance": 4200.0, "duration": 600.0, "path": [(39.0, -89.0), (39.1, -89.1)]}


def test_directions_truncate_to_waypoint_cap() -> None:
    route = _route(30)

    result = asyncio.run(render_directions(route, None, waypoint_cap=25))

    assert result.source == "straight-line"
    assert len(result.rendered_stop_ids) == 27
    assert result.rendered_stop_ids[0] == result.rendered_stop_ids[-1] == "s0"
    assert result.rendered_stop_ids[-2] == "s25"
    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert (warning.kind, warning.limit, warning.dropped) == ("directions", 25, 5)


def test_directions_use_gateway_path_when_available() -> None:
    gateway = DummyDirections()

    result = asyncio.run(render_directions(_route(3), gateway, waypoint_cap=25))

    assert result.source == "osrm"
    assert result.distance_m == 4200.0
    assert result.duration_s == 600.0
    assert result.path == [(39.0, -89.0), (39.1, -89.1)]
    assert len(gateway.coordinates) == 5
    assert result.warnings == []


def test_directions_need_a_route() -> None:
    origin = _stop(0)
    with pytest.raises(EmptyRouteError):
        asyncio.run(render_directions([origin, origin], None))


def test_deep_link_caps_waypoints_with_warning() -> None:
    addresses = [stop.full_address for stop in _route(12)]

    link = build_deep_link(addresses, waypoint_cap=10)

    assert link.url.startswith("https://www.google.com/maps/dir/?api=1&origin=0%20Main%20St%2C%20Springfield")
    assert "&destination=0%20Main%20St" in link.url
    waypoints = link.url.split("&waypoints=")[1].split("&travelmode=")[0]
    assert len(waypoints.split("|")) == 10
    assert "11%20Main%20St" not in waypoints
    assert len(link.warnings) == 1
    assert (link.warnings[0].kind, link.warnings[0].limit, link.warnings[0].dropped) == ("deep_link", 10, 2)


def test_deep_link_without_waypoints() -> None:
    link = build_deep_link(["1 A St, Springfield, IL 62701", "2 B St, Springfield, IL 62701"])

    assert "&waypoints=" not in link.url
    assert link.url.endswith("&travelmode=driving")
    assert link.warnings == []


def test_deep_link_needs_two_addresses() -> None:
    with pytest.raises(ValueError):
        build_deep_link(["1 A St"])
