"""Rendered path for the current route, subject to the provider waypoint cap."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ...config import settings
from ...errors import CapacityWarning, EmptyRouteError
from ...models.domain import Stop
from .models import DirectionsResult
from .osrm_client import DirectionsGateway

logger = logging.getLogger(__name__)


def _truncate_waypoints(route: Sequence[Stop], cap: int) -> tuple[list[Stop], list[CapacityWarning]]:
    """Origin, at most ``cap`` intermediate stops, origin."""
    waypoints = list(route[1:-1])
    warnings: list[CapacityWarning] = []
    if len(waypoints) > cap:
        dropped = len(waypoints) - cap
        message = (
            f"Map directions support {cap} waypoints; the last {dropped} stop(s) are not drawn "
            f"but remain in the route."
        )
        logger.warning(message)
        warnings.append(CapacityWarning(kind="directions", limit=cap, dropped=dropped, message=message))
        waypoints = waypoints[:cap]
    return [route[0], *waypoints, route[-1]], warnings


async def render_directions(
    route: Sequence[Stop],
    gateway: Optional[DirectionsGateway],
    *,
    waypoint_cap: int | None = None,
) -> DirectionsResult:
    """Street path through the route, or straight segments without a gateway."""
    if len(route) < 3:
        raise EmptyRouteError("No route has been built; load a roster first.")
    cap = settings.directions_waypoint_cap if waypoint_cap is None else waypoint_cap
    rendered, warnings = _truncate_waypoints(route, cap)
    coordinates = [stop.coordinates for stop in rendered]
    if any(point is None for point in coordinates):
        raise EmptyRouteError("Route contains stops without validated coordinates.")

    if gateway is None:
        return DirectionsResult(
            source="straight-line",
            path=list(coordinates),
            rendered_stop_ids=[stop.id for stop in rendered],
            warnings=warnings,
        )

    result = await gateway.route(coordinates)
    return DirectionsResult(
        source="osrm",
        path=result.get("path") or list(coordinates),
        rendered_stop_ids=[stop.id for stop in rendered],
        distance_m=result.get("distance"),
        duration_s=result.get("duration"),
        warnings=warnings,
    )
