"""Routing orchestration: wiring providers into sessions and views."""

from __future__ import annotations

import logging
from typing import Optional

from ...config import settings
from ...data.roster_repository import origin_stop_from_settings
from ...errors import EmptyRouteError
from ..export.deep_link import build_deep_link
from ..geocoding.nominatim_client import NominatimGeocoder
from ..geospatial import HaversineGateway
from .directions import render_directions
from .models import DeepLink, DirectionsResult
from .osrm_client import DistanceGateway, OSRMClient
from .session import RouteSession

logger = logging.getLogger(__name__)


def _distance_gateway() -> DistanceGateway:
    if settings.osrm_base_url:
        return OSRMClient()
    logger.info("OSRM base URL not configured; using haversine distances")
    return HaversineGateway()


def create_session() -> RouteSession:
    return RouteSession(
        geocoder=NominatimGeocoder(),
        distances=_distance_gateway(),
        origin=origin_stop_from_settings(),
    )


async def session_directions(session: RouteSession, client: Optional[OSRMClient] = None) -> DirectionsResult:
    if client is None and settings.osrm_base_url:
        client = OSRMClient()
    return await render_directions(session.ordered_stops(), client)


def session_deep_link(session: RouteSession) -> DeepLink:
    stops = session.ordered_stops()
    if not stops:
        raise EmptyRouteError("No route has been built; load a roster first.")
    return build_deep_link([stop.full_address for stop in stops])
