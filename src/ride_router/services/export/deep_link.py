"""Google Maps directions link for handing a route to a phone."""

from __future__ import annotations

from typing import Sequence
from urllib.parse import quote

from ...config import settings
from ...errors import CapacityWarning
from ..routing.models import DeepLink

GOOGLE_MAPS_DIR_URL = "https://www.google.com/maps/dir/"


def build_deep_link(addresses: Sequence[str], waypoint_cap: int | None = None) -> DeepLink:
    """URL for a closed route given as its address list (origin first and last).

    Intermediate stops beyond the cap are left out of the link.
    """
    if len(addresses) < 2:
        raise ValueError("A directions link needs an origin and a destination.")
    cap = settings.deep_link_waypoint_cap if waypoint_cap is None else waypoint_cap

    origin = quote(addresses[0], safe="")
    destination = quote(addresses[-1], safe="")
    intermediate = list(addresses[1:-1])
    warnings: list[CapacityWarning] = []
    if len(intermediate) > cap:
        dropped = len(intermediate) - cap
        warnings.append(
            CapacityWarning(
                kind="deep_link",
                limit=cap,
                dropped=dropped,
                message=f"Google Maps links allow {cap} waypoints; {dropped} stop(s) were left out of the link.",
            )
        )
        intermediate = intermediate[:cap]

    url = f"{GOOGLE_MAPS_DIR_URL}?api=1&origin={origin}&destination={destination}"
    if intermediate:
        url += "&waypoints=" + "|".join(quote(address, safe="") for address in intermediate)
    url += "&travelmode=driving"
    return DeepLink(url=url, warnings=warnings)
