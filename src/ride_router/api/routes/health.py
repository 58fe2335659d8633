"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/providers", status_code=status.HTTP_200_OK)
async def health_providers() -> dict:
    """Check reachability of the geocoder and the OSRM server."""
    from ...services.geocoding.nominatim_client import check_health as geocoder_health_check
    from ...services.routing.osrm_client import check_health as osrm_health_check

    osrm = {"service": "osrm", "configured": bool(settings.osrm_base_url)}
    if settings.osrm_base_url:
        osrm["healthy"] = await osrm_health_check()
    else:
        osrm["healthy"] = False
        osrm["fallback"] = "haversine"
    return {
        "geocoder": {"service": "nominatim", "healthy": await geocoder_health_check()},
        "osrm": osrm,
    }
