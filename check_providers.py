#!/usr/bin/env python3
"""Script to verify geocoder and OSRM connectivity with the current settings."""

import asyncio
import sys
from pathlib import Path

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root / "src"))

from ride_router.config import settings
from ride_router.errors import GatewayFailure, ValidationFailure
from ride_router.services.geocoding.nominatim_client import NominatimGeocoder
from ride_router.services.routing.osrm_client import OSRMClient, check_health


async def _check_geocoder() -> bool:
    print("1. Testing geocoder...")
    print(f"   Base URL: {settings.nominatim_base_url}")
    try:
        result = await NominatimGeocoder().resolve("1600 Pennsylvania Ave NW, Washington, DC 20500")
    except (GatewayFailure, ValidationFailure) as exc:
        print(f"   [ERROR] Geocoder request failed: {exc}")
        return False
    print(f"   [OK] Resolved to {result.formatted_address} ({result.lat:.5f}, {result.lng:.5f})")
    return True


async def _check_osrm() -> bool:
    print("2. Testing OSRM...")
    if not settings.osrm_base_url:
        print("   [SKIP] RIDEROUTE_OSRM_BASE_URL is not set; straight-line distances will be used")
        return True
    print(f"   Base URL: {settings.osrm_base_url} (profile {settings.osrm_profile})")
    if not await check_health():
        print("   [ERROR] OSRM service is not responding")
        return False
    coordinates = [(52.517037, 13.388860), (52.496891, 13.385983)]
    try:
        block = await OSRMClient().batch_distances(coordinates, coordinates)
    except GatewayFailure as exc:
        print(f"   [ERROR] Table request failed: {exc}")
        return False
    print(f"   [OK] Received {len(block)}x{len(block[0])} {settings.matrix_metric} block")
    return True


async def main() -> int:
    print("=" * 60)
    print("Provider Connection Test")
    print("=" * 60)
    geocoder_ok = await _check_geocoder()
    osrm_ok = await _check_osrm()
    print("=" * 60)
    if geocoder_ok and osrm_ok:
        print("[SUCCESS] Providers are reachable")
        return 0
    print("[FAILED] See errors above")
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
