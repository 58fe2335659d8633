"""Serializers for route snapshots."""

from __future__ import annotations

import csv
import io
from dataclasses import asdict

from ..routing.models import RouteSnapshot


def snapshot_to_json(snapshot: RouteSnapshot) -> dict:
    return {
        "session_id": snapshot.session_id,
        "generation": snapshot.generation,
        "status": snapshot.status.value,
        "rider_total": snapshot.rider_total,
        "stop_count": snapshot.stop_count,
        "category_summary": dict(snapshot.category_summary),
        "categories": list(snapshot.category_summary),
        "total_cost": snapshot.total_cost,
        "category_filter": snapshot.category_filter,
        "stops": [asdict(stop) for stop in snapshot.stops],
        "rejected": [asdict(stop) for stop in snapshot.rejected],
        "warnings": list(snapshot.warnings),
    }


def snapshot_to_csv(snapshot: RouteSnapshot) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "sequence",
        "stop_id",
        "name",
        "address",
        "phone",
        "notes",
        "category",
        "rider_count",
        "is_origin",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for stop in snapshot.stops:
        writer.writerow(
            {
                "sequence": stop.position + 1,
                "stop_id": stop.stop_id,
                "name": stop.name,
                "address": stop.formatted_address or stop.full_address,
                "phone": stop.phone,
                "notes": stop.notes,
                "category": stop.category,
                "rider_count": stop.rider_count,
                "is_origin": stop.is_origin,
            }
        )
    return buffer.getvalue()
