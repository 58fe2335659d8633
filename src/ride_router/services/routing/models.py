"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ...errors import CapacityWarning
from ...models.domain import Coordinates


class SessionStatus(str, Enum):
    EMPTY = "empty"
    AWAITING_DECISION = "awaiting_decision"
    READY = "ready"


class InsertPolicy(str, Enum):
    APPEND = "append"
    REOPTIMIZE = "reoptimize"


@dataclass(frozen=True, slots=True)
class SnapshotStop:
    position: int
    stop_id: str
    name: str
    full_address: str
    formatted_address: Optional[str]
    coordinates: Optional[Coordinates]
    phone: str
    notes: str
    category: str
    rider_count: int
    is_origin: bool


@dataclass(frozen=True, slots=True)
class RejectedStop:
    stop_id: str
    name: str
    full_address: str
    reason: str


@dataclass(frozen=True, slots=True)
class RouteSnapshot:
    """Read-only view of a session handed to the presentation layer."""

    session_id: str
    generation: int
    status: SessionStatus
    stops: tuple[SnapshotStop, ...]
    rider_total: int
    category_summary: dict[str, int]
    total_cost: Optional[float]
    category_filter: Optional[str]
    rejected: tuple[RejectedStop, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def stop_count(self) -> int:
        """Rider stops, excluding both origin entries."""
        return max(len(self.stops) - 2, 0)


@dataclass(slots=True)
class DirectionsResult:
    source: str
    path: list[Coordinates]
    rendered_stop_ids: list[str]
    distance_m: Optional[float] = None
    duration_s: Optional[float] = None
    warnings: list[CapacityWarning] = field(default_factory=list)


@dataclass(slots=True)
class DeepLink:
    url: str
    warnings: list[CapacityWarning] = field(default_factory=list)
