"""Route session: owns the current stop list and applies operator edits."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Optional, Sequence

from ...config import settings
from ...data.roster_repository import RosterColumns, RosterTable, normalize_records
from ...errors import (
    BuildInProgressError,
    EmptyRouteError,
    InsufficientStopsError,
    PendingDecisionError,
    ProtectedStopError,
    StopIndexError,
    SupersededError,
    ValidationFailure,
)
from ...models.domain import Invalid, Stop, Unvalidated
from ..geocoding.nominatim_client import GeocodeGateway
from ..geocoding.service import ValidationReport, validate, validate_stop
from .matrix import DistanceMatrix, build_matrix
from .models import InsertPolicy, RejectedStop, RouteSnapshot, SessionStatus, SnapshotStop
from .osrm_client import DistanceGateway
from .tour import build_tour, tour_cost

logger = logging.getLogger(__name__)


class RouteSession:
    """Mutable routing state for one operator session.

    Stops live in an id-keyed arena and the route is a closed list of stop ids
    (origin first and last). Synchronous edits complete atomically; builds that
    await the providers are guarded so only one runs per roster generation, and
    a newer roster load makes the results of an older build stale.
    """

    def __init__(
        self,
        geocoder: GeocodeGateway,
        distances: DistanceGateway,
        *,
        session_id: str | None = None,
        origin: Stop | None = None,
        columns: RosterColumns | None = None,
        insert_policy: InsertPolicy | str | None = None,
        chunk_size: int | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self._geocoder = geocoder
        self._distances = distances
        self._origin = origin
        self._columns = columns or RosterColumns()
        self._insert_policy = InsertPolicy(insert_policy or settings.insert_policy)
        self._chunk_size = chunk_size
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds

        self._generation = 0
        self._active_build: Optional[int] = None
        self._added = 0
        self._clear()

    def _clear(self) -> None:
        self._stops: dict[str, Stop] = {}
        self._superset: list[str] = []
        self._working: list[str] = []
        self._route: Optional[list[str]] = None
        self._matrix: Optional[DistanceMatrix] = None
        self._matrix_index: dict[str, int] = {}
        self._pending: Optional[ValidationReport] = None
        self._category: Optional[str] = None
        self._warnings: list[str] = []

    # -- state helpers -------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        if self._pending is not None:
            return SessionStatus.AWAITING_DECISION
        if self._route is not None:
            return SessionStatus.READY
        return SessionStatus.EMPTY

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def building(self) -> bool:
        return self._active_build == self._generation

    def _require_no_decision(self) -> None:
        if self._pending is not None:
            raise PendingDecisionError("Accept or discard the rejected addresses before editing the route.")

    def _require_route(self) -> list[str]:
        self._require_no_decision()
        if self._route is None:
            raise EmptyRouteError("No route has been built; load a roster first.")
        return self._route

    def _require_idle(self) -> None:
        if self.building:
            raise BuildInProgressError("A route build is already running; wait for it to finish.")

    def _begin_build(self) -> int:
        self._require_no_decision()
        self._require_idle()
        self._active_build = self._generation
        return self._generation

    def _end_build(self, generation: int) -> None:
        if self._active_build == generation:
            self._active_build = None

    def _check_position(self, route: list[str], index: int) -> None:
        if not 0 <= index < len(route):
            raise StopIndexError(f"Stop position {index} is out of range (0-{len(route) - 1}).")

    @staticmethod
    def _is_origin_position(route: list[str], index: int) -> bool:
        return index == 0 or index == len(route) - 1

    def _next_added_id(self) -> str:
        while True:
            self._added += 1
            candidate = f"added-{self._added:04d}"
            if candidate not in self._stops:
                return candidate

    async def _rebuild(self, generation: int, working: Sequence[str]) -> bool:
        """Build matrix and tour for ``working``; commit unless superseded."""
        if len(working) < 2:
            raise InsufficientStopsError("Need at least 2 stops for route optimization.")
        locations = []
        for stop_id in working:
            coordinates = self._stops[stop_id].coordinates
            if coordinates is None:
                raise ValidationFailure("Stop has not been validated", address=self._stops[stop_id].full_address)
            locations.append(coordinates)

        matrix = await build_matrix(
            locations,
            self._distances,
            chunk_size=self._chunk_size,
            max_attempts=self._max_attempts,
            backoff_seconds=self._backoff_seconds,
        )
        if generation != self._generation:
            logger.info(f"Session {self.id}: discarding matrix from superseded generation {generation}")
            return False

        self._route = build_tour(matrix, working)
        self._working = list(working)
        self._matrix = matrix
        self._matrix_index = {stop_id: index for index, stop_id in enumerate(working)}
        logger.info(f"Session {self.id}: built route over {len(working)} stops")
        return True

    # -- builds --------------------------------------------------------

    async def load(self, table: RosterTable) -> RouteSnapshot:
        """Replace the session with a new roster: normalize, validate, build.

        When some addresses are rejected the session waits for ``decide``.
        A roster that fails normalization leaves the current route untouched.
        """
        result = normalize_records(table.rows, self._columns, fieldnames=table.fieldnames)
        stops = list(result.stops)
        if self._origin is not None:
            stops.insert(0, replace(self._origin, validation=Unvalidated()))
        if len(stops) < 2:
            raise InsufficientStopsError("Not enough addresses to optimize route.")

        self._generation += 1
        generation = self._generation
        self._active_build = generation
        self._clear()
        try:
            if result.dropped_incomplete:
                self._warnings.append(f"{result.dropped_incomplete} row(s) without a complete address were skipped.")
            if result.excluded_non_riders:
                self._warnings.append(f"{result.excluded_non_riders} driver/assistant row(s) were excluded.")

            report = await validate(
                stops, self._geocoder, max_attempts=self._max_attempts, backoff_seconds=self._backoff_seconds
            )
            if generation != self._generation:
                logger.info(f"Session {self.id}: discarding validation from superseded generation {generation}")
                return self.snapshot()

            self._stops = {stop.id: stop for stop in stops}
            origin = stops[0]
            if isinstance(origin.validation, Invalid):
                raise ValidationFailure(
                    f"Starting point could not be validated: {origin.validation.reason}",
                    address=origin.full_address,
                )
            if report.rejected:
                self._pending = report
                self._warnings.append(
                    f"{len(report.rejected)} address(es) could not be validated; proceed without them or abort."
                )
                return self.snapshot()

            self._superset = [stop.id for stop in report.validated]
            self._working = list(self._superset)
            await self._rebuild(generation, self._superset)
            return self.snapshot()
        finally:
            self._end_build(generation)

    async def decide(self, proceed: bool) -> RouteSnapshot:
        """Resolve a pending validation decision."""
        if self._pending is None:
            raise PendingDecisionError("No rejected addresses are awaiting a decision.")
        report = self._pending
        if not proceed:
            self._clear()
            self._warnings.append("Load aborted; no route was built.")
            return self.snapshot()

        self._require_idle()
        self._pending = None
        generation = self._begin_build()
        try:
            self._superset = [stop.id for stop in report.validated]
            self._working = list(self._superset)
            await self._rebuild(generation, self._superset)
        finally:
            self._end_build(generation)
        return self.snapshot()

    async def reoptimize(self) -> RouteSnapshot:
        """Rebuild matrix and tour over the current working set."""
        generation = self._begin_build()
        try:
            await self._rebuild(generation, list(self._working))
        finally:
            self._end_build(generation)
        return self.snapshot()

    async def filter_by_category(self, tag: str | None) -> RouteSnapshot:
        """Rebuild over the stops with a category token containing ``tag``.

        The origin is always kept. An empty tag or "all" selects every stop,
        and a tag matching nothing falls back to every stop as well.
        """
        generation = self._begin_build()
        try:
            if not self._superset:
                raise EmptyRouteError("Load a roster before filtering by category.")
            tag = (tag or "").strip()
            category: Optional[str] = None
            working = list(self._superset)
            if tag and tag.lower() != "all":
                needle = tag.lower()
                matches = [
                    stop_id
                    for stop_id in self._superset[1:]
                    if any(needle in token.lower() for token in self._stops[stop_id].categories)
                ]
                if matches:
                    working = [self._superset[0], *matches]
                    category = tag
                else:
                    self._warnings.append(f"No stops match category '{tag}'; showing all stops.")
            if await self._rebuild(generation, working):
                self._category = category
        finally:
            self._end_build(generation)
        return self.snapshot()

    async def insert(self, stop: Stop, policy: InsertPolicy | str | None = None) -> RouteSnapshot:
        """Add a stop just before the closing return to the origin."""
        self._require_route()
        policy = InsertPolicy(policy) if policy else self._insert_policy
        if policy is InsertPolicy.REOPTIMIZE:
            generation = self._begin_build()
        else:
            self._require_idle()
            generation = self._generation
        try:
            if not stop.id or stop.id in self._stops:
                stop.id = self._next_added_id()
            stop.rider_count = max(stop.rider_count, 1)
            if not stop.is_valid:
                await validate_stop(
                    stop, self._geocoder, max_attempts=self._max_attempts, backoff_seconds=self._backoff_seconds
                )
                if generation != self._generation:
                    raise SupersededError("The roster was reloaded while the new stop was being validated.")
                if isinstance(stop.validation, Invalid):
                    raise ValidationFailure(stop.validation.reason, address=stop.full_address)

            if policy is InsertPolicy.APPEND:
                route = self._require_route()
                self._require_idle()
                self._stops[stop.id] = stop
                route.insert(len(route) - 1, stop.id)
                self._working.append(stop.id)
                self._superset.append(stop.id)
            else:
                self._stops[stop.id] = stop
                if not await self._rebuild(generation, [*self._working, stop.id]):
                    raise SupersededError("The roster was reloaded while the route was being rebuilt.")
                self._superset.append(stop.id)
            logger.info(f"Session {self.id}: inserted {stop.id} ({policy.value})")
        finally:
            if policy is InsertPolicy.REOPTIMIZE:
                self._end_build(generation)
        return self.snapshot()

    # -- synchronous edits ----------------------------------------------

    def delete(self, index: int) -> RouteSnapshot:
        route = self._require_route()
        self._require_idle()
        self._check_position(route, index)
        if self._is_origin_position(route, index):
            raise ProtectedStopError("Cannot delete the starting point.")

        stop_id = route.pop(index)
        if stop_id in self._working:
            self._working.remove(stop_id)
        if len(route) < 3:
            self._route = None
            self._warnings.append("Need at least 2 stops for route optimization; load a roster to start again.")
        return self.snapshot()

    def move(self, from_index: int, to_index: int) -> RouteSnapshot:
        route = self._require_route()
        self._require_idle()
        self._check_position(route, from_index)
        self._check_position(route, to_index)
        if self._is_origin_position(route, from_index) or self._is_origin_position(route, to_index):
            raise ProtectedStopError("The starting point cannot be reordered.")
        if from_index != to_index:
            route.insert(to_index, route.pop(from_index))
        return self.snapshot()

    def set_rider_count(self, index: int, delta: int) -> RouteSnapshot:
        route = self._require_route()
        self._check_position(route, index)
        stop = self._stops[route[index]]
        minimum = 0 if self._is_origin_position(route, index) else 1
        stop.rider_count = max(minimum, stop.rider_count + delta)
        return self.snapshot()

    def reset(self) -> RouteSnapshot:
        self._generation += 1
        self._active_build = None
        self._clear()
        return self.snapshot()

    def clear_warnings(self) -> RouteSnapshot:
        self._warnings.clear()
        return self.snapshot()

    # -- views -----------------------------------------------------------

    def ordered_stops(self) -> list[Stop]:
        return [self._stops[stop_id] for stop_id in self._route or []]

    def _route_cost(self) -> Optional[float]:
        if not self._route or self._matrix is None:
            return None
        if any(stop_id not in self._matrix_index for stop_id in self._route):
            return None
        return tour_cost(self._matrix, [self._matrix_index[stop_id] for stop_id in self._route])

    def snapshot(self) -> RouteSnapshot:
        route = self._route or []
        last = len(route) - 1
        stops = tuple(
            SnapshotStop(
                position=position,
                stop_id=stop.id,
                name=stop.name,
                full_address=stop.full_address,
                formatted_address=stop.formatted_address,
                coordinates=stop.coordinates,
                phone=stop.phone,
                notes=stop.notes,
                category=stop.category,
                rider_count=stop.rider_count,
                is_origin=position in (0, last),
            )
            for position, stop in enumerate(self.ordered_stops())
        )

        rider_total = 0
        category_summary: dict[str, int] = {}
        for stop_id in route[1:-1]:
            stop = self._stops[stop_id]
            rider_total += stop.rider_count
            key = stop.category or "Uncategorized"
            category_summary[key] = category_summary.get(key, 0) + stop.rider_count

        rejected: tuple[RejectedStop, ...] = ()
        if self._pending is not None:
            rejected = tuple(
                RejectedStop(
                    stop_id=stop.id,
                    name=stop.name,
                    full_address=stop.full_address,
                    reason=stop.validation.reason if isinstance(stop.validation, Invalid) else "",
                )
                for stop in self._pending.rejected
            )

        return RouteSnapshot(
            session_id=self.id,
            generation=self._generation,
            status=self.status,
            stops=stops,
            rider_total=rider_total,
            category_summary=dict(sorted(category_summary.items())),
            total_cost=self._route_cost(),
            category_filter=self._category,
            rejected=rejected,
            warnings=tuple(self._warnings),
        )
