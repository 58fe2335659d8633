"""Error taxonomy shared by the routing engine and the API layer."""

from __future__ import annotations

from dataclasses import dataclass


class RouteError(ValueError):
    """Base class for rejected operations; the session is left unchanged."""


class SchemaError(RouteError):
    """Roster is missing a required column or header row."""


class ValidationFailure(RouteError):
    """An address could not be resolved by the geocoder."""

    def __init__(self, reason: str, address: str | None = None) -> None:
        self.reason = reason
        self.address = address
        message = f"{address}: {reason}" if address else reason
        super().__init__(message)


class ProtectedStopError(RouteError):
    """Attempt to delete or reorder the origin."""


class InsufficientStopsError(RouteError):
    """Fewer stops than a tour needs."""


class StopIndexError(RouteError):
    """Route position out of range."""


class EmptyRouteError(RouteError):
    """Operation needs a built route but the session has none."""


class BuildInProgressError(RouteError):
    """A matrix build for the current roster is still outstanding."""


class PendingDecisionError(RouteError):
    """The operator must accept or discard rejected addresses first."""


class SupersededError(RouteError):
    """A newer roster load replaced the state this operation started from."""


class GatewayFailure(ConnectionError):
    """A provider call failed."""

    def __init__(self, message: str, *, status: int | str | None = None, retryable: bool = True) -> None:
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class MatrixBuildError(GatewayFailure):
    """The distance matrix could not be completed."""

    def __init__(self, message: str, *, status: int | str | None = None) -> None:
        super().__init__(message, status=status, retryable=False)


class UnreachablePairError(MatrixBuildError):
    """Provider reported no path between two stops."""

    def __init__(self, origin: int, destination: int) -> None:
        super().__init__(f"No route between stop {origin} and stop {destination}.", status="unreachable")
        self.origin = origin
        self.destination = destination


@dataclass(frozen=True, slots=True)
class CapacityWarning:
    """A provider or URL cap truncated the stops it was given."""

    kind: str
    limit: int
    dropped: int
    message: str
