"""Validate stop addresses against the geocoding gateway."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence

from ...config import settings
from ...errors import GatewayFailure, ValidationFailure
from ...models.domain import Invalid, Stop, Valid
from .nominatim_client import GeocodeGateway

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ValidationReport:
    validated: list[Stop] = field(default_factory=list)
    rejected: list[Stop] = field(default_factory=list)

    @property
    def has_rejections(self) -> bool:
        return bool(self.rejected)


async def validate_stop(
    stop: Stop,
    gateway: GeocodeGateway,
    *,
    max_attempts: int | None = None,
    backoff_seconds: float | None = None,
) -> Stop:
    """Resolve one stop in place and return it marked Valid or Invalid.

    Retryable provider failures are retried with linear backoff; the stop is
    marked Invalid only once the attempts run out.
    """
    max_attempts = max_attempts or settings.provider_max_attempts
    backoff_seconds = settings.provider_backoff_seconds if backoff_seconds is None else backoff_seconds

    attempt = 0
    while True:
        attempt += 1
        try:
            result = await gateway.resolve(stop.full_address)
        except ValidationFailure as exc:
            stop.validation = Invalid(reason=exc.reason)
        except GatewayFailure as exc:
            if exc.retryable and attempt < max_attempts:
                wait_time = backoff_seconds * attempt
                logger.warning(
                    f"Geocoding {stop.id} failed, retrying in {wait_time:.1f}s (attempt {attempt}/{max_attempts}): {exc}"
                )
                await asyncio.sleep(wait_time)
                continue
            stop.validation = Invalid(reason=str(exc))
        else:
            stop.validation = Valid(coordinates=(result.lat, result.lng), formatted_address=result.formatted_address)
        return stop


async def validate(
    stops: Sequence[Stop],
    gateway: GeocodeGateway,
    *,
    max_attempts: int | None = None,
    backoff_seconds: float | None = None,
) -> ValidationReport:
    """Resolve stops one at a time.

    Request pacing belongs to the gateway. A failing stop is marked Invalid
    and the batch carries on.
    """
    report = ValidationReport()
    for stop in stops:
        await validate_stop(stop, gateway, max_attempts=max_attempts, backoff_seconds=backoff_seconds)
        if isinstance(stop.validation, Valid):
            report.validated.append(stop)
        else:
            logger.warning(f"Address rejected for {stop.id} ({stop.full_address}): {stop.validation.reason}")
            report.rejected.append(stop)

    logger.info(f"Validated {len(stops)} addresses: {len(report.validated)} ok, {len(report.rejected)} rejected")
    return report
