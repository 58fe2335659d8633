"""Pairwise travel-cost matrix assembled from chunked provider requests."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Sequence

from ...config import settings
from ...errors import GatewayFailure, MatrixBuildError, UnreachablePairError
from ...models.domain import Coordinates
from .osrm_client import DistanceGateway

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DistanceMatrix:
    """Square cost lookup; ``None`` marks a cell that was never written."""

    cells: list[list[float | None]]

    @classmethod
    def empty(cls, size: int) -> "DistanceMatrix":
        return cls(cells=[[None] * size for _ in range(size)])

    @property
    def size(self) -> int:
        return len(self.cells)

    def cost(self, origin: int, destination: int) -> float:
        value = self.cells[origin][destination]
        if value is None:
            raise UnreachablePairError(origin, destination)
        return value

    def write_block(self, row_offset: int, col_offset: int, block: Sequence[Sequence[float | None]]) -> None:
        for local_row, values in enumerate(block):
            for local_col, value in enumerate(values):
                self.cells[row_offset + local_row][col_offset + local_col] = value

    def missing_cells(self) -> list[tuple[int, int]]:
        return [
            (row, col)
            for row, values in enumerate(self.cells)
            for col, value in enumerate(values)
            if value is None
        ]

    @property
    def is_complete(self) -> bool:
        return not self.missing_cells()


def chunk_ranges(count: int, chunk_size: int) -> list[tuple[int, int]]:
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    return [(start, min(start + chunk_size, count)) for start in range(0, count, chunk_size)]


async def _request_block(
    gateway: DistanceGateway,
    origins: Sequence[Coordinates],
    destinations: Sequence[Coordinates],
    *,
    max_attempts: int,
    backoff_seconds: float,
) -> list[list[float | None]]:
    attempt = 0
    while True:
        attempt += 1
        try:
            return await gateway.batch_distances(origins, destinations)
        except GatewayFailure as exc:
            if not exc.retryable or attempt >= max_attempts:
                raise MatrixBuildError(
                    f"Distance request failed after {attempt} attempt(s): {exc}",
                    status=exc.status,
                ) from exc
            wait_time = backoff_seconds * attempt
            logger.warning(
                f"Distance request failed, retrying in {wait_time:.1f}s (attempt {attempt}/{max_attempts}): {exc}"
            )
            await asyncio.sleep(wait_time)


def _check_block(block: Sequence[Sequence[float | None]], rows: int, cols: int, row_offset: int, col_offset: int) -> None:
    if len(block) != rows or any(len(values) != cols for values in block):
        raise MatrixBuildError(
            f"Provider returned a malformed block for rows {row_offset}..{row_offset + rows - 1}",
            status="shape",
        )
    for local_row, values in enumerate(block):
        for local_col, value in enumerate(values):
            if value is None:
                raise UnreachablePairError(row_offset + local_row, col_offset + local_col)
            if value < 0:
                raise MatrixBuildError(f"Provider returned a negative cost ({value})", status="negative")


async def build_matrix(
    locations: Sequence[Coordinates],
    gateway: DistanceGateway,
    *,
    chunk_size: int | None = None,
    max_attempts: int | None = None,
    backoff_seconds: float | None = None,
) -> DistanceMatrix:
    """Build the full cost matrix for ``locations``.

    Locations are split into chunks no larger than the provider batch cap and
    every (row chunk, column chunk) pair is requested in turn, so k chunks cost
    k * k requests. Each request is retried with linear backoff; exhausting the
    attempts aborts the whole build because a tour needs every cell.
    """
    chunk_size = chunk_size or settings.matrix_chunk_size
    max_attempts = max_attempts or settings.provider_max_attempts
    backoff_seconds = settings.provider_backoff_seconds if backoff_seconds is None else backoff_seconds

    n = len(locations)
    matrix = DistanceMatrix.empty(n)
    if n == 0:
        return matrix

    ranges = chunk_ranges(n, chunk_size)
    total_requests = len(ranges) * len(ranges)
    start_time = time.monotonic()
    logger.info(f"Building {n}x{n} distance matrix with {total_requests} chunk requests (chunk size {chunk_size})")

    completed = 0
    for row_start, row_end in ranges:
        origins = locations[row_start:row_end]
        for col_start, col_end in ranges:
            destinations = locations[col_start:col_end]
            block = await _request_block(
                gateway,
                origins,
                destinations,
                max_attempts=max_attempts,
                backoff_seconds=backoff_seconds,
            )
            _check_block(block, len(origins), len(destinations), row_start, col_start)
            matrix.write_block(row_start, col_start, block)
            completed += 1
            logger.debug(f"Progress: {completed}/{total_requests} chunk requests completed")

    missing = matrix.missing_cells()
    if missing:
        raise MatrixBuildError(f"Distance matrix incomplete: {len(missing)} cells missing", status="incomplete")

    logger.info(f"Completed distance matrix: {total_requests} requests in {time.monotonic() - start_time:.2f}s")
    return matrix
