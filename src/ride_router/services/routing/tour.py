"""Nearest-neighbor tour construction over a distance matrix."""

from __future__ import annotations

from typing import Sequence

from ...errors import InsufficientStopsError
from .matrix import DistanceMatrix


def build_tour(matrix: DistanceMatrix, stop_ids: Sequence[str]) -> list[str]:
    """Closed tour starting and ending at ``stop_ids[0]``.

    From the current stop, step to the cheapest unvisited stop; ties go to the
    lowest index. This is a heuristic, not an optimum.
    """
    n = len(stop_ids)
    if n < 2:
        raise InsufficientStopsError(f"Need at least 2 stops to build a route, got {n}.")
    if matrix.size != n:
        raise ValueError(f"Matrix size {matrix.size} does not match {n} stops.")

    visited = [False] * n
    visited[0] = True
    order = [0]
    current = 0
    while len(order) < n:
        nearest = -1
        min_cost = 0.0
        for candidate in range(n):
            if visited[candidate]:
                continue
            cost = matrix.cost(current, candidate)
            if nearest == -1 or cost < min_cost:
                nearest = candidate
                min_cost = cost
        visited[nearest] = True
        order.append(nearest)
        current = nearest

    order.append(0)
    return [stop_ids[index] for index in order]


def tour_cost(matrix: DistanceMatrix, order: Sequence[int]) -> float:
    return sum(matrix.cost(a, b) for a, b in zip(order, order[1:]))
