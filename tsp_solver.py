import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

import settings

logger = logging.getLogger(__name__)


class SolveError(Exception):
    """Base class for failures reported by the solver."""


class InvalidMatrix(SolveError, ValueError):
    """The distance matrix breaks a precondition (shape, sign, diagonal, symmetry)."""


class ResourceExhausted(SolveError):
    """The DP tables would not fit the configured limits, or the deadline passed."""


class SolveState(Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    FILLING = "filling"
    EXTRACTING = "extracting"
    RECONSTRUCTING = "reconstructing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class SolveResult:
    tour: Tuple[int, ...]
    cost: float


def table_bytes(n: int) -> int:
    """Memory needed by the cost table (float64) plus the parent table (int8)."""
    return (1 << n) * n * (np.dtype(np.float64).itemsize + np.dtype(np.int8).itemsize)


# Largest integer float64 holds exactly
EXACT_FLOAT_INT = 2 ** 53


def _check_exact_sums(distances, n: int):
    """Integer tours are summed in float64; refuse inputs whose tour cost could round."""
    raw = np.asarray(distances)
    if not _integer_array(raw):
        return
    longest = n * max(int(value) for value in raw.ravel())
    if longest > EXACT_FLOAT_INT:
        raise ResourceExhausted(
            f"Integer distances up to {n} x {longest // n} exceed exact float64 range (2**53)")


def validate_matrix(matrix, max_cities: int = settings.MAX_CITIES,
                    max_table_bytes: Optional[int] = None) -> np.ndarray:
    """
    Check the Held-Karp preconditions and return the distances as a read-only float array.

    Raises InvalidMatrix for a malformed matrix and ResourceExhausted when the
    city count (or the table size it implies) is over the configured limits.
    Nothing is allocated beyond the n x n copy of the input.
    """
    distances = getattr(matrix, "distances", matrix)
    try:
        dist = np.array(distances, dtype=float)
    except (TypeError, ValueError) as exc:
        raise InvalidMatrix(f"Distance matrix must contain only numbers: {exc}") from exc

    if dist.ndim != 2 or dist.shape[0] != dist.shape[1]:
        raise InvalidMatrix(f"Distance matrix must be square, got shape {dist.shape}")

    n = dist.shape[0]
    if n < 2:
        raise InvalidMatrix("At least 2 cities are required")
    if n > max_cities:
        raise ResourceExhausted(
            f"Maximum {max_cities} cities supported (due to exponential complexity), got {n}")
    if max_table_bytes is not None and table_bytes(n) > max_table_bytes:
        raise ResourceExhausted(
            f"DP tables for {n} cities need {table_bytes(n)} bytes, limit is {max_table_bytes}")

    if not np.all(np.isfinite(dist)):
        i, j = np.argwhere(~np.isfinite(dist))[0]
        raise InvalidMatrix(f"Distance between cities {i} and {j} is not finite")
    for i in range(n):
        if dist[i, i] != 0:
            raise InvalidMatrix(f"Distance from city {i} to itself should be 0")
    if np.any(dist < 0):
        i, j = np.argwhere(dist < 0)[0]
        raise InvalidMatrix(f"Negative distance found between cities {i} and {j}")
    if not np.array_equal(dist, dist.T):
        i, j = np.argwhere(dist != dist.T)[0]
        raise InvalidMatrix(
            f"Distance matrix is not symmetric: d[{i}][{j}]={dist[i, j]} but d[{j}][{i}]={dist[j, i]}")

    _check_exact_sums(distances, n)

    dist.setflags(write=False)
    return dist


def reconstruct_tour(parent: np.ndarray, full: int, last_city: int) -> Tuple[int, ...]:
    """
    Walk the parent table back from (full, last_city) to the {0} mask.

    ``parent`` is the flat table indexed by ``mask * n + city``.
    """
    n = len(parent) // (full + 1)
    path: List[int] = []
    mask, city = full, last_city
    while mask != 1:
        path.append(city)
        prev = int(parent[mask * n + city])
        mask ^= 1 << city
        city = prev
    path.reverse()
    return (0,) + tuple(path) + (0,)


class HeldKarpSolver:
    """
    Exact TSP over a symmetric distance matrix, O(n^2 * 2^n) time and O(n * 2^n) memory.

    City 0 is the fixed start and end of the tour. The cost table is a flat
    float64 array where entry ``mask * n + city`` is the cheapest path that
    visits exactly ``mask`` and stops at ``city``; the parent table has the same
    layout and stores the predecessor used for that minimum.

    Masks are filled one cardinality layer at a time; a layer only reads
    entries of the previous layer, so each layer is computed with numpy in a
    single pass per city.
    """

    def __init__(self, max_cities: int = settings.MAX_CITIES,
                 max_table_bytes: Optional[int] = settings.MAX_TABLE_BYTES,
                 deadline: Optional[float] = None):
        self.max_cities = min(max_cities, settings.HARD_MAX_CITIES)
        self.max_table_bytes = max_table_bytes
        self.deadline = deadline
        self.state = SolveState.IDLE

    def _transition(self, state: SolveState):
        logger.debug("Solver state %s -> %s", self.state.value, state.value)
        self.state = state

    def solve(self, matrix) -> SolveResult:
        self._transition(SolveState.VALIDATING)
        try:
            dist = validate_matrix(matrix, self.max_cities, self.max_table_bytes)
            integral = _is_integral(matrix)
            n = dist.shape[0]

            if n == 2:
                self._transition(SolveState.DONE)
                return SolveResult((0, 1, 0), _as_cost(2 * dist[0, 1], integral))

            self._transition(SolveState.FILLING)
            try:
                cost_table, parent_table = self._fill(dist)
            except MemoryError as exc:
                raise ResourceExhausted(f"Ran out of memory filling DP tables for {n} cities") from exc

            self._transition(SolveState.EXTRACTING)
            full = (1 << n) - 1
            closing = cost_table[full * n + 1:(full + 1) * n] + dist[1:, 0]
            last_city = int(np.argmin(closing)) + 1
            cost = closing[last_city - 1]

            self._transition(SolveState.RECONSTRUCTING)
            tour = reconstruct_tour(parent_table, full, last_city)
        except SolveError:
            self._transition(SolveState.FAILED)
            raise

        self._transition(SolveState.DONE)
        return SolveResult(tour, _as_cost(cost, integral))

    def _fill(self, dist: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        n = dist.shape[0]
        size = 1 << n
        logger.info("Initializing DP table for %d cities (%d states)", n, size * n)
        cost_table = np.full(size * n, np.inf)
        parent_table = np.full(size * n, -1, dtype=np.int8)

        # 2-D views over the same flat buffers
        costs = cost_table.reshape(size, n)
        parents = parent_table.reshape(size, n)
        costs[1, 0] = 0.0

        masks = np.arange(size)
        bit_counts = np.zeros(size, dtype=np.int8)
        for city in range(n):
            bit_counts += ((masks >> city) & 1).astype(np.int8)
        with_start = (masks & 1) == 1

        started = time.monotonic()
        for layer_size in range(2, n + 1):
            if self.deadline is not None and time.monotonic() - started > self.deadline:
                raise ResourceExhausted(
                    f"Deadline of {self.deadline}s exceeded at layer {layer_size} of {n}")

            layer = masks[with_start & (bit_counts == layer_size)]
            for city in range(1, n):
                members = layer[((layer >> city) & 1) == 1]
                if members.size == 0:
                    continue
                # costs[prev, city] is inf because city is not in prev,
                # so the j != city condition holds without masking.
                candidates = costs[members ^ (1 << city)] + dist[:, city]
                best = np.argmin(candidates, axis=1)
                costs[members, city] = candidates[np.arange(members.size), best]
                parents[members, city] = best
            logger.debug("Filled layer %d/%d (%d masks)", layer_size, n, layer.size)

        if logger.isEnabledFor(logging.DEBUG):
            for mask in masks[with_start & (bit_counts <= 3)]:
                for city in range(n):
                    if np.isfinite(costs[mask, city]):
                        logger.debug("DP(%s, %d) = %.1f", format(int(mask), f"0{n}b"), city,
                                     costs[mask, city])

        return cost_table, parent_table


def _integer_array(raw: np.ndarray) -> bool:
    if np.issubdtype(raw.dtype, np.integer):
        return True
    # Python ints beyond int64 land in an object array
    return raw.dtype == object and all(isinstance(value, int) for value in raw.ravel())


def _is_integral(matrix) -> bool:
    distances = getattr(matrix, "distances", matrix)
    return _integer_array(np.asarray(distances))


def _as_cost(value, integral: bool):
    return int(round(value)) if integral else float(value)


def solve_tsp_held_karp(distance_matrix) -> Tuple[float, list]:
    """Return (cost, order) where order starts and ends at city 0."""
    result = HeldKarpSolver().solve(distance_matrix)
    return result.cost, list(result.tour)
