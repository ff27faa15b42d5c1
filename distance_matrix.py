import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np

import settings
from tsp_solver import validate_matrix

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


class ParseError(ValueError):
    """Distance input text that cannot be turned into a matrix."""


@dataclass(frozen=True, eq=False)
class DistanceMatrix:
    """
    City labels plus a read-only n x n distance array, optionally with (lat, lon) positions.

    All-integer distances keep an integer dtype so solve costs stay integers.
    """

    labels: Tuple[str, ...]
    distances: np.ndarray
    positions: Optional[Tuple[Tuple[float, float], ...]] = field(default=None)

    def __post_init__(self):
        distances = np.array(self.distances)
        if not np.issubdtype(distances.dtype, np.integer):
            distances = distances.astype(float)
        distances.setflags(write=False)
        object.__setattr__(self, "distances", distances)
        object.__setattr__(self, "labels", tuple(str(label) for label in self.labels))
        if distances.ndim != 2 or distances.shape != (len(self.labels), len(self.labels)):
            raise ParseError(
                f"{len(self.labels)} cities but distance matrix has shape {distances.shape}")
        if self.positions is not None and len(self.positions) != len(self.labels):
            raise ParseError(f"{len(self.labels)} cities but {len(self.positions)} positions")

    @property
    def n(self) -> int:
        return len(self.labels)

    def validate(self, max_cities: int = settings.MAX_CITIES) -> "DistanceMatrix":
        validate_matrix(self, max_cities)
        return self

    @classmethod
    def from_coordinates(cls, coords: Sequence[Tuple[float, float]],
                         labels: Optional[Sequence[str]] = None) -> "DistanceMatrix":
        if labels is None:
            labels = [f"({lat:.4f}, {lon:.4f})" for lat, lon in coords]
        return cls(tuple(labels), build_distance_matrix(coords),
                   tuple((float(lat), float(lon)) for lat, lon in coords))


def _is_number(token: str) -> bool:
    try:
        float(token)
    except ValueError:
        return False
    return True


def _to_number(token: str):
    try:
        return int(token)
    except ValueError:
        return float(token)


def _parse_rows(lines: List[str], n: int) -> List[List[float]]:
    rows = []
    for i, line in enumerate(lines):
        if i >= n:
            logger.warning("Ignoring %d line(s) after the %d matrix rows", len(lines) - n, n)
            break
        try:
            row = [_to_number(part) for part in line.split()]
        except ValueError:
            raise ParseError(f"Invalid number in matrix row {i + 1}")
        if len(row) != n:
            raise ParseError(f"Matrix row {i + 1} has {len(row)} columns, expected {n}")
        rows.append(row)

    if len(rows) != n:
        raise ParseError(f"Matrix has {len(rows)} rows, expected {n}")
    return rows


def parse_distance_text(text: str) -> DistanceMatrix:
    """
    Parse a distance matrix from text.

    Blank lines and lines starting with '#' are skipped. Three layouts are accepted:

    * matrix format: a header line of city labels followed by the rows
      ("A B C" / "0 10 15" / ...);
    * list format: one label per line, then the rows;
    * a bare numeric matrix, in which case cities are labelled by index.
    """
    lines = [line.strip() for line in text.splitlines()]
    lines = [line for line in lines if line and not line.startswith("#")]
    if not lines:
        raise ParseError("Empty input file")

    first = lines[0].split()
    if len(first) > 1 and not all(_is_number(part) for part in first):
        if len(lines) < 2:
            raise ParseError("Matrix format requires at least 2 lines")
        labels = first
        rows = _parse_rows(lines[1:], len(labels))
    else:
        matrix_start = next(
            (i for i, line in enumerate(lines) if all(_is_number(part) for part in line.split())),
            None)
        if matrix_start is None:
            raise ParseError("Could not find distance matrix in input")
        if matrix_start == 0:
            n = len(first)
            labels = [str(i) for i in range(n)]
        else:
            labels = lines[:matrix_start]
        rows = _parse_rows(lines[matrix_start:], len(labels))

    logger.debug("Parsed %d cities: %s", len(labels), labels)
    return DistanceMatrix(tuple(labels), rows)


def load_distance_file(path) -> DistanceMatrix:
    return parse_distance_text(Path(path).read_text(encoding="utf-8"))


def parse_coordinates(lats: Sequence[str], lons: Sequence[str],
                      max_points: int = settings.MAX_POINTS) -> List[Tuple[float, float]]:
    coords: List[Tuple[float, float]] = []
    for lat_str, lon_str in zip(lats, lons):
        if lat_str.strip() == "" or lon_str.strip() == "":
            continue
        try:
            lat = float(lat_str)
            lon = float(lon_str)
        except ValueError:
            raise ValueError("Latitude/Longitude must be numeric.")
        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            raise ValueError("Latitude must be [-90,90], Longitude must be [-180,180].")
        coords.append((lat, lon))
    if len(coords) < 2:
        raise ValueError("Please enter at least 2 valid coordinate pairs.")
    if len(coords) > max_points:
        raise ValueError(f"Please limit to {max_points} points.")
    return coords


def haversine(p1: Tuple[float, float], p2: Tuple[float, float]) -> float:
    lat1, lon1 = map(math.radians, p1)
    lat2, lon2 = map(math.radians, p2)
    a = (math.sin((lat2 - lat1) / 2) ** 2 +
         math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2)
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def build_distance_matrix(coords: Sequence[Tuple[float, float]]) -> List[List[float]]:
    """
    Build a symmetric distance matrix (km) from great-circle distances.
    coords: List of (lat, lon)
    Returns: 2D list of distances in km
    """
    n = len(coords)
    dist_km = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            dist_km[i][j] = dist_km[j][i] = haversine(coords[i], coords[j])
    return dist_km
