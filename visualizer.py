import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import folium
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

logger = logging.getLogger(__name__)

MAX_OUTPUT_FILES = 9999
# Simple-CRS maps use pixel-like units; the unit circle would be a dot.
MAP_SCALE = 100.0


class OutputError(Exception):
    pass


@dataclass
class OutputCounter:
    """Suffix counter for output filenames, owned by whoever drives the renderer."""

    value: int = 0


def format_route(labels: Sequence[str], tour: Sequence[int]) -> str:
    return " -> ".join(labels[node] for node in tour)


def format_summary(labels: Sequence[str], distances) -> str:
    lines = [f"Cities: {list(labels)}", "Distance Matrix:"]
    for label, row in zip(labels, distances):
        lines.append(f"  {label}: " + ", ".join(f"{dist:6.1f}" for dist in row))
    return "\n".join(lines)


def circle_positions(n: int) -> List[Tuple[float, float]]:
    # Start from the top and go clockwise
    return [(math.cos(math.pi / 2 - 2 * math.pi * i / n),
             math.sin(math.pi / 2 - 2 * math.pi * i / n)) for i in range(n)]


def unique_output_path(output_dir, base_name: str, counter: OutputCounter) -> Path:
    """
    Return the first free ``<base_name>.png`` / ``<base_name>_<k>.png`` in output_dir.

    The counter is advanced past the returned name, so repeated calls within
    one run never hand out the same path twice.
    """
    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        raise OutputError(f"Output directory not found. Please create '{output_dir}' folder first.")

    while counter.value <= MAX_OUTPUT_FILES:
        suffix = "" if counter.value == 0 else f"_{counter.value}"
        candidate = output_dir / f"{base_name}{suffix}.png"
        counter.value += 1
        if not candidate.exists():
            return candidate

    raise OutputError("Too many output files, please clean up the output directory")


def render_tour_png(labels: Sequence[str], tour: Sequence[int], cost: float, target,
                    positions: Optional[Sequence[Tuple[float, float]]] = None):
    """
    Draw the cities and the closed route to a PNG.

    target: a filename or a binary file object.
    positions: (lat, lon) per city; cities are spread on a circle when omitted.
    """
    geographic = positions is not None
    if geographic:
        points = [(lon, lat) for lat, lon in positions]
    else:
        points = circle_positions(len(labels))

    fig, ax = plt.subplots(figsize=(8, 6), dpi=100)
    ax.set_title(f"TSP Solution - Total Distance: {cost:.1f}")
    ax.set_xlabel("Longitude" if geographic else "X Coordinate")
    ax.set_ylabel("Latitude" if geographic else "Y Coordinate")
    if not geographic:
        ax.set_xlim(-1.2, 1.2)
        ax.set_ylim(-1.2, 1.2)

    route = [points[node] for node in tour]
    xs, ys = zip(*route)
    ax.plot(xs, ys, color="red", linewidth=3, label="Optimal Path", zorder=1)

    for (x1, y1), (x2, y2) in zip(route[:-1], route[1:]):
        if math.hypot(x2 - x1, y2 - y1) < 1e-9:
            continue
        # Arrow head three quarters of the way along each leg
        ax.annotate("", xy=(x1 + 0.75 * (x2 - x1), y1 + 0.75 * (y2 - y1)),
                    xytext=(x1 + 0.7 * (x2 - x1), y1 + 0.7 * (y2 - y1)),
                    arrowprops=dict(arrowstyle="-|>", color="red", lw=2))

    for label, (x, y) in zip(labels, points):
        ax.scatter([x], [y], s=100, color="blue", zorder=2)
        ax.annotate(label, (x, y), xytext=(0, 10), textcoords="offset points", ha="center")

    ax.legend(loc="upper right")
    fig.text(0.02, 0.02, f"Path: {format_route(labels, tour)}", fontsize=9)

    fig.savefig(target, format="png")
    plt.close(fig)
    logger.info("Visualization created with %d cities", len(labels))


def add_markers_in_order(m: folium.Map, labels: Sequence[str],
                         points: Sequence[Tuple[float, float]], order: Sequence[int]):
    for visit_idx, node in enumerate(order[:-1], start=1):
        if visit_idx == 1:
            # Start point
            icon = folium.Icon(color="green", icon="play")
            label = f"Start: {labels[node]}"
        else:
            # Intermediate stop
            icon = folium.Icon(color="blue", icon="flag")
            label = f"Stop {visit_idx}: {labels[node]}"
        folium.Marker(list(points[node]), popup=label, tooltip=label, icon=icon).add_to(m)

    # Closing node = back to start
    last_node = order[-1]
    folium.Marker(
        list(points[last_node]),
        popup="Return to Start",
        tooltip="Return to Start",
        icon=folium.Icon(color="red", icon="home")
    ).add_to(m)


def build_route_map(labels: Sequence[str], tour: Sequence[int],
                    positions: Optional[Sequence[Tuple[float, float]]] = None) -> folium.Map:
    if positions is None:
        # folium takes [y, x]
        points = [(y * MAP_SCALE, x * MAP_SCALE) for x, y in circle_positions(len(labels))]
        m = folium.Map(location=[0, 0], crs="Simple", tiles=None, zoom_start=1)
    else:
        points = [tuple(p) for p in positions]
        m = folium.Map(location=list(points[tour[0]]), zoom_start=10, control_scale=True)

    add_markers_in_order(m, labels, points, tour)
    folium.PolyLine([list(points[node]) for node in tour],
                    weight=4, opacity=0.8, color="blue").add_to(m)

    # Auto-zoom map to fit all points
    m.fit_bounds([list(points[node]) for node in tour])
    return m
