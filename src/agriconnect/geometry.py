"""agriconnect.geometry — crop guidance overlay geometry

Pure functions only:
- viewport + spacing (cm) + visibility -> tuple of drawable primitives
- no drawing, no camera, no state

Every rendering backend consumes the output of generate(), so the overlay
looks the same whichever backend draws it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union

# 1 cm ~ 3.77 px at typical phone viewing distance (demo conversion)
CM_TO_PX = 3.77

MIN_SPACING_CM = 10.0
MAX_SPACING_CM = 100.0

MARKER_RADIUS = 15.0
BOX_FRACTION = 0.3
CORNER_TICK_LEN = 20.0

# more lines than this per axis is treated as no grid
MAX_GRID_LINES = 10_000

HORIZONTAL = "horizontal"
VERTICAL = "vertical"

Point = Tuple[float, float]


@dataclass(frozen=True)
class Viewport:
    width: float
    height: float

    @property
    def center(self) -> Point:
        return (self.width / 2.0, self.height / 2.0)

    def is_degenerate(self) -> bool:
        w, h = self.width, self.height
        return not (math.isfinite(w) and math.isfinite(h) and w > 0 and h > 0)


@dataclass(frozen=True)
class Paint:
    """Colour in OpenCV BGR order. thickness=-1 means filled."""
    bgr: Tuple[int, int, int]
    alpha: float = 1.0
    thickness: int = 1


GREEN = (0, 200, 0)
BLUE = (255, 0, 0)
RED = (0, 0, 255)

GRID_PAINT = Paint(GREEN, alpha=0.3, thickness=1)
MARKER_STROKE = Paint(BLUE, thickness=3)
MARKER_FILL = Paint(BLUE, alpha=0.2, thickness=-1)
BOX_STROKE = Paint(RED, thickness=3)
BOX_FILL = Paint(RED, alpha=0.15, thickness=-1)
CORNER_PAINT = Paint(RED, thickness=4)


@dataclass(frozen=True)
class GridLine:
    orientation: str  # HORIZONTAL | VERTICAL
    position: float


@dataclass(frozen=True)
class MarkerCircle:
    center: Point
    radius: float = MARKER_RADIUS
    stroke: Paint = MARKER_STROKE
    fill: Paint = MARKER_FILL


@dataclass(frozen=True)
class BoundingBox:
    rect: Tuple[float, float, float, float]  # left, top, width, height
    stroke: Paint = BOX_STROKE
    fill: Paint = BOX_FILL


@dataclass(frozen=True)
class CornerTick:
    start: Point
    end: Point


Primitive = Union[GridLine, MarkerCircle, BoundingBox, CornerTick]


def pixel_spacing(spacing_cm: float) -> float:
    return float(spacing_cm) * CM_TO_PX


def clamp_spacing(spacing_cm: float) -> float:
    """Clamp to the slider range. NaN falls back to the minimum."""
    try:
        v = float(spacing_cm)
    except (TypeError, ValueError):
        return MIN_SPACING_CM
    if math.isnan(v):
        return MIN_SPACING_CM
    return min(MAX_SPACING_CM, max(MIN_SPACING_CM, v))


def _positions(step: float, limit: float) -> List[float]:
    # k * step instead of accumulating, so positions don't drift
    out: List[float] = []
    k = 1
    while k * step < limit:
        out.append(k * step)
        k += 1
    return out


def grid_lines(viewport: Viewport, p: float) -> List[GridLine]:
    if not (math.isfinite(p) and p > 0):
        return []
    if max(viewport.width, viewport.height) / p > MAX_GRID_LINES:
        return []
    lines = [GridLine(VERTICAL, x) for x in _positions(p, viewport.width)]
    lines.extend(GridLine(HORIZONTAL, y) for y in _positions(p, viewport.height))
    return lines


def markers(viewport: Viewport, p: float) -> List[MarkerCircle]:
    cx, cy = viewport.center
    out = [MarkerCircle((cx, cy))]
    if not (math.isfinite(p) and p > 0):
        return out
    if cx + p < viewport.width and cy + p < viewport.height:
        out.append(MarkerCircle((cx + p, cy + p)))
    if cx - p > 0 and cy - p > 0:
        out.append(MarkerCircle((cx - p, cy - p)))
    return out


def bounding_box(viewport: Viewport) -> Tuple[BoundingBox, List[CornerTick]]:
    """Centred 'affected area' box plus two inward ticks per corner.

    Corners run clockwise from top-left; each corner yields its horizontal
    tick first, then its vertical one.
    """
    bw = viewport.width * BOX_FRACTION
    bh = viewport.height * BOX_FRACTION
    left = (viewport.width - bw) / 2.0
    top = (viewport.height - bh) / 2.0
    right = left + bw
    bottom = top + bh
    t = CORNER_TICK_LEN

    corners = [
        ((left, top), +1, +1),
        ((right, top), -1, +1),
        ((right, bottom), -1, -1),
        ((left, bottom), +1, -1),
    ]
    ticks: List[CornerTick] = []
    for (x, y), dx, dy in corners:
        ticks.append(CornerTick((x, y), (x + dx * t, y)))
        ticks.append(CornerTick((x, y), (x, y + dy * t)))
    return BoundingBox((left, top, bw, bh)), ticks


def generate(viewport: Viewport, spacing_cm: float, visible: bool) -> Tuple[Primitive, ...]:
    """Build the full overlay for one parameter triple.

    Returns an empty tuple when hidden or when the viewport has no area.
    Order: vertical lines, horizontal lines, centre marker, (+p,+p) marker,
    (-p,-p) marker, bounding box, corner ticks.
    """
    if not visible or viewport.is_degenerate():
        return ()

    p = pixel_spacing(spacing_cm)
    out: List[Primitive] = []
    out.extend(grid_lines(viewport, p))
    out.extend(markers(viewport, p))
    box, ticks = bounding_box(viewport)
    out.append(box)
    out.extend(ticks)
    return tuple(out)


def of_type(primitives: Sequence[Primitive], kind: type) -> List[Primitive]:
    return [prim for prim in primitives if isinstance(prim, kind)]


def describe(prim: Primitive) -> str:
    if isinstance(prim, GridLine):
        return f"grid {prim.orientation} @ {prim.position:.1f}"
    if isinstance(prim, MarkerCircle):
        x, y = prim.center
        return f"marker ({x:.1f},{y:.1f}) r={prim.radius:.0f}"
    if isinstance(prim, BoundingBox):
        x, y, w, h = prim.rect
        return f"box x={x:.1f} y={y:.1f} w={w:.1f} h={h:.1f}"
    (x0, y0), (x1, y1) = prim.start, prim.end
    return f"tick ({x0:.1f},{y0:.1f})->({x1:.1f},{y1:.1f})"
