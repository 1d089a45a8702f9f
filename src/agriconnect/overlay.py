"""agriconnect.overlay — OpenCV drawing helpers

Goal:
- Keep drawing code isolated so preview/GUI choices can change later.
- Draw whatever geometry.generate() produced; no layout decisions here.

Translucent paints (alpha < 1) are drawn on a copy and blended back with
cv2.addWeighted, one pass per paint.
"""

from __future__ import annotations

from typing import Sequence, Tuple

import cv2
import numpy as np

from .geometry import (
    GRID_PAINT,
    CORNER_PAINT,
    VERTICAL,
    BoundingBox,
    CornerTick,
    GridLine,
    MarkerCircle,
    Paint,
    Primitive,
)


def _pt(p: Tuple[float, float]) -> Tuple[int, int]:
    return (int(round(p[0])), int(round(p[1])))


def _blend(frame: np.ndarray, layer: np.ndarray, alpha: float) -> None:
    cv2.addWeighted(layer, alpha, frame, 1.0 - alpha, 0, dst=frame)


def _paint_target(frame: np.ndarray, paint: Paint) -> np.ndarray:
    return frame if paint.alpha >= 1.0 else frame.copy()


def _finish(frame: np.ndarray, target: np.ndarray, paint: Paint) -> None:
    if target is not frame:
        _blend(frame, target, max(0.0, paint.alpha))


def draw_grid(frame: np.ndarray, lines: Sequence[GridLine]) -> None:
    if not lines:
        return
    h, w = frame.shape[:2]
    target = _paint_target(frame, GRID_PAINT)
    for line in lines:
        pos = int(round(line.position))
        if line.orientation == VERTICAL:
            cv2.line(target, (pos, 0), (pos, h), GRID_PAINT.bgr, GRID_PAINT.thickness)
        else:
            cv2.line(target, (0, pos), (w, pos), GRID_PAINT.bgr, GRID_PAINT.thickness)
    _finish(frame, target, GRID_PAINT)


def draw_marker(frame: np.ndarray, marker: MarkerCircle) -> None:
    center = _pt(marker.center)
    radius = int(round(marker.radius))
    for paint in (marker.fill, marker.stroke):
        target = _paint_target(frame, paint)
        cv2.circle(target, center, radius, paint.bgr, paint.thickness)
        _finish(frame, target, paint)


def draw_box(frame: np.ndarray, box: BoundingBox) -> None:
    x, y, w, h = box.rect
    p0 = _pt((x, y))
    p1 = _pt((x + w, y + h))
    for paint in (box.fill, box.stroke):
        target = _paint_target(frame, paint)
        cv2.rectangle(target, p0, p1, paint.bgr, paint.thickness)
        _finish(frame, target, paint)


def draw_tick(frame: np.ndarray, tick: CornerTick) -> None:
    cv2.line(frame, _pt(tick.start), _pt(tick.end), CORNER_PAINT.bgr, CORNER_PAINT.thickness)


def draw_primitives(frame: np.ndarray, primitives: Sequence[Primitive]) -> None:
    """Draw primitives onto a BGR frame buffer in place, in sequence order.

    Grid lines are batched into a single translucent pass.
    """
    draw_grid(frame, [p for p in primitives if isinstance(p, GridLine)])
    for prim in primitives:
        if isinstance(prim, MarkerCircle):
            draw_marker(frame, prim)
        elif isinstance(prim, BoundingBox):
            draw_box(frame, prim)
        elif isinstance(prim, CornerTick):
            draw_tick(frame, prim)


def blank_frame(width: int, height: int) -> np.ndarray:
    return np.zeros((max(1, int(height)), max(1, int(width)), 3), dtype=np.uint8)
