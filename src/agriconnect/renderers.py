"""agriconnect.renderers — interchangeable overlay backends

Both backends take the primitives from geometry.generate() unchanged:
- OpenCVRenderer keeps the latest scene and composes it onto camera frames.
- ChannelRenderer forwards the scene through a method-channel style call
  (native GL surface). Channel failures are logged and never raised.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .geometry import (
    BoundingBox,
    CornerTick,
    GridLine,
    MarkerCircle,
    Primitive,
    Viewport,
)
from .overlay import draw_primitives

log = logging.getLogger(__name__)

InvokeFn = Callable[[str, Dict[str, Any]], Any]


class RenderBackend:
    """Common drawing interface consumed by OverlaySurface."""

    name = "base"

    def render(self, primitives: Sequence[Primitive], viewport: Viewport) -> None:
        raise NotImplementedError

    def close(self) -> None:
        return None


class OpenCVRenderer(RenderBackend):
    name = "opencv"

    def __init__(self) -> None:
        self._scene: Tuple[Primitive, ...] = ()
        self._viewport: Optional[Viewport] = None
        self.render_count = 0

    @property
    def scene(self) -> Tuple[Primitive, ...]:
        return self._scene

    @property
    def viewport(self) -> Optional[Viewport]:
        return self._viewport

    def render(self, primitives: Sequence[Primitive], viewport: Viewport) -> None:
        self._scene = tuple(primitives)
        self._viewport = viewport
        self.render_count += 1

    def compose(self, frame: np.ndarray) -> np.ndarray:
        if self._scene:
            draw_primitives(frame, self._scene)
        return frame

    def close(self) -> None:
        self._scene = ()
        self._viewport = None


def serialize(prim: Primitive) -> Dict[str, Any]:
    if isinstance(prim, GridLine):
        return {"type": "grid", "orientation": prim.orientation, "position": prim.position}
    if isinstance(prim, MarkerCircle):
        return {
            "type": "marker",
            "center": list(prim.center),
            "radius": prim.radius,
            "stroke": list(prim.stroke.bgr),
            "fill": list(prim.fill.bgr),
            "fill_alpha": prim.fill.alpha,
        }
    if isinstance(prim, BoundingBox):
        return {
            "type": "box",
            "rect": list(prim.rect),
            "stroke": list(prim.stroke.bgr),
            "fill": list(prim.fill.bgr),
            "fill_alpha": prim.fill.alpha,
        }
    if isinstance(prim, CornerTick):
        return {"type": "tick", "from": list(prim.start), "to": list(prim.end)}
    raise TypeError(f"unknown primitive: {type(prim).__name__}")


def _unbound_channel(method: str, payload: Dict[str, Any]) -> Any:
    raise NotImplementedError(f"native renderer channel not available ({method})")


class ChannelRenderer(RenderBackend):
    """Native backend shaped like a platform method channel.

    Methods sent: initialize {width, height}, render {width, height,
    primitives}, dispose {}. The native side is not part of this repo; with no
    channel bound every call fails and is logged.
    """

    name = "native"

    def __init__(self, invoke: Optional[InvokeFn] = None) -> None:
        self._invoke = invoke or _unbound_channel
        self._initialized = False
        self._viewport: Optional[Viewport] = None
        self.failures: List[str] = []

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _call(self, method: str, payload: Dict[str, Any]) -> bool:
        try:
            self._invoke(method, payload)
            return True
        except Exception as e:
            msg = f"{method}: {type(e).__name__}: {e}"
            self.failures.append(msg)
            log.warning("native renderer %s", msg)
            return False

    def initialize(self, viewport: Viewport) -> bool:
        self._viewport = viewport
        self._initialized = self._call(
            "initialize", {"width": viewport.width, "height": viewport.height}
        )
        return self._initialized

    def render(self, primitives: Sequence[Primitive], viewport: Viewport) -> None:
        if not self._initialized or viewport != self._viewport:
            if not self.initialize(viewport):
                return
        self._call(
            "render",
            {
                "width": viewport.width,
                "height": viewport.height,
                "primitives": [serialize(p) for p in primitives],
            },
        )

    def close(self) -> None:
        if self._initialized:
            self._call("dispose", {})
            self._initialized = False


def make_renderer(name: str, invoke: Optional[InvokeFn] = None) -> RenderBackend:
    key = (name or "opencv").strip().lower()
    if key == "opencv":
        return OpenCVRenderer()
    if key == "native":
        return ChannelRenderer(invoke)
    raise ValueError(f"unknown renderer: {name!r} (expected 'opencv' or 'native')")
