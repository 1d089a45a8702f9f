"""agriconnect.surface — overlay parameter state + redraw scheduling

The surface owns the (viewport, spacing_cm, visible) triple. A redraw happens
only when the triple differs from the one last drawn. A RedrawTicker polls
that check at a fixed rate while the overlay is visible and is always
cancelled on hide/close.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional, Tuple

from .geometry import Viewport, clamp_spacing, generate
from .logging_utils import hz_to_dt
from .renderers import RenderBackend

log = logging.getLogger(__name__)

AfterFn = Callable[[int, Callable[[], None]], object]
AfterCancelFn = Callable[[object], None]

Params = Tuple[Viewport, float, bool]


class ThreadScheduler:
    """after()/after_cancel() on threading.Timer (daemon timers)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._timers: Dict[int, threading.Timer] = {}

    def after(self, ms: int, callback: Callable[[], None]) -> object:
        timer = threading.Timer(max(0, ms) / 1000.0, self._fire, args=(callback,))
        timer.daemon = True
        with self._lock:
            self._timers[id(timer)] = timer
        timer.start()
        return timer

    def _fire(self, callback: Callable[[], None]) -> None:
        timer = threading.current_thread()
        with self._lock:
            self._timers.pop(id(timer), None)
        callback()

    def after_cancel(self, handle: object) -> None:
        with self._lock:
            self._timers.pop(id(handle), None)
        if isinstance(handle, threading.Timer):
            handle.cancel()

    def pending(self) -> int:
        with self._lock:
            return len(self._timers)

    def close(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()


class RedrawTicker:
    """Fixed-rate callback that re-arms itself until stopped."""

    def __init__(self, interval_ms: int, *, after: AfterFn, after_cancel: AfterCancelFn) -> None:
        self.interval_ms = max(1, int(interval_ms))
        self._after = after
        self._after_cancel = after_cancel
        self._handle: Optional[object] = None
        self._callback: Optional[Callable[[], None]] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self, callback: Callable[[], None]) -> None:
        self.stop()
        self._callback = callback
        self._running = True
        self._handle = self._after(self.interval_ms, self._run)

    def stop(self) -> None:
        self._running = False
        handle = self._handle
        self._handle = None
        if handle is not None:
            self._after_cancel(handle)

    def _run(self) -> None:
        self._handle = None
        if not self._running:
            return
        try:
            if self._callback is not None:
                self._callback()
        except Exception as e:
            log.warning("redraw tick failed: %s: %s", type(e).__name__, e)
        finally:
            if self._running:
                self._handle = self._after(self.interval_ms, self._run)


class OverlaySurface:
    """Host-side overlay state bound to one rendering backend.

    Usage:
        surface = OverlaySurface(OpenCVRenderer(), after=sched.after,
                                 after_cancel=sched.after_cancel)
        surface.set_viewport(Viewport(1280, 720))
        surface.start()
        ...
        surface.close()
    """

    def __init__(
        self,
        renderer: RenderBackend,
        *,
        after: AfterFn,
        after_cancel: AfterCancelFn,
        spacing_cm: float = 30.0,
        visible: bool = True,
        viewport: Viewport = Viewport(0.0, 0.0),
        redraw_hz: float = 60.0,
    ) -> None:
        self.renderer = renderer
        self._viewport = viewport
        self._spacing_cm = clamp_spacing(spacing_cm)
        self._visible = bool(visible)
        self._last: Optional[Params] = None
        self._started = False
        self._closed = False
        # tick() is driven by both the ticker thread and the camera callback
        self._draw_lock = threading.Lock()
        self.redraws = 0
        self.ticker = RedrawTicker(
            int(round(hz_to_dt(redraw_hz) * 1000)), after=after, after_cancel=after_cancel
        )

    @property
    def params(self) -> Params:
        return (self._viewport, self._spacing_cm, self._visible)

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def spacing_cm(self) -> float:
        return self._spacing_cm

    @property
    def visible(self) -> bool:
        return self._visible

    def set_viewport(self, viewport: Viewport) -> None:
        self._viewport = viewport

    def set_spacing(self, spacing_cm: float) -> float:
        self._spacing_cm = clamp_spacing(spacing_cm)
        return self._spacing_cm

    def set_visible(self, visible: bool) -> None:
        visible = bool(visible)
        if visible == self._visible:
            return
        self._visible = visible
        if not self._started or self._closed:
            return
        if visible:
            self.ticker.start(self.tick)
        else:
            # clear whatever was drawn, then stop polling
            self.tick()
            self.ticker.stop()

    def toggle(self) -> bool:
        self.set_visible(not self._visible)
        return self._visible

    def should_repaint(self) -> bool:
        return self._last != self.params

    def tick(self) -> bool:
        with self._draw_lock:
            if self._closed or not self.should_repaint():
                return False
            params = self.params
            viewport, spacing_cm, visible = params
            self.renderer.render(generate(viewport, spacing_cm, visible), viewport)
            self._last = params
            self.redraws += 1
            log.debug("overlay redraw #%d: %s spacing=%.1fcm visible=%s",
                      self.redraws, viewport, spacing_cm, visible)
            return True

    def start(self) -> None:
        if self._closed or self._started:
            return
        self._started = True
        self.tick()
        if self._visible:
            self.ticker.start(self.tick)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.ticker.stop()
        self.renderer.close()
