"""agriconnect.camera — Picamera2 preview with the crop guidance overlay

Architecture: capture -> (surface tick) -> compose overlay + banner -> preview
              stdin lines -> queue -> main loop -> surface / alert dispatcher

- Picamera2 is imported lazily so everything else runs without camera hardware.
- The pre_callback never raises: a bad frame is reported and skipped so the
  preview thread keeps running.
"""

from __future__ import annotations

import queue
import signal
import sys
import threading
import time
from typing import Any, Callable, Iterable, Optional, Tuple

from .alerts import AlertDispatcher, InvalidInput, Severity
from .geometry import Viewport, pixel_spacing
from .logging_utils import rate_limited_print
from .renderers import OpenCVRenderer
from .services import BannerBoard
from .surface import OverlaySurface


def frame_viewport(array: Any) -> Viewport:
    h, w = array.shape[:2]
    return Viewport(float(w), float(h))


class FrameComposer:
    """Per-frame work done inside the camera pre_callback.

    Kept separate from Picamera2 so it can be driven with plain numpy frames.
    """

    def __init__(
        self,
        surface: OverlaySurface,
        banner: Optional[BannerBoard] = None,
        status_hz: float = 2.0,
        printer: Callable[[str, float, dict], Any] = rate_limited_print,
    ) -> None:
        self.surface = surface
        self.banner = banner
        self.status_hz = status_hz
        self._print = printer
        self._print_state: dict = {}
        self.frames = 0
        self.errors = 0

    def compose(self, array: Any) -> None:
        vp = frame_viewport(array)
        if vp != self.surface.viewport:
            self.surface.set_viewport(vp)
            self.surface.tick()
        renderer = self.surface.renderer
        if isinstance(renderer, OpenCVRenderer):
            renderer.compose(array)
        if self.banner is not None:
            self.banner.draw(array)
        self.frames += 1
        s = self.surface
        self._print(
            f"[overlay] frames={self.frames} view={int(vp.width)}x{int(vp.height)} "
            f"spacing={s.spacing_cm:.1f}cm visible={s.visible} redraws={s.redraws}",
            self.status_hz,
            self._print_state,
        )

    def safe_compose(self, array: Any) -> None:
        try:
            self.compose(array)
        except Exception as e:
            # Keep running even if a frame causes trouble
            self.errors += 1
            print(f"[compose] {type(e).__name__}: {e}")


KEYS_HELP = "keys: + / - spacing, v show/hide, a <low|medium|high> <message> alert, q quit"

SPACING_STEP_CM = 1.0


class OverlayControls:
    """Line commands typed into the terminal while the preview runs.

    One command per line. Unknown input is reported and ignored.
    """

    def __init__(
        self,
        surface: OverlaySurface,
        dispatcher: Optional[AlertDispatcher] = None,
        printer: Callable[[str], Any] = print,
    ) -> None:
        self.surface = surface
        self.dispatcher = dispatcher
        self._print = printer

    def readout(self) -> str:
        s = self.surface
        state = "shown" if s.visible else "hidden"
        return f"[overlay] spacing={s.spacing_cm:.1f}cm ({pixel_spacing(s.spacing_cm):.1f}px) {state}"

    def handle(self, line: str) -> bool:
        """Apply one command. Returns False when the user asked to quit."""
        cmd = line.strip()
        if not cmd:
            return True
        key, _, rest = cmd.partition(" ")
        if key == "q":
            return False
        if key in ("+", "-"):
            step = SPACING_STEP_CM if key == "+" else -SPACING_STEP_CM
            self.surface.set_spacing(self.surface.spacing_cm + step)
            self._print(self.readout())
        elif key == "v":
            self.surface.toggle()
            self._print(self.readout())
        elif key == "a":
            self._alert(rest)
        else:
            self._print(f"[keys] unknown command {cmd!r}; {KEYS_HELP}")
        return True

    def _alert(self, rest: str) -> None:
        if self.dispatcher is None:
            self._print("[alert] no dispatcher attached")
            return
        severity, _, message = rest.strip().partition(" ")
        try:
            outcome = self.dispatcher.dispatch(Severity.parse(severity), message)
        except InvalidInput as e:
            self._print(f"[alert] rejected: {e}")
            return
        for r in outcome.requests:
            self._print(f"[alert] {r.kind:<12} {r.summary()}")


def pump_lines(source: Iterable[str], lines: "queue.SimpleQueue[Optional[str]]") -> threading.Thread:
    """Feed lines from source into the queue on a daemon thread; None marks EOF."""

    def _run() -> None:
        try:
            for line in source:
                lines.put(line)
        except (OSError, ValueError) as e:
            print(f"[keys] input closed: {type(e).__name__}: {e}")
        finally:
            lines.put(None)

    t = threading.Thread(target=_run, name="overlay-keys", daemon=True)
    t.start()
    return t


def drain_commands(controls: OverlayControls, lines: "queue.SimpleQueue[Optional[str]]",
                   timeout: float = 0.05) -> bool:
    """Wait briefly for one command and apply it. False once quit is requested."""
    try:
        line = lines.get(timeout=timeout)
    except queue.Empty:
        return True
    if line is None:
        # stdin closed; keep previewing until Ctrl+C
        return True
    return controls.handle(line)


def run_preview(
    composer: FrameComposer,
    view_size: Tuple[int, int],
    preview: str = "qtgl",
    controls: Optional[OverlayControls] = None,
    input_source: Optional[Iterable[str]] = None,
) -> int:
    """Open the camera, attach the composer and block until Ctrl+C or 'q'."""
    from picamera2 import MappedArray, Picamera2, Preview

    picam2 = Picamera2()
    main_cfg = {"format": "RGB888", "size": tuple(view_size)}
    config = picam2.create_preview_configuration(main_cfg, buffer_count=4)
    picam2.configure(config)

    stop = False

    def _sigint(_sig, _frame):
        nonlocal stop
        stop = True

    signal.signal(signal.SIGINT, _sigint)

    def pre_callback(request, stream="main"):
        with MappedArray(request, stream) as m:
            composer.safe_compose(m.array)

    picam2.pre_callback = pre_callback

    if preview == "drm":
        picam2.start_preview(Preview.DRM)
    else:
        picam2.start_preview(Preview.QTGL)

    key_lines: "queue.SimpleQueue[Optional[str]]" = queue.SimpleQueue()
    if controls is not None:
        pump_lines(sys.stdin if input_source is None else input_source, key_lines)
        print(KEYS_HELP)
        print(controls.readout())

    surface = composer.surface
    surface.start()
    picam2.start()
    try:
        while not stop:
            if controls is None:
                time.sleep(0.05)
            elif not drain_commands(controls, key_lines):
                stop = True
    finally:
        surface.close()
        picam2.stop()
        picam2.close()

    return 0
