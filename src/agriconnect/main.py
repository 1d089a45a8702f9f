#!/usr/bin/env python3
"""agriconnect.main — CLI entry point

Commands:
  geometry  print the overlay primitives for a viewport (no camera)
  snapshot  draw the overlay onto a blank frame and write an image
  alert     dispatch one crop risk alert and print per-request results
  overlay   live Picamera2 preview with the overlay (keys on stdin, Ctrl+C or q to stop)

Services are built once here and passed down; nothing is a global.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

import cv2

from .alerts import AlertDispatcher, AlertSettings, AudioMode, InvalidInput, Severity
from .config import AppConfig, load_config, parse_view_size
from .geometry import Viewport, clamp_spacing, describe, generate, pixel_spacing
from .logging_utils import CsvLogger
from .overlay import blank_frame, draw_primitives
from .renderers import make_renderer
from .services import BannerBoard, NotificationCenter, SpeechEngine, TonePlayer
from .surface import OverlaySurface, ThreadScheduler


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="AgriConnect RnD — crop guidance overlay + smart alerts")
    p.add_argument("--config", default="configs/runtime.json",
                   help="Optional runtime config JSON (defaults used if missing).")
    p.add_argument("--debug", action="store_true", help="Verbose debug output.")
    sub = p.add_subparsers(dest="command", required=True)

    def _overlay_opts(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--spacing", type=float, default=None, help="grid spacing in cm (10..100)")
        sp.add_argument("--hidden", action="store_true", help="start with the overlay hidden")

    g = sub.add_parser("geometry", help="print overlay primitives")
    g.add_argument("--width", type=float, required=True)
    g.add_argument("--height", type=float, required=True)
    _overlay_opts(g)

    s = sub.add_parser("snapshot", help="render overlay onto a blank frame")
    s.add_argument("out", help="output image path (e.g. overlay.png)")
    s.add_argument("--width", type=int, default=None)
    s.add_argument("--height", type=int, default=None)
    _overlay_opts(s)

    a = sub.add_parser("alert", help="dispatch a crop risk alert")
    a.add_argument("--severity", choices=[v.label for v in Severity], default="medium")
    a.add_argument("--message", required=True)
    a.add_argument("--tone", action="store_true", help="play a tone instead of speech")
    a.add_argument("--csv", default="", help="optional CSV log path (e.g., logs/alerts.csv)")
    a.add_argument("--banner-png", default="", help="write the banner frame to this image")

    o = sub.add_parser("overlay", help="live camera preview with overlay")
    _overlay_opts(o)
    o.add_argument("--renderer", choices=["opencv", "native"], default=None)
    o.add_argument("--preview", choices=["qtgl", "drm"], default=None)

    return p.parse_args(argv)


def build_dispatcher(cfg: AppConfig, banner: BannerBoard) -> AlertDispatcher:
    return AlertDispatcher(
        banner=banner,
        notifier=NotificationCenter(enabled=cfg.notifications_enabled),
        speaker=SpeechEngine(),
        tone=TonePlayer(),
        settings=AlertSettings.from_config(cfg),
    )


def _spacing(args: argparse.Namespace, cfg: AppConfig) -> float:
    return clamp_spacing(cfg.spacing_cm if args.spacing is None else args.spacing)


def _visible(args: argparse.Namespace, cfg: AppConfig) -> bool:
    return cfg.overlay_visible and not args.hidden


def cmd_geometry(args: argparse.Namespace, cfg: AppConfig) -> int:
    spacing = _spacing(args, cfg)
    prims = generate(Viewport(args.width, args.height), spacing, _visible(args, cfg))
    print(f"spacing={spacing:.1f}cm ({pixel_spacing(spacing):.1f}px) primitives={len(prims)}")
    for prim in prims:
        print(describe(prim))
    return 0


def cmd_snapshot(args: argparse.Namespace, cfg: AppConfig) -> int:
    w, h = parse_view_size(cfg.view_size)
    w = args.width or w
    h = args.height or h
    frame = blank_frame(w, h)
    draw_primitives(frame, generate(Viewport(w, h), _spacing(args, cfg), _visible(args, cfg)))
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(out), frame):
        print(f"[snapshot] could not write {out}")
        return 1
    print(f"[snapshot] wrote {out} ({w}x{h})")
    return 0


def cmd_alert(args: argparse.Namespace, cfg: AppConfig) -> int:
    banner = BannerBoard()
    dispatcher = build_dispatcher(cfg, banner)
    csv_path = args.csv or (cfg.csv_path if cfg.enable_csv else "")
    with CsvLogger(Path(csv_path), enabled=bool(csv_path)) as logger:
        mode = AudioMode.TONE if args.tone else AudioMode.SPEECH
        try:
            outcome = dispatcher.dispatch(Severity.parse(args.severity), args.message, mode)
        except InvalidInput as e:
            print(f"[alert] rejected: {e}")
            return 2
        logger.log(outcome)

    sev = outcome.request.severity
    print(f"[alert] {sev.title} ({sev.color}): {outcome.request.message}")
    for r in outcome.requests:
        print(f"  {r.kind:<12} {r.summary()}")
    if outcome.failures:
        print("  Note: make sure notifications and audio are available on this device.")

    if args.banner_png:
        w, h = parse_view_size(cfg.view_size)
        frame = blank_frame(w, h)
        banner.draw(frame)
        cv2.imwrite(args.banner_png, frame)
    return 0


def cmd_overlay(args: argparse.Namespace, cfg: AppConfig) -> int:
    from .camera import FrameComposer, OverlayControls, run_preview

    scheduler = ThreadScheduler()
    surface = OverlaySurface(
        make_renderer(args.renderer or cfg.renderer),
        after=scheduler.after,
        after_cancel=scheduler.after_cancel,
        spacing_cm=_spacing(args, cfg),
        visible=_visible(args, cfg),
        redraw_hz=cfg.redraw_hz,
    )
    # alerts raised from the keyboard land on the same banner the preview draws
    banner = BannerBoard()
    dispatcher = build_dispatcher(cfg, banner)
    composer = FrameComposer(surface, banner=banner, status_hz=cfg.print_hz)
    controls = OverlayControls(surface, dispatcher)
    try:
        return run_preview(
            composer, parse_view_size(cfg.view_size), args.preview or cfg.preview, controls=controls
        )
    finally:
        surface.close()
        scheduler.close()


COMMANDS = {
    "geometry": cmd_geometry,
    "snapshot": cmd_snapshot,
    "alert": cmd_alert,
    "overlay": cmd_overlay,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    cfg: AppConfig = load_config(Path(args.config))
    if args.debug:
        print(f"[debug] config path: {args.config}")
        print(f"[debug] {cfg}")
    return COMMANDS[args.command](args, cfg)


if __name__ == "__main__":
    raise SystemExit(main())
