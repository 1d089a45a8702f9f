"""agriconnect.config — central configuration

Rules:
- Avoid absolute paths in Python code where possible.
- Keep overlay defaults, speech constants and logging flags here.

This loader is deliberately forgiving:
- missing config file -> defaults
- invalid JSON -> defaults
- unknown keys are ignored, bad values fall back per key
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class AppConfig:
    """
    Runtime configuration.

    Notes:
    - `spacing_cm` / `overlay_visible` are the overlay start state; the
      spacing is clamped to 10..100 cm by the surface.
    - `view_size` is the *display stream* size requested from the camera.
    - `tts_rate` is normalized (0.5 = normal speed), mapped to words/min by
      the speech engine.
    """
    spacing_cm: float = 30.0
    overlay_visible: bool = True
    renderer: str = "opencv"
    redraw_hz: float = 60.0
    view_size: str = "1280x720"
    preview: str = "qtgl"
    print_hz: float = 2.0

    tts_language: str = "en-US"
    tts_rate: float = 0.5
    tts_volume: float = 1.0
    tts_pitch: float = 1.0

    notification_channel: str = "crop_alerts"
    notification_channel_name: str = "Crop Risk Alerts"
    notifications_enabled: bool = True
    banner_seconds: float = 5.0

    enable_csv: bool = False
    csv_path: str = "logs/alerts.csv"


def _coerce_float(v: Any, default: float) -> float:
    try:
        return float(v)
    except Exception:
        return default


def _coerce_bool(v: Any, default: bool) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    if isinstance(v, str):
        s = v.strip().lower()
        if s in ("1", "true", "yes", "on"):
            return True
        if s in ("0", "false", "no", "off"):
            return False
    return default


def parse_view_size(text: str, default: Tuple[int, int] = (1280, 720)) -> Tuple[int, int]:
    """'1280x720' -> (1280, 720). Anything unparsable -> default."""
    try:
        w_s, h_s = str(text).lower().split("x", 1)
        w, h = int(w_s), int(h_s)
    except Exception:
        return default
    if w <= 0 or h <= 0:
        return default
    return (w, h)


def load_config(path: Path) -> AppConfig:
    cfg = AppConfig()
    if not path.exists():
        return cfg

    try:
        data: Dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return cfg
    if not isinstance(data, dict):
        return cfg

    def _f(key: str) -> float:
        return _coerce_float(data.get(key, getattr(cfg, key)), getattr(cfg, key))

    def _b(key: str) -> bool:
        return _coerce_bool(data.get(key, getattr(cfg, key)), getattr(cfg, key))

    def _s(key: str) -> str:
        return str(data.get(key, getattr(cfg, key)))

    return AppConfig(
        spacing_cm=_f("spacing_cm"),
        overlay_visible=_b("overlay_visible"),
        renderer=_s("renderer"),
        redraw_hz=_f("redraw_hz"),
        view_size=_s("view_size"),
        preview=_s("preview"),
        print_hz=_f("print_hz"),
        tts_language=_s("tts_language"),
        tts_rate=_f("tts_rate"),
        tts_volume=_f("tts_volume"),
        tts_pitch=_f("tts_pitch"),
        notification_channel=_s("notification_channel"),
        notification_channel_name=_s("notification_channel_name"),
        notifications_enabled=_b("notifications_enabled"),
        banner_seconds=_f("banner_seconds"),
        enable_csv=_b("enable_csv"),
        csv_path=_s("csv_path"),
    )
