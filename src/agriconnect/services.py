"""agriconnect.services — platform services used by the alert dispatcher

- BannerBoard: in-app banner drawn onto preview frames (OpenCV)
- NotificationCenter: desktop notification via notify-send
- SpeechEngine: text-to-speech via pyttsx3
- TonePlayer: per-severity tone (placeholder, logs only)

Every service raises ExternalServiceFailure when it cannot do its job; the
dispatcher decides what happens next.
"""

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

import cv2
import numpy as np
import pyttsx3

from .alerts import ExternalServiceFailure, Severity

log = logging.getLogger(__name__)

# severity colour names -> BGR
COLOR_BGR: Dict[str, Tuple[int, int, int]] = {
    "green": (60, 160, 60),
    "orange": (0, 140, 255),
    "red": (40, 40, 220),
}
WHITE = (255, 255, 255)


# ----------------------------
# In-app banner
# ----------------------------

@dataclass(frozen=True)
class ActiveBanner:
    title: str
    message: str
    color: str
    expires_at: float


class BannerBoard:
    """Transient, dismissible banner composited onto camera/snapshot frames."""

    margin = 16
    height = 64
    bar_width = 4

    def __init__(self, time_source: Callable[[], float] = time.monotonic) -> None:
        self._time = time_source
        self._banner: Optional[ActiveBanner] = None

    def show(self, title: str, message: str, color: str, duration_s: float = 5.0) -> None:
        if color not in COLOR_BGR:
            raise ExternalServiceFailure("banner", f"unknown colour {color!r}")
        self._banner = ActiveBanner(title, message, color, self._time() + max(0.0, duration_s))
        log.debug("banner shown: %s", title)

    def active(self) -> Optional[ActiveBanner]:
        b = self._banner
        if b is not None and self._time() >= b.expires_at:
            self._banner = None
            return None
        return b

    def dismiss(self) -> None:
        self._banner = None

    def draw(self, frame: np.ndarray) -> bool:
        """Draw the active banner (if any) at the top of the frame."""
        b = self.active()
        if b is None:
            return False
        h, w = frame.shape[:2]
        m = self.margin
        x0, y0 = m, m
        x1, y1 = max(x0 + 1, w - m), min(h - 1, m + self.height)
        bgr = COLOR_BGR[b.color]

        cv2.rectangle(frame, (x0, y0), (x1, y1), bgr, -1)
        cv2.rectangle(frame, (x0 + 8, y0 + 12), (x0 + 8 + self.bar_width, y1 - 12), WHITE, -1)
        tx = x0 + 8 + self.bar_width + 12
        cv2.putText(frame, b.title, (tx, y0 + 26), cv2.FONT_HERSHEY_SIMPLEX, 0.6, WHITE, 2, cv2.LINE_AA)
        cv2.putText(frame, b.message, (tx, y0 + 50), cv2.FONT_HERSHEY_SIMPLEX, 0.5, WHITE, 1, cv2.LINE_AA)
        return True


# ----------------------------
# System notification
# ----------------------------

@dataclass(frozen=True)
class Notification:
    notification_id: int
    title: str
    message: str
    channel: str
    color: str
    desktop_id: Optional[int] = None  # id printed by notify-send --print-id


_URGENCY = {"green": "low", "orange": "normal", "red": "critical"}


def _parse_desktop_id(stdout: Any) -> Optional[int]:
    first = (stdout or "").strip().split("\n", 1)[0]
    try:
        return int(first)
    except ValueError:
        return None


class NotificationCenter:
    """notify-send wrapper with one outstanding notification per id.

    Re-showing an id replaces the earlier one, both in `pending` and on the
    desktop: the id notify-send prints is kept and passed back as --replace-id
    (the x-canonical-private-synchronous hint covers older daemons).
    """

    def __init__(
        self,
        enabled: bool = True,
        app_name: str = "AgriConnect",
        runner: Callable[..., Any] = subprocess.run,
        timeout_s: float = 5.0,
    ) -> None:
        self.enabled = bool(enabled)
        self.app_name = app_name
        self._run = runner
        self.timeout_s = timeout_s
        self.channel: Optional[Tuple[str, str, str]] = None
        self.pending: Dict[int, Notification] = {}

    def configure_channel(self, channel_id: str, name: str, description: str) -> None:
        self.channel = (channel_id, name, description)

    def command(self, n: Notification, replace_id: Optional[int] = None) -> List[str]:
        argv = [
            "notify-send",
            "--print-id",
            "--app-name", self.app_name,
            "--urgency", _URGENCY.get(n.color, "normal"),
            "--category", n.channel,
            "--hint", f"string:x-canonical-private-synchronous:{n.channel}-{n.notification_id}",
        ]
        if replace_id is not None:
            argv += ["--replace-id", str(replace_id)]
        return argv + [n.title, n.message]

    def show(self, notification_id: int, title: str, message: str, channel: str, color: str) -> None:
        if not self.enabled:
            raise ExternalServiceFailure("notification", "permission not granted")
        n = Notification(int(notification_id), title, message, channel, color)
        previous = self.pending.get(n.notification_id)
        replace_id = previous.desktop_id if previous is not None else None
        try:
            res = self._run(self.command(n, replace_id), capture_output=True, text=True, timeout=self.timeout_s)
        except FileNotFoundError:
            raise ExternalServiceFailure("notification", "notify-send not found") from None
        except subprocess.TimeoutExpired:
            raise ExternalServiceFailure("notification", "notify-send timed out") from None
        if getattr(res, "returncode", 0) != 0:
            err = (getattr(res, "stderr", "") or "").strip() or f"exit {res.returncode}"
            raise ExternalServiceFailure("notification", err)
        n = replace(n, desktop_id=_parse_desktop_id(getattr(res, "stdout", "")))
        self.pending[n.notification_id] = n

    def cancel(self, notification_id: int) -> None:
        self.pending.pop(int(notification_id), None)


# ----------------------------
# Speech
# ----------------------------

# pyttsx3 rate is words/minute; normalized 0.5 maps to this
NORMAL_WPM = 175


def rate_to_wpm(rate: float) -> int:
    return max(40, int(round(NORMAL_WPM * float(rate) / 0.5)))


def _voice_matches(voice: Any, tag: str) -> bool:
    fields: List[str] = [str(getattr(voice, "id", "")), str(getattr(voice, "name", ""))]
    for lang in getattr(voice, "languages", None) or []:
        if isinstance(lang, bytes):
            lang = lang.decode("utf-8", errors="ignore")
        fields.append(str(lang))
    return any(tag in f.lower().replace("_", "-") for f in fields)


class SpeechEngine:
    """pyttsx3 text-to-speech. configure() must succeed before speak()."""

    def __init__(self, engine_factory: Callable[[], Any] = pyttsx3.init) -> None:
        self._factory = engine_factory
        self._engine: Any = None
        self.voice_id: Optional[str] = None
        self.last_error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self._engine is not None

    def configure(self, language: str, rate: float, volume: float, pitch: float) -> None:
        try:
            engine = self._factory()
            engine.setProperty("rate", rate_to_wpm(rate))
            engine.setProperty("volume", max(0.0, min(1.0, float(volume))))
            tag = language.lower().replace("_", "-")
            for voice in engine.getProperty("voices") or []:
                if _voice_matches(voice, tag):
                    engine.setProperty("voice", voice.id)
                    self.voice_id = voice.id
                    break
        except Exception as e:
            self._engine = None
            self.last_error = f"{type(e).__name__}: {e}"
            raise ExternalServiceFailure("speech", f"engine init failed ({self.last_error})") from e
        if pitch != 1.0:
            # most pyttsx3 drivers have no pitch property
            log.debug("speech pitch %.2f ignored by pyttsx3 driver", pitch)
        self._engine = engine
        log.debug("speech engine ready (voice=%s, wpm=%d)", self.voice_id, rate_to_wpm(rate))

    def speak(self, text: str) -> None:
        if self._engine is None:
            raise ExternalServiceFailure("speech", self.last_error or "engine unavailable")
        try:
            self._engine.say(text)
            self._engine.runAndWait()
        except Exception as e:
            raise ExternalServiceFailure("speech", f"{type(e).__name__}: {e}") from e


# ----------------------------
# Tone
# ----------------------------

# (frequency Hz, beep ms, repeats) per severity
TONES: Dict[Severity, Tuple[int, int, int]] = {
    Severity.LOW: (440, 300, 1),
    Severity.MEDIUM: (660, 300, 2),
    Severity.HIGH: (880, 200, 3),
}


class TonePlayer:
    """Placeholder: reports which tone would play. No audio output yet."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = bool(enabled)
        self.played: List[Severity] = []

    def play(self, severity: Severity) -> None:
        if not self.enabled:
            raise ExternalServiceFailure("tone", "audio output disabled")
        sev = Severity(severity)
        hz, ms, repeats = TONES[sev]
        self.played.append(sev)
        log.info("Playing tone for %s risk (%d Hz, %d ms x%d)", sev.label, hz, ms, repeats)
