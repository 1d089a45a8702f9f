"""agriconnect.alerts — crop risk alert dispatch

One dispatch = three independent requests, always issued in this order:
  1) in-app banner
  2) system notification (id = severity ordinal, replaces the previous one)
  3) audio cue: speech, or a per-severity tone

Each request is caught on its own; a failing service never stops the others
and never fails the dispatch. Only an empty message is rejected, before any
service is touched.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Tuple

log = logging.getLogger(__name__)


class InvalidInput(ValueError):
    """Alert request rejected before any side effect."""


class ExternalServiceFailure(RuntimeError):
    """A platform service (banner, notification, speech, tone) failed."""

    def __init__(self, service: str, reason: str) -> None:
        super().__init__(f"{service}: {reason}")
        self.service = service
        self.reason = reason


class Severity(enum.IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def color(self) -> str:
        return _COLORS[self]

    @property
    def title(self) -> str:
        return _TITLES[self]

    @classmethod
    def parse(cls, text: str) -> "Severity":
        try:
            return cls[str(text).strip().upper()]
        except KeyError:
            raise InvalidInput(f"unknown severity: {text!r}") from None


_COLORS = {Severity.LOW: "green", Severity.MEDIUM: "orange", Severity.HIGH: "red"}
_TITLES = {
    Severity.LOW: "Low Risk Alert",
    Severity.MEDIUM: "Medium Risk Alert",
    Severity.HIGH: "High Risk Alert",
}

# tone used when speech playback fails
FALLBACK_TONE = Severity.MEDIUM


class AudioMode(str, enum.Enum):
    SPEECH = "speech"
    TONE = "tone"


@dataclass(frozen=True)
class AlertRequest:
    severity: Severity
    message: str
    audio_mode: AudioMode = AudioMode.SPEECH

    @classmethod
    def build(cls, severity: Severity, message: str, audio_mode: AudioMode = AudioMode.SPEECH) -> "AlertRequest":
        text = (message or "").strip()
        if not text:
            raise InvalidInput("alert message must not be empty")
        return cls(Severity(severity), text, AudioMode(audio_mode))


@dataclass(frozen=True)
class RequestOutcome:
    kind: str  # banner | notification | speech | tone
    ok: bool
    error: Optional[str] = None

    def summary(self) -> str:
        return "ok" if self.ok else f"failed: {self.error}"


@dataclass
class DispatchOutcome:
    request: AlertRequest
    requests: List[RequestOutcome] = field(default_factory=list)
    completed: bool = True

    @property
    def failures(self) -> List[RequestOutcome]:
        return [r for r in self.requests if not r.ok]

    @property
    def all_ok(self) -> bool:
        return not self.failures

    def by_kind(self, kind: str) -> List[RequestOutcome]:
        return [r for r in self.requests if r.kind == kind]


# --- collaborator interfaces (see services.py for the real ones) ---

class Banner(Protocol):
    def show(self, title: str, message: str, color: str, duration_s: float) -> None: ...


class Notifier(Protocol):
    def configure_channel(self, channel_id: str, name: str, description: str) -> None: ...

    def show(self, notification_id: int, title: str, message: str, channel: str, color: str) -> None: ...


class Speaker(Protocol):
    def configure(self, language: str, rate: float, volume: float, pitch: float) -> None: ...

    def speak(self, text: str) -> None: ...


class Tone(Protocol):
    def play(self, severity: Severity) -> None: ...


@dataclass(frozen=True)
class AlertSettings:
    channel_id: str = "crop_alerts"
    channel_name: str = "Crop Risk Alerts"
    channel_description: str = "Notifications for crop risk alerts"
    language: str = "en-US"
    rate: float = 0.5
    volume: float = 1.0
    pitch: float = 1.0
    banner_seconds: float = 5.0

    @classmethod
    def from_config(cls, cfg: Any) -> "AlertSettings":
        return cls(
            channel_id=cfg.notification_channel,
            channel_name=cfg.notification_channel_name,
            language=cfg.tts_language,
            rate=cfg.tts_rate,
            volume=cfg.tts_volume,
            pitch=cfg.tts_pitch,
            banner_seconds=cfg.banner_seconds,
        )


class AlertDispatcher:
    """Fans one alert out to banner, notification and audio services.

    Build once at startup and hand it to whoever triggers alerts.
    """

    def __init__(
        self,
        banner: Banner,
        notifier: Notifier,
        speaker: Speaker,
        tone: Tone,
        settings: AlertSettings = AlertSettings(),
    ) -> None:
        self.banner = banner
        self.notifier = notifier
        self.speaker = speaker
        self.tone = tone
        self.settings = settings
        self._initialized = False
        self.init_errors: List[str] = []

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Configure notification channel + speech engine once.

        Failures are recorded and logged; the affected service will simply
        fail again per request later.
        """
        if self._initialized:
            return
        self._initialized = True
        s = self.settings
        steps: Tuple[Tuple[str, Any], ...] = (
            ("notification", lambda: self.notifier.configure_channel(
                s.channel_id, s.channel_name, s.channel_description)),
            ("speech", lambda: self.speaker.configure(s.language, s.rate, s.volume, s.pitch)),
        )
        for name, step in steps:
            try:
                step()
            except Exception as e:
                msg = f"{name}: {type(e).__name__}: {e}"
                self.init_errors.append(msg)
                log.warning("alert setup degraded (%s)", msg)

    def dispatch(
        self,
        severity: Severity,
        message: str,
        audio_mode: AudioMode = AudioMode.SPEECH,
    ) -> DispatchOutcome:
        request = AlertRequest.build(severity, message, audio_mode)
        self.initialize()

        sev = request.severity
        outcome = DispatchOutcome(request)

        outcome.requests.append(self._attempt(
            "banner",
            lambda: self.banner.show(sev.title, request.message, sev.color, self.settings.banner_seconds),
        ))
        outcome.requests.append(self._attempt(
            "notification",
            lambda: self.notifier.show(
                int(sev), sev.title, request.message, self.settings.channel_id, sev.color),
        ))

        if request.audio_mode is AudioMode.SPEECH:
            spoken = self._attempt("speech", lambda: self.speaker.speak(request.message))
            outcome.requests.append(spoken)
            if not spoken.ok:
                outcome.requests.append(self._attempt("tone", lambda: self.tone.play(FALLBACK_TONE)))
        else:
            outcome.requests.append(self._attempt("tone", lambda: self.tone.play(sev)))

        if outcome.failures:
            log.info("alert %s dispatched with %d failed request(s)", sev.label, len(outcome.failures))
        else:
            log.info("alert %s dispatched", sev.label)
        return outcome

    @staticmethod
    def _attempt(kind: str, call) -> RequestOutcome:
        try:
            call()
        except ExternalServiceFailure as e:
            log.warning("%s request failed: %s", kind, e.reason)
            return RequestOutcome(kind, False, e.reason)
        except Exception as e:
            log.warning("%s request failed: %s: %s", kind, type(e).__name__, e)
            return RequestOutcome(kind, False, f"{type(e).__name__}: {e}")
        return RequestOutcome(kind, True)
