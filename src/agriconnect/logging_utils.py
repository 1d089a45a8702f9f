"""agriconnect.logging_utils — status lines + alert CSV log

- Status lines for a headless Pi over SSH: throttled so the camera callback
  can call them every frame.
- Optional CSV record of every dispatch, one row per alert, one column per
  request kind.
- hz_to_dt() is shared with the redraw ticker.
"""

from __future__ import annotations

import csv
import math
import time
from pathlib import Path
from typing import IO, Callable, Dict, Optional

# slowest rate accepted anywhere a frequency is configured
MIN_HZ = 0.1


def hz_to_dt(hz: float, min_hz: float = MIN_HZ) -> float:
    """Seconds between events at `hz`. Junk, NaN and rates below min_hz use min_hz."""
    try:
        rate = float(hz)
    except (TypeError, ValueError):
        rate = min_hz
    if math.isnan(rate) or rate < min_hz:
        rate = min_hz
    return 1.0 / rate


class RateLimiter:
    """Lets one event through per 1/hz seconds of `clock` time."""

    def __init__(self, hz: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval = hz_to_dt(hz)
        self._clock = clock
        self._next_at: Optional[float] = None

    def ready(self) -> bool:
        t = self._clock()
        if self._next_at is not None and t < self._next_at:
            return False
        self._next_at = t + self.interval
        return True


def rate_limited_print(msg: str, hz: float, state: dict) -> bool:
    """print(msg) unless the limiter kept in `state` says it is too soon.

    `state` belongs to the caller (one dict per status line); the limiter is
    rebuilt when the rate changes. Returns True if the line went out.
    """
    limiter = state.get("limiter")
    if limiter is None or state.get("hz") != hz:
        limiter = state["limiter"] = RateLimiter(hz)
        state["hz"] = hz
    if not limiter.ready():
        return False
    print(msg, flush=True)
    return True


CSV_HEADER = ["ts_unix", "severity", "message", "banner", "notification", "audio"]


def outcome_row(outcome, ts: Optional[float] = None) -> Dict[str, str]:
    """CSV row for an alerts.DispatchOutcome.

    Request cells read "ok" / "failed: <reason>"; the audio cell chains the
    speech attempt and any tone fallback with " > ", "-" when nothing ran.
    """
    def cell(*kinds: str) -> str:
        results = [r for kind in kinds for r in outcome.by_kind(kind)]
        return " > ".join(r.summary() for r in results) or "-"

    return {
        "ts_unix": f"{time.time() if ts is None else ts:.6f}",
        "severity": outcome.request.severity.label,
        "message": outcome.request.message,
        "banner": cell("banner"),
        "notification": cell("notification"),
        "audio": cell("speech", "tone"),
    }


class CsvLogger:
    """Append-only alert log. Disabled loggers accept rows and write nothing.

        with CsvLogger(Path("logs/alerts.csv"), enabled=True) as log:
            log.log(outcome)
    """

    def __init__(self, path: Path, enabled: bool = False) -> None:
        self.path = Path(path)
        self.enabled = enabled
        self._fh: Optional[IO[str]] = None
        self._writer: Optional[csv.DictWriter] = None
        self.rows = 0

    def open(self) -> "CsvLogger":
        if self.enabled and self._fh is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self.path.open("a", newline="", encoding="utf-8")
            self._writer = csv.DictWriter(self._fh, fieldnames=CSV_HEADER)
            if self._fh.tell() == 0:
                self._writer.writeheader()
                self._fh.flush()
        return self

    def log(self, outcome) -> None:
        if self._writer is None or self._fh is None:
            return
        self._writer.writerow(outcome_row(outcome))
        self._fh.flush()
        self.rows += 1

    def close(self) -> None:
        fh, self._fh, self._writer = self._fh, None, None
        if fh is not None:
            fh.close()

    def __enter__(self) -> "CsvLogger":
        return self.open()

    def __exit__(self, *_exc) -> None:
        self.close()
