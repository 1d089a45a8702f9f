import csv
from pathlib import Path

from agriconnect.alerts import AlertRequest, DispatchOutcome, RequestOutcome, Severity
from agriconnect.logging_utils import (
    CSV_HEADER,
    CsvLogger,
    RateLimiter,
    hz_to_dt,
    outcome_row,
    rate_limited_print,
)


def _outcome() -> DispatchOutcome:
    return DispatchOutcome(
        AlertRequest.build(Severity.HIGH, "Pest detected"),
        [
            RequestOutcome("banner", True),
            RequestOutcome("notification", False, "permission not granted"),
            RequestOutcome("speech", False, "engine unavailable"),
            RequestOutcome("tone", True),
        ],
    )


def test_csv_logger_appends_rows(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "alerts.csv"
    logger = CsvLogger(path, enabled=True)
    logger.open()
    logger.log(_outcome())
    logger.close()

    logger = CsvLogger(path, enabled=True)
    logger.open()
    logger.log(_outcome())
    logger.close()

    rows = list(csv.reader(path.read_text(encoding="utf-8").splitlines()))
    assert rows[0] == CSV_HEADER
    assert len(rows) == 3
    assert rows[1][1:] == [
        "high",
        "Pest detected",
        "ok",
        "failed: permission not granted",
        "failed: engine unavailable > ok",
    ]


def test_disabled_csv_logger_writes_nothing(tmp_path: Path) -> None:
    path = tmp_path / "alerts.csv"
    logger = CsvLogger(path)
    logger.open()
    logger.log(_outcome())
    logger.close()
    assert not path.exists()


def test_hz_to_dt() -> None:
    assert hz_to_dt(4.0) == 0.25
    assert hz_to_dt(0.0) == 10.0
    assert hz_to_dt("junk") == 10.0
    assert hz_to_dt(float("nan")) == 10.0


def test_rate_limited_print(capsys) -> None:
    state: dict = {}
    assert rate_limited_print("first", 0.1, state) is True
    assert rate_limited_print("second", 0.1, state) is False
    assert capsys.readouterr().out == "first\n"


class TimeStub:
    def __init__(self, start: float = 100.0) -> None:
        self.value = start

    def now(self) -> float:
        return self.value


def test_rate_limiter_spaces_events_by_interval() -> None:
    clock = TimeStub()
    limiter = RateLimiter(2.0, clock=clock.now)
    assert limiter.interval == 0.5

    assert limiter.ready() is True
    clock.value += 0.49
    assert limiter.ready() is False
    clock.value += 0.01
    assert limiter.ready() is True
    assert limiter.ready() is False


def test_rate_limited_print_restarts_when_rate_changes(capsys) -> None:
    state: dict = {}
    assert rate_limited_print("a", 0.1, state) is True
    assert rate_limited_print("b", 0.1, state) is False
    assert rate_limited_print("c", 5.0, state) is True
    assert capsys.readouterr().out == "a\nc\n"


def test_outcome_row_without_audio() -> None:
    outcome = DispatchOutcome(
        AlertRequest.build(Severity.LOW, "  Dry soil  "),
        [RequestOutcome("banner", True), RequestOutcome("notification", True)],
    )
    row = outcome_row(outcome, ts=12.5)
    assert list(row) == CSV_HEADER
    assert row == {
        "ts_unix": "12.500000",
        "severity": "low",
        "message": "Dry soil",
        "banner": "ok",
        "notification": "ok",
        "audio": "-",
    }


def test_csv_logger_as_context_manager(tmp_path: Path) -> None:
    path = tmp_path / "alerts.csv"
    with CsvLogger(path, enabled=True) as logger:
        logger.log(_outcome())
        logger.log(_outcome())
    assert logger.rows == 2
    logger.log(_outcome())
    assert logger.rows == 2
    assert len(path.read_text(encoding="utf-8").splitlines()) == 3
