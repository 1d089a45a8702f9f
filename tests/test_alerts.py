import pytest

from agriconnect.alerts import (
    AlertDispatcher,
    AlertRequest,
    AlertSettings,
    AudioMode,
    ExternalServiceFailure,
    InvalidInput,
    Severity,
)


class CallLog:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]


class FakeBanner:
    def __init__(self, log: CallLog, fail: bool = False) -> None:
        self.log = log
        self.fail = fail

    def show(self, title, message, color, duration_s) -> None:
        self.log.calls.append(("banner", title, message, color, duration_s))
        if self.fail:
            raise RuntimeError("no surface")


class FakeNotifier:
    def __init__(self, log: CallLog, fail: bool = False) -> None:
        self.log = log
        self.fail = fail

    def configure_channel(self, channel_id, name, description) -> None:
        self.log.calls.append(("channel", channel_id, name))
        if self.fail:
            raise ExternalServiceFailure("notification", "no daemon")

    def show(self, notification_id, title, message, channel, color) -> None:
        self.log.calls.append(("notification", notification_id, title, message, channel, color))
        if self.fail:
            raise ExternalServiceFailure("notification", "permission not granted")


class FakeSpeaker:
    def __init__(self, log: CallLog, fail_speak: bool = False, fail_setup: bool = False) -> None:
        self.log = log
        self.fail_speak = fail_speak
        self.fail_setup = fail_setup

    def configure(self, language, rate, volume, pitch) -> None:
        self.log.calls.append(("speech_setup", language, rate, volume, pitch))
        if self.fail_setup:
            raise ExternalServiceFailure("speech", "engine init failed")

    def speak(self, text) -> None:
        self.log.calls.append(("speech", text))
        if self.fail_speak:
            raise ExternalServiceFailure("speech", "engine unavailable")


class FakeTone:
    def __init__(self, log: CallLog, fail: bool = False) -> None:
        self.log = log
        self.fail = fail

    def play(self, severity) -> None:
        self.log.calls.append(("tone", severity))
        if self.fail:
            raise ExternalServiceFailure("tone", "audio output disabled")


def build(**fail) -> tuple[AlertDispatcher, CallLog]:
    log = CallLog()
    dispatcher = AlertDispatcher(
        banner=FakeBanner(log, fail=fail.get("banner", False)),
        notifier=FakeNotifier(log, fail=fail.get("notification", False)),
        speaker=FakeSpeaker(
            log,
            fail_speak=fail.get("speech", False),
            fail_setup=fail.get("speech_setup", False),
        ),
        tone=FakeTone(log, fail=fail.get("tone", False)),
    )
    return dispatcher, log


@pytest.mark.parametrize("message", ["", "   ", "\n\t"])
def test_empty_message_is_rejected_before_any_call(message) -> None:
    dispatcher, log = build()
    with pytest.raises(InvalidInput):
        dispatcher.dispatch(Severity.HIGH, message)
    assert log.calls == []
    assert dispatcher.initialized is False


def test_high_severity_speech_dispatch() -> None:
    dispatcher, log = build()
    outcome = dispatcher.dispatch(Severity.HIGH, "Pest detected", AudioMode.SPEECH)

    assert log.names() == ["channel", "speech_setup", "banner", "notification", "speech"]
    assert log.calls[0] == ("channel", "crop_alerts", "Crop Risk Alerts")
    assert log.calls[1] == ("speech_setup", "en-US", 0.5, 1.0, 1.0)
    assert log.calls[2] == ("banner", "High Risk Alert", "Pest detected", "red", 5.0)
    assert log.calls[3] == ("notification", 2, "High Risk Alert", "Pest detected", "crop_alerts", "red")
    assert log.calls[4] == ("speech", "Pest detected")

    assert outcome.completed is True
    assert outcome.all_ok is True
    assert [r.kind for r in outcome.requests] == ["banner", "notification", "speech"]


def test_message_is_stripped() -> None:
    dispatcher, log = build()
    outcome = dispatcher.dispatch(Severity.LOW, "  Dry soil  ")
    assert outcome.request.message == "Dry soil"
    assert ("speech", "Dry soil") in log.calls


def test_speech_failure_falls_back_to_medium_tone() -> None:
    dispatcher, log = build(speech=True)
    outcome = dispatcher.dispatch(Severity.HIGH, "Pest detected")

    assert log.names()[-2:] == ["speech", "tone"]
    assert log.calls[-1] == ("tone", Severity.MEDIUM)
    assert outcome.completed is True
    assert [(r.kind, r.ok) for r in outcome.requests] == [
        ("banner", True),
        ("notification", True),
        ("speech", False),
        ("tone", True),
    ]
    assert outcome.by_kind("speech")[0].error == "engine unavailable"


def test_fallback_tone_failure_is_recorded_too() -> None:
    dispatcher, _log = build(speech=True, tone=True)
    outcome = dispatcher.dispatch(Severity.LOW, "Frost risk")
    assert [r.kind for r in outcome.failures] == ["speech", "tone"]
    assert outcome.completed is True


@pytest.mark.parametrize("severity", list(Severity))
def test_tone_mode_plays_tone_for_severity(severity) -> None:
    dispatcher, log = build()
    outcome = dispatcher.dispatch(severity, "Check field B", AudioMode.TONE)
    assert "speech" not in log.names()
    assert log.calls[-1] == ("tone", severity)
    assert outcome.requests[-1].kind == "tone"


def test_notification_failure_is_isolated() -> None:
    dispatcher, log = build(notification=True)
    outcome = dispatcher.dispatch(Severity.MEDIUM, "Leaf blight spotted")

    assert log.names() == ["channel", "speech_setup", "banner", "notification", "speech"]
    assert outcome.completed is True
    assert [r.kind for r in outcome.failures] == ["notification"]
    assert outcome.failures[0].error == "permission not granted"
    assert dispatcher.init_errors and dispatcher.init_errors[0].startswith("notification:")


def test_banner_failure_does_not_block_others() -> None:
    dispatcher, log = build(banner=True)
    outcome = dispatcher.dispatch(Severity.LOW, "Irrigation due")
    assert log.names()[-3:] == ["banner", "notification", "speech"]
    assert outcome.failures[0].kind == "banner"
    assert outcome.failures[0].error == "RuntimeError: no surface"


def test_setup_runs_once() -> None:
    dispatcher, log = build()
    dispatcher.dispatch(Severity.LOW, "one")
    dispatcher.dispatch(Severity.HIGH, "two")
    assert log.names().count("channel") == 1
    assert log.names().count("speech_setup") == 1


def test_setup_failure_degrades_without_retry() -> None:
    dispatcher, log = build(speech_setup=True)
    first = dispatcher.dispatch(Severity.HIGH, "one")
    dispatcher.dispatch(Severity.HIGH, "two")

    assert log.names().count("speech_setup") == 1
    assert first.completed is True
    assert len(dispatcher.init_errors) == 1


def test_same_severity_reuses_notification_id() -> None:
    dispatcher, log = build()
    dispatcher.dispatch(Severity.MEDIUM, "first")
    dispatcher.dispatch(Severity.MEDIUM, "second")
    ids = [c[1] for c in log.calls if c[0] == "notification"]
    assert ids == [1, 1]


def test_severity_mapping_is_total_and_ordered() -> None:
    assert Severity.LOW < Severity.MEDIUM < Severity.HIGH
    assert [(s.color, s.title) for s in Severity] == [
        ("green", "Low Risk Alert"),
        ("orange", "Medium Risk Alert"),
        ("red", "High Risk Alert"),
    ]
    assert [int(s) for s in Severity] == [0, 1, 2]


def test_severity_parse() -> None:
    assert Severity.parse(" High ") is Severity.HIGH
    with pytest.raises(InvalidInput):
        Severity.parse("critical")


def test_alert_request_build() -> None:
    req = AlertRequest.build(Severity.LOW, " x ", "tone")
    assert req == AlertRequest(Severity.LOW, "x", AudioMode.TONE)
    with pytest.raises(InvalidInput):
        AlertRequest.build(Severity.LOW, None)


def test_settings_override_constants() -> None:
    log = CallLog()
    dispatcher = AlertDispatcher(
        FakeBanner(log), FakeNotifier(log), FakeSpeaker(log), FakeTone(log),
        settings=AlertSettings(channel_id="field_alerts", language="en-GB", banner_seconds=2.0),
    )
    dispatcher.dispatch(Severity.LOW, "hello")
    assert log.calls[0][1] == "field_alerts"
    assert log.calls[1][1] == "en-GB"
    assert log.calls[2][-1] == 2.0
    assert log.calls[3][4] == "field_alerts"
