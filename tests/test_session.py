"""Tests for the scan session state machine."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest
from medscan.config import AppConfig
from medscan.errors import (
    AnalysisCancelled,
    AnalysisInProgress,
    InvalidInput,
    RateLimited,
    SessionStateError,
)
from medscan.images import ScanImage
from medscan.providers.base import ProviderInfo
from medscan.schema import AnalysisResult, FindingStatus
from medscan.services.session import ScanSession, SessionState


def _result(**overrides) -> AnalysisResult:
    data = {
        "status": FindingStatus.NORMAL,
        "overall_confidence": 90,
        "analysis_timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return AnalysisResult(**data)


def _image(name: str = "scan.jpg") -> ScanImage:
    return ScanImage(data=b"\xff\xd8fake", name=name)


class StubProvider:
    def __init__(self, result=None, error=None):
        self.result = result or _result()
        self.error = error
        self.calls = 0

    def info(self) -> ProviderInfo:
        return ProviderInfo("stub", "Stub", "")

    def load(self) -> None:
        return

    def analyze(self, image, *, cancel_token=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class BlockingProvider(StubProvider):
    """Blocks inside ``analyze`` until released by the test."""

    def __init__(self, result=None):
        super().__init__(result)
        self.started = threading.Event()
        self.release = threading.Event()

    def analyze(self, image, *, cancel_token=None):
        self.calls += 1
        self.started.set()
        self.release.wait(5)
        return self.result


def _run_in_thread(session, outcome, **kwargs):
    def target():
        try:
            outcome["result"] = session.analyze(**kwargs)
        except Exception as exc:  # noqa: BLE001 - recorded for the assertion
            outcome["error"] = exc

    thread = threading.Thread(target=target)
    thread.start()
    return thread


def test_initial_state_is_empty():
    session = ScanSession(provider=StubProvider())
    assert session.state == SessionState.EMPTY
    assert session.export_report() is None


def test_analyze_without_image_is_rejected():
    session = ScanSession(provider=StubProvider())
    with pytest.raises(InvalidInput):
        session.analyze()
    assert session.state == SessionState.EMPTY


def test_select_rejects_empty_image():
    session = ScanSession(provider=StubProvider())
    with pytest.raises(InvalidInput):
        session.select(ScanImage(data=b""))


def test_successful_analysis_transitions():
    states = []
    provider = StubProvider()
    session = ScanSession(provider=provider)
    session.add_listener(states.append)

    session.select(_image())
    result = session.analyze()

    assert result is provider.result
    assert session.result is result
    assert session.state == SessionState.ANALYZED
    assert states == [
        SessionState.IMAGE_SELECTED,
        SessionState.ANALYZING,
        SessionState.ANALYZED,
    ]
    assert "MEDICAL IMAGING ANALYSIS REPORT" in session.export_report()


def test_analyze_twice_requires_new_selection():
    session = ScanSession(provider=StubProvider())
    session.select(_image())
    session.analyze()

    with pytest.raises(SessionStateError):
        session.analyze()


def test_failure_returns_to_image_selected():
    provider = StubProvider(error=RateLimited())
    session = ScanSession(provider=provider)
    session.select(_image())

    with pytest.raises(RateLimited):
        session.analyze()

    assert session.state == SessionState.IMAGE_SELECTED
    assert session.result is None
    assert session.image is not None


def test_reselect_discards_result():
    session = ScanSession(provider=StubProvider())
    session.select(_image())
    session.analyze()

    session.select(_image("other.jpg"))

    assert session.state == SessionState.IMAGE_SELECTED
    assert session.result is None
    assert session.image.name == "other.jpg"


def test_clear_returns_to_empty():
    session = ScanSession(provider=StubProvider())
    session.select(_image())
    session.analyze()

    session.clear()

    assert session.state == SessionState.EMPTY
    assert session.image is None
    assert session.result is None


def test_concurrent_analyze_is_rejected():
    provider = BlockingProvider()
    session = ScanSession(provider=provider)
    session.select(_image())
    outcome = {}
    thread = _run_in_thread(session, outcome)
    assert provider.started.wait(5)

    with pytest.raises(AnalysisInProgress):
        session.analyze()

    provider.release.set()
    thread.join(5)
    assert provider.calls == 1
    assert session.state == SessionState.ANALYZED


def test_result_for_replaced_image_is_discarded():
    provider = BlockingProvider()
    session = ScanSession(provider=provider)
    session.select(_image("first.jpg"))
    outcome = {}
    thread = _run_in_thread(session, outcome)
    assert provider.started.wait(5)

    session.select(_image("second.jpg"))
    provider.release.set()
    thread.join(5)

    assert isinstance(outcome.get("error"), AnalysisCancelled)
    assert session.state == SessionState.IMAGE_SELECTED
    assert session.result is None
    assert session.image.name == "second.jpg"


def test_cancel_discards_late_result():
    provider = BlockingProvider()
    session = ScanSession(provider=provider)
    session.select(_image())
    outcome = {}
    thread = _run_in_thread(session, outcome)
    assert provider.started.wait(5)

    session.cancel()
    provider.release.set()
    thread.join(5)

    assert isinstance(outcome.get("error"), AnalysisCancelled)
    assert session.state == SessionState.IMAGE_SELECTED
    assert session.result is None


def test_provider_loaded_from_registry(monkeypatch):
    provider = StubProvider()
    requested = []

    def fake_get(name, *, config):
        requested.append(name)
        return provider

    monkeypatch.setattr("medscan.services.session.ProviderRegistry.get", fake_get)
    session = ScanSession(AppConfig(provider_name="stub"))
    session.select(_image())
    session.analyze()

    assert requested == ["stub"]
