"""
Unit tests for the tracer implementations.
"""

from __future__ import annotations

import threading

import pytest

from dynamocopy.observability import (
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
    get_tracer,
    should_trace,
)
from dynamocopy.observability import tracer as tracer_module


class TestNullTracer:
    """Tests for NullTracer."""

    def test_span_yields_none(self) -> None:
        with NullTracer().span("op", {"k": "v"}) as span:
            assert span is None

    def test_disabled(self) -> None:
        assert NullTracer().enabled is False

    def test_is_tracer(self) -> None:
        assert isinstance(NullTracer(), Tracer)


class TestMockTracer:
    """Tests for MockTracer."""

    def test_records_spans(self) -> None:
        tracer = MockTracer()
        with tracer.span("first", {"a": 1}):
            with tracer.span("second"):
                pass
        assert tracer.spans == [("first", {"a": 1}), ("second", None)]
        assert tracer.span_names == ["first", "second"]

    def test_clear(self) -> None:
        tracer = MockTracer()
        with tracer.span("op"):
            pass
        tracer.clear()
        assert tracer.spans == []

    def test_thread_safe_recording(self) -> None:
        tracer = MockTracer()

        def worker() -> None:
            for _ in range(200):
                with tracer.span("op"):
                    pass

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(tracer.spans) == 800


class TestCreateTracer:
    """Tests for create_tracer."""

    def test_disabled_gives_null_tracer(self) -> None:
        assert isinstance(create_tracer(__name__, enable_tracing=False), NullTracer)

    def test_should_trace(self) -> None:
        assert should_trace(False) is False
        assert should_trace(True) is OTEL_AVAILABLE

    @pytest.mark.skipif(not OTEL_AVAILABLE, reason="OpenTelemetry not installed")
    def test_enabled_gives_otel_tracer(self) -> None:
        tracer = create_tracer(__name__, enable_tracing=True)
        assert isinstance(tracer, OpenTelemetryTracer)
        assert tracer.enabled
        with tracer.span("op", {"k": "v"}) as span:
            assert span is not None

    @pytest.mark.skipif(not OTEL_AVAILABLE, reason="OpenTelemetry not installed")
    def test_get_tracer_when_installed(self) -> None:
        assert get_tracer(__name__) is not None

    def test_otel_tracer_without_opentelemetry(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(tracer_module, "get_tracer", lambda name: None)
        with pytest.raises(ImportError, match="opentelemetry"):
            OpenTelemetryTracer(__name__)
