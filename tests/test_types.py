"""Tests for type definitions."""

import pytest

from otelruntimemetrics.types import ExporterType, LoopState, OTLPCompression, TelemetrySignal


class TestExporterType:
    """Tests for ExporterType."""

    def test_values(self):
        """Test enum values."""
        assert ExporterType.OTLP.value == "otlp"
        assert ExporterType.CONSOLE.value == "console"
        assert ExporterType.MEMORY.value == "memory"
        assert ExporterType.NONE.value == "none"

    @pytest.mark.parametrize("raw", ["console", "CONSOLE", " Console "])
    def test_from_string(self, raw):
        """Test case-insensitive parsing."""
        assert ExporterType.from_string(raw) == ExporterType.CONSOLE

    def test_from_string_unknown(self):
        """Test that unknown names list the valid ones."""
        with pytest.raises(ValueError, match="otlp, console, memory, none"):
            ExporterType.from_string("zipkin")


class TestOtherEnums:
    """Tests for the remaining enums."""

    def test_values(self):
        """Test enum values."""
        assert OTLPCompression.GZIP.value == "gzip"
        assert TelemetrySignal.METRICS.value == "metrics"
        assert [state.value for state in LoopState] == ["running", "shutting_down", "stopped"]
