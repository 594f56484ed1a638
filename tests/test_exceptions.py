"""Tests for the exception hierarchy."""

import pytest

from otelruntimemetrics.exceptions import (
    ConfigurationError,
    ExporterConstructionError,
    InvalidConfigValueError,
    ProviderClosedError,
    ProviderError,
    ResourceConstructionError,
    RuntimeInstrumentationError,
    ShutdownError,
    ShutdownStepFailure,
    TelemetryError,
)


class TestTelemetryError:
    """Tests for the base exception."""

    def test_str_without_details(self):
        """Test plain message formatting."""
        assert str(TelemetryError("failed")) == "failed"

    def test_str_with_details(self):
        """Test message formatting with details."""
        error = TelemetryError("failed", details={"key": "value"})
        assert str(error) == "failed | Details: {'key': 'value'}"

    def test_cause(self):
        """Test that the cause is kept."""
        cause = OSError("disk")
        assert TelemetryError("failed", cause=cause).cause is cause

    def test_repr(self):
        """Test debugging representation."""
        assert repr(TelemetryError("failed")).startswith("TelemetryError(message='failed'")

    @pytest.mark.parametrize(
        "error_cls",
        [
            ConfigurationError,
            ResourceConstructionError,
            ExporterConstructionError,
            ProviderError,
            RuntimeInstrumentationError,
        ],
    )
    def test_hierarchy(self, error_cls):
        """Test that every startup error is a TelemetryError."""
        assert issubclass(error_cls, TelemetryError)


class TestSpecificErrors:
    """Tests for specialised exceptions."""

    def test_invalid_config_value(self):
        """Test invalid value details."""
        error = InvalidConfigValueError(
            "bad", config_key="OTELRUNTIME_LOOP_PERIOD", value="abc", expected="float"
        )
        assert isinstance(error, ConfigurationError)
        assert error.details == {
            "value": "abc",
            "expected": "float",
            "config_key": "OTELRUNTIME_LOOP_PERIOD",
        }

    def test_exporter_construction(self):
        """Test exporter error attributes."""
        error = ExporterConstructionError(
            "bad", exporter_type="otlp", signal="traces", endpoint="localhost:4317"
        )
        assert error.details["signal"] == "traces"
        assert error.endpoint == "localhost:4317"

    def test_provider_closed(self):
        """Test the closed provider message."""
        error = ProviderClosedError("meter")
        assert isinstance(error, ProviderError)
        assert error.message == "Meter provider has been shut down"

    def test_shutdown_error(self):
        """Test aggregated shutdown failures."""
        first = RuntimeError("meter")
        error = ShutdownError(
            [
                ShutdownStepFailure("meter provider", first),
                ShutdownStepFailure("tracer provider", RuntimeError("tracer")),
            ]
        )
        assert error.message == "Shutdown failed for 2 step(s): meter provider, tracer provider"
        assert error.failed_steps == ["meter provider", "tracer provider"]
        assert error.cause is first
