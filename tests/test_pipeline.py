"""Tests for pipeline assembly and ordered shutdown."""

import dataclasses
from unittest.mock import patch

import pytest
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from otelruntimemetrics.config import (
    TESTING_PIPELINE_CONFIG,
    LoopConfig,
    OTLPExporterConfig,
    RuntimeMetricsConfig,
)
from otelruntimemetrics.exceptions import (
    ConfigurationError,
    ExporterConstructionError,
    PipelineClosedError,
    ProviderError,
    ResourceConstructionError,
    RuntimeInstrumentationError,
    ShutdownError,
    TelemetryError,
)
from otelruntimemetrics.pipeline import TelemetryContext, TelemetryPipeline
from otelruntimemetrics.providers.meter import TelemetryMeterProvider
from otelruntimemetrics.providers.tracer import TelemetryTracerProvider
from otelruntimemetrics.runtime import RuntimeInstrumentation
from otelruntimemetrics.types import ExporterType


@pytest.fixture
def release_calls():
    """Record release calls instead of performing them.

    Runtime instrumentation is still stopped, since it is process-wide.
    """
    calls = []
    stop_runtime = RuntimeInstrumentation.stop

    def record_runtime_stop(self):
        calls.append("runtime")
        stop_runtime(self)

    with (
        patch.object(
            TelemetryTracerProvider, "shutdown", autospec=True,
            side_effect=lambda self: calls.append("tracer"),
        ),
        patch.object(
            TelemetryMeterProvider, "shutdown", autospec=True,
            side_effect=lambda self, *args: calls.append("meter"),
        ),
        patch.object(
            RuntimeInstrumentation, "stop", autospec=True,
            side_effect=record_runtime_stop,
        ),
    ):
        yield calls


class TestTelemetryPipeline:
    """Tests for TelemetryPipeline."""

    def test_start_builds_context(self):
        """Test that start hands out one context with shared resource."""
        pipeline = TelemetryPipeline(TESTING_PIPELINE_CONFIG, environ={})
        context = pipeline.start()

        assert isinstance(context, TelemetryContext)
        assert context.tracer_provider.resource is context.resource
        assert context.meter_provider.resource is context.resource
        assert context.resource.attributes["deployment.environment"] == "testing"
        assert isinstance(context.runtime_instrumentation, RuntimeInstrumentation)
        assert pipeline.start() is context

        pipeline.shutdown()
        assert context.tracer_provider.is_shutdown
        assert context.meter_provider.is_shutdown
        assert context.runtime_instrumentation.is_stopped

    def test_context_is_immutable(self):
        """Test that the context cannot be rebound."""
        pipeline = TelemetryPipeline(TESTING_PIPELINE_CONFIG, environ={})
        context = pipeline.start()
        with pytest.raises(dataclasses.FrozenInstanceError):
            context.runtime_instrumentation = None
        pipeline.shutdown()

    def test_injected_exporters(self):
        """Test that injected exporters are used."""
        span_exporter = InMemorySpanExporter()
        reader = InMemoryMetricReader()
        config = TESTING_PIPELINE_CONFIG.with_exporters(
            traces=ExporterType.OTLP, metrics=ExporterType.OTLP
        )
        pipeline = TelemetryPipeline(
            config, span_exporter=span_exporter, metric_exporter=reader, environ={}
        )
        context = pipeline.start()

        assert context.tracer_provider.exporter is span_exporter
        assert context.meter_provider.reader is reader
        pipeline.shutdown()

    def test_runtime_disabled(self):
        """Test that runtime metrics can be turned off."""
        config = TESTING_PIPELINE_CONFIG.with_runtime(RuntimeMetricsConfig(enabled=False))
        pipeline = TelemetryPipeline(config, environ={})
        assert pipeline.start().runtime_instrumentation is None
        pipeline.shutdown()

    def test_no_global_registration_by_default(self):
        """Test that providers are not registered globally unless asked."""
        with (
            patch("otelruntimemetrics.pipeline.set_global_tracer_provider") as set_tracer,
            patch("otelruntimemetrics.pipeline.set_global_meter_provider") as set_meter,
        ):
            pipeline = TelemetryPipeline(TESTING_PIPELINE_CONFIG, environ={})
            pipeline.start()
            pipeline.shutdown()
        set_tracer.assert_not_called()
        set_meter.assert_not_called()

    def test_global_registration(self):
        """Test opt-in global registration."""
        config = TESTING_PIPELINE_CONFIG.with_register_global(True)
        with (
            patch("otelruntimemetrics.pipeline.set_global_tracer_provider") as set_tracer,
            patch("otelruntimemetrics.pipeline.set_global_meter_provider") as set_meter,
        ):
            pipeline = TelemetryPipeline(config, environ={})
            context = pipeline.start()
            pipeline.shutdown()
        set_tracer.assert_called_once_with(context.tracer_provider)
        set_meter.assert_called_once_with(context.meter_provider)


class TestShutdownOrdering:
    """Tests for release order and failure handling."""

    def test_release_order(self, release_calls):
        """Test runtime, then meter, then tracer."""
        pipeline = TelemetryPipeline(TESTING_PIPELINE_CONFIG, environ={})
        pipeline.start()
        pipeline.shutdown()

        assert release_calls == ["runtime", "meter", "tracer"]

    def test_each_provider_shut_down_once(self, release_calls):
        """Test that repeated shutdown does not release twice."""
        pipeline = TelemetryPipeline(TESTING_PIPELINE_CONFIG, environ={})
        pipeline.start()
        pipeline.shutdown()
        pipeline.shutdown()

        assert release_calls.count("meter") == 1
        assert release_calls.count("tracer") == 1

    def test_meter_failure_still_releases_tracer(self):
        """Test that a failing meter shutdown does not skip the tracer."""
        pipeline = TelemetryPipeline(TESTING_PIPELINE_CONFIG, environ={})
        context = pipeline.start()

        with patch.object(
            context.meter_provider.provider, "shutdown", side_effect=RuntimeError("export failed")
        ):
            with pytest.raises(ShutdownError) as exc_info:
                pipeline.shutdown()

        assert exc_info.value.failed_steps == ["meter provider"]
        assert isinstance(exc_info.value.failures[0].error, ProviderError)
        assert context.tracer_provider.is_shutdown

    def test_both_failures_reported(self):
        """Test that every failing step is reported."""
        pipeline = TelemetryPipeline(TESTING_PIPELINE_CONFIG, environ={})
        context = pipeline.start()

        with (
            patch.object(context.meter_provider.provider, "shutdown", side_effect=RuntimeError("m")),
            patch.object(context.tracer_provider.provider, "shutdown", side_effect=RuntimeError("t")),
        ):
            with pytest.raises(ShutdownError) as exc_info:
                pipeline.shutdown()

        assert exc_info.value.failed_steps == ["meter provider", "tracer provider"]


class TestStartupFailures:
    """Tests for partial startup cleanup."""

    def test_runtime_failure_releases_providers(self, release_calls):
        """Test that providers acquired before a runtime failure are released."""
        with patch(
            "otelruntimemetrics.pipeline.start_runtime_instrumentation",
            side_effect=RuntimeInstrumentationError("no runtime"),
        ):
            pipeline = TelemetryPipeline(TESTING_PIPELINE_CONFIG, environ={})
            with pytest.raises(RuntimeInstrumentationError):
                pipeline.start()

        assert release_calls == ["meter", "tracer"]
        assert pipeline.context is None

    def test_metric_exporter_failure_releases_tracer(self, release_calls):
        """Test that a bad metrics endpoint releases the tracer provider."""
        config = (
            TESTING_PIPELINE_CONFIG
            .with_exporters(metrics=ExporterType.OTLP)
            .with_metrics_otlp(OTLPExporterConfig(endpoint="no-port"))
        )
        pipeline = TelemetryPipeline(config, environ={})

        with pytest.raises(ExporterConstructionError):
            pipeline.start()
        assert release_calls == ["tracer"]

    def test_resource_failure_acquires_nothing(self, release_calls):
        """Test that a malformed environment fails before any provider exists."""
        pipeline = TelemetryPipeline(
            TESTING_PIPELINE_CONFIG, environ={"OTEL_RESOURCE_ATTRIBUTES": "broken"}
        )
        with pytest.raises(ResourceConstructionError):
            pipeline.start()
        assert release_calls == []

    def test_invalid_config_acquires_nothing(self, release_calls):
        """Test that validation runs before anything is built."""
        config = TESTING_PIPELINE_CONFIG.with_loop(LoopConfig(period_seconds=0))
        with pytest.raises(ConfigurationError):
            TelemetryPipeline(config, environ={}).start()
        assert release_calls == []

    def test_provider_failure_closes_orphaned_exporter(self):
        """Test that an exporter is closed if its provider cannot be built."""
        span_exporter = InMemorySpanExporter()
        with (
            patch(
                "otelruntimemetrics.pipeline.TelemetryTracerProvider",
                side_effect=ProviderError("boom", provider_type="tracer"),
            ),
            patch.object(span_exporter, "shutdown") as exporter_shutdown,
        ):
            pipeline = TelemetryPipeline(
                TESTING_PIPELINE_CONFIG, span_exporter=span_exporter, environ={}
            )
            with pytest.raises(ProviderError):
                pipeline.start()
        exporter_shutdown.assert_called_once()

    def test_restart_after_failed_start(self, release_calls):
        """Test that a failed pipeline refuses to start again."""
        config = TESTING_PIPELINE_CONFIG.with_loop(LoopConfig(period_seconds=0))
        pipeline = TelemetryPipeline(config, environ={})
        with pytest.raises(ConfigurationError):
            pipeline.start()

        with pytest.raises(PipelineClosedError) as exc_info:
            pipeline.start()
        assert isinstance(exc_info.value, TelemetryError)

    def test_start_after_shutdown(self):
        """Test that a shut down pipeline cannot be started again."""
        pipeline = TelemetryPipeline(TESTING_PIPELINE_CONFIG, environ={})
        pipeline.start()
        pipeline.shutdown()

        with pytest.raises(PipelineClosedError):
            pipeline.start()
