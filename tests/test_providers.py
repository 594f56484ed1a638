"""Tests for tracer and meter provider assembly."""

from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, InMemoryMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from otelruntimemetrics.config import TESTING_PIPELINE_CONFIG, MetricReaderConfig, PipelineConfig
from otelruntimemetrics.exceptions import ProviderClosedError, ProviderError
from otelruntimemetrics.providers.meter import TelemetryMeterProvider, create_meter_provider
from otelruntimemetrics.providers.tracer import TelemetryTracerProvider, create_tracer_provider
from otelruntimemetrics.types import ExporterType


@pytest.fixture
def resource():
    return Resource({"service.name": "test"})


class TestTelemetryTracerProvider:
    """Tests for TelemetryTracerProvider."""

    def test_memory_exporter_collects_spans(self, resource):
        """Test spans reach the in-memory exporter immediately."""
        provider = TelemetryTracerProvider(
            TESTING_PIPELINE_CONFIG, exporter=InMemorySpanExporter(), resource=resource
        )
        provider.get_tracer("test").start_span("op").end()

        spans = provider.get_finished_spans()
        assert [span.name for span in spans] == ["op"]
        assert spans[0].resource == resource
        provider.shutdown()

    def test_creates_exporter_from_config(self, resource):
        """Test that the configured exporter type is used when none is given."""
        provider = create_tracer_provider(TESTING_PIPELINE_CONFIG, resource=resource)
        assert isinstance(provider.exporter, InMemorySpanExporter)
        provider.shutdown()

    def test_none_exporter(self, resource):
        """Test a provider without any exporter."""
        config = TESTING_PIPELINE_CONFIG.with_exporters(traces=ExporterType.NONE)
        provider = TelemetryTracerProvider(config, resource=resource)
        assert provider.exporter is None
        provider.get_tracer("test").start_span("op").end()
        provider.shutdown()

    def test_batch_processor_for_network_exporters(self, resource):
        """Test that non-memory exporters are batched."""
        exporter = MagicMock(spec=SpanExporter)
        with patch(
            "otelruntimemetrics.providers.tracer.BatchSpanProcessor",
            wraps=BatchSpanProcessor,
        ) as batch:
            provider = TelemetryTracerProvider(PipelineConfig(), exporter=exporter, resource=resource)
        kwargs = batch.call_args.kwargs
        assert kwargs["max_queue_size"] == 2048
        assert kwargs["max_export_batch_size"] == 512
        assert kwargs["schedule_delay_millis"] == 5000
        provider.shutdown()

    def test_shutdown_closes_exporter_once(self, resource):
        """Test idempotent shutdown."""
        exporter = MagicMock(spec=SpanExporter)
        provider = TelemetryTracerProvider(PipelineConfig(), exporter=exporter, resource=resource)

        provider.shutdown()
        provider.shutdown()

        exporter.shutdown.assert_called_once()
        assert provider.is_shutdown

    def test_get_tracer_after_shutdown_raises(self, resource):
        """Test that a closed provider hands out no tracers."""
        provider = TelemetryTracerProvider(
            TESTING_PIPELINE_CONFIG, exporter=InMemorySpanExporter(), resource=resource
        )
        provider.shutdown()
        with pytest.raises(ProviderClosedError, match="Tracer provider has been shut down"):
            provider.get_tracer("test")

    def test_shutdown_failure_raises(self, resource):
        """Test that SDK shutdown errors surface."""
        provider = TelemetryTracerProvider(
            TESTING_PIPELINE_CONFIG, exporter=InMemorySpanExporter(), resource=resource
        )
        with patch.object(provider.provider, "shutdown", side_effect=RuntimeError("boom")):
            with pytest.raises(ProviderError) as exc_info:
                provider.shutdown()
        assert exc_info.value.provider_type == "tracer"

    def test_finished_spans_requires_memory(self, resource):
        """Test that span inspection needs the in-memory exporter."""
        provider = TelemetryTracerProvider(
            PipelineConfig(), exporter=MagicMock(spec=SpanExporter), resource=resource
        )
        with pytest.raises(ProviderError):
            provider.get_finished_spans()
        provider.shutdown()

    def test_context_manager(self, resource):
        """Test shutdown on context exit."""
        with TelemetryTracerProvider(
            TESTING_PIPELINE_CONFIG, exporter=InMemorySpanExporter(), resource=resource
        ) as provider:
            pass
        assert provider.is_shutdown


class TestTelemetryMeterProvider:
    """Tests for TelemetryMeterProvider."""

    def test_in_memory_reader(self, resource):
        """Test collecting metrics from the in-memory reader."""
        provider = TelemetryMeterProvider(
            TESTING_PIPELINE_CONFIG, exporter=InMemoryMetricReader(), resource=resource
        )
        provider.get_meter("test").create_counter("requests").add(1)

        data = provider.collect()
        names = [
            metric.name
            for resource_metrics in data.resource_metrics
            for scope_metrics in resource_metrics.scope_metrics
            for metric in scope_metrics.metrics
        ]
        assert names == ["requests"]
        assert data.resource_metrics[0].resource == resource
        provider.shutdown()

    def test_periodic_reader_interval(self, resource):
        """Test that exporters are wrapped in a fixed-interval periodic reader."""
        config = PipelineConfig().with_metric_reader(MetricReaderConfig(export_interval_seconds=10.0))
        with patch("otelruntimemetrics.providers.meter.PeriodicExportingMetricReader") as reader_cls:
            provider = TelemetryMeterProvider(
                config, exporter=ConsoleMetricExporter(), resource=resource
            )
        kwargs = reader_cls.call_args.kwargs
        assert kwargs["export_interval_millis"] == 10000
        assert isinstance(kwargs["exporter"], ConsoleMetricExporter)
        assert provider.reader is reader_cls.return_value

    def test_creates_exporter_from_config(self, resource):
        """Test that the configured exporter type is used when none is given."""
        provider = create_meter_provider(TESTING_PIPELINE_CONFIG, resource=resource)
        assert isinstance(provider.reader, InMemoryMetricReader)
        provider.shutdown()

    def test_none_exporter_has_no_reader(self, resource):
        """Test a provider without readers."""
        config = TESTING_PIPELINE_CONFIG.with_exporters(metrics=ExporterType.NONE)
        provider = TelemetryMeterProvider(config, resource=resource)
        assert provider.reader is None
        provider.shutdown()

    def test_shutdown_closes_exporter_once(self, resource):
        """Test idempotent shutdown."""
        exporter = ConsoleMetricExporter()
        with patch.object(exporter, "shutdown") as exporter_shutdown:
            provider = TelemetryMeterProvider(PipelineConfig(), exporter=exporter, resource=resource)
            provider.shutdown()
            provider.shutdown()

        exporter_shutdown.assert_called_once()

    def test_get_meter_after_shutdown_raises(self, resource):
        """Test that a closed provider hands out no meters."""
        provider = TelemetryMeterProvider(
            TESTING_PIPELINE_CONFIG, exporter=InMemoryMetricReader(), resource=resource
        )
        provider.shutdown()
        with pytest.raises(ProviderClosedError, match="Meter provider has been shut down"):
            provider.get_meter("test")

    def test_shutdown_failure_raises(self, resource):
        """Test that SDK shutdown errors surface."""
        provider = TelemetryMeterProvider(
            TESTING_PIPELINE_CONFIG, exporter=InMemoryMetricReader(), resource=resource
        )
        with patch.object(provider.provider, "shutdown", side_effect=RuntimeError("boom")):
            with pytest.raises(ProviderError) as exc_info:
                provider.shutdown()
        assert exc_info.value.provider_type == "meter"

    def test_collect_requires_memory(self, resource):
        """Test that collect needs the in-memory reader."""
        config = TESTING_PIPELINE_CONFIG.with_exporters(metrics=ExporterType.NONE)
        provider = TelemetryMeterProvider(config, resource=resource)
        with pytest.raises(ProviderError):
            provider.collect()
        provider.shutdown()
