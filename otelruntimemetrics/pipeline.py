"""Telemetry pipeline assembly.

Builds the resource descriptor, exporters and providers, starts runtime
instrumentation, and hands everything out as one TelemetryContext instead
of registering process-wide globals.

Shutdown releases in reverse acquisition order: runtime instrumentation,
then the meter provider, then the tracer provider. If startup fails part
way, only what was already acquired is released.

Example:
    with TelemetryPipeline(PipelineConfig.load()) as pipeline:
        context = pipeline.start()
        SpanLoop(context.tracer_provider, config.loop, cancel).run()
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from otelruntimemetrics.config import PipelineConfig, require_valid_config
from otelruntimemetrics.exporters import create_metric_exporter, create_span_exporter
from otelruntimemetrics.exceptions import PipelineClosedError
from otelruntimemetrics.lifecycle import ShutdownSequencer
from otelruntimemetrics.providers.meter import TelemetryMeterProvider, set_global_meter_provider
from otelruntimemetrics.providers.resource import build_resource
from otelruntimemetrics.providers.tracer import TelemetryTracerProvider, set_global_tracer_provider
from otelruntimemetrics.runtime import RuntimeInstrumentation, start_runtime_instrumentation

if TYPE_CHECKING:
    from opentelemetry.sdk.metrics.export import MetricExporter, MetricReader
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace.export import SpanExporter

__all__ = [
    "TelemetryContext",
    "TelemetryPipeline",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelemetryContext:
    """Everything a component needs to emit telemetry."""

    config: PipelineConfig
    resource: Resource
    tracer_provider: TelemetryTracerProvider
    meter_provider: TelemetryMeterProvider
    runtime_instrumentation: RuntimeInstrumentation | None = None


class TelemetryPipeline:
    """Owns the telemetry pipeline from startup to shutdown.

    A pipeline starts once. After a failed start or a shutdown it cannot be
    started again; build a new one instead.

    Exporters may be injected, which tests use to route telemetry to memory
    or to fakes; otherwise they are built from the configuration.
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        span_exporter: SpanExporter | None = None,
        metric_exporter: MetricExporter | MetricReader | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config or PipelineConfig()
        self._span_exporter = span_exporter
        self._metric_exporter = metric_exporter
        self._environ = environ
        self._sequencer = ShutdownSequencer()
        self._context: TelemetryContext | None = None

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def context(self) -> TelemetryContext | None:
        """The started context, or None before ``start()`` succeeds."""
        return self._context

    def start(self) -> TelemetryContext:
        """Assemble the pipeline.

        Returns:
            The telemetry context.

        Raises:
            ConfigurationError: If the configuration is invalid.
            ResourceConstructionError: If the resource cannot be built.
            ExporterConstructionError: If an exporter cannot be created.
            ProviderError: If a provider cannot be assembled.
            RuntimeInstrumentationError: If runtime metrics cannot start.
            PipelineClosedError: If an earlier start failed or the pipeline
                was shut down.
        """
        if self._sequencer.is_closed:
            raise PipelineClosedError()
        if self._context is not None:
            return self._context

        try:
            self._context = self._start()
        except Exception:
            logger.debug("Startup failed; releasing acquired resources")
            try:
                self._sequencer.close()
            except Exception as cleanup_error:
                logger.warning(f"Cleanup after failed startup was incomplete: {cleanup_error}")
            raise

        return self._context

    def _start(self) -> TelemetryContext:
        config = self._config
        require_valid_config(config)

        resource = build_resource(config.resource, environ=self._environ)

        span_exporter = self._span_exporter
        if span_exporter is None:
            span_exporter = create_span_exporter(config.traces_exporter, config.otlp)
        tracer_provider = _own(
            span_exporter,
            lambda: TelemetryTracerProvider(config, exporter=span_exporter, resource=resource),
        )
        self._sequencer.push("tracer provider", tracer_provider.shutdown)

        metric_exporter = self._metric_exporter
        if metric_exporter is None:
            metric_exporter = create_metric_exporter(
                config.metrics_exporter, config.effective_metrics_otlp
            )
        meter_provider = _own(
            metric_exporter,
            lambda: TelemetryMeterProvider(config, exporter=metric_exporter, resource=resource),
        )
        self._sequencer.push("meter provider", meter_provider.shutdown)

        if config.register_global:
            set_global_tracer_provider(tracer_provider)
            set_global_meter_provider(meter_provider)
            logger.info("Registered tracer and meter providers globally")

        runtime_instrumentation: RuntimeInstrumentation | None = None
        if config.runtime.enabled:
            runtime_instrumentation = start_runtime_instrumentation(
                meter_provider, config.runtime, environ=self._environ
            )
            self._sequencer.push("runtime instrumentation", runtime_instrumentation.stop)

        logger.info(
            f"Telemetry pipeline started: service={config.resource.service_name}, "
            f"traces={config.traces_exporter.value}, metrics={config.metrics_exporter.value}"
        )
        return TelemetryContext(
            config=config,
            resource=resource,
            tracer_provider=tracer_provider,
            meter_provider=meter_provider,
            runtime_instrumentation=runtime_instrumentation,
        )

    def shutdown(self) -> None:
        """Release everything acquired, most recent first.

        Raises:
            ShutdownError: If one or more release steps failed. Every step
                is attempted regardless.
        """
        self._sequencer.close()
        logger.info("Telemetry pipeline shut down")

    def __enter__(self) -> TelemetryPipeline:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self._sequencer.__exit__(exc_type, exc_val, exc_tb)


def _own(exporter: Any, build: Any) -> Any:
    """Build a provider, shutting the exporter down if the build fails."""
    try:
        return build()
    except Exception:
        if exporter is not None:
            try:
                exporter.shutdown()
            except Exception as e:
                logger.warning(f"Failed to close orphaned exporter: {e}")
        raise
