"""OpenTelemetry runtime metrics demo service.

Configures a tracer provider and a meter provider that export to an
OpenTelemetry collector over OTLP/gRPC, collects runtime memory and GC
metrics, and emits one placeholder root span per period until interrupted.

Features:
- Resource descriptor merged from defaults, service identity, environment
  and host detection
- OTLP gRPC, console and in-memory exporters, selectable per signal
- Runtime metrics with a minimum read interval
- Ordered, non-short-circuiting shutdown

Usage:
    otelruntimemetrics --endpoint collector:4317
    python -m otelruntimemetrics --metrics-exporter console

Example with explicit providers:
    from otelruntimemetrics import PipelineConfig, SpanLoop, TelemetryPipeline

    config = PipelineConfig().with_endpoint("collector:4317")
    pipeline = TelemetryPipeline(config)
    context = pipeline.start()

    SpanLoop(context.tracer_provider, config.loop, cancel).run()

    pipeline.shutdown()   # runtime metrics, then meter, then tracer
"""

from otelruntimemetrics.config import (
    DEBUG_PIPELINE_CONFIG,
    DEFAULT_PIPELINE_CONFIG,
    TESTING_PIPELINE_CONFIG,
    BatchConfig,
    LoopConfig,
    MetricReaderConfig,
    OTLPExporterConfig,
    PipelineConfig,
    ResourceConfig,
    RuntimeMetricsConfig,
)
from otelruntimemetrics.exceptions import (
    ConfigurationError,
    ExporterConstructionError,
    InvalidConfigValueError,
    PipelineClosedError,
    ProviderClosedError,
    ProviderError,
    ResourceConstructionError,
    RuntimeInstrumentationError,
    ShutdownError,
    TelemetryError,
)
from otelruntimemetrics.exporters import create_metric_exporter, create_span_exporter
from otelruntimemetrics.lifecycle import ShutdownSequencer
from otelruntimemetrics.loop import SpanLoop
from otelruntimemetrics.pipeline import TelemetryContext, TelemetryPipeline
from otelruntimemetrics.providers import (
    TelemetryMeterProvider,
    TelemetryTracerProvider,
    build_resource,
)
from otelruntimemetrics.runtime import RuntimeInstrumentation, start_runtime_instrumentation
from otelruntimemetrics.types import ExporterType, LoopState, OTLPCompression, TelemetrySignal

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Configuration
    "BatchConfig",
    "LoopConfig",
    "MetricReaderConfig",
    "OTLPExporterConfig",
    "PipelineConfig",
    "ResourceConfig",
    "RuntimeMetricsConfig",
    "DEFAULT_PIPELINE_CONFIG",
    "DEBUG_PIPELINE_CONFIG",
    "TESTING_PIPELINE_CONFIG",
    # Types
    "ExporterType",
    "LoopState",
    "OTLPCompression",
    "TelemetrySignal",
    # Exceptions
    "TelemetryError",
    "ConfigurationError",
    "InvalidConfigValueError",
    "ResourceConstructionError",
    "ExporterConstructionError",
    "ProviderError",
    "PipelineClosedError",
    "ProviderClosedError",
    "RuntimeInstrumentationError",
    "ShutdownError",
    # Components
    "build_resource",
    "create_span_exporter",
    "create_metric_exporter",
    "TelemetryTracerProvider",
    "TelemetryMeterProvider",
    "start_runtime_instrumentation",
    "RuntimeInstrumentation",
    "ShutdownSequencer",
    "SpanLoop",
    "TelemetryContext",
    "TelemetryPipeline",
]
