"""Tracer provider assembly.

This module provides a configured TracerProvider wrapper that owns its
span exporter and batching policy.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from otelruntimemetrics.config import PipelineConfig
from otelruntimemetrics.exceptions import ProviderClosedError, ProviderError, TelemetryError
from otelruntimemetrics.exporters import create_span_exporter
from otelruntimemetrics.providers.resource import build_resource

if TYPE_CHECKING:
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import ReadableSpan
    from opentelemetry.sdk.trace.export import SpanExporter, SpanProcessor
    from opentelemetry.trace import Tracer

__all__ = [
    "TelemetryTracerProvider",
    "create_tracer_provider",
    "set_global_tracer_provider",
]

logger = logging.getLogger(__name__)

_PROVIDER_TYPE = "tracer"


class TelemetryTracerProvider:
    """TracerProvider wrapper with configuration and lifecycle management.

    The wrapper owns the exporter: it is closed exactly once, when the
    provider shuts down. Tracers cannot be requested after shutdown.

    Example:
        provider = TelemetryTracerProvider(config, resource=resource)

        tracer = provider.get_tracer("otelruntimemetrics.service.tracer")
        tracer.start_span("MyTrace").end()

        provider.shutdown()
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        exporter: SpanExporter | None = None,
        resource: Resource | None = None,
    ) -> None:
        """Initialize TelemetryTracerProvider.

        Args:
            config: Pipeline configuration.
            exporter: Span exporter. If None, creates one based on config.
            resource: Shared resource descriptor. If None, builds one from config.

        Raises:
            ExporterConstructionError: If the exporter cannot be created.
            ProviderError: If the SDK provider cannot be assembled.
        """
        self._config = config or PipelineConfig()
        self._exporter = exporter
        self._processor: SpanProcessor | None = None
        self._is_shutdown = False

        if self._exporter is None:
            self._exporter = create_span_exporter(
                self._config.traces_exporter, self._config.otlp
            )

        self._resource = resource if resource is not None else build_resource(self._config.resource)
        self._provider = self._initialize_provider()

    def _initialize_provider(self) -> TracerProvider:
        """Initialize the underlying TracerProvider."""
        try:
            provider = TracerProvider(resource=self._resource)

            if self._exporter is not None:
                if isinstance(self._exporter, InMemorySpanExporter):
                    # Export synchronously so tests can inspect spans right away
                    self._processor = SimpleSpanProcessor(self._exporter)
                else:
                    batch = self._config.batch
                    self._processor = BatchSpanProcessor(
                        self._exporter,
                        max_queue_size=batch.max_queue_size,
                        max_export_batch_size=batch.max_export_batch_size,
                        export_timeout_millis=int(batch.export_timeout_seconds * 1000),
                        schedule_delay_millis=int(batch.schedule_delay_seconds * 1000),
                    )
                provider.add_span_processor(self._processor)
        except TelemetryError:
            raise
        except Exception as e:
            raise ProviderError(
                f"Failed to initialize TracerProvider: {e}",
                provider_type=_PROVIDER_TYPE,
                cause=e,
            ) from e

        logger.debug(f"TracerProvider initialized with exporter {type(self._exporter).__name__}")
        return provider

    @property
    def provider(self) -> TracerProvider:
        """Get the underlying TracerProvider."""
        return self._provider

    @property
    def resource(self) -> Resource:
        """Get the resource descriptor attached to every span."""
        return self._resource

    @property
    def exporter(self) -> SpanExporter | None:
        """Get the owned span exporter."""
        return self._exporter

    @property
    def is_shutdown(self) -> bool:
        """Check whether shutdown has been called."""
        return self._is_shutdown

    def get_tracer(
        self,
        name: str,
        version: str | None = None,
        schema_url: str | None = None,
    ) -> Tracer:
        """Get a Tracer instance.

        Args:
            name: Name of the instrumentation scope.
            version: Version of the instrumentation scope.
            schema_url: Schema URL of the instrumentation scope.

        Returns:
            Tracer instance.

        Raises:
            ProviderClosedError: If the provider has been shut down.
        """
        if self._is_shutdown:
            raise ProviderClosedError(_PROVIDER_TYPE)

        return self._provider.get_tracer(
            instrumenting_module_name=name,
            instrumenting_library_version=version,
            schema_url=schema_url,
        )

    def get_finished_spans(self) -> list[ReadableSpan]:
        """Get exported spans (in-memory exporter only).

        Raises:
            ProviderError: If the provider does not export to memory.
        """
        if not isinstance(self._exporter, InMemorySpanExporter):
            raise ProviderError(
                "get_finished_spans only available with MEMORY exporter",
                provider_type=_PROVIDER_TYPE,
            )
        return list(self._exporter.get_finished_spans())

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Force flush all pending spans.

        Args:
            timeout_millis: Timeout for flush operation.

        Returns:
            True if successful.
        """
        if self._is_shutdown:
            return True

        try:
            return self._provider.force_flush(timeout_millis)
        except Exception as e:
            logger.warning(f"Failed to force flush spans: {e}")
            return False

    def shutdown(self) -> None:
        """Flush pending spans and close the exporter.

        Safe to call more than once; only the first call does any work.

        Raises:
            ProviderError: If the SDK provider fails to shut down.
        """
        if self._is_shutdown:
            return

        self._is_shutdown = True

        try:
            self._provider.shutdown()
        except Exception as e:
            raise ProviderError(
                f"Failed to shutdown TracerProvider: {e}",
                provider_type=_PROVIDER_TYPE,
                cause=e,
            ) from e
        logger.debug("TracerProvider shut down")

    def __enter__(self) -> TelemetryTracerProvider:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.shutdown()


def create_tracer_provider(
    config: PipelineConfig | None = None,
    exporter: SpanExporter | None = None,
    resource: Resource | None = None,
) -> TelemetryTracerProvider:
    """Create a configured TelemetryTracerProvider.

    Example:
        provider = create_tracer_provider(
            config=PipelineConfig().with_service_name("my-service")
        )
    """
    return TelemetryTracerProvider(config=config, exporter=exporter, resource=resource)


def set_global_tracer_provider(provider: TelemetryTracerProvider | TracerProvider) -> None:
    """Register a TracerProvider as the process-wide default.

    The OpenTelemetry API accepts the global provider only once per process;
    later calls are logged and ignored by the API.
    """
    if isinstance(provider, TelemetryTracerProvider):
        trace.set_tracer_provider(provider.provider)
    else:
        trace.set_tracer_provider(provider)
