"""Meter provider assembly.

This module provides a configured MeterProvider wrapper that owns its
metric exporter and the fixed-interval periodic reader.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    InMemoryMetricReader,
    MetricReader,
    PeriodicExportingMetricReader,
)

from otelruntimemetrics.config import PipelineConfig
from otelruntimemetrics.exceptions import ProviderClosedError, ProviderError, TelemetryError
from otelruntimemetrics.exporters import create_metric_exporter
from otelruntimemetrics.providers.resource import build_resource

if TYPE_CHECKING:
    from opentelemetry.metrics import Meter
    from opentelemetry.sdk.metrics.export import MetricExporter, MetricsData
    from opentelemetry.sdk.resources import Resource

__all__ = [
    "TelemetryMeterProvider",
    "create_meter_provider",
    "set_global_meter_provider",
]

logger = logging.getLogger(__name__)

_PROVIDER_TYPE = "meter"


class TelemetryMeterProvider:
    """MeterProvider wrapper with configuration and lifecycle management.

    Metrics are collected and exported on a fixed interval
    (``MetricReaderConfig.export_interval_seconds``). Passing a
    ``MetricReader`` as the exporter installs it directly, which is how the
    in-memory reader is used in tests.

    Example:
        provider = TelemetryMeterProvider(config, resource=resource)

        meter = provider.get_meter("my-module")
        meter.create_counter("requests").add(1)

        provider.shutdown()
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        exporter: MetricExporter | MetricReader | None = None,
        resource: Resource | None = None,
    ) -> None:
        """Initialize TelemetryMeterProvider.

        Args:
            config: Pipeline configuration.
            exporter: Metric exporter or reader. If None, creates one based on config.
            resource: Shared resource descriptor. If None, builds one from config.

        Raises:
            ExporterConstructionError: If the exporter cannot be created.
            ProviderError: If the SDK provider cannot be assembled.
        """
        self._config = config or PipelineConfig()
        self._exporter = exporter
        self._reader: MetricReader | None = None
        self._is_shutdown = False

        if self._exporter is None:
            self._exporter = create_metric_exporter(
                self._config.metrics_exporter, self._config.effective_metrics_otlp
            )

        self._resource = resource if resource is not None else build_resource(self._config.resource)
        self._provider = self._initialize_provider()

    def _initialize_provider(self) -> MeterProvider:
        """Initialize the underlying MeterProvider."""
        try:
            if isinstance(self._exporter, MetricReader):
                self._reader = self._exporter
            elif self._exporter is not None:
                reader_config = self._config.metric_reader
                self._reader = PeriodicExportingMetricReader(
                    exporter=self._exporter,
                    export_interval_millis=reader_config.export_interval_seconds * 1000,
                    export_timeout_millis=reader_config.export_timeout_seconds * 1000,
                )

            readers = [self._reader] if self._reader is not None else []
            provider = MeterProvider(resource=self._resource, metric_readers=readers)
        except TelemetryError:
            raise
        except Exception as e:
            raise ProviderError(
                f"Failed to initialize MeterProvider: {e}",
                provider_type=_PROVIDER_TYPE,
                cause=e,
            ) from e

        logger.debug(
            f"MeterProvider initialized with reader {type(self._reader).__name__}"
        )
        return provider

    @property
    def provider(self) -> MeterProvider:
        """Get the underlying MeterProvider."""
        return self._provider

    @property
    def resource(self) -> Resource:
        """Get the resource descriptor attached to every metric."""
        return self._resource

    @property
    def reader(self) -> MetricReader | None:
        """Get the installed metric reader."""
        return self._reader

    @property
    def export_interval_seconds(self) -> float | None:
        """Interval of the periodic reader, or None when a reader was passed in."""
        if isinstance(self._reader, PeriodicExportingMetricReader):
            return self._config.metric_reader.export_interval_seconds
        return None

    @property
    def is_shutdown(self) -> bool:
        """Check whether shutdown has been called."""
        return self._is_shutdown

    def get_meter(
        self,
        name: str,
        version: str | None = None,
        schema_url: str | None = None,
    ) -> Meter:
        """Get a Meter instance.

        Args:
            name: Name of the instrumentation scope.
            version: Version of the instrumentation scope.
            schema_url: Schema URL of the instrumentation scope.

        Returns:
            Meter instance.

        Raises:
            ProviderClosedError: If the provider has been shut down.
        """
        if self._is_shutdown:
            raise ProviderClosedError(_PROVIDER_TYPE)

        return self._provider.get_meter(
            name=name,
            version=version,
            schema_url=schema_url,
        )

    def collect(self) -> MetricsData | None:
        """Collect metrics now (in-memory reader only).

        Raises:
            ProviderError: If the provider does not read into memory.
        """
        if not isinstance(self._reader, InMemoryMetricReader):
            raise ProviderError(
                "collect only available with MEMORY exporter",
                provider_type=_PROVIDER_TYPE,
            )
        return self._reader.get_metrics_data()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Force flush all metrics.

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
            logger.warning(f"Failed to force flush metrics: {e}")
            return False

    def shutdown(self, timeout_millis: float = 30000) -> None:
        """Export remaining metrics, stop the reader and close the exporter.

        Safe to call more than once; only the first call does any work.

        Raises:
            ProviderError: If the SDK provider fails to shut down.
        """
        if self._is_shutdown:
            return

        self._is_shutdown = True

        try:
            self._provider.shutdown(timeout_millis)
        except Exception as e:
            raise ProviderError(
                f"Failed to shutdown MeterProvider: {e}",
                provider_type=_PROVIDER_TYPE,
                cause=e,
            ) from e
        logger.debug("MeterProvider shut down")

    def __enter__(self) -> TelemetryMeterProvider:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.shutdown()


def create_meter_provider(
    config: PipelineConfig | None = None,
    exporter: MetricExporter | MetricReader | None = None,
    resource: Resource | None = None,
) -> TelemetryMeterProvider:
    """Create a configured TelemetryMeterProvider.

    Example:
        provider = create_meter_provider(
            config=PipelineConfig().with_exporters(metrics=ExporterType.CONSOLE)
        )
    """
    return TelemetryMeterProvider(config=config, exporter=exporter, resource=resource)


def set_global_meter_provider(provider: TelemetryMeterProvider | MeterProvider) -> None:
    """Register a MeterProvider as the process-wide default."""
    if isinstance(provider, TelemetryMeterProvider):
        metrics.set_meter_provider(provider.provider)
    else:
        metrics.set_meter_provider(provider)
