"""Exporter factory.

Creates the span and metric exporters the providers own. The actual OTLP,
console and in-memory exporters are provided by the OpenTelemetry SDK; this
module validates configuration and builds them from our settings.

Example:
    exporter = create_span_exporter(ExporterType.OTLP, OTLPExporterConfig())
    debug = create_metric_exporter(ExporterType.CONSOLE)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import grpc

from otelruntimemetrics.config import OTLPExporterConfig
from otelruntimemetrics.exceptions import ExporterConstructionError
from otelruntimemetrics.types import ExporterType, OTLPCompression, TelemetrySignal

if TYPE_CHECKING:
    from opentelemetry.sdk.metrics.export import MetricExporter, MetricReader
    from opentelemetry.sdk.trace.export import SpanExporter

__all__ = [
    "create_metric_exporter",
    "create_span_exporter",
    "split_endpoint",
    "validate_endpoint",
    "verify_collector_reachable",
]

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = ("http", "https")


def split_endpoint(endpoint: str) -> tuple[str | None, str, int]:
    """Split a collector endpoint into scheme, host and port.

    Accepts ``host:port`` and ``http(s)://host:port``.

    Raises:
        ValueError: If the endpoint is malformed.
    """
    endpoint = endpoint.strip()
    if not endpoint:
        raise ValueError("endpoint is empty")

    scheme: str | None = None
    if "://" in endpoint:
        parts = urlsplit(endpoint)
        scheme = parts.scheme.lower()
        if scheme not in _ALLOWED_SCHEMES:
            raise ValueError(f"unsupported scheme {parts.scheme!r}")
        if parts.path not in ("", "/") or parts.query or parts.fragment:
            raise ValueError("endpoint must not contain a path")
        netloc = parts.netloc
    else:
        netloc = endpoint

    host, sep, port_text = netloc.rpartition(":")
    if not sep or not host:
        raise ValueError("expected host:port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not host:
        raise ValueError("host is empty")
    if not port_text.isdigit():
        raise ValueError(f"invalid port {port_text!r}")
    port = int(port_text)
    if not 1 <= port <= 65535:
        raise ValueError(f"port {port} out of range 1..65535")
    return scheme, host, port


def validate_endpoint(
    endpoint: str,
    signal: TelemetrySignal | None = None,
) -> str:
    """Validate a collector endpoint.

    Returns:
        The stripped endpoint.

    Raises:
        ExporterConstructionError: If the endpoint is malformed.
    """
    try:
        split_endpoint(endpoint)
    except ValueError as e:
        raise ExporterConstructionError(
            f"Invalid collector endpoint {endpoint!r}: {e}",
            exporter_type=ExporterType.OTLP.value,
            signal=signal.value if signal else None,
            endpoint=endpoint,
            cause=e,
        ) from e
    return endpoint.strip()


def verify_collector_reachable(
    config: OTLPExporterConfig,
    signal: TelemetrySignal | None = None,
) -> None:
    """Wait until a gRPC channel to the collector is ready.

    Raises:
        ExporterConstructionError: If the channel is not ready within
            ``config.connect_timeout_seconds``.
    """
    _, host, port = split_endpoint(config.endpoint)
    target = f"[{host}]:{port}" if ":" in host else f"{host}:{port}"

    if config.insecure:
        channel = grpc.insecure_channel(target)
    else:
        channel = grpc.secure_channel(target, grpc.ssl_channel_credentials())

    try:
        grpc.channel_ready_future(channel).result(timeout=config.connect_timeout_seconds)
    except grpc.FutureTimeoutError as e:
        raise ExporterConstructionError(
            f"Collector at {config.endpoint} not reachable within "
            f"{config.connect_timeout_seconds}s",
            exporter_type=ExporterType.OTLP.value,
            signal=signal.value if signal else None,
            endpoint=config.endpoint,
            cause=e,
        ) from e
    finally:
        channel.close()

    logger.debug(f"Collector at {config.endpoint} is reachable")


def _grpc_compression(config: OTLPExporterConfig) -> grpc.Compression | None:
    if config.compression == OTLPCompression.GZIP:
        return grpc.Compression.Gzip
    return None


def _prepare_otlp(config: OTLPExporterConfig, signal: TelemetrySignal) -> None:
    validate_endpoint(config.endpoint, signal)
    if config.verify_connection:
        verify_collector_reachable(config, signal)


def create_span_exporter(
    exporter_type: ExporterType = ExporterType.OTLP,
    config: OTLPExporterConfig | None = None,
) -> SpanExporter | None:
    """Create a span exporter based on type.

    Args:
        exporter_type: Type of exporter to create.
        config: OTLP configuration (only used for OTLP type).

    Returns:
        Configured span exporter, or None for ``ExporterType.NONE``.

    Raises:
        ExporterConstructionError: If the exporter cannot be created.
    """
    config = config or OTLPExporterConfig()

    if exporter_type == ExporterType.NONE:
        return None

    if exporter_type == ExporterType.CONSOLE:
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter
        return ConsoleSpanExporter()

    if exporter_type == ExporterType.MEMORY:
        from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
            InMemorySpanExporter,
        )
        return InMemorySpanExporter()

    if exporter_type == ExporterType.OTLP:
        _prepare_otlp(config, TelemetrySignal.TRACES)
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        try:
            exporter = OTLPSpanExporter(
                endpoint=config.endpoint.strip(),
                insecure=config.insecure,
                headers=tuple(config.headers.items()) if config.headers else None,
                timeout=config.timeout_seconds,
                compression=_grpc_compression(config),
            )
        except Exception as e:
            raise ExporterConstructionError(
                f"Failed to create OTLP span exporter: {e}",
                exporter_type=exporter_type.value,
                signal=TelemetrySignal.TRACES.value,
                endpoint=config.endpoint,
                cause=e,
            ) from e
        logger.info(f"Created OTLP span exporter for {config.endpoint}")
        return exporter

    raise ExporterConstructionError(
        f"Unknown exporter type: {exporter_type}",
        exporter_type=str(exporter_type),
        signal=TelemetrySignal.TRACES.value,
    )


def create_metric_exporter(
    exporter_type: ExporterType = ExporterType.OTLP,
    config: OTLPExporterConfig | None = None,
) -> MetricExporter | MetricReader | None:
    """Create a metric exporter based on type.

    ``ExporterType.MEMORY`` returns an ``InMemoryMetricReader``; the meter
    provider installs it as its reader instead of wrapping it in a
    periodic one.

    Args:
        exporter_type: Type of exporter to create.
        config: OTLP configuration (only used for OTLP type).

    Returns:
        Configured metric exporter (or reader), or None for ``ExporterType.NONE``.

    Raises:
        ExporterConstructionError: If the exporter cannot be created.
    """
    config = config or OTLPExporterConfig()

    if exporter_type == ExporterType.NONE:
        return None

    if exporter_type == ExporterType.CONSOLE:
        from opentelemetry.sdk.metrics.export import ConsoleMetricExporter
        return ConsoleMetricExporter()

    if exporter_type == ExporterType.MEMORY:
        from opentelemetry.sdk.metrics.export import InMemoryMetricReader
        return InMemoryMetricReader()

    if exporter_type == ExporterType.OTLP:
        _prepare_otlp(config, TelemetrySignal.METRICS)
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

        try:
            exporter = OTLPMetricExporter(
                endpoint=config.endpoint.strip(),
                insecure=config.insecure,
                headers=tuple(config.headers.items()) if config.headers else None,
                timeout=config.timeout_seconds,
                compression=_grpc_compression(config),
            )
        except Exception as e:
            raise ExporterConstructionError(
                f"Failed to create OTLP metric exporter: {e}",
                exporter_type=exporter_type.value,
                signal=TelemetrySignal.METRICS.value,
                endpoint=config.endpoint,
                cause=e,
            ) from e
        logger.info(f"Created OTLP metric exporter for {config.endpoint}")
        return exporter

    raise ExporterConstructionError(
        f"Unknown exporter type: {exporter_type}",
        exporter_type=str(exporter_type),
        signal=TelemetrySignal.METRICS.value,
    )
