"""Configuration for the telemetry pipeline.

This module provides immutable configuration classes with builder methods,
plus loaders for environment variables and JSON/YAML configuration files.

Configuration Precedence (highest to lowest):
    1. Environment variables
    2. Configuration file
    3. Default values

Example:
    >>> from otelruntimemetrics.config import PipelineConfig
    >>> config = PipelineConfig.load()
    >>> debug = config.with_exporters(metrics=ExporterType.CONSOLE)
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Self

from otelruntimemetrics.exceptions import ConfigurationError, InvalidConfigValueError
from otelruntimemetrics.types import ExporterType, OTLPCompression, ResourceAttributes

__all__ = [
    # Constants
    "DEFAULT_ENV_PREFIX",
    "DEFAULT_SERVICE_NAME",
    "DEFAULT_SERVICE_VERSION",
    "DEFAULT_ENVIRONMENT",
    "DEFAULT_OTLP_ENDPOINT",
    "DEFAULT_TRACER_NAME",
    "DEFAULT_SPAN_NAME",
    "DEPRECATED_RUNTIME_METRICS_ENV",
    "SCHEMA_URL",
    # Utilities
    "EnvReader",
    "load_config_file",
    # Configuration classes
    "ResourceConfig",
    "OTLPExporterConfig",
    "BatchConfig",
    "MetricReaderConfig",
    "RuntimeMetricsConfig",
    "LoopConfig",
    "PipelineConfig",
    # Validation
    "validate_config",
    "require_valid_config",
    # Presets
    "DEFAULT_PIPELINE_CONFIG",
    "DEBUG_PIPELINE_CONFIG",
    "TESTING_PIPELINE_CONFIG",
]


# =============================================================================
# Constants
# =============================================================================

DEFAULT_ENV_PREFIX = "OTELRUNTIME"

DEFAULT_SERVICE_NAME = "client"
DEFAULT_SERVICE_VERSION = "0.1.0"
DEFAULT_ENVIRONMENT = "dev"
DEFAULT_OTLP_ENDPOINT = "localhost:4317"
DEFAULT_TRACER_NAME = "otelruntimemetrics.service.tracer"
DEFAULT_SPAN_NAME = "MyTrace"

DEPRECATED_RUNTIME_METRICS_ENV = "OTEL_PYTHON_X_DEPRECATED_RUNTIME_METRICS"
"""Switches runtime metrics to the legacy ``process.runtime.cpython.*`` names."""

SCHEMA_URL = "https://opentelemetry.io/schemas/1.26.0"
"""Semantic conventions schema the service identity attributes follow."""

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# =============================================================================
# Environment Variable Utilities
# =============================================================================


class EnvReader:
    """Reads typed environment variables with prefix support.

    Example:
        >>> reader = EnvReader(prefix="OTELRUNTIME")
        >>> period = reader.get_float("LOOP_PERIOD", default=30.0)
        >>> insecure = reader.get_bool("INSECURE", default=True)
    """

    def __init__(
        self,
        prefix: str = DEFAULT_ENV_PREFIX,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the environment reader.

        Args:
            prefix: Prefix for environment variable names.
            environ: Mapping to read from. Defaults to ``os.environ``.
        """
        self.prefix = prefix
        self._environ = environ if environ is not None else os.environ

    def _make_key(self, name: str) -> str:
        """Create full environment variable key with prefix."""
        if self.prefix:
            return f"{self.prefix}_{name}"
        return name

    def get(self, name: str, default: str | None = None) -> str | None:
        """Get a string environment variable.

        Empty values are treated as unset.
        """
        value = self._environ.get(self._make_key(name))
        if value is None or not value.strip():
            return default
        return value.strip()

    def get_int(self, name: str, default: int | None = None) -> int | None:
        """Get an integer environment variable.

        Raises:
            InvalidConfigValueError: If value cannot be parsed as int.
        """
        value = self.get(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid integer value for {self._make_key(name)}",
                config_key=self._make_key(name),
                value=value,
                expected="integer",
                cause=e,
            ) from e

    def get_float(self, name: str, default: float | None = None) -> float | None:
        """Get a float environment variable.

        Raises:
            InvalidConfigValueError: If value cannot be parsed as float.
        """
        value = self.get(name)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid float value for {self._make_key(name)}",
                config_key=self._make_key(name),
                value=value,
                expected="float",
                cause=e,
            ) from e

    def get_bool(self, name: str, default: bool | None = None) -> bool | None:
        """Get a boolean environment variable.

        Truthy values: "1", "true", "yes", "on" (case-insensitive)
        Falsy values: "0", "false", "no", "off" (case-insensitive)

        Raises:
            InvalidConfigValueError: If value cannot be parsed as bool.
        """
        value = self.get(name)
        if value is None:
            return default
        try:
            return _parse_bool(value)
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid boolean value for {self._make_key(name)}",
                config_key=self._make_key(name),
                value=value,
                expected="boolean (1/0, true/false, yes/no, on/off)",
            ) from e

    def get_exporter_type(
        self,
        name: str,
        default: ExporterType | None = None,
    ) -> ExporterType | None:
        """Get an exporter type environment variable.

        Raises:
            InvalidConfigValueError: If value is not a known exporter type.
        """
        value = self.get(name)
        if value is None:
            return default
        try:
            return ExporterType.from_string(value)
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid exporter type for {self._make_key(name)}",
                config_key=self._make_key(name),
                value=value,
                expected=", ".join(member.value for member in ExporterType),
                cause=e,
            ) from e


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lower_value = str(value).strip().lower()
    if lower_value in ("1", "true", "yes", "on"):
        return True
    if lower_value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


# =============================================================================
# File Configuration Utilities
# =============================================================================


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML configuration file.

    Raises:
        ConfigurationError: If YAML parsing fails.
    """
    import yaml

    try:
        with path.open() as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {path}",
            details={"path": str(path)},
            cause=e,
        ) from e


def _load_json(path: Path) -> dict[str, Any]:
    """Load JSON configuration file.

    Raises:
        ConfigurationError: If JSON parsing fails.
    """
    try:
        with path.open() as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Failed to parse JSON configuration: {path}",
            details={"path": str(path)},
            cause=e,
        ) from e


def load_config_file(path: Path) -> dict[str, Any]:
    """Load configuration from a file (JSON or YAML).

    Args:
        path: Path to configuration file.

    Returns:
        Parsed configuration dictionary.

    Raises:
        ConfigurationError: If file cannot be loaded.
    """
    if not path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {path}",
            details={"path": str(path)},
        )

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return _load_yaml(path)
    elif suffix == ".json":
        return _load_json(path)
    else:
        raise ConfigurationError(
            f"Unsupported configuration file format: {suffix}",
            details={"path": str(path), "suffix": suffix},
        )


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        raise InvalidConfigValueError(
            f"Configuration section '{key}' must be a mapping",
            config_key=key,
            value=value,
            expected="mapping",
        )
    return value


def _to_float(value: Any, key: str) -> float:
    if isinstance(value, bool):
        raise InvalidConfigValueError(
            f"{key} must be a number", config_key=key, value=value, expected="number"
        )
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise InvalidConfigValueError(
            f"{key} must be a number", config_key=key, value=value, expected="number", cause=e
        ) from e


def _to_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise InvalidConfigValueError(
            f"{key} must be an integer", config_key=key, value=value, expected="integer"
        )
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise InvalidConfigValueError(
            f"{key} must be an integer", config_key=key, value=value, expected="integer", cause=e
        ) from e


def _to_bool(value: Any, key: str) -> bool:
    try:
        return _parse_bool(value)
    except ValueError as e:
        raise InvalidConfigValueError(
            f"{key} must be a boolean", config_key=key, value=value, expected="boolean"
        ) from e


def _to_exporter_type(value: Any, key: str) -> ExporterType:
    if isinstance(value, ExporterType):
        return value
    try:
        return ExporterType.from_string(str(value))
    except ValueError as e:
        raise InvalidConfigValueError(
            str(e), config_key=key, value=value, expected="exporter type", cause=e
        ) from e


# =============================================================================
# Configuration Classes
# =============================================================================


@dataclass(frozen=True)
class ResourceConfig:
    """Service identity attached to all emitted telemetry."""

    service_name: str = DEFAULT_SERVICE_NAME
    """Name of the service producing telemetry."""

    service_version: str = DEFAULT_SERVICE_VERSION
    """Version of the service."""

    deployment_environment: str = DEFAULT_ENVIRONMENT
    """Deployment environment (dev, staging, production)."""

    additional_attributes: ResourceAttributes = field(default_factory=dict)
    """Additional resource attributes."""

    schema_url: str = SCHEMA_URL
    """Schema URL of the identity attributes."""

    def with_service_name(self, name: str) -> ResourceConfig:
        """Create a new config with updated service name."""
        return ResourceConfig(
            service_name=name,
            service_version=self.service_version,
            deployment_environment=self.deployment_environment,
            additional_attributes=self.additional_attributes,
            schema_url=self.schema_url,
        )

    def with_service_version(self, version: str) -> ResourceConfig:
        """Create a new config with updated service version."""
        return ResourceConfig(
            service_name=self.service_name,
            service_version=version,
            deployment_environment=self.deployment_environment,
            additional_attributes=self.additional_attributes,
            schema_url=self.schema_url,
        )

    def with_environment(self, environment: str) -> ResourceConfig:
        """Create a new config with updated deployment environment."""
        return ResourceConfig(
            service_name=self.service_name,
            service_version=self.service_version,
            deployment_environment=environment,
            additional_attributes=self.additional_attributes,
            schema_url=self.schema_url,
        )

    def with_attributes(self, **attributes: Any) -> ResourceConfig:
        """Create a new config with additional attributes."""
        merged = dict(self.additional_attributes)
        merged.update(attributes)
        return ResourceConfig(
            service_name=self.service_name,
            service_version=self.service_version,
            deployment_environment=self.deployment_environment,
            additional_attributes=merged,
            schema_url=self.schema_url,
        )

    def to_attributes(self) -> dict[str, Any]:
        """Convert to OpenTelemetry resource attributes dictionary."""
        attrs: dict[str, Any] = dict(self.additional_attributes)
        attrs.update(
            {
                "service.name": self.service_name,
                "service.version": self.service_version,
                "deployment.environment": self.deployment_environment,
            }
        )
        return attrs


@dataclass(frozen=True)
class OTLPExporterConfig:
    """How telemetry is sent to an OpenTelemetry collector over gRPC."""

    endpoint: str = DEFAULT_OTLP_ENDPOINT
    """Collector address, ``host:port`` or ``http(s)://host:port``."""

    insecure: bool = True
    """Whether to use an insecure channel (no TLS)."""

    compression: OTLPCompression = OTLPCompression.NONE
    """Compression algorithm for payloads."""

    headers: dict[str, str] = field(default_factory=dict)
    """Additional gRPC metadata sent with every export."""

    timeout_seconds: float = 10.0
    """Export request timeout in seconds."""

    verify_connection: bool = False
    """Whether to check the collector is reachable before handing the exporter out."""

    connect_timeout_seconds: float = 5.0
    """How long the connection check waits for the channel to become ready."""

    def with_endpoint(self, endpoint: str) -> OTLPExporterConfig:
        """Create a new config with updated endpoint."""
        return OTLPExporterConfig(
            endpoint=endpoint,
            insecure=self.insecure,
            compression=self.compression,
            headers=self.headers,
            timeout_seconds=self.timeout_seconds,
            verify_connection=self.verify_connection,
            connect_timeout_seconds=self.connect_timeout_seconds,
        )

    def with_insecure(self, insecure: bool) -> OTLPExporterConfig:
        """Create a new config with updated transport security flag."""
        return OTLPExporterConfig(
            endpoint=self.endpoint,
            insecure=insecure,
            compression=self.compression,
            headers=self.headers,
            timeout_seconds=self.timeout_seconds,
            verify_connection=self.verify_connection,
            connect_timeout_seconds=self.connect_timeout_seconds,
        )

    def with_compression(self, compression: OTLPCompression) -> OTLPExporterConfig:
        """Create a new config with updated compression."""
        return OTLPExporterConfig(
            endpoint=self.endpoint,
            insecure=self.insecure,
            compression=compression,
            headers=self.headers,
            timeout_seconds=self.timeout_seconds,
            verify_connection=self.verify_connection,
            connect_timeout_seconds=self.connect_timeout_seconds,
        )

    def with_headers(self, **headers: str) -> OTLPExporterConfig:
        """Create a new config with additional headers."""
        merged = dict(self.headers)
        merged.update(headers)
        return OTLPExporterConfig(
            endpoint=self.endpoint,
            insecure=self.insecure,
            compression=self.compression,
            headers=merged,
            timeout_seconds=self.timeout_seconds,
            verify_connection=self.verify_connection,
            connect_timeout_seconds=self.connect_timeout_seconds,
        )

    def with_timeout(self, timeout_seconds: float) -> OTLPExporterConfig:
        """Create a new config with updated export timeout."""
        return OTLPExporterConfig(
            endpoint=self.endpoint,
            insecure=self.insecure,
            compression=self.compression,
            headers=self.headers,
            timeout_seconds=timeout_seconds,
            verify_connection=self.verify_connection,
            connect_timeout_seconds=self.connect_timeout_seconds,
        )

    def with_connection_check(
        self,
        enabled: bool = True,
        timeout_seconds: float | None = None,
    ) -> OTLPExporterConfig:
        """Create a new config with the collector connection check toggled."""
        return OTLPExporterConfig(
            endpoint=self.endpoint,
            insecure=self.insecure,
            compression=self.compression,
            headers=self.headers,
            timeout_seconds=self.timeout_seconds,
            verify_connection=enabled,
            connect_timeout_seconds=(
                timeout_seconds if timeout_seconds is not None else self.connect_timeout_seconds
            ),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], prefix: str = "otlp") -> OTLPExporterConfig:
        """Create configuration from a dictionary section."""
        defaults = cls()
        headers = data.get("headers") or {}
        if not isinstance(headers, Mapping):
            raise InvalidConfigValueError(
                f"{prefix}.headers must be a mapping",
                config_key=f"{prefix}.headers",
                value=headers,
                expected="mapping",
            )
        compression_raw = data.get("compression", defaults.compression.value)
        try:
            compression = OTLPCompression(str(compression_raw).lower())
        except ValueError as e:
            raise InvalidConfigValueError(
                f"{prefix}.compression is not supported",
                config_key=f"{prefix}.compression",
                value=compression_raw,
                expected="none, gzip",
                cause=e,
            ) from e
        return cls(
            endpoint=str(data.get("endpoint", defaults.endpoint)),
            insecure=_to_bool(data.get("insecure", defaults.insecure), f"{prefix}.insecure"),
            compression=compression,
            headers={str(key): str(value) for key, value in headers.items()},
            timeout_seconds=_to_float(
                data.get("timeout_seconds", defaults.timeout_seconds), f"{prefix}.timeout_seconds"
            ),
            verify_connection=_to_bool(
                data.get("verify_connection", defaults.verify_connection),
                f"{prefix}.verify_connection",
            ),
            connect_timeout_seconds=_to_float(
                data.get("connect_timeout_seconds", defaults.connect_timeout_seconds),
                f"{prefix}.connect_timeout_seconds",
            ),
        )


@dataclass(frozen=True)
class BatchConfig:
    """Batching policy for exported spans.

    Spans are buffered and flushed on a timer or when a batch fills up.
    """

    max_queue_size: int = 2048
    """Maximum number of spans to queue before dropping."""

    max_export_batch_size: int = 512
    """Maximum number of spans per export batch."""

    export_timeout_seconds: float = 30.0
    """Maximum time to wait for an export to complete."""

    schedule_delay_seconds: float = 5.0
    """Delay between batch exports."""

    def with_queue_size(self, size: int) -> BatchConfig:
        """Create a new config with updated queue size."""
        return BatchConfig(
            max_queue_size=size,
            max_export_batch_size=self.max_export_batch_size,
            export_timeout_seconds=self.export_timeout_seconds,
            schedule_delay_seconds=self.schedule_delay_seconds,
        )

    def with_batch_size(self, size: int) -> BatchConfig:
        """Create a new config with updated batch size."""
        return BatchConfig(
            max_queue_size=self.max_queue_size,
            max_export_batch_size=size,
            export_timeout_seconds=self.export_timeout_seconds,
            schedule_delay_seconds=self.schedule_delay_seconds,
        )

    def with_schedule_delay(self, delay_seconds: float) -> BatchConfig:
        """Create a new config with updated schedule delay."""
        return BatchConfig(
            max_queue_size=self.max_queue_size,
            max_export_batch_size=self.max_export_batch_size,
            export_timeout_seconds=self.export_timeout_seconds,
            schedule_delay_seconds=delay_seconds,
        )


@dataclass(frozen=True)
class MetricReaderConfig:
    """Fixed-interval periodic reader policy for metrics."""

    export_interval_seconds: float = 10.0
    """Interval between metric collections/exports."""

    export_timeout_seconds: float = 30.0
    """Maximum time to wait for a metric export to complete."""

    def with_interval(self, interval_seconds: float) -> MetricReaderConfig:
        """Create a new config with updated export interval."""
        return MetricReaderConfig(
            export_interval_seconds=interval_seconds,
            export_timeout_seconds=self.export_timeout_seconds,
        )


@dataclass(frozen=True)
class RuntimeMetricsConfig:
    """Runtime (memory/GC) metric collection settings."""

    enabled: bool = True
    """Whether runtime metrics are collected."""

    minimum_read_interval_seconds: float = 10.0
    """Runtime statistics are read at most once per this interval."""

    deprecated_names: bool | None = None
    """Use legacy instrument names. None follows the environment flag."""

    def with_minimum_read_interval(self, interval_seconds: float) -> RuntimeMetricsConfig:
        """Create a new config with updated minimum read interval."""
        return RuntimeMetricsConfig(
            enabled=self.enabled,
            minimum_read_interval_seconds=interval_seconds,
            deprecated_names=self.deprecated_names,
        )

    def with_enabled(self, enabled: bool) -> RuntimeMetricsConfig:
        """Create a new config with runtime metrics toggled."""
        return RuntimeMetricsConfig(
            enabled=enabled,
            minimum_read_interval_seconds=self.minimum_read_interval_seconds,
            deprecated_names=self.deprecated_names,
        )

    def with_deprecated_names(self, deprecated: bool | None) -> RuntimeMetricsConfig:
        """Create a new config with the naming scheme pinned."""
        return RuntimeMetricsConfig(
            enabled=self.enabled,
            minimum_read_interval_seconds=self.minimum_read_interval_seconds,
            deprecated_names=deprecated,
        )


@dataclass(frozen=True)
class LoopConfig:
    """Span emission loop settings."""

    period_seconds: float = 30.0
    """Time between span emissions."""

    tracer_name: str = DEFAULT_TRACER_NAME
    """Instrumentation scope of the emitted spans."""

    span_name: str = DEFAULT_SPAN_NAME
    """Name of every emitted span."""

    max_iterations: int | None = None
    """Stop after this many spans. None runs until cancelled."""

    def with_period(self, period_seconds: float) -> LoopConfig:
        """Create a new config with updated period."""
        return LoopConfig(
            period_seconds=period_seconds,
            tracer_name=self.tracer_name,
            span_name=self.span_name,
            max_iterations=self.max_iterations,
        )

    def with_max_iterations(self, max_iterations: int | None) -> LoopConfig:
        """Create a new config with an iteration bound."""
        return LoopConfig(
            period_seconds=self.period_seconds,
            tracer_name=self.tracer_name,
            span_name=self.span_name,
            max_iterations=max_iterations,
        )


@dataclass(frozen=True)
class PipelineConfig:
    """Top-level configuration of the telemetry pipeline.

    Aggregates every setting the composition root needs. Use builder
    methods to customize.

    Example:
        config = PipelineConfig().with_endpoint("collector:4317").with_service_name("svc")
    """

    resource: ResourceConfig = field(default_factory=ResourceConfig)
    """Resource (service identity) configuration."""

    otlp: OTLPExporterConfig = field(default_factory=OTLPExporterConfig)
    """OTLP exporter configuration for traces (and metrics, unless overridden)."""

    metrics_otlp: OTLPExporterConfig | None = None
    """Separate OTLP configuration for metrics. None reuses ``otlp``."""

    traces_exporter: ExporterType = ExporterType.OTLP
    """Exporter type for traces."""

    metrics_exporter: ExporterType = ExporterType.OTLP
    """Exporter type for metrics. CONSOLE dumps metrics for troubleshooting."""

    batch: BatchConfig = field(default_factory=BatchConfig)
    """Span batching configuration."""

    metric_reader: MetricReaderConfig = field(default_factory=MetricReaderConfig)
    """Periodic metric reader configuration."""

    runtime: RuntimeMetricsConfig = field(default_factory=RuntimeMetricsConfig)
    """Runtime metrics configuration."""

    loop: LoopConfig = field(default_factory=LoopConfig)
    """Span emission loop configuration."""

    register_global: bool = False
    """Also register both providers as the process-wide OpenTelemetry defaults."""

    log_level: str = "INFO"
    """Logging level name."""

    @property
    def effective_metrics_otlp(self) -> OTLPExporterConfig:
        """OTLP configuration used for the metric exporter."""
        return self.metrics_otlp if self.metrics_otlp is not None else self.otlp

    def _copy(self, **changes: Any) -> PipelineConfig:
        values = {
            "resource": self.resource,
            "otlp": self.otlp,
            "metrics_otlp": self.metrics_otlp,
            "traces_exporter": self.traces_exporter,
            "metrics_exporter": self.metrics_exporter,
            "batch": self.batch,
            "metric_reader": self.metric_reader,
            "runtime": self.runtime,
            "loop": self.loop,
            "register_global": self.register_global,
            "log_level": self.log_level,
        }
        values.update(changes)
        return PipelineConfig(**values)

    def with_resource(self, resource: ResourceConfig) -> PipelineConfig:
        """Create a new config with updated resource configuration."""
        return self._copy(resource=resource)

    def with_service_name(self, name: str) -> PipelineConfig:
        """Create a new config with updated service name."""
        return self.with_resource(self.resource.with_service_name(name))

    def with_otlp(self, otlp: OTLPExporterConfig) -> PipelineConfig:
        """Create a new config with updated OTLP configuration."""
        return self._copy(otlp=otlp)

    def with_endpoint(self, endpoint: str) -> PipelineConfig:
        """Create a new config with updated OTLP endpoint."""
        return self.with_otlp(self.otlp.with_endpoint(endpoint))

    def with_metrics_otlp(self, metrics_otlp: OTLPExporterConfig | None) -> PipelineConfig:
        """Create a new config with a separate metrics OTLP configuration."""
        return self._copy(metrics_otlp=metrics_otlp)

    def with_exporters(
        self,
        traces: ExporterType | None = None,
        metrics: ExporterType | None = None,
    ) -> PipelineConfig:
        """Create a new config with updated exporter types."""
        return self._copy(
            traces_exporter=traces if traces is not None else self.traces_exporter,
            metrics_exporter=metrics if metrics is not None else self.metrics_exporter,
        )

    def with_batch(self, batch: BatchConfig) -> PipelineConfig:
        """Create a new config with updated batch configuration."""
        return self._copy(batch=batch)

    def with_metric_reader(self, metric_reader: MetricReaderConfig) -> PipelineConfig:
        """Create a new config with updated metric reader configuration."""
        return self._copy(metric_reader=metric_reader)

    def with_runtime(self, runtime: RuntimeMetricsConfig) -> PipelineConfig:
        """Create a new config with updated runtime metrics configuration."""
        return self._copy(runtime=runtime)

    def with_loop(self, loop: LoopConfig) -> PipelineConfig:
        """Create a new config with updated loop configuration."""
        return self._copy(loop=loop)

    def with_register_global(self, register_global: bool) -> PipelineConfig:
        """Create a new config with global provider registration toggled."""
        return self._copy(register_global=register_global)

    def with_log_level(self, log_level: str) -> PipelineConfig:
        """Create a new config with updated log level."""
        return self._copy(log_level=log_level)

    # -------------------------------------------------------------------------
    # Loaders
    # -------------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Create configuration from a dictionary.

        Expected layout::

            service: {name, version, environment, attributes}
            otlp: {endpoint, insecure, compression, headers, timeout_seconds,
                   verify_connection, connect_timeout_seconds}
            metrics_otlp: {...same keys as otlp...}
            exporters: {traces, metrics}
            batch: {max_queue_size, max_export_batch_size,
                    export_timeout_seconds, schedule_delay_seconds}
            metric_reader: {export_interval_seconds, export_timeout_seconds}
            runtime: {enabled, minimum_read_interval_seconds, deprecated_names}
            loop: {period_seconds, tracer_name, span_name, max_iterations}
            register_global: bool
            log_level: str

        Raises:
            InvalidConfigValueError: If a value has the wrong type.
        """
        service = _section(data, "service")
        attributes = service.get("attributes") or {}
        if not isinstance(attributes, Mapping):
            raise InvalidConfigValueError(
                "service.attributes must be a mapping",
                config_key="service.attributes",
                value=attributes,
                expected="mapping",
            )
        resource = ResourceConfig(
            service_name=str(service.get("name", DEFAULT_SERVICE_NAME)),
            service_version=str(service.get("version", DEFAULT_SERVICE_VERSION)),
            deployment_environment=str(service.get("environment", DEFAULT_ENVIRONMENT)),
            additional_attributes=dict(attributes),
        )

        otlp = OTLPExporterConfig.from_dict(_section(data, "otlp"))
        metrics_otlp_data = data.get("metrics_otlp")
        metrics_otlp = (
            OTLPExporterConfig.from_dict(_section(data, "metrics_otlp"), prefix="metrics_otlp")
            if metrics_otlp_data
            else None
        )

        exporters = _section(data, "exporters")
        batch_data = _section(data, "batch")
        batch_defaults = BatchConfig()
        batch = BatchConfig(
            max_queue_size=_to_int(
                batch_data.get("max_queue_size", batch_defaults.max_queue_size),
                "batch.max_queue_size",
            ),
            max_export_batch_size=_to_int(
                batch_data.get("max_export_batch_size", batch_defaults.max_export_batch_size),
                "batch.max_export_batch_size",
            ),
            export_timeout_seconds=_to_float(
                batch_data.get("export_timeout_seconds", batch_defaults.export_timeout_seconds),
                "batch.export_timeout_seconds",
            ),
            schedule_delay_seconds=_to_float(
                batch_data.get("schedule_delay_seconds", batch_defaults.schedule_delay_seconds),
                "batch.schedule_delay_seconds",
            ),
        )

        reader_data = _section(data, "metric_reader")
        reader_defaults = MetricReaderConfig()
        metric_reader = MetricReaderConfig(
            export_interval_seconds=_to_float(
                reader_data.get("export_interval_seconds", reader_defaults.export_interval_seconds),
                "metric_reader.export_interval_seconds",
            ),
            export_timeout_seconds=_to_float(
                reader_data.get("export_timeout_seconds", reader_defaults.export_timeout_seconds),
                "metric_reader.export_timeout_seconds",
            ),
        )

        runtime_data = _section(data, "runtime")
        runtime_defaults = RuntimeMetricsConfig()
        deprecated_raw = runtime_data.get("deprecated_names")
        runtime = RuntimeMetricsConfig(
            enabled=_to_bool(runtime_data.get("enabled", runtime_defaults.enabled), "runtime.enabled"),
            minimum_read_interval_seconds=_to_float(
                runtime_data.get(
                    "minimum_read_interval_seconds",
                    runtime_defaults.minimum_read_interval_seconds,
                ),
                "runtime.minimum_read_interval_seconds",
            ),
            deprecated_names=(
                None if deprecated_raw is None
                else _to_bool(deprecated_raw, "runtime.deprecated_names")
            ),
        )

        loop_data = _section(data, "loop")
        loop_defaults = LoopConfig()
        max_iterations_raw = loop_data.get("max_iterations")
        loop = LoopConfig(
            period_seconds=_to_float(
                loop_data.get("period_seconds", loop_defaults.period_seconds), "loop.period_seconds"
            ),
            tracer_name=str(loop_data.get("tracer_name", loop_defaults.tracer_name)),
            span_name=str(loop_data.get("span_name", loop_defaults.span_name)),
            max_iterations=(
                None if max_iterations_raw is None
                else _to_int(max_iterations_raw, "loop.max_iterations")
            ),
        )

        return cls(
            resource=resource,
            otlp=otlp,
            metrics_otlp=metrics_otlp,
            traces_exporter=_to_exporter_type(
                exporters.get("traces", ExporterType.OTLP.value), "exporters.traces"
            ),
            metrics_exporter=_to_exporter_type(
                exporters.get("metrics", ExporterType.OTLP.value), "exporters.metrics"
            ),
            batch=batch,
            metric_reader=metric_reader,
            runtime=runtime,
            loop=loop,
            register_global=_to_bool(data.get("register_global", False), "register_global"),
            log_level=str(data.get("log_level", "INFO")).upper(),
        )

    @classmethod
    def from_env(
        cls,
        prefix: str = DEFAULT_ENV_PREFIX,
        base: PipelineConfig | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> PipelineConfig:
        """Create configuration from environment variables.

        Only variables that are set override ``base`` (defaults when None).

        Environment Variables:
            {PREFIX}_SERVICE_NAME: Service name (string)
            {PREFIX}_SERVICE_VERSION: Service version (string)
            {PREFIX}_ENVIRONMENT: Deployment environment (string)
            {PREFIX}_ENDPOINT: Collector address for traces and metrics
            {PREFIX}_METRICS_ENDPOINT: Separate collector address for metrics
            {PREFIX}_INSECURE: Use an insecure channel (bool)
            {PREFIX}_VERIFY_CONNECTION: Check the collector is reachable at startup (bool)
            {PREFIX}_TRACES_EXPORTER: otlp | console | memory | none
            {PREFIX}_METRICS_EXPORTER: otlp | console | memory | none
            {PREFIX}_METRIC_INTERVAL: Metric export interval seconds (float)
            {PREFIX}_RUNTIME_MIN_INTERVAL: Runtime stats minimum read interval (float)
            {PREFIX}_RUNTIME_ENABLED: Collect runtime metrics (bool)
            {PREFIX}_LOOP_PERIOD: Span emission period seconds (float)
            {PREFIX}_MAX_ITERATIONS: Stop after N spans (int)
            {PREFIX}_REGISTER_GLOBAL: Register providers globally (bool)
            {PREFIX}_LOG_LEVEL: Logging level (string)

        Raises:
            InvalidConfigValueError: If a variable cannot be parsed.
        """
        env = EnvReader(prefix, environ=environ)
        config = base or cls()

        resource = config.resource
        if (name := env.get("SERVICE_NAME")) is not None:
            resource = resource.with_service_name(name)
        if (version := env.get("SERVICE_VERSION")) is not None:
            resource = resource.with_service_version(version)
        if (environment := env.get("ENVIRONMENT")) is not None:
            resource = resource.with_environment(environment)

        otlp = config.otlp
        if (endpoint := env.get("ENDPOINT")) is not None:
            otlp = otlp.with_endpoint(endpoint)
        if (insecure := env.get_bool("INSECURE")) is not None:
            otlp = otlp.with_insecure(insecure)
        if (verify := env.get_bool("VERIFY_CONNECTION")) is not None:
            otlp = otlp.with_connection_check(verify)

        metrics_otlp = config.metrics_otlp
        if (metrics_endpoint := env.get("METRICS_ENDPOINT")) is not None:
            metrics_otlp = (metrics_otlp or otlp).with_endpoint(metrics_endpoint)
        if verify is not None and metrics_otlp is not None:
            metrics_otlp = metrics_otlp.with_connection_check(verify)

        metric_reader = config.metric_reader
        if (interval := env.get_float("METRIC_INTERVAL")) is not None:
            metric_reader = metric_reader.with_interval(interval)

        runtime = config.runtime
        if (min_interval := env.get_float("RUNTIME_MIN_INTERVAL")) is not None:
            runtime = runtime.with_minimum_read_interval(min_interval)
        if (runtime_enabled := env.get_bool("RUNTIME_ENABLED")) is not None:
            runtime = runtime.with_enabled(runtime_enabled)

        loop = config.loop
        if (period := env.get_float("LOOP_PERIOD")) is not None:
            loop = loop.with_period(period)
        if (max_iterations := env.get_int("MAX_ITERATIONS")) is not None:
            loop = loop.with_max_iterations(max_iterations)

        register_global = env.get_bool("REGISTER_GLOBAL")
        log_level = env.get("LOG_LEVEL")

        return config._copy(
            resource=resource,
            otlp=otlp,
            metrics_otlp=metrics_otlp,
            traces_exporter=env.get_exporter_type("TRACES_EXPORTER", config.traces_exporter),
            metrics_exporter=env.get_exporter_type("METRICS_EXPORTER", config.metrics_exporter),
            metric_reader=metric_reader,
            runtime=runtime,
            loop=loop,
            register_global=register_global if register_global is not None else config.register_global,
            log_level=log_level.upper() if log_level is not None else config.log_level,
        )

    @classmethod
    def from_file(cls, path: Path | str) -> Self:
        """Create configuration from a JSON or YAML file."""
        return cls.from_dict(load_config_file(Path(path)))

    @classmethod
    def load(
        cls,
        config_file: Path | str | None = None,
        env_prefix: str = DEFAULT_ENV_PREFIX,
        environ: Mapping[str, str] | None = None,
    ) -> PipelineConfig:
        """Load configuration from defaults, an optional file and the environment.

        The file is ``config_file`` or, when None, ``{PREFIX}_CONFIG_FILE``.
        Environment variables take precedence over the file.
        """
        env = EnvReader(env_prefix, environ=environ)
        file_path = config_file or env.get("CONFIG_FILE")

        base = cls.from_file(file_path) if file_path else cls()
        return cls.from_env(env_prefix, base=base, environ=environ)


# =============================================================================
# Validation Utilities
# =============================================================================


def validate_config(config: PipelineConfig) -> list[str]:
    """Validate configuration and return list of issues.

    Args:
        config: Configuration to validate.

    Returns:
        List of validation issue messages (empty if valid).
    """
    issues: list[str] = []

    if config.log_level.upper() not in _VALID_LOG_LEVELS:
        issues.append(
            f"Invalid log_level: {config.log_level}. "
            f"Must be one of: {', '.join(_VALID_LOG_LEVELS)}"
        )

    if not config.resource.service_name:
        issues.append("Invalid service_name: must be a non-empty string.")

    for label, otlp in (("otlp", config.otlp), ("metrics_otlp", config.metrics_otlp)):
        if otlp is None:
            continue
        if otlp.timeout_seconds <= 0:
            issues.append(f"Invalid {label}.timeout_seconds: {otlp.timeout_seconds}. Must be positive.")
        if otlp.verify_connection and otlp.connect_timeout_seconds <= 0:
            issues.append(
                f"Invalid {label}.connect_timeout_seconds: "
                f"{otlp.connect_timeout_seconds}. Must be positive."
            )

    if config.batch.max_queue_size <= 0:
        issues.append(f"Invalid batch.max_queue_size: {config.batch.max_queue_size}. Must be positive.")
    if not 0 < config.batch.max_export_batch_size <= config.batch.max_queue_size:
        issues.append(
            f"Invalid batch.max_export_batch_size: {config.batch.max_export_batch_size}. "
            "Must be positive and not exceed max_queue_size."
        )
    if config.batch.schedule_delay_seconds <= 0:
        issues.append(
            f"Invalid batch.schedule_delay_seconds: {config.batch.schedule_delay_seconds}. "
            "Must be positive."
        )

    if config.metric_reader.export_interval_seconds <= 0:
        issues.append(
            f"Invalid metric_reader.export_interval_seconds: "
            f"{config.metric_reader.export_interval_seconds}. Must be positive."
        )
    if config.runtime.minimum_read_interval_seconds < 0:
        issues.append(
            f"Invalid runtime.minimum_read_interval_seconds: "
            f"{config.runtime.minimum_read_interval_seconds}. Must be non-negative."
        )
    if (
        config.runtime.enabled
        and config.metrics_exporter in (ExporterType.OTLP, ExporterType.CONSOLE)
        and 0 < config.metric_reader.export_interval_seconds < config.runtime.minimum_read_interval_seconds
    ):
        issues.append(
            f"Invalid metric_reader.export_interval_seconds: "
            f"{config.metric_reader.export_interval_seconds}. Must not be shorter than "
            f"runtime.minimum_read_interval_seconds "
            f"({config.runtime.minimum_read_interval_seconds}) while runtime metrics are enabled."
        )

    if config.loop.period_seconds <= 0:
        issues.append(f"Invalid loop.period_seconds: {config.loop.period_seconds}. Must be positive.")
    if config.loop.max_iterations is not None and config.loop.max_iterations < 0:
        issues.append(
            f"Invalid loop.max_iterations: {config.loop.max_iterations}. Must be non-negative."
        )
    if not config.loop.span_name:
        issues.append("Invalid loop.span_name: must be a non-empty string.")

    return issues


def require_valid_config(config: PipelineConfig) -> None:
    """Validate configuration and raise if invalid.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    issues = validate_config(config)
    if issues:
        raise ConfigurationError(
            "Invalid configuration",
            details={"issues": issues},
        )


# =============================================================================
# Preset Configurations
# =============================================================================

DEFAULT_PIPELINE_CONFIG = PipelineConfig()
"""OTLP export of traces and metrics to the default collector."""

DEBUG_PIPELINE_CONFIG = PipelineConfig(metrics_exporter=ExporterType.CONSOLE)
"""Traces over OTLP, metrics dumped to stdout for troubleshooting."""

TESTING_PIPELINE_CONFIG = PipelineConfig(
    traces_exporter=ExporterType.MEMORY,
    metrics_exporter=ExporterType.MEMORY,
    resource=ResourceConfig(deployment_environment="testing"),
)
"""In-memory exporters for tests."""
