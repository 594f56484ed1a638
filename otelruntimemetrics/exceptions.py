"""Exception hierarchy for the telemetry pipeline.

Every failure the pipeline can surface is a TelemetryError, so the
composition root can catch startup and shutdown failures at a single point
and map them to a diagnostic line and an exit code.

Exception Hierarchy:
    TelemetryError (base)
    ├── ConfigurationError
    │   └── InvalidConfigValueError
    ├── ResourceConstructionError
    ├── ExporterConstructionError
    ├── ProviderError
    │   └── ProviderClosedError
    ├── RuntimeInstrumentationError
    └── ShutdownError

Example:
    >>> try:
    ...     pipeline = TelemetryPipeline(config).start()
    ... except ExporterConstructionError as e:
    ...     logger.error(f"Collector unusable: {e}")
    ... except TelemetryError as e:
    ...     logger.error(f"Telemetry startup failed: {e}")
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "TelemetryError",
    "ConfigurationError",
    "InvalidConfigValueError",
    "ResourceConstructionError",
    "ExporterConstructionError",
    "ProviderError",
    "ProviderClosedError",
    "RuntimeInstrumentationError",
    "PipelineClosedError",
    "ShutdownError",
    "ShutdownStepFailure",
]


class TelemetryError(Exception):
    """Base exception for all telemetry pipeline errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
        cause: Optional original exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
            cause: Optional original exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        """Return string representation with details if present."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"cause={self.cause!r})"
        )


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(TelemetryError):
    """Raised when pipeline configuration is missing, unreadable or invalid.

    Attributes:
        config_key: Optional key that caused the configuration error.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details=details, cause=cause)
        self.config_key = config_key


class InvalidConfigValueError(ConfigurationError):
    """Raised when a configuration value has the wrong type or is out of bounds.

    Attributes:
        config_key: The configuration key with invalid value.
        value: The invalid value that was provided.
        expected: Description of what was expected.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str,
        value: Any = None,
        expected: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        details["value"] = value
        if expected:
            details["expected"] = expected
        super().__init__(message, config_key=config_key, details=details, cause=cause)
        self.value = value
        self.expected = expected


# =============================================================================
# Startup Errors
# =============================================================================


class ResourceConstructionError(TelemetryError):
    """Raised when the resource descriptor cannot be built.

    Covers malformed resource environment variables and detectors that fail
    irrecoverably. Always fatal at startup.
    """

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if source:
            details["source"] = source
        super().__init__(message, details=details, cause=cause)
        self.source = source


class ExporterConstructionError(TelemetryError):
    """Raised when an exporter transport cannot be initialized.

    Attributes:
        exporter_type: The exporter type that failed (otlp, console, ...).
        signal: The telemetry signal the exporter was for (traces/metrics).
        endpoint: The collector endpoint, when one was involved.
    """

    def __init__(
        self,
        message: str,
        *,
        exporter_type: str | None = None,
        signal: str | None = None,
        endpoint: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if exporter_type:
            details["exporter_type"] = exporter_type
        if signal:
            details["signal"] = signal
        if endpoint:
            details["endpoint"] = endpoint
        super().__init__(message, details=details, cause=cause)
        self.exporter_type = exporter_type
        self.signal = signal
        self.endpoint = endpoint


class ProviderError(TelemetryError):
    """Raised when a tracer or meter provider cannot be assembled or used.

    Attributes:
        provider_type: The type of provider (meter/tracer) that failed.
    """

    def __init__(
        self,
        message: str,
        *,
        provider_type: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if provider_type:
            details["provider_type"] = provider_type
        super().__init__(message, details=details, cause=cause)
        self.provider_type = provider_type


class ProviderClosedError(ProviderError):
    """Raised when a provider is used after its shutdown completed."""

    def __init__(self, provider_type: str) -> None:
        super().__init__(
            f"{provider_type.capitalize()} provider has been shut down",
            provider_type=provider_type,
        )


class RuntimeInstrumentationError(TelemetryError):
    """Raised when runtime metric collection cannot be started."""


class PipelineClosedError(TelemetryError):
    """Raised when a pipeline is started after it failed or was shut down."""

    def __init__(self) -> None:
        super().__init__("Telemetry pipeline has already failed or been shut down")


# =============================================================================
# Shutdown Errors
# =============================================================================


class ShutdownStepFailure:
    """One failed release step recorded during shutdown."""

    __slots__ = ("name", "error")

    def __init__(self, name: str, error: BaseException) -> None:
        self.name = name
        self.error = error

    def __repr__(self) -> str:
        return f"ShutdownStepFailure(name={self.name!r}, error={self.error!r})"


class ShutdownError(TelemetryError):
    """Raised after a shutdown sequence in which one or more steps failed.

    All steps are attempted before this is raised; ``failures`` lists every
    step that failed, in the order the steps ran.

    Attributes:
        failures: Failed steps in execution order.
    """

    def __init__(self, failures: list[ShutdownStepFailure]) -> None:
        names = ", ".join(failure.name for failure in failures)
        super().__init__(
            f"Shutdown failed for {len(failures)} step(s): {names}",
            details={
                "failed_steps": [failure.name for failure in failures],
            },
            cause=failures[0].error if failures and isinstance(failures[0].error, Exception) else None,
        )
        self.failures = list(failures)

    @property
    def failed_steps(self) -> list[str]:
        """Names of the failed steps."""
        return [failure.name for failure in self.failures]
