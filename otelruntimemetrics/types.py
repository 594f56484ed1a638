"""Type definitions for the telemetry pipeline.

This module defines enums and type aliases used throughout the pipeline.
"""

from collections.abc import Mapping, Sequence
from enum import Enum

__all__ = [
    # Enums
    "ExporterType",
    "OTLPCompression",
    "LoopState",
    "TelemetrySignal",
    # Type aliases
    "AttributeValue",
    "ResourceAttributes",
]


class ExporterType(Enum):
    """Types of telemetry exporters.

    Used to select the exporter for traces and for metrics independently.
    """

    OTLP = "otlp"
    """OTLP gRPC exporter - sends data to an OpenTelemetry collector."""

    CONSOLE = "console"
    """Console exporter - dumps data to stdout for troubleshooting."""

    MEMORY = "memory"
    """In-memory exporter - keeps data in memory for tests."""

    NONE = "none"
    """No exporter - data is discarded."""

    @classmethod
    def from_string(cls, value: str) -> "ExporterType":
        """Parse an exporter type name (case-insensitive)."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown exporter type {value!r}; expected one of: {valid}") from None


class OTLPCompression(Enum):
    """OTLP payload compression options."""

    NONE = "none"
    GZIP = "gzip"


class TelemetrySignal(Enum):
    """Telemetry signal an exporter is built for."""

    TRACES = "traces"
    METRICS = "metrics"


class LoopState(Enum):
    """Lifecycle state of the span emission loop."""

    RUNNING = "running"
    """Emitting one span per period."""

    SHUTTING_DOWN = "shutting_down"
    """Cancellation observed; no further spans are emitted."""

    STOPPED = "stopped"
    """Loop has returned."""


AttributeValue = str | int | float | bool | Sequence[str] | Sequence[int] | Sequence[float] | Sequence[bool]
"""Valid attribute value types per OpenTelemetry specification."""

ResourceAttributes = Mapping[str, AttributeValue]
"""Resource attributes identifying the entity producing telemetry."""
