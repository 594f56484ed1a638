"""Telemetry providers.

This module provides the resource descriptor builder and configured
MeterProvider and TracerProvider wrappers.
"""

from otelruntimemetrics.providers.meter import (
    TelemetryMeterProvider,
    create_meter_provider,
    set_global_meter_provider,
)
from otelruntimemetrics.providers.resource import (
    EnvironmentResourceDetector,
    HostResourceDetector,
    build_resource,
    get_default_resource,
    merge_resources,
    parse_resource_attributes,
)
from otelruntimemetrics.providers.tracer import (
    TelemetryTracerProvider,
    create_tracer_provider,
    set_global_tracer_provider,
)

__all__ = [
    # Resource
    "build_resource",
    "get_default_resource",
    "merge_resources",
    "parse_resource_attributes",
    "EnvironmentResourceDetector",
    "HostResourceDetector",
    # Meter provider
    "TelemetryMeterProvider",
    "create_meter_provider",
    "set_global_meter_provider",
    # Tracer provider
    "TelemetryTracerProvider",
    "create_tracer_provider",
    "set_global_tracer_provider",
]
