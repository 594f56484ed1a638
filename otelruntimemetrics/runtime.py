"""Runtime metrics instrumentation.

Attaches ``SystemMetricsInstrumentor`` from
``opentelemetry-instrumentation-system-metrics`` to a meter provider,
restricted to the process runtime instruments: memory, CPU time, thread
count and garbage collector activity.

The instrumentor reads statistics when the meter provider's reader collects,
so the minimum read interval is enforced on the reader: a periodic reader
exporting more often than ``minimum_read_interval_seconds`` is rejected.

Instrument names follow one of two schemes:

    =========================  ===========================================
    current                    legacy (deprecated flag set)
    =========================  ===========================================
    process.memory.usage       process.runtime.cpython.memory {type=rss}
    process.memory.virtual     process.runtime.cpython.memory {type=vms}
    process.cpu.time           process.runtime.cpython.cpu_time
    process.thread.count       process.runtime.cpython.thread_count
    cpython.gc.collections     process.runtime.cpython.gc_count
    cpython.gc.collected_objects        (current only)
    cpython.gc.uncollectable_objects    (current only)
    =========================  ===========================================

Example:
    >>> runtime = start_runtime_instrumentation(meter_provider, RuntimeMetricsConfig())
    >>> ...
    >>> runtime.stop()
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING

import psutil
from opentelemetry.instrumentation.system_metrics import SystemMetricsInstrumentor

from otelruntimemetrics.config import DEPRECATED_RUNTIME_METRICS_ENV, RuntimeMetricsConfig
from otelruntimemetrics.exceptions import RuntimeInstrumentationError

if TYPE_CHECKING:
    from otelruntimemetrics.providers.meter import TelemetryMeterProvider

__all__ = [
    "LEGACY_RUNTIME_METRICS",
    "RUNTIME_METRICS",
    "RuntimeInstrumentation",
    "deprecated_names_enabled",
    "start_runtime_instrumentation",
]

logger = logging.getLogger(__name__)

_active_lock = threading.Lock()
_active: RuntimeInstrumentation | None = None

LEGACY_RUNTIME_METRICS: dict[str, list[str] | None] = {
    "process.runtime.memory": ["rss", "vms"],
    "process.runtime.cpu.time": ["user", "system"],
    "process.runtime.thread_count": None,
    "process.runtime.gc_count": None,
}
"""Instrumentor config selecting the ``process.runtime.cpython.*`` instruments."""

RUNTIME_METRICS: dict[str, list[str] | None] = {
    "process.memory.usage": None,
    "process.memory.virtual": None,
    "process.cpu.time": ["user", "system"],
    "process.thread.count": None,
    "cpython.gc.collections": None,
    "cpython.gc.collected_objects": None,
    "cpython.gc.uncollectable_objects": None,
}
"""Instrumentor config selecting the current runtime instruments."""


def deprecated_names_enabled(environ: Mapping[str, str] | None = None) -> bool:
    """Check whether the legacy runtime metric names are requested."""
    environ = environ if environ is not None else os.environ
    return environ.get(DEPRECATED_RUNTIME_METRICS_ENV, "").strip().lower() == "true"


class RuntimeInstrumentation:
    """Handle on a running SystemMetricsInstrumentor.

    The instrumentor is a process-wide singleton, so only one runtime
    instrumentation can be active at a time. ``stop()`` uninstruments it.
    """

    def __init__(
        self,
        instrumentor: SystemMetricsInstrumentor,
        deprecated_names: bool,
        metrics: Mapping[str, list[str] | None],
    ) -> None:
        self._instrumentor = instrumentor
        self._deprecated_names = deprecated_names
        self._metrics = dict(metrics)
        self._stopped = False

    @property
    def instrumentor(self) -> SystemMetricsInstrumentor:
        return self._instrumentor

    @property
    def deprecated_names(self) -> bool:
        """Whether instruments use the legacy names."""
        return self._deprecated_names

    @property
    def metrics(self) -> dict[str, list[str] | None]:
        """Instrumentor config the runtime instruments were selected with."""
        return dict(self._metrics)

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    def stop(self) -> None:
        """Uninstrument. Safe to call more than once."""
        global _active
        with _active_lock:
            if self._stopped:
                return
            self._stopped = True
            if _active is self:
                _active = None
            self._instrumentor.uninstrument()
        logger.info("Runtime instrumentation stopped")


def _check_read_interval(meter_provider: TelemetryMeterProvider, config: RuntimeMetricsConfig) -> None:
    interval = meter_provider.export_interval_seconds
    if interval is not None and interval < config.minimum_read_interval_seconds:
        raise RuntimeInstrumentationError(
            f"Metric export interval {interval}s is shorter than the runtime "
            f"minimum read interval {config.minimum_read_interval_seconds}s"
        )


def start_runtime_instrumentation(
    meter_provider: TelemetryMeterProvider | None,
    config: RuntimeMetricsConfig | None = None,
    environ: Mapping[str, str] | None = None,
) -> RuntimeInstrumentation:
    """Start runtime memory/GC metric collection.

    Args:
        meter_provider: Provider the runtime instruments are created on.
        config: Runtime metrics configuration. If None, uses defaults.
        environ: Environment consulted for the legacy naming flag when
            ``config.deprecated_names`` is None.

    Returns:
        The running instrumentation. Call ``stop()`` to detach it.

    Raises:
        RuntimeInstrumentationError: If the provider is missing or shut down,
            its reader collects more often than the minimum read interval,
            or runtime instrumentation is already active.
    """
    config = config or RuntimeMetricsConfig()

    if meter_provider is None:
        raise RuntimeInstrumentationError("Cannot start runtime instrumentation without a meter provider")
    if getattr(meter_provider, "is_shutdown", False):
        raise RuntimeInstrumentationError(
            "Cannot start runtime instrumentation on a shut down meter provider"
        )
    _check_read_interval(meter_provider, config)

    deprecated = (
        config.deprecated_names
        if config.deprecated_names is not None
        else deprecated_names_enabled(environ)
    )
    metrics = LEGACY_RUNTIME_METRICS if deprecated else RUNTIME_METRICS

    global _active
    logger.info("Starting runtime instrumentation")
    with _active_lock:
        if _active is not None:
            raise RuntimeInstrumentationError("Runtime instrumentation is already active")
        try:
            instrumentor = SystemMetricsInstrumentor(config=dict(metrics))
            instrumentor.instrument(meter_provider=meter_provider.provider)
        except psutil.Error as e:
            raise RuntimeInstrumentationError(
                f"Failed to start runtime instrumentation: {e}",
                cause=e,
            ) from e
        runtime = RuntimeInstrumentation(instrumentor, deprecated, metrics)
        _active = runtime

    logger.debug(
        f"Runtime instrumentation started with {len(metrics)} instruments "
        f"(minimum read interval {config.minimum_read_interval_seconds}s)"
    )
    return runtime
