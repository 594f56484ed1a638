"""Command line entry point.

Starts the telemetry pipeline, emits one span per period until SIGINT or
SIGTERM, then shuts the pipeline down.

Exit codes:
    0: clean shutdown after an interrupt (or after ``--max-iterations``)
    1: startup failure (configuration, resource, exporter, provider or
       runtime instrumentation)
    2: one or more shutdown steps failed
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from otelruntimemetrics.config import (
    DEPRECATED_RUNTIME_METRICS_ENV,
    LoopConfig,
    PipelineConfig,
)
from otelruntimemetrics.exceptions import ShutdownError, TelemetryError
from otelruntimemetrics.logging import configure_logging
from otelruntimemetrics.loop import SpanLoop
from otelruntimemetrics.pipeline import TelemetryPipeline
from otelruntimemetrics.types import ExporterType

if TYPE_CHECKING:
    from opentelemetry.sdk.metrics.export import MetricExporter, MetricReader
    from opentelemetry.sdk.trace.export import SpanExporter

__all__ = [
    "EXIT_OK",
    "EXIT_STARTUP_FAILURE",
    "EXIT_SHUTDOWN_FAILURE",
    "build_parser",
    "config_from_args",
    "install_signal_handlers",
    "main",
    "run",
]

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STARTUP_FAILURE = 1
EXIT_SHUTDOWN_FAILURE = 2

_EXPORTER_CHOICES = [member.value for member in ExporterType]


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="otelruntimemetrics",
        description="Emit a span every period and export runtime metrics over OTLP",
    )
    parser.add_argument("--config", "-c", help="Path to a YAML or JSON configuration file")
    parser.add_argument("--endpoint", help="Collector endpoint (host:port)")
    parser.add_argument("--metrics-endpoint", help="Separate collector endpoint for metrics")
    parser.add_argument("--traces-exporter", choices=_EXPORTER_CHOICES)
    parser.add_argument(
        "--metrics-exporter",
        choices=_EXPORTER_CHOICES,
        help="Use 'console' to dump metrics to stdout for troubleshooting",
    )
    parser.add_argument("--period", type=float, help="Seconds between spans")
    parser.add_argument("--max-iterations", type=int, help="Stop after this many spans")
    parser.add_argument(
        "--verify-connection",
        action="store_true",
        default=None,
        help="Fail at startup if the collector is not reachable",
    )
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR or CRITICAL")
    return parser


def config_from_args(
    args: argparse.Namespace,
    environ: Mapping[str, str] | None = None,
) -> PipelineConfig:
    """Load configuration and apply command line overrides.

    Command line flags take precedence over environment variables, which
    take precedence over the configuration file.

    Raises:
        ConfigurationError: If the file or environment is invalid.
    """
    config = PipelineConfig.load(args.config, environ=environ)

    if args.endpoint:
        config = config.with_endpoint(args.endpoint)
    if args.metrics_endpoint:
        config = config.with_metrics_otlp(
            config.effective_metrics_otlp.with_endpoint(args.metrics_endpoint)
        )
    if args.traces_exporter or args.metrics_exporter:
        config = config.with_exporters(
            traces=ExporterType.from_string(args.traces_exporter) if args.traces_exporter else None,
            metrics=ExporterType.from_string(args.metrics_exporter) if args.metrics_exporter else None,
        )
    if args.verify_connection:
        config = config.with_otlp(config.otlp.with_connection_check(True))
        if config.metrics_otlp is not None:
            config = config.with_metrics_otlp(config.metrics_otlp.with_connection_check(True))

    loop: LoopConfig = config.loop
    if args.period is not None:
        loop = loop.with_period(args.period)
    if args.max_iterations is not None:
        loop = loop.with_max_iterations(args.max_iterations)
    config = config.with_loop(loop)

    if args.log_level:
        config = config.with_log_level(args.log_level.upper())
    return config


def install_signal_handlers(cancel: threading.Event) -> Callable[[], None]:
    """Route SIGINT and SIGTERM to ``cancel``.

    Handlers can only be installed from the main thread; elsewhere this is
    a no-op.

    Returns:
        A callable that restores the previous handlers.
    """
    if threading.current_thread() is not threading.main_thread():
        return lambda: None

    def _handle(signum: int, frame: Any) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        cancel.set()

    previous = {
        signum: signal.signal(signum, _handle)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }

    def restore() -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    return restore


def _shutdown(pipeline: TelemetryPipeline) -> bool:
    try:
        pipeline.shutdown()
    except ShutdownError as e:
        logger.error(f"Telemetry shutdown failed: {e}")
        return False
    return True


def run(
    config: PipelineConfig,
    cancel: threading.Event | None = None,
    span_exporter: SpanExporter | None = None,
    metric_exporter: MetricExporter | MetricReader | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    """Run the service until ``cancel`` is set.

    Returns:
        Process exit code.
    """
    cancel = cancel or threading.Event()
    pipeline = TelemetryPipeline(
        config,
        span_exporter=span_exporter,
        metric_exporter=metric_exporter,
        environ=environ,
    )

    try:
        context = pipeline.start()
    except TelemetryError as e:
        logger.error(f"Telemetry startup failed: {e}")
        return EXIT_STARTUP_FAILURE

    try:
        emitted = SpanLoop(context.tracer_provider, config.loop, cancel).run()
    except BaseException:
        _shutdown(pipeline)
        raise

    logger.info(f"Emitted {emitted} span(s)")
    return EXIT_OK if _shutdown(pipeline) else EXIT_SHUTDOWN_FAILURE


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    # Runtime metrics use the legacy instrument names
    os.environ[DEPRECATED_RUNTIME_METRICS_ENV] = "true"

    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or "INFO")

    try:
        config = config_from_args(args)
    except TelemetryError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_STARTUP_FAILURE

    configure_logging(config.log_level)

    cancel = threading.Event()
    restore_signals = install_signal_handlers(cancel)
    try:
        return run(config, cancel)
    finally:
        restore_signals()


if __name__ == "__main__":
    sys.exit(main())
