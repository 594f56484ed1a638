"""Tests for the command line entry point."""

import io
import logging
import os
import signal
import threading
from unittest.mock import patch

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from otelruntimemetrics.app import (
    EXIT_OK,
    EXIT_SHUTDOWN_FAILURE,
    EXIT_STARTUP_FAILURE,
    build_parser,
    config_from_args,
    install_signal_handlers,
    main,
    run,
)
from otelruntimemetrics.config import TESTING_PIPELINE_CONFIG, LoopConfig, OTLPExporterConfig
from otelruntimemetrics.exceptions import ProviderError
from otelruntimemetrics.logging import LOG_FORMAT, LogLevel, SensitiveDataFilter, configure_logging
from otelruntimemetrics.providers.meter import TelemetryMeterProvider
from otelruntimemetrics.types import ExporterType


@pytest.fixture
def quick_config():
    return TESTING_PIPELINE_CONFIG.with_loop(LoopConfig(period_seconds=0.01, max_iterations=2))


class TestConfigFromArgs:
    """Tests for command line overrides."""

    def test_defaults(self):
        """Test that no flags leaves loaded configuration alone."""
        args = build_parser().parse_args([])
        config = config_from_args(args, environ={})
        assert config.otlp.endpoint == "localhost:4317"
        assert config.metrics_exporter == ExporterType.OTLP

    def test_flags_override_environment(self):
        """Test command line precedence."""
        args = build_parser().parse_args(
            [
                "--endpoint", "collector:4317",
                "--metrics-endpoint", "metrics:4317",
                "--metrics-exporter", "console",
                "--period", "1.5",
                "--max-iterations", "2",
                "--verify-connection",
                "--log-level", "debug",
            ]
        )
        environ = {"OTELRUNTIME_ENDPOINT": "env:4317", "OTELRUNTIME_LOOP_PERIOD": "9"}
        config = config_from_args(args, environ=environ)

        assert config.otlp.endpoint == "collector:4317"
        assert config.otlp.verify_connection is True
        assert config.effective_metrics_otlp.endpoint == "metrics:4317"
        assert config.effective_metrics_otlp.verify_connection is True
        assert config.metrics_exporter == ExporterType.CONSOLE
        assert config.traces_exporter == ExporterType.OTLP
        assert config.loop.period_seconds == 1.5
        assert config.loop.max_iterations == 2
        assert config.log_level == "DEBUG"

    def test_unknown_exporter_rejected(self):
        """Test that argparse rejects unknown exporter names."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--metrics-exporter", "zipkin"])


class TestRun:
    """Tests for run."""

    def test_clean_run(self, quick_config):
        """Test a bounded run exits cleanly."""
        span_exporter = InMemorySpanExporter()
        code = run(quick_config, span_exporter=span_exporter, environ={})

        assert code == EXIT_OK
        assert len(span_exporter.get_finished_spans()) == 2

    def test_cancelled_run(self):
        """Test that a cancelled run shuts down cleanly."""
        cancel = threading.Event()
        cancel.set()
        assert run(TESTING_PIPELINE_CONFIG, cancel, environ={}) == EXIT_OK

    def test_startup_failure(self, quick_config, caplog):
        """Test that an exporter failure exits with the startup code."""
        config = quick_config.with_exporters(traces=ExporterType.OTLP).with_otlp(
            OTLPExporterConfig(endpoint="localhost:0")
        )
        with caplog.at_level(logging.ERROR):
            code = run(config, environ={})

        assert code == EXIT_STARTUP_FAILURE
        assert "Telemetry startup failed" in caplog.text

    def test_shutdown_failure(self, quick_config, caplog):
        """Test that a release failure exits with the shutdown code."""
        with patch.object(
            TelemetryMeterProvider, "shutdown", autospec=True,
            side_effect=ProviderError("flush failed", provider_type="meter"),
        ):
            with caplog.at_level(logging.ERROR):
                code = run(quick_config, environ={})

        assert code == EXIT_SHUTDOWN_FAILURE
        assert "meter provider" in caplog.text


class TestMain:
    """Tests for main."""

    def test_invalid_environment(self):
        """Test that a bad variable exits with the startup code."""
        with patch.dict(os.environ, {"OTELRUNTIME_LOOP_PERIOD": "abc"}):
            assert main([]) == EXIT_STARTUP_FAILURE

    def test_bounded_run_sets_runtime_flag(self):
        """Test a full run and the forced legacy runtime metrics flag."""
        environ = {
            "OTELRUNTIME_TRACES_EXPORTER": "memory",
            "OTELRUNTIME_METRICS_EXPORTER": "memory",
            "OTELRUNTIME_LOOP_PERIOD": "0.01",
            "OTELRUNTIME_MAX_ITERATIONS": "1",
            "OTEL_PYTHON_X_DEPRECATED_RUNTIME_METRICS": "false",
        }
        with patch.dict(os.environ, environ):
            assert main([]) == EXIT_OK
            assert os.environ["OTEL_PYTHON_X_DEPRECATED_RUNTIME_METRICS"] == "true"


class TestSignalHandlers:
    """Tests for signal routing."""

    def test_sigterm_sets_cancel(self):
        """Test that SIGTERM requests shutdown."""
        cancel = threading.Event()
        previous = signal.getsignal(signal.SIGTERM)
        restore = install_signal_handlers(cancel)
        try:
            os.kill(os.getpid(), signal.SIGTERM)
            assert cancel.wait(timeout=5.0)
        finally:
            restore()
        assert signal.getsignal(signal.SIGTERM) == previous

    def test_noop_outside_main_thread(self):
        """Test that worker threads do not install handlers."""
        result = {}

        def install():
            result["restore"] = install_signal_handlers(threading.Event())

        worker = threading.Thread(target=install)
        worker.start()
        worker.join()
        result["restore"]()


class TestLogging:
    """Tests for logging setup."""

    def test_format(self):
        """Test the configured line format."""
        stream = io.StringIO()
        handler = configure_logging("INFO", stream=stream)
        try:
            logging.getLogger("otelruntimemetrics.test").info("Sending trace...")
        finally:
            logging.getLogger().removeHandler(handler)

        line = stream.getvalue()
        assert " - otelruntimemetrics.test - INFO - Sending trace..." in line
        assert LOG_FORMAT.startswith("%(asctime)s")

    def test_reconfigure_replaces_handler(self):
        """Test that configuring twice keeps a single handler."""
        first = configure_logging("INFO", stream=io.StringIO())
        second = configure_logging("DEBUG", stream=io.StringIO())
        root = logging.getLogger()
        try:
            assert first not in root.handlers
            assert second in root.handlers
            assert root.level == logging.DEBUG
        finally:
            root.removeHandler(second)
            root.setLevel(logging.WARNING)

    def test_masks_credentials(self):
        """Test that authorization values are masked."""
        masker = SensitiveDataFilter()
        assert "secret" not in masker.mask_string("headers={'authorization': 'secret'}")
        assert "pw" not in masker.mask_string("http://user:pw@collector:4317")

    def test_unknown_level_defaults_to_info(self):
        """Test lenient level parsing."""
        assert LogLevel.from_string("verbose") == LogLevel.INFO
        assert LogLevel.from_string("warning") == LogLevel.WARNING
