"""Span emission loop.

Emits one root span per period until cancelled. Cancellation is a
``threading.Event``: it is checked before emitting, before sleeping and
immediately on waking, and the sleep itself is a wait on the event, so a
cancellation during the sleep ends the loop without waiting out the period.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from opentelemetry import context as otel_context

from otelruntimemetrics.config import LoopConfig
from otelruntimemetrics.types import LoopState

if TYPE_CHECKING:
    from otelruntimemetrics.providers.tracer import TelemetryTracerProvider

__all__ = [
    "SpanLoop",
]

logger = logging.getLogger(__name__)


class SpanLoop:
    """Emits a root span named ``config.span_name`` every ``config.period_seconds``.

    Example:
        cancel = threading.Event()
        loop = SpanLoop(tracer_provider, LoopConfig(), cancel)
        emitted = loop.run()   # returns once cancel is set
    """

    def __init__(
        self,
        tracer_provider: TelemetryTracerProvider,
        config: LoopConfig | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        self._config = config or LoopConfig()
        self._cancel = cancel or threading.Event()
        self._tracer = tracer_provider.get_tracer(self._config.tracer_name)
        self._state = LoopState.STOPPED
        self._spans_emitted = 0

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def spans_emitted(self) -> int:
        return self._spans_emitted

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    def cancel(self) -> None:
        """Request the loop to stop."""
        self._cancel.set()

    def emit_span(self) -> None:
        """Start and immediately end one root span."""
        # An empty context has no active span, so the new span is always a root
        span = self._tracer.start_span(self._config.span_name, context=otel_context.Context())
        span.end()
        self._spans_emitted += 1

    def _limit_reached(self) -> bool:
        max_iterations = self._config.max_iterations
        return max_iterations is not None and self._spans_emitted >= max_iterations

    def run(self) -> int:
        """Run until cancelled or ``max_iterations`` spans were emitted.

        Returns:
            Number of spans emitted by this call.
        """
        start_count = self._spans_emitted
        self._state = LoopState.RUNNING
        try:
            while not self._cancel.is_set() and not self._limit_reached():
                logger.info("Sending trace...")
                self.emit_span()

                if self._cancel.is_set() or self._limit_reached():
                    break

                logger.info("Sleeping...")
                if self._cancel.wait(timeout=self._config.period_seconds):
                    break
            self._state = LoopState.SHUTTING_DOWN
            logger.info("Span loop stopping")
        finally:
            self._state = LoopState.STOPPED

        return self._spans_emitted - start_count
