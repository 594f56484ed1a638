"""Scoped release of pipeline resources.

Resources are registered as they are acquired and released in reverse
order. Every release step runs even if an earlier one failed; failures are
collected and raised together as a single ShutdownError.

Example:
    sequencer = ShutdownSequencer()
    sequencer.push("tracer provider", tracer_provider.shutdown)
    sequencer.push("meter provider", meter_provider.shutdown)
    sequencer.close()   # meter provider, then tracer provider
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from otelruntimemetrics.exceptions import ShutdownError, ShutdownStepFailure

__all__ = [
    "ShutdownSequencer",
]

logger = logging.getLogger(__name__)


class ShutdownSequencer:
    """Last-in, first-out registry of release callbacks.

    ``close()`` runs at most once; later calls are no-ops. Used as a context
    manager, it closes on exit and lets a pending exception take priority
    over shutdown failures, which are then only logged.
    """

    def __init__(self) -> None:
        self._steps: list[tuple[str, Callable[[], Any]]] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def step_names(self) -> list[str]:
        """Registered step names in release order."""
        return [name for name, _ in reversed(self._steps)]

    def push(self, name: str, release: Callable[[], Any]) -> None:
        """Register a release callback.

        Raises:
            RuntimeError: If the sequencer has already been closed.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError(f"Cannot register {name!r}: shutdown already ran")
            self._steps.append((name, release))

    def close(self) -> None:
        """Run every release callback, most recently registered first.

        Raises:
            ShutdownError: If one or more callbacks raised.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            steps = list(reversed(self._steps))
            self._steps.clear()

        failures: list[ShutdownStepFailure] = []
        for name, release in steps:
            logger.debug(f"Releasing {name}")
            try:
                release()
            except Exception as e:
                logger.warning(f"Failed to release {name}: {e}")
                failures.append(ShutdownStepFailure(name, e))

        if failures:
            raise ShutdownError(failures)

    def __enter__(self) -> ShutdownSequencer:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        if exc_type is None:
            self.close()
            return
        try:
            self.close()
        except ShutdownError as e:
            logger.error(f"{e} (while handling {exc_type.__name__})")
