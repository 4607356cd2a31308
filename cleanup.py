"""Scoped acquisition: release callbacks run in reverse acquisition order."""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class CleanupStack:
    """LIFO list of release callbacks.

    ``close`` runs every callback even when some of them raise; each failure
    is logged and collected instead of interrupting the remaining steps.
    """

    def __init__(self) -> None:
        self._callbacks: list[tuple[str, Callable[[], None]]] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._callbacks)

    def push(self, label: str, callback: Callable[[], None]) -> None:
        with self._lock:
            self._callbacks.append((label, callback))

    def close(self) -> list[tuple[str, Exception]]:
        with self._lock:
            callbacks = self._callbacks
            self._callbacks = []

        failures: list[tuple[str, Exception]] = []
        for label, callback in reversed(callbacks):
            try:
                callback()
            except Exception as exc:
                logger.warning("cleanup step %r failed: %s", label, exc)
                failures.append((label, exc))
        return failures
