"""Run orchestration coroutines off the Streamlit script thread."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class BackgroundJob:
    """One coroutine running on its own thread and event loop.

    The Streamlit script keeps the job in session state and polls
    ``is_running`` / ``error`` / ``result`` on each rerun.
    """

    label: str
    _thread: Optional[threading.Thread] = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    result: Any = None
    error: Optional[str] = None
    started_at: float = 0.0
    finished_at: Optional[float] = None

    def start(self, factory: Callable[[], Awaitable[Any]]) -> "BackgroundJob":
        """Start ``factory()`` on a daemon thread. ``factory`` builds the coroutine inside that thread."""
        if self.is_running:
            raise RuntimeError(f"Job {self.label!r} is already running")

        def target() -> None:
            try:
                value = asyncio.run(factory())
            except Exception as e:
                logger.exception("Background job %r failed", self.label)
                with self._lock:
                    self.error = str(e) or e.__class__.__name__
            else:
                with self._lock:
                    self.result = value
            finally:
                with self._lock:
                    self.finished_at = time.time()

        with self._lock:
            self.result = None
            self.error = None
            self.started_at = time.time()
            self.finished_at = None
        self._thread = threading.Thread(target=target, name=f"job-{self.label}", daemon=True)
        self._thread.start()
        logger.info("Started background job %r", self.label)
        return self

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_finished(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "label": self.label,
                "running": self.is_running,
                "result": self.result,
                "error": self.error,
                "started_at": self.started_at,
                "finished_at": self.finished_at,
            }
