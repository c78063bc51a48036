"""
Background refresh for chat and notifications.

A Poller calls ``fetch`` every ``interval`` seconds on a daemon thread and
hands each result to ``on_result``. Background ticks are silent: failures
are logged and the next tick tries again. ``refresh()`` is the foreground
path and lets errors propagate to the caller.

Stop the poller when its view goes away; no callback runs after ``stop()``
returns.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0


class Poller:
    def __init__(
        self,
        fetch: Callable[[], Any],
        on_result: Callable[[Any], None],
        interval: float = DEFAULT_INTERVAL,
        on_error: Callable[[Exception], None] | None = None,
        name: str = "poller",
    ) -> None:
        if interval <= 0:
            raise ValueError("Polling interval must be positive")
        self._fetch = fetch
        self._on_result = on_result
        self._on_error = on_error
        self.interval = interval
        self.name = name
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, immediate: bool = True) -> None:
        """Begin polling. With ``immediate`` the first fetch runs in the foreground."""
        if self.running:
            return
        if immediate:
            self.refresh()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None

    def refresh(self) -> Any:
        """Foreground fetch; errors reach the caller."""
        result = self._fetch()
        with self._lock:
            self._on_result(result)
        return result

    def _deliver(self, result: Any) -> None:
        with self._lock:
            if self._stop.is_set():
                return
            self._on_result(result)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                result = self._fetch()
            except Exception as e:
                logger.warning("%s: background refresh failed: %s", self.name, e)
                if self._on_error is not None:
                    self._on_error(e)
                continue
            self.ticks += 1
            self._deliver(result)

    def __enter__(self) -> Poller:
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()
