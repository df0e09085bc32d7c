"""
dispatch.py – fire-and-forget background work
=============================================

Decisions taken under the engine lock often need network I/O afterwards
(mirroring an order, pushing a Telegram message).  Those jobs are queued
here and executed by one daemon worker thread, so a slow exchange or chat
API never stalls the next tick.  Failures are logged, never re-raised.
"""

from __future__ import annotations

import queue
import threading
from typing import Any, Callable, Optional, Tuple

from .logging import get_logger

log = get_logger("shared.dispatch")

_Job = Tuple[str, Callable[..., Any], tuple]
_STOP = object()


class BackgroundDispatcher:
    def __init__(self, name: str = "dispatcher", maxsize: int = 1000) -> None:
        self.name = name
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def start(self) -> "BackgroundDispatcher":
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
                self._thread.start()
        return self

    def submit(self, label: str, fn: Callable[..., Any], *args: Any) -> bool:
        """Queue `fn(*args)`; returns False when the queue is full (job dropped)."""
        self.start()
        try:
            self._queue.put_nowait((label, fn, args))
            return True
        except queue.Full:
            log.warning("%s queue full – dropping %s", self.name, label)
            return False

    def join(self) -> None:
        """Block until every queued job has run (used by tests and shutdown)."""
        self._queue.join()

    def stop(self, timeout: float = 5.0) -> None:
        thread = self._thread
        if thread is None or not thread.is_alive():
            return
        self._queue.put(_STOP)
        thread.join(timeout)

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                label, fn, args = job
                try:
                    fn(*args)
                except Exception:                           # noqa: BLE001
                    log.exception("background job %s failed", label)
            finally:
                self._queue.task_done()
