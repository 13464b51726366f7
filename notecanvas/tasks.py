# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

tasks.py
--------
Background execution for the slow edges of a canvas session: note
preview reads, save/load and chat completions.

Architecture::

    TaskRunner.submit(fn, on_finished, on_error)
        ├── thread mode:  BackgroundTask (QRunnable) on a QThreadPool,
        │                 result delivered on the main thread through
        │                 TaskSignals (queued connections)
        └── inline mode:  fn runs immediately on the caller's thread

Rules:

* ``fn`` must not touch the GraphStore; it returns a value and the
  ``on_finished`` callback (main thread) applies it.
* There is no cancellation.  Callbacks that apply a result must check
  that their target still exists.
"""

import traceback
from typing import Any, Callable, Optional, Set

from PySide6.QtCore import QObject, QRunnable, QThreadPool, Qt, Signal

from notecanvas.logger import get_logger
log = get_logger("Tasks")

FinishedFn = Callable[[Any], None]
ErrorFn = Callable[[BaseException], None]


# ═══════════════════════════════════════════════════════════════════════════════
# SIGNAL BRIDGE
# ═══════════════════════════════════════════════════════════════════════════════

class TaskSignals(QObject):
    """
    Signal bridge for :class:`BackgroundTask`.

    Signals:
        finished(object)  - return value of the task function
        error(object)     - the exception it raised
    """
    finished = Signal(object)
    error    = Signal(object)


# ═══════════════════════════════════════════════════════════════════════════════
# BACKGROUND TASK  (QRunnable - executes on QThreadPool)
# ═══════════════════════════════════════════════════════════════════════════════

class BackgroundTask(QRunnable):
    """Runs ``fn()`` on a worker thread and reports through :attr:`signals`."""

    def __init__(self, fn: Callable[[], Any], label: str = "task") -> None:
        super().__init__()
        self.setAutoDelete(True)

        self._fn     = fn
        self.label   = label
        self.signals = TaskSignals()

    # ── QRunnable interface (called on worker thread) ─────────────
    def run(self) -> None:  # noqa: D102
        try:
            result = self._fn()
        except Exception as exc:
            log.debug(f"{self.label} failed:\n{traceback.format_exc()}")
            self.signals.error.emit(exc)
        else:
            self.signals.finished.emit(result)


# ═══════════════════════════════════════════════════════════════════════════════
# RUNNER
# ═══════════════════════════════════════════════════════════════════════════════

class TaskRunner:
    """
    Dispatches task functions either to a thread pool or inline.

    Args:
        thread_pool: Pool to use in thread mode (defaults to the global pool).
        inline:      Run every task synchronously on the calling thread.
    """

    def __init__(self, thread_pool: Optional[QThreadPool] = None, inline: bool = False) -> None:
        self.inline = inline
        self._thread_pool = thread_pool
        # Signal bridges stay referenced until their task reports back.
        self._active: Set[TaskSignals] = set()

    @property
    def thread_pool(self) -> QThreadPool:
        if self._thread_pool is None:
            self._thread_pool = QThreadPool.globalInstance()
        return self._thread_pool

    @property
    def pending(self) -> int:
        return len(self._active)

    def submit(
        self,
        fn: Callable[[], Any],
        on_finished: Optional[FinishedFn] = None,
        on_error: Optional[ErrorFn] = None,
        label: str = "task",
    ) -> None:
        """Run *fn* and route its outcome to *on_finished* or *on_error*."""
        if self.inline:
            self._run_inline(fn, on_finished, on_error, label)
            return

        task = BackgroundTask(fn, label)
        signals = task.signals
        self._active.add(signals)

        def _done(result, _signals=signals):
            self._active.discard(_signals)
            if on_finished is not None:
                on_finished(result)

        def _failed(exc, _signals=signals):
            self._active.discard(_signals)
            self._report_error(exc, on_error, label)

        signals.finished.connect(_done, Qt.ConnectionType.QueuedConnection)
        signals.error.connect(_failed, Qt.ConnectionType.QueuedConnection)

        log.debug(f"Dispatching {label} to thread pool")
        self.thread_pool.start(task)

    def _run_inline(self, fn, on_finished, on_error, label) -> None:
        try:
            result = fn()
        except Exception as exc:
            self._report_error(exc, on_error, label)
            return
        if on_finished is not None:
            on_finished(result)

    @staticmethod
    def _report_error(exc: BaseException, on_error: Optional[ErrorFn], label: str) -> None:
        if on_error is not None:
            on_error(exc)
        else:
            log.error(f"{label} failed: {exc}")

    def wait(self, timeout_ms: int = -1) -> bool:
        """Block until the pool is idle.  Always True in inline mode."""
        if self.inline or self._thread_pool is None:
            return True
        return self.thread_pool.waitForDone(timeout_ms)
