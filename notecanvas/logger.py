# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

logger.py - Component Logging and Host Notifications
------------------------------------------------------
Per-component loggers backed by the standard ``logging`` library.
The same records double as the host's notification channel: a host
registers a callback with :func:`add_log_callback` and receives every
record at or above the callback level (WARNING by default), which is how
failed saves, failed loads and unresolved note files reach the user.

Quick Start::

    from notecanvas.logger import get_logger
    log = get_logger("Serializer")

    log.info("Saved canvas to %s", path)
    log.warning("Note file not found: %s", path)
    log.error("Load failed: %s", exc)

All loggers are children of the root ``"NoteCanvas"`` logger.

Log Levels:
    DEBUG    - Store transitions, ignored no-ops, task dispatch
    INFO     - Save, load, node and connection lifecycle
    WARNING  - Degraded loads (missing files, skipped entries)
    ERROR    - Failed saves/loads, provider failures
"""

from __future__ import annotations

import logging
import sys
from typing import Callable, Dict, Optional

# ==============================================================================
# ROOT LOGGER NAME
# ==============================================================================

ROOT_LOGGER_NAME = "NoteCanvas"

LogCallback = Callable[[str, str, str], None]

# ==============================================================================
# FORMATTER
# ==============================================================================

class CanvasFormatter(logging.Formatter):
    """
    ``[Component] LEVEL message`` formatter, timestamped for file output.

    Console output::

        [Serializer] INFO  Saved canvas to flows/Untitled_Flow.json

    File output::

        2026-10-17 09:12:44 [Serializer] INFO  Saved canvas to ...
    """

    CONSOLE_FMT = "[%(component)s] %(levelname)-5s %(message)s"
    FILE_FMT    = "%(asctime)s [%(component)s] %(levelname)-5s %(message)s"

    def __init__(self, use_timestamp: bool = False) -> None:
        fmt = self.FILE_FMT if use_timestamp else self.CONSOLE_FMT
        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "component"):
            # "NoteCanvas.GraphStore" -> "GraphStore"
            record.component = component_of(record)
        return super().format(record)


def component_of(record: logging.LogRecord) -> str:
    """Return the component tag of a record (the logger's leaf name)."""
    return getattr(record, "component", record.name.rsplit(".", 1)[-1])


# ==============================================================================
# NOTIFICATION BRIDGE
# ==============================================================================

_callback_handler: Optional["_CallbackHandler"] = None


class _CallbackHandler(logging.Handler):
    """
    Forwards records to host callbacks, each with its own minimum level.

    Callbacks receive ``(level_name, component, message)``.  A raising
    callback is reported through :meth:`handleError` and never stops the
    remaining callbacks.
    """

    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self._callbacks: Dict[LogCallback, int] = {}

    def add_callback(self, fn: LogCallback, level: int) -> None:
        self._callbacks[fn] = level

    def remove_callback(self, fn: LogCallback) -> None:
        self._callbacks.pop(fn, None)

    def emit(self, record: logging.LogRecord) -> None:
        if not self._callbacks:
            return
        message = record.getMessage()
        component = component_of(record)
        for fn, level in list(self._callbacks.items()):
            if record.levelno < level:
                continue
            try:
                fn(record.levelname, component, message)
            except Exception:
                self.handleError(record)


# ==============================================================================
# PUBLIC API
# ==============================================================================

def get_logger(component: str) -> logging.Logger:
    """
    Get the logger for a component.

    Args:
        component: Short tag such as ``"Serializer"`` or ``"GraphStore"``.
                   Appears in output as ``[Serializer]``.

    Returns:
        A child of the root ``NoteCanvas`` logger.
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")


def setup_logging(
    level: int = logging.INFO,
    stream=None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure console (and optionally file) output for the root logger.

    Call once at host startup.  Repeated calls do not stack handlers.

    Args:
        level:    Minimum level for the root logger and its handlers.
        stream:   Console stream (default ``sys.stdout``).
        log_file: Optional path of a timestamped log file.

    Returns:
        The root ``NoteCanvas`` logger.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    has_stream = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in root.handlers
    )
    if not has_stream:
        console = logging.StreamHandler(stream or sys.stdout)
        console.setLevel(level)
        console.setFormatter(CanvasFormatter(use_timestamp=False))
        root.addHandler(console)

    if log_file and not any(isinstance(h, logging.FileHandler) for h in root.handlers):
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(CanvasFormatter(use_timestamp=True))
        root.addHandler(fh)

    return root


def set_log_level(level: int) -> None:
    """Change the root level and the level of every console/file handler."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    for handler in root.handlers:
        if handler is not _callback_handler:
            handler.setLevel(level)


def add_log_callback(fn: LogCallback, level: int = logging.WARNING) -> None:
    """
    Register a host notification callback.

    Args:
        fn:    ``fn(level_name, component, message)``.
        level: Minimum record level delivered to *fn*.
    """
    global _callback_handler
    root = logging.getLogger(ROOT_LOGGER_NAME)

    if _callback_handler is None:
        _callback_handler = _CallbackHandler()
    # Host reconfiguration may have detached the handler.
    if _callback_handler not in root.handlers:
        root.addHandler(_callback_handler)

    # Records below the root level never reach handlers.
    if root.level == logging.NOTSET or root.level > level:
        root.setLevel(level)

    _callback_handler.add_callback(fn, level)


def remove_log_callback(fn: LogCallback) -> None:
    """Unregister a callback added with :func:`add_log_callback`."""
    if _callback_handler is not None:
        _callback_handler.remove_callback(fn)
