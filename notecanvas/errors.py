# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Exception types shared by the store, serializer, storage and chat layers.
"""

from typing import Optional


class CanvasError(Exception):
    """Base class for all NoteCanvas errors."""


class NotFoundError(CanvasError):
    """A node, connection or stored file does not exist."""


class StorageError(CanvasError, OSError):
    """A storage read or write failed."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class StorageNotFoundError(StorageError, NotFoundError):
    """The requested path does not exist in storage."""


class StructuralError(CanvasError):
    """A persisted document is malformed."""


class UnsupportedVersionError(CanvasError):
    """A persisted document carries a version this build does not read."""

    def __init__(self, version) -> None:
        super().__init__(f"Unsupported canvas version: {version}")
        self.version = version


class ProviderError(CanvasError):
    """A chat-completion request failed."""

    def __init__(self, message: str, provider: Optional[str] = None) -> None:
        super().__init__(message)
        self.provider = provider
