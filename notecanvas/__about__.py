# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Project metadata for NoteCanvas.
"""

from typing import Final

# Metadata Definitions
__title__: Final[str] = "NoteCanvas"
__description__: Final[str] = (
    "A PySide6 graph engine for wiring notes, text and AI chat "
    "panels together on a pannable, zoomable canvas."
)
__version__: Final[str] = "0.1.0"
__author__: Final[str] = "opticsWolf"
__license__: Final[str] = "Apache-2.0"
__copyright__: Final[str] = "Copyright (c) 2026 opticsWolf"

def metadata_summary() -> dict[str, str]:
    """Returns a dictionary of project metadata for introspection."""
    return {
        "title": __title__,
        "version": __version__,
        "license": __license__,
        "description": __description__,
    }
