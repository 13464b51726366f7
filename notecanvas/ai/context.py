# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Context collection for chat requests: the notes and text nodes wired into
an AI chat node become one markdown block appended to the system prompt.
"""

import math
import re
from typing import Iterable, List, Sequence

from notecanvas.errors import StorageError
from notecanvas.node.node_types import CanvasNode, FileRef, NoteNode, TextNode
from notecanvas.storage import StorageBackend

from notecanvas.logger import get_logger
log = get_logger("Context")

CHARS_PER_TOKEN = 4
SECTION_SEPARATOR = "\n\n---\n\n"
TRUNCATION_MARKER = "\n\n...(truncated)"

_EXCESS_NEWLINES = re.compile(r"\n{3,}")


class ContextCollector:
    """Reads connected notes through storage and sizes the result to a token budget."""

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    def process_note(self, file: FileRef, content: str) -> str:
        header = f"## {file.basename}\n*Source: {file.path}*\n"
        return header + "\n" + _EXCESS_NEWLINES.sub("\n\n", content).strip()

    def process_notes(self, files: Iterable[FileRef]) -> str:
        """Full text of every file; unreadable files contribute an error stub."""
        sections: List[str] = []
        for file in files:
            try:
                sections.append(self.process_note(file, self.storage.read_text(file.path)))
            except StorageError as e:
                log.error(f"Error processing note {file.path}: {e}")
                sections.append(f"## {file.basename}\n\n*Error reading file*")
        return SECTION_SEPARATOR.join(sections)

    @staticmethod
    def estimate_tokens(text: str) -> int:
        return math.ceil(len(text) / CHARS_PER_TOKEN)

    @staticmethod
    def truncate_to_token_limit(content: str, max_tokens: int) -> str:
        """Cut *content* to about *max_tokens*, backing off to the last space."""
        max_chars = max_tokens * CHARS_PER_TOKEN
        if len(content) <= max_chars:
            return content

        truncated = content[:max_chars]
        last_space = truncated.rfind(" ")
        if last_space > 0:
            truncated = truncated[:last_space]
        return truncated + TRUNCATION_MARKER

    def build_context(self, connected: Sequence[CanvasNode], max_tokens: int) -> str:
        """
        Markdown context from the upstream nodes of a chat node.

        Note files come first (read in full), then non-empty text nodes
        numbered in connection order.
        """
        files = [n.file for n in connected if isinstance(n, NoteNode) and n.file is not None]
        texts = [n.content for n in connected if isinstance(n, TextNode) and n.content]

        parts: List[str] = []
        if files:
            parts.append(self.process_notes(files))
        if texts:
            parts.append(SECTION_SEPARATOR.join(
                f"## Text Note {i}\n\n{text}" for i, text in enumerate(texts, start=1)
            ))

        context = SECTION_SEPARATOR.join(p for p in parts if p)
        return self.truncate_to_token_limit(context, max_tokens)
