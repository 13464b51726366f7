# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

node_types.py - Canvas Data Model
-----------------------------------
Immutable value types for everything the graph store holds:

    Position, Size, SizeLimits   geometry in world units
    FileRef                      snapshot of an external note file
    ChatMessage                  one entry of an AI chat transcript
    NoteNode / TextNode / AIChatNode
                                 the node variants, tagged by NodeKind
    Connection                   directed edge output -> input

Nodes are frozen dataclasses.  Changing a node means building a new one
with ``dataclasses.replace``; derived fields are recomputed in
``__post_init__`` so a replaced TextNode always carries counts that match
its content.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import ClassVar, FrozenSet, Optional, Tuple

from PySide6.QtCore import QPointF, QRectF, QSizeF


# ==============================================================================
# ENUMS
# ==============================================================================

class NodeKind(str, Enum):
    """Node variant tag.  Values are the persisted ``type`` strings."""
    NOTE = "note"
    TEXT = "text"
    AI_CHAT = "ai-chat"


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class PortName(str, Enum):
    OUTPUT = "output"
    INPUT = "input"


# ==============================================================================
# GEOMETRY
# ==============================================================================

@dataclass(frozen=True)
class Position:
    """World-space (or screen-space, by context) point."""
    x: float = 0.0
    y: float = 0.0

    def __add__(self, other: "Position") -> "Position":
        return Position(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Position") -> "Position":
        return Position(self.x - other.x, self.y - other.y)

    def to_qpointf(self) -> QPointF:
        return QPointF(self.x, self.y)

    @classmethod
    def from_qpointf(cls, point: QPointF) -> "Position":
        return cls(point.x(), point.y())


@dataclass(frozen=True)
class Size:
    width: float
    height: float

    def to_qsizef(self) -> QSizeF:
        return QSizeF(self.width, self.height)


@dataclass(frozen=True)
class SizeLimits:
    """Inclusive min/max bounds for a node footprint."""
    min_width: float = 200.0
    min_height: float = 150.0
    max_width: float = 600.0
    max_height: float = 800.0

    def clamp(self, size: Size) -> Size:
        return Size(
            max(self.min_width, min(self.max_width, size.width)),
            max(self.min_height, min(self.max_height, size.height)),
        )


# ==============================================================================
# PAYLOAD TYPES
# ==============================================================================

@dataclass(frozen=True)
class FileRef:
    """
    Plain snapshot of an external note file.

    Only the path is authoritative; basename, extension and modified time
    are refreshed whenever the file is re-resolved through storage.
    """
    path: str
    basename: str
    extension: str
    modified_time: Optional[float] = None

    @classmethod
    def from_path(cls, path: str, modified_time: Optional[float] = None) -> "FileRef":
        pure = PurePosixPath(path)
        return cls(
            path=path,
            basename=pure.stem,
            extension=pure.suffix.lstrip("."),
            modified_time=modified_time,
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChatMessage:
    role: ChatRole
    content: str
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(ChatRole.USER, content)

    @classmethod
    def assistant(cls, content: str) -> "ChatMessage":
        return cls(ChatRole.ASSISTANT, content)

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(ChatRole.SYSTEM, content)

    def to_wire(self) -> dict:
        """Provider-facing ``{role, content}`` pair."""
        return {"role": self.role.value, "content": self.content}


# ==============================================================================
# NODES
# ==============================================================================

@dataclass(frozen=True)
class CanvasNode:
    """
    Fields shared by every node variant.

    Subclasses set the ``kind`` tag plus their default size, size limits
    and the ports they expose.
    """
    id: str
    position: Position
    size: Size

    kind: ClassVar[NodeKind]
    default_size: ClassVar[Size]
    size_limits: ClassVar[SizeLimits] = SizeLimits()
    output_ports: ClassVar[FrozenSet[str]] = frozenset()
    input_ports: ClassVar[FrozenSet[str]] = frozenset()

    # Fields computed from other fields; never accepted from callers.
    derived_fields: ClassVar[FrozenSet[str]] = frozenset()

    @property
    def rect(self) -> QRectF:
        """Footprint in world coordinates."""
        return QRectF(self.position.x, self.position.y, self.size.width, self.size.height)

    def has_output(self, port: str) -> bool:
        return port in self.output_ports

    def has_input(self, port: str) -> bool:
        return port in self.input_ports


@dataclass(frozen=True)
class NoteNode(CanvasNode):
    file: Optional[FileRef] = None
    content: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.NOTE
    default_size: ClassVar[Size] = Size(280, 180)
    output_ports: ClassVar[FrozenSet[str]] = frozenset({PortName.OUTPUT.value})


@dataclass(frozen=True)
class TextNode(CanvasNode):
    content: str = ""
    word_count: int = field(init=False, default=0)
    char_count: int = field(init=False, default=0)

    kind: ClassVar[NodeKind] = NodeKind.TEXT
    default_size: ClassVar[Size] = Size(250, 160)
    output_ports: ClassVar[FrozenSet[str]] = frozenset({PortName.OUTPUT.value})
    derived_fields: ClassVar[FrozenSet[str]] = frozenset({"word_count", "char_count"})

    def __post_init__(self) -> None:
        object.__setattr__(self, "word_count", count_words(self.content))
        object.__setattr__(self, "char_count", len(self.content))


@dataclass(frozen=True)
class AIChatNode(CanvasNode):
    messages: Tuple[ChatMessage, ...] = ()
    connected_count: int = 0

    kind: ClassVar[NodeKind] = NodeKind.AI_CHAT
    default_size: ClassVar[Size] = Size(400, 600)
    size_limits: ClassVar[SizeLimits] = SizeLimits(350, 450, 800, 900)
    input_ports: ClassVar[FrozenSet[str]] = frozenset({PortName.INPUT.value})
    derived_fields: ClassVar[FrozenSet[str]] = frozenset({"connected_count"})


def count_words(content: str) -> int:
    """Whitespace-separated token count of the trimmed content."""
    stripped = content.strip()
    return len(stripped.split()) if stripped else 0


# ==============================================================================
# CONNECTIONS
# ==============================================================================

@dataclass(frozen=True)
class Connection:
    """Directed edge from an output port to an input port."""
    id: str
    from_node_id: str
    to_node_id: str
    from_port: str = PortName.OUTPUT.value
    to_port: str = PortName.INPUT.value

    def touches(self, node_id: str) -> bool:
        return self.from_node_id == node_id or self.to_node_id == node_id
