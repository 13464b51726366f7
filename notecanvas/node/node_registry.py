# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

node_registry.py
------------------
Maps each NodeKind to its node class and builds kind-specific default
nodes.  The set of kinds is closed: the registry refuses to resolve until
every NodeKind has exactly one class, so adding a kind without a class
fails on first use instead of deep inside the serializer.
"""

from typing import Dict, Iterator, Optional, Type, Union

from notecanvas.node.node_types import (
    AIChatNode, CanvasNode, NodeKind, NoteNode, Position, TextNode,
)

from notecanvas.logger import get_logger
log = get_logger("Registry")

NodeCls = Type[CanvasNode]


class NodeRegistry:
    """
    Closed registry of node variants.

    Structure:
        NodeKind -> node class
    """

    def __init__(self) -> None:
        self._by_kind: Dict[NodeKind, NodeCls] = {}

    def register(self, cls: NodeCls) -> NodeCls:
        """Register a node class under its ``kind`` tag."""
        kind = cls.kind
        existing = self._by_kind.get(kind)
        if existing is not None and existing is not cls:
            raise ValueError(
                f"Node kind '{kind.value}' already bound to {existing.__name__}"
            )
        self._by_kind[kind] = cls
        return cls

    def _ensure_complete(self) -> None:
        missing = [k.value for k in NodeKind if k not in self._by_kind]
        if missing:
            raise LookupError(f"No node class registered for kind(s): {missing}")

    def resolve_kind(self, kind: Union[NodeKind, str]) -> Optional[NodeKind]:
        """Coerce a persisted ``type`` string to NodeKind, None if unknown."""
        if isinstance(kind, NodeKind):
            return kind
        try:
            return NodeKind(kind)
        except ValueError:
            return None

    def get_class(self, kind: Union[NodeKind, str]) -> Optional[NodeCls]:
        self._ensure_complete()
        resolved = self.resolve_kind(kind)
        if resolved is None:
            return None
        return self._by_kind[resolved]

    def kinds(self) -> Iterator[NodeKind]:
        self._ensure_complete()
        return iter(NodeKind)

    def create_default(self, kind: Union[NodeKind, str], node_id: str, position: Position) -> CanvasNode:
        """
        Build a fresh node of *kind* with its default payload and size.

        Raises:
            ValueError: *kind* is not a known node kind.
        """
        cls = self.get_class(kind)
        if cls is None:
            raise ValueError(f"Unknown node kind: {kind!r}")
        # Payload fields all carry defaults (no file, empty text, no messages).
        return cls(id=node_id, position=position, size=cls.default_size)


node_registry = NodeRegistry()
register_node = node_registry.register

for _cls in (NoteNode, TextNode, AIChatNode):
    register_node(_cls)
