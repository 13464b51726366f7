# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Graph Store: node and connection lifecycle, derived counts, selection
and viewport for one canvas.

CanvasState is an immutable snapshot.  Its methods are the pure state
transitions (each returns a new snapshot); GraphStore holds the current
snapshot, applies transitions, and announces what changed through Qt
signals so hosts can re-render only what they need.

Invariants kept by every transition:
- connections only join two existing, distinct nodes
- removing a node removes every connection touching it
- selection ids are a subset of live node / connection ids
- AIChatNode.connected_count equals the live count of connections
  targeting that node
"""

import random
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

from PySide6.QtCore import QObject, Signal

from notecanvas.canvas import viewport as vp
from notecanvas.canvas.selection import Selection
from notecanvas.canvas.viewport import Viewport
from notecanvas.node.node_registry import node_registry
from notecanvas.node.node_types import (
    AIChatNode, CanvasNode, ChatMessage, Connection, FileRef, NodeKind,
    NoteNode, PortName, Position, Size, TextNode,
)

from notecanvas.logger import get_logger
log = get_logger("GraphStore")

# Region used when a node is added without an explicit position.
DEFAULT_SPAWN_ORIGIN = Position(100.0, 100.0)
DEFAULT_SPAWN_EXTENT = Size(400.0, 300.0)


# ==============================================================================
# STATS
# ==============================================================================

@dataclass(frozen=True)
class CanvasStats:
    node_count: int
    connection_count: int
    per_type_counts: Dict[str, int]

    @property
    def note_node_count(self) -> int:
        return self.per_type_counts.get(NodeKind.NOTE.value, 0)

    @property
    def text_node_count(self) -> int:
        return self.per_type_counts.get(NodeKind.TEXT.value, 0)

    @property
    def ai_node_count(self) -> int:
        return self.per_type_counts.get(NodeKind.AI_CHAT.value, 0)


# ==============================================================================
# STATE SNAPSHOT
# ==============================================================================

@dataclass(frozen=True)
class CanvasState:
    """
    One immutable canvas snapshot.

    The dicts are never mutated after construction; every transition
    copies the mapping it changes.  Connection dict order is insertion
    order, which keeps connected-node queries stable.
    """
    nodes: Dict[str, CanvasNode] = field(default_factory=dict)
    connections: Dict[str, Connection] = field(default_factory=dict)
    viewport: Viewport = field(default_factory=Viewport)
    selection: Selection = field(default_factory=Selection)

    # -- Queries ----------------------------------------------------------

    @property
    def selected_nodes(self):
        return self.selection.nodes

    @property
    def selected_connections(self):
        return self.selection.connections

    def get_node(self, node_id: str) -> Optional[CanvasNode]:
        return self.nodes.get(node_id)

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self.connections.get(connection_id)

    def connected_nodes(self, node_id: str) -> List[CanvasNode]:
        """Upstream sources: nodes feeding a connection into *node_id*."""
        sources: List[CanvasNode] = []
        for conn in self.connections.values():
            if conn.to_node_id == node_id:
                source = self.nodes.get(conn.from_node_id)
                if source is not None:
                    sources.append(source)
        return sources

    def incoming_count(self, node_id: str) -> int:
        return sum(1 for c in self.connections.values() if c.to_node_id == node_id)

    def stats(self) -> CanvasStats:
        counts = Counter(node.kind.value for node in self.nodes.values())
        return CanvasStats(
            node_count=len(self.nodes),
            connection_count=len(self.connections),
            per_type_counts={kind.value: counts.get(kind.value, 0) for kind in NodeKind},
        )

    # -- Transitions ------------------------------------------------------

    def put_node(self, node: CanvasNode) -> "CanvasState":
        nodes = dict(self.nodes)
        nodes[node.id] = node
        return replace(self, nodes=nodes)

    def drop_node(self, node_id: str) -> "CanvasState":
        """Remove a node, cascade its connections and prune the selection."""
        if node_id not in self.nodes:
            return self
        nodes = {k: v for k, v in self.nodes.items() if k != node_id}
        connections = {k: c for k, c in self.connections.items() if not c.touches(node_id)}
        selection = self.selection.prune(nodes.keys(), connections.keys())
        return replace(self, nodes=nodes, connections=connections, selection=selection)

    def put_connection(self, connection: Connection) -> "CanvasState":
        connections = dict(self.connections)
        connections[connection.id] = connection
        return replace(self, connections=connections)

    def drop_connection(self, connection_id: str) -> "CanvasState":
        if connection_id not in self.connections:
            return self
        connections = {k: c for k, c in self.connections.items() if k != connection_id}
        selection = self.selection.prune(self.nodes.keys(), connections.keys())
        return replace(self, connections=connections, selection=selection)

    def recount_connections(self) -> Tuple["CanvasState", List[str]]:
        """
        Refresh connected_count on every AIChatNode.

        Returns:
            The new state and the ids of the nodes whose count changed.
            Unchanged nodes keep their identity.
        """
        incoming = Counter(c.to_node_id for c in self.connections.values())
        changed: Dict[str, CanvasNode] = {}
        for node_id, node in self.nodes.items():
            if isinstance(node, AIChatNode):
                count = incoming.get(node_id, 0)
                if node.connected_count != count:
                    changed[node_id] = replace(node, connected_count=count)
        if not changed:
            return self, []
        nodes = dict(self.nodes)
        nodes.update(changed)
        return replace(self, nodes=nodes), list(changed)


# ==============================================================================
# ID GENERATION
# ==============================================================================

def _stamp() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def new_node_id(kind: NodeKind, taken) -> str:
    while True:
        candidate = f"{kind.value}-{_stamp()}"
        if candidate not in taken:
            return candidate


def new_connection_id(from_id: str, to_id: str, taken) -> str:
    while True:
        candidate = f"conn-{from_id}-{to_id}-{_stamp()}"
        if candidate not in taken:
            return candidate


# ==============================================================================
# GRAPH STORE
# ==============================================================================

class GraphStore(QObject):
    """
    Owner of the current CanvasState for one canvas session.

    Every public mutator is a single synchronous transition.  Operations
    that reference an unknown id are no-ops and return False / None.

    Signals:
        node_added(str)          node_removed(str)       node_updated(str)
        connection_added(str)    connection_removed(str)
        selection_changed()      viewport_changed(object)
        state_replaced()         changed()   (after any transition)
    """

    node_added         = Signal(str)
    node_removed       = Signal(str)
    node_updated       = Signal(str)
    connection_added   = Signal(str)
    connection_removed = Signal(str)
    selection_changed  = Signal()
    viewport_changed   = Signal(object)
    state_replaced     = Signal()
    changed            = Signal()

    def __init__(self, state: Optional[CanvasState] = None, rng: Optional[random.Random] = None) -> None:
        super().__init__()
        self._state = state if state is not None else CanvasState()
        self._rng = rng or random.Random()

    @property
    def state(self) -> CanvasState:
        return self._state

    def _commit(self, new_state: CanvasState) -> None:
        old_selection = self._state.selection
        self._state = new_state
        if new_state.selection != old_selection:
            self.selection_changed.emit()

    # ==========================================================================
    # QUERIES
    # ==========================================================================

    def get_node(self, node_id: str) -> Optional[CanvasNode]:
        return self._state.get_node(node_id)

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self._state.get_connection(connection_id)

    def get_connected_nodes(self, node_id: str) -> List[CanvasNode]:
        return self._state.connected_nodes(node_id)

    def get_stats(self) -> CanvasStats:
        return self._state.stats()

    @property
    def nodes(self) -> List[CanvasNode]:
        return list(self._state.nodes.values())

    @property
    def connections(self) -> List[Connection]:
        return list(self._state.connections.values())

    @property
    def viewport(self) -> Viewport:
        return self._state.viewport

    # ==========================================================================
    # NODES
    # ==========================================================================

    def _random_position(self) -> Position:
        return Position(
            DEFAULT_SPAWN_ORIGIN.x + self._rng.random() * DEFAULT_SPAWN_EXTENT.width,
            DEFAULT_SPAWN_ORIGIN.y + self._rng.random() * DEFAULT_SPAWN_EXTENT.height,
        )

    def add_node(self, kind: Union[NodeKind, str], position: Optional[Position] = None) -> str:
        """
        Create a node of *kind* with its default payload.

        Args:
            kind:     NodeKind or its persisted string ("note", "text", "ai-chat").
            position: World position; a random point in the spawn region if omitted.

        Returns:
            The new node id.
        """
        resolved = node_registry.resolve_kind(kind)
        if resolved is None:
            raise ValueError(f"Unknown node kind: {kind!r}")

        node_id = new_node_id(resolved, self._state.nodes)
        node = node_registry.create_default(resolved, node_id, position or self._random_position())
        self._commit(self._state.put_node(node))

        log.info(f"Node added: {node_id} at ({node.position.x:.0f}, {node.position.y:.0f})")
        self.node_added.emit(node_id)
        self.changed.emit()
        return node_id

    def remove_node(self, node_id: str) -> bool:
        """Remove a node together with every connection touching it."""
        if node_id not in self._state.nodes:
            log.debug(f"remove_node: unknown id {node_id}")
            return False

        doomed = [c.id for c in self._state.connections.values() if c.touches(node_id)]
        new_state, recounted = self._state.drop_node(node_id).recount_connections()
        self._commit(new_state)

        for conn_id in doomed:
            self.connection_removed.emit(conn_id)
        self.node_removed.emit(node_id)
        for changed_id in recounted:
            self.node_updated.emit(changed_id)
        self.changed.emit()

        log.info(f"Node removed: {node_id} ({len(doomed)} connection(s) cascaded)")
        return True

    def update_node(self, node_id: str, **fields: Any) -> bool:
        """
        Merge *fields* into a node, keeping every field not mentioned.

        ``id`` and derived fields (word/char counts, connected count) are
        ignored; they are owned by the node and the store.
        ``size`` is clamped to the kind's size limits.

        Raises:
            TypeError: a field name does not exist on the node's kind.
        """
        node = self._state.get_node(node_id)
        if node is None:
            log.debug(f"update_node: unknown id {node_id}")
            return False

        ignored = {"id"} | set(node.derived_fields)
        dropped = ignored.intersection(fields)
        if dropped:
            log.debug(f"update_node: ignoring read-only field(s) {sorted(dropped)}")
        updates = {k: v for k, v in fields.items() if k not in ignored}
        if "messages" in updates:
            updates["messages"] = tuple(updates["messages"])
        if "size" in updates:
            updates["size"] = node.size_limits.clamp(updates["size"])
        if not updates:
            return False

        updated = replace(node, **updates)
        if updated == node:
            return False

        self._commit(self._state.put_node(updated))
        self.node_updated.emit(node_id)
        self.changed.emit()
        return True

    def move_node(self, node_id: str, position: Position) -> bool:
        return self.update_node(node_id, position=position)

    def resize_node(self, node_id: str, size: Size) -> bool:
        """Resize a node, clamped to its kind's size limits."""
        return self.update_node(node_id, size=size)

    def set_text_content(self, node_id: str, content: str) -> bool:
        if not isinstance(self._state.get_node(node_id), TextNode):
            return False
        return self.update_node(node_id, content=content)

    def set_note_file(self, node_id: str, file: Optional[FileRef], content: Optional[str]) -> bool:
        if not isinstance(self._state.get_node(node_id), NoteNode):
            return False
        return self.update_node(node_id, file=file, content=content)

    def append_chat_message(self, node_id: str, message: ChatMessage) -> bool:
        node = self._state.get_node(node_id)
        if not isinstance(node, AIChatNode):
            return False
        return self.update_node(node_id, messages=node.messages + (message,))

    def clear_chat(self, node_id: str) -> bool:
        if not isinstance(self._state.get_node(node_id), AIChatNode):
            return False
        return self.update_node(node_id, messages=())

    # ==========================================================================
    # CONNECTIONS
    # ==========================================================================

    def add_connection(
        self,
        from_node_id: str,
        to_node_id: str,
        from_port: str = PortName.OUTPUT.value,
        to_port: str = PortName.INPUT.value,
    ) -> Optional[str]:
        """
        Connect two distinct existing nodes.

        Returns:
            The connection id, or None for a self-loop or an unknown node id.
        """
        if from_node_id == to_node_id:
            log.debug(f"add_connection: self-loop on {from_node_id} rejected")
            return None
        if from_node_id not in self._state.nodes or to_node_id not in self._state.nodes:
            log.debug(f"add_connection: unknown endpoint {from_node_id} -> {to_node_id}")
            return None

        conn_id = new_connection_id(from_node_id, to_node_id, self._state.connections)
        connection = Connection(conn_id, from_node_id, to_node_id, from_port, to_port)
        new_state, recounted = self._state.put_connection(connection).recount_connections()
        self._commit(new_state)

        self.connection_added.emit(conn_id)
        for changed_id in recounted:
            self.node_updated.emit(changed_id)
        self.changed.emit()

        log.info(f"Connection added: {from_node_id}:{from_port} -> {to_node_id}:{to_port}")
        return conn_id

    def remove_connection(self, connection_id: str) -> bool:
        if connection_id not in self._state.connections:
            log.debug(f"remove_connection: unknown id {connection_id}")
            return False

        new_state, recounted = self._state.drop_connection(connection_id).recount_connections()
        self._commit(new_state)

        self.connection_removed.emit(connection_id)
        for changed_id in recounted:
            self.node_updated.emit(changed_id)
        self.changed.emit()
        return True

    # ==========================================================================
    # SELECTION
    # ==========================================================================

    def select_node(self, node_id: str, multi: bool = False) -> bool:
        if node_id not in self._state.nodes:
            return False
        self._commit(replace(self._state, selection=self._state.selection.select(node_id, multi)))
        return True

    def select_connection(self, connection_id: str, multi: bool = False) -> bool:
        if connection_id not in self._state.connections:
            return False
        selection = self._state.selection.select_connection(connection_id, multi)
        self._commit(replace(self._state, selection=selection))
        return True

    def clear_selection(self) -> None:
        self._commit(replace(self._state, selection=Selection()))

    def remove_selected(self) -> int:
        """Delete selected connections, then selected nodes.  Returns nodes removed."""
        for conn_id in list(self._state.selection.connections):
            self.remove_connection(conn_id)
        removed = 0
        for node_id in list(self._state.selection.nodes):
            if self.remove_node(node_id):
                removed += 1
        return removed

    # ==========================================================================
    # VIEWPORT
    # ==========================================================================

    def set_viewport(self, viewport: Viewport) -> None:
        if viewport == self._state.viewport:
            return
        self._commit(replace(self._state, viewport=viewport))
        self.viewport_changed.emit(viewport)
        self.changed.emit()

    def screen_to_world(self, point: Position) -> Position:
        return vp.screen_to_world(point, self._state.viewport)

    def pan_by(self, delta: Position) -> None:
        self.set_viewport(vp.pan_by(delta, self._state.viewport))

    def zoom_at(self, anchor: Position, factor: float) -> None:
        self.set_viewport(vp.zoom_at(anchor, factor, self._state.viewport))

    def zoom_in(self, anchor: Optional[Position] = None) -> None:
        self.set_viewport(vp.zoom_in(self._state.viewport, anchor))

    def zoom_out(self, anchor: Optional[Position] = None) -> None:
        self.set_viewport(vp.zoom_out(self._state.viewport, anchor))

    def reset_zoom(self) -> None:
        self.set_viewport(vp.reset_zoom())

    def fit_to_content(self, viewport_size: Size, padding: float = vp.FIT_PADDING) -> None:
        self.set_viewport(
            vp.fit_to_content(self._state.nodes.values(), viewport_size, self._state.viewport, padding)
        )

    # ==========================================================================
    # WHOLE-STATE
    # ==========================================================================

    def clear_all(self) -> None:
        """Reset to an empty graph with the default viewport."""
        self.replace_state(CanvasState())
        log.info("Canvas cleared")

    def replace_state(self, state: CanvasState) -> None:
        """
        Swap in a complete snapshot (used by load).

        Derived counts are recomputed and the selection pruned so the new
        snapshot satisfies the store invariants regardless of its origin.
        """
        state, _ = state.recount_connections()
        selection = state.selection.prune(state.nodes.keys(), state.connections.keys())
        if selection is not state.selection:
            state = replace(state, selection=selection)

        self._commit(state)
        self.state_replaced.emit()
        self.viewport_changed.emit(state.viewport)
        self.changed.emit()
