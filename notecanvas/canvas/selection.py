# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Selection Model: which nodes and connections are currently selected.
"""

from dataclasses import dataclass, replace
from typing import AbstractSet, FrozenSet


def _pick(current: FrozenSet[str], item_id: str, multi: bool) -> FrozenSet[str]:
    if not multi:
        return frozenset({item_id})
    if item_id in current:
        return current - {item_id}
    return current | {item_id}


@dataclass(frozen=True)
class Selection:
    """
    Immutable pair of selected node ids and selected connection ids.

    Single-select replaces the set with ``{id}``; multi-select toggles the
    id's membership.  Callers validate ids against the graph first
    (see GraphStore.select_node).
    """
    nodes: FrozenSet[str] = frozenset()
    connections: FrozenSet[str] = frozenset()

    def select(self, node_id: str, multi: bool = False) -> "Selection":
        return replace(self, nodes=_pick(self.nodes, node_id, multi))

    def select_connection(self, connection_id: str, multi: bool = False) -> "Selection":
        return replace(self, connections=_pick(self.connections, connection_id, multi))

    def clear(self) -> "Selection":
        return Selection()

    def prune(
        self,
        node_ids: AbstractSet[str],
        connection_ids: AbstractSet[str],
    ) -> "Selection":
        """Drop ids that no longer exist.  Returns self when nothing is stale."""
        nodes = self.nodes & node_ids
        connections = self.connections & connection_ids
        if nodes == self.nodes and connections == self.connections:
            return self
        return Selection(frozenset(nodes), frozenset(connections))

    def is_empty(self) -> bool:
        return not self.nodes and not self.connections
