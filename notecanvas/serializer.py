# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

serializer.py - Canvas Document Serializer v3
-----------------------------------------------
Converts a CanvasState to and from the persisted JSON document and
saves / loads / lists documents through a StorageBackend.

Format v3.0.0 (camelCase keys):
{
    "version": "3.0.0",
    "metadata": { "name", "description"?, "createdAt", "updatedAt",
                  "author"?, "tags": [...] },
    "viewport": { "x", "y", "zoom" },
    "nodes": [
        { "id", "type": "note",    "position", "size",
          "file"?: { "path", "basename", "extension", "modifiedTime" },
          "content"? },
        { "id", "type": "text",    "position", "size",
          "content", "wordCount", "charCount" },
        { "id", "type": "ai-chat", "position", "size",
          "messages": [ { "role", "content", "timestamp" } ],
          "connectedCount" },
    ],
    "connections": [
        { "id", "fromNodeId", "toNodeId", "fromPort", "toPort" }
    ]
}

Load rules:
- Only the exact version strings in SUPPORTED_VERSIONS are read; older
  documents are rejected, never migrated.
- Unknown extra fields are ignored.
- Nodes of an unknown type and connections whose endpoints are missing
  (or equal) are skipped with a warning.
- Note files are re-resolved through storage; a deleted file clears the
  node's file reference and preview instead of failing the load.
- Derived counts (wordCount, charCount, connectedCount) are recomputed,
  the stored values are ignored.
"""

import json
import re
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from notecanvas.canvas.graph_store import CanvasState
from notecanvas.canvas.viewport import Viewport
from notecanvas.errors import (
    StorageError, StructuralError, UnsupportedVersionError,
)
from notecanvas.node.node_registry import node_registry
from notecanvas.node.node_types import (
    AIChatNode, CanvasNode, ChatMessage, ChatRole, Connection, FileRef,
    NodeKind, NoteNode, PortName, Position, Size, TextNode, utc_now,
)
from notecanvas.storage import StorageBackend

from notecanvas.logger import get_logger
log = get_logger("Serializer")

FORMAT_VERSION = "3.0.0"
SUPPORTED_VERSIONS = frozenset({FORMAT_VERSION})
DEFAULT_NAME = "Untitled Flow"
DEFAULT_FOLDER = "flows"
PREVIEW_LENGTH = 500


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

def format_timestamp(dt: datetime) -> str:
    """ISO-8601 in UTC with a trailing ``Z``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Inverse of format_timestamp.  Raises ValueError on malformed input."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---------------------------------------------------------------------------
# Field readers (raise StructuralError on malformed input)
# ---------------------------------------------------------------------------

def _number(raw: Dict[str, Any], key: str, where: str) -> float:
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise StructuralError(f"{where}: '{key}' must be a number, got {value!r}")
    return float(value)


def _string(raw: Dict[str, Any], key: str, where: str, optional: bool = False) -> Optional[str]:
    value = raw.get(key)
    if value is None and optional:
        return None
    if not isinstance(value, str):
        raise StructuralError(f"{where}: '{key}' must be a string, got {value!r}")
    return value


def _object(raw: Dict[str, Any], key: str, where: str) -> Dict[str, Any]:
    value = raw.get(key)
    if not isinstance(value, dict):
        raise StructuralError(f"{where}: '{key}' must be an object")
    return value


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CanvasMetadata:
    name: str = DEFAULT_NAME
    description: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    author: Optional[str] = None
    tags: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        if self.description is not None:
            data["description"] = self.description
        data["createdAt"] = self.created_at
        data["updatedAt"] = self.updated_at
        if self.author is not None:
            data["author"] = self.author
        data["tags"] = list(self.tags)
        return data

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CanvasMetadata":
        tags = raw.get("tags") or ()
        if not isinstance(tags, (list, tuple)):
            raise StructuralError("metadata: 'tags' must be a list")
        return cls(
            name=raw.get("name") or DEFAULT_NAME,
            description=raw.get("description"),
            created_at=raw.get("createdAt"),
            updated_at=raw.get("updatedAt"),
            author=raw.get("author"),
            tags=tuple(str(t) for t in tags),
        )

    @property
    def updated(self) -> datetime:
        """updatedAt as a datetime; the epoch minimum when absent or malformed."""
        try:
            return parse_timestamp(self.updated_at)
        except (TypeError, ValueError, AttributeError):
            return datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class SavedCanvas:
    """One entry of :meth:`CanvasSerializer.list_saved`."""
    path: str
    metadata: CanvasMetadata


# ---------------------------------------------------------------------------
# Note file resolution
# ---------------------------------------------------------------------------

def resolve_note_file(
    storage: StorageBackend, path: str
) -> Tuple[Optional[FileRef], Optional[str]]:
    """
    Look up a note file and read its preview.

    Returns:
        (file_ref, preview).  ``(None, None)`` when the file is gone, is a
        folder or cannot be addressed; ``(file_ref, None)`` when it exists
        but cannot be read.
    """
    try:
        found = storage.is_file(path)
    except StorageError as e:
        log.warning(f"Cannot resolve note file {path}: {e}")
        return None, None
    if not found:
        log.warning(f"Note file not found: {path}")
        return None, None

    try:
        mtime = storage.modified_time(path)
    except StorageError:
        mtime = None
    file_ref = FileRef.from_path(path, mtime)

    try:
        preview = storage.read_text(path)[:PREVIEW_LENGTH]
    except StorageError as e:
        log.warning(f"Could not read note file {path}: {e}")
        return file_ref, None
    return file_ref, preview


# ---------------------------------------------------------------------------
# Serializer
# ---------------------------------------------------------------------------

class CanvasSerializer:
    """
    Versioned canvas documents on top of a StorageBackend.

    Args:
        storage: Where documents and note files live.
        folder:  Folder (storage key prefix) for saved canvases.
        clock:   Returns the current UTC time; injectable for tests.
    """

    FORMAT_VERSION = FORMAT_VERSION
    SUPPORTED_VERSIONS = SUPPORTED_VERSIONS

    def __init__(
        self,
        storage: StorageBackend,
        folder: str = DEFAULT_FOLDER,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.storage = storage
        self.folder = folder.strip("/")
        self._clock = clock

    # ==========================================================================
    # SERIALIZE
    # ==========================================================================

    def serialize(
        self,
        state: CanvasState,
        metadata: Union[CanvasMetadata, Dict[str, Any], None] = None,
    ) -> Dict[str, Any]:
        """
        Build the persisted document for *state*.

        ``updatedAt`` is always stamped with the current time; ``createdAt``
        is kept when *metadata* carries one.
        """
        if metadata is None:
            metadata = CanvasMetadata()
        elif isinstance(metadata, dict):
            metadata = CanvasMetadata.from_dict(metadata)

        now = format_timestamp(self._clock())
        metadata = replace(
            metadata,
            name=metadata.name or DEFAULT_NAME,
            created_at=metadata.created_at or now,
            updated_at=now,
        )

        vp = state.viewport
        return {
            "version": self.FORMAT_VERSION,
            "metadata": metadata.to_dict(),
            "viewport": {"x": vp.x, "y": vp.y, "zoom": vp.zoom},
            "nodes": [self._serialize_node(n) for n in state.nodes.values()],
            "connections": [self._serialize_connection(c) for c in state.connections.values()],
        }

    def _serialize_node(self, node: CanvasNode) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": node.id,
            "type": node.kind.value,
            "position": {"x": node.position.x, "y": node.position.y},
            "size": {"width": node.size.width, "height": node.size.height},
        }
        if isinstance(node, NoteNode):
            if node.file is not None:
                data["file"] = {
                    "path": node.file.path,
                    "basename": node.file.basename,
                    "extension": node.file.extension,
                    "modifiedTime": node.file.modified_time,
                }
            if node.content is not None:
                data["content"] = node.content
        elif isinstance(node, TextNode):
            data["content"] = node.content
            data["wordCount"] = node.word_count
            data["charCount"] = node.char_count
        elif isinstance(node, AIChatNode):
            data["messages"] = [
                {
                    "role": m.role.value,
                    "content": m.content,
                    "timestamp": format_timestamp(m.timestamp),
                }
                for m in node.messages
            ]
            data["connectedCount"] = node.connected_count
        return data

    @staticmethod
    def _serialize_connection(conn: Connection) -> Dict[str, Any]:
        return {
            "id": conn.id,
            "fromNodeId": conn.from_node_id,
            "toNodeId": conn.to_node_id,
            "fromPort": conn.from_port,
            "toPort": conn.to_port,
        }

    # ==========================================================================
    # DESERIALIZE
    # ==========================================================================

    @staticmethod
    def validate_structure(raw: Any) -> bool:
        """Required top-level shape: version, metadata, viewport, nodes[], connections[]."""
        if not isinstance(raw, dict):
            return False
        if not raw.get("version") or not isinstance(raw.get("metadata"), dict):
            return False
        if not isinstance(raw.get("viewport"), dict):
            return False
        return isinstance(raw.get("nodes"), list) and isinstance(raw.get("connections"), list)

    def read_metadata(self, document: Dict[str, Any]) -> CanvasMetadata:
        if not self.validate_structure(document):
            raise StructuralError("Invalid canvas file structure")
        return CanvasMetadata.from_dict(document["metadata"])

    def deserialize(self, document: Any) -> CanvasState:
        """
        Rebuild a CanvasState from a persisted document.

        Raises:
            StructuralError:         missing required fields, duplicate ids,
                                     malformed node or connection fields.
            UnsupportedVersionError: version is not exactly supported.
        """
        if not self.validate_structure(document):
            raise StructuralError("Invalid canvas file structure")

        version = document["version"]
        if version not in self.SUPPORTED_VERSIONS:
            raise UnsupportedVersionError(version)

        raw_vp = _object(document, "viewport", "document")
        viewport = Viewport(
            x=_number(raw_vp, "x", "viewport"),
            y=_number(raw_vp, "y", "viewport"),
            zoom=_number(raw_vp, "zoom", "viewport"),
        )

        nodes = self._deserialize_nodes(document["nodes"])
        connections = self._deserialize_connections(document["connections"], nodes)

        state, _ = CanvasState(nodes=nodes, connections=connections, viewport=viewport).recount_connections()
        log.info(f"Deserialized canvas: {len(nodes)} nodes, {len(connections)} connections")
        return state

    def _deserialize_nodes(self, raw_nodes: List[Any]) -> Dict[str, CanvasNode]:
        seen = set()
        for i, raw in enumerate(raw_nodes):
            if not isinstance(raw, dict):
                raise StructuralError(f"nodes[{i}] must be an object")
            node_id = _string(raw, "id", f"nodes[{i}]")
            if node_id in seen:
                raise StructuralError(f"Duplicate node id: {node_id}")
            seen.add(node_id)

        nodes: Dict[str, CanvasNode] = {}
        for raw in raw_nodes:
            kind = node_registry.resolve_kind(raw.get("type"))
            if kind is None:
                log.warning(f"Skipping node {raw['id']} of unknown type {raw.get('type')!r}")
                continue
            node = self._deserialize_node(kind, raw)
            nodes[node.id] = node
        return nodes

    def _deserialize_node(self, kind: NodeKind, raw: Dict[str, Any]) -> CanvasNode:
        node_id = raw["id"]
        where = f"node {node_id}"
        pos = _object(raw, "position", where)
        size = _object(raw, "size", where)
        common = dict(
            id=node_id,
            position=Position(_number(pos, "x", where), _number(pos, "y", where)),
            size=Size(_number(size, "width", where), _number(size, "height", where)),
        )

        if kind is NodeKind.NOTE:
            return self._deserialize_note(raw, where, common)
        if kind is NodeKind.TEXT:
            return TextNode(content=_string(raw, "content", where, optional=True) or "", **common)
        if kind is NodeKind.AI_CHAT:
            return AIChatNode(messages=self._deserialize_messages(raw, where), **common)
        raise StructuralError(f"{where}: unhandled node type {kind.value}")

    def _deserialize_note(self, raw: Dict[str, Any], where: str, common: Dict[str, Any]) -> NoteNode:
        content = _string(raw, "content", where, optional=True)
        raw_file = raw.get("file")
        if raw_file is None:
            return NoteNode(file=None, content=content, **common)
        if not isinstance(raw_file, dict):
            raise StructuralError(f"{where}: 'file' must be an object")

        path = _string(raw_file, "path", f"{where} file")
        file_ref, preview = resolve_note_file(self.storage, path)
        return NoteNode(file=file_ref, content=preview, **common)

    @staticmethod
    def _deserialize_messages(raw: Dict[str, Any], where: str) -> Tuple[ChatMessage, ...]:
        raw_messages = raw.get("messages") or []
        if not isinstance(raw_messages, list):
            raise StructuralError(f"{where}: 'messages' must be a list")

        messages = []
        for i, m in enumerate(raw_messages):
            at = f"{where} messages[{i}]"
            if not isinstance(m, dict):
                raise StructuralError(f"{at} must be an object")
            try:
                role = ChatRole(m.get("role"))
                timestamp = parse_timestamp(_string(m, "timestamp", at))
            except ValueError as e:
                raise StructuralError(f"{at}: {e}") from e
            messages.append(ChatMessage(role, _string(m, "content", at), timestamp))
        return tuple(messages)

    def _deserialize_connections(
        self, raw_connections: List[Any], nodes: Dict[str, CanvasNode]
    ) -> Dict[str, Connection]:
        connections: Dict[str, Connection] = {}
        for i, raw in enumerate(raw_connections):
            where = f"connections[{i}]"
            if not isinstance(raw, dict):
                raise StructuralError(f"{where} must be an object")
            conn = Connection(
                id=_string(raw, "id", where),
                from_node_id=_string(raw, "fromNodeId", where),
                to_node_id=_string(raw, "toNodeId", where),
                from_port=_string(raw, "fromPort", where, optional=True) or PortName.OUTPUT.value,
                to_port=_string(raw, "toPort", where, optional=True) or PortName.INPUT.value,
            )
            if conn.id in connections:
                raise StructuralError(f"Duplicate connection id: {conn.id}")

            if conn.from_node_id == conn.to_node_id:
                log.warning(f"Skipping self-loop connection {conn.id}")
                continue
            if conn.from_node_id not in nodes or conn.to_node_id not in nodes:
                log.warning(
                    f"Skipping connection {conn.id}: "
                    f"missing endpoint {conn.from_node_id} -> {conn.to_node_id}"
                )
                continue
            connections[conn.id] = conn
        return connections

    # ==========================================================================
    # JSON
    # ==========================================================================

    @staticmethod
    def to_json(document: Dict[str, Any]) -> str:
        return json.dumps(document, indent=2, ensure_ascii=False)

    @staticmethod
    def from_json(text: Union[str, bytes]) -> Dict[str, Any]:
        try:
            return json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StructuralError(f"Canvas file is not valid JSON: {e}") from e

    # ==========================================================================
    # FILE OPERATIONS
    # ==========================================================================

    @staticmethod
    def default_filename(name: str) -> str:
        return re.sub(r"[^a-zA-Z0-9]", "_", name) + ".json"

    def save_document(self, document: Dict[str, Any], filename: Optional[str] = None) -> str:
        """
        Write *document* into the canvas folder, replacing any existing file.

        Returns:
            The storage path written.
        """
        name = document.get("metadata", {}).get("name") or DEFAULT_NAME
        path = f"{self.folder}/{filename or self.default_filename(name)}"
        try:
            self.storage.ensure_folder(self.folder)
            self.storage.write_text(path, self.to_json(document))
        except StorageError as e:
            log.error(f"Failed to save canvas to {path}: {e}")
            raise

        log.info(f"Saved canvas to {path}")
        return path

    def load_document(self, path: str) -> Dict[str, Any]:
        """
        Read and structurally validate a saved document (no version check).

        Raises:
            StorageNotFoundError / StorageError: the file cannot be read.
            StructuralError: not JSON or missing required fields.
        """
        try:
            document = self.from_json(self.storage.read(path))
        except (StorageError, StructuralError) as e:
            log.error(f"Failed to load canvas {path}: {e}")
            raise

        if not self.validate_structure(document):
            log.error(f"Failed to load canvas {path}: invalid structure")
            raise StructuralError(f"Invalid canvas file structure: {path}")
        return document

    def list_saved(self) -> List[SavedCanvas]:
        """Saved canvases in the folder, newest ``updatedAt`` first."""
        entries: List[SavedCanvas] = []
        for path in self.storage.list(self.folder):
            if not path.endswith(".json"):
                continue
            try:
                data = self.from_json(self.storage.read(path))
                if not isinstance(data, dict) or not isinstance(data.get("metadata"), dict):
                    continue
                entries.append(SavedCanvas(path, CanvasMetadata.from_dict(data["metadata"])))
            except (StorageError, StructuralError) as e:
                log.warning(f"Error reading canvas file {path}: {e}")

        entries.sort(key=lambda e: e.metadata.updated, reverse=True)
        return entries
