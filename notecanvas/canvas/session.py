# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Canvas Session: one canvas and everything that works on it.

    CanvasSession
        ├── GraphStore                 nodes, connections, selection, viewport
        ├── ConnectionDrawController   connection gesture
        ├── ResizeController           resize gesture
        ├── FrameCoalescer             node drag, one move per frame
        ├── CanvasSerializer           save / load / list
        ├── SettingsManager            provider + storage configuration
        ├── ChatController             AI chat requests
        └── TaskRunner                 background I/O and chat calls

Hosts create as many sessions as they show canvases; nothing here is
process-global.
"""

import random
from typing import List, Optional, Tuple

from PySide6.QtCore import QObject, Signal

from notecanvas.ai.chat import ChatController
from notecanvas.ai.context import ContextCollector
from notecanvas.ai.provider import ChatProvider
from notecanvas.canvas.canvas_states import (
    ConnectionDrawController, FrameCoalescer, ResizeController,
)
from notecanvas.canvas.graph_store import CanvasState, GraphStore
from notecanvas.errors import CanvasError
from notecanvas.node.node_types import FileRef, NoteNode, Position
from notecanvas.serializer import CanvasMetadata, CanvasSerializer, SavedCanvas, resolve_note_file
from notecanvas.settings import SettingsManager
from notecanvas.storage import StorageBackend
from notecanvas.tasks import TaskRunner

from notecanvas.logger import get_logger
log = get_logger("Session")


class CanvasSession(QObject):
    """
    Signals:
        saved(str)          -- storage path written
        loaded(str)         -- storage path read
        failed(str, str)    -- operation ("save", "load", "note"), message
    """

    saved  = Signal(str)
    loaded = Signal(str)
    failed = Signal(str, str)

    def __init__(
        self,
        storage: StorageBackend,
        settings: Optional[SettingsManager] = None,
        runner: Optional[TaskRunner] = None,
        provider: Optional[ChatProvider] = None,
        rng: Optional[random.Random] = None,
        frame_timer: bool = False,
    ):
        super().__init__()
        self.storage = storage
        self.settings = settings or SettingsManager(storage=storage)
        self.runner = runner or TaskRunner()

        self.store = GraphStore(rng=rng)
        self.connection_draw = ConnectionDrawController(self.store)
        self.resizer = ResizeController(self.store)
        self.drag = FrameCoalescer(self._apply_drag, use_timer=frame_timer)

        self.serializer = CanvasSerializer(storage, folder=self.settings.settings.storage_folder)
        self.chat = ChatController(
            self.store, self.settings, ContextCollector(storage), self.runner, provider
        )

        self.metadata = CanvasMetadata()
        self.current_path: Optional[str] = None

        self.settings.settings_changed.connect(self._on_settings_changed)

    def _on_settings_changed(self, changes: dict) -> None:
        if "storage_folder" in changes:
            self.serializer.folder = changes["storage_folder"].strip("/")
            log.info(f"Canvas folder set to {self.serializer.folder}")

    # ==========================================================================
    # DRAGGING
    # ==========================================================================

    def drag_node(self, node_id: str, position: Position) -> None:
        """Queue a move; only the newest position per frame is applied."""
        self.drag.push((node_id, position))

    def flush_frame(self) -> bool:
        return self.drag.flush()

    def _apply_drag(self, value: Tuple[str, Position]) -> None:
        node_id, position = value
        self.store.move_node(node_id, position)

    # ==========================================================================
    # SAVE / LOAD
    # ==========================================================================

    def new_canvas(self, name: Optional[str] = None) -> None:
        self.drag.discard()
        self.connection_draw.cancel()
        self.resizer.cancel()
        self.store.clear_all()
        self.metadata = CanvasMetadata(name=name) if name else CanvasMetadata()
        self.current_path = None

    def _document(self, name: Optional[str]):
        metadata = self.metadata
        if name:
            metadata = CanvasMetadata(
                name=name,
                description=metadata.description,
                created_at=metadata.created_at,
                author=metadata.author,
                tags=metadata.tags,
            )
        return self.serializer.serialize(self.store.state, metadata)

    def save(self, name: Optional[str] = None, filename: Optional[str] = None) -> str:
        """
        Serialize and write the canvas.

        Raises:
            StorageError: the write failed; the graph is untouched.
        """
        document = self._document(name)
        try:
            path = self.serializer.save_document(document, filename)
        except CanvasError as e:
            self.failed.emit("save", str(e))
            raise
        self._on_saved(document, path)
        return path

    def save_async(self, name: Optional[str] = None, filename: Optional[str] = None) -> None:
        """Snapshot now, write on the task runner; reports through saved / failed."""
        document = self._document(name)
        self.runner.submit(
            lambda: self.serializer.save_document(document, filename),
            on_finished=lambda path: self._on_saved(document, path),
            on_error=lambda exc: self._on_failed("save", exc),
            label="save canvas",
        )

    def _on_saved(self, document: dict, path: str) -> None:
        self.metadata = self.serializer.read_metadata(document)
        self.current_path = path
        self.saved.emit(path)

    def _read(self, path: str) -> Tuple[CanvasMetadata, CanvasState]:
        document = self.serializer.load_document(path)
        state = self.serializer.deserialize(document)
        return self.serializer.read_metadata(document), state

    def load(self, path: str) -> CanvasState:
        """
        Replace the canvas with the document at *path*.

        Nothing changes unless the whole document reads and validates.

        Raises:
            StorageError, StructuralError, UnsupportedVersionError
        """
        try:
            metadata, state = self._read(path)
        except CanvasError as e:
            self._on_failed("load", e)
            raise
        self._on_loaded(path, metadata, state)
        return self.store.state

    def load_async(self, path: str) -> None:
        self.runner.submit(
            lambda: self._read(path),
            on_finished=lambda result: self._on_loaded(path, *result),
            on_error=lambda exc: self._on_failed("load", exc),
            label=f"load {path}",
        )

    def _on_loaded(self, path: str, metadata: CanvasMetadata, state: CanvasState) -> None:
        self.drag.discard()
        self.connection_draw.cancel()
        self.resizer.cancel()
        self.store.replace_state(state)
        self.metadata = metadata
        self.current_path = path
        log.info(f"Loaded canvas '{metadata.name}' from {path}")
        self.loaded.emit(path)

    def _on_failed(self, operation: str, exc: BaseException) -> None:
        log.error(f"Canvas {operation} failed: {exc}")
        self.failed.emit(operation, str(exc))

    def list_saved(self) -> List[SavedCanvas]:
        return self.serializer.list_saved()

    # ==========================================================================
    # NOTE FILES
    # ==========================================================================

    def attach_note_file(self, node_id: str, path: str) -> bool:
        """
        Point a note node at *path* and load its preview in the background.

        Returns False when *node_id* is not a note node.  A file that does
        not exist leaves the node unchanged and reports ``failed("note")``.
        """
        if not isinstance(self.store.get_node(node_id), NoteNode):
            return False
        self._resolve_note(node_id, path, clear_missing=False)
        return True

    def refresh_note_preview(self, node_id: str) -> bool:
        """Re-read a note's file; a file deleted meanwhile detaches it."""
        node = self.store.get_node(node_id)
        if not isinstance(node, NoteNode) or node.file is None:
            return False
        self._resolve_note(node_id, node.file.path, clear_missing=True)
        return True

    def _resolve_note(self, node_id: str, path: str, clear_missing: bool) -> None:
        def apply(result: Tuple[Optional[FileRef], Optional[str]]) -> None:
            file_ref, preview = result
            if not isinstance(self.store.get_node(node_id), NoteNode):
                log.debug(f"Dropping note preview for removed node {node_id}")
                return
            if file_ref is None and not clear_missing:
                self.failed.emit("note", f"Note file not found: {path}")
                return
            self.store.set_note_file(node_id, file_ref, preview)

        self.runner.submit(
            lambda: resolve_note_file(self.storage, path),
            on_finished=apply,
            on_error=lambda exc: self._on_failed("note", exc),
            label=f"read note {path}",
        )
