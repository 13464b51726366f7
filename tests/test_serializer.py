"""
Tests for the canvas document serializer.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from notecanvas.canvas.graph_store import GraphStore
from notecanvas.canvas.viewport import Viewport
from notecanvas.errors import StorageError, StructuralError, UnsupportedVersionError
from notecanvas.node.node_types import ChatMessage, FileRef, Position
from notecanvas.serializer import (
    CanvasMetadata, CanvasSerializer, FORMAT_VERSION, format_timestamp, parse_timestamp,
)
from notecanvas.storage import MemoryStorage

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def serializer(storage):
    return CanvasSerializer(storage, folder="flows", clock=lambda: NOW)


@pytest.fixture
def populated(store, storage):
    """text + note -> chat, with a note file present in storage."""
    storage.write_text("notes/idea.md", "# Idea\n\nbody")
    text = store.add_node("text", Position(10, 20))
    note = store.add_node("note", Position(30, 40))
    chat = store.add_node("ai-chat", Position(500, 40))
    store.set_text_content(text, "alpha beta")
    store.set_note_file(
        note, FileRef.from_path("notes/idea.md", storage.modified_time("notes/idea.md")), "# Idea\n\nbody"
    )
    store.append_chat_message(chat, ChatMessage.user("hi"))
    store.add_connection(text, chat)
    store.add_connection(note, chat)
    store.set_viewport(Viewport(x=-12.5, y=3, zoom=0.75))
    return store


def _minimal(**overrides):
    doc = {
        "version": FORMAT_VERSION,
        "metadata": {"name": "x", "createdAt": "2026-01-01T00:00:00Z", "updatedAt": "2026-01-01T00:00:00Z"},
        "viewport": {"x": 0, "y": 0, "zoom": 1},
        "nodes": [],
        "connections": [],
    }
    doc.update(overrides)
    return doc


def _node(node_id, kind="text", **extra):
    raw = {"id": node_id, "type": kind,
           "position": {"x": 0, "y": 0}, "size": {"width": 250, "height": 160}}
    raw.update(extra)
    return raw


class TestSerialize:

    def test_document_shape(self, serializer, populated):
        doc = serializer.serialize(populated.state, CanvasMetadata(name="Board"))

        assert doc["version"] == "3.0.0"
        assert doc["metadata"]["name"] == "Board"
        assert doc["metadata"]["updatedAt"] == "2026-03-01T12:00:00Z"
        assert doc["metadata"]["createdAt"] == "2026-03-01T12:00:00Z"
        assert doc["viewport"] == {"x": -12.5, "y": 3, "zoom": 0.75}
        assert len(doc["nodes"]) == 3
        assert len(doc["connections"]) == 2
        assert set(doc["connections"][0]) == {"id", "fromNodeId", "toNodeId", "fromPort", "toPort"}

    def test_note_file_is_a_plain_snapshot(self, serializer, populated):
        doc = serializer.serialize(populated.state)
        note = next(n for n in doc["nodes"] if n["type"] == "note")
        assert set(note["file"]) == {"path", "basename", "extension", "modifiedTime"}
        assert note["file"]["basename"] == "idea"

    def test_text_counts_are_written(self, serializer, populated):
        doc = serializer.serialize(populated.state)
        text = next(n for n in doc["nodes"] if n["type"] == "text")
        assert (text["wordCount"], text["charCount"]) == (2, 10)

    def test_created_at_is_preserved(self, serializer, store):
        meta = CanvasMetadata(name="Old", created_at="2020-05-05T00:00:00Z")
        doc = serializer.serialize(store.state, meta)
        assert doc["metadata"]["createdAt"] == "2020-05-05T00:00:00Z"
        assert doc["metadata"]["updatedAt"] == "2026-03-01T12:00:00Z"

    def test_default_name(self, serializer, store):
        assert serializer.serialize(store.state)["metadata"]["name"] == "Untitled Flow"

    def test_metadata_dict_overrides(self, serializer, store):
        doc = serializer.serialize(store.state, {"name": "Dict", "tags": ["a"], "author": "me"})
        assert doc["metadata"]["tags"] == ["a"]
        assert doc["metadata"]["author"] == "me"


class TestRoundTrip:

    def test_round_trip_reproduces_graph(self, serializer, populated):
        doc = serializer.serialize(populated.state)
        restored = serializer.deserialize(json.loads(serializer.to_json(doc)))

        assert restored.nodes == populated.state.nodes
        assert list(restored.connections) == list(populated.state.connections)
        assert restored.connections == populated.state.connections
        assert restored.viewport == populated.state.viewport

    def test_selection_is_not_restored(self, serializer, populated):
        populated.select_node(populated.nodes[0].id)
        restored = serializer.deserialize(serializer.serialize(populated.state))
        assert restored.selection.is_empty()

    def test_timestamps(self):
        stamp = datetime(2026, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
        assert parse_timestamp(format_timestamp(stamp)) == stamp
        assert format_timestamp(stamp).endswith("Z")


class TestDeserialize:

    def test_unsupported_version(self, serializer):
        with pytest.raises(UnsupportedVersionError, match="0.9.0"):
            serializer.deserialize(_minimal(version="0.9.0"))

    @pytest.mark.parametrize("broken", [
        None,
        [],
        {"version": "3.0.0"},
        _minimal(nodes={}),
        _minimal(connections=None),
        _minimal(viewport=[0, 0, 1]),
        _minimal(version=""),
    ])
    def test_invalid_structure(self, serializer, broken):
        assert not serializer.validate_structure(broken)
        with pytest.raises(StructuralError):
            serializer.deserialize(broken)

    def test_structure_checked_before_version(self, serializer):
        with pytest.raises(StructuralError):
            serializer.deserialize({"version": "0.9.0", "metadata": {}})

    def test_duplicate_node_ids(self, serializer):
        with pytest.raises(StructuralError, match="Duplicate node id"):
            serializer.deserialize(_minimal(nodes=[_node("a"), _node("a")]))

    def test_duplicate_connection_ids(self, serializer):
        conn = {"id": "c", "fromNodeId": "a", "toNodeId": "b", "fromPort": "output", "toPort": "input"}
        doc = _minimal(nodes=[_node("a"), _node("b", "ai-chat")], connections=[conn, conn])
        with pytest.raises(StructuralError, match="Duplicate connection id"):
            serializer.deserialize(doc)

    def test_malformed_position(self, serializer):
        bad = _node("a", position={"x": "left", "y": 0})
        with pytest.raises(StructuralError):
            serializer.deserialize(_minimal(nodes=[bad]))

    def test_malformed_message_role(self, serializer):
        chat = _node("c", "ai-chat", messages=[{"role": "robot", "content": "x", "timestamp": "2026-01-01T00:00:00Z"}])
        with pytest.raises(StructuralError):
            serializer.deserialize(_minimal(nodes=[chat]))

    def test_unknown_kind_and_dangling_connections_are_skipped(self, serializer):
        doc = _minimal(
            nodes=[_node("a"), _node("b", "ai-chat"), _node("z", "diagram")],
            connections=[
                {"id": "ok", "fromNodeId": "a", "toNodeId": "b", "fromPort": "output", "toPort": "input"},
                {"id": "dangling", "fromNodeId": "z", "toNodeId": "b", "fromPort": "output", "toPort": "input"},
                {"id": "loop", "fromNodeId": "b", "toNodeId": "b", "fromPort": "output", "toPort": "input"},
            ],
        )
        state = serializer.deserialize(doc)

        assert set(state.nodes) == {"a", "b"}
        assert list(state.connections) == ["ok"]
        assert state.nodes["b"].connected_count == 1

    def test_derived_counts_are_recomputed(self, serializer):
        doc = _minimal(nodes=[
            _node("t", content="one two", wordCount=40, charCount=1),
            _node("c", "ai-chat", connectedCount=9),
        ])
        state = serializer.deserialize(doc)
        assert state.nodes["t"].word_count == 2
        assert state.nodes["t"].char_count == 7
        assert state.nodes["c"].connected_count == 0

    def test_unknown_fields_are_ignored(self, serializer):
        doc = _minimal(nodes=[_node("t", content="x", colour="red")], extra={"foo": 1})
        assert "t" in serializer.deserialize(doc).nodes

    def test_viewport_taken_verbatim(self, serializer):
        state = serializer.deserialize(_minimal(viewport={"x": 1.5, "y": -2, "zoom": 7}))
        assert state.viewport == Viewport(1.5, -2, 7)


class TestNoteResolution:

    def _doc(self, path="notes/gone.md", content="stale"):
        note = _node("n", "note", content=content, file={
            "path": path, "basename": "gone", "extension": "md", "modifiedTime": 1.0,
        })
        return _minimal(nodes=[note])

    def test_deleted_file_clears_reference(self, serializer):
        state = serializer.deserialize(self._doc())
        node = state.nodes["n"]
        assert node.file is None
        assert node.content is None

    def test_present_file_refreshes_preview(self, serializer, storage):
        storage.write_text("notes/gone.md", "x" * 900)
        storage.set_modified_time("notes/gone.md", 1234.0)
        node = serializer.deserialize(self._doc()).nodes["n"]

        assert node.file.path == "notes/gone.md"
        assert node.file.modified_time == 1234.0
        assert node.content == "x" * 500

    def test_unreadable_file_keeps_reference(self, serializer, storage):
        storage.write_text("notes/gone.md", "body")
        storage.fail_reads.add("notes/gone.md")
        node = serializer.deserialize(self._doc()).nodes["n"]

        assert node.file is not None
        assert node.content is None

    def test_escaping_path_is_detached_without_aborting(self, serializer):
        doc = self._doc(path="../outside/secret.md")
        doc["nodes"].append(_node("t", content="kept"))
        state = serializer.deserialize(doc)

        assert state.nodes["n"].file is None
        assert state.nodes["t"].content == "kept"

    def test_folder_path_is_not_a_note_file(self, serializer, storage):
        storage.write_text("notes/a.md", "body")
        node = serializer.deserialize(self._doc(path="notes")).nodes["n"]
        assert node.file is None
        assert node.content is None

    def test_note_without_file_keeps_content(self, serializer):
        doc = _minimal(nodes=[_node("n", "note", content="loose")])
        assert serializer.deserialize(doc).nodes["n"].content == "loose"


class TestFiles:

    def test_save_uses_sanitised_name(self, serializer, store, storage):
        doc = serializer.serialize(store.state, CanvasMetadata(name="My board #1"))
        path = serializer.save_document(doc)

        assert path == "flows/My_board__1.json"
        assert json.loads(storage.read_text(path))["metadata"]["name"] == "My board #1"

    def test_save_overwrites(self, serializer, store):
        doc = serializer.serialize(store.state)
        serializer.save_document(doc, "a.json")
        store.add_node("text")
        serializer.save_document(serializer.serialize(store.state), "a.json")
        assert len(serializer.load_document("flows/a.json")["nodes"]) == 1

    def test_save_failure_propagates(self, serializer, store, storage):
        storage.fail_writes.add("flows/x.json")
        with pytest.raises(StorageError):
            serializer.save_document(serializer.serialize(store.state), "x.json")

    def test_load_rejects_bad_json(self, serializer, storage):
        storage.write_text("flows/bad.json", "{not json")
        with pytest.raises(StructuralError):
            serializer.load_document("flows/bad.json")

    def test_load_rejects_bad_structure(self, serializer, storage):
        storage.write_text("flows/bad.json", '{"version": "3.0.0"}')
        with pytest.raises(StructuralError):
            serializer.load_document("flows/bad.json")

    def test_list_saved_newest_first(self, storage):
        clock = {"now": NOW}
        serializer = CanvasSerializer(storage, clock=lambda: clock["now"])
        state = GraphStore().state
        for name, hours in [("old", 0), ("newest", 2), ("middle", 1)]:
            clock["now"] = NOW + timedelta(hours=hours)
            serializer.save_document(serializer.serialize(state, CanvasMetadata(name=name)))

        storage.write_text("flows/broken.json", "{{{")
        storage.write_text("flows/no_meta.json", "{}")
        storage.write_text("flows/readme.txt", "ignore me")

        names = [entry.metadata.name for entry in serializer.list_saved()]
        assert names == ["newest", "middle", "old"]

    def test_list_saved_missing_folder(self):
        assert CanvasSerializer(MemoryStorage(), folder="nowhere").list_saved() == []
