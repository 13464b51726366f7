"""
Tests for the graph store: node and connection lifecycle, derived counts,
selection pruning and viewport delegation.
"""

import pytest

from notecanvas.canvas.graph_store import CanvasState, GraphStore
from notecanvas.canvas.selection import Selection
from notecanvas.canvas.viewport import Viewport
from notecanvas.node.node_types import (
    AIChatNode, ChatMessage, ChatRole, Connection, FileRef, NodeKind,
    NoteNode, Position, Size, TextNode,
)


def _live_count(store, node_id):
    return sum(1 for c in store.connections if c.to_node_id == node_id)


class TestNodes:

    def test_add_node_defaults(self, store):
        node_id = store.add_node("text")
        node = store.get_node(node_id)

        assert node_id.startswith("text-")
        assert isinstance(node, TextNode)
        assert node.size == Size(250, 160)
        assert 100 <= node.position.x < 500
        assert 100 <= node.position.y < 400

    @pytest.mark.parametrize("kind, cls, size", [
        (NodeKind.NOTE, NoteNode, Size(280, 180)),
        (NodeKind.AI_CHAT, AIChatNode, Size(400, 600)),
    ])
    def test_kind_defaults(self, store, kind, cls, size):
        node = store.get_node(store.add_node(kind, Position(1, 2)))
        assert isinstance(node, cls)
        assert node.size == size
        assert node.position == Position(1, 2)

    def test_add_node_ids_are_unique(self, store):
        ids = {store.add_node("note") for _ in range(20)}
        assert len(ids) == 20

    def test_add_unknown_kind_raises(self, store):
        with pytest.raises(ValueError):
            store.add_node("diagram")

    def test_add_node_emits(self, store, spy):
        added = spy(store.node_added)
        node_id = store.add_node("note")
        assert added == [(node_id,)]

    def test_remove_unknown_is_noop(self, store):
        store.add_node("text")
        before = store.state
        assert store.remove_node("missing") is False
        assert store.state is before

    def test_update_unknown_is_noop(self, store):
        before = store.state
        assert store.update_node("missing", content="x") is False
        assert store.state is before

    def test_update_merges_fields(self, store):
        node_id = store.add_node("text", Position(10, 10))
        store.update_node(node_id, content="hello world")
        node = store.get_node(node_id)

        assert node.content == "hello world"
        assert node.position == Position(10, 10)
        assert node.word_count == 2
        assert node.char_count == 11

    def test_update_ignores_id_and_derived_fields(self, store):
        node_id = store.add_node("text")
        store.update_node(node_id, id="other", content="one two three", word_count=99)
        node = store.get_node(node_id)

        assert node.id == node_id
        assert node.word_count == 3
        assert store.get_node("other") is None

    def test_update_unknown_field_raises(self, store):
        node_id = store.add_node("note")
        with pytest.raises(TypeError):
            store.update_node(node_id, messages=[])

    def test_move_node(self, store, spy):
        node_id = store.add_node("note")
        updated = spy(store.node_updated)
        assert store.move_node(node_id, Position(42, 24))
        assert store.get_node(node_id).position == Position(42, 24)
        assert updated == [(node_id,)]

    def test_resize_is_clamped(self, store):
        node_id = store.add_node("ai-chat")
        store.resize_node(node_id, Size(100, 2000))
        assert store.get_node(node_id).size == Size(350, 900)

    def test_update_node_size_is_clamped(self, store):
        node_id = store.add_node("text")
        assert store.update_node(node_id, size=Size(10, 5000))
        assert store.get_node(node_id).size == Size(200, 800)

    def test_set_text_content_only_on_text_nodes(self, store):
        note_id = store.add_node("note")
        text_id = store.add_node("text")
        assert store.set_text_content(note_id, "x") is False
        assert store.set_text_content(text_id, "  spaced   out  ") is True
        assert store.get_node(text_id).word_count == 2

    def test_empty_content_has_zero_words(self, store):
        text_id = store.add_node("text")
        store.set_text_content(text_id, "   ")
        node = store.get_node(text_id)
        assert node.word_count == 0
        assert node.char_count == 3

    def test_chat_messages(self, store):
        chat_id = store.add_node("ai-chat")
        store.append_chat_message(chat_id, ChatMessage.user("hi"))
        store.append_chat_message(chat_id, ChatMessage.assistant("hello"))
        roles = [m.role for m in store.get_node(chat_id).messages]
        assert roles == [ChatRole.USER, ChatRole.ASSISTANT]

        store.clear_chat(chat_id)
        assert store.get_node(chat_id).messages == ()

    def test_set_note_file(self, store):
        note_id = store.add_node("note")
        ref = FileRef.from_path("notes/idea.md", 1.0)
        store.set_note_file(note_id, ref, "preview")
        node = store.get_node(note_id)
        assert node.file.basename == "idea"
        assert node.file.extension == "md"
        assert node.content == "preview"


class TestConnections:

    def test_scenario_cascade_and_recount(self, store):
        """text -> chat, remove text: count drops back to zero."""
        t1 = store.add_node("text")
        a1 = store.add_node("ai-chat")

        conn_id = store.add_connection(t1, a1, "output", "input")
        assert conn_id is not None
        assert store.get_node(a1).connected_count == 1

        store.remove_node(t1)
        assert store.get_node(a1).connected_count == 0
        assert store.get_connection(conn_id) is None
        assert store.connections == []

    def test_self_loop_rejected(self, store):
        a = store.add_node("ai-chat")
        assert store.add_connection(a, a) is None
        assert store.connections == []

    def test_unknown_endpoint_rejected(self, store):
        a = store.add_node("ai-chat")
        assert store.add_connection("ghost", a) is None
        assert store.add_connection(a, "ghost") is None

    def test_counts_track_live_connections(self, store):
        chat = store.add_node("ai-chat")
        sources = [store.add_node("note") for _ in range(3)]
        conns = [store.add_connection(s, chat) for s in sources]
        assert store.get_node(chat).connected_count == 3

        store.remove_connection(conns[1])
        assert store.get_node(chat).connected_count == 2 == _live_count(store, chat)

        store.remove_node(sources[0])
        assert store.get_node(chat).connected_count == 1 == _live_count(store, chat)

    def test_remove_node_removes_every_touching_connection(self, store):
        hub = store.add_node("text")
        chats = [store.add_node("ai-chat") for _ in range(2)]
        for chat in chats:
            store.add_connection(hub, chat)
        other = store.add_node("note")
        keep = store.add_connection(other, chats[0])

        store.remove_node(hub)
        assert [c.id for c in store.connections] == [keep]
        assert all(not c.touches(hub) for c in store.connections)

    def test_remove_unknown_connection(self, store):
        assert store.remove_connection("nope") is False

    def test_connected_nodes_in_insertion_order(self, store):
        chat = store.add_node("ai-chat")
        first = store.add_node("note")
        second = store.add_node("text")
        store.add_connection(second, chat)
        store.add_connection(first, chat)

        assert [n.id for n in store.get_connected_nodes(chat)] == [second, first]

    def test_recount_only_signals_changed_chat_nodes(self, store, spy):
        chat_a = store.add_node("ai-chat")
        store.add_node("ai-chat")
        text = store.add_node("text")
        updated = spy(store.node_updated)

        store.add_connection(text, chat_a)
        assert updated == [(chat_a,)]

    def test_removal_signals(self, store, spy):
        text = store.add_node("text")
        chat = store.add_node("ai-chat")
        conn = store.add_connection(text, chat)
        removed_conns = spy(store.connection_removed)
        removed_nodes = spy(store.node_removed)

        store.remove_node(chat)
        assert removed_conns == [(conn,)]
        assert removed_nodes == [(chat,)]


class TestSelectionInStore:

    def test_select_unknown_is_ignored(self, store):
        assert store.select_node("ghost") is False
        assert store.state.selection.is_empty()

    def test_removal_prunes_selection(self, store):
        text = store.add_node("text")
        chat = store.add_node("ai-chat")
        conn = store.add_connection(text, chat)
        store.select_node(text)
        store.select_node(chat, multi=True)
        store.select_connection(conn)

        store.remove_node(text)
        assert store.state.selected_nodes == {chat}
        assert store.state.selected_connections == frozenset()

    def test_selection_signal(self, store, spy):
        node = store.add_node("note")
        changed = spy(store.selection_changed)
        store.select_node(node)
        store.select_node(node)
        assert len(changed) == 1

    def test_remove_selected(self, store):
        a = store.add_node("note")
        b = store.add_node("note")
        c = store.add_node("ai-chat")
        store.select_node(a)
        store.select_node(b, multi=True)

        assert store.remove_selected() == 2
        assert [n.id for n in store.nodes] == [c]


class TestStats:

    def test_per_type_counts(self, store):
        store.add_node("note")
        store.add_node("note")
        text = store.add_node("text")
        chat = store.add_node("ai-chat")
        store.add_connection(text, chat)

        stats = store.get_stats()
        assert stats.node_count == 4
        assert stats.connection_count == 1
        assert stats.per_type_counts == {"note": 2, "text": 1, "ai-chat": 1}
        assert stats.note_node_count == 2
        assert stats.ai_node_count == 1

    def test_empty_stats(self, store):
        stats = store.get_stats()
        assert stats.node_count == 0
        assert stats.per_type_counts == {"note": 0, "text": 0, "ai-chat": 0}


class TestViewportAndWholeState:

    def test_zoom_emits_viewport_changed(self, store, spy):
        changed = spy(store.viewport_changed)
        store.zoom_in(Position(100, 100))
        assert store.viewport.zoom == pytest.approx(1.2)
        assert len(changed) == 1

    def test_unchanged_viewport_is_not_signalled(self, store, spy):
        changed = spy(store.viewport_changed)
        store.reset_zoom()
        assert changed == []

    def test_pan_and_screen_to_world(self, store):
        store.pan_by(Position(50, 20))
        assert store.screen_to_world(Position(60, 30)) == Position(10, 10)

    def test_fit_to_content(self, store):
        store.add_node("text", Position(0, 0))
        store.fit_to_content(Size(1000, 800))
        assert store.viewport == Viewport(x=375, y=320, zoom=1.0)

    def test_clear_all(self, store, spy):
        a = store.add_node("text")
        b = store.add_node("ai-chat")
        store.add_connection(a, b)
        store.select_node(a)
        store.pan_by(Position(10, 10))
        replaced = spy(store.state_replaced)

        store.clear_all()
        assert store.nodes == []
        assert store.connections == []
        assert store.viewport == Viewport()
        assert store.state.selection.is_empty()
        assert len(replaced) == 1

    def test_replace_state_restores_invariants(self, store):
        text = TextNode(id="t", position=Position(), size=Size(250, 160), content="a b")
        chat = AIChatNode(id="c", position=Position(), size=Size(400, 600), connected_count=7)
        state = CanvasState(
            nodes={"t": text, "c": chat},
            connections={"k": Connection("k", "t", "c")},
            selection=Selection(frozenset({"t", "gone"}), frozenset({"zzz"})),
        )
        store.replace_state(state)

        assert store.get_node("c").connected_count == 1
        assert store.state.selected_nodes == {"t"}
        assert store.state.selected_connections == frozenset()

    def test_seeded_store_is_reproducible(self):
        import random
        a = GraphStore(rng=random.Random(7))
        b = GraphStore(rng=random.Random(7))
        pa = a.get_node(a.add_node("note")).position
        pb = b.get_node(b.add_node("note")).position
        assert pa == pb
