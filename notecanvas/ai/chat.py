# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Chat controller: sends an AI chat node's conversation, plus the context
of the nodes wired into it, to the configured provider.

Lifecycle of one send::

    send_message(node_id, text)
        ├── user message appended to the node (main thread)
        ├── node marked in flight, busy_changed(node_id, True)
        ├── context build + provider.chat()   (task runner)
        └── on completion (main thread)
              ├── node still present → assistant reply, or a system
              │   "Error: ..." message on failure
              └── node removed meanwhile → result dropped
"""

from typing import Any, Dict, List, Optional, Set

from PySide6.QtCore import QObject, Signal

from notecanvas.ai.context import ContextCollector
from notecanvas.ai.provider import ChatOptions, ChatProvider, create_provider
from notecanvas.canvas.graph_store import GraphStore
from notecanvas.node.node_types import AIChatNode, ChatMessage, ChatRole, CanvasNode, utc_now
from notecanvas.serializer import format_timestamp
from notecanvas.settings import CanvasSettings, SettingsManager
from notecanvas.tasks import TaskRunner

from notecanvas.logger import get_logger
log = get_logger("Chat")

CONTEXT_HEADER = "\n\nContext from connected notes:\n"


def build_chat_messages(
    settings: CanvasSettings,
    history: List[ChatMessage],
    context: str,
) -> List[ChatMessage]:
    """
    System prompt (with context) followed by the conversation.

    System messages already in the transcript (error notices) are not sent.
    History is cut to the newest ``max_history_messages`` entries, or to the
    last message alone when history is disabled.
    """
    system_prompt = settings.system_prompt
    if context:
        system_prompt += CONTEXT_HEADER + context

    conversation = [m for m in history if m.role is not ChatRole.SYSTEM]
    if not settings.enable_history:
        conversation = conversation[-1:]
    elif settings.max_history_messages > 0:
        conversation = conversation[-settings.max_history_messages:]

    return [ChatMessage.system(system_prompt)] + conversation


class ChatController(QObject):
    """
    One per session.  Guards each chat node with an in-flight flag so a
    node never has two requests outstanding.

    Signals:
        busy_changed(str, bool)   -- node id, in flight
        reply_received(str, str)  -- node id, assistant reply
        failed(str, str)          -- node id, error message
    """

    busy_changed   = Signal(str, bool)
    reply_received = Signal(str, str)
    failed         = Signal(str, str)

    def __init__(
        self,
        store: GraphStore,
        settings: SettingsManager,
        collector: ContextCollector,
        runner: TaskRunner,
        provider: Optional[ChatProvider] = None,
    ):
        super().__init__()
        self.store = store
        self.settings = settings
        self.collector = collector
        self.runner = runner
        self._provider = provider
        self._in_flight: Set[str] = set()

    def is_busy(self, node_id: str) -> bool:
        return node_id in self._in_flight

    # ==========================================================================
    # SEND
    # ==========================================================================

    def send_message(self, node_id: str, text: str) -> bool:
        """
        Append *text* as a user message and request a reply.

        Returns:
            False when the text is blank, the node is not a chat node or a
            request for it is already in flight.
        """
        text = text.strip()
        if not text:
            return False
        if not isinstance(self.store.get_node(node_id), AIChatNode):
            log.debug(f"send_message: {node_id} is not a chat node")
            return False
        if node_id in self._in_flight:
            log.debug(f"send_message: {node_id} already in flight, refused")
            return False

        self.store.append_chat_message(node_id, ChatMessage.user(text))
        node = self.store.get_node(node_id)
        history = list(node.messages)
        connected = self.store.get_connected_nodes(node_id)
        settings = self.settings.settings

        self._set_busy(node_id, True)
        self.runner.submit(
            lambda: self._request(settings, history, connected),
            on_finished=lambda reply: self._on_reply(node_id, reply),
            on_error=lambda exc: self._on_error(node_id, exc),
            label=f"chat {node_id}",
        )
        return True

    def _request(self, settings: CanvasSettings, history: List[ChatMessage],
                 connected: List[CanvasNode]) -> str:
        # Runs on a worker thread: only snapshots, no store access.
        context = self.collector.build_context(connected, settings.context_limit)
        messages = build_chat_messages(settings, history, context)
        provider = self._provider or create_provider(settings)
        return provider.chat(
            messages, ChatOptions(temperature=settings.temperature, max_tokens=settings.max_tokens)
        )

    def _on_reply(self, node_id: str, reply: str) -> None:
        self._set_busy(node_id, False)
        if not self.store.append_chat_message(node_id, ChatMessage.assistant(reply)):
            log.debug(f"Dropping reply for removed node {node_id}")
            return
        self.reply_received.emit(node_id, reply)

    def _on_error(self, node_id: str, exc: BaseException) -> None:
        self._set_busy(node_id, False)
        log.error(f"Chat request for {node_id} failed: {exc}")
        if not self.store.append_chat_message(node_id, ChatMessage.system(f"Error: {exc}")):
            return
        self.failed.emit(node_id, str(exc))

    def _set_busy(self, node_id: str, busy: bool) -> None:
        if busy:
            self._in_flight.add(node_id)
        else:
            self._in_flight.discard(node_id)
        self.busy_changed.emit(node_id, busy)

    # ==========================================================================
    # TRANSCRIPT
    # ==========================================================================

    def clear_chat(self, node_id: str) -> bool:
        return self.store.clear_chat(node_id)

    def export_chat(self, node_id: str) -> Optional[Dict[str, Any]]:
        """JSON-ready transcript of a chat node, None if it does not exist."""
        node = self.store.get_node(node_id)
        if not isinstance(node, AIChatNode):
            return None
        return {
            "timestamp": format_timestamp(utc_now()),
            "messages": [
                {"role": m.role.value, "content": m.content, "timestamp": format_timestamp(m.timestamp)}
                for m in node.messages
            ],
            "messageCount": len(node.messages),
            "connectedCount": node.connected_count,
        }
