# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Chat-completion providers.

Every provider turns a list of ``{role, content}`` messages into one reply
string over HTTP.  Calls are blocking; the chat controller runs them on
the task runner's thread pool.

    ChatProvider            interface: chat(), complete()
    OpenAIProvider          api.openai.com chat/completions
    CustomProvider          any OpenAI-compatible endpoint
    AnthropicProvider       api.anthropic.com messages
    create_provider()       pick one from CanvasSettings.provider
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from notecanvas.errors import ProviderError
from notecanvas.node.node_types import ChatMessage, ChatRole
from notecanvas.settings import CanvasSettings

from notecanvas.logger import get_logger
log = get_logger("Provider")

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
EMPTY_REPLY = "No response generated"

MessageLike = Union[ChatMessage, Dict[str, str]]


@dataclass(frozen=True)
class ChatOptions:
    """Per-request overrides; None falls back to the settings value."""
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


def to_wire_messages(messages: Sequence[MessageLike]) -> List[Dict[str, str]]:
    wire = []
    for m in messages:
        if isinstance(m, ChatMessage):
            wire.append(m.to_wire())
        else:
            wire.append({"role": str(m["role"]), "content": str(m["content"])})
    return wire


class ChatProvider(ABC):
    """Interface of a chat-completion service."""

    name = "provider"

    @abstractmethod
    def chat(self, messages: Sequence[MessageLike], options: Optional[ChatOptions] = None) -> str:
        """
        Return the assistant reply for *messages*.

        Raises:
            ProviderError: not configured, transport failure or error payload.
        """

    def complete(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        messages: List[MessageLike] = []
        if system_prompt:
            messages.append(ChatMessage.system(system_prompt))
        messages.append(ChatMessage.user(prompt))
        return self.chat(messages)


class _HTTPProvider(ChatProvider):
    """Shared request plumbing for the HTTP providers."""

    label = "HTTP"

    def __init__(self, settings: CanvasSettings, client: Optional[httpx.Client] = None):
        self.settings = settings
        self._client = client

    def _options(self, options: Optional[ChatOptions]):
        options = options or ChatOptions()
        temperature = self.settings.temperature if options.temperature is None else options.temperature
        max_tokens = self.settings.max_tokens if options.max_tokens is None else options.max_tokens
        return temperature, max_tokens

    def _post(self, url: str, headers: Dict[str, str], body: Dict[str, Any]) -> Dict[str, Any]:
        log.debug(f"{self.label} request to {url} ({len(body.get('messages', []))} messages)")
        try:
            if self._client is not None:
                response = self._client.post(url, headers=headers, json=body,
                                             timeout=self.settings.request_timeout)
            else:
                with httpx.Client(timeout=self.settings.request_timeout) as client:
                    response = client.post(url, headers=headers, json=body)
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.label} request failed: {e}", self.name) from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProviderError(
                f"{self.label} request failed: {message or self.label + ' API error'}", self.name
            )
        if response.is_error:
            raise ProviderError(
                f"{self.label} request failed: HTTP {response.status_code}", self.name
            )
        if not isinstance(data, dict):
            raise ProviderError(f"{self.label} request failed: response is not a JSON object", self.name)
        return data


# ==============================================================================
# OPENAI WIRE FORMAT
# ==============================================================================

class OpenAIProvider(_HTTPProvider):
    name = "openai"
    label = "OpenAI"

    def _endpoint(self) -> str:
        return OPENAI_URL

    def _api_key(self) -> str:
        return self.settings.openai_api_key

    def _model(self) -> str:
        return self.settings.openai_model

    def chat(self, messages: Sequence[MessageLike], options: Optional[ChatOptions] = None) -> str:
        api_key = self._api_key()
        if not api_key:
            raise ProviderError(f"{self.label} API key not configured", self.name)

        temperature, max_tokens = self._options(options)
        data = self._post(
            self._endpoint(),
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            body={
                "model": self._model(),
                "messages": to_wire_messages(messages),
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        return content or EMPTY_REPLY


class CustomProvider(OpenAIProvider):
    """OpenAI-compatible server at ``settings.custom_endpoint``."""

    name = "custom"
    label = "Custom provider"

    def _endpoint(self) -> str:
        if not self.settings.custom_endpoint:
            raise ProviderError("Custom endpoint not configured", self.name)
        return self.settings.custom_endpoint

    def _api_key(self) -> str:
        return self.settings.custom_api_key

    def _model(self) -> str:
        return self.settings.custom_model


# ==============================================================================
# ANTHROPIC
# ==============================================================================

class AnthropicProvider(_HTTPProvider):
    name = "anthropic"
    label = "Anthropic"

    def chat(self, messages: Sequence[MessageLike], options: Optional[ChatOptions] = None) -> str:
        api_key = self.settings.anthropic_api_key
        if not api_key:
            raise ProviderError("Anthropic API key not configured", self.name)

        wire = to_wire_messages(messages)
        # The messages API takes the system prompt as a separate field.
        system = next((m["content"] for m in wire if m["role"] == ChatRole.SYSTEM.value), "")
        conversation = [m for m in wire if m["role"] != ChatRole.SYSTEM.value]

        temperature, max_tokens = self._options(options)
        data = self._post(
            ANTHROPIC_URL,
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "Content-Type": "application/json",
            },
            body={
                "model": self.settings.anthropic_model,
                "system": system,
                "messages": conversation,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )
        try:
            content = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError):
            content = None
        return content or EMPTY_REPLY


_PROVIDERS = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "custom": CustomProvider,
}


def create_provider(settings: CanvasSettings, client: Optional[httpx.Client] = None) -> ChatProvider:
    """Instantiate the provider selected by ``settings.provider``."""
    try:
        cls = _PROVIDERS[settings.provider]
    except KeyError:
        raise ProviderError(f"Unknown AI provider: {settings.provider}") from None
    return cls(settings, client)
