# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Session configuration: chat provider credentials and tuning, history
handling and where canvases are stored.

CanvasSettings is a frozen snapshot.  SettingsManager owns the current
snapshot for one session, coerces incoming values to the field types and
emits ``settings_changed(dict)`` with only the keys that actually changed.
"""

import json
from contextlib import contextmanager
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, Optional, Set

from PySide6.QtCore import QObject, Signal

from notecanvas.errors import StorageError, StorageNotFoundError
from notecanvas.storage import StorageBackend

from notecanvas.logger import get_logger
log = get_logger("Settings")

PROVIDERS = ("openai", "anthropic", "custom")
SETTINGS_FILE = "settings.json"

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant working alongside the user's notes. "
    "Use the provided context to give relevant and accurate responses."
)


@dataclass(frozen=True)
class CanvasSettings:
    provider: str = "openai"

    openai_api_key: str = ""
    anthropic_api_key: str = ""
    custom_endpoint: str = ""
    custom_api_key: str = ""

    openai_model: str = "gpt-3.5-turbo"
    anthropic_model: str = "claude-3-sonnet-20240229"
    custom_model: str = "gpt-3.5-turbo"

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    temperature: float = 0.7
    max_tokens: int = 2000
    context_limit: int = 4000           # tokens of note context per request

    enable_history: bool = True
    max_history_messages: int = 50      # 0 = unlimited

    storage_folder: str = "flows"
    request_timeout: float = 60.0       # seconds

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanvasSettings":
        """Build from a stored dict; unknown keys are ignored, bad values fall back to defaults."""
        return cls(**cls.coerce_stored(data))

    @classmethod
    def coerce_stored(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        """Typed values for the known, valid keys of *data*; the rest are logged and dropped."""
        known = {f.name: f for f in fields(cls)}
        values = {}
        for key, raw in data.items():
            f = known.get(key)
            if f is None:
                log.debug(f"Ignoring unknown setting '{key}'")
                continue
            try:
                values[key] = _coerce(key, f.type, raw)
            except ValueError as e:
                log.warning(f"Invalid stored setting '{key}': {e}")
        return values


_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


def _coerce(key: str, target: type, value: Any) -> Any:
    """Convert *value* to the declared field type or raise ValueError."""
    if target is bool:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
            raise ValueError(f"{key}: not a boolean: {value!r}")
        return bool(value)
    if target in (int, float):
        if isinstance(value, bool):
            raise ValueError(f"{key}: expected a number, got {value!r}")
        try:
            return target(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"{key}: expected {target.__name__}, got {value!r}") from e
    if target is str:
        if value is None:
            return ""
        value = str(value)
        if key == "provider" and value not in PROVIDERS:
            raise ValueError(f"provider must be one of {PROVIDERS}, got {value!r}")
        return value
    return value


# ============================================================================
# MANAGER
# ============================================================================

class SettingsManager(QObject):
    """
    Holds and persists the settings of one canvas session.

    Signals:
        settings_changed(dict) -- {key: new_value} for the keys that changed
    """

    settings_changed = Signal(dict)

    def __init__(
        self,
        settings: Optional[CanvasSettings] = None,
        storage: Optional[StorageBackend] = None,
        path: str = SETTINGS_FILE,
    ):
        super().__init__()
        self._settings = settings or CanvasSettings()
        self._storage = storage
        self._path = path
        self._suppress_signals = False
        self._pending_changes: Dict[str, Any] = {}

    @property
    def settings(self) -> CanvasSettings:
        return self._settings

    def get(self, key: str) -> Any:
        return getattr(self._settings, key)

    @contextmanager
    def batch_update(self):
        """Collect all updates in the block into one ``settings_changed`` emission."""
        self._suppress_signals = True
        self._pending_changes = {}
        try:
            yield
        finally:
            self._suppress_signals = False
            changes, self._pending_changes = self._pending_changes, {}
            if changes:
                self.settings_changed.emit(changes)

    def update(self, **kwargs) -> Set[str]:
        """
        Update settings values, coercing them to the field types.

        Unknown keys are ignored.

        Returns:
            The set of keys whose value actually changed.

        Raises:
            ValueError: a value cannot be coerced (e.g. an unknown provider).
        """
        known = {f.name: f.type for f in fields(CanvasSettings)}
        updates: Dict[str, Any] = {}
        for key, value in kwargs.items():
            if key not in known:
                log.debug(f"Ignoring unknown setting '{key}'")
                continue
            coerced = _coerce(key, known[key], value)
            if getattr(self._settings, key) != coerced:
                updates[key] = coerced

        if not updates:
            return set()

        self._settings = replace(self._settings, **updates)
        log.debug(f"Settings changed: {sorted(updates)}")
        if self._suppress_signals:
            self._pending_changes.update(updates)
        else:
            self.settings_changed.emit(updates)
        return set(updates)

    def reset(self) -> Set[str]:
        return self.update(**CanvasSettings().to_dict())

    # ==========================================================================
    # PERSISTENCE
    # ==========================================================================

    def load(self) -> Set[str]:
        """
        Merge stored settings over the current ones.

        A missing file keeps the current settings; a corrupt file is
        logged and ignored.
        """
        if self._storage is None:
            return set()
        try:
            raw = json.loads(self._storage.read_text(self._path))
        except StorageNotFoundError:
            log.debug(f"No settings file at {self._path}, using defaults")
            return set()
        except (StorageError, json.JSONDecodeError) as e:
            log.warning(f"Could not read settings from {self._path}: {e}")
            return set()

        if not isinstance(raw, dict):
            log.warning(f"Settings file {self._path} is not a JSON object")
            return set()

        return self.update(**CanvasSettings.coerce_stored(raw))

    def save(self) -> None:
        """Write the current settings.  Raises StorageError on failure."""
        if self._storage is None:
            return
        text = json.dumps(self._settings.to_dict(), indent=2, ensure_ascii=False)
        self._storage.write_text(self._path, text)
        log.info(f"Settings saved to {self._path}")
