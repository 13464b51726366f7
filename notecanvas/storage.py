# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Storage backends: a blob store keyed by POSIX-style relative paths.

The serializer, the note resolver and the settings manager only talk to
StorageBackend.  FileSystemStorage maps keys under a root directory;
MemoryStorage keeps everything in a dict and is used by tests and hosts
that bring their own persistence.
"""

import time
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Tuple, Union

from notecanvas.errors import StorageError, StorageNotFoundError

from notecanvas.logger import get_logger
log = get_logger("Storage")


def normalize_path(path: str) -> str:
    """Strip leading/trailing slashes and collapse ``.`` segments."""
    parts = [p for p in PurePosixPath(path.strip("/")).parts if p not in ("", ".")]
    if ".." in parts:
        raise StorageError(f"Path escapes storage root: {path}", path)
    return "/".join(parts)


class StorageBackend(ABC):
    """Interface every storage collaborator implements."""

    @abstractmethod
    def read(self, path: str) -> bytes:
        """Raises StorageNotFoundError if *path* does not exist."""

    @abstractmethod
    def write(self, path: str, data: bytes) -> None:
        """Create or overwrite *path*.  Raises StorageError on failure."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    def is_file(self, path: str) -> bool:
        """True only for a stored file, never for a folder."""

    @abstractmethod
    def list(self, folder: str) -> List[str]:
        """Paths of the files directly inside *folder*; [] if it does not exist."""

    @abstractmethod
    def ensure_folder(self, path: str) -> None:
        ...

    @abstractmethod
    def modified_time(self, path: str) -> float:
        """Epoch seconds of the last write.  Raises StorageNotFoundError."""

    def read_text(self, path: str, encoding: str = "utf-8") -> str:
        try:
            return self.read(path).decode(encoding)
        except UnicodeDecodeError as e:
            raise StorageError(f"Cannot decode {path}: {e}", path) from e

    def write_text(self, path: str, text: str, encoding: str = "utf-8") -> None:
        self.write(path, text.encode(encoding))


# ==============================================================================
# FILESYSTEM
# ==============================================================================

class FileSystemStorage(StorageBackend):
    """Storage rooted at a directory on disk."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        key = normalize_path(path)
        return self.root / key if key else self.root

    def read(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            raise StorageNotFoundError(f"File not found: {path}", path) from e
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}", path) from e

    def write(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}", path) from e
        log.debug(f"Wrote {len(data)} bytes to {path}")

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def is_file(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def list(self, folder: str) -> List[str]:
        directory = self._resolve(folder)
        if not directory.is_dir():
            return []
        prefix = normalize_path(folder)
        names = sorted(p.name for p in directory.iterdir() if p.is_file())
        return [f"{prefix}/{name}" if prefix else name for name in names]

    def ensure_folder(self, path: str) -> None:
        try:
            self._resolve(path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create folder {path}: {e}", path) from e

    def modified_time(self, path: str) -> float:
        try:
            return self._resolve(path).stat().st_mtime
        except FileNotFoundError as e:
            raise StorageNotFoundError(f"File not found: {path}", path) from e


# ==============================================================================
# IN-MEMORY
# ==============================================================================

class MemoryStorage(StorageBackend):
    """
    Dict-backed storage.

    Folders are implicit (any prefix of a stored key) unless created with
    ``ensure_folder``.  ``fail_reads`` / ``fail_writes`` hold paths that
    raise StorageError, for exercising error paths.
    """

    def __init__(self, files: Optional[Dict[str, Union[bytes, str]]] = None):
        self._files: Dict[str, Tuple[bytes, float]] = {}
        self._folders = set()
        self.fail_reads = set()
        self.fail_writes = set()
        for path, data in (files or {}).items():
            self.write(path, data.encode("utf-8") if isinstance(data, str) else data)

    def read(self, path: str) -> bytes:
        key = normalize_path(path)
        if key in self.fail_reads:
            raise StorageError(f"Failed to read {path}", path)
        try:
            return self._files[key][0]
        except KeyError:
            raise StorageNotFoundError(f"File not found: {path}", path) from None

    def write(self, path: str, data: bytes) -> None:
        key = normalize_path(path)
        if key in self.fail_writes:
            raise StorageError(f"Failed to write {path}", path)
        self._files[key] = (bytes(data), time.time())

    def delete(self, path: str) -> None:
        self._files.pop(normalize_path(path), None)

    def exists(self, path: str) -> bool:
        key = normalize_path(path)
        if key in self._files or key in self._folders:
            return True
        return any(k.startswith(key + "/") for k in self._files)

    def is_file(self, path: str) -> bool:
        return normalize_path(path) in self._files

    def list(self, folder: str) -> List[str]:
        prefix = normalize_path(folder)
        prefix = prefix + "/" if prefix else ""
        return sorted(
            k for k in self._files
            if k.startswith(prefix) and "/" not in k[len(prefix):]
        )

    def ensure_folder(self, path: str) -> None:
        self._folders.add(normalize_path(path))

    def modified_time(self, path: str) -> float:
        key = normalize_path(path)
        try:
            return self._files[key][1]
        except KeyError:
            raise StorageNotFoundError(f"File not found: {path}", path) from None

    def set_modified_time(self, path: str, mtime: float) -> None:
        key = normalize_path(path)
        data, _ = self._files[key]
        self._files[key] = (data, mtime)
