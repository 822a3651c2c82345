"""Blob storage for generated images."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class StoredBlob:
    data: bytes
    content_type: str


class BlobStore(Protocol):
    def put(self, key: str, data: bytes, content_type: str) -> None:  # pragma: no cover - protocol definition
        ...

    def get(self, key: str) -> Optional[StoredBlob]:  # pragma: no cover - protocol definition
        ...


def _validate_key(key: str) -> str:
    parts = key.split("/")
    if not key or key.startswith("/") or any(part in ("", ".", "..") for part in parts):
        raise ValueError(f"Invalid blob key: {key!r}")
    return key


class FileBlobStore:
    """Stores each blob as a file plus a ``.meta.json`` sidecar holding its content type."""

    def __init__(self, root: Path) -> None:
        self._root = root

    def _paths(self, key: str) -> tuple[Path, Path]:
        path = self._root / _validate_key(key)
        return path, path.with_name(path.name + ".meta.json")

    def put(self, key: str, data: bytes, content_type: str) -> None:
        path, meta = self._paths(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        meta.write_text(json.dumps({"contentType": content_type}), encoding="utf-8")
        logger.debug("Stored blob %s (%d bytes)", key, len(data))

    def get(self, key: str) -> Optional[StoredBlob]:
        try:
            path, meta = self._paths(key)
        except ValueError:
            return None
        if not path.is_file():
            return None
        content_type = DEFAULT_CONTENT_TYPE
        if meta.is_file():
            try:
                content_type = json.loads(meta.read_text(encoding="utf-8")).get("contentType", content_type)
            except ValueError:
                logger.warning("Ignoring unreadable blob metadata for %s", key)
        return StoredBlob(data=path.read_bytes(), content_type=content_type)


class MemoryBlobStore:
    def __init__(self) -> None:
        self._blobs: Dict[str, StoredBlob] = {}

    def put(self, key: str, data: bytes, content_type: str) -> None:
        self._blobs[_validate_key(key)] = StoredBlob(data=data, content_type=content_type)

    def get(self, key: str) -> Optional[StoredBlob]:
        return self._blobs.get(key)

    def keys(self) -> list[str]:
        return sorted(self._blobs)


__all__ = ["BlobStore", "FileBlobStore", "MemoryBlobStore", "StoredBlob"]
