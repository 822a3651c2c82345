from __future__ import annotations

from pathlib import Path

import pytest

from myedge.blob_store import FileBlobStore


def test_put_and_get_round_trip_content_type(tmp_path: Path) -> None:
    store = FileBlobStore(tmp_path)
    store.put("cards/octocat-card-1.png", b"png-bytes", "image/png")
    blob = store.get("cards/octocat-card-1.png")
    assert blob is not None
    assert blob.data == b"png-bytes"
    assert blob.content_type == "image/png"


def test_missing_and_invalid_keys(tmp_path: Path) -> None:
    store = FileBlobStore(tmp_path)
    assert store.get("backgrounds/missing.png") is None
    assert store.get("../secrets") is None
    with pytest.raises(ValueError):
        store.put("../escape.png", b"x", "image/png")
