"""Structural merge of JSON-compatible documents."""

from __future__ import annotations

import copy
from typing import Any, Dict, Mapping


def _is_object(value: Any) -> bool:
    return isinstance(value, Mapping)


def deep_merge(target: Mapping[str, Any], patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Return ``target`` with ``patch`` merged into it.

    Mappings present on both sides are merged key by key. Every other value in
    ``patch`` (sequences, scalars and ``None``) replaces the target value
    wholesale. Keys absent from ``patch`` are kept. Neither input is mutated.
    """
    merged: Dict[str, Any] = {key: copy.deepcopy(value) for key, value in target.items()}
    for key, incoming in patch.items():
        if _is_object(incoming):
            existing = merged.get(key)
            merged[key] = deep_merge(existing if _is_object(existing) else {}, incoming)
        else:
            merged[key] = copy.deepcopy(incoming)
    return merged


__all__ = ["deep_merge"]
