"""Static location-code table for the primary weather source."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

DATA_FILE = Path(__file__).resolve().parent / "data" / "location_codes.json"

# The primary weather source only covers mainland China, Hong Kong, Macau and
# Taiwan; these go straight to the freeform source.
INTERNATIONAL_CITIES = (
    "los angeles",
    "la",
    "new york",
    "nyc",
    "san francisco",
    "sf",
    "seattle",
    "tokyo",
    "london",
    "paris",
    "singapore",
    "sydney",
    "toronto",
    "vancouver",
    "berlin",
    "dubai",
    "bangkok",
    "seoul",
    "洛杉矶",
    "纽约",
    "旧金山",
    "西雅图",
    "东京",
    "伦敦",
    "巴黎",
    "新加坡",
    "悉尼",
    "多伦多",
    "温哥华",
    "柏林",
    "迪拜",
    "曼谷",
    "首尔",
)


@lru_cache(maxsize=1)
def location_table() -> Mapping[str, str]:
    """Return the read-only name -> location code mapping, loaded once."""
    with DATA_FILE.open("r", encoding="utf-8") as handle:
        raw = json.load(handle)
    return MappingProxyType({str(name): str(code) for name, code in raw.items()})


def lookup_location_code(city: str) -> Optional[str]:
    """Exact match first, then a case-normalised match."""
    table = location_table()
    trimmed = city.strip()
    if not trimmed:
        return None
    return table.get(trimmed) or table.get(trimmed.lower())


def is_international(city: str) -> bool:
    """Whether ``city`` should skip the location-code source.

    Short abbreviations such as ``la`` only match exactly so that names like
    ``Lanzhou`` are not misclassified.
    """
    normalized = city.strip().lower()
    if not normalized:
        return False
    for name in INTERNATIONAL_CITIES:
        if normalized == name:
            return True
        if len(name) > 2 and name in normalized:
            return True
    return False


__all__ = ["INTERNATIONAL_CITIES", "is_international", "location_table", "lookup_location_code"]
