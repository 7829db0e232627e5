"""Helpers for item identifiers and vector metadata."""

import json
import re
from typing import Any

_NON_DIGITS = re.compile(r"\D+")


def normalize_item_id(raw: Any) -> str | None:
    """Normalizes an item identifier to its canonical four-digit form.

    All non-digit characters are dropped and the remainder is left-padded
    with zeros to four digits, so "Item 7", "7" and "0007" all map to "0007".

    Args:
        raw (Any): The raw identifier (string, number or None).

    Returns:
        str | None: The canonical id, or None if the input contains no digits.
    """
    if raw is None:
        return None
    digits = _NON_DIGITS.sub("", str(raw))
    if not digits:
        return None
    return digits.zfill(4)


def shape_metadata(base: dict[str, Any]) -> dict[str, Any]:
    """Prepares metadata for the vector index.

    None values are dropped and nested values (dicts, lists) are JSON encoded,
    since both index engines only store flat scalar metadata.
    """
    shaped: dict[str, Any] = {}
    for key, value in base.items():
        if value is None:
            continue
        if isinstance(value, (dict, list, tuple)):
            shaped[key] = json.dumps(value)
        else:
            shaped[key] = value
    return shaped
