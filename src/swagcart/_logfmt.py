"""Helpers for compact debug logging.

Cart payloads read from storage or received from other tabs can be large
or hand-edited.  This module shortens them before they are emitted in
DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any


def summarize_for_log(value: Any, *, max_string: int = 256, max_items: int = 20, _depth: int = 0) -> Any:
    """Return a shortened copy of *value* suitable for debug logs."""
    if _depth > 10:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated {len(value) - max_string} chars>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        summarized: dict[str, Any] = {}
        for index, (k, v) in enumerate(value.items()):
            if index >= max_items:
                summarized["…"] = f"<{len(value) - max_items} more keys>"
                break
            summarized[str(k)] = summarize_for_log(v, max_string=max_string, max_items=max_items, _depth=_depth + 1)
        return summarized

    if isinstance(value, Sequence):
        head = [
            summarize_for_log(v, max_string=max_string, max_items=max_items, _depth=_depth + 1)
            for v in list(value)[:max_items]
        ]
        if len(value) > max_items:
            head.append(f"<{len(value) - max_items} more items>")
        return head

    return repr(value)
