"""Text encoding of synced values for text-based backends and buses."""

from __future__ import annotations

import json
from typing import Any

from pysyncstate.exceptions import SyncPayloadError


def encode_text(value: Any) -> str:
    """Serialize *value* to compact JSON."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def decode_text(raw: str | bytes, *, key: str = "") -> Any:
    """Parse a stored JSON payload.

    Raises :class:`SyncPayloadError` on malformed input; callers on the read
    path translate that into "nothing stored".
    """
    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
        return json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SyncPayloadError(f"Malformed payload for key {key!r}: {exc}", key=key) from exc
