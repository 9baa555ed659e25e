"""Hash, identifier and timestamp helpers.

Pure functions, no shared state. Content hashes are SHA-256 over the UTF-8
bytes of a string, rendered as lowercase hex.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import secrets
from datetime import datetime, timezone
from typing import Any


def sha256_hex(text: str) -> str:
    """Return the lowercase hex SHA-256 digest of text encoded as UTF-8."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


async def hash_content(text: str) -> str:
    """Async form of sha256_hex, computed in a worker thread."""
    return await asyncio.to_thread(sha256_hex, text)


def random_hex(nbytes: int) -> str:
    """Cryptographically random identifier, 2 * nbytes hex characters."""
    return secrets.token_hex(nbytes)


def now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def parse_timestamp(value: str | None) -> datetime:
    """Parse a stored timestamp for ordering.

    Missing or unparseable values sort as the oldest possible time.
    """
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def canonical_json(value: Any) -> str:
    """Serialize value deterministically (sorted keys, compact separators)."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def make_preview(content: str, length: int = 50) -> str:
    """First `length` characters of content, with an ellipsis when truncated."""
    if len(content) > length:
        return content[:length] + "..."
    return content
