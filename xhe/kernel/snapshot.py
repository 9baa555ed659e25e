"""Snapshot export/import.

Format versions:
- Version 1 (legacy): {"entries": {address: index_entry, ...}}, optionally
  with "version": 1. Only the address index can be recovered.
- Version 2: every kernel store under snake_case keys.

Import merges with "keep existing, add missing" semantics. An incoming
entry whose key already exists locally with a different value is not
applied; it is reported in ImportResult.conflicts. Problems with the
payload itself are collected into ImportResult.errors, never raised.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import jsonschema

from .constants import SNAPSHOT_VERSION, StoreKey
from .hashing import now_iso
from .models import Channel, ContentEntry, Feed, IndexEntry, Pulse
from .state import KernelState

logger = logging.getLogger(__name__)


_RECORD_MAP: dict[str, Any] = {"type": "object", "additionalProperties": {"type": "object"}}

SNAPSHOT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["version"],
    "properties": {
        "version": {"type": "integer", "const": SNAPSHOT_VERSION},
        "exported": {"type": "string"},
        "pulse_sequence": {"type": "integer", "minimum": 0},
        "content_store": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["content", "timestamp", "author", "scheme"],
                "properties": {"content": {"type": "string"}},
            },
        },
        "address_index": _RECORD_MAP,
        "pulse_store": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["type", "sequence", "hash", "id"],
                "properties": {"sequence": {"type": "string", "pattern": "^[0-9]+$"}},
            },
        },
        "feeds": _RECORD_MAP,
        "channels": _RECORD_MAP,
    },
}

LEGACY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["entries"],
    "properties": {"entries": _RECORD_MAP},
}


@dataclass
class Conflict:
    store: str
    key: str
    reason: str = "value_differs"

    def to_dict(self) -> dict[str, str]:
        return {"store": self.store, "key": self.key, "reason": self.reason}


@dataclass
class ImportResult:
    """Outcome of an import. `imported` counts entries added across all stores."""

    imported: int = 0
    per_store: dict[str, int] = field(default_factory=dict)
    conflicts: list[Conflict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    migrated: bool = False
    touched: set[StoreKey] = field(default_factory=set)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "imported": self.imported,
            "per_store": dict(self.per_store),
            "conflicts": [c.to_dict() for c in self.conflicts],
            "errors": list(self.errors),
            "migrated": self.migrated,
        }


# =============================================================================
# EXPORT
# =============================================================================

def build_snapshot(state: KernelState) -> dict[str, Any]:
    """Every store plus the format version and export time."""
    return {
        "version": SNAPSHOT_VERSION,
        "exported": now_iso(),
        "kernel_meta": state.serialize(StoreKey.META),
        "identity": state.serialize(StoreKey.IDENTITY),
        "identity_history": state.serialize(StoreKey.IDENTITY_HISTORY),
        "pulse_sequence": state.serialize(StoreKey.PULSE_SEQ),
        "content_store": state.serialize(StoreKey.CONTENT),
        "pulse_store": state.serialize(StoreKey.PULSES),
        "address_index": state.serialize(StoreKey.ADDRESS_INDEX),
        "ledger": state.serialize(StoreKey.SLIPS),
        "social_graph": state.serialize(StoreKey.SOCIAL),
        "feeds": state.serialize(StoreKey.FEEDS),
        "channels": state.serialize(StoreKey.CHANNELS),
    }


def dump_snapshot(state: KernelState) -> str:
    return json.dumps(build_snapshot(state), indent=2, ensure_ascii=False)


def write_snapshot_file(text: str, path: str | Path) -> Path:
    """Write snapshot text atomically (temp file, then rename)."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_file = target.with_name(target.name + ".tmp")
    with open(temp_file, "w", encoding="utf-8") as f:
        f.write(text)
    os.replace(temp_file, target)
    return target


# =============================================================================
# IMPORT
# =============================================================================

def _schema_errors(data: Any, schema: dict[str, Any]) -> list[str]:
    validator = jsonschema.Draft7Validator(schema)
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
        where = "/".join(str(p) for p in error.absolute_path) or "<root>"
        errors.append(f"{where}: {error.message}")
    return errors


def is_legacy(data: Any) -> bool:
    if not isinstance(data, dict) or "entries" not in data:
        return False
    version = data.get("version")
    return version is None or (isinstance(version, int) and version < SNAPSHOT_VERSION)


def migrate_legacy(data: dict[str, Any]) -> dict[str, Any]:
    """Turn a version 1 entries map into a version 2 address index.

    Migrated index entries are flagged so they can be told apart.
    """
    index: dict[str, Any] = {}
    for address, entry in data["entries"].items():
        migrated = dict(entry)
        migrated["migrated"] = True
        index[address] = migrated
    return {"version": SNAPSHOT_VERSION, "address_index": index}


def parse_snapshot(text: object, result: ImportResult) -> dict[str, Any] | None:
    """Decode and validate snapshot text. Problems go into result.errors."""
    if not isinstance(text, str):
        result.errors.append(f"Snapshot must be a JSON string, got {type(text).__name__}")
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        result.errors.append(f"Malformed JSON: {e}")
        return None

    if is_legacy(data):
        errors = _schema_errors(data, LEGACY_SCHEMA)
        if errors:
            result.errors.extend(errors)
            return None
        result.migrated = True
        return migrate_legacy(data)

    errors = _schema_errors(data, SNAPSHOT_SCHEMA)
    if errors:
        result.errors.extend(errors)
        return None
    return data


def _merge_store(
    result: ImportResult,
    store_name: str,
    store_key: StoreKey,
    incoming: dict[str, Any],
    local: dict[str, Any],
    decode: Callable[[str, dict[str, Any]], Any],
    encode: Callable[[Any], dict[str, Any]],
    add: Callable[[str, Any], None],
) -> None:
    added = 0
    for key, raw in incoming.items():
        try:
            record = decode(key, raw)
        except (KeyError, TypeError, ValueError) as e:
            result.errors.append(f"{store_name}/{key}: {e}")
            continue
        existing = local.get(key)
        if existing is not None:
            if encode(existing) != encode(record):
                result.conflicts.append(Conflict(store_name, key))
            continue
        add(key, record)
        added += 1
    result.per_store[store_name] = added
    result.imported += added
    if added:
        result.touched.add(store_key)


def _decode_pulse(key: str, raw: dict[str, Any]) -> Pulse:
    pulse = Pulse.from_dict(raw)
    if pulse.id != key:
        raise ValueError(f"pulse id {pulse.id!r} does not match its key")
    return pulse


def merge_snapshot(state: KernelState, data: dict[str, Any], result: ImportResult) -> ImportResult:
    """Merge a validated version 2 payload into state (in memory only)."""
    _merge_store(
        result, "content_store", StoreKey.CONTENT,
        data.get("content_store", {}), state.content,
        lambda _k, raw: ContentEntry.from_dict(raw),
        lambda entry: entry.to_dict(),
        state.content.__setitem__,
    )
    _merge_store(
        result, "address_index", StoreKey.ADDRESS_INDEX,
        data.get("address_index", {}), state.index,
        lambda _k, raw: IndexEntry.from_dict(raw),
        lambda entry: entry.to_dict(),
        state.index.__setitem__,
    )

    local_sequences = {p.sequence for p in state.pulses.all()}
    before = state.pulses.sequence

    def add_pulse(_key: str, pulse: Pulse) -> None:
        if pulse.sequence in local_sequences:
            result.conflicts.append(Conflict("pulse_store", pulse.id, "sequence_collision"))
        state.pulses.merge(pulse)

    _merge_store(
        result, "pulse_store", StoreKey.PULSES,
        data.get("pulse_store", {}), state.pulses.items(),
        _decode_pulse,
        lambda pulse: pulse.to_dict(),
        add_pulse,
    )
    if state.pulses.sequence != before:
        result.touched.add(StoreKey.PULSE_SEQ)

    _merge_store(
        result, "feeds", StoreKey.FEEDS,
        data.get("feeds", {}), state.social.feeds,
        lambda _k, raw: Feed.from_dict(raw),
        lambda feed: feed.to_dict(),
        state.social.feeds.__setitem__,
    )
    _merge_store(
        result, "channels", StoreKey.CHANNELS,
        data.get("channels", {}), state.social.channels,
        lambda _k, raw: Channel.from_dict(raw),
        lambda channel: channel.to_dict(),
        state.social.channels.__setitem__,
    )

    logger.info(
        "Imported %d entries (%s), %d conflicts, migrated=%s",
        result.imported,
        result.per_store,
        len(result.conflicts),
        result.migrated,
    )
    return result
