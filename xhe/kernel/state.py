"""In-memory kernel state and its mapping onto durable store keys."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .constants import StoreKey
from .ledger import Ledger
from .models import ArchivedIdentity, ContentEntry, Identity, IndexEntry, KernelMeta
from .pulses import PulseLog
from .social import SocialStore
from .storage import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class KernelState:
    """Everything the kernel owns. Mutated only by Kernel operations."""

    meta: KernelMeta
    identity: Identity
    history: list[ArchivedIdentity] = field(default_factory=list)
    content: dict[str, ContentEntry] = field(default_factory=dict)
    index: dict[str, IndexEntry] = field(default_factory=dict)
    pulses: PulseLog = field(default_factory=PulseLog)
    ledger: Ledger = field(default_factory=Ledger)
    social: SocialStore = field(default_factory=SocialStore)

    def serialize(self, key: StoreKey) -> Any:
        """JSON-ready value stored under key."""
        if key == StoreKey.META:
            return self.meta.to_dict()
        if key == StoreKey.IDENTITY:
            return self.identity.to_dict()
        if key == StoreKey.IDENTITY_HISTORY:
            return [h.to_dict() for h in self.history]
        if key == StoreKey.CONTENT:
            return {h: entry.to_dict() for h, entry in self.content.items()}
        if key == StoreKey.PULSES:
            return self.pulses.to_dict()
        if key == StoreKey.PULSE_SEQ:
            return self.pulses.sequence
        if key == StoreKey.ADDRESS_INDEX:
            return {addr: entry.to_dict() for addr, entry in self.index.items()}
        if key == StoreKey.SLIPS:
            return self.ledger.to_dict()
        if key == StoreKey.SOCIAL:
            return self.social.graph.to_dict()
        if key == StoreKey.FEEDS:
            return self.social.feeds_dict()
        if key == StoreKey.CHANNELS:
            return self.social.channels_dict()
        raise KeyError(key)


def _load_map(raw: Any, loader: Any, label: str) -> dict[str, Any]:
    """Decode a {key: record} map, dropping records that fail to decode."""
    if not isinstance(raw, dict):
        if raw is not None:
            logger.error("Expected a mapping for %s, got %s; starting empty", label, type(raw).__name__)
        return {}
    result: dict[str, Any] = {}
    for key, value in raw.items():
        try:
            result[key] = loader(value)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Dropping unreadable %s entry %s: %s", label, key, e)
    return result


class StateLoader:
    """Reads each store key, substituting defaults for anything missing or unreadable."""

    def __init__(self, store: KeyValueStore, key_prefix: str) -> None:
        self.store = store
        self.key_prefix = key_prefix

    def key(self, key: StoreKey) -> str:
        return f"{self.key_prefix}{key.value}"

    def raw(self, key: StoreKey, default: Any = None) -> Any:
        return self.store.load(self.key(key), default)

    def meta(self) -> KernelMeta | None:
        raw = self.raw(StoreKey.META)
        if not isinstance(raw, dict):
            return None
        try:
            return KernelMeta.from_dict(raw)
        except KeyError as e:
            logger.error("Kernel metadata missing %s; treating kernel as new", e)
            return None

    def sequence(self) -> int:
        raw = self.raw(StoreKey.PULSE_SEQ, 0)
        try:
            return max(int(raw), 0)
        except (TypeError, ValueError):
            logger.error("Unreadable pulse sequence %r; starting at 0", raw)
            return 0

    def identity(self) -> Identity | None:
        raw = self.raw(StoreKey.IDENTITY)
        if not isinstance(raw, dict) or not raw.get("did"):
            return None
        try:
            return Identity.from_dict(raw)
        except KeyError as e:
            logger.error("Stored identity missing %s; creating a new one", e)
            return None

    def history(self) -> list[ArchivedIdentity]:
        raw = self.raw(StoreKey.IDENTITY_HISTORY, [])
        if not isinstance(raw, list):
            return []
        loaded: list[ArchivedIdentity] = []
        for entry in raw:
            try:
                loaded.append(ArchivedIdentity.from_dict(entry))
            except (KeyError, TypeError) as e:
                logger.error("Dropping unreadable identity history entry: %s", e)
        return loaded

    def content(self) -> dict[str, ContentEntry]:
        return _load_map(self.raw(StoreKey.CONTENT), ContentEntry.from_dict, "content")

    def index(self) -> dict[str, IndexEntry]:
        return _load_map(self.raw(StoreKey.ADDRESS_INDEX), IndexEntry.from_dict, "address index")

    def pulses(self, sequence: int, width: int) -> PulseLog:
        raw = self.raw(StoreKey.PULSES, {})
        if not isinstance(raw, dict):
            raw = {}
        log = PulseLog.from_dict(raw, sequence=sequence, sequence_width=width)
        # Counter never trails the highest stored sequence
        for pulse in log.all():
            log.merge(pulse)
        return log

    def ledger(self, tx_id_bytes: int) -> Ledger:
        raw = self.raw(StoreKey.SLIPS, {})
        if not isinstance(raw, dict):
            raw = {}
        return Ledger.from_dict(raw, tx_id_bytes=tx_id_bytes)

    def social(self) -> SocialStore:
        graph = self.raw(StoreKey.SOCIAL, {})
        feeds = self.raw(StoreKey.FEEDS, {})
        channels = self.raw(StoreKey.CHANNELS, {})
        return SocialStore.from_dicts(
            graph if isinstance(graph, dict) else {},
            feeds if isinstance(feeds, dict) else {},
            channels if isinstance(channels, dict) else {},
        )
