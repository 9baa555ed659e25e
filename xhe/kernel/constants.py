"""Kernel enums and fixed names."""

from __future__ import annotations

from enum import Enum


SNAPSHOT_VERSION = 2
"""Format version written by export and accepted for a full merge on import."""


class AddressScheme(str, Enum):
    """Schemes understood by the address grammar."""

    XHE = "xhe"  # content by hash
    DID_XHE = "did:xhe"  # identity
    PULSE = "pulse"  # audit record
    IPFS = "ipfs"  # external content by hash
    SLIP = "slip"  # ledger transaction
    FEED = "feed"
    CHANNEL = "channel"


GENERATABLE_SCHEMES: frozenset[AddressScheme] = frozenset({
    AddressScheme.XHE,
    AddressScheme.DID_XHE,
    AddressScheme.PULSE,
    AddressScheme.IPFS,
})


class ResolutionState(str, Enum):
    """Outcome of resolving an address."""

    RESOLVED = "RESOLVED"
    KNOWN_BUT_UNAVAILABLE = "KNOWN_BUT_UNAVAILABLE"
    UNKNOWN = "UNKNOWN"
    FORBIDDEN = "FORBIDDEN"  # reserved, no current operation produces it
    INVALID = "INVALID"


class PulseType(str, Enum):
    """Kinds of audit record. One per state-mutating operation."""

    KERNEL_INIT = "KERNEL_INIT"
    KERNEL_RESET = "KERNEL_RESET"
    IDENTITY_REGENERATE = "IDENTITY_REGENERATE"
    ADDRESS_GENERATE = "ADDRESS_GENERATE"
    ADDRESS_RESOLVE = "ADDRESS_RESOLVE"
    SLIP_MINT = "SLIP_MINT"
    SLIP_TRANSFER = "SLIP_TRANSFER"
    POST_CREATE = "POST_CREATE"
    POST_REPLY = "POST_REPLY"
    POST_REPOST = "POST_REPOST"
    CHANNEL_CREATE = "CHANNEL_CREATE"
    FOLLOW = "FOLLOW"
    UNFOLLOW = "UNFOLLOW"
    BLOCK = "BLOCK"
    UNBLOCK = "UNBLOCK"


class TransactionType(str, Enum):
    MINT = "MINT"
    TRANSFER = "TRANSFER"


class StoreKey(str, Enum):
    """Durable store keys, before the configured prefix is applied."""

    META = "meta"
    IDENTITY = "identity"
    IDENTITY_HISTORY = "identity_history"
    CONTENT = "content"
    PULSES = "pulses"
    PULSE_SEQ = "pulse_seq"
    ADDRESS_INDEX = "address_index"
    SLIPS = "slips"
    SOCIAL = "social"
    FEEDS = "feeds"
    CHANNELS = "channels"


class KernelEvent(str, Enum):
    """Observer notification names."""

    PULSE = "pulse"
    IDENTITY_CHANGED = "identity_changed"
    INDEX_CLEARED = "index_cleared"
    KERNEL_RESET = "kernel_reset"


REGENERATE_REASON = "user-initiated"
DEFAULT_MINT_REASON = "GENESIS"
POST_TYPE = "POST"
PERSONAL_FEED_PREFIX = "personal_"
