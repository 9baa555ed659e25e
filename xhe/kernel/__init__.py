# XHE kernel package
from .kernel import Kernel
from .addresses import Address, AddressFormatError, parse_address, format_address
from .constants import (
    AddressScheme, ResolutionState, PulseType, TransactionType, StoreKey, KernelEvent,
    SNAPSHOT_VERSION,
)
from .errors import (
    KernelError, ValidationError, UnknownSchemeError, InsufficientBalanceError,
    SelfFollowError, BlockedIdentityError, StorageError,
    ErrorCode, ErrorCategory, ErrorResponse,
)
from .events import EventBus, Subscription
from .intents import IntentHandler, IntentType, KernelIntent
from .journal import ResetJournal
from .ledger import Ledger
from .models import (
    Identity, ArchivedIdentity, ContentEntry, IndexEntry, Pulse, Transaction,
    Post, Feed, Channel, SocialGraph, KernelMeta, ResolutionResult, GenerateResult,
)
from .snapshot import ImportResult, Conflict
from .storage import KeyValueStore, SQLiteStore, MemoryStore

__all__ = [
    "Kernel",
    "Address", "AddressFormatError", "parse_address", "format_address",
    "AddressScheme", "ResolutionState", "PulseType", "TransactionType", "StoreKey", "KernelEvent",
    "SNAPSHOT_VERSION",
    "KernelError", "ValidationError", "UnknownSchemeError", "InsufficientBalanceError",
    "SelfFollowError", "BlockedIdentityError", "StorageError",
    "ErrorCode", "ErrorCategory", "ErrorResponse",
    "EventBus", "Subscription",
    "IntentHandler", "IntentType", "KernelIntent",
    "ResetJournal",
    "Ledger",
    "Identity", "ArchivedIdentity", "ContentEntry", "IndexEntry", "Pulse", "Transaction",
    "Post", "Feed", "Channel", "SocialGraph", "KernelMeta", "ResolutionResult", "GenerateResult",
    "ImportResult", "Conflict",
    "KeyValueStore", "SQLiteStore", "MemoryStore",
]
