"""XHE kernel - the single writer for identity, content, pulses, slips and social state.

Control flow for every state-mutating operation:

    acquire the writer lock
    -> validate input (raise before touching state)
    -> mutate in-memory state
    -> emit exactly one pulse (resolve: one per parsed attempt)
    -> commit every touched store, pulse log included, in one transaction
    -> notify observers
    -> return a result value

Reads are synchronous and return copies.

Usage:
    with Kernel.open("kernel.db") as kernel:
        result = asyncio.run(kernel.generate_address("hello world"))
        kernel.get_balance()
"""

from __future__ import annotations

import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from ..config import get_validated_config
from ..config_schema import AppConfig
from .addresses import Address, content_address, format_address, parse_address, pulse_address
from .constants import (
    DEFAULT_MINT_REASON,
    GENERATABLE_SCHEMES,
    POST_TYPE,
    REGENERATE_REASON,
    AddressScheme,
    KernelEvent,
    PulseType,
    StoreKey,
)
from .errors import ErrorCode, UnknownSchemeError, ValidationError
from .events import Callback, EventBus, Subscription
from .hashing import hash_content, make_preview, now_iso, parse_timestamp, random_hex
from .journal import ResetJournal
from .ledger import Ledger, LedgerCheck
from .models import (
    ArchivedIdentity,
    Channel,
    ContentEntry,
    EmitResult,
    Feed,
    GenerateResult,
    Identity,
    IndexEntry,
    KernelMeta,
    Post,
    ResolutionResult,
    SocialGraph,
    Transaction,
)
from .pulses import PulseLog
from .resolver import Resolver, invalid_result
from .snapshot import ImportResult, dump_snapshot, merge_snapshot, parse_snapshot
from .social import SocialStore, personal_feed_id
from .state import KernelState, StateLoader
from .storage import KeyValueStore, SQLiteStore

logger = logging.getLogger(__name__)


def _require_text(value: object, what: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError(
            f"{what} must be a non-empty string",
            code=ErrorCode.EMPTY_CONTENT,
        )
    return value


def _require_did(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("A did is required", code=ErrorCode.MISSING_ARGUMENT)
    return value.strip()


class Kernel:
    """Owns all kernel state. Construction loads (or creates) it from the store."""

    def __init__(
        self,
        store: KeyValueStore,
        config: AppConfig | None = None,
        journal: ResetJournal | None = None,
    ) -> None:
        self.config = config or get_validated_config()
        self._store = store
        self._journal = journal
        self._events = EventBus()
        self._lock = asyncio.Lock()
        self._loader = StateLoader(store, self.config.storage.key_prefix)
        self._dirty: set[StoreKey] = set()
        self._pending: list[tuple[KernelEvent, dict[str, Any]]] = []
        self._closed = False
        self._bootstrap()

    @classmethod
    def open(
        cls,
        path: str | Path,
        config: AppConfig | None = None,
        journal: ResetJournal | None = None,
    ) -> Kernel:
        """Open a kernel over a SQLite file.

        A relative journal path from config is placed beside the database.
        """
        cfg = config or get_validated_config()
        db_path = Path(path)
        store = SQLiteStore(db_path, cfg.storage)
        if journal is None and cfg.journal.enabled:
            journal_path = Path(cfg.journal.path)
            if not journal_path.is_absolute():
                journal_path = db_path.parent / journal_path
            journal = ResetJournal(journal_path)
        return cls(store, cfg, journal)

    def close(self) -> None:
        if not self._closed:
            self._store.close()
            self._closed = True
            logger.info("Kernel closed (%s)", self.did)

    def __enter__(self) -> Kernel:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # =========================================================================
    # BOOTSTRAP / COMMIT
    # =========================================================================

    def _bootstrap(self) -> None:
        cfg = self.config.kernel
        loader = self._loader
        now = now_iso()

        meta = loader.meta()
        is_new = meta is None
        if meta is None:
            meta = KernelMeta(version=cfg.version, created=now, last_active=now)
        else:
            meta.last_active = now
        self._dirty.add(StoreKey.META)

        identity = loader.identity()
        if identity is None:
            identity = self._new_identity()
            self._dirty.add(StoreKey.IDENTITY)

        state = KernelState(
            meta=meta,
            identity=identity,
            history=loader.history(),
            content=loader.content(),
            index=loader.index(),
            pulses=loader.pulses(loader.sequence(), cfg.sequence_width),
            ledger=loader.ledger(cfg.tx_id_bytes),
            social=loader.social(),
        )
        self._install(state)

        if state.ledger.grant_genesis(identity.did, cfg.genesis_balance):
            self._dirty.add(StoreKey.SLIPS)

        if is_new:
            self._emit(PulseType.KERNEL_INIT, {"version": meta.version, "identity": identity.did})
            if self._journal is not None:
                self._journal.log_init(identity.did, meta.version)
            logger.info("Initialized new kernel for %s", identity.did)
        else:
            logger.info(
                "Loaded kernel for %s at sequence %d", identity.did, state.pulses.sequence
            )
        self._commit()

    def _install(self, state: KernelState) -> None:
        self.state = state
        self._resolver = Resolver(state)

    def _new_identity(self) -> Identity:
        cfg = self.config.kernel
        return Identity(
            did=format_address(Address(AddressScheme.DID_XHE, random_hex(cfg.did_bytes))),
            public_key=random_hex(cfg.public_key_bytes),
            created=now_iso(),
            version=1,
        )

    def _touch(self, *keys: StoreKey) -> None:
        self._dirty.update(keys)

    def _notify(self, event: KernelEvent, data: dict[str, Any]) -> None:
        self._pending.append((event, data))

    def _emit(self, pulse_type: PulseType, payload: dict[str, Any]) -> EmitResult:
        result = self.state.pulses.emit(
            pulse_type,
            payload,
            author=self.state.identity.did,
            kernel_version=self.state.meta.version,
        )
        self._touch(StoreKey.PULSES, StoreKey.PULSE_SEQ)
        self._notify(KernelEvent.PULSE, result.pulse.to_dict())
        return result

    def _commit(self) -> None:
        """Write every touched store in one transaction, then notify observers."""
        if self._dirty:
            values = {
                self._loader.key(key): self.state.serialize(key)
                for key in sorted(self._dirty, key=lambda k: k.value)
            }
            self._dirty.clear()
            self._store.save_many(values)
        pending, self._pending = self._pending, []
        for event, data in pending:
            self._events.publish(event, data)

    @asynccontextmanager
    async def _writer(self) -> AsyncIterator[None]:
        """Serialize a mutating operation and commit it on success."""
        async with self._lock:
            if self._closed:
                raise RuntimeError("Kernel is closed")
            try:
                yield
            except BaseException:
                self._dirty.clear()
                self._pending.clear()
                raise
            self._commit()

    # =========================================================================
    # OBSERVERS
    # =========================================================================

    def subscribe(self, event: KernelEvent | str, callback: Callback) -> Subscription:
        return self._events.subscribe(event, callback)

    def unsubscribe(self, event: KernelEvent | str, callback: Callback) -> bool:
        return self._events.unsubscribe(event, callback)

    # =========================================================================
    # IDENTITY
    # =========================================================================

    @property
    def did(self) -> str:
        return self.state.identity.did

    def get_did(self) -> str:
        return self.state.identity.did

    def get_identity(self) -> Identity:
        return copy.copy(self.state.identity)

    def get_identity_history(self) -> list[ArchivedIdentity]:
        return list(self.state.history)

    async def regenerate_identity(self) -> Identity:
        """Archive the current identity and switch to a fresh one.

        The old did keeps its balance, content and pulses.
        """
        async with self._writer():
            state = self.state
            old = state.identity
            state.history.append(ArchivedIdentity.archive(old, now_iso(), REGENERATE_REASON))
            state.identity = self._new_identity()
            self._touch(StoreKey.IDENTITY, StoreKey.IDENTITY_HISTORY)
            if state.ledger.grant_genesis(state.identity.did, self.config.kernel.genesis_balance):
                self._touch(StoreKey.SLIPS)

            self._emit(PulseType.IDENTITY_REGENERATE, {
                "old_did": old.did,
                "new_did": state.identity.did,
                "history_length": len(state.history),
            })
            self._notify(KernelEvent.IDENTITY_CHANGED, {
                "old_did": old.did,
                "new_did": state.identity.did,
                "history": [h.to_dict() for h in state.history],
            })
            logger.info("Identity regenerated: %s -> %s", old.did, state.identity.did)
            return copy.copy(state.identity)

    # =========================================================================
    # ADDRESSES
    # =========================================================================

    def _scheme(self, scheme: object) -> AddressScheme:
        try:
            parsed = AddressScheme(scheme)
        except ValueError:
            raise UnknownSchemeError(scheme) from None
        if parsed not in GENERATABLE_SCHEMES:
            raise UnknownSchemeError(scheme)
        return parsed

    def _caller_sequence(self, sequence: object) -> str | None:
        if sequence is None:
            return None
        if isinstance(sequence, int) and not isinstance(sequence, bool) and sequence > 0:
            return self.state.pulses.format_sequence(sequence)
        if isinstance(sequence, str) and sequence.isascii() and sequence.isdigit():
            return sequence
        raise ValidationError("sequence must be a positive integer", sequence=repr(sequence))

    async def generate_address(
        self,
        content: object,
        scheme: AddressScheme | str = AddressScheme.XHE,
        sequence: int | str | None = None,
    ) -> GenerateResult:
        """Hash content, store it, and derive its address for scheme.

        Raises:
            ValidationError: Empty or non-string content, bad sequence.
            UnknownSchemeError: Scheme is not xhe, did:xhe, pulse or ipfs.
        """
        text = _require_text(content, "Content")
        kind = self._scheme(scheme)
        requested = self._caller_sequence(sequence) if kind == AddressScheme.PULSE else None

        async with self._writer():
            state = self.state
            content_hash = await hash_content(text)
            timestamp = now_iso()

            if kind == AddressScheme.DID_XHE:
                width = self.config.kernel.identity_hash_width
                address = format_address(Address(kind, content_hash[:width]))
            elif kind == AddressScheme.PULSE:
                # Without a caller sequence, use the one this operation's pulse receives
                address = pulse_address(requested or state.pulses.peek_next(), content_hash)
            else:
                address = format_address(Address(kind, content_hash))

            state.content[content_hash] = ContentEntry(
                content=text,
                timestamp=timestamp,
                author=state.identity.did,
                scheme=kind.value,
            )
            state.index[address] = IndexEntry(
                hash=content_hash,
                type=kind.value,
                timestamp=timestamp,
                preview=make_preview(text, self.config.kernel.preview_length),
            )
            self._touch(StoreKey.CONTENT, StoreKey.ADDRESS_INDEX)

            emitted = self._emit(PulseType.ADDRESS_GENERATE, {
                "address": address,
                "scheme": kind.value,
                "hash": content_hash[:16] + "...",
            })
            return GenerateResult(
                address=address,
                hash=content_hash,
                timestamp=timestamp,
                pulse_id=emitted.pulse_id,
            )

    async def resolve(self, address: object) -> ResolutionResult:
        """Resolve an address to a structured truth state. Never raises.

        Malformed input returns INVALID without a pulse; every parsed
        attempt emits one ADDRESS_RESOLVE pulse before the lookup.
        """
        parsed = parse_address(address)
        if parsed is None:
            return invalid_result(address)

        async with self._writer():
            canonical = str(parsed)
            self._emit(PulseType.ADDRESS_RESOLVE, {
                "address": canonical[:40],
                "scheme": parsed.scheme.value,
            })
            return self._resolver.lookup(parsed)

    def get_address_index(self, filter: str = "all") -> list[dict[str, Any]]:
        """Index entries with their address, newest first, optionally by type."""
        entries = [
            {"address": address, **entry.to_dict()}
            for address, entry in self.state.index.items()
            if filter == "all" or entry.type == filter
        ]
        entries.sort(key=lambda e: parse_timestamp(e["timestamp"]), reverse=True)
        return entries

    async def clear_address_index(self) -> int:
        """Drop the derived index. Content is untouched.

        Returns:
            Number of entries removed.
        """
        async with self._writer():
            removed = len(self.state.index)
            self.state.index.clear()
            self._touch(StoreKey.ADDRESS_INDEX)
            self._notify(KernelEvent.INDEX_CLEARED, {"removed": removed})
            return removed

    # =========================================================================
    # SLIPS
    # =========================================================================

    def get_balance(self, did: str | None = None) -> int:
        return self.state.ledger.get_balance(did or self.state.identity.did)

    async def mint(self, amount: object, reason: str = DEFAULT_MINT_REASON) -> Transaction:
        """Credit new slips to the current identity.

        Raises:
            ValidationError: amount is not a positive int.
        """
        async with self._writer():
            ledger = self.state.ledger
            tx = ledger.mint(self.state.identity.did, amount, reason)
            self._touch(StoreKey.SLIPS)
            self._emit(PulseType.SLIP_MINT, {
                "amount": tx.amount,
                "reason": reason,
                "new_balance": ledger.get_balance(tx.to),
            })
            return tx

    async def transfer(self, to_did: object, amount: object, memo: str = "") -> Transaction:
        """Move slips from the current identity to to_did.

        Raises:
            ValidationError: Bad amount or missing recipient.
            InsufficientBalanceError: Balance below amount (nothing changes).
        """
        async with self._writer():
            tx = self.state.ledger.transfer(self.state.identity.did, to_did, amount, memo)
            self._touch(StoreKey.SLIPS)
            self._emit(PulseType.SLIP_TRANSFER, {
                "to": tx.to[:20] + "...",
                "amount": tx.amount,
                "memo": memo,
            })
            logger.debug("Transfer %d slips %s -> %s", tx.amount, tx.from_did, tx.to)
            return tx

    def get_transaction_history(self, limit: int | None = None) -> list[Transaction]:
        if limit is None:
            limit = self.config.feeds.history_limit
        return self.state.ledger.history(self.state.identity.did, limit)

    def verify_ledger(self) -> LedgerCheck:
        return self.state.ledger.verify()

    # =========================================================================
    # SOCIAL
    # =========================================================================

    async def follow(self, did: object) -> SocialGraph:
        """Follow did. Following an already-followed did changes nothing.

        Raises:
            SelfFollowError: did is the current identity.
            BlockedIdentityError: did is blocked.
        """
        target = _require_did(did)
        async with self._writer():
            if self.state.social.follow(self.state.identity.did, target):
                self._touch(StoreKey.SOCIAL)
                self._emit(PulseType.FOLLOW, {"target": target})
            return self.state.social.graph.copy()

    async def unfollow(self, did: object) -> SocialGraph:
        target = _require_did(did)
        async with self._writer():
            self.state.social.unfollow(target)
            self._touch(StoreKey.SOCIAL)
            self._emit(PulseType.UNFOLLOW, {"target": target})
            return self.state.social.graph.copy()

    async def block(self, did: object) -> SocialGraph:
        """Block did, dropping it from following."""
        target = _require_did(did)
        async with self._writer():
            self.state.social.block(self.state.identity.did, target)
            self._touch(StoreKey.SOCIAL)
            self._emit(PulseType.BLOCK, {"target": target})
            return self.state.social.graph.copy()

    async def unblock(self, did: object) -> SocialGraph:
        target = _require_did(did)
        async with self._writer():
            self.state.social.unblock(target)
            self._touch(StoreKey.SOCIAL)
            self._emit(PulseType.UNBLOCK, {"target": target})
            return self.state.social.graph.copy()

    def get_social_graph(self) -> SocialGraph:
        return self.state.social.graph.copy()

    async def create_post(
        self,
        content: object,
        reply_to: str | None = None,
        repost_of: str | None = None,
        channel: str | None = None,
    ) -> Post:
        """Publish a post to the personal feed and, if it exists, a channel.

        Raises:
            ValidationError: Empty or non-string content.
        """
        text = _require_text(content, "Post content")
        async with self._writer():
            state = self.state
            content_hash = await hash_content(text)
            post_id = random_hex(self.config.kernel.post_id_bytes)
            timestamp = now_iso()
            author = state.identity.did
            post = Post(
                id=post_id,
                content=text,
                hash=content_hash,
                author=author,
                timestamp=timestamp,
                address=content_address(content_hash),
                reply_to=reply_to or None,
                repost_of=repost_of or None,
                channel=channel or None,
            )
            state.content[content_hash] = ContentEntry(
                content=text,
                timestamp=timestamp,
                author=author,
                scheme=AddressScheme.XHE.value,
                post_meta={"id": post_id, "type": POST_TYPE},
            )
            self._touch(StoreKey.CONTENT, StoreKey.FEEDS)
            if state.social.publish(post, author):
                self._touch(StoreKey.CHANNELS)

            if post.reply_to:
                pulse_type = PulseType.POST_REPLY
            elif post.repost_of:
                pulse_type = PulseType.POST_REPOST
            else:
                pulse_type = PulseType.POST_CREATE
            self._emit(pulse_type, {
                "post_id": post_id,
                "hash": content_hash[:16],
                "preview": text[:50],
            })
            return post

    async def create_channel(self, name: object, description: str = "") -> Channel:
        if not isinstance(name, str):
            raise ValidationError("Channel name must be a string", code=ErrorCode.INVALID_TYPE)
        async with self._writer():
            channel = self.state.social.create_channel(
                channel_id=random_hex(self.config.kernel.channel_id_bytes),
                name=name,
                description=description or "",
                owner=self.state.identity.did,
                created=now_iso(),
            )
            self._touch(StoreKey.CHANNELS)
            self._emit(PulseType.CHANNEL_CREATE, {"channel_id": channel.id, "name": name})
            return copy.deepcopy(channel)

    def list_channels(self) -> list[Channel]:
        return [copy.deepcopy(c) for c in self.state.social.channels.values()]

    def get_feed(self, feed_id: str | None = None) -> Feed | None:
        """A feed by id (None if missing), or the personal feed (empty if none yet)."""
        social = self.state.social
        if feed_id:
            feed = social.feeds.get(feed_id)
            return copy.deepcopy(feed) if feed is not None else None
        identity = self.state.identity
        feed = social.personal_feed(identity.did)
        if feed is None:
            return Feed(id=personal_feed_id(identity.did), owner=identity.did, created=identity.created)
        return copy.deepcopy(feed)

    def get_global_feed(self, limit: int | None = None) -> list[Post]:
        if limit is None:
            limit = self.config.feeds.default_limit
        return self.state.social.global_feed(limit)

    # =========================================================================
    # STATS / SNAPSHOTS / RESET
    # =========================================================================

    def get_stats(self) -> dict[str, int]:
        state = self.state
        personal = state.social.personal_feed(state.identity.did)
        return {
            "pulse_count": len(state.pulses),
            "address_count": len(state.index),
            "content_count": len(state.content),
            "slip_balance": self.get_balance(),
            "following": len(state.social.graph.following),
            "post_count": len(personal.posts) if personal is not None else 0,
            "channel_count": len(state.social.channels),
            "current_sequence": state.pulses.sequence,
        }

    def export_state(self) -> str:
        return dump_snapshot(self.state)

    async def import_state(self, text: object) -> ImportResult:
        """Merge a snapshot. Never raises for bad payloads; see ImportResult.errors."""
        async with self._writer():
            result = ImportResult()
            data = parse_snapshot(text, result)
            if data is not None:
                merge_snapshot(self.state, data, result)
                self._touch(*result.touched)
            else:
                logger.warning("Snapshot rejected: %s", "; ".join(result.errors))
            return result

    async def reset(self, preserve_identity: bool = False) -> Identity:
        """Wipe kernel state, optionally keeping identity and its history.

        The KERNEL_RESET pulse is copied to the reset journal before the
        pulse log is wiped. Every store key is rewritten in one transaction.

        Returns:
            The identity after reset (same did when preserving).
        """
        async with self._writer():
            old = self.state
            emitted = self._emit(PulseType.KERNEL_RESET, {
                "preserve_identity": preserve_identity,
                "timestamp": now_iso(),
            })
            if self._journal is not None:
                self._journal.log_reset(emitted.pulse, preserve_identity, len(old.pulses))

            cfg = self.config.kernel
            now = now_iso()
            ledger = Ledger(tx_id_bytes=cfg.tx_id_bytes)
            if preserve_identity:
                identity = old.identity
                history = list(old.history)
                # Zero entry: the kept identity is not re-granted genesis on next boot
                ledger.balances[identity.did] = 0
            else:
                identity = self._new_identity()
                history = []
                ledger.grant_genesis(identity.did, cfg.genesis_balance)

            self._install(KernelState(
                meta=KernelMeta(version=cfg.version, created=now, last_active=now),
                identity=identity,
                history=history,
                pulses=PulseLog(sequence_width=cfg.sequence_width),
                ledger=ledger,
                social=SocialStore(),
            ))
            self._touch(*StoreKey)
            self._notify(KernelEvent.KERNEL_RESET, {"preserve_identity": preserve_identity})
            logger.info(
                "Kernel reset (preserve_identity=%s): %s -> %s",
                preserve_identity,
                old.identity.did,
                identity.did,
            )
            return copy.copy(identity)
