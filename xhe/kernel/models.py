"""Kernel domain records.

Every record is a dataclass with to_dict()/from_dict() so it can be
stored as JSON in the durable store and carried in snapshots. Stored and
exported dicts use snake_case keys; the transaction sender is stored
under "from".
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from .constants import POST_TYPE, ResolutionState, TransactionType


@dataclass
class KernelMeta:
    version: str
    created: str
    last_active: str

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "created": self.created, "last_active": self.last_active}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KernelMeta:
        return cls(
            version=data["version"],
            created=data["created"],
            last_active=data.get("last_active", data["created"]),
        )


@dataclass
class Identity:
    """The kernel's current self-issued identity."""

    did: str
    public_key: str
    created: str
    version: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "did": self.did,
            "public_key": self.public_key,
            "created": self.created,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Identity:
        return cls(
            did=data["did"],
            public_key=data["public_key"],
            created=data["created"],
            version=data.get("version", 1),
        )


@dataclass(frozen=True)
class ArchivedIdentity:
    """A retired identity. Never mutated after archival."""

    did: str
    public_key: str
    created: str
    version: int
    archived_at: str
    reason: str

    @classmethod
    def archive(cls, identity: Identity, archived_at: str, reason: str) -> ArchivedIdentity:
        return cls(
            did=identity.did,
            public_key=identity.public_key,
            created=identity.created,
            version=identity.version,
            archived_at=archived_at,
            reason=reason,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "did": self.did,
            "public_key": self.public_key,
            "created": self.created,
            "version": self.version,
            "archived_at": self.archived_at,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ArchivedIdentity:
        return cls(
            did=data["did"],
            public_key=data["public_key"],
            created=data["created"],
            version=data.get("version", 1),
            archived_at=data["archived_at"],
            reason=data["reason"],
        )


@dataclass
class ContentEntry:
    """Authoritative content, keyed by its hash in the content store."""

    content: str
    timestamp: str
    author: str
    scheme: str
    post_meta: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "content": self.content,
            "timestamp": self.timestamp,
            "author": self.author,
            "scheme": self.scheme,
        }
        if self.post_meta is not None:
            result["post_meta"] = dict(self.post_meta)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContentEntry:
        return cls(
            content=data["content"],
            timestamp=data["timestamp"],
            author=data["author"],
            scheme=data["scheme"],
            post_meta=data.get("post_meta"),
        )


@dataclass
class IndexEntry:
    """Derived, non-authoritative record of a generated address."""

    hash: str
    type: str
    timestamp: str
    preview: str
    migrated: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "hash": self.hash,
            "type": self.type,
            "timestamp": self.timestamp,
            "preview": self.preview,
        }
        if self.migrated:
            result["migrated"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndexEntry:
        return cls(
            hash=data.get("hash", ""),
            type=data.get("type", "unknown"),
            timestamp=data.get("timestamp", ""),
            preview=data.get("preview", ""),
            migrated=bool(data.get("migrated", False)),
        )


@dataclass(frozen=True)
class Pulse:
    """Immutable, sequenced, hash-stamped audit record."""

    type: str
    payload: dict[str, Any]
    timestamp: str
    author: str
    sequence: str
    kernel_version: str
    hash: str
    address: str
    id: str

    @property
    def sequence_number(self) -> int:
        return int(self.sequence)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "payload": copy.deepcopy(self.payload),
            "timestamp": self.timestamp,
            "author": self.author,
            "sequence": self.sequence,
            "kernel_version": self.kernel_version,
            "hash": self.hash,
            "address": self.address,
            "id": self.id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Pulse:
        return cls(
            type=data["type"],
            payload=copy.deepcopy(data.get("payload") or {}),
            timestamp=data["timestamp"],
            author=data["author"],
            sequence=data["sequence"],
            kernel_version=data["kernel_version"],
            hash=data["hash"],
            address=data["address"],
            id=data["id"],
        )


@dataclass(frozen=True)
class Transaction:
    """Ledger entry. MINT has no sender and carries a reason; TRANSFER a memo."""

    id: str
    type: TransactionType
    to: str
    amount: int
    timestamp: str
    address: str
    from_did: str | None = None
    memo: str | None = None
    reason: str | None = None

    def involves(self, did: str) -> bool:
        return self.to == did or self.from_did == did

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "to": self.to,
            "amount": self.amount,
            "timestamp": self.timestamp,
            "address": self.address,
        }
        if self.from_did is not None:
            result["from"] = self.from_did
        if self.memo is not None:
            result["memo"] = self.memo
        if self.reason is not None:
            result["reason"] = self.reason
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transaction:
        return cls(
            id=data["id"],
            type=TransactionType(data["type"]),
            to=data["to"],
            amount=int(data["amount"]),
            timestamp=data["timestamp"],
            address=data["address"],
            from_did=data.get("from"),
            memo=data.get("memo"),
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class Post:
    id: str
    content: str
    hash: str
    author: str
    timestamp: str
    address: str
    type: str = POST_TYPE
    reply_to: str | None = None
    repost_of: str | None = None
    channel: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "content": self.content,
            "hash": self.hash,
            "author": self.author,
            "timestamp": self.timestamp,
            "reply_to": self.reply_to,
            "repost_of": self.repost_of,
            "channel": self.channel,
            "address": self.address,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Post:
        return cls(
            id=data["id"],
            type=data.get("type", POST_TYPE),
            content=data["content"],
            hash=data["hash"],
            author=data["author"],
            timestamp=data["timestamp"],
            reply_to=data.get("reply_to"),
            repost_of=data.get("repost_of"),
            channel=data.get("channel"),
            address=data["address"],
        )


@dataclass
class Feed:
    """Ordered view of one owner's posts, most recent first."""

    id: str
    owner: str
    created: str
    posts: list[Post] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner": self.owner,
            "created": self.created,
            "posts": [p.to_dict() for p in self.posts],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Feed:
        return cls(
            id=data["id"],
            owner=data["owner"],
            created=data["created"],
            posts=[Post.from_dict(p) for p in data.get("posts", [])],
        )


@dataclass
class Channel:
    """Named, owned collection of posts. The owner is the first member."""

    id: str
    name: str
    description: str
    owner: str
    created: str
    address: str
    members: list[str] = field(default_factory=list)
    posts: list[Post] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "owner": self.owner,
            "created": self.created,
            "members": list(self.members),
            "posts": [p.to_dict() for p in self.posts],
            "address": self.address,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Channel:
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            owner=data["owner"],
            created=data["created"],
            members=list(data.get("members", [])),
            posts=[Post.from_dict(p) for p in data.get("posts", [])],
            address=data["address"],
        )


@dataclass
class SocialGraph:
    """Ordered did sets. A did is never both followed and blocked."""

    following: list[str] = field(default_factory=list)
    followers: list[str] = field(default_factory=list)
    blocked: list[str] = field(default_factory=list)

    def copy(self) -> SocialGraph:
        return SocialGraph(list(self.following), list(self.followers), list(self.blocked))

    def to_dict(self) -> dict[str, Any]:
        return {
            "following": list(self.following),
            "followers": list(self.followers),
            "blocked": list(self.blocked),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SocialGraph:
        return cls(
            following=list(data.get("following", [])),
            followers=list(data.get("followers", [])),
            blocked=list(data.get("blocked", [])),
        )


@dataclass
class ResolutionResult:
    """Structured outcome of resolve(). Never raised, always returned."""

    state: ResolutionState
    type: str
    address: Any
    content: str | None = None
    metadata: dict[str, Any] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "state": self.state.value,
            "type": self.type,
            "address": self.address,
        }
        if self.content is not None:
            result["content"] = self.content
        if self.metadata is not None:
            result["metadata"] = self.metadata
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass(frozen=True)
class EmitResult:
    pulse_id: str
    address: str
    pulse: Pulse


@dataclass(frozen=True)
class GenerateResult:
    address: str
    hash: str
    timestamp: str
    pulse_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "hash": self.hash,
            "timestamp": self.timestamp,
            "pulse_id": self.pulse_id,
        }
