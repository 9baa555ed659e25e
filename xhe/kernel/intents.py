"""Intent dispatch - the only surface a collaborator needs.

A collaborator sends a KernelIntent and always gets a dict back:

    {"success": True, "data": ...}
    {"success": False, "error": ..., "code": ..., "category": ..., "retriable": ...}

Arguments are checked against per-intent JSON schemas before the kernel
is called. Kernel exceptions are converted to error responses here, so
callers branch on `success` rather than catching.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import jsonschema

from .errors import ErrorCode, KernelError, error_response_for, system_error, validation_error

if TYPE_CHECKING:
    from .kernel import Kernel

logger = logging.getLogger(__name__)


class IntentType(str, Enum):
    """Operations a collaborator may request."""

    GENERATE_ADDRESS = "generate_address"
    RESOLVE_ADDRESS = "resolve_address"
    GET_ADDRESS_INDEX = "get_address_index"
    CLEAR_ADDRESS_INDEX = "clear_address_index"
    GET_IDENTITY = "get_identity"
    GET_IDENTITY_HISTORY = "get_identity_history"
    REGENERATE_IDENTITY = "regenerate_identity"
    MINT = "mint"
    TRANSFER = "transfer"
    GET_BALANCE = "get_balance"
    GET_TRANSACTION_HISTORY = "get_transaction_history"
    VERIFY_LEDGER = "verify_ledger"
    CREATE_POST = "create_post"
    CREATE_CHANNEL = "create_channel"
    LIST_CHANNELS = "list_channels"
    GET_FEED = "get_feed"
    GET_GLOBAL_FEED = "get_global_feed"
    FOLLOW = "follow"
    UNFOLLOW = "unfollow"
    BLOCK = "block"
    UNBLOCK = "unblock"
    GET_SOCIAL_GRAPH = "get_social_graph"
    GET_STATS = "get_stats"
    EXPORT_STATE = "export_state"
    IMPORT_STATE = "import_state"
    RESET = "reset"


def _params(properties: dict[str, Any] | None = None, required: list[str] | None = None) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": properties or {},
        "required": required or [],
        "additionalProperties": False,
    }


_DID = {"type": "string", "minLength": 1}
_LIMIT = {"type": "integer", "minimum": 0}
_OPTIONAL_TEXT = {"type": ["string", "null"]}

INTENT_SCHEMAS: dict[IntentType, dict[str, Any]] = {
    IntentType.GENERATE_ADDRESS: _params(
        {
            "content": {"type": "string"},
            "scheme": {"type": "string"},
            "sequence": {"type": ["integer", "string", "null"]},
        },
        ["content"],
    ),
    IntentType.RESOLVE_ADDRESS: _params({"address": {}}, ["address"]),
    IntentType.GET_ADDRESS_INDEX: _params({"filter": {"type": "string"}}),
    IntentType.CLEAR_ADDRESS_INDEX: _params(),
    IntentType.GET_IDENTITY: _params(),
    IntentType.GET_IDENTITY_HISTORY: _params(),
    IntentType.REGENERATE_IDENTITY: _params(),
    IntentType.MINT: _params(
        {"amount": {"type": "integer"}, "reason": {"type": "string"}},
        ["amount"],
    ),
    IntentType.TRANSFER: _params(
        {"to_did": {"type": "string"}, "amount": {"type": "integer"}, "memo": {"type": "string"}},
        ["to_did", "amount"],
    ),
    IntentType.GET_BALANCE: _params({"did": _DID}),
    IntentType.GET_TRANSACTION_HISTORY: _params({"limit": _LIMIT}),
    IntentType.VERIFY_LEDGER: _params(),
    IntentType.CREATE_POST: _params(
        {
            "content": {"type": "string"},
            "reply_to": _OPTIONAL_TEXT,
            "repost_of": _OPTIONAL_TEXT,
            "channel": _OPTIONAL_TEXT,
        },
        ["content"],
    ),
    IntentType.CREATE_CHANNEL: _params(
        {"name": {"type": "string"}, "description": {"type": "string"}},
        ["name"],
    ),
    IntentType.LIST_CHANNELS: _params(),
    IntentType.GET_FEED: _params({"feed_id": _OPTIONAL_TEXT}),
    IntentType.GET_GLOBAL_FEED: _params({"limit": _LIMIT}),
    IntentType.FOLLOW: _params({"did": _DID}, ["did"]),
    IntentType.UNFOLLOW: _params({"did": _DID}, ["did"]),
    IntentType.BLOCK: _params({"did": _DID}, ["did"]),
    IntentType.UNBLOCK: _params({"did": _DID}, ["did"]),
    IntentType.GET_SOCIAL_GRAPH: _params(),
    IntentType.GET_STATS: _params(),
    IntentType.EXPORT_STATE: _params(),
    IntentType.IMPORT_STATE: _params({"snapshot": {"type": "string"}}, ["snapshot"]),
    IntentType.RESET: _params({"preserve_identity": {"type": "boolean"}}),
}


@dataclass
class KernelIntent:
    """A request from a collaborator: an intent type plus named params."""

    intent_type: IntentType
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"intent_type": self.intent_type.value, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KernelIntent:
        """Build from a plain dict.

        Raises:
            ValueError: Unknown intent_type.
        """
        return cls(IntentType(data["intent_type"]), dict(data.get("params") or {}))


def _serialize(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    return value


class IntentHandler:
    """Validates intents, calls the kernel, and wraps the outcome."""

    def __init__(self, kernel: Kernel) -> None:
        self._kernel = kernel

    async def handle(self, intent: KernelIntent | dict[str, Any]) -> dict[str, Any]:
        """Execute one intent. Never raises for bad input."""
        if isinstance(intent, dict):
            try:
                intent = KernelIntent.from_dict(intent)
            except (KeyError, ValueError, TypeError):
                valid = ", ".join(t.value for t in IntentType)
                return validation_error(
                    f"Unknown or missing intent_type. Valid types: {valid}",
                    code=ErrorCode.UNKNOWN_INTENT,
                )

        schema = INTENT_SCHEMAS[intent.intent_type]
        try:
            jsonschema.validate(instance=intent.params, schema=schema)
        except jsonschema.ValidationError as e:
            return validation_error(
                f"{intent.intent_type.value}: {e.message}",
                code=ErrorCode.INVALID_ARGUMENT,
                required=schema["required"],
            )

        handler = getattr(self, f"_handle_{intent.intent_type.value}")
        try:
            data = await handler(**intent.params)
        except KernelError as e:
            logger.info("Intent %s refused: %s", intent.intent_type.value, e.message)
            return error_response_for(e)
        except Exception as e:
            logger.exception("Intent %s failed", intent.intent_type.value)
            return system_error(f"{intent.intent_type.value} failed: {e}")
        return {"success": True, "data": _serialize(data)}

    # ----- addresses -----

    async def _handle_generate_address(self, content: str, scheme: str = "xhe", sequence: Any = None) -> Any:
        return await self._kernel.generate_address(content, scheme, sequence)

    async def _handle_resolve_address(self, address: Any) -> Any:
        return await self._kernel.resolve(address)

    async def _handle_get_address_index(self, filter: str = "all") -> Any:
        return self._kernel.get_address_index(filter)

    async def _handle_clear_address_index(self) -> Any:
        return {"removed": await self._kernel.clear_address_index()}

    # ----- identity -----

    async def _handle_get_identity(self) -> Any:
        return self._kernel.get_identity()

    async def _handle_get_identity_history(self) -> Any:
        return self._kernel.get_identity_history()

    async def _handle_regenerate_identity(self) -> Any:
        return await self._kernel.regenerate_identity()

    # ----- slips -----

    async def _handle_mint(self, amount: int, reason: str = "GENESIS") -> Any:
        return await self._kernel.mint(amount, reason)

    async def _handle_transfer(self, to_did: str, amount: int, memo: str = "") -> Any:
        return await self._kernel.transfer(to_did, amount, memo)

    async def _handle_get_balance(self, did: str | None = None) -> Any:
        return {"did": did or self._kernel.did, "balance": self._kernel.get_balance(did)}

    async def _handle_get_transaction_history(self, limit: int | None = None) -> Any:
        return self._kernel.get_transaction_history(limit)

    async def _handle_verify_ledger(self) -> Any:
        return dict(self._kernel.verify_ledger())

    # ----- social -----

    async def _handle_create_post(
        self,
        content: str,
        reply_to: str | None = None,
        repost_of: str | None = None,
        channel: str | None = None,
    ) -> Any:
        return await self._kernel.create_post(content, reply_to, repost_of, channel)

    async def _handle_create_channel(self, name: str, description: str = "") -> Any:
        return await self._kernel.create_channel(name, description)

    async def _handle_list_channels(self) -> Any:
        return self._kernel.list_channels()

    async def _handle_get_feed(self, feed_id: str | None = None) -> Any:
        return self._kernel.get_feed(feed_id)

    async def _handle_get_global_feed(self, limit: int | None = None) -> Any:
        return self._kernel.get_global_feed(limit)

    async def _handle_follow(self, did: str) -> Any:
        return await self._kernel.follow(did)

    async def _handle_unfollow(self, did: str) -> Any:
        return await self._kernel.unfollow(did)

    async def _handle_block(self, did: str) -> Any:
        return await self._kernel.block(did)

    async def _handle_unblock(self, did: str) -> Any:
        return await self._kernel.unblock(did)

    async def _handle_get_social_graph(self) -> Any:
        return self._kernel.get_social_graph()

    # ----- kernel -----

    async def _handle_get_stats(self) -> Any:
        return self._kernel.get_stats()

    async def _handle_export_state(self) -> Any:
        return {"snapshot": self._kernel.export_state()}

    async def _handle_import_state(self, snapshot: str) -> Any:
        return await self._kernel.import_state(snapshot)

    async def _handle_reset(self, preserve_identity: bool = False) -> Any:
        identity = await self._kernel.reset(preserve_identity)
        return {"preserve_identity": preserve_identity, "identity": identity.to_dict()}
