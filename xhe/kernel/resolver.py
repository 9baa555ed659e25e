"""Address resolution.

Dispatches a parsed address by scheme and returns one of the structured
truth states. Lookups here are pure reads; the kernel emits the audit
pulse for the attempt before calling in.

    xhe / ipfs   content store by hash -> RESOLVED
                 address index         -> KNOWN_BUT_UNAVAILABLE
    did:xhe      current identity      -> RESOLVED (profile + live balance)
                 identity history      -> KNOWN_BUT_UNAVAILABLE
                 following / followers -> KNOWN_BUT_UNAVAILABLE
    pulse        pulse store           -> RESOLVED
    slip         transaction log       -> RESOLVED
    feed/channel by id                 -> RESOLVED
    otherwise                          -> UNKNOWN
"""

from __future__ import annotations

import json
from typing import Any, Callable

from .addresses import Address
from .constants import AddressScheme, ResolutionState
from .models import ResolutionResult
from .state import KernelState


def invalid_result(address: object) -> ResolutionResult:
    return ResolutionResult(
        state=ResolutionState.INVALID,
        type="unknown",
        address=address,
        error="Malformed address format",
    )


def _pretty(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


class Resolver:
    """Scheme dispatch over a KernelState."""

    def __init__(self, state: KernelState) -> None:
        self.state = state
        self._handlers: dict[AddressScheme, Callable[[Address], ResolutionResult]] = {
            AddressScheme.XHE: self._resolve_content,
            AddressScheme.IPFS: self._resolve_content,
            AddressScheme.DID_XHE: self._resolve_identity,
            AddressScheme.PULSE: self._resolve_pulse,
            AddressScheme.SLIP: self._resolve_slip,
            AddressScheme.FEED: self._resolve_feed,
            AddressScheme.CHANNEL: self._resolve_channel,
        }

    def lookup(self, address: Address) -> ResolutionResult:
        return self._handlers[address.scheme](address)

    def _unknown(self, address: Address, error: str) -> ResolutionResult:
        return ResolutionResult(
            state=ResolutionState.UNKNOWN,
            type=address.scheme.value,
            address=str(address),
            error=error,
        )

    def _resolve_content(self, address: Address) -> ResolutionResult:
        full = str(address)
        entry = self.state.content.get(address.value)
        if entry is not None:
            return ResolutionResult(
                state=ResolutionState.RESOLVED,
                type=address.scheme.value,
                address=full,
                content=entry.content,
                metadata={
                    "timestamp": entry.timestamp,
                    "author": entry.author,
                    "scheme": entry.scheme,
                },
            )

        indexed = self.state.index.get(full)
        if indexed is not None:
            return ResolutionResult(
                state=ResolutionState.KNOWN_BUT_UNAVAILABLE,
                type=address.scheme.value,
                address=full,
                metadata=indexed.to_dict(),
                error="Address known but content not available locally",
            )

        return self._unknown(address, "Address not found in kernel state")

    def _resolve_identity(self, address: Address) -> ResolutionResult:
        did = str(address)
        identity = self.state.identity
        if did == identity.did:
            profile = {
                "did": identity.did,
                "public_key": identity.public_key,
                "created": identity.created,
                "slip_balance": self.state.ledger.get_balance(identity.did),
            }
            return ResolutionResult(
                state=ResolutionState.RESOLVED,
                type=AddressScheme.DID_XHE.value,
                address=did,
                content=_pretty(profile),
                metadata={"is_own": True, "created": identity.created},
            )

        for archived in self.state.history:
            if archived.did == did:
                return ResolutionResult(
                    state=ResolutionState.KNOWN_BUT_UNAVAILABLE,
                    type=AddressScheme.DID_XHE.value,
                    address=did,
                    metadata={"archived_at": archived.archived_at, "reason": archived.reason},
                    error="Historical identity (no longer active)",
                )

        if self.state.social.knows(did):
            return ResolutionResult(
                state=ResolutionState.KNOWN_BUT_UNAVAILABLE,
                type=AddressScheme.DID_XHE.value,
                address=did,
                error="Known identity but full data not available locally",
            )

        return self._unknown(address, "Identity not found in kernel state")

    def _resolve_pulse(self, address: Address) -> ResolutionResult:
        pulse = self.state.pulses.get(address.key)
        if pulse is None:
            return self._unknown(address, "Pulse not found in kernel state")
        return ResolutionResult(
            state=ResolutionState.RESOLVED,
            type=AddressScheme.PULSE.value,
            address=str(address),
            content=_pretty(pulse.to_dict()),
            metadata={
                "type": pulse.type,
                "author": pulse.author,
                "timestamp": pulse.timestamp,
                "sequence": pulse.sequence,
            },
        )

    def _resolve_slip(self, address: Address) -> ResolutionResult:
        tx = self.state.ledger.get(address.value)
        if tx is None:
            return self._unknown(address, "Slip transaction not found")
        record = tx.to_dict()
        return ResolutionResult(
            state=ResolutionState.RESOLVED,
            type=AddressScheme.SLIP.value,
            address=str(address),
            content=_pretty(record),
            metadata=record,
        )

    def _resolve_feed(self, address: Address) -> ResolutionResult:
        feed = self.state.social.feeds.get(address.value)
        if feed is None:
            return self._unknown(address, "Feed not found")
        record = feed.to_dict()
        return ResolutionResult(
            state=ResolutionState.RESOLVED,
            type=AddressScheme.FEED.value,
            address=str(address),
            content=_pretty(record),
            metadata=record,
        )

    def _resolve_channel(self, address: Address) -> ResolutionResult:
        channel = self.state.social.channels.get(address.value)
        if channel is None:
            return self._unknown(address, "Channel not found")
        record = channel.to_dict()
        return ResolutionResult(
            state=ResolutionState.RESOLVED,
            type=AddressScheme.CHANNEL.value,
            address=str(address),
            content=_pretty(record),
            metadata=record,
        )
