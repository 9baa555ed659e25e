"""Pulse log - monotonic, hash-stamped audit records.

Every state-mutating kernel operation appends exactly one pulse. A pulse
is built from the pre-hash record

    {type, payload, timestamp, author, sequence, kernel_version}

serialized as canonical JSON and hashed with SHA-256. Its id is
`<sequence>/<hash>` and its address `pulse://<sequence>/<hash>`.

The log only mutates memory. The kernel commits the pulse store and the
sequence counter together with the rest of the operation's state, then
publishes the pulse to observers.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from .addresses import pulse_address
from .constants import PulseType
from .hashing import canonical_json, now_iso, sha256_hex
from .models import EmitResult, Pulse

logger = logging.getLogger(__name__)


class PulseLog:
    """Sequence counter plus the pulse store, keyed by pulse id."""

    def __init__(
        self,
        sequence: int = 0,
        pulses: dict[str, Pulse] | None = None,
        sequence_width: int = 8,
    ) -> None:
        self._sequence = sequence
        self._pulses: dict[str, Pulse] = dict(pulses or {})
        self._width = sequence_width

    @property
    def sequence(self) -> int:
        """Last sequence number handed out (0 before the first pulse)."""
        return self._sequence

    def format_sequence(self, number: int) -> str:
        return str(number).zfill(self._width)

    def peek_next(self) -> str:
        """Formatted sequence the next emit() will use."""
        return self.format_sequence(self._sequence + 1)

    def emit(
        self,
        pulse_type: PulseType,
        payload: dict[str, Any],
        author: str,
        kernel_version: str,
    ) -> EmitResult:
        """Append a pulse and return its id, address and full record."""
        payload = copy.deepcopy(payload)
        self._sequence += 1
        sequence = self.format_sequence(self._sequence)
        record: dict[str, Any] = {
            "type": pulse_type.value,
            "payload": payload,
            "timestamp": now_iso(),
            "author": author,
            "sequence": sequence,
            "kernel_version": kernel_version,
        }
        pulse_hash = sha256_hex(canonical_json(record))
        pulse_id = f"{sequence}/{pulse_hash}"
        pulse = Pulse(
            type=record["type"],
            payload=payload,
            timestamp=record["timestamp"],
            author=author,
            sequence=sequence,
            kernel_version=kernel_version,
            hash=pulse_hash,
            address=pulse_address(sequence, pulse_hash),
            id=pulse_id,
        )
        self._pulses[pulse_id] = pulse
        logger.debug("Pulse %s %s", pulse_id, pulse.type)
        return EmitResult(pulse_id=pulse_id, address=pulse.address, pulse=pulse)

    def get(self, key: str) -> Pulse | None:
        """Look up by `sequence/hash`, or by bare hash."""
        pulse = self._pulses.get(key)
        if pulse is not None or "/" in key:
            return pulse
        for candidate in self._pulses.values():
            if candidate.hash == key:
                return candidate
        return None

    def __len__(self) -> int:
        return len(self._pulses)

    def __contains__(self, pulse_id: object) -> bool:
        return pulse_id in self._pulses

    def all(self) -> list[Pulse]:
        """All pulses in sequence order."""
        return sorted(self._pulses.values(), key=lambda p: p.sequence_number)

    def merge(self, pulse: Pulse) -> None:
        """Add an imported pulse and keep the counter ahead of every stored sequence."""
        self._pulses[pulse.id] = pulse
        if pulse.sequence_number > self._sequence:
            self._sequence = pulse.sequence_number

    def items(self) -> dict[str, Pulse]:
        return dict(self._pulses)

    def to_dict(self) -> dict[str, Any]:
        return {pulse_id: p.to_dict() for pulse_id, p in self._pulses.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any], sequence: int, sequence_width: int = 8) -> PulseLog:
        pulses: dict[str, Pulse] = {}
        for pulse_id, raw in data.items():
            try:
                pulses[pulse_id] = Pulse.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.error("Dropping unreadable pulse %s: %s", pulse_id, e)
        return cls(sequence=sequence, pulses=pulses, sequence_width=sequence_width)
