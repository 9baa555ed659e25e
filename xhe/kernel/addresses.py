"""Address grammar.

An Address is a tagged value {scheme, value, sequence}. format_address and
parse_address are inverses for every Address that passes validation:

    parse_address(format_address(addr)) == addr

Supported forms:
    xhe://<hex>
    did:xhe:<hex>
    pulse://<digits>/<hex>   or   pulse://<hex>
    ipfs://<hex>
    slip://<id>
    feed://<id>
    channel://<id>

where <hex> is lowercase hex and <id> is [A-Za-z0-9_-]+. Anything else
parses to None.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .constants import AddressScheme

_HEX = re.compile(r"[0-9a-f]+")
_DIGITS = re.compile(r"[0-9]+")
_ID = re.compile(r"[A-Za-z0-9_-]+")

_PREFIXES: list[tuple[str, AddressScheme]] = [
    ("channel://", AddressScheme.CHANNEL),
    ("did:xhe:", AddressScheme.DID_XHE),
    ("pulse://", AddressScheme.PULSE),
    ("slip://", AddressScheme.SLIP),
    ("feed://", AddressScheme.FEED),
    ("ipfs://", AddressScheme.IPFS),
    ("xhe://", AddressScheme.XHE),
]

_PREFIX_FOR: dict[AddressScheme, str] = {scheme: prefix for prefix, scheme in _PREFIXES}

_HEX_SCHEMES = frozenset({AddressScheme.XHE, AddressScheme.DID_XHE, AddressScheme.IPFS})


@dataclass(frozen=True)
class Address:
    """A parsed address.

    `value` is the hash (content, identity, pulse) or id (slip, feed,
    channel). `sequence` is only set for pulse addresses that carry one.
    """

    scheme: AddressScheme
    value: str
    sequence: str | None = None

    def __str__(self) -> str:
        return format_address(self)

    @property
    def key(self) -> str:
        """Lookup key: `sequence/hash` for sequenced pulses, else the value."""
        if self.sequence is not None:
            return f"{self.sequence}/{self.value}"
        return self.value


class AddressFormatError(ValueError):
    """Raised when formatting an Address whose parts do not fit the grammar."""


def _valid(scheme: AddressScheme, value: str, sequence: str | None) -> bool:
    if sequence is not None:
        if scheme != AddressScheme.PULSE or not _DIGITS.fullmatch(sequence):
            return False
    if scheme in _HEX_SCHEMES or scheme == AddressScheme.PULSE:
        return bool(_HEX.fullmatch(value))
    return bool(_ID.fullmatch(value))


def format_address(address: Address) -> str:
    """Serialize an Address.

    Raises:
        AddressFormatError: If the parts would not parse back to the same Address.
    """
    if not _valid(address.scheme, address.value, address.sequence):
        raise AddressFormatError(
            f"Invalid {address.scheme.value} address parts: "
            f"value={address.value!r} sequence={address.sequence!r}"
        )
    prefix = _PREFIX_FOR[address.scheme]
    if address.sequence is not None:
        return f"{prefix}{address.sequence}/{address.value}"
    return f"{prefix}{address.value}"


def parse_address(text: object) -> Address | None:
    """Parse an address string. Returns None for anything malformed.

    Never raises; non-string input is treated as malformed.
    """
    if not isinstance(text, str):
        return None
    trimmed = text.strip()
    for prefix, scheme in _PREFIXES:
        if not trimmed.startswith(prefix):
            continue
        rest = trimmed[len(prefix):]
        sequence: str | None = None
        value = rest
        if scheme == AddressScheme.PULSE and "/" in rest:
            sequence, _, value = rest.partition("/")
        if not _valid(scheme, value, sequence):
            return None
        return Address(scheme=scheme, value=value, sequence=sequence)
    return None


def content_address(content_hash: str) -> str:
    return format_address(Address(AddressScheme.XHE, content_hash))


def pulse_address(sequence: str, pulse_hash: str) -> str:
    return format_address(Address(AddressScheme.PULSE, pulse_hash, sequence))
