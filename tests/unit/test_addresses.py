"""Tests for the address grammar and hashing helpers."""

import hashlib

import pytest

from xhe.kernel.addresses import (
    Address,
    AddressFormatError,
    content_address,
    format_address,
    parse_address,
    pulse_address,
)
from xhe.kernel.constants import AddressScheme
from xhe.kernel.hashing import canonical_json, make_preview, parse_timestamp, random_hex, sha256_hex


HELLO_HASH = hashlib.sha256(b"hello world").hexdigest()


class TestHashing:
    """Pure helpers in hashing.py."""

    def test_sha256_hex_matches_hashlib(self) -> None:
        assert sha256_hex("hello world") == HELLO_HASH
        assert sha256_hex("hello world") == sha256_hex("hello world")

    def test_sha256_hex_hashes_utf8(self) -> None:
        assert sha256_hex("héllo") == hashlib.sha256("héllo".encode("utf-8")).hexdigest()

    def test_random_hex_length_and_alphabet(self) -> None:
        value = random_hex(16)
        assert len(value) == 32
        assert set(value) <= set("0123456789abcdef")
        assert random_hex(16) != value

    def test_canonical_json_is_key_order_independent(self) -> None:
        assert canonical_json({"b": 1, "a": [1, 2]}) == canonical_json({"a": [1, 2], "b": 1})
        assert canonical_json({"a": 1}) == '{"a":1}'

    def test_make_preview(self) -> None:
        assert make_preview("short") == "short"
        long_text = "x" * 60
        assert make_preview(long_text) == "x" * 50 + "..."
        assert make_preview("x" * 50) == "x" * 50

    def test_parse_timestamp_orders_and_tolerates_garbage(self) -> None:
        early = parse_timestamp("2026-01-01T00:00:00.000+00:00")
        late = parse_timestamp("2026-01-01T00:00:01.000Z")
        assert early < late
        assert parse_timestamp("not a time") < early
        assert parse_timestamp(None) < early


class TestParseAddress:
    """parse_address accepts the supported grammar and nothing else."""

    @pytest.mark.parametrize("text,scheme,value,sequence", [
        (f"xhe://{HELLO_HASH}", AddressScheme.XHE, HELLO_HASH, None),
        ("did:xhe:0123456789abcdef0123456789abcdef", AddressScheme.DID_XHE,
         "0123456789abcdef0123456789abcdef", None),
        ("pulse://00000001/abcd", AddressScheme.PULSE, "abcd", "00000001"),
        ("pulse://abcd", AddressScheme.PULSE, "abcd", None),
        ("ipfs://beef", AddressScheme.IPFS, "beef", None),
        ("slip://0f0f", AddressScheme.SLIP, "0f0f", None),
        ("feed://personal_1234abcd", AddressScheme.FEED, "personal_1234abcd", None),
        ("channel://abc-DEF_9", AddressScheme.CHANNEL, "abc-DEF_9", None),
    ])
    def test_valid_forms(self, text: str, scheme: AddressScheme, value: str, sequence: str | None) -> None:
        parsed = parse_address(text)
        assert parsed == Address(scheme, value, sequence)

    def test_surrounding_whitespace_is_trimmed(self) -> None:
        assert parse_address("  xhe://deadbeef\n") == Address(AddressScheme.XHE, "deadbeef")

    @pytest.mark.parametrize("text", [
        "",
        "not-a-valid-address",
        "xhe://",
        "xhe://XYZ",
        "xhe://DEADBEEF",
        "did:xhe:",
        "pulse://12a/abcd",
        "pulse://1/",
        "slip://has space",
        "http://example.com",
        "feed://",
    ])
    def test_malformed_strings(self, text: str) -> None:
        assert parse_address(text) is None

    @pytest.mark.parametrize("value", [None, 42, b"xhe://ab", ["xhe://ab"], {"a": 1}])
    def test_non_strings(self, value: object) -> None:
        assert parse_address(value) is None

    def test_key_for_pulse_lookup(self) -> None:
        assert Address(AddressScheme.PULSE, "ab", "00000003").key == "00000003/ab"
        assert Address(AddressScheme.PULSE, "ab").key == "ab"
        assert Address(AddressScheme.XHE, "ab").key == "ab"


class TestFormatAddress:
    """format_address is the inverse of parse_address."""

    @pytest.mark.parametrize("address", [
        Address(AddressScheme.XHE, HELLO_HASH),
        Address(AddressScheme.DID_XHE, HELLO_HASH[:32]),
        Address(AddressScheme.PULSE, HELLO_HASH, "00000042"),
        Address(AddressScheme.PULSE, HELLO_HASH),
        Address(AddressScheme.IPFS, HELLO_HASH),
        Address(AddressScheme.SLIP, "a1b2"),
        Address(AddressScheme.FEED, "personal_00ff00ff"),
        Address(AddressScheme.CHANNEL, "c0ffee"),
    ])
    def test_round_trip(self, address: Address) -> None:
        assert parse_address(format_address(address)) == address

    def test_rendered_forms(self) -> None:
        assert content_address("ab") == "xhe://ab"
        assert pulse_address("00000001", "ab") == "pulse://00000001/ab"
        assert str(Address(AddressScheme.DID_XHE, "ab")) == "did:xhe:ab"

    def test_rejects_parts_that_would_not_parse(self) -> None:
        with pytest.raises(AddressFormatError):
            format_address(Address(AddressScheme.XHE, "not hex"))
        with pytest.raises(AddressFormatError):
            format_address(Address(AddressScheme.SLIP, "a", "00000001"))
