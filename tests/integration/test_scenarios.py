"""End-to-end kernel scenarios over a real SQLite store.

Each scenario opens a kernel on a fresh database file, runs one workflow,
and checks the outcome both live and after reopening.
"""

import hashlib
from pathlib import Path

import pytest

from xhe.config_schema import AppConfig
from xhe.kernel import Kernel, ResolutionState, TransactionType


TARGET = "did:xhe:fedcba9876543210fedcba9876543210"


@pytest.fixture
def sqlite_kernel(db_path: Path, settings: AppConfig):
    kernel = Kernel.open(db_path, settings)
    yield kernel
    kernel.close()


@pytest.mark.slow
class TestScenarios:
    """Core workflows against durable storage."""

    def test_fresh_kernel_balance(self, sqlite_kernel: Kernel) -> None:
        """A fresh kernel holds the genesis balance."""
        assert sqlite_kernel.get_balance() == 100

    @pytest.mark.asyncio
    async def test_generate_then_resolve(self, sqlite_kernel: Kernel) -> None:
        """Generated content resolves back to itself."""
        result = await sqlite_kernel.generate_address("hello world", "xhe")
        assert result.address == "xhe://" + hashlib.sha256(b"hello world").hexdigest()

        resolved = await sqlite_kernel.resolve(result.address)
        assert resolved.state == ResolutionState.RESOLVED
        assert resolved.content == "hello world"

    @pytest.mark.asyncio
    async def test_transfer(self, sqlite_kernel: Kernel, db_path: Path, settings: AppConfig) -> None:
        """Transfer moves slips and records one TRANSFER transaction."""
        await sqlite_kernel.transfer(TARGET, 30)
        assert sqlite_kernel.get_balance() == 70
        assert sqlite_kernel.get_balance(TARGET) == 30

        history = sqlite_kernel.get_transaction_history()
        assert len(history) == 1
        assert history[0].type == TransactionType.TRANSFER
        assert history[0].amount == 30

        sqlite_kernel.close()
        with Kernel.open(db_path, settings) as reopened:
            assert reopened.get_balance() == 70
            assert reopened.get_balance(TARGET) == 30
            assert reopened.verify_ledger()["ok"]

    @pytest.mark.asyncio
    async def test_malformed_address(self, sqlite_kernel: Kernel) -> None:
        result = await sqlite_kernel.resolve("not-a-valid-address")
        assert result.state == ResolutionState.INVALID

    @pytest.mark.asyncio
    async def test_unknown_hash(self, sqlite_kernel: Kernel) -> None:
        result = await sqlite_kernel.resolve("xhe://deadbeef")
        assert result.state == ResolutionState.UNKNOWN

    @pytest.mark.asyncio
    async def test_channel_post(self, sqlite_kernel: Kernel, db_path: Path, settings: AppConfig) -> None:
        """A channel post appears in the channel and the personal feed, stored once."""
        channel = await sqlite_kernel.create_channel("general")
        post = await sqlite_kernel.create_post("hi", channel=channel.id)

        channels = sqlite_kernel.list_channels()
        assert len(channels[0].posts) == 1
        assert len(sqlite_kernel.get_feed().posts) == 1
        assert channels[0].posts[0].hash == sqlite_kernel.get_feed().posts[0].hash == post.hash
        assert list(sqlite_kernel.state.content) == [post.hash]

        sqlite_kernel.close()
        with Kernel.open(db_path, settings) as reopened:
            assert len(reopened.list_channels()[0].posts) == 1
            assert reopened.get_feed().posts[0].id == post.id

    @pytest.mark.asyncio
    async def test_pulse_log_survives_reopen(self, sqlite_kernel: Kernel, db_path: Path, settings: AppConfig) -> None:
        """Sequences continue without gaps across process restarts."""
        for i in range(3):
            await sqlite_kernel.generate_address(f"item {i}")
        sqlite_kernel.close()

        with Kernel.open(db_path, settings) as reopened:
            await reopened.mint(1)
            sequences = [p.sequence_number for p in reopened.state.pulses.all()]
            assert sequences == [1, 2, 3, 4, 5]
