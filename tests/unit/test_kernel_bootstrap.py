"""Tests for kernel bootstrap, persistence and the single-writer commit path."""

import asyncio
from pathlib import Path

import pytest

from xhe.config_schema import AppConfig
from xhe.kernel import Kernel, MemoryStore
from xhe.kernel.constants import KernelEvent, PulseType, StoreKey


OTHER = "did:xhe:fedcba9876543210fedcba9876543210"


class TestBootstrap:
    """First boot creates state; later boots load it."""

    def test_new_kernel(self, kernel: Kernel) -> None:
        identity = kernel.get_identity()
        assert identity.did.startswith("did:xhe:")
        assert len(identity.did) == len("did:xhe:") + 32
        assert len(identity.public_key) == 64
        assert identity.version == 1
        assert kernel.get_did() == identity.did
        assert kernel.get_stats() == {
            "pulse_count": 1,
            "address_count": 0,
            "content_count": 0,
            "slip_balance": 100,
            "following": 0,
            "post_count": 0,
            "channel_count": 0,
            "current_sequence": 1,
        }

    def test_first_boot_writes_every_required_key(self, kernel: Kernel, store) -> None:
        prefix = kernel.config.storage.key_prefix
        written, deleted = store.commits[0]
        assert deleted == set()
        for key in (StoreKey.META, StoreKey.IDENTITY, StoreKey.SLIPS, StoreKey.PULSES, StoreKey.PULSE_SEQ):
            assert prefix + key.value in written

    def test_reopen_is_idempotent(self, store, settings: AppConfig) -> None:
        """Reopening loads the same identity and emits no new pulse."""
        first = Kernel(store, settings)
        second = Kernel(store, settings)
        assert second.did == first.did
        assert len(second.state.pulses) == 1
        assert second.get_balance() == 100
        assert second.state.meta.created == first.state.meta.created

    def test_reopen_over_sqlite(self, db_path: Path, settings: AppConfig) -> None:
        with Kernel.open(db_path, settings) as first:
            did = first.did
            asyncio.run(first.mint(5))
        with Kernel.open(db_path, settings) as second:
            assert second.did == did
            assert second.get_balance() == 105
            assert second.state.pulses.sequence == 2

    def test_open_places_relative_journal_beside_db(self, tmp_path: Path) -> None:
        config = AppConfig.model_validate({"journal": {"path": "journal.jsonl"}})
        db = tmp_path / "nested" / "kernel.db"
        with Kernel.open(db, config):
            pass
        assert (tmp_path / "nested" / "journal.jsonl").exists()

    def test_missing_slips_regrants_genesis_once(self, store, settings: AppConfig) -> None:
        kernel = Kernel(store, settings)
        store.delete(settings.storage.key_prefix + StoreKey.SLIPS.value)
        reopened = Kernel(store, settings)
        assert reopened.did == kernel.did
        assert reopened.get_balance() == 100
        assert Kernel(store, settings).get_balance() == 100

    def test_corrupt_values_fall_back_to_defaults(self, settings: AppConfig) -> None:
        store = MemoryStore()
        prefix = settings.storage.key_prefix
        store.save(prefix + StoreKey.CONTENT.value, ["not", "a", "map"])
        store.save(prefix + StoreKey.PULSE_SEQ.value, "garbage")
        kernel = Kernel(store, settings)
        assert kernel.state.content == {}
        assert kernel.state.pulses.sequence == 1

    def test_sequence_never_trails_stored_pulses(self, store, settings: AppConfig) -> None:
        """A stale counter is raised to the highest stored pulse sequence."""
        kernel = Kernel(store, settings)
        store.save(settings.storage.key_prefix + StoreKey.PULSE_SEQ.value, 0)
        reopened = Kernel(store, settings)
        assert reopened.state.pulses.sequence == 1
        assert reopened.state.pulses.peek_next() == "00000002"
        assert reopened.did == kernel.did


class TestCommits:
    """Each mutating operation is one store transaction."""

    @pytest.mark.asyncio
    async def test_one_commit_per_operation(self, kernel: Kernel, store) -> None:
        store.commits.clear()
        await kernel.generate_address("hello")
        await kernel.transfer(OTHER, 10)
        await kernel.create_post("post")
        await kernel.follow(OTHER)
        assert len(store.commits) == 4

    @pytest.mark.asyncio
    async def test_post_commit_covers_content_feed_and_pulse(self, kernel: Kernel, store) -> None:
        prefix = kernel.config.storage.key_prefix
        channel = await kernel.create_channel("general")
        store.commits.clear()
        await kernel.create_post("hello", channel=channel.id)
        written, _ = store.commits[0]
        expected = {StoreKey.CONTENT, StoreKey.FEEDS, StoreKey.CHANNELS, StoreKey.PULSES, StoreKey.PULSE_SEQ}
        assert {prefix + k.value for k in expected} <= written

    @pytest.mark.asyncio
    async def test_reads_do_not_commit(self, kernel: Kernel, store) -> None:
        store.commits.clear()
        kernel.get_stats()
        kernel.get_address_index()
        kernel.get_global_feed()
        kernel.export_state()
        assert store.commits == []

    @pytest.mark.asyncio
    async def test_concurrent_operations_serialize(self, kernel: Kernel) -> None:
        """Concurrent calls produce gap-free sequences and consistent balances."""
        await asyncio.gather(
            *(kernel.transfer(OTHER, 1) for _ in range(20)),
            *(kernel.generate_address(f"content {i}") for i in range(20)),
            *(kernel.mint(2) for _ in range(10)),
        )
        sequences = [p.sequence_number for p in kernel.state.pulses.all()]
        assert sequences == list(range(1, 52))
        assert kernel.get_balance() == 100 - 20 + 20
        assert kernel.get_balance(OTHER) == 20
        assert kernel.verify_ledger()["ok"]

    @pytest.mark.asyncio
    async def test_observers_notified_after_commit(self, kernel: Kernel, store) -> None:
        """When a pulse event arrives, the pulse is already durable."""
        prefix = kernel.config.storage.key_prefix
        durable: list[bool] = []

        def check(pulse: dict) -> None:
            stored = store.load(prefix + StoreKey.PULSES.value, {})
            durable.append(pulse["id"] in stored)

        kernel.subscribe(KernelEvent.PULSE, check)
        await kernel.mint(1)
        assert durable == [True]

    @pytest.mark.asyncio
    async def test_closed_kernel_rejects_writes(self, kernel: Kernel) -> None:
        kernel.close()
        with pytest.raises(RuntimeError):
            await kernel.mint(1)


class TestIdentity:
    """regenerate_identity() archives and replaces."""

    @pytest.mark.asyncio
    async def test_regenerate(self, kernel: Kernel) -> None:
        old = kernel.get_identity()
        await kernel.transfer(OTHER, 40)
        events: list[dict] = []
        kernel.subscribe(KernelEvent.IDENTITY_CHANGED, events.append)

        new = await kernel.regenerate_identity()

        assert new.did != old.did
        history = kernel.get_identity_history()
        assert [h.did for h in history] == [old.did]
        assert history[0].reason == "user-initiated"
        # Old did keeps its balance; the new one gets genesis
        assert kernel.get_balance(old.did) == 60
        assert kernel.get_balance() == 100
        assert kernel.verify_ledger()["ok"]

        pulse = kernel.state.pulses.all()[-1]
        assert pulse.type == PulseType.IDENTITY_REGENERATE.value
        assert pulse.author == new.did
        assert pulse.payload == {"old_did": old.did, "new_did": new.did, "history_length": 1}
        assert events[0]["old_did"] == old.did
        assert events[0]["new_did"] == new.did

    @pytest.mark.asyncio
    async def test_regenerate_persists(self, store, settings: AppConfig) -> None:
        kernel = Kernel(store, settings)
        new = await kernel.regenerate_identity()
        reopened = Kernel(store, settings)
        assert reopened.did == new.did
        assert len(reopened.get_identity_history()) == 1

    def test_identity_is_a_copy(self, kernel: Kernel) -> None:
        identity = kernel.get_identity()
        identity.did = "did:xhe:00"
        assert kernel.did != "did:xhe:00"
