"""Tests for the observer channel."""

import json
import logging

import pytest

from xhe.kernel import EventBus, Kernel
from xhe.kernel.constants import KernelEvent
from xhe.kernel.errors import ValidationError
from xhe.kernel.hashing import canonical_json, sha256_hex


class TestEventBus:
    """Subscribe, publish, unsubscribe."""

    def test_publish_in_subscription_order(self) -> None:
        bus = EventBus()
        calls: list[str] = []
        bus.subscribe(KernelEvent.PULSE, lambda data: calls.append("first"))
        bus.subscribe("pulse", lambda data: calls.append("second"))

        assert bus.publish(KernelEvent.PULSE, {}) == 2
        assert calls == ["first", "second"]

    def test_events_are_separate(self) -> None:
        bus = EventBus()
        calls: list[dict] = []
        bus.subscribe(KernelEvent.INDEX_CLEARED, calls.append)
        bus.publish(KernelEvent.PULSE, {"x": 1})
        assert calls == []

    def test_unknown_event_rejected(self) -> None:
        with pytest.raises(ValueError):
            EventBus().subscribe("nonsense", lambda data: None)

    def test_handle_unsubscribes(self) -> None:
        bus = EventBus()
        calls: list[dict] = []
        handle = bus.subscribe(KernelEvent.PULSE, calls.append)
        assert bus.subscriber_count(KernelEvent.PULSE) == 1

        handle()
        handle()

        assert not handle.active
        assert bus.subscriber_count(KernelEvent.PULSE) == 0
        bus.publish(KernelEvent.PULSE, {})
        assert calls == []

    def test_unsubscribe_unknown_callback(self) -> None:
        assert EventBus().unsubscribe(KernelEvent.PULSE, print) is False

    def test_failing_observer_is_isolated(self, caplog: pytest.LogCaptureFixture) -> None:
        """A raising callback is logged and the others still run."""
        bus = EventBus()
        calls: list[dict] = []

        def broken(data: dict) -> None:
            raise RuntimeError("observer bug")

        bus.subscribe(KernelEvent.PULSE, broken)
        bus.subscribe(KernelEvent.PULSE, calls.append)

        with caplog.at_level(logging.ERROR):
            delivered = bus.publish(KernelEvent.PULSE, {"n": 1})

        assert delivered == 1
        assert calls == [{"n": 1}]
        assert "observer bug" in caplog.text

    def test_callback_may_unsubscribe_itself(self) -> None:
        bus = EventBus()
        calls: list[str] = []
        handles = []

        def once(data: dict) -> None:
            calls.append("once")
            handles[0]()

        handles.append(bus.subscribe(KernelEvent.PULSE, once))
        bus.subscribe(KernelEvent.PULSE, lambda data: calls.append("always"))
        bus.publish(KernelEvent.PULSE, {})
        bus.publish(KernelEvent.PULSE, {})
        assert calls == ["once", "always", "always"]


class TestKernelEvents:
    """Kernel notifications."""

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_fail_operation(self, kernel: Kernel) -> None:
        def broken(data: dict) -> None:
            raise RuntimeError("observer bug")

        kernel.subscribe(KernelEvent.PULSE, broken)
        tx = await kernel.mint(5)
        assert tx.amount == 5
        assert kernel.get_balance() == 105

    @pytest.mark.asyncio
    async def test_pulse_event_carries_full_record(self, kernel: Kernel) -> None:
        seen: list[dict] = []
        kernel.subscribe(KernelEvent.PULSE, seen.append)
        await kernel.generate_address("hello")
        pulse = kernel.state.pulses.all()[-1]
        assert seen == [pulse.to_dict()]

    @pytest.mark.asyncio
    async def test_observer_cannot_rewrite_stored_pulse(self, kernel: Kernel) -> None:
        """Pulse payloads handed to observers are copies."""

        def tamper(data: dict) -> None:
            data["payload"]["amount"] = 999999

        kernel.subscribe(KernelEvent.PULSE, tamper)
        await kernel.mint(5)
        pulse = kernel.state.pulses.all()[-1]
        record = {k: v for k, v in pulse.to_dict().items() if k not in ("hash", "address", "id")}

        assert pulse.payload["amount"] == 5
        assert sha256_hex(canonical_json(record)) == pulse.hash
        resolved = await kernel.resolve(pulse.address)
        assert json.loads(resolved.content)["payload"]["amount"] == 5

    @pytest.mark.asyncio
    async def test_index_cleared_event(self, kernel: Kernel) -> None:
        seen: list[dict] = []
        kernel.subscribe(KernelEvent.INDEX_CLEARED, seen.append)
        await kernel.generate_address("a")
        await kernel.generate_address("b")
        await kernel.clear_address_index()
        assert seen == [{"removed": 2}]

    @pytest.mark.asyncio
    async def test_no_event_for_failed_operation(self, kernel: Kernel) -> None:
        seen: list[dict] = []
        kernel.subscribe(KernelEvent.PULSE, seen.append)
        with pytest.raises(ValidationError):
            await kernel.mint(0)
        assert seen == []

    @pytest.mark.asyncio
    async def test_kernel_unsubscribe(self, kernel: Kernel) -> None:
        seen: list[dict] = []
        kernel.subscribe(KernelEvent.PULSE, seen.append)
        assert kernel.unsubscribe(KernelEvent.PULSE, seen.append) is True
        await kernel.mint(1)
        assert seen == []
