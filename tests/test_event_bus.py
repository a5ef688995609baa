"""Tests for the event bus and keyed locks."""

import asyncio

from arena.services.event_bus import DomainEvent, DomainEventType, EventBus
from arena.services.keyed_lock import KeyedLock


class TestEventBus:

    def test_filtered_and_catch_all_subscribers(self):
        bus = EventBus()
        everything, ladder_only = [], []
        bus.subscribe(everything.append)
        bus.subscribe(ladder_only.append, [DomainEventType.LADDER_UPDATED])

        asyncio.run(bus.publish_all([
            DomainEvent(DomainEventType.BATTLE_CREATED, battle_id="b1"),
            DomainEvent(DomainEventType.LADDER_UPDATED, user_ids=("a", "b")),
        ]))

        assert [e.event_type for e in everything] == [DomainEventType.BATTLE_CREATED,
                                                      DomainEventType.LADDER_UPDATED]
        assert [e.event_type for e in ladder_only] == [DomainEventType.LADDER_UPDATED]

    def test_async_handlers_are_awaited(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            await asyncio.sleep(0)
            seen.append(event.battle_id)

        bus.subscribe(handler)
        asyncio.run(bus.publish(DomainEvent(DomainEventType.BATTLE_STARTED, battle_id="b1")))
        assert seen == ["b1"]

    def test_failing_subscriber_is_isolated(self):
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        asyncio.run(bus.publish(DomainEvent(DomainEventType.BATTLE_STARTED)))
        assert len(seen) == 1

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        asyncio.run(bus.publish(DomainEvent(DomainEventType.BATTLE_STARTED)))
        assert seen == []
        assert bus.subscriber_count == 0

    def test_to_dict(self):
        event = DomainEvent(DomainEventType.ROUND_COMPLETED, battle_id="b1", user_ids=("a",),
                            payload={"round_number": 2})
        data = event.to_dict()
        assert data["event_type"] == "round_completed"
        assert data["user_ids"] == ["a"]
        assert data["payload"] == {"round_number": 2}


class TestKeyedLock:

    def test_same_key_serializes(self):
        locks = KeyedLock()
        order = []

        async def worker(name):
            async with locks.hold("battle_1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        async def play():
            await asyncio.gather(worker("a"), worker("b"))

        asyncio.run(play())
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    def test_hold_many_and_discard(self):
        locks = KeyedLock()

        async def play():
            async with locks.hold_many(["user_b", "user_a", "user_b"]):
                held = locks.is_locked("user_a") and locks.is_locked("user_b")
            return held

        assert asyncio.run(play()) is True
        assert not locks.is_locked("user_a")
        locks.discard("user_a")
        assert "user_a" not in locks._locks

