"""
Outbound domain event channel.

Operations publish typed ``DomainEvent`` messages; subscribers (notifiers,
UI bridges, tests) register for all or a subset of event types. Delivery is
in-process and in subscription order. A failing subscriber is logged and
skipped so it can never break the operation that published the event.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Union

from arena.data_models.codec import dump_datetime, utcnow

logger = logging.getLogger(__name__)


class DomainEventType(Enum):
    BATTLE_CREATED = "battle_created"
    BATTLE_INVITE = "battle_invite"
    PARTICIPANT_JOINED = "participant_joined"
    PARTICIPANT_LEFT = "participant_left"
    BATTLE_STATUS_CHANGED = "battle_status_changed"
    BATTLE_STARTED = "battle_started"
    POWER_UP_USED = "power_up_used"
    ROUND_COMPLETED = "round_completed"
    BATTLE_COMPLETED = "battle_completed"
    LADDER_UPDATED = "ladder_updated"
    TOURNAMENT_CREATED = "tournament_created"
    TOURNAMENT_STARTED = "tournament_started"
    TOURNAMENT_COMPLETED = "tournament_completed"


@dataclass(frozen=True)
class DomainEvent:
    event_type: DomainEventType
    battle_id: Optional[str] = None
    tournament_id: Optional[str] = None
    user_ids: tuple = ()
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "battle_id": self.battle_id,
            "tournament_id": self.tournament_id,
            "user_ids": list(self.user_ids),
            "payload": dict(self.payload),
            "timestamp": dump_datetime(self.timestamp),
        }


Handler = Callable[[DomainEvent], Union[None, Awaitable[None]]]


class EventBus:
    """Typed publish/subscribe channel owned by the battle service"""

    def __init__(self):
        self._subscribers: List[tuple] = []  # (handler, event types or None for all)

    def subscribe(self, handler: Handler, event_types: Iterable[DomainEventType] = None) -> Callable[[], None]:
        """
        Register a sync or async handler.

        Returns:
            A callable that removes the subscription
        """
        types: Optional[Set[DomainEventType]] = set(event_types) if event_types else None
        entry = (handler, types)
        self._subscribers.append(entry)

        def unsubscribe():
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: DomainEvent) -> None:
        for handler, types in list(self._subscribers):
            if types is not None and event.event_type not in types:
                continue
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Event handler {getattr(handler, '__qualname__', handler)} failed "
                    f"for {event.event_type.value}: {e}",
                    exc_info=True
                )

    async def publish_all(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            await self.publish(event)
