"""
Discord webhook notifier.

Subscribes to the event bus and posts battle, ladder and tournament
announcements to a Discord channel webhook as embeds.
"""

from typing import Callable, Optional

import aiohttp
import discord

from arena.services.event_bus import DomainEvent, EventBus
from arena.utils.embeds import NOTIFIED_EVENT_TYPES, build_event_embed
from arena.utils.logger import setup_logger


class DiscordWebhookNotifier:
    """Posts announcement embeds for domain events to a webhook"""

    def __init__(self, webhook_url: str, username: str = "Battle Arena"):
        if not webhook_url:
            raise ValueError("webhook_url is required")
        self.webhook_url = webhook_url
        self.username = username
        self.logger = setup_logger(f"{__name__}.DiscordWebhookNotifier")
        self._session: Optional[aiohttp.ClientSession] = None
        self._webhook: Optional[discord.Webhook] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.sent = 0

    def attach(self, event_bus: EventBus):
        """Subscribe to the announced event types"""
        self._unsubscribe = event_bus.subscribe(self.handle_event, NOTIFIED_EVENT_TYPES)

    async def _get_webhook(self) -> discord.Webhook:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._webhook = discord.Webhook.from_url(self.webhook_url, session=self._session)
        return self._webhook

    async def handle_event(self, event: DomainEvent):
        embed = build_event_embed(event)
        if embed is None:
            return
        webhook = await self._get_webhook()
        try:
            await webhook.send(embed=embed, username=self.username)
            self.sent += 1
        except discord.HTTPException as e:
            self.logger.error(
                f"Webhook post failed for {event.event_type.value}. Status: {e.status}, Response: {e.text}",
                exc_info=True
            )

    async def close(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
        self._webhook = None
