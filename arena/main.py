import asyncio
from typing import Optional

from arena.config import Config
from arena.database.database import Database
from arena.database.store import (
    battle_store, ladder_store, rating_history_store, reward_grant_store, tournament_store
)
from arena.services.battle_service import BattleService
from arena.services.collaborators import (
    CsvPlayerPool, HttpScoringFeed, LoggingRewardsSink, LoggingSocialSink
)
from arena.services.discord_notifier import DiscordWebhookNotifier
from arena.utils.logger import setup_logger


class ArenaApp:
    """Runs the battle engine against the configured database and feeds"""

    def __init__(self):
        self.db: Optional[Database] = None
        self.scoring_feed: Optional[HttpScoringFeed] = None
        self.notifier: Optional[DiscordWebhookNotifier] = None
        self.service: Optional[BattleService] = None
        self.logger = setup_logger(__name__)

    async def setup(self):
        """Called once before the background tasks start"""
        self.logger.info("Setting up Battle Arena...")

        # Initialize database
        self.db = Database()
        await self.db.initialize()
        session_factory = self.db.async_session

        self.scoring_feed = HttpScoringFeed(Config.SCORING_FEED_URL)
        self.service = BattleService(
            scoring_feed=self.scoring_feed,
            player_pool=CsvPlayerPool(Config.PLAYER_POOL_CSV),
            social_sink=LoggingSocialSink(),
            rewards_sink=LoggingRewardsSink(),
            battles=battle_store(session_factory),
            tournaments=tournament_store(session_factory),
            ladder_ranks=ladder_store(session_factory),
            rating_history=rating_history_store(session_factory),
            reward_grants=reward_grant_store(session_factory),
        )

        if Config.DISCORD_WEBHOOK_URL:
            self.notifier = DiscordWebhookNotifier(Config.DISCORD_WEBHOOK_URL)
            self.notifier.attach(self.service.event_bus)
            self.logger.info("Discord webhook notifications enabled")
        else:
            self.logger.warning("DISCORD_WEBHOOK_URL not set, notifications disabled")

        self.logger.info("Battle Arena setup complete!")

    async def run(self):
        try:
            await self.setup()
            self.service.start_background_tasks()
            self.logger.info("Battle Arena running")
            await asyncio.Event().wait()
        finally:
            await self.close()

    async def close(self):
        """Cleanup when the arena is shutting down"""
        self.logger.info("Shutting down Battle Arena...")

        if self.service:
            await self.service.stop_background_tasks()
        if self.notifier:
            await self.notifier.close()
        if self.scoring_feed:
            await self.scoring_feed.close()
        if self.db:
            await self.db.close()


async def main():
    """Main entry point"""
    Config.validate()

    app = ArenaApp()
    await app.run()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
