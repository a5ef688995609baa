"""
Operations Layer

This package provides the battle engine's business logic. Operations compose
stores, collaborators and the event bus into complete workflows, handling
validation, locking and lifecycle rules while staying free of any chat or
HTTP surface.

Architecture:
- Database layer: Stores persisting battles, tournaments and the ladder
- Operations layer: Business logic composition and workflows
- Service layer: BattleService facade and background tasks

Each operations module focuses on a specific domain:
- RatingLadder: ELO ratings, tiers, streaks and rating history
- PowerUpCatalog: Power-up definitions, cooldowns and activation
- RosterInitializer: Roster validation, default rosters and substitutions
- ScoringEngine: Live round scoring, leaderboards and in-round events
- BattleOperations: The battle state machine
- Matchmaker: Rating-aware pairing of queued players
- TournamentScheduler: Brackets, schedules and tournament results
- PrizeDistributor: Prize tables and reward delivery
"""
