from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Float, JSON, Index
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class BattleRecord(Base):
    """Stored battle document; scalar columns mirror the payload for filtering"""
    __tablename__ = 'battles'

    id = Column(String(64), primary_key=True)
    battle_type = Column(String(20), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)
    creator_id = Column(String(64), nullable=False)
    tournament_id = Column(String(64), nullable=True, index=True)
    payload = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=func.now())
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<BattleRecord(id='{self.id}', type='{self.battle_type}', status='{self.status}')>"


class TournamentRecord(Base):
    __tablename__ = 'tournaments'

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    tournament_format = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, index=True)
    size = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<TournamentRecord(id='{self.id}', name='{self.name}', status='{self.status}')>"


class LadderRankRecord(Base):
    """One row per user; ``id`` is the user id"""
    __tablename__ = 'ladder_ranks'

    id = Column(String(64), primary_key=True)
    rating = Column(Integer, nullable=False)
    tier = Column(String(20), nullable=False)
    wins = Column(Integer, default=0)
    losses = Column(Integer, default=0)
    payload = Column(JSON, nullable=False)

    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_ladder_rating', 'rating'),
    )

    def __repr__(self):
        return f"<LadderRankRecord(user='{self.id}', rating={self.rating}, tier='{self.tier}')>"


class RatingHistoryRecord(Base):
    """Audit trail of ladder updates"""
    __tablename__ = 'rating_history'

    id = Column(String(64), primary_key=True)
    winner_id = Column(String(64), nullable=False)
    loser_id = Column(String(64), nullable=False)
    battle_id = Column(String(64), nullable=True)
    delta = Column(Integer, nullable=False)
    k_factor = Column(Float, nullable=False)
    payload = Column(JSON, nullable=False)

    recorded_at = Column(DateTime, default=func.now())

    __table_args__ = (
        Index('idx_rating_history_winner', 'winner_id'),
        Index('idx_rating_history_loser', 'loser_id'),
    )

    def __repr__(self):
        return f"<RatingHistoryRecord(winner='{self.winner_id}', loser='{self.loser_id}', delta={self.delta})>"


class RewardGrantRecord(Base):
    __tablename__ = 'reward_grants'

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    source_id = Column(String(64), nullable=False, index=True)
    rank = Column(Integer, nullable=False)
    delivered = Column(Boolean, default=False, index=True)
    payload = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<RewardGrantRecord(user='{self.user_id}', source='{self.source_id}', delivered={self.delivered})>"
