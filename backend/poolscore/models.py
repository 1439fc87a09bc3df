from sqlalchemy import (
    Column,
    String,
    DateTime,
    JSON,
    Integer,
    Index,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from .db import Base


class MatchRecord(Base):
    __tablename__ = "match_record"
    id = Column(String, primary_key=True)
    played_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    game_type = Column(String, nullable=False, default="straight-pool")
    target_score = Column(Integer, nullable=False)
    duration = Column(Integer, nullable=False, default=0)  # seconds
    player1_name = Column(String, nullable=False)
    player1_handicap = Column(Integer, nullable=False, default=0)
    player1_score = Column(Integer, nullable=False)
    player2_name = Column(String, nullable=False)
    player2_handicap = Column(Integer, nullable=False, default=0)
    player2_score = Column(Integer, nullable=False)
    winner = Column(Integer, nullable=False)  # 1 | 2
    winner_name = Column(String, nullable=False)
    player1_stats = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    player2_stats = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    innings = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)

    __table_args__ = (Index("ix_match_record_played_at", "played_at"),)
