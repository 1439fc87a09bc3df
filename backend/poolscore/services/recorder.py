import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from .. import db
from ..models import MatchRecord
from ..schemas import MatchRecordIn, MatchRecordOut, MatchSummaryOut
from ..time_utils import coerce_utc

logger = logging.getLogger(__name__)


async def store_match_record(session: AsyncSession, record: MatchRecordIn) -> str:
    """Persist a finished match and return its id."""
    mid = uuid.uuid4().hex
    payload = record.model_dump(mode="json")
    row = MatchRecord(
        id=mid,
        played_at=record.matchDate,
        game_type=record.gameType,
        target_score=record.targetScore,
        duration=record.duration,
        player1_name=record.player1.name,
        player1_handicap=record.player1.handicap,
        player1_score=record.player1Score,
        player2_name=record.player2.name,
        player2_handicap=record.player2.handicap,
        player2_score=record.player2Score,
        winner=record.winner,
        winner_name=record.winnerName,
        player1_stats=payload["player1Stats"],
        player2_stats=payload["player2Stats"],
        innings=payload["innings"],
    )
    session.add(row)
    await session.commit()
    logger.info(
        "Recorded match %s: %s %d - %d %s",
        mid,
        record.player1.name,
        record.player1Score,
        record.player2Score,
        record.player2.name,
    )
    return mid


def _players(row: MatchRecord) -> dict:
    return {
        "player1": {"name": row.player1_name, "handicap": row.player1_handicap},
        "player2": {"name": row.player2_name, "handicap": row.player2_handicap},
    }


def to_summary(row: MatchRecord) -> MatchSummaryOut:
    return MatchSummaryOut(
        id=row.id,
        matchDate=coerce_utc(row.played_at),
        gameType=row.game_type,
        targetScore=row.target_score,
        player1Score=row.player1_score,
        player2Score=row.player2_score,
        winner=row.winner,
        winnerName=row.winner_name,
        duration=row.duration,
        **_players(row),
    )


def to_record_out(row: MatchRecord) -> MatchRecordOut:
    return MatchRecordOut(
        id=row.id,
        createdAt=coerce_utc(row.created_at),
        matchDate=coerce_utc(row.played_at),
        gameType=row.game_type,
        targetScore=row.target_score,
        duration=row.duration,
        player1Stats=row.player1_stats,
        player2Stats=row.player2_stats,
        player1Score=row.player1_score,
        player2Score=row.player2_score,
        winner=row.winner,
        winnerName=row.winner_name,
        innings=row.innings,
        **_players(row),
    )


class DatabaseMatchRecorder:
    """Submit finished matches from live tables to the database."""

    async def __call__(self, record: MatchRecordIn) -> str:
        async with db.session_factory()() as session:
            return await store_match_record(session, record)
