from __future__ import annotations

from typing import Any, Dict, Iterable, List

from ..schemas import GAME_TYPE, MatchRecordIn
from ..scoring.actions import BREAKING_FOUL_ACTIONS, SCORING_ACTIONS, flags
from ..scoring.ledger import Turn
from ..scoring.straight_pool import ScoringEngine
from ..time_utils import utcnow
from .stats import compute_player_stats


def process_turn(turn: Turn) -> Dict[str, Any]:
    """Convert one ledger entry into the shape stored with a finished match."""
    balls = turn.points if turn.action in SCORING_ACTIONS and turn.points > 0 else 0
    return {
        "playerNumber": turn.player_number,
        "playerName": turn.player_name,
        "ballsPocketed": balls,
        "action": turn.action.value,
        "timestamp": turn.timestamp,
        "score": turn.score_after,
        "inning": turn.inning,
        "points": turn.points,
        "isBreak": turn.is_break_shot or turn.action in BREAKING_FOUL_ACTIONS,
        **flags(turn.action),
    }


def process_innings(ledger: Iterable[Turn]) -> List[Dict[str, Any]]:
    return [process_turn(turn) for turn in ledger]


def build_match_record(engine: ScoringEngine) -> MatchRecordIn:
    """Assemble the record submitted once a match has a winner.

    Raises:
        ValueError: if the match has not finished.
    """
    winner = engine.state.winner
    if winner is None:
        raise ValueError("match has no winner yet")

    turns = list(engine.ledger)
    p1, p2 = engine.player1, engine.player2
    return MatchRecordIn(
        matchDate=engine.state.started_at or utcnow(),
        gameType=GAME_TYPE,
        targetScore=engine.state.target_goal,
        duration=engine.state.elapsed_seconds,
        player1={"name": p1.label(1), "handicap": p1.handicap},
        player2={"name": p2.label(2), "handicap": p2.handicap},
        player1Stats=compute_player_stats(turns, 1),
        player2Stats=compute_player_stats(turns, 2),
        player1Score=p1.score,
        player2Score=p2.score,
        winner=winner,
        winnerName=engine.player(winner).label(winner),
        innings=process_innings(turns),
    )
