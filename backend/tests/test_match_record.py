from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from poolscore.schemas import MatchRecordIn
from poolscore.scoring.straight_pool import ScoringEngine
from poolscore.services.match_record import build_match_record, process_innings

STARTED = datetime(2024, 5, 1, 20, 0, tzinfo=timezone.utc)


def _finished_engine():
    engine = ScoringEngine(target_goal=20, clock=lambda: STARTED)
    engine.start_game({"name": "Alice", "handicap": 2}, {"name": "Bob"})
    engine.finish_rack(1)
    engine.handle_miss(1)
    engine.handle_foul(2)
    engine.tick(95)
    engine.adjust_score(1, 6)
    return engine


def test_build_match_record_from_finished_match():
    engine = _finished_engine()

    record = build_match_record(engine)

    assert record.winner == 1
    assert record.winnerName == "Alice"
    assert record.player1Score == 20
    assert record.player2Score == 1
    assert record.targetScore == 20
    assert record.duration == 95
    assert record.gameType == "straight-pool"
    assert record.matchDate == STARTED
    assert record.player1.handicap == 2
    assert record.player1Stats.bestRun == 14
    assert record.player2Stats.fouls == 1
    assert len(record.innings) == len(engine.ledger)


def test_build_match_record_requires_winner():
    engine = ScoringEngine()
    engine.start_game()
    with pytest.raises(ValueError):
        build_match_record(engine)


def test_process_innings_marks_break_and_flags():
    engine = _finished_engine()

    innings = process_innings(engine.ledger)

    handicap = innings[0]
    assert handicap["action"] == "Handicap Applied"
    assert handicap["playerNumber"] == 2
    assert handicap["ballsPocketed"] == 0

    rack = innings[1]
    assert rack["action"] == "Finish Rack"
    assert rack["isBreak"] is True
    assert rack["ballsPocketed"] == 14
    assert rack["score"] == 14

    foul = next(i for i in innings if i["action"] == "Foul")
    assert foul["isFoul"] is True
    assert foul["isBreak"] is False
    assert foul["points"] == -1


def test_record_rejects_winner_below_target():
    record = build_match_record(_finished_engine()).model_dump()
    record["player1Score"] = 19
    with pytest.raises(ValidationError):
        MatchRecordIn.model_validate(record)
