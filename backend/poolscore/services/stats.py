"""Match statistics derived purely from the turn ledger.

Nothing here reads player records: every number is reconstructed from the
ordered ledger entries so the figures shown after a match, and the ones
submitted with it, always agree with the recorded history.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Iterable, List, Sequence

from ..scoring.actions import (
    BREAKING_FOUL_ACTIONS,
    NON_SHOT_ACTIONS,
    SCORING_ACTIONS,
    TERMINAL_ACTIONS,
    Action,
)
from ..scoring.ledger import Turn
from ..scoring.player import BREAK_AND_RUN_POINTS


def _scores(turn: Turn) -> bool:
    return turn.action in SCORING_ACTIONS and turn.points > 0


def _ends_run(turn: Turn) -> bool:
    # A non-positive manual adjustment ends the turn just like a miss.
    return turn.action in TERMINAL_ACTIONS or (
        turn.action is Action.POINTS and turn.points <= 0
    )


def _runs(ledger: Iterable[Turn], player: int) -> tuple[list[dict], int, bool]:
    """Walk the ledger and split ``player``'s scoring into runs.

    Returns the finished runs, the run still in progress at the end of the
    ledger, and whether that open run started on a break shot. A run ends on
    a terminal action by the player or on any shot by the opponent.
    """
    runs: list[dict] = []
    current = 0
    from_break = False
    for turn in ledger:
        if turn.action in NON_SHOT_ACTIONS:
            continue
        if turn.player_number != player:
            if current > 0:
                runs.append({"points": current, "fromBreak": from_break})
            current, from_break = 0, False
            continue
        if _scores(turn):
            if current == 0:
                from_break = turn.is_break_shot
            current += turn.points
        elif _ends_run(turn):
            if current > 0:
                runs.append({"points": current, "fromBreak": from_break})
            current, from_break = 0, False
    return runs, current, from_break


def run_history(ledger: Iterable[Turn], player: int) -> list[int]:
    """Return every run for ``player``, including one still in progress."""
    runs, current, _ = _runs(ledger, player)
    history = [r["points"] for r in runs]
    if current > 0:
        history.append(current)
    return history


def best_run(ledger: Iterable[Turn], player: int) -> int:
    return max(run_history(ledger, player), default=0)


def count_actions(ledger: Iterable[Turn], player: int) -> Dict[Action, int]:
    return Counter(t.action for t in ledger if t.player_number == player)


def total_innings(ledger: Iterable[Turn], player: int) -> int:
    """Number of distinct innings in which ``player`` took a non-break shot."""
    innings = {
        t.inning
        for t in ledger
        if t.player_number == player
        and t.action not in NON_SHOT_ACTIONS
        and t.action not in BREAKING_FOUL_ACTIONS
    }
    return len(innings)


def final_score(ledger: Sequence[Turn], player: int) -> int:
    for turn in reversed(ledger):
        if turn.player_number == player:
            return turn.score_after
    return 0


def group_turns(ledger: Sequence[Turn], player: int) -> List[List[Turn]]:
    """Group ``player``'s scoring shots into visits to the table.

    A new group starts whenever the entry immediately before a scoring shot
    is not itself a scoring shot by the same player.
    """
    groups: List[List[Turn]] = []
    previous: Turn | None = None
    for turn in ledger:
        if turn.player_number == player and _scores(turn):
            continues = (
                previous is not None
                and previous.player_number == player
                and _scores(previous)
            )
            if continues and groups:
                groups[-1].append(turn)
            else:
                groups.append([turn])
        previous = turn
    return groups


def compute_player_stats(ledger: Sequence[Turn], player: int) -> Dict[str, Any]:
    """Aggregate one player's statistics for a match.

    Args:
        ledger: Ordered turn ledger for the whole match.
        player: Player number (1 or 2).
    Returns:
        dict with the counters submitted alongside a finished match.
    """
    counts = count_actions(ledger, player)
    runs, current, current_from_break = _runs(ledger, player)
    history = [r["points"] for r in runs]
    if current > 0:
        history.append(current)
    break_and_runs = sum(
        1 for r in runs if r["fromBreak"] and r["points"] >= BREAK_AND_RUN_POINTS
    )
    if current_from_break and current >= BREAK_AND_RUN_POINTS:
        break_and_runs += 1

    innings = total_innings(ledger, player)
    score = final_score(ledger, player)
    breaking_fouls = sum(counts[a] for a in BREAKING_FOUL_ACTIONS)
    safeties = counts[Action.SAFETY]

    return {
        "score": score,
        "totalPoints": sum(
            t.points for t in ledger if t.player_number == player and _scores(t)
        ),
        "totalInnings": innings,
        "avgPointsPerInning": score / innings if innings else 0.0,
        "bestRun": max(history, default=0),
        "currentRun": current,
        "runHistory": history,
        "breakAndRuns": break_and_runs,
        "safes": safeties,
        "safetyPlays": safeties,
        "defensiveShots": safeties,
        "misses": counts[Action.MISS],
        "scratches": counts[Action.SCRATCH],
        "fouls": counts[Action.FOUL] + counts[Action.INTENTIONAL_FOUL] + breaking_fouls,
        "intentionalFouls": counts[Action.INTENTIONAL_FOUL],
        "breakingFouls": breaking_fouls,
        "threeFoulPenalties": counts[Action.THREE_FOUL_PENALTY],
        "finishRacks": counts[Action.FINISH_RACK],
    }


def detailed_stats(ledger: Sequence[Turn], player: int) -> Dict[str, Any]:
    """Per-inning breakdown used by the match history view."""
    own = [t for t in ledger if t.player_number == player]
    safe_details = [{"inning": t.inning} for t in own if t.action is Action.SAFETY]
    miss_details = [{"inning": t.inning} for t in own if t.action is Action.MISS]
    scratch_details = [{"inning": t.inning} for t in own if t.action is Action.SCRATCH]
    foul_details = [
        {"inning": t.inning, "type": t.action.value, "points": t.points}
        for t in own
        if t.action in (Action.FOUL, Action.INTENTIONAL_FOUL)
        or t.action in BREAKING_FOUL_ACTIONS
    ]
    penalty_details = [
        {"inning": t.inning, "points": t.points}
        for t in own
        if t.action is Action.THREE_FOUL_PENALTY
    ]
    run_details = [
        {"inning": t.inning, "points": t.points}
        for t in own
        if t.action is Action.POINTS and t.points > 0
    ]
    finish_rack_details = [
        {"inning": t.inning, "points": t.points}
        for t in own
        if t.action is Action.FINISH_RACK
    ]
    turns = [
        {
            "inning": group[0].inning,
            "points": sum(t.points for t in group),
            "shots": len(group),
        }
        for group in group_turns(ledger, player)
    ]

    return {
        "totalScore": final_score(ledger, player),
        "bestRun": best_run(ledger, player),
        "totalSafes": len(safe_details),
        "totalMisses": len(miss_details),
        "totalScratches": len(scratch_details),
        "totalFouls": len(foul_details),
        "totalFinishRacks": len(finish_rack_details),
        "safeDetails": safe_details,
        "missDetails": miss_details,
        "scratchDetails": scratch_details,
        "foulDetails": foul_details,
        "penaltyDetails": penalty_details,
        "runDetails": run_details,
        "finishRackDetails": finish_rack_details,
        "turns": turns,
    }
