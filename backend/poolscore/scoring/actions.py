"""Action catalogue for straight pool.

Every ledger entry carries one of these actions. The enum values are the
labels shown in the match history and submitted with finished matches.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict


class Action(str, Enum):
    POINTS = "Points"
    FOUL = "Foul"
    SAFETY = "Safety"
    MISS = "Miss"
    SCRATCH = "Scratch"
    INTENTIONAL_FOUL = "Intentional Foul"
    BREAKING_FOUL = "Breaking Foul"
    BREAKING_FOUL_REBREAK = "Breaking Foul - Rebreak"
    FINISH_RACK = "Finish Rack"
    THREE_FOUL_PENALTY = "Three Foul Penalty"
    HANDICAP_APPLIED = "Handicap Applied"

    @classmethod
    def parse(cls, label: str) -> "Action":
        """Return the action for ``label``, accepting legacy spellings."""
        if isinstance(label, cls):
            return label
        if not isinstance(label, str):
            raise ValueError(f"invalid action: {label!r}")
        key = label.strip().lower()
        action = _LOOKUP.get(key)
        if action is None:
            raise ValueError(f"unknown action: {label!r}")
        return action


SCORING_ACTIONS = frozenset({Action.POINTS, Action.FINISH_RACK})

# Any of these ends the shooter's run.
TERMINAL_ACTIONS = frozenset(
    {
        Action.MISS,
        Action.SAFETY,
        Action.FOUL,
        Action.INTENTIONAL_FOUL,
        Action.BREAKING_FOUL,
        Action.BREAKING_FOUL_REBREAK,
        Action.SCRATCH,
    }
)

FOUL_CLASS_ACTIONS = frozenset(
    {
        Action.FOUL,
        Action.SCRATCH,
        Action.INTENTIONAL_FOUL,
        Action.BREAKING_FOUL,
        Action.BREAKING_FOUL_REBREAK,
    }
)

BREAKING_FOUL_ACTIONS = frozenset(
    {Action.BREAKING_FOUL, Action.BREAKING_FOUL_REBREAK}
)

# Bookkeeping entries that are not shots at the table.
NON_SHOT_ACTIONS = frozenset({Action.HANDICAP_APPLIED, Action.THREE_FOUL_PENALTY})

_FOUL_LABELS = frozenset(
    {
        Action.FOUL,
        Action.INTENTIONAL_FOUL,
        Action.BREAKING_FOUL,
        Action.BREAKING_FOUL_REBREAK,
        Action.THREE_FOUL_PENALTY,
    }
)

_LOOKUP: Dict[str, Action] = {a.value.lower(): a for a in Action}
_LOOKUP.update(
    {
        "safe": Action.SAFETY,
        "break scratch": Action.BREAKING_FOUL,
        "breaking foul-rebreak": Action.BREAKING_FOUL_REBREAK,
        "finishrack": Action.FINISH_RACK,
    }
)


def flags(action: Action) -> Dict[str, bool]:
    """Boolean flags attached to a processed ledger entry."""
    return {
        "isScratch": action is Action.SCRATCH,
        "isSafetyPlay": action is Action.SAFETY,
        "isDefensiveShot": False,
        "isFoul": action in _FOUL_LABELS,
        "isBreakingFoul": action in BREAKING_FOUL_ACTIONS,
        "isIntentionalFoul": action is Action.INTENTIONAL_FOUL,
        "isMiss": action is Action.MISS,
    }
