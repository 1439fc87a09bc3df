"""Append-only turn ledger shared by both players."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..time_utils import coerce_utc, utcnow
from .actions import Action


class Turn(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    inning: int = Field(ge=1)
    player_number: int = Field(ge=1, le=2)
    player_name: str
    action: Action
    points: int = 0
    timestamp: datetime
    score_after: int
    is_break_shot: bool = False

    @field_validator("action", mode="before")
    def _parse_action(cls, v):
        return Action.parse(v)

    @field_validator("timestamp")
    def _normalize_timestamp(cls, v: datetime) -> datetime:
        return coerce_utc(v)


class TurnLedger:
    """Ordered log of every turn taken at the table.

    Entries are only ever appended; undo truncates back to a length recorded
    before the undone action. Timestamps never go backwards: an entry stamped
    earlier than its predecessor inherits the predecessor's time.
    """

    def __init__(self, turns: Optional[Iterable[Turn]] = None) -> None:
        self._turns: List[Turn] = list(turns or [])

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    def __getitem__(self, index):
        return self._turns[index]

    def append(
        self,
        *,
        inning: int,
        player_number: int,
        player_name: str,
        action: Action,
        points: int,
        score_after: int,
        is_break_shot: bool = False,
        timestamp: Optional[datetime] = None,
    ) -> Turn:
        stamp = coerce_utc(timestamp) or utcnow()
        if self._turns and stamp < self._turns[-1].timestamp:
            stamp = self._turns[-1].timestamp
        turn = Turn(
            inning=inning,
            player_number=player_number,
            player_name=player_name,
            action=action,
            points=points,
            timestamp=stamp,
            score_after=score_after,
            is_break_shot=is_break_shot,
        )
        self._turns.append(turn)
        return turn

    def truncate(self, length: int) -> None:
        del self._turns[max(length, 0):]

    def clear(self) -> None:
        self._turns.clear()

    def last(self) -> Optional[Turn]:
        return self._turns[-1] if self._turns else None
