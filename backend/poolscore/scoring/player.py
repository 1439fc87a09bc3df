"""Per-player scoring record for a straight pool match."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# A run started on the break that reaches a full rack counts as a break-and-run.
BREAK_AND_RUN_POINTS = 14


class PlayerRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = ""
    handicap: int = 0

    score: int = 0
    current_run: int = Field(default=0, ge=0)
    best_run: int = Field(default=0, ge=0)

    total_points: int = 0
    total_innings: int = 0
    safes: int = 0
    misses: int = 0
    scratches: int = 0
    fouls: int = 0
    intentional_fouls: int = 0
    breaking_fouls: int = 0
    break_and_runs: int = 0
    defensive_shots: int = 0

    run_history: List[int] = Field(default_factory=list)
    run_from_break: bool = False

    def label(self, player_num: int) -> str:
        return self.name or f"Player {player_num}"

    def reset_stats(self) -> None:
        """Zero every counter, keeping the player's identity."""
        fresh = PlayerRecord(name=self.name, handicap=self.handicap)
        for field_name in type(self).model_fields:
            setattr(self, field_name, getattr(fresh, field_name))

    def add_run(self, points: int, *, on_break: bool) -> None:
        """Extend the current run by ``points`` scored on a made shot."""
        if self.current_run == 0:
            self.run_from_break = on_break
        before = self.current_run
        self.current_run += points
        self.best_run = max(self.best_run, self.current_run)
        self.total_points += points
        if (
            self.run_from_break
            and before < BREAK_AND_RUN_POINTS <= self.current_run
        ):
            self.break_and_runs += 1

    def end_run(self) -> None:
        if self.current_run > 0:
            self.run_history.append(self.current_run)
        self.current_run = 0
        self.run_from_break = False
