from typing import Any, Dict, List, Literal, Optional
from datetime import datetime
from pydantic import BaseModel, Field, model_validator, field_validator

from .scoring.ledger import Turn
from .scoring.player import PlayerRecord
from .scoring.straight_pool import MatchState
from .time_utils import coerce_utc

PLAYER_NAME_MAX_LENGTH = 50
GAME_TYPE = "straight-pool"


# ---------------------------------------------------------------------------
# Live tables
# ---------------------------------------------------------------------------

class PlayerSeedIn(BaseModel):
    name: str = Field(default="", max_length=PLAYER_NAME_MAX_LENGTH)
    handicap: int = Field(default=0, ge=0, le=1000)


class PlayerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=PLAYER_NAME_MAX_LENGTH)
    handicap: Optional[int] = Field(default=None, ge=0, le=1000)


class StartGameIn(BaseModel):
    player1: Optional[PlayerSeedIn] = None
    player2: Optional[PlayerSeedIn] = None
    targetGoal: Optional[int] = Field(default=None, ge=1, le=1000)


PLAYER_ACTIONS = {
    "points",
    "foul",
    "scratch",
    "intentional_foul",
    "safety",
    "miss",
    "finish_rack",
    "breaking_foul",
}

ActionType = Literal[
    "points",
    "foul",
    "scratch",
    "intentional_foul",
    "safety",
    "miss",
    "finish_rack",
    "breaking_foul",
    "breaking_foul_continue",
    "breaking_foul_rebreak",
    "breaking_foul_cancel",
    "switch_turn",
    "new_rack",
]


class ActionIn(BaseModel):
    type: ActionType
    player: Optional[Literal[1, 2]] = None
    amount: Optional[int] = Field(default=None, ge=-15, le=15)

    @model_validator(mode="after")
    def _validate_action(self) -> "ActionIn":
        if self.type in PLAYER_ACTIONS and self.player is None:
            raise ValueError(f"player is required for {self.type} actions")
        if self.type == "points" and self.amount is None:
            raise ValueError("amount is required for points actions")
        return self

    def to_event(self) -> Dict[str, Any]:
        event: Dict[str, Any] = {"type": self.type.upper()}
        if self.player is not None:
            event["by"] = self.player
        if self.amount is not None:
            event["amount"] = self.amount
        return event


class PlayerStateOut(PlayerRecord):
    consecutive_fouls: int = 0
    foul_warning: bool = False


class TableStateOut(MatchState):
    table_id: str
    can_undo: bool = False
    player1: PlayerStateOut
    player2: PlayerStateOut
    turn_history: List[Turn] = Field(default_factory=list)


class ActionResultOut(BaseModel):
    applied: bool
    state: TableStateOut


# ---------------------------------------------------------------------------
# Finished matches
# ---------------------------------------------------------------------------

class PlayerIdentity(BaseModel):
    name: str = Field(min_length=1, max_length=PLAYER_NAME_MAX_LENGTH)
    handicap: int = 0


class PlayerStatsOut(BaseModel):
    score: int = 0
    totalPoints: int = Field(default=0, ge=0)
    totalInnings: int = Field(default=0, ge=0)
    avgPointsPerInning: float = 0.0
    bestRun: int = Field(default=0, ge=0)
    currentRun: int = Field(default=0, ge=0)
    runHistory: List[int] = Field(default_factory=list)
    breakAndRuns: int = Field(default=0, ge=0)
    safes: int = Field(default=0, ge=0)
    safetyPlays: int = Field(default=0, ge=0)
    defensiveShots: int = Field(default=0, ge=0)
    misses: int = Field(default=0, ge=0)
    scratches: int = Field(default=0, ge=0)
    fouls: int = Field(default=0, ge=0)
    intentionalFouls: int = Field(default=0, ge=0)
    breakingFouls: int = Field(default=0, ge=0)
    threeFoulPenalties: int = Field(default=0, ge=0)
    finishRacks: int = Field(default=0, ge=0)


class InningOut(BaseModel):
    """One processed ledger entry as stored with a finished match."""

    playerNumber: Literal[1, 2]
    playerName: str
    ballsPocketed: int = Field(default=0, ge=0)
    action: str
    timestamp: datetime
    score: int
    inning: int = Field(ge=1)
    points: int
    isBreak: bool = False
    isScratch: bool = False
    isSafetyPlay: bool = False
    isDefensiveShot: bool = False
    isFoul: bool = False
    isBreakingFoul: bool = False
    isIntentionalFoul: bool = False
    isMiss: bool = False

    @field_validator("timestamp")
    def _normalize_timestamp(cls, v: datetime) -> datetime:
        return coerce_utc(v)


class MatchRecordIn(BaseModel):
    """Finished match submitted when a player reaches the target score."""

    matchDate: datetime
    gameType: str = GAME_TYPE
    targetScore: int = Field(ge=1)
    duration: int = Field(default=0, ge=0)
    player1: PlayerIdentity
    player2: PlayerIdentity
    player1Stats: PlayerStatsOut
    player2Stats: PlayerStatsOut
    player1Score: int
    player2Score: int
    winner: Literal[1, 2]
    winnerName: str
    innings: List[InningOut] = Field(default_factory=list)

    @field_validator("matchDate")
    def _normalize_match_date(cls, v: datetime) -> datetime:
        return coerce_utc(v)

    @model_validator(mode="after")
    def _validate_winner(self) -> "MatchRecordIn":
        winning_score = self.player1Score if self.winner == 1 else self.player2Score
        if winning_score < self.targetScore:
            raise ValueError("winner must have reached the target score")
        expected = self.player1.name if self.winner == 1 else self.player2.name
        if self.winnerName != expected:
            raise ValueError("winnerName must match the winning player")
        return self


class MatchIdOut(BaseModel):
    """Schema returned after recording a match."""

    id: str


class MatchRecordOut(MatchRecordIn):
    id: str
    createdAt: Optional[datetime] = None


class MatchSummaryOut(BaseModel):
    """Lightweight representation of a match used in listings."""

    id: str
    matchDate: datetime
    gameType: str
    targetScore: int
    player1: PlayerIdentity
    player2: PlayerIdentity
    player1Score: int
    player2Score: int
    winner: Literal[1, 2]
    winnerName: str
    duration: int = 0


class MatchSummaryPageOut(BaseModel):
    """Paginated collection of matches with navigation metadata."""

    items: List[MatchSummaryOut] = Field(default_factory=list)
    limit: int
    offset: int
    hasMore: bool = False
    nextOffset: Optional[int] = None


class TableStatsOut(BaseModel):
    player1: Dict[str, Any]
    player2: Dict[str, Any]
