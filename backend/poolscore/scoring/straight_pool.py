"""Straight pool (14.1 continuous) scoring engine.

Two players alternate at one table, racing to a target score. Made balls
score one point each and extend the shooter's run; fouls cost points, and
three consecutive fouls by the same player cost an extra 15. An inning is
complete once player 2 ends a turn.

Every mutating action pushes an undo snapshot first, so ``undo_last_action``
restores the exact prior state and truncates the turn ledger with it.
Actions from the wrong player, before the game starts or after it finishes
are ignored and return ``False``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from ..config import DEFAULT_TARGET_GOAL, INTENTIONAL_FOUL_PENALTY
from ..time_utils import utcnow
from .actions import Action
from .fouls import THREE_FOUL_PENALTY, FoulStreakTracker
from .ledger import Turn, TurnLedger
from .player import PlayerRecord

logger = logging.getLogger(__name__)

RACK_SIZE = 15
FOUL_PENALTY = 1
SCRATCH_PENALTY = 1
BREAKING_FOUL_PENALTY = 2


class MatchStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PlayerSeed(_CamelModel):
    name: str = ""
    handicap: int = 0


class MatchState(_CamelModel):
    status: MatchStatus = MatchStatus.NOT_STARTED
    active_player: int = Field(default=1, ge=1, le=2)
    current_inning: int = Field(default=1, ge=1)
    object_balls_on_table: int = Field(default=RACK_SIZE, ge=1, le=RACK_SIZE)
    break_player: Optional[int] = Field(default=None, ge=1, le=2)
    is_break_shot: bool = True
    target_goal: int = Field(default=DEFAULT_TARGET_GOAL, ge=1)
    intentional_foul_penalty: int = Field(default=INTENTIONAL_FOUL_PENALTY, ge=1)
    is_timer_running: bool = False
    elapsed_seconds: int = Field(default=0, ge=0)
    winner: Optional[int] = Field(default=None, ge=1, le=2)
    pending_breaking_foul: Optional[int] = Field(default=None, ge=1, le=2)
    started_at: Optional[datetime] = None

    @computed_field
    @property
    def game_started(self) -> bool:
        return self.status is not MatchStatus.NOT_STARTED


class UndoSnapshot(_CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    player1: PlayerRecord
    player2: PlayerRecord
    active_player: int
    current_inning: int
    object_balls_on_table: int
    break_player: Optional[int] = None
    is_break_shot: bool
    pending_breaking_foul: Optional[int] = None
    foul_windows: Dict[int, List[bool]]
    ledger_length: int = Field(ge=0)


class PersistedMatch(MatchState):
    """Everything needed to resume a match after a restart."""

    player1: PlayerRecord = Field(default_factory=PlayerRecord)
    player2: PlayerRecord = Field(default_factory=PlayerRecord)
    turn_history: List[Turn] = Field(default_factory=list)
    player1_foul_history: List[bool] = Field(default_factory=list)
    player2_foul_history: List[bool] = Field(default_factory=list)
    score_history: List[UndoSnapshot] = Field(default_factory=list)


FinishHook = Callable[["ScoringEngine"], None]


def _other(player: int) -> int:
    return 2 if player == 1 else 1


class ScoringEngine:
    def __init__(
        self,
        *,
        target_goal: int = DEFAULT_TARGET_GOAL,
        intentional_foul_penalty: int = INTENTIONAL_FOUL_PENALTY,
        on_finish: Optional[FinishHook] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.state = MatchState(
            target_goal=target_goal,
            intentional_foul_penalty=intentional_foul_penalty,
        )
        self.players: Dict[int, PlayerRecord] = {1: PlayerRecord(), 2: PlayerRecord()}
        self.ledger = TurnLedger()
        self.fouls = FoulStreakTracker()
        self.history: List[UndoSnapshot] = []
        self.on_finish = on_finish
        self._clock = clock

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def player1(self) -> PlayerRecord:
        return self.players[1]

    @property
    def player2(self) -> PlayerRecord:
        return self.players[2]

    @property
    def status(self) -> MatchStatus:
        return self.state.status

    @property
    def in_progress(self) -> bool:
        return self.state.status is MatchStatus.IN_PROGRESS

    def player(self, player_num: int) -> PlayerRecord:
        return self.players[player_num]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def set_player(
        self,
        player_num: int,
        *,
        name: Optional[str] = None,
        handicap: Optional[int] = None,
    ) -> bool:
        """Edit a player's identity before the game starts."""
        if player_num not in (1, 2) or self.state.game_started:
            logger.debug("set_player ignored for player %s", player_num)
            return False
        player = self.players[player_num]
        if name is not None:
            player.name = name.strip()
        if handicap is not None:
            player.handicap = int(handicap)
        return True

    def start_game(
        self,
        player1: Union[PlayerSeed, Mapping[str, Any], None] = None,
        player2: Union[PlayerSeed, Mapping[str, Any], None] = None,
        target_goal: Optional[int] = None,
    ) -> bool:
        if self.state.game_started:
            logger.debug("start_game ignored: game already %s", self.state.status.value)
            return False

        for num, seed in ((1, player1), (2, player2)):
            if seed is None:
                continue
            seed = seed if isinstance(seed, PlayerSeed) else PlayerSeed.model_validate(seed)
            self.players[num].name = seed.name.strip()
            self.players[num].handicap = seed.handicap

        for num, player in self.players.items():
            player.reset_stats()
            player.name = player.label(num)

        goal = target_goal if target_goal is not None else self.state.target_goal
        self.state = MatchState(
            status=MatchStatus.IN_PROGRESS,
            target_goal=goal,
            intentional_foul_penalty=self.state.intentional_foul_penalty,
            is_timer_running=True,
            started_at=self._clock(),
        )
        self.ledger.clear()
        self.history.clear()
        self.fouls = FoulStreakTracker()

        # The trailing player starts level: seed them with the difference.
        difference = self.player1.handicap - self.player2.handicap
        if difference:
            trailing = 2 if difference > 0 else 1
            seeded = abs(difference)
            self.players[trailing].score = seeded
            self._record(trailing, Action.HANDICAP_APPLIED, seeded, is_break_shot=False)

        logger.info(
            "Game started: %s vs %s to %d (handicap difference %d)",
            self.player1.name,
            self.player2.name,
            goal,
            difference,
        )
        return True

    def end_game(self) -> bool:
        """Discard the current match, keeping player names and handicaps."""
        if not self.state.game_started:
            return False
        for player in self.players.values():
            player.reset_stats()
        self.state = MatchState(
            target_goal=self.state.target_goal,
            intentional_foul_penalty=self.state.intentional_foul_penalty,
        )
        self.ledger.clear()
        self.history.clear()
        self.fouls = FoulStreakTracker()
        logger.info("Game ended")
        return True

    def tick(self, seconds: int = 1) -> bool:
        if not self.in_progress or not self.state.is_timer_running:
            return False
        self.state.elapsed_seconds += seconds
        return True

    # ------------------------------------------------------------------
    # Scoring actions
    # ------------------------------------------------------------------

    def adjust_score(self, player_num: int, amount: int) -> bool:
        if not self._can_act(player_num, "adjust_score"):
            return False

        self._push_history()
        player = self.players[player_num]
        on_break = self.state.is_break_shot
        player.score += amount
        if amount > 0:
            self._made_balls(player_num, amount, on_break)
            remaining = self.state.object_balls_on_table - amount
            self.state.object_balls_on_table = RACK_SIZE if remaining <= 1 else remaining
        self.state.is_break_shot = False
        self._record(player_num, Action.POINTS, amount, is_break_shot=on_break)

        if self._check_win(player_num):
            return True
        if amount <= 0:
            self._end_turn(player_num)
        return True

    def finish_rack(self, player_num: int) -> bool:
        """Credit the balls left in the rack, keeping one as the break ball."""
        if not self._can_act(player_num, "finish_rack"):
            return False
        if self.state.object_balls_on_table <= 1:
            logger.debug("finish_rack ignored: no balls left to credit")
            return False

        self._push_history()
        player = self.players[player_num]
        on_break = self.state.is_break_shot
        points = self.state.object_balls_on_table - 1
        player.score += points
        self._made_balls(player_num, points, on_break)
        self.state.object_balls_on_table = RACK_SIZE
        self.state.is_break_shot = False
        self._record(player_num, Action.FINISH_RACK, points, is_break_shot=on_break)

        self._check_win(player_num)
        return True

    def handle_foul(self, player_num: int) -> bool:
        return self._foul(player_num, Action.FOUL, FOUL_PENALTY, ("fouls",))

    def handle_scratch(self, player_num: int) -> bool:
        return self._foul(player_num, Action.SCRATCH, SCRATCH_PENALTY, ("scratches",))

    def handle_intentional_foul(self, player_num: int) -> bool:
        return self._foul(
            player_num,
            Action.INTENTIONAL_FOUL,
            self.state.intentional_foul_penalty,
            ("fouls", "intentional_fouls"),
        )

    def handle_safe(self, player_num: int) -> bool:
        if not self._can_act(player_num, "handle_safe"):
            return False
        self._push_history()
        player = self.players[player_num]
        player.safes += 1
        player.defensive_shots += 1
        self._record(player_num, Action.SAFETY, 0, is_break_shot=self.state.is_break_shot)
        self.state.is_break_shot = False
        self._end_turn(player_num)
        return True

    def handle_miss(self, player_num: int) -> bool:
        if not self._can_act(player_num, "handle_miss"):
            return False
        self._push_history()
        self.players[player_num].misses += 1
        self._record(player_num, Action.MISS, 0, is_break_shot=self.state.is_break_shot)
        self.state.is_break_shot = False
        self._end_turn(player_num)
        return True

    # Breaking fouls wait for the opponent's choice before anything is applied.

    def handle_breaking_foul(self, player_num: int) -> bool:
        if not self._can_act(player_num, "handle_breaking_foul"):
            return False
        self.state.pending_breaking_foul = player_num
        return True

    def continue_playing(self) -> bool:
        """Opponent accepts the table: penalty, then a normal turn switch."""
        player_num = self._take_pending_breaking_foul()
        if player_num is None:
            return False
        self._apply_breaking_foul(player_num, Action.BREAKING_FOUL)
        self.state.is_break_shot = False
        self._end_turn(player_num)
        return True

    def rebreak(self) -> bool:
        """Opponent re-racks: penalty, and the fouling player breaks again."""
        player_num = self._take_pending_breaking_foul()
        if player_num is None:
            return False
        self._apply_breaking_foul(player_num, Action.BREAKING_FOUL_REBREAK)
        self.players[player_num].end_run()
        self.state.object_balls_on_table = RACK_SIZE
        self.state.is_break_shot = True
        self.state.active_player = player_num
        return True

    def cancel_breaking_foul(self) -> bool:
        if self.state.pending_breaking_foul is None:
            return False
        self.state.pending_breaking_foul = None
        return True

    # ------------------------------------------------------------------
    # Table controls
    # ------------------------------------------------------------------

    def switch_turn(self) -> bool:
        if not self._can_act(self.state.active_player, "switch_turn"):
            return False
        player_num = self.state.active_player
        self._push_history()
        # Logged as a scoreless turn end.
        self._record(player_num, Action.POINTS, 0, is_break_shot=False)
        self._end_turn(player_num, count_inning=False)
        return True

    def new_rack(self) -> bool:
        if not self._can_act(self.state.active_player, "new_rack"):
            return False
        self._push_history()
        self.state.object_balls_on_table = RACK_SIZE
        self.state.is_break_shot = True
        return True

    def undo_last_action(self) -> bool:
        if self.in_progress and self.state.pending_breaking_foul is not None:
            # Opening the choice pushes no snapshot; undo just withdraws it.
            self.state.pending_breaking_foul = None
            return True
        if not self.in_progress or not self.history:
            logger.debug("undo ignored: nothing to undo")
            return False

        snapshot = self.history.pop()
        for num, saved in ((1, snapshot.player1), (2, snapshot.player2)):
            restored = saved.model_copy(deep=True)
            restored.name = self.players[num].name
            restored.handicap = self.players[num].handicap
            self.players[num] = restored

        self.state.active_player = snapshot.active_player
        self.state.current_inning = snapshot.current_inning
        self.state.object_balls_on_table = snapshot.object_balls_on_table
        self.state.break_player = snapshot.break_player
        self.state.is_break_shot = snapshot.is_break_shot
        self.state.pending_breaking_foul = snapshot.pending_breaking_foul
        self.fouls = FoulStreakTracker(snapshot.foul_windows)
        self.ledger.truncate(snapshot.ledger_length)
        return True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_persisted(self) -> PersistedMatch:
        return PersistedMatch(
            **self.state.model_dump(),
            player1=self.player1.model_copy(deep=True),
            player2=self.player2.model_copy(deep=True),
            turn_history=list(self.ledger),
            player1_foul_history=self.fouls.window(1),
            player2_foul_history=self.fouls.window(2),
            score_history=list(self.history),
        )

    def to_snapshot(self) -> Dict[str, Any]:
        return self.to_persisted().model_dump(mode="json", by_alias=True)

    @classmethod
    def from_snapshot(
        cls,
        data: Union[PersistedMatch, Mapping[str, Any]],
        **kwargs: Any,
    ) -> "ScoringEngine":
        persisted = (
            data if isinstance(data, PersistedMatch) else PersistedMatch.model_validate(data)
        )
        engine = cls(**kwargs)
        engine.state = MatchState.model_validate(
            persisted.model_dump(include=set(MatchState.model_fields))
        )
        engine.players = {
            1: persisted.player1.model_copy(deep=True),
            2: persisted.player2.model_copy(deep=True),
        }
        engine.ledger = TurnLedger(persisted.turn_history)
        engine.fouls = FoulStreakTracker(
            {1: persisted.player1_foul_history, 2: persisted.player2_foul_history}
        )
        engine.history = list(persisted.score_history)
        return engine

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _can_act(self, player_num: int, action: str) -> bool:
        if not self.in_progress:
            logger.debug("%s ignored: game is %s", action, self.state.status.value)
            return False
        if self.state.pending_breaking_foul is not None:
            logger.debug("%s ignored: breaking foul choice pending", action)
            return False
        if player_num != self.state.active_player:
            logger.debug(
                "%s ignored: player %s is not active (active=%s)",
                action,
                player_num,
                self.state.active_player,
            )
            return False
        return True

    def _push_history(self) -> None:
        self.history.append(
            UndoSnapshot(
                player1=self.player1.model_copy(deep=True),
                player2=self.player2.model_copy(deep=True),
                active_player=self.state.active_player,
                current_inning=self.state.current_inning,
                object_balls_on_table=self.state.object_balls_on_table,
                break_player=self.state.break_player,
                is_break_shot=self.state.is_break_shot,
                pending_breaking_foul=self.state.pending_breaking_foul,
                foul_windows=self.fouls.to_dict(),
                ledger_length=len(self.ledger),
            )
        )

    def _record(
        self, player_num: int, action: Action, points: int, *, is_break_shot: bool
    ) -> Turn:
        player = self.players[player_num]
        return self.ledger.append(
            inning=self.state.current_inning,
            player_number=player_num,
            player_name=player.label(player_num),
            action=action,
            points=points,
            score_after=player.score,
            is_break_shot=is_break_shot,
            timestamp=self._clock(),
        )

    def _made_balls(self, player_num: int, points: int, on_break: bool) -> None:
        if self.state.break_player is None:
            self.state.break_player = player_num
        self.fouls.clear(player_num)
        self.players[player_num].add_run(points, on_break=on_break)

    def _foul(
        self,
        player_num: int,
        action: Action,
        penalty: int,
        counters: tuple,
    ) -> bool:
        if not self._can_act(player_num, action.value):
            return False
        self._push_history()
        player = self.players[player_num]
        player.score -= penalty
        for counter in counters:
            setattr(player, counter, getattr(player, counter) + 1)
        self._record(player_num, action, -penalty, is_break_shot=self.state.is_break_shot)
        self._apply_three_foul_rule(player_num)
        self.state.is_break_shot = False
        self._end_turn(player_num)
        return True

    def _take_pending_breaking_foul(self) -> Optional[int]:
        player_num = self.state.pending_breaking_foul
        if not self.in_progress or player_num is None:
            logger.debug("breaking foul resolution ignored: no choice pending")
            return None
        self._push_history()
        self.state.pending_breaking_foul = None
        return player_num

    def _apply_breaking_foul(self, player_num: int, action: Action) -> None:
        player = self.players[player_num]
        player.score -= BREAKING_FOUL_PENALTY
        player.fouls += 1
        player.breaking_fouls += 1
        self._record(player_num, action, -BREAKING_FOUL_PENALTY, is_break_shot=True)
        self._apply_three_foul_rule(player_num)

    def _apply_three_foul_rule(self, player_num: int) -> None:
        if not self.fouls.register_foul(player_num):
            return
        player = self.players[player_num]
        player.score -= THREE_FOUL_PENALTY
        self._record(
            player_num,
            Action.THREE_FOUL_PENALTY,
            -THREE_FOUL_PENALTY,
            is_break_shot=False,
        )
        logger.info("Three-foul penalty applied to %s", player.label(player_num))

    def _end_turn(self, player_num: int, count_inning: bool = True) -> None:
        player = self.players[player_num]
        if count_inning:
            player.total_innings += 1
        player.end_run()
        if player_num == 2:
            self.state.current_inning += 1
        self.state.active_player = _other(player_num)

    def _check_win(self, player_num: int) -> bool:
        player = self.players[player_num]
        if player.score < self.state.target_goal:
            return False
        self.state.status = MatchStatus.FINISHED
        self.state.winner = player_num
        self.state.is_timer_running = False
        self.state.pending_breaking_foul = None
        logger.info(
            "%s wins %d-%d",
            player.label(player_num),
            player.score,
            self.players[_other(player_num)].score,
        )
        if self.on_finish is not None:
            self.on_finish(self)
        return True


# ----------------------------------------------------------------------
# Event-replay interface
# ----------------------------------------------------------------------

PLAYER_EVENTS: Dict[str, str] = {
    "POINTS": "adjust_score",
    "FOUL": "handle_foul",
    "SCRATCH": "handle_scratch",
    "INTENTIONAL_FOUL": "handle_intentional_foul",
    "SAFETY": "handle_safe",
    "MISS": "handle_miss",
    "FINISH_RACK": "finish_rack",
    "BREAKING_FOUL": "handle_breaking_foul",
}

TABLE_EVENTS: Dict[str, str] = {
    "BREAKING_FOUL_CONTINUE": "continue_playing",
    "BREAKING_FOUL_REBREAK": "rebreak",
    "BREAKING_FOUL_CANCEL": "cancel_breaking_foul",
    "SWITCH_TURN": "switch_turn",
    "NEW_RACK": "new_rack",
    "UNDO": "undo_last_action",
}


def dispatch(engine: ScoringEngine, event: Mapping[str, Any]) -> bool:
    """Route an event mapping to the matching engine operation.

    Returns whether the engine applied the event. Raises ``ValueError`` for
    events that are malformed rather than merely out of turn.
    """
    kind = event.get("type")
    if not isinstance(kind, str):
        raise ValueError("invalid straight pool event")
    kind = kind.upper()

    if kind in TABLE_EVENTS:
        return getattr(engine, TABLE_EVENTS[kind])()

    if kind not in PLAYER_EVENTS:
        raise ValueError(f"unknown straight pool event: {kind}")

    by = event.get("by")
    if isinstance(by, bool) or by not in (1, 2):
        raise ValueError("straight pool event requires 'by' of 1 or 2")

    if kind == "POINTS":
        amount = event.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValueError("POINTS event requires an integer 'amount'")
        return engine.adjust_score(by, amount)

    return getattr(engine, PLAYER_EVENTS[kind])(by)


def init_state(config: Dict) -> Dict:
    """Initialise a started straight pool match."""
    engine = ScoringEngine(
        target_goal=config.get("targetGoal", DEFAULT_TARGET_GOAL),
        intentional_foul_penalty=config.get(
            "intentionalFoulPenalty", INTENTIONAL_FOUL_PENALTY
        ),
    )
    engine.start_game(config.get("player1"), config.get("player2"))
    return engine.to_snapshot()


def apply(event: Dict, state: Dict) -> Dict:
    """Apply one event to a persisted match state and return the new state."""
    engine = ScoringEngine.from_snapshot(state)
    dispatch(engine, event)
    return engine.to_snapshot()


def summary(state: Dict) -> Dict:
    persisted = PersistedMatch.model_validate(state)
    return {
        "score": {1: persisted.player1.score, 2: persisted.player2.score},
        "bestRun": {1: persisted.player1.best_run, 2: persisted.player2.best_run},
        "status": persisted.status.value,
        "winner": persisted.winner,
        "activePlayer": persisted.active_player,
        "inning": persisted.current_inning,
        "objectBallsOnTable": persisted.object_balls_on_table,
        "config": {"targetGoal": persisted.target_goal},
    }
