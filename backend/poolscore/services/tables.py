"""Live tables: one scoring engine per table, persisted and broadcast.

Engine calls are synchronous and made from the event loop, so each action
is applied atomically with respect to the clock task and other requests.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set

import sentry_sdk

from ..config import SNAPSHOT_DEBOUNCE_SECONDS, SNAPSHOT_KEY
from ..schemas import MatchRecordIn, PlayerStateOut, TableStateOut
from ..scoring.straight_pool import ScoringEngine, dispatch
from .match_record import build_match_record
from .snapshots import (
    DebouncedSaver,
    SnapshotStore,
    delete_snapshot,
    load_snapshot,
)

logger = logging.getLogger(__name__)

CLOCK_INTERVAL_SECONDS = 1.0

Recorder = Callable[[MatchRecordIn], Awaitable[Any]]
Broadcaster = Callable[[str, dict], Awaitable[None]]


def snapshot_key(table_id: str) -> str:
    return f"{SNAPSHOT_KEY}:{table_id}"


def stream_channel(table_id: str) -> str:
    return f"table:{table_id}"


def table_state(table_id: str, engine: ScoringEngine) -> TableStateOut:
    players = {
        num: PlayerStateOut(
            **engine.player(num).model_dump(),
            consecutive_fouls=engine.fouls.consecutive(num),
            foul_warning=engine.fouls.warning(num),
        )
        for num in (1, 2)
    }
    return TableStateOut(
        **engine.state.model_dump(exclude={"game_started"}),
        table_id=table_id,
        can_undo=engine.in_progress
        and (bool(engine.history) or engine.state.pending_breaking_foul is not None),
        player1=players[1],
        player2=players[2],
        turn_history=list(engine.ledger),
    )


class TableSession:
    def __init__(
        self,
        table_id: str,
        store: SnapshotStore,
        *,
        recorder: Optional[Recorder] = None,
        broadcaster: Optional[Broadcaster] = None,
        debounce: float = SNAPSHOT_DEBOUNCE_SECONDS,
        clock_interval: float = CLOCK_INTERVAL_SECONDS,
    ) -> None:
        self.table_id = table_id
        self.store = store
        self.key = snapshot_key(table_id)
        self.recorder = recorder
        self.broadcaster = broadcaster
        self.clock_interval = clock_interval
        self.saver = DebouncedSaver(store, self.key, debounce)
        self.engine = ScoringEngine(on_finish=self._on_finish)
        self.submitted: list[MatchRecordIn] = []
        self._clock_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    async def restore(self) -> None:
        persisted = await load_snapshot(self.store, self.key)
        self.engine = ScoringEngine.from_snapshot(persisted, on_finish=self._on_finish)
        if self.engine.state.game_started:
            logger.info(
                "Restored table %s (%s, inning %d)",
                self.table_id,
                self.engine.status.value,
                self.engine.state.current_inning,
            )
        self._sync_clock()

    def state(self) -> TableStateOut:
        return table_state(self.table_id, self.engine)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def set_player(
        self, player_num: int, *, name: Optional[str] = None, handicap: Optional[int] = None
    ) -> bool:
        return await self._run(
            lambda: self.engine.set_player(player_num, name=name, handicap=handicap)
        )

    async def start_game(
        self,
        player1: Optional[Mapping[str, Any]] = None,
        player2: Optional[Mapping[str, Any]] = None,
        target_goal: Optional[int] = None,
    ) -> bool:
        return await self._run(
            lambda: self.engine.start_game(player1, player2, target_goal)
        )

    async def apply(self, event: Mapping[str, Any]) -> bool:
        """Apply one action event; raises ``ValueError`` if it is malformed."""
        return await self._run(lambda: dispatch(self.engine, event))

    async def undo(self) -> bool:
        return await self._run(self.engine.undo_last_action)

    async def end_game(self) -> bool:
        if not self.engine.end_game():
            return False
        self.saver.cancel()
        await delete_snapshot(self.store, self.key)
        self._sync_clock()
        await self._broadcast()
        return True

    async def drain(self) -> None:
        """Flush the pending snapshot and wait for match submissions."""
        await self._stop_clock()
        await self.saver.flush()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, operation: Callable[[], bool]) -> bool:
        applied = operation()
        if applied:
            self.saver.schedule(self.engine.to_snapshot())
            self._sync_clock()
            await self._broadcast()
        return applied

    async def _broadcast(self) -> None:
        if self.broadcaster is None:
            return
        payload = self.state().model_dump(mode="json", by_alias=True)
        await self.broadcaster(stream_channel(self.table_id), {"state": payload})

    def _sync_clock(self) -> None:
        running = self.engine.in_progress and self.engine.state.is_timer_running
        if running and self._clock_task is None:
            self._clock_task = asyncio.get_running_loop().create_task(self._run_clock())
        elif not running and self._clock_task is not None:
            self._clock_task.cancel()
            self._clock_task = None

    async def _stop_clock(self) -> None:
        task, self._clock_task = self._clock_task, None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    async def _run_clock(self) -> None:
        while True:
            await asyncio.sleep(self.clock_interval)
            if not self.engine.tick():
                break
            self.saver.schedule(self.engine.to_snapshot())
        self._clock_task = None

    def _on_finish(self, engine: ScoringEngine) -> None:
        try:
            record = build_match_record(engine)
        except ValueError as exc:
            logger.error(
                "Could not build match record for table %s", self.table_id, exc_info=True
            )
            sentry_sdk.capture_exception(exc)
            return
        self.submitted.append(record)
        if self.recorder is None:
            return
        task = asyncio.get_running_loop().create_task(self._submit(record))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _submit(self, record: MatchRecordIn) -> None:
        try:
            mid = await self.recorder(record)
        except Exception as exc:
            logger.error(
                "Failed to submit match for table %s", self.table_id, exc_info=True
            )
            sentry_sdk.capture_exception(exc)
            return
        logger.info("Submitted match %s for table %s", mid, self.table_id)


class TableRegistry:
    """Lazily created table sessions keyed by table id."""

    def __init__(
        self,
        store: SnapshotStore,
        *,
        recorder: Optional[Recorder] = None,
        broadcaster: Optional[Broadcaster] = None,
        debounce: float = SNAPSHOT_DEBOUNCE_SECONDS,
        clock_interval: float = CLOCK_INTERVAL_SECONDS,
    ) -> None:
        self.store = store
        self.recorder = recorder
        self.broadcaster = broadcaster
        self.debounce = debounce
        self.clock_interval = clock_interval
        self._sessions: Dict[str, TableSession] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, table_id: str) -> bool:
        return table_id in self._sessions

    async def get(self, table_id: str) -> TableSession:
        session = self._sessions.get(table_id)
        if session is not None:
            return session
        async with self._lock:
            session = self._sessions.get(table_id)
            if session is None:
                session = TableSession(
                    table_id,
                    self.store,
                    recorder=self.recorder,
                    broadcaster=self.broadcaster,
                    debounce=self.debounce,
                    clock_interval=self.clock_interval,
                )
                await session.restore()
                self._sessions[table_id] = session
        return session

    async def drain(self) -> None:
        for session in list(self._sessions.values()):
            await session.drain()
