import logging

from fastapi import APIRouter, Depends, Path

from ..exceptions import TableActionInvalid
from ..schemas import (
    ActionIn,
    ActionResultOut,
    PlayerUpdate,
    StartGameIn,
    TableStateOut,
    TableStatsOut,
)
from ..services.recorder import DatabaseMatchRecorder
from ..services.snapshots import build_store
from ..services.stats import compute_player_stats, detailed_stats
from ..services.tables import TableRegistry, TableSession
from . import streams

logger = logging.getLogger(__name__)

# Resource-only prefix; versioning is added in main.py
router = APIRouter(prefix="/tables", tags=["tables"])

_registry: TableRegistry | None = None


def get_registry() -> TableRegistry:
    global _registry
    if _registry is None:
        _registry = TableRegistry(
            build_store(),
            recorder=DatabaseMatchRecorder(),
            broadcaster=streams.broadcast,
        )
    return _registry


async def drain_registry() -> None:
    if _registry is not None:
        await _registry.drain()


def _result(session: TableSession, applied: bool) -> ActionResultOut:
    return ActionResultOut(applied=applied, state=session.state())


# GET /api/v0/tables/{tid}
@router.get("/{tid}", response_model=TableStateOut)
async def get_table(tid: str, registry: TableRegistry = Depends(get_registry)):
    session = await registry.get(tid)
    return session.state()


# PUT /api/v0/tables/{tid}/players/{num}
@router.put("/{tid}/players/{num}", response_model=ActionResultOut)
async def update_player(
    tid: str,
    body: PlayerUpdate,
    num: int = Path(..., ge=1, le=2),
    registry: TableRegistry = Depends(get_registry),
):
    session = await registry.get(tid)
    applied = await session.set_player(num, name=body.name, handicap=body.handicap)
    return _result(session, applied)


# POST /api/v0/tables/{tid}/start
@router.post("/{tid}/start", response_model=ActionResultOut)
async def start_game(
    tid: str,
    body: StartGameIn | None = None,
    registry: TableRegistry = Depends(get_registry),
):
    body = body or StartGameIn()
    session = await registry.get(tid)
    applied = await session.start_game(
        body.player1.model_dump() if body.player1 else None,
        body.player2.model_dump() if body.player2 else None,
        body.targetGoal,
    )
    return _result(session, applied)


# POST /api/v0/tables/{tid}/actions
@router.post("/{tid}/actions", response_model=ActionResultOut)
async def apply_action(
    tid: str,
    body: ActionIn,
    registry: TableRegistry = Depends(get_registry),
):
    session = await registry.get(tid)
    try:
        applied = await session.apply(body.to_event())
    except ValueError as exc:
        raise TableActionInvalid(tid, str(exc)) from exc
    if not applied:
        logger.debug("Table %s ignored %s", tid, body.type)
    return _result(session, applied)


# POST /api/v0/tables/{tid}/undo
@router.post("/{tid}/undo", response_model=ActionResultOut)
async def undo(tid: str, registry: TableRegistry = Depends(get_registry)):
    session = await registry.get(tid)
    applied = await session.undo()
    return _result(session, applied)


# POST /api/v0/tables/{tid}/end
@router.post("/{tid}/end", response_model=ActionResultOut)
async def end_game(tid: str, registry: TableRegistry = Depends(get_registry)):
    session = await registry.get(tid)
    applied = await session.end_game()
    return _result(session, applied)


# GET /api/v0/tables/{tid}/stats
@router.get("/{tid}/stats", response_model=TableStatsOut)
async def table_stats(tid: str, registry: TableRegistry = Depends(get_registry)):
    session = await registry.get(tid)
    turns = list(session.engine.ledger)
    return TableStatsOut(
        player1={**compute_player_stats(turns, 1), "details": detailed_stats(turns, 1)},
        player2={**compute_player_stats(turns, 2), "details": detailed_stats(turns, 2)},
    )
