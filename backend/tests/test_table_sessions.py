import asyncio
import json

import pytest

from poolscore.scoring.straight_pool import MatchStatus
from poolscore.services.snapshots import MemorySnapshotStore
from poolscore.services.tables import TableRegistry, snapshot_key, stream_channel


@pytest.fixture
def anyio_backend():
    return "asyncio"


class _Recorder:
    def __init__(self, fail=False):
        self.records = []
        self.fail = fail

    async def __call__(self, record):
        if self.fail:
            raise RuntimeError("database down")
        self.records.append(record)
        return "m1"


class _Broadcasts:
    def __init__(self):
        self.messages = []

    async def __call__(self, channel, message):
        self.messages.append((channel, message))


def _registry(store=None, **kwargs):
    kwargs.setdefault("debounce", 0.01)
    return TableRegistry(store or MemorySnapshotStore(), **kwargs)


@pytest.mark.anyio
async def test_registry_reuses_sessions():
    registry = _registry()
    first = await registry.get("t1")
    assert await registry.get("t1") is first
    assert await registry.get("t2") is not first
    assert "t1" in registry


@pytest.mark.anyio
async def test_actions_are_persisted_and_restored():
    store = MemorySnapshotStore()
    registry = _registry(store)
    session = await registry.get("t1")

    await session.start_game({"name": "Alice"}, {"name": "Bob"}, 40)
    assert await session.apply({"type": "POINTS", "by": 1, "amount": 5})
    await session.drain()

    raw = await store.get(snapshot_key("t1"))
    assert json.loads(raw)["player1"]["score"] == 5

    restored = await _registry(store).get("t1")
    assert restored.engine.player1.score == 5
    assert restored.engine.state.target_goal == 40
    assert restored.engine.undo_last_action()
    await restored.drain()


@pytest.mark.anyio
async def test_out_of_turn_action_is_not_saved():
    store = MemorySnapshotStore()
    session = await _registry(store).get("t1")
    await session.start_game()
    await session.drain()
    before = await store.get(snapshot_key("t1"))

    assert not await session.apply({"type": "MISS", "by": 2})
    assert not session.saver.pending
    await session.drain()
    assert await store.get(snapshot_key("t1")) == before


@pytest.mark.anyio
async def test_malformed_event_raises():
    session = await _registry().get("t1")
    await session.start_game()
    with pytest.raises(ValueError):
        await session.apply({"type": "POINTS", "by": 1})
    await session.drain()


@pytest.mark.anyio
async def test_clock_ticks_while_in_progress():
    registry = _registry(clock_interval=0.02)
    session = await registry.get("t1")
    await session.start_game()

    await asyncio.sleep(0.1)
    assert session.engine.state.elapsed_seconds >= 2

    await session.end_game()
    elapsed = session.engine.state.elapsed_seconds
    await asyncio.sleep(0.05)
    assert session.engine.state.elapsed_seconds == elapsed


@pytest.mark.anyio
async def test_finished_match_is_submitted():
    recorder = _Recorder()
    session = await _registry(recorder=recorder).get("t1")
    await session.start_game({"name": "Alice"}, {"name": "Bob"}, 14)

    await session.apply({"type": "FINISH_RACK", "by": 1})
    await session.drain()

    assert session.engine.status is MatchStatus.FINISHED
    assert len(recorder.records) == 1
    assert recorder.records[0].winnerName == "Alice"


@pytest.mark.anyio
async def test_failed_submission_is_logged_not_raised(caplog):
    session = await _registry(recorder=_Recorder(fail=True)).get("t1")
    await session.start_game(target_goal=14)

    assert await session.apply({"type": "FINISH_RACK", "by": 1})
    await session.drain()

    assert session.engine.state.winner == 1
    assert "Failed to submit match" in caplog.text
    assert len(session.submitted) == 1


@pytest.mark.anyio
async def test_end_game_deletes_snapshot():
    store = MemorySnapshotStore()
    session = await _registry(store).get("t1")
    await session.start_game({"name": "Alice"})
    await session.apply({"type": "POINTS", "by": 1, "amount": 3})

    assert await session.end_game()
    await session.drain()

    assert await store.get(snapshot_key("t1")) is None
    assert session.engine.player1.name == "Alice"
    assert not session.engine.state.game_started


@pytest.mark.anyio
async def test_changes_are_broadcast():
    broadcasts = _Broadcasts()
    session = await _registry(broadcaster=broadcasts).get("t1")
    await session.start_game()
    await session.apply({"type": "POINTS", "by": 1, "amount": 2})
    await session.drain()

    channel, message = broadcasts.messages[-1]
    assert channel == stream_channel("t1")
    assert message["state"]["player1"]["score"] == 2
    assert message["state"]["tableId"] == "t1"
