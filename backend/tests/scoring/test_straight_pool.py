import pytest

from poolscore.scoring import straight_pool
from poolscore.scoring.actions import Action
from poolscore.scoring.straight_pool import MatchStatus, ScoringEngine


def _started(target_goal=125, p1=None, p2=None, **kwargs):
    engine = ScoringEngine(target_goal=target_goal, **kwargs)
    engine.start_game(p1 or {"name": "Alice"}, p2 or {"name": "Bob"})
    return engine


def _miss_round(engine):
    """Both players miss once, starting with player 1."""
    engine.handle_miss(1)
    engine.handle_miss(2)


def test_start_game_defaults_names_and_starts_clock():
    engine = ScoringEngine()
    assert engine.start_game()

    assert engine.status is MatchStatus.IN_PROGRESS
    assert engine.player1.name == "Player 1"
    assert engine.player2.name == "Player 2"
    assert engine.state.is_timer_running
    assert engine.state.is_break_shot
    assert engine.state.object_balls_on_table == 15
    assert len(engine.ledger) == 0


def test_handicap_difference_seeds_trailing_player():
    engine = _started(
        p1={"name": "Alice", "handicap": 5},
        p2={"name": "Bob", "handicap": 0},
    )

    assert engine.player1.score == 0
    assert engine.player2.score == 5
    (entry,) = list(engine.ledger)
    assert entry.action is Action.HANDICAP_APPLIED
    assert entry.player_number == 2
    assert entry.points == 5
    assert entry.score_after == 5


def test_set_player_only_before_start():
    engine = ScoringEngine()
    assert engine.set_player(1, name="  Alice ", handicap=3)
    assert engine.player1.name == "Alice"
    assert engine.player1.handicap == 3

    engine.start_game()
    assert not engine.set_player(1, name="Carol")
    assert engine.player1.name == "Alice"


def test_finish_rack_on_break_credits_fourteen_and_keeps_turn():
    engine = _started()

    assert engine.finish_rack(1)

    assert engine.player1.score == 14
    assert engine.player1.current_run == 14
    assert engine.player1.break_and_runs == 1
    assert engine.state.object_balls_on_table == 15
    assert engine.state.active_player == 1
    assert engine.state.break_player == 1
    assert not engine.state.is_break_shot
    assert engine.ledger.last().action is Action.FINISH_RACK


def test_finish_rack_ignored_with_one_ball_left():
    engine = _started()
    engine.state.object_balls_on_table = 1

    assert not engine.finish_rack(1)
    assert engine.player1.score == 0
    assert engine.history == []


def test_points_reduce_balls_and_rerack_at_one():
    engine = _started()

    engine.adjust_score(1, 13)
    assert engine.state.object_balls_on_table == 2

    engine.adjust_score(1, 1)
    assert engine.state.object_balls_on_table == 15
    assert engine.player1.current_run == 14
    assert engine.state.active_player == 1


def test_non_positive_points_end_the_turn():
    engine = _started()

    assert engine.adjust_score(1, -1)

    assert engine.player1.score == -1
    assert engine.state.active_player == 2
    assert engine.state.current_inning == 1
    assert engine.player1.total_innings == 1


def test_inning_advances_after_player_two():
    engine = _started()
    _miss_round(engine)

    assert engine.state.current_inning == 2
    assert engine.state.active_player == 1
    assert engine.player1.misses == 1
    assert engine.player2.misses == 1


def test_run_is_recorded_when_turn_ends():
    engine = _started()
    engine.adjust_score(1, 4)
    engine.adjust_score(1, 3)
    engine.handle_safe(1)

    assert engine.player1.run_history == [7]
    assert engine.player1.best_run == 7
    assert engine.player1.current_run == 0
    assert engine.player1.safes == 1
    assert engine.player1.defensive_shots == 1


def test_three_consecutive_fouls_cost_fifteen_extra():
    engine = _started()

    engine.handle_foul(1)
    engine.handle_miss(2)
    engine.handle_foul(1)
    engine.handle_miss(2)
    assert engine.fouls.warning(1)
    engine.handle_foul(1)

    assert engine.player1.score == -18
    assert engine.player1.fouls == 3
    assert engine.fouls.consecutive(1) == 0
    actions = [t.action for t in engine.ledger if t.player_number == 1]
    assert actions[-2:] == [Action.FOUL, Action.THREE_FOUL_PENALTY]


def test_made_ball_clears_foul_streak():
    engine = _started()

    engine.handle_foul(1)
    engine.handle_miss(2)
    engine.adjust_score(1, 3)
    engine.handle_miss(1)
    engine.handle_miss(2)
    engine.handle_foul(1)
    engine.handle_miss(2)
    engine.handle_foul(1)

    assert engine.fouls.consecutive(1) == 2
    assert engine.player1.score == 0
    assert all(t.action is not Action.THREE_FOUL_PENALTY for t in engine.ledger)


def test_scratch_and_intentional_foul_penalties():
    engine = _started()

    engine.handle_scratch(1)
    engine.handle_intentional_foul(2)

    assert engine.player1.score == -1
    assert engine.player1.scratches == 1
    assert engine.player2.score == -2
    assert engine.player2.fouls == 1
    assert engine.player2.intentional_fouls == 1


def test_intentional_foul_penalty_is_configurable():
    engine = _started(intentional_foul_penalty=3)
    engine.handle_intentional_foul(1)
    assert engine.player1.score == -3


def test_wrong_player_is_ignored():
    engine = _started()

    assert not engine.adjust_score(2, 1)
    assert not engine.handle_foul(2)

    assert engine.player2.score == 0
    assert len(engine.ledger) == 0
    assert engine.history == []


def test_actions_ignored_before_start():
    engine = ScoringEngine()

    assert not engine.adjust_score(1, 1)
    assert not engine.switch_turn()
    assert not engine.undo_last_action()


def test_breaking_foul_blocks_play_until_resolved():
    engine = _started()

    assert engine.handle_breaking_foul(1)
    assert engine.state.pending_breaking_foul == 1
    assert not engine.adjust_score(1, 1)
    assert not engine.switch_turn()

    assert engine.cancel_breaking_foul()
    assert engine.state.pending_breaking_foul is None
    assert engine.player1.score == 0


def test_breaking_foul_continue_switches_turn():
    engine = _started()
    engine.handle_breaking_foul(1)

    assert engine.continue_playing()

    assert engine.player1.score == -2
    assert engine.player1.breaking_fouls == 1
    assert engine.state.active_player == 2
    assert not engine.state.is_break_shot
    last = engine.ledger.last()
    assert last.action is Action.BREAKING_FOUL
    assert last.is_break_shot


def test_breaking_foul_rebreak_keeps_fouling_player_at_table():
    engine = _started()
    engine.handle_breaking_foul(1)

    assert engine.rebreak()

    assert engine.player1.score == -2
    assert engine.state.active_player == 1
    assert engine.state.is_break_shot
    assert engine.state.object_balls_on_table == 15
    assert engine.ledger.last().action is Action.BREAKING_FOUL_REBREAK


def test_resolution_without_pending_foul_is_ignored():
    engine = _started()
    assert not engine.continue_playing()
    assert not engine.rebreak()
    assert not engine.cancel_breaking_foul()


def test_switch_turn_logs_scoreless_turn_end():
    engine = _started()

    assert engine.new_rack()
    assert len(engine.ledger) == 0
    assert engine.switch_turn()

    assert engine.state.active_player == 2
    (entry,) = list(engine.ledger)
    assert entry.action is Action.POINTS
    assert entry.player_number == 1
    assert entry.points == 0
    assert engine.player1.total_innings == 0

    assert engine.undo_last_action()
    assert engine.state.active_player == 1
    assert len(engine.ledger) == 0


def test_switch_turn_advances_inning_after_player_two():
    engine = _started()
    engine.switch_turn()
    engine.switch_turn()

    assert engine.state.current_inning == 2
    assert engine.state.active_player == 1
    assert engine.player2.total_innings == 0


def test_undo_withdraws_pending_breaking_foul_only():
    engine = _started()
    engine.adjust_score(1, 3)
    engine.handle_breaking_foul(1)

    assert engine.undo_last_action()

    assert engine.state.pending_breaking_foul is None
    assert engine.player1.score == 3
    assert len(engine.history) == 1
    assert engine.adjust_score(1, 1)


def test_undo_of_resolution_reopens_choice():
    engine = _started()
    engine.handle_breaking_foul(1)
    engine.continue_playing()

    assert engine.undo_last_action()

    assert engine.state.pending_breaking_foul == 1
    assert engine.player1.score == 0
    assert engine.state.active_player == 1


def _open_breaking_foul(engine):
    engine.handle_breaking_foul(1)


@pytest.mark.parametrize(
    "prepare, action",
    [
        (None, lambda e: e.adjust_score(1, 5)),
        (None, lambda e: e.adjust_score(1, -1)),
        (None, lambda e: e.finish_rack(1)),
        (None, lambda e: e.handle_foul(1)),
        (None, lambda e: e.handle_scratch(1)),
        (None, lambda e: e.handle_intentional_foul(1)),
        (None, lambda e: e.handle_safe(1)),
        (None, lambda e: e.handle_miss(1)),
        (None, lambda e: e.handle_breaking_foul(1)),
        (_open_breaking_foul, lambda e: e.continue_playing()),
        (_open_breaking_foul, lambda e: e.rebreak()),
        (None, lambda e: e.switch_turn()),
        (None, lambda e: e.new_rack()),
    ],
)
def test_undo_reverts_exactly_one_action(prepare, action):
    engine = _started()
    engine.adjust_score(1, 3)
    if prepare is not None:
        prepare(engine)
    before = engine.to_snapshot()

    assert action(engine)
    assert engine.undo_last_action()

    after = engine.to_snapshot()
    before.pop("scoreHistory")
    after.pop("scoreHistory")
    assert after == before


def test_undo_restores_previous_state():
    engine = _started()
    engine.adjust_score(1, 3)
    before = engine.to_snapshot()

    engine.handle_foul(1)
    assert engine.undo_last_action()

    after = engine.to_snapshot()
    before.pop("scoreHistory")
    after.pop("scoreHistory")
    assert after == before


def test_undo_of_three_foul_removes_both_entries():
    engine = _started()
    engine.handle_foul(1)
    engine.handle_miss(2)
    engine.handle_foul(1)
    engine.handle_miss(2)
    length = len(engine.ledger)

    engine.handle_foul(1)
    engine.undo_last_action()

    assert len(engine.ledger) == length
    assert engine.player1.score == -2
    assert engine.fouls.consecutive(1) == 2


def test_undo_keeps_edited_identity():
    engine = _started()
    engine.adjust_score(1, 2)
    engine.player1.name = "Alicia"

    engine.undo_last_action()

    assert engine.player1.name == "Alicia"
    assert engine.player1.score == 0


def test_reaching_target_finishes_match():
    finished = []
    engine = _started(target_goal=10, on_finish=finished.append)

    engine.adjust_score(1, 10)

    assert engine.status is MatchStatus.FINISHED
    assert engine.state.winner == 1
    assert not engine.state.is_timer_running
    assert finished == [engine]
    assert not engine.adjust_score(2, 1)
    assert not engine.undo_last_action()


def test_finish_rack_can_win():
    engine = _started(target_goal=14)
    engine.finish_rack(1)
    assert engine.state.winner == 1


def test_tick_only_while_running():
    engine = ScoringEngine()
    assert not engine.tick()

    engine.start_game()
    assert engine.tick()
    assert engine.tick(2)
    assert engine.state.elapsed_seconds == 3


def test_end_game_keeps_identities():
    engine = _started(
        target_goal=50,
        p1={"name": "Alice", "handicap": 2},
    )
    engine.adjust_score(1, 5)

    assert engine.end_game()

    assert engine.status is MatchStatus.NOT_STARTED
    assert engine.player1.name == "Alice"
    assert engine.player1.handicap == 2
    assert engine.player1.score == 0
    assert engine.state.target_goal == 50
    assert len(engine.ledger) == 0


def test_snapshot_round_trip_keeps_undo_history():
    engine = _started()
    engine.adjust_score(1, 6)
    engine.handle_foul(1)

    restored = ScoringEngine.from_snapshot(engine.to_snapshot())

    assert restored.to_snapshot() == engine.to_snapshot()
    assert restored.undo_last_action()
    assert restored.player1.score == 6
    assert restored.state.active_player == 1


def test_event_interface_replays_actions():
    state = straight_pool.init_state(
        {"targetGoal": 20, "player1": {"name": "Alice"}, "player2": {"name": "Bob"}}
    )
    state = straight_pool.apply({"type": "POINTS", "by": 1, "amount": 5}, state)
    state = straight_pool.apply({"type": "miss", "by": 1}, state)
    state = straight_pool.apply({"type": "FOUL", "by": 2}, state)

    summary = straight_pool.summary(state)
    assert summary["score"] == {1: 5, 2: -1}
    assert summary["bestRun"] == {1: 5, 2: 0}
    assert summary["activePlayer"] == 1
    assert summary["inning"] == 2
    assert summary["status"] == "in_progress"
    assert summary["config"] == {"targetGoal": 20}


def test_event_interface_undo():
    state = straight_pool.init_state({})
    state = straight_pool.apply({"type": "POINTS", "by": 1, "amount": 5}, state)
    state = straight_pool.apply({"type": "UNDO"}, state)
    assert straight_pool.summary(state)["score"] == {1: 0, 2: 0}


@pytest.mark.parametrize(
    "event",
    [
        {"type": "BOGUS", "by": 1},
        {"type": "FOUL"},
        {"type": "FOUL", "by": 3},
        {"type": "FOUL", "by": True},
        {"type": "POINTS", "by": 1},
        {"type": "POINTS", "by": 1, "amount": "3"},
        {"by": 1},
    ],
)
def test_event_interface_rejects_malformed_events(event):
    state = straight_pool.init_state({})
    with pytest.raises(ValueError):
        straight_pool.apply(event, state)
