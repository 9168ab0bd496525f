import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import plan_loader
from fakes import entry
from session_models import (
    BulkState,
    CompletionMark,
    Phase,
    Position,
    RestType,
    ServerSnapshot,
    Session,
    SetLog,
    SetValues,
)
from state_machine import (
    BulkApplied,
    BulkRequested,
    ExerciseSkipped,
    ExtraSetAdded,
    FinalSetResolved,
    InputChanged,
    RestFinished,
    Resynced,
    SetSaved,
    SkipQueueChanged,
    reduce,
)

PLAN = (entry("Bench", 2), entry("Row", 1, order_index=1))


def done(lid, order_index, set_number, completed=True):
    title = PLAN[order_index].exercise_name
    return SetLog(
        id=lid,
        session_id=1,
        exercise_key=f"{title.lower()}-{set_number - 1}",
        exercise_title=title,
        exercise_order_index=order_index,
        set_number=set_number,
        weight=50.0,
        reps=10,
        completed=completed,
    )


def start(logs=(), skipped=None):
    session = Session(id=1, template_id=3, snapshot_data={"skippedExercises": skipped or []})
    state, _ = plan_loader.reconcile(ServerSnapshot(session, PLAN, tuple(logs)))
    return state


def test_non_final_set_rests_between_sets():
    state = reduce(start(), SetSaved(done(1, 0, 1), 50.0, 10))
    assert state.phase is Phase.REST
    assert state.rest_type is RestType.SET
    assert state.position == Position(0, 1)
    assert state.previous_values == SetValues("50", "10")


def test_final_set_waits_for_resolution():
    state = start([done(1, 0, 1)])
    state = reduce(state, SetSaved(done(2, 0, 2), 50.0, 10))
    assert state.phase is Phase.COMPLETING_FINAL_SET
    assert state.completion[0] is CompletionMark.PENDING

    rested = reduce(state, FinalSetResolved(False, (done(1, 0, 1), done(2, 0, 2))))
    assert rested.phase is Phase.REST
    assert rested.rest_type is RestType.EXERCISE
    assert rested.completion[0] is CompletionMark.CONFIRMED


def test_fresh_logs_that_disagree_roll_back_the_mark():
    state = reduce(start(), SetSaved(done(1, 0, 1), 50.0, 10))
    state = reduce(reduce(state, RestFinished()), SetSaved(done(2, 0, 2), 50.0, 10))
    state = reduce(state, FinalSetResolved(False, (done(1, 0, 1),)))
    assert state.completion[0] is CompletionMark.ROLLED_BACK


def test_session_complete_skips_rest():
    state = start([done(1, 0, 1), done(2, 0, 2)])
    state = reduce(state, SetSaved(done(3, 1, 1), 50.0, 10))
    state = reduce(state, FinalSetResolved(True))
    assert state.phase is Phase.EXERCISE
    assert state.outcome == "session_complete"


def test_exercise_rest_moves_to_next_exercise():
    state = start([done(1, 0, 1)])
    state = reduce(state, SetSaved(done(2, 0, 2), 50.0, 10))
    state = reduce(state, FinalSetResolved(False))
    state = reduce(state, RestFinished())
    assert state.phase is Phase.EXERCISE
    assert state.position == Position(1, 0)
    assert state.bulk_state is None


def test_rest_finished_outside_rest_is_ignored():
    state = start()
    assert reduce(state, RestFinished()) == state


def test_set_rest_restores_bulk_values():
    state = reduce(start(), BulkRequested(60.0, 12))
    state = reduce(state, SetSaved(done(1, 0, 1), 60.0, 12))
    state = reduce(state, BulkApplied(60.0, 12, 0))
    state = reduce(state, InputChanged(weight="40"))
    state = reduce(state, RestFinished())
    assert state.input_values == SetValues("60", "12")
    assert state.bulk_state == BulkState("60", "12", 0)
    assert state.pending_set is None


def test_skip_then_all_complete():
    state = reduce(start(), SkipQueueChanged((0,)))
    state = reduce(state, ExerciseSkipped())
    assert state.position == Position(1, 0)
    state = reduce(state, SetSaved(done(1, 1, 1), 50.0, 10))
    state = reduce(state, FinalSetResolved(False))
    state = reduce(state, RestFinished())
    # the skipped exercise comes back from the queue
    assert state.position == Position(0, 0)


def test_skipped_exercise_resumes_after_its_completed_sets():
    state = reduce(start([done(1, 0, 1)]), SkipQueueChanged((0,)))
    state = reduce(state, ExerciseSkipped())
    state = reduce(state, SetSaved(done(2, 1, 1), 50.0, 10))
    state = reduce(state, FinalSetResolved(False))
    state = reduce(state, RestFinished())
    assert state.position == Position(0, 1)
    assert state.position == plan_loader.resume_position(state.plan, state.logs)


def test_advancing_with_nothing_left_reports_all_complete():
    state = start([done(1, 0, 1), done(2, 0, 2)])
    state = reduce(state, ExerciseSkipped())
    assert state.outcome == "all_complete"


def test_extra_set_after_final_set_points_at_new_slot():
    state = start([done(1, 0, 1)])
    state = reduce(state, SetSaved(done(2, 0, 2), 50.0, 10))
    state = reduce(state, FinalSetResolved(False))
    state = reduce(state, ExtraSetAdded(done(3, 0, 3, completed=False)))
    assert state.plan[0].target_sets == 3
    assert state.position == Position(0, 2)
    assert state.placeholders[(0, 3)] == 3
    assert state.completion[0] is CompletionMark.ROLLED_BACK
    assert state.rest_type is RestType.SET
    state = reduce(state, RestFinished())
    assert state.position == Position(0, 2)


def test_extra_set_mid_exercise_keeps_position():
    state = reduce(start(), SetSaved(done(1, 0, 1), 50.0, 10))
    state = reduce(state, ExtraSetAdded(done(2, 0, 3, completed=False)))
    assert state.position == Position(0, 1)
    assert state.plan[0].target_sets == 3


def test_resync_is_deferred_while_final_set_resolves():
    state = start([done(1, 0, 1)])
    state = reduce(state, SetSaved(done(2, 0, 2), 50.0, 10))
    server = ServerSnapshot(
        Session(id=1, template_id=3, snapshot_data={"skippedExercises": []}),
        PLAN,
        (done(1, 0, 1), done(2, 0, 2)),
    )
    held = reduce(state, Resynced(server))
    assert held.position == state.position
    assert held.deferred_snapshot is server

    resolved = reduce(held, FinalSetResolved(False))
    assert resolved.deferred_snapshot is None
    assert resolved.phase is Phase.REST
    assert resolved.position == Position(0, 2)


def test_resync_keeps_current_exercise_when_incomplete():
    state = reduce(start(skipped=[0]), ExerciseSkipped())
    server = ServerSnapshot(
        Session(id=1, template_id=3, snapshot_data={"skippedExercises": [0]}),
        PLAN,
        (),
    )
    state = reduce(state, Resynced(server))
    assert state.position == Position(1, 0)
    assert state.skip_queue == (0,)


def test_unknown_event_is_rejected():
    with pytest.raises(ValueError):
        reduce(start(), object())
