import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import plan_loader
from fakes import entry
from session_models import Position, ServerSnapshot, Session, SetLog


def log(lid, title, order_index, set_number, completed=True, weight=60.0, reps=8):
    return SetLog(
        id=lid,
        session_id=1,
        exercise_key=f"{title.lower()}-{set_number - 1}",
        exercise_title=title,
        exercise_order_index=order_index,
        set_number=set_number,
        weight=weight,
        reps=reps,
        completed=completed,
    )


TEMPLATE = (
    entry("Bench", 2),
    entry("Row", 2, order_index=1),
    entry("Curl", 3, order_index=2),
)


def snapshot(logs=(), template=TEMPLATE, skipped=None):
    session = Session(
        id=1,
        template_id=7 if template is not None else None,
        snapshot_data={"skippedExercises": skipped if skipped is not None else []},
    )
    return ServerSnapshot(session, template, tuple(logs))


def test_fresh_template_plan_starts_at_first_set():
    state, needs_persist = plan_loader.reconcile(snapshot())
    assert [e.exercise_name for e in state.plan] == ["Bench", "Row", "Curl"]
    assert state.position == Position(0, 0)
    assert not needs_persist
    assert state.input_values.weight == "50"
    assert state.input_values.reps == "10"


def test_target_sets_grow_to_absorb_extra_sets():
    logs = [log(1, "Bench", 0, 1), log(2, "Bench", 0, 2), log(3, "Bench", 0, 3, completed=False)]
    plan, synthesized = plan_loader.build_plan(TEMPLATE, logs)
    assert not synthesized
    assert plan[0].target_sets == 3
    assert plan[1].target_sets == 2


def test_resume_position_is_first_incomplete_exercise():
    logs = [log(1, "Bench", 0, 1), log(2, "Bench", 0, 2), log(3, "Row", 1, 1)]
    state, _ = plan_loader.reconcile(snapshot(logs))
    assert state.position == Position(1, 1)


def test_resume_parks_on_last_exercise_when_all_done():
    logs = [
        log(1, "Bench", 0, 1),
        log(2, "Bench", 0, 2),
        log(3, "Row", 1, 1),
        log(4, "Row", 1, 2),
        log(5, "Curl", 2, 1),
        log(6, "Curl", 2, 2),
        log(7, "Curl", 2, 3),
    ]
    state, _ = plan_loader.reconcile(snapshot(logs))
    assert state.position == Position(2, 3)


def test_placeholder_is_mapped_for_reuse():
    logs = [log(9, "Curl", 2, 3, completed=False)]
    state, _ = plan_loader.reconcile(snapshot(logs))
    assert state.placeholders == {(2, 3): 9}


def test_plan_synthesized_from_logs_without_template():
    logs = [
        log(1, "Squat", 4, 1),
        log(2, "Squat", 4, 2),
        log(3, "Lunge", 6, 1, completed=False),
        log(4, "Squat", 4, 3, completed=False),
    ]
    state, _ = plan_loader.reconcile(snapshot(logs, template=None))
    assert [(e.exercise_name, e.target_sets) for e in state.plan] == [("Squat", 3), ("Lunge", 1)]
    assert state.plan[0].target_weight == 60.0
    # logs are re-indexed to plan positions, writes keep the stored index
    assert {l.exercise_order_index for l in state.logs} == {0, 1}
    assert state.plan[1].order_index == 6
    assert state.position == Position(0, 2)
    assert state.placeholders == {(1, 1): 3, (0, 3): 4}


def test_validate_skip_queue_drops_malformed_entries():
    raw = [1, 1, -1, 3, "2", 2.0, 2.5, float("nan"), True, None]
    assert plan_loader.validate_skip_queue(raw, 3) == [1, 2]
    assert plan_loader.validate_skip_queue({"0": 1}, 3) == []


def test_completed_exercises_are_removed_from_skip_queue():
    logs = [log(1, "Bench", 0, 1), log(2, "Bench", 0, 2)]
    state, needs_persist = plan_loader.reconcile(snapshot(logs, skipped=[0, 2, 9]))
    assert state.skip_queue == (2,)
    assert needs_persist


def test_malformed_entries_are_written_back_cleaned():
    state, needs_persist = plan_loader.reconcile(snapshot(skipped=[1, 9, "x"]))
    assert state.skip_queue == (1,)
    assert needs_persist


def test_clean_skip_queue_needs_no_write():
    state, needs_persist = plan_loader.reconcile(snapshot(skipped=[2, 1]))
    assert state.skip_queue == (2, 1)
    assert not needs_persist


def test_non_list_skip_queue_is_replaced():
    for raw in ("0,1", {"0": 1}, 3):
        state, needs_persist = plan_loader.reconcile(snapshot(skipped=raw))
        assert state.skip_queue == ()
        assert needs_persist, raw


def test_missing_snapshot_needs_no_write():
    session = Session(id=1, template_id=7, snapshot_data={})
    _, needs_persist = plan_loader.reconcile(ServerSnapshot(session, TEMPLATE, ()))
    assert not needs_persist
