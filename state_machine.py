"""Phase transitions of an active session as a pure reducer.

``reduce(state, event)`` never performs I/O. The async runner awaits the
gateway, then feeds the outcome back in as an event.

Phases::

    EXERCISE --SetSaved(not last)--> REST(set) --RestFinished--> EXERCISE
    EXERCISE --SetSaved(last)--> COMPLETING_FINAL_SET
    COMPLETING_FINAL_SET --FinalSetResolved--> REST(exercise) | session complete
    REST(exercise) --RestFinished--> EXERCISE (next exercise or all complete)

A ``Resynced`` event that arrives while a final set is being resolved is held
back and applied once the machine has left ``COMPLETING_FINAL_SET``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable

import plan_loader
from progress_tracker import completed_count, counts_complete, find_next_incomplete
from session_models import (
    BulkState,
    CompletionMark,
    PendingSet,
    Phase,
    Position,
    RestType,
    RunnerState,
    ServerSnapshot,
    SetLog,
    SetValues,
    format_number,
    initial_values,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InputChanged:
    weight: str | None = None
    reps: str | None = None


@dataclass(frozen=True)
class WriteStarted:
    pass


@dataclass(frozen=True)
class WriteFinished:
    pass


@dataclass(frozen=True)
class SetSaved:
    """A set log was created, or a placeholder was marked completed."""

    log: SetLog
    weight: float
    reps: int


@dataclass(frozen=True)
class FinalSetResolved:
    session_complete: bool
    fresh_logs: tuple[SetLog, ...] | None = None


@dataclass(frozen=True)
class RestFinished:
    """Rest timer ran out or the user skipped it."""


@dataclass(frozen=True)
class SkipQueueChanged:
    queue: tuple[int, ...]


@dataclass(frozen=True)
class ExerciseSkipped:
    """The current exercise is queued; move on to the next incomplete one."""


@dataclass(frozen=True)
class ExtraSetAdded:
    log: SetLog


@dataclass(frozen=True)
class BulkRequested:
    weight: float
    reps: int


@dataclass(frozen=True)
class BulkApplied:
    weight: float
    reps: int
    exercise_idx: int


@dataclass(frozen=True)
class BulkDeclined:
    pass


@dataclass(frozen=True)
class Resynced:
    snapshot: ServerSnapshot


def _with_log(logs: tuple[SetLog, ...], log: SetLog) -> tuple[SetLog, ...]:
    kept = tuple(existing for existing in logs if existing.id != log.id)
    return kept + (log,)


def _move_to(state: RunnerState, exercise_idx: int) -> RunnerState:
    values = initial_values(state.plan[exercise_idx])
    return replace(
        state,
        position=Position(exercise_idx, completed_count(state.logs, exercise_idx)),
        phase=Phase.EXERCISE,
        bulk_state=None,
        pending_set=None,
        previous_values=values,
        planned_values=values,
        input_values=values,
    )


def _advance_to_next(state: RunnerState) -> RunnerState:
    nxt = find_next_incomplete(state, state.position.exercise_idx)
    if nxt is None:
        logger.debug("Session %s: all exercises complete", state.session_id)
        return replace(state, phase=Phase.EXERCISE, outcome="all_complete")
    logger.debug(
        "Session %s: moving to exercise %s (%s)",
        state.session_id,
        nxt.exercise_idx,
        nxt.source,
    )
    return _move_to(state, nxt.exercise_idx)


def _on_input(state: RunnerState, event: InputChanged) -> RunnerState:
    values = state.input_values
    return replace(
        state,
        input_values=SetValues(
            weight=values.weight if event.weight is None else event.weight,
            reps=values.reps if event.reps is None else event.reps,
        ),
    )


def _on_write_started(state: RunnerState, event: WriteStarted) -> RunnerState:
    return replace(state, write_pending=True)


def _on_write_finished(state: RunnerState, event: WriteFinished) -> RunnerState:
    return replace(state, write_pending=False)


def _on_set_saved(state: RunnerState, event: SetSaved) -> RunnerState:
    idx = state.position.exercise_idx
    was_last = state.is_last_set
    placeholders = dict(state.placeholders)
    placeholders.pop((idx, state.position.set_idx + 1), None)
    state = replace(
        state,
        logs=_with_log(state.logs, event.log),
        placeholders=placeholders,
        position=Position(idx, state.position.set_idx + 1),
        previous_values=SetValues(format_number(event.weight), str(event.reps)),
    )
    if not was_last:
        return replace(state, phase=Phase.REST, rest_type=RestType.SET)
    completion = dict(state.completion)
    completion[idx] = CompletionMark.PENDING
    return replace(
        state,
        completion=completion,
        skip_queue=tuple(i for i in state.skip_queue if i != idx),
        phase=Phase.COMPLETING_FINAL_SET,
    )


def _on_final_set_resolved(state: RunnerState, event: FinalSetResolved) -> RunnerState:
    if event.fresh_logs is not None:
        state = replace(state, logs=event.fresh_logs)
        state = _confirm_marks(state)
    deferred = state.deferred_snapshot
    state = replace(state, deferred_snapshot=None)
    if event.session_complete:
        state = replace(state, phase=Phase.EXERCISE, outcome="session_complete")
    else:
        state = replace(state, phase=Phase.REST, rest_type=RestType.EXERCISE)
    if deferred is not None:
        state = _on_resynced(state, Resynced(deferred))
    return state


def _confirm_marks(state: RunnerState) -> RunnerState:
    completion = dict(state.completion)
    for idx, mark in state.completion.items():
        if mark is not CompletionMark.PENDING:
            continue
        if counts_complete(state.plan, state.logs, idx):
            completion[idx] = CompletionMark.CONFIRMED
        else:
            completion[idx] = CompletionMark.ROLLED_BACK
    return replace(state, completion=completion)


def _on_rest_finished(state: RunnerState, event: RestFinished) -> RunnerState:
    if state.phase is not Phase.REST:
        return state
    if state.rest_type is RestType.EXERCISE:
        return _advance_to_next(state)
    bulk = state.bulk_state
    if bulk is not None and bulk.exercise_idx == state.position.exercise_idx:
        state = replace(state, input_values=SetValues(bulk.weight, bulk.reps))
    return replace(state, phase=Phase.EXERCISE)


def _on_skip_queue_changed(state: RunnerState, event: SkipQueueChanged) -> RunnerState:
    return replace(state, skip_queue=tuple(event.queue))


def _on_exercise_skipped(state: RunnerState, event: ExerciseSkipped) -> RunnerState:
    return _advance_to_next(state)


def _on_extra_set_added(state: RunnerState, event: ExtraSetAdded) -> RunnerState:
    idx = state.position.exercise_idx
    entry = state.plan[idx]
    old_target = entry.target_sets
    plan = list(state.plan)
    plan[idx] = replace(entry, target_sets=old_target + 1)
    placeholders = dict(state.placeholders)
    placeholders[(idx, old_target + 1)] = event.log.id
    completion = dict(state.completion)
    if completion.get(idx) in (CompletionMark.PENDING, CompletionMark.CONFIRMED):
        completion[idx] = CompletionMark.ROLLED_BACK
    position = state.position
    if position.set_idx >= old_target:
        position = Position(idx, old_target)
    rest_type = state.rest_type
    if state.phase is Phase.REST:
        rest_type = RestType.SET
    return replace(
        state,
        plan=tuple(plan),
        placeholders=placeholders,
        logs=_with_log(state.logs, event.log),
        completion=completion,
        position=position,
        rest_type=rest_type,
        outcome=None,
    )


def _on_bulk_requested(state: RunnerState, event: BulkRequested) -> RunnerState:
    return replace(state, pending_set=PendingSet(event.weight, event.reps))


def _on_bulk_applied(state: RunnerState, event: BulkApplied) -> RunnerState:
    weight = format_number(event.weight)
    reps = str(event.reps)
    logs = tuple(
        replace(log, weight=event.weight, reps=event.reps)
        if log.exercise_order_index == event.exercise_idx and not log.completed
        else log
        for log in state.logs
    )
    return replace(
        state,
        logs=logs,
        previous_values=SetValues(weight, reps),
        input_values=SetValues(weight, reps),
        bulk_state=BulkState(weight, reps, event.exercise_idx),
        pending_set=None,
    )


def _on_bulk_declined(state: RunnerState, event: BulkDeclined) -> RunnerState:
    return replace(state, bulk_state=None, pending_set=None)


def _on_resynced(state: RunnerState, event: Resynced) -> RunnerState:
    if state.phase is Phase.COMPLETING_FINAL_SET:
        return replace(state, deferred_snapshot=event.snapshot)

    fresh, _ = plan_loader.reconcile(event.snapshot)
    completion = dict(state.completion)
    for idx, mark in state.completion.items():
        if mark is CompletionMark.ROLLED_BACK:
            continue
        if counts_complete(fresh.plan, fresh.logs, idx):
            completion[idx] = CompletionMark.CONFIRMED
        else:
            completion[idx] = CompletionMark.ROLLED_BACK
    state = replace(
        state,
        plan=fresh.plan,
        logs=fresh.logs,
        placeholders=fresh.placeholders,
        skip_queue=fresh.skip_queue,
        completion=completion,
    )
    if state.phase is Phase.REST or state.outcome is not None or not state.plan:
        return state

    idx = state.position.exercise_idx
    if idx < len(state.plan) and not counts_complete(state.plan, state.logs, idx):
        return replace(state, position=Position(idx, completed_count(state.logs, idx)))
    if fresh.position.exercise_idx != idx:
        state = _move_to(state, fresh.position.exercise_idx)
    return replace(state, position=fresh.position)


_HANDLERS: dict[type, Callable[[RunnerState, object], RunnerState]] = {
    InputChanged: _on_input,
    WriteStarted: _on_write_started,
    WriteFinished: _on_write_finished,
    SetSaved: _on_set_saved,
    FinalSetResolved: _on_final_set_resolved,
    RestFinished: _on_rest_finished,
    SkipQueueChanged: _on_skip_queue_changed,
    ExerciseSkipped: _on_exercise_skipped,
    ExtraSetAdded: _on_extra_set_added,
    BulkRequested: _on_bulk_requested,
    BulkApplied: _on_bulk_applied,
    BulkDeclined: _on_bulk_declined,
    Resynced: _on_resynced,
}


def reduce(state: RunnerState, event: object) -> RunnerState:
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise ValueError(f"unknown event {type(event).__name__}")
    return handler(state, event)
