from __future__ import annotations

from typing import Iterable, Sequence

from session_models import (
    CompletionMark,
    NextExercise,
    PlanEntry,
    RunnerState,
    SetLog,
)

OPTIMISTIC_MARKS = {CompletionMark.PENDING, CompletionMark.CONFIRMED}


def completed_count(logs: Iterable[SetLog], exercise_idx: int) -> int:
    """Count completed logs at plan position ``exercise_idx``.

    Logs are matched by order index only; exercise titles may repeat.
    """
    return sum(
        1
        for log in logs
        if log.exercise_order_index == exercise_idx and log.completed
    )


def counts_complete(plan: Sequence[PlanEntry], logs: Iterable[SetLog], idx: int) -> bool:
    if idx < 0 or idx >= len(plan):
        return False
    target = plan[idx].target_sets
    if not target or target <= 0:
        return False
    return completed_count(logs, idx) >= target


def is_exercise_complete(state: RunnerState, idx: int) -> bool:
    if state.completion.get(idx) in OPTIMISTIC_MARKS:
        return True
    return counts_complete(state.plan, state.logs, idx)


def find_next_incomplete(state: RunnerState, from_idx: int) -> NextExercise | None:
    """Return the next exercise to train after ``from_idx``.

    Plan order is searched first, then the skip queue in insertion order.
    """
    for idx in range(from_idx + 1, len(state.plan)):
        if not is_exercise_complete(state, idx):
            return NextExercise(idx, "template")
    for idx in state.skip_queue:
        if not is_exercise_complete(state, idx):
            return NextExercise(idx, "skipped")
    return None


def all_exercises_complete(plan: Sequence[PlanEntry], logs: Sequence[SetLog]) -> bool:
    """Check every plan entry against ``logs`` alone, ignoring optimistic marks."""
    for idx, entry in enumerate(plan):
        if completed_count(logs, idx) < entry.target_sets:
            return False
    return True
