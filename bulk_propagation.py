from __future__ import annotations

from enum import Enum

from session_models import PlanEntry, SetValues, is_time_based, parse_int, parse_weight

SMART_REP_THRESHOLD = 3


class Decision(str, Enum):
    SAVE_ONLY = "save_only"
    BULK_PROMPT = "bulk_prompt"
    SMART_REP = "smart_rep"


class Choice(str, Enum):
    APPLY = "apply"
    APPLY_KEEP_PLANNED_REPS = "apply_keep_planned_reps"
    DECLINE = "decline"


def values_changed(weight: float, reps: int, previous: SetValues) -> bool:
    return weight != parse_weight(previous.weight) or reps != parse_int(previous.reps)


def negotiate(
    entry: PlanEntry,
    is_last_set: bool,
    weight: float,
    reps: int,
    previous: SetValues,
    planned: SetValues,
    threshold: int = SMART_REP_THRESHOLD,
) -> Decision:
    """Decide whether a changed set should be offered for propagation.

    Reps are compared against the planned target, not the previous set, so a
    gradual drift still triggers the weight suggestion once it exceeds
    ``threshold``.
    """
    if not values_changed(weight, reps, previous):
        return Decision.SAVE_ONLY
    if is_last_set or is_time_based(entry.target_reps):
        return Decision.SAVE_ONLY
    if reps - parse_int(planned.reps) > threshold:
        return Decision.SMART_REP
    return Decision.BULK_PROMPT


def bulk_values(
    choice: Choice, weight: float, reps: int, planned: SetValues
) -> tuple[float, int] | None:
    """Return the ``(weight, reps)`` to write to the remaining sets."""
    if choice is Choice.DECLINE:
        return None
    if choice is Choice.APPLY_KEEP_PLANNED_REPS:
        return weight, parse_int(planned.reps) or reps
    return weight, reps
