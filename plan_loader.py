"""Rebuild the runner state from what the server knows about a session.

``reconcile`` is the only entry point used on start, resume and reload: the
in-memory plan, position, placeholders and skip queue are all derived from a
``ServerSnapshot`` so a reload never loses progress.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Iterable, Sequence

from progress_tracker import completed_count, counts_complete
from session_models import (
    PlanEntry,
    Position,
    RunnerState,
    ServerSnapshot,
    SetLog,
    initial_values,
)

logger = logging.getLogger(__name__)


def build_plan(
    template_exercises: Sequence[PlanEntry] | None, logs: Sequence[SetLog]
) -> tuple[tuple[PlanEntry, ...], bool]:
    """Return ``(plan, synthesized)``.

    With a template, entries are taken in template order and grow to absorb
    extra sets logged before a reload. Without one, one entry is synthesized
    per distinct exercise title in first-seen order.
    """
    if template_exercises:
        plan = []
        for idx, exercise in enumerate(template_exercises):
            entry = replace(exercise, order_index=idx)
            set_numbers = [
                log.set_number for log in logs if log.exercise_order_index == idx
            ]
            if set_numbers:
                entry = replace(
                    entry, target_sets=max(entry.target_sets, max(set_numbers))
                )
            plan.append(entry)
        return tuple(plan), False

    by_title: dict[str, PlanEntry] = {}
    counts: dict[str, int] = {}
    for log in logs:
        counts[log.exercise_title] = counts.get(log.exercise_title, 0) + 1
        if log.exercise_title not in by_title:
            by_title[log.exercise_title] = PlanEntry(
                exercise_name=log.exercise_title,
                exercise_key=log.exercise_key,
                target_sets=1,
                target_reps=log.reps if log.reps else "",
                target_weight=log.weight if log.weight else None,
                order_index=log.exercise_order_index,
            )
    plan = tuple(
        replace(entry, target_sets=counts[title]) for title, entry in by_title.items()
    )
    return plan, True


def localize_logs(
    plan: Sequence[PlanEntry], logs: Iterable[SetLog], synthesized: bool = False
) -> tuple[SetLog, ...]:
    """Rewrite each log's order index to its plan position.

    For a template plan positions and order indices coincide. A synthesized
    plan maps logs back through the entry's stored order index, falling back
    to the exercise title.
    """
    if not synthesized:
        return tuple(logs)
    by_index: dict[int, int] = {}
    by_title: dict[str, int] = {}
    for position, entry in enumerate(plan):
        by_index.setdefault(entry.order_index, position)
        by_title.setdefault(entry.exercise_name, position)
    localized = []
    for log in logs:
        position = by_title.get(log.exercise_title)
        if position is None:
            position = by_index.get(log.exercise_order_index, log.exercise_order_index)
        localized.append(replace(log, exercise_order_index=position))
    return tuple(localized)


def placeholder_map(logs: Iterable[SetLog]) -> dict[tuple[int, int], int]:
    """Map ``(exercise_idx, set_number)`` to the id of each uncompleted log."""
    return {
        (log.exercise_order_index, log.set_number): log.id
        for log in logs
        if not log.completed
    }


def resume_position(plan: Sequence[PlanEntry], logs: Sequence[SetLog]) -> Position:
    for idx, entry in enumerate(plan):
        done = completed_count(logs, idx)
        if done < entry.target_sets:
            return Position(idx, done)
    if plan:
        return Position(len(plan) - 1, plan[-1].target_sets)
    return Position(0, 0)


def validate_skip_queue(raw: object, plan_length: int) -> list[int]:
    """Keep in-range integer indices from a persisted skip queue."""
    if not isinstance(raw, (list, tuple)):
        return []
    valid: list[int] = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if isinstance(value, float):
            if not math.isfinite(value) or not value.is_integer():
                continue
            value = int(value)
        if 0 <= value < plan_length and value not in valid:
            valid.append(value)
    return valid


def reconcile(snapshot: ServerSnapshot) -> tuple[RunnerState, bool]:
    """Build a fresh ``RunnerState`` from ``snapshot``.

    The second item is True when the stored skip queue held completed or
    malformed entries and the cleaned queue has to be written back.
    """
    plan, synthesized = build_plan(snapshot.template_exercises, snapshot.logs)
    logs = localize_logs(plan, snapshot.logs, synthesized)
    position = resume_position(plan, logs)

    raw = snapshot.session.skipped_exercises
    valid = validate_skip_queue(raw, len(plan))
    cleaned = [idx for idx in valid if not counts_complete(plan, logs, idx)]
    stored = list(raw) if isinstance(raw, (list, tuple)) else raw
    needs_persist = stored != cleaned
    if needs_persist:
        logger.info(
            "Cleaning skip queue of session %s: %r -> %s",
            snapshot.session.id,
            stored,
            cleaned,
        )

    entry = plan[position.exercise_idx] if plan else None
    values = initial_values(entry)
    state = RunnerState(
        session_id=snapshot.session.id,
        template_id=snapshot.session.template_id,
        plan=plan,
        position=position,
        skip_queue=tuple(cleaned),
        placeholders=placeholder_map(logs),
        logs=logs,
        previous_values=values,
        planned_values=values,
        input_values=values,
    )
    return state, needs_persist
