"""Value types shared by the session runner modules.

Everything here is plain data. The runner state is a frozen dataclass so a
transition always produces a new value; ``dataclasses.replace`` is the only
way the reducer changes it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Mapping

DEFAULT_TARGET_REPS = "8-12"


class Phase(str, Enum):
    EXERCISE = "exercise"
    COMPLETING_FINAL_SET = "completing_final_set"
    REST = "rest"


class RestType(str, Enum):
    SET = "set"
    EXERCISE = "exercise"


class CompletionMark(str, Enum):
    """Optimistic completion status of a single exercise."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


Outcome = Literal["all_complete", "session_complete"]


@dataclass(frozen=True)
class PlanEntry:
    """One exercise's targets within a session."""

    exercise_name: str
    exercise_key: str
    target_sets: int
    target_reps: int | str | None = None
    target_weight: float | None = None
    order_index: int = 0

    @classmethod
    def from_dict(cls, data: Mapping) -> "PlanEntry":
        return cls(
            exercise_name=data["exercise_name"],
            exercise_key=data.get("exercise_key")
            or exercise_key_for(data["exercise_name"], data.get("order_index", 0)),
            target_sets=int(data.get("target_sets") or 0),
            target_reps=data.get("target_reps"),
            target_weight=data.get("target_weight"),
            order_index=int(data.get("order_index") or 0),
        )

    def to_dict(self) -> dict:
        return {
            "exercise_name": self.exercise_name,
            "exercise_key": self.exercise_key,
            "target_sets": self.target_sets,
            "target_reps": self.target_reps,
            "target_weight": self.target_weight,
            "order_index": self.order_index,
        }


@dataclass(frozen=True)
class SetLog:
    """One persisted attempt for an exercise position and set number.

    ``completed = False`` marks a placeholder reserving the set number.
    """

    id: int
    session_id: int
    exercise_key: str
    exercise_title: str
    exercise_order_index: int
    set_number: int
    weight: float | None = None
    reps: int | None = None
    completed: bool = False
    created_at: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping) -> "SetLog":
        return cls(
            id=int(data["id"]),
            session_id=int(data["session_id"]),
            exercise_key=data.get("exercise_key", ""),
            exercise_title=data["exercise_title"],
            exercise_order_index=int(data["exercise_order_index"]),
            set_number=int(data["set_number"]),
            weight=data.get("weight"),
            reps=data.get("reps"),
            completed=bool(data.get("completed")),
            created_at=data.get("created_at"),
        )


@dataclass(frozen=True)
class Session:
    id: int
    template_id: int | None
    session_name: str | None = None
    session_type: str = "strength"
    status: str = "pending"
    started_at: str | None = None
    completed_at: str | None = None
    snapshot_data: dict | None = None
    version: int = 0

    @property
    def skipped_exercises(self) -> object:
        if not self.snapshot_data:
            return []
        return self.snapshot_data.get("skippedExercises", [])

    @classmethod
    def from_dict(cls, data: Mapping) -> "Session":
        return cls(
            id=int(data["id"]),
            template_id=data.get("template_id"),
            session_name=data.get("session_name"),
            session_type=data.get("session_type") or "strength",
            status=data.get("status") or "pending",
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            snapshot_data=data.get("snapshot_data"),
            version=int(data.get("version") or 0),
        )


@dataclass(frozen=True)
class ServerSnapshot:
    """Everything a clean fetch returns for one session."""

    session: Session
    template_exercises: tuple[PlanEntry, ...] | None
    logs: tuple[SetLog, ...]


@dataclass(frozen=True)
class Position:
    exercise_idx: int = 0
    set_idx: int = 0


@dataclass(frozen=True)
class NextExercise:
    exercise_idx: int
    source: Literal["template", "skipped"]


@dataclass(frozen=True)
class SetValues:
    """Weight/reps as shown in the input fields (strings, may be empty)."""

    weight: str = ""
    reps: str = ""

    def as_numbers(self) -> tuple[float, int]:
        return parse_weight(self.weight), parse_int(self.reps)


@dataclass(frozen=True)
class BulkState:
    """Values accepted for propagation to the remaining sets of an exercise."""

    weight: str
    reps: str
    exercise_idx: int


@dataclass(frozen=True)
class PendingSet:
    weight: float
    reps: int


@dataclass(frozen=True)
class RunnerSettings:
    rest_time_set: int = 90
    rest_time_exercise: int = 120
    smart_rep_threshold: int = 3

    @classmethod
    def from_dict(cls, data: Mapping | None) -> "RunnerSettings":
        data = data or {}
        return cls(
            rest_time_set=int(data.get("rest_time_set", 90)),
            rest_time_exercise=int(data.get("rest_time_exercise", 120)),
            smart_rep_threshold=int(data.get("smart_rep_threshold", 3)),
        )


@dataclass(frozen=True)
class RunnerState:
    session_id: int | None
    template_id: int | None = None
    plan: tuple[PlanEntry, ...] = ()
    position: Position = Position()
    phase: Phase = Phase.EXERCISE
    rest_type: RestType = RestType.SET
    skip_queue: tuple[int, ...] = ()
    completion: Mapping[int, CompletionMark] = field(default_factory=dict)
    placeholders: Mapping[tuple[int, int], int] = field(default_factory=dict)
    logs: tuple[SetLog, ...] = ()
    bulk_state: BulkState | None = None
    pending_set: PendingSet | None = None
    previous_values: SetValues = SetValues()
    planned_values: SetValues = SetValues()
    input_values: SetValues = SetValues()
    write_pending: bool = False
    deferred_snapshot: ServerSnapshot | None = None
    outcome: Outcome | None = None

    @property
    def current_entry(self) -> PlanEntry | None:
        idx = self.position.exercise_idx
        if 0 <= idx < len(self.plan):
            return self.plan[idx]
        return None

    @property
    def is_last_set(self) -> bool:
        entry = self.current_entry
        if entry is None:
            return False
        return self.position.set_idx >= entry.target_sets - 1


def parse_int(value: object) -> int:
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return 0


def parse_weight(value: object) -> float:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0


def parse_reps(reps: int | str | None) -> str:
    """Return the first usable rep count of a rep spec as a string."""
    if reps is None:
        return ""
    if isinstance(reps, (int, float)) and not isinstance(reps, bool):
        return str(int(reps))
    text = str(reps)
    if "-" in text:
        text = text.split("-")[0]
    match = re.match(r"\s*(\d+)", text)
    return match.group(1) if match else ""


def is_time_based(reps: int | str | None) -> bool:
    value = reps if reps not in (None, "") else DEFAULT_TARGET_REPS
    if not isinstance(value, str):
        return False
    lowered = value.lower()
    return "sec" in lowered or "sekund" in lowered


def exercise_key_for(name: str, suffix: int | str) -> str:
    slug = re.sub(r"\s+", "-", name.lower())
    return f"{slug}-{suffix}"


def format_number(value: float | int | None) -> str:
    if value is None:
        return ""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def initial_values(entry: PlanEntry | None) -> SetValues:
    """Input defaults for the first set of ``entry``."""
    if entry is None:
        return SetValues()
    return SetValues(
        weight=format_number(entry.target_weight),
        reps=parse_reps(entry.target_reps),
    )
