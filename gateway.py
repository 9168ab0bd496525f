"""Persistence boundary consumed by the session runner.

``SessionGateway`` lists the operations the runner needs. ``RepositoryGateway``
serves them in-process from the aiosqlite repositories in ``db.py``;
``client.RunnerClient`` serves them over HTTP from ``rest_api.py``.
"""

from __future__ import annotations

import logging
import sqlite3
from functools import wraps
from typing import Protocol, Sequence

from db import (
    AsyncExerciseLogRepository,
    AsyncExerciseVideoRepository,
    AsyncSessionRepository,
    AsyncTemplateExerciseRepository,
    StaleVersionError,
)
from session_models import PlanEntry, Session, SetLog

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """A persistence operation failed."""


class ConflictError(GatewayError):
    """The session changed underneath us (stale version or wrong status)."""


class NotFoundError(GatewayError):
    pass


class IncompleteSessionError(GatewayError):
    """Completion refused because planned sets are still missing."""

    def __init__(self, missing: list[dict]) -> None:
        super().__init__("session has incomplete exercises")
        self.missing = missing


class MissingSessionError(Exception):
    """An action needs an active session and there is none."""


class SessionGateway(Protocol):
    async def create_session(
        self,
        template_id: int | None,
        session_name: str | None = None,
        session_type: str = "strength",
        started_at: str | None = None,
    ) -> int: ...

    async def fetch_template(self, template_id: int) -> tuple[PlanEntry, ...]: ...

    async def fetch_session(self, session_id: int) -> Session: ...

    async def fetch_active_session(self) -> Session | None: ...

    async def fetch_session_logs(
        self, session_id: int, fresh: bool = False
    ) -> tuple[SetLog, ...]: ...

    async def create_set_log(
        self,
        session_id: int,
        exercise_key: str,
        exercise_title: str,
        exercise_order_index: int,
        set_number: int,
        reps: int | None,
        weight: float | None,
        completed: bool,
    ) -> int: ...

    async def update_set_log(
        self,
        log_id: int,
        reps: int | None = None,
        weight: float | None = None,
        completed: bool | None = None,
    ) -> None: ...

    async def bulk_update_set_logs(
        self,
        session_id: int,
        exercise_order_index: int,
        weight: float | None = None,
        reps: int | None = None,
    ) -> int: ...

    async def patch_session_snapshot(
        self,
        session_id: int,
        skipped_exercises: Sequence[int],
        expected_version: int | None = None,
    ) -> int: ...

    async def fetch_exercise_video(self, exercise_name: str) -> dict | None: ...

    async def complete_session(self, session_id: int) -> None: ...

    async def cancel_session(self, session_id: int) -> None: ...


def _translate_errors(func):
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except StaleVersionError as e:
            raise ConflictError(str(e)) from e
        except ValueError as e:
            if "not found" in str(e):
                raise NotFoundError(str(e)) from e
            raise GatewayError(str(e)) from e
        except sqlite3.Error as e:
            logger.exception("Database error in %s", func.__name__)
            raise GatewayError(str(e)) from e

    return wrapper


class RepositoryGateway:
    """``SessionGateway`` backed directly by the SQLite database."""

    def __init__(self, db_path: str = "workout.db") -> None:
        self.sessions = AsyncSessionRepository(db_path)
        self.logs = AsyncExerciseLogRepository(db_path)
        self.template_exercises = AsyncTemplateExerciseRepository(db_path)
        self.videos = AsyncExerciseVideoRepository(db_path)

    @_translate_errors
    async def create_session(
        self,
        template_id: int | None,
        session_name: str | None = None,
        session_type: str = "strength",
        started_at: str | None = None,
    ) -> int:
        return await self.sessions.create(
            template_id, session_name, session_type, started_at
        )

    @_translate_errors
    async def fetch_template(self, template_id: int) -> tuple[PlanEntry, ...]:
        if not await self.template_exercises.template_exists(template_id):
            raise ValueError("template not found")
        rows = await self.template_exercises.fetch_for_template(template_id)
        return tuple(PlanEntry.from_dict(r) for r in rows)

    @_translate_errors
    async def fetch_session(self, session_id: int) -> Session:
        return Session.from_dict(await self.sessions.fetch_detail(session_id))

    @_translate_errors
    async def fetch_active_session(self) -> Session | None:
        data = await self.sessions.fetch_active()
        return Session.from_dict(data) if data else None

    @_translate_errors
    async def fetch_session_logs(
        self, session_id: int, fresh: bool = False
    ) -> tuple[SetLog, ...]:
        rows = await self.logs.fetch_for_session(session_id)
        return tuple(SetLog.from_dict(r) for r in rows)

    @_translate_errors
    async def create_set_log(
        self,
        session_id: int,
        exercise_key: str,
        exercise_title: str,
        exercise_order_index: int,
        set_number: int,
        reps: int | None,
        weight: float | None,
        completed: bool,
    ) -> int:
        return await self.logs.add(
            session_id,
            exercise_key,
            exercise_title,
            exercise_order_index,
            set_number,
            reps,
            weight,
            completed,
        )

    @_translate_errors
    async def update_set_log(
        self,
        log_id: int,
        reps: int | None = None,
        weight: float | None = None,
        completed: bool | None = None,
    ) -> None:
        await self.logs.update(log_id, reps=reps, weight=weight, completed=completed)

    @_translate_errors
    async def bulk_update_set_logs(
        self,
        session_id: int,
        exercise_order_index: int,
        weight: float | None = None,
        reps: int | None = None,
    ) -> int:
        session = await self.sessions.fetch_detail(session_id)
        updated = await self.logs.bulk_update(
            session_id, exercise_order_index, weight=weight, reps=reps
        )
        if session["template_id"] is not None:
            await self.template_exercises.update_targets(
                session["template_id"], exercise_order_index, weight=weight, reps=reps
            )
        return updated

    @_translate_errors
    async def patch_session_snapshot(
        self,
        session_id: int,
        skipped_exercises: Sequence[int],
        expected_version: int | None = None,
    ) -> int:
        return await self.sessions.update_snapshot(
            session_id, list(skipped_exercises), expected_version
        )

    @_translate_errors
    async def fetch_exercise_video(self, exercise_name: str) -> dict | None:
        return await self.videos.fetch(exercise_name)

    @_translate_errors
    async def complete_session(self, session_id: int) -> None:
        missing = await self.sessions.missing_exercises(session_id)
        if missing:
            raise IncompleteSessionError(missing)
        await self.sessions.set_status(session_id, "completed")

    @_translate_errors
    async def cancel_session(self, session_id: int) -> None:
        await self.sessions.set_status(session_id, "cancelled")
