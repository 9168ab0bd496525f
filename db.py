import sqlite3
import aiosqlite
import datetime
import json
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple

from config import YamlConfig
from settings_schema import validate_settings


class StaleVersionError(ValueError):
    """Raised when a snapshot write carries an outdated session version."""


def _now() -> str:
    return datetime.datetime.now().isoformat(timespec="seconds")


def session_row_to_dict(row: Tuple) -> dict:
    (
        sid,
        template_id,
        session_name,
        session_type,
        status,
        started_at,
        completed_at,
        snapshot,
        version,
    ) = row
    return {
        "id": sid,
        "template_id": template_id,
        "session_name": session_name,
        "session_type": session_type,
        "status": status,
        "started_at": started_at,
        "completed_at": completed_at,
        "snapshot_data": json.loads(snapshot) if snapshot else None,
        "version": version,
    }


def log_row_to_dict(row: Tuple) -> dict:
    (
        lid,
        session_id,
        exercise_key,
        exercise_title,
        order_index,
        set_number,
        weight,
        reps,
        completed,
        created_at,
    ) = row
    return {
        "id": lid,
        "session_id": session_id,
        "exercise_key": exercise_key,
        "exercise_title": exercise_title,
        "exercise_order_index": order_index,
        "set_number": set_number,
        "weight": weight,
        "reps": reps,
        "completed": bool(completed),
        "created_at": created_at,
    }


def template_exercise_row_to_dict(row: Tuple) -> dict:
    eid, exercise_key, name, order_index, sets, reps, weight, notes = row
    if isinstance(reps, str) and reps.isdigit():
        reps = int(reps)
    return {
        "id": eid,
        "exercise_key": exercise_key,
        "exercise_name": name,
        "order_index": order_index,
        "target_sets": sets,
        "target_reps": reps,
        "target_weight": weight,
        "notes": notes,
    }


_SESSION_COLUMNS = (
    "id, template_id, session_name, session_type, status, started_at, "
    "completed_at, snapshot_data, version"
)
_LOG_COLUMNS = (
    "id, session_id, exercise_key, exercise_title, exercise_order_index, "
    "set_number, weight, reps, completed, created_at"
)
_TEMPLATE_EXERCISE_COLUMNS = (
    "id, exercise_key, exercise_name, order_index, target_sets, target_reps, "
    "target_weight, notes"
)
_PLANNED_SETS_SQL = (
    "SELECT order_index, exercise_name, target_sets FROM template_exercises "
    "WHERE template_id = ? ORDER BY order_index;"
)
_COMPLETED_COUNTS_SQL = (
    "SELECT exercise_order_index, COUNT(*) FROM exercise_logs "
    "WHERE session_id = ? AND completed = 1 GROUP BY exercise_order_index;"
)


def _missing_sets(planned: List[Tuple], done: List[Tuple]) -> list[dict]:
    counts = dict(done)
    missing = []
    for order_index, name, target_sets in planned:
        completed = int(counts.get(order_index, 0))
        if completed < target_sets:
            missing.append(
                {
                    "title": name,
                    "planned_sets": target_sets,
                    "completed_sets": completed,
                }
            )
    return missing


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "program_templates": (
            """CREATE TABLE program_templates (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    template_name TEXT NOT NULL,
                    muscle_focus TEXT,
                    day_of_week INTEGER,
                    created_at TEXT
                );""",
            ["id", "template_name", "muscle_focus", "day_of_week", "created_at"],
        ),
        "template_exercises": (
            """CREATE TABLE template_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    template_id INTEGER NOT NULL,
                    exercise_key TEXT NOT NULL,
                    exercise_name TEXT NOT NULL,
                    order_index INTEGER NOT NULL,
                    target_sets INTEGER NOT NULL,
                    target_reps TEXT NOT NULL,
                    target_weight REAL,
                    notes TEXT,
                    FOREIGN KEY(template_id) REFERENCES program_templates(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "template_id",
                "exercise_key",
                "exercise_name",
                "order_index",
                "target_sets",
                "target_reps",
                "target_weight",
                "notes",
            ],
        ),
        "workout_sessions": (
            """CREATE TABLE workout_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    template_id INTEGER,
                    session_name TEXT,
                    session_type TEXT NOT NULL DEFAULT 'strength',
                    status TEXT NOT NULL DEFAULT 'pending',
                    started_at TEXT NOT NULL,
                    completed_at TEXT,
                    snapshot_data TEXT,
                    version INTEGER NOT NULL DEFAULT 0
                );""",
            [
                "id",
                "template_id",
                "session_name",
                "session_type",
                "status",
                "started_at",
                "completed_at",
                "snapshot_data",
                "version",
            ],
        ),
        "exercise_logs": (
            """CREATE TABLE exercise_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id INTEGER NOT NULL,
                    exercise_key TEXT NOT NULL,
                    exercise_title TEXT NOT NULL,
                    exercise_order_index INTEGER NOT NULL,
                    set_number INTEGER NOT NULL,
                    weight REAL,
                    reps INTEGER,
                    completed INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(session_id) REFERENCES workout_sessions(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "session_id",
                "exercise_key",
                "exercise_title",
                "exercise_order_index",
                "set_number",
                "weight",
                "reps",
                "completed",
                "created_at",
            ],
        ),
        "exercise_videos": (
            """CREATE TABLE exercise_videos (
                    name TEXT PRIMARY KEY,
                    youtube_url TEXT,
                    video_type TEXT
                );""",
            ["name", "youtube_url", "video_type"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    def __init__(self, db_path: str = "workout.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._ensure_indexes()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_indexes(self) -> None:
        with self._connection() as conn:
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_exercise_logs_position "
                "ON exercise_logs (session_id, exercise_order_index, set_number);"
            )

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "session_type":
                        return "'strength'"
                    if col == "status":
                        return "'pending'"
                    if col in ("version", "completed", "order_index"):
                        return "0"
                    if col in ("started_at", "created_at"):
                        return f"'{_now()}'"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = {
            "rest_time_set": "90",
            "rest_time_exercise": "120",
            "smart_rep_threshold": "3",
            "weight_unit": "kg",
            "language": "en",
            "api_base_url": "http://localhost:8000",
            "request_timeout": "10.0",
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def execute_count(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def execute_count(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


class TemplateRepository(BaseRepository):
    """Repository for program templates."""

    def create(
        self,
        name: str,
        muscle_focus: str | None = None,
        day_of_week: int | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO program_templates (template_name, muscle_focus, day_of_week, created_at) VALUES (?, ?, ?, ?);",
            (name, muscle_focus, day_of_week, _now()),
        )

    def fetch_detail(self, template_id: int) -> dict:
        rows = super().fetch_all(
            "SELECT id, template_name, muscle_focus, day_of_week FROM program_templates WHERE id = ?;",
            (template_id,),
        )
        if not rows:
            raise ValueError("template not found")
        tid, name, focus, day = rows[0]
        return {
            "id": tid,
            "template_name": name,
            "muscle_focus": focus,
            "day_of_week": day,
        }

    def fetch_all_templates(self) -> list[tuple[int, str]]:
        return super().fetch_all(
            "SELECT id, template_name FROM program_templates ORDER BY id;"
        )

    def delete(self, template_id: int) -> None:
        self.fetch_detail(template_id)
        self.execute(
            "DELETE FROM template_exercises WHERE template_id = ?;", (template_id,)
        )
        self.execute("DELETE FROM program_templates WHERE id = ?;", (template_id,))


class TemplateExerciseRepository(BaseRepository):
    """Repository for exercises belonging to templates."""

    def add(
        self,
        template_id: int,
        name: str,
        target_sets: int,
        target_reps: int | str,
        target_weight: float | None = None,
        exercise_key: str | None = None,
        notes: str | None = None,
    ) -> int:
        if target_sets < 0:
            raise ValueError("target_sets must be non-negative")
        rows = self.fetch_all(
            "SELECT COALESCE(MAX(order_index), -1) + 1 FROM template_exercises WHERE template_id = ?;",
            (template_id,),
        )
        order_index = int(rows[0][0]) if rows else 0
        key = exercise_key or "-".join(name.lower().split())
        return self.execute(
            "INSERT INTO template_exercises (template_id, exercise_key, exercise_name, order_index, target_sets, target_reps, target_weight, notes) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (
                template_id,
                key,
                name,
                order_index,
                target_sets,
                str(target_reps),
                target_weight,
                notes,
            ),
        )

    def fetch_for_template(self, template_id: int) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT {_TEMPLATE_EXERCISE_COLUMNS} FROM template_exercises WHERE template_id = ? ORDER BY order_index;",
            (template_id,),
        )
        return [template_exercise_row_to_dict(r) for r in rows]

    def update_targets(
        self,
        template_id: int,
        order_index: int,
        weight: float | None = None,
        reps: int | None = None,
    ) -> None:
        if weight is not None:
            self.execute(
                "UPDATE template_exercises SET target_weight = ? WHERE template_id = ? AND order_index = ?;",
                (weight, template_id, order_index),
            )
        if reps is not None:
            self.execute(
                "UPDATE template_exercises SET target_reps = ? WHERE template_id = ? AND order_index = ?;",
                (str(reps), template_id, order_index),
            )


class SessionRepository(BaseRepository):
    """Repository for workout_sessions table operations."""

    def create(
        self,
        template_id: int | None,
        session_name: str | None = None,
        session_type: str = "strength",
        started_at: str | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO workout_sessions (template_id, session_name, session_type, status, started_at, snapshot_data, version) "
            "VALUES (?, ?, ?, 'pending', ?, ?, 0);",
            (
                template_id,
                session_name,
                session_type,
                started_at or _now(),
                json.dumps({"skippedExercises": []}),
            ),
        )

    def fetch_detail(self, session_id: int) -> dict:
        rows = self.fetch_all(
            f"SELECT {_SESSION_COLUMNS} FROM workout_sessions WHERE id = ?;",
            (session_id,),
        )
        if not rows:
            raise ValueError("session not found")
        return session_row_to_dict(rows[0])

    def fetch_active(self) -> dict | None:
        rows = self.fetch_all(
            f"SELECT {_SESSION_COLUMNS} FROM workout_sessions WHERE status = 'pending' "
            "ORDER BY started_at DESC, id DESC LIMIT 1;"
        )
        return session_row_to_dict(rows[0]) if rows else None

    def update_snapshot(
        self,
        session_id: int,
        skipped_exercises: list[int],
        expected_version: int | None = None,
    ) -> int:
        """Replace the stored skip queue and return the new version."""
        current = self.fetch_detail(session_id)
        if expected_version is not None and expected_version != current["version"]:
            raise StaleVersionError(
                f"session version is {current['version']}, not {expected_version}"
            )
        snapshot = dict(current["snapshot_data"] or {})
        snapshot["skippedExercises"] = list(skipped_exercises)
        count = self.execute_count(
            "UPDATE workout_sessions SET snapshot_data = ?, version = version + 1 WHERE id = ? AND version = ?;",
            (json.dumps(snapshot), session_id, current["version"]),
        )
        if count == 0:
            raise StaleVersionError("session was modified concurrently")
        return current["version"] + 1

    def complete(self, session_id: int) -> None:
        self.fetch_detail(session_id)
        self.execute(
            "UPDATE workout_sessions SET status = 'completed', completed_at = ? WHERE id = ?;",
            (_now(), session_id),
        )

    def cancel(self, session_id: int) -> None:
        session = self.fetch_detail(session_id)
        if session["status"] != "pending":
            raise StaleVersionError("only pending sessions can be cancelled")
        self.execute(
            "UPDATE workout_sessions SET status = 'cancelled', completed_at = ? WHERE id = ?;",
            (_now(), session_id),
        )

    def missing_exercises(self, session_id: int) -> list[dict]:
        """Return template exercises with fewer completed sets than planned."""
        session = self.fetch_detail(session_id)
        if session["template_id"] is None:
            return []
        planned = self.fetch_all(_PLANNED_SETS_SQL, (session["template_id"],))
        done = self.fetch_all(_COMPLETED_COUNTS_SQL, (session_id,))
        return _missing_sets(planned, done)


class ExerciseLogRepository(BaseRepository):
    """Repository for exercise_logs table operations."""

    def add(
        self,
        session_id: int,
        exercise_key: str,
        exercise_title: str,
        exercise_order_index: int,
        set_number: int,
        reps: int | None,
        weight: float | None,
        completed: bool = False,
    ) -> int:
        if set_number <= 0:
            raise ValueError("set_number must be positive")
        if reps is not None and reps < 0:
            raise ValueError("reps must be non-negative")
        if weight is not None and weight < 0:
            raise ValueError("weight must be non-negative")
        return self.execute(
            "INSERT INTO exercise_logs (session_id, exercise_key, exercise_title, exercise_order_index, set_number, weight, reps, completed, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                session_id,
                exercise_key,
                exercise_title,
                exercise_order_index,
                set_number,
                weight,
                reps,
                int(completed),
                _now(),
            ),
        )

    def update(
        self,
        log_id: int,
        reps: int | None = None,
        weight: float | None = None,
        completed: bool | None = None,
    ) -> None:
        self.fetch_detail(log_id)
        assignments = []
        params: list = []
        if reps is not None:
            if reps < 0:
                raise ValueError("reps must be non-negative")
            assignments.append("reps = ?")
            params.append(reps)
        if weight is not None:
            if weight < 0:
                raise ValueError("weight must be non-negative")
            assignments.append("weight = ?")
            params.append(weight)
        if completed is not None:
            assignments.append("completed = ?")
            params.append(int(completed))
        if not assignments:
            return
        params.append(log_id)
        self.execute(
            f"UPDATE exercise_logs SET {', '.join(assignments)} WHERE id = ?;",
            tuple(params),
        )

    def bulk_update(
        self,
        session_id: int,
        exercise_order_index: int,
        weight: float | None = None,
        reps: int | None = None,
    ) -> int:
        """Apply weight/reps to every uncompleted set at one plan position."""
        if weight is None and reps is None:
            raise ValueError("at least one of weight or reps must be provided")
        assignments = []
        params: list = []
        if weight is not None:
            assignments.append("weight = ?")
            params.append(weight)
        if reps is not None:
            assignments.append("reps = ?")
            params.append(reps)
        params.extend([session_id, exercise_order_index])
        return self.execute_count(
            f"UPDATE exercise_logs SET {', '.join(assignments)} "
            "WHERE session_id = ? AND exercise_order_index = ? AND completed = 0;",
            tuple(params),
        )

    def fetch_detail(self, log_id: int) -> dict:
        rows = self.fetch_all(
            f"SELECT {_LOG_COLUMNS} FROM exercise_logs WHERE id = ?;",
            (log_id,),
        )
        if not rows:
            raise ValueError("exercise log not found")
        return log_row_to_dict(rows[0])

    def fetch_for_session(self, session_id: int) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT {_LOG_COLUMNS} FROM exercise_logs WHERE session_id = ? "
            "ORDER BY exercise_order_index, set_number, id;",
            (session_id,),
        )
        return [log_row_to_dict(r) for r in rows]


class ExerciseVideoRepository(BaseRepository):
    """Repository for exercise instruction videos."""

    def set(self, name: str, youtube_url: str | None, video_type: str | None) -> None:
        self.execute(
            "INSERT INTO exercise_videos (name, youtube_url, video_type) VALUES (?, ?, ?) "
            "ON CONFLICT(name) DO UPDATE SET youtube_url=excluded.youtube_url, video_type=excluded.video_type;",
            (name, youtube_url, video_type),
        )

    def fetch(self, name: str) -> dict | None:
        rows = self.fetch_all(
            "SELECT youtube_url, video_type FROM exercise_videos WHERE name = ?;",
            (name,),
        )
        if not rows:
            return None
        return {"youtube_url": rows[0][0], "video_type": rows[0][1]}


class AsyncTemplateExerciseRepository(AsyncBaseRepository):
    """Async repository for template exercise reads and target updates."""

    async def fetch_for_template(self, template_id: int) -> list[dict]:
        rows = await self.fetch_all(
            f"SELECT {_TEMPLATE_EXERCISE_COLUMNS} FROM template_exercises WHERE template_id = ? ORDER BY order_index;",
            (template_id,),
        )
        return [template_exercise_row_to_dict(r) for r in rows]

    async def template_exists(self, template_id: int) -> bool:
        rows = await self.fetch_all(
            "SELECT id FROM program_templates WHERE id = ?;", (template_id,)
        )
        return bool(rows)

    async def update_targets(
        self,
        template_id: int,
        order_index: int,
        weight: float | None = None,
        reps: int | None = None,
    ) -> None:
        if weight is not None:
            await self.execute(
                "UPDATE template_exercises SET target_weight = ? WHERE template_id = ? AND order_index = ?;",
                (weight, template_id, order_index),
            )
        if reps is not None:
            await self.execute(
                "UPDATE template_exercises SET target_reps = ? WHERE template_id = ? AND order_index = ?;",
                (str(reps), template_id, order_index),
            )


class AsyncSessionRepository(AsyncBaseRepository):
    """Async repository for workout_sessions table operations."""

    async def create(
        self,
        template_id: int | None,
        session_name: str | None = None,
        session_type: str = "strength",
        started_at: str | None = None,
    ) -> int:
        return await self.execute(
            "INSERT INTO workout_sessions (template_id, session_name, session_type, status, started_at, snapshot_data, version) "
            "VALUES (?, ?, ?, 'pending', ?, ?, 0);",
            (
                template_id,
                session_name,
                session_type,
                started_at or _now(),
                json.dumps({"skippedExercises": []}),
            ),
        )

    async def fetch_detail(self, session_id: int) -> dict:
        rows = await self.fetch_all(
            f"SELECT {_SESSION_COLUMNS} FROM workout_sessions WHERE id = ?;",
            (session_id,),
        )
        if not rows:
            raise ValueError("session not found")
        return session_row_to_dict(rows[0])

    async def fetch_active(self) -> dict | None:
        rows = await self.fetch_all(
            f"SELECT {_SESSION_COLUMNS} FROM workout_sessions WHERE status = 'pending' "
            "ORDER BY started_at DESC, id DESC LIMIT 1;"
        )
        return session_row_to_dict(rows[0]) if rows else None

    async def update_snapshot(
        self,
        session_id: int,
        skipped_exercises: list[int],
        expected_version: int | None = None,
    ) -> int:
        current = await self.fetch_detail(session_id)
        if expected_version is not None and expected_version != current["version"]:
            raise StaleVersionError(
                f"session version is {current['version']}, not {expected_version}"
            )
        snapshot = dict(current["snapshot_data"] or {})
        snapshot["skippedExercises"] = list(skipped_exercises)
        count = await self.execute_count(
            "UPDATE workout_sessions SET snapshot_data = ?, version = version + 1 WHERE id = ? AND version = ?;",
            (json.dumps(snapshot), session_id, current["version"]),
        )
        if count == 0:
            raise StaleVersionError("session was modified concurrently")
        return current["version"] + 1

    async def missing_exercises(self, session_id: int) -> list[dict]:
        session = await self.fetch_detail(session_id)
        if session["template_id"] is None:
            return []
        planned = await self.fetch_all(_PLANNED_SETS_SQL, (session["template_id"],))
        done = await self.fetch_all(_COMPLETED_COUNTS_SQL, (session_id,))
        return _missing_sets(planned, done)

    async def set_status(self, session_id: int, status: str) -> None:
        session = await self.fetch_detail(session_id)
        if status == "cancelled" and session["status"] != "pending":
            raise StaleVersionError("only pending sessions can be cancelled")
        await self.execute(
            "UPDATE workout_sessions SET status = ?, completed_at = ? WHERE id = ?;",
            (status, _now(), session_id),
        )


class AsyncExerciseLogRepository(AsyncBaseRepository):
    """Async repository for exercise_logs table operations."""

    async def add(
        self,
        session_id: int,
        exercise_key: str,
        exercise_title: str,
        exercise_order_index: int,
        set_number: int,
        reps: int | None,
        weight: float | None,
        completed: bool = False,
    ) -> int:
        if set_number <= 0:
            raise ValueError("set_number must be positive")
        return await self.execute(
            "INSERT INTO exercise_logs (session_id, exercise_key, exercise_title, exercise_order_index, set_number, weight, reps, completed, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                session_id,
                exercise_key,
                exercise_title,
                exercise_order_index,
                set_number,
                weight,
                reps,
                int(completed),
                _now(),
            ),
        )

    async def update(
        self,
        log_id: int,
        reps: int | None = None,
        weight: float | None = None,
        completed: bool | None = None,
    ) -> None:
        assignments = []
        params: list = []
        for column, value in (("reps", reps), ("weight", weight)):
            if value is not None:
                assignments.append(f"{column} = ?")
                params.append(value)
        if completed is not None:
            assignments.append("completed = ?")
            params.append(int(completed))
        if not assignments:
            return
        params.append(log_id)
        count = await self.execute_count(
            f"UPDATE exercise_logs SET {', '.join(assignments)} WHERE id = ?;",
            tuple(params),
        )
        if count == 0:
            raise ValueError("exercise log not found")

    async def bulk_update(
        self,
        session_id: int,
        exercise_order_index: int,
        weight: float | None = None,
        reps: int | None = None,
    ) -> int:
        if weight is None and reps is None:
            raise ValueError("at least one of weight or reps must be provided")
        assignments = []
        params: list = []
        for column, value in (("weight", weight), ("reps", reps)):
            if value is not None:
                assignments.append(f"{column} = ?")
                params.append(value)
        params.extend([session_id, exercise_order_index])
        return await self.execute_count(
            f"UPDATE exercise_logs SET {', '.join(assignments)} "
            "WHERE session_id = ? AND exercise_order_index = ? AND completed = 0;",
            tuple(params),
        )

    async def fetch_for_session(self, session_id: int) -> list[dict]:
        rows = await self.fetch_all(
            f"SELECT {_LOG_COLUMNS} FROM exercise_logs WHERE session_id = ? "
            "ORDER BY exercise_order_index, set_number, id;",
            (session_id,),
        )
        return [log_row_to_dict(r) for r in rows]


class AsyncExerciseVideoRepository(AsyncBaseRepository):
    """Async lookup of exercise instruction videos."""

    async def fetch(self, name: str) -> dict | None:
        rows = await self.fetch_all(
            "SELECT youtube_url, video_type FROM exercise_videos WHERE name = ?;",
            (name,),
        )
        if not rows:
            return None
        return {"youtube_url": rows[0][0], "video_type": rows[0][1]}


class SettingsRepository(BaseRepository):
    """Repository for runner settings synchronized with YAML."""

    _INT_KEYS = {"rest_time_set", "rest_time_exercise", "smart_rep_threshold"}
    _FLOAT_KEYS = {"request_timeout"}

    def __init__(
        self, db_path: str = "workout.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, float | int | str] = {}
        for k, v in rows:
            try:
                if k in self._INT_KEYS:
                    result[k] = int(float(v))
                elif k in self._FLOAT_KEYS:
                    result[k] = float(v)
                else:
                    result[k] = v
            except ValueError:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, str(value)),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def set_text(self, key: str, value: str) -> None:
        validate_settings({key: value})
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def set_int(self, key: str, value: int) -> None:
        self.set_text(key, str(value))

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        return self._raw_all_settings()

    def runner_settings(self) -> dict:
        return {
            "rest_time_set": self.get_int("rest_time_set", 90),
            "rest_time_exercise": self.get_int("rest_time_exercise", 120),
            "smart_rep_threshold": self.get_int("smart_rep_threshold", 3),
        }

    def client_settings(self) -> dict:
        """Connection options for ``client.RunnerClient``."""
        try:
            timeout = float(self.get_text("request_timeout", "10.0"))
        except ValueError:
            timeout = 10.0
        return {
            "base_url": self.get_text("api_base_url", "http://localhost:8000"),
            "timeout": timeout,
            "token": self.get_text("api_token", "") or None,
        }
