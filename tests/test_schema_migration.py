import json
import os
import sqlite3
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database, SessionRepository
from migrate import migrate


def _old_sessions_table(db_file):
    conn = sqlite3.connect(str(db_file))
    conn.execute(
        "CREATE TABLE workout_sessions (id INTEGER PRIMARY KEY AUTOINCREMENT, template_id INTEGER, status TEXT, started_at TEXT)"
    )
    conn.execute(
        "INSERT INTO workout_sessions (template_id, status, started_at) VALUES (1, 'pending', '2024-01-01T10:00:00')"
    )
    conn.commit()
    conn.close()


class TestSchemaMigration:
    def test_database_rebuilds_outdated_table(self, tmp_path):
        db_file = tmp_path / "test.db"
        _old_sessions_table(db_file)
        conn = sqlite3.connect(str(db_file))
        conn.execute("CREATE TABLE workout_sessions_old (id INTEGER)")
        conn.commit()
        conn.close()

        Database(str(db_file))

        conn = sqlite3.connect(str(db_file))
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='workout_sessions_old'"
        )
        assert cur.fetchone() is None
        cur = conn.execute("PRAGMA table_info(workout_sessions)")
        cols = [row[1] for row in cur.fetchall()]
        assert "snapshot_data" in cols
        assert "version" in cols
        conn.close()

        session = SessionRepository(str(db_file)).fetch_detail(1)
        assert session["status"] == "pending"
        assert session["session_type"] == "strength"
        assert session["version"] == 0
        assert session["snapshot_data"] is None

    def test_migrate_adds_snapshot_columns(self, tmp_path):
        db_file = tmp_path / "legacy.db"
        _old_sessions_table(db_file)
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE exercise_logs (id INTEGER PRIMARY KEY, session_id INTEGER, set_number INTEGER)"
        )
        conn.commit()
        conn.close()

        migrate(str(db_file))
        migrate(str(db_file))

        conn = sqlite3.connect(str(db_file))
        snapshot, version = conn.execute(
            "SELECT snapshot_data, version FROM workout_sessions WHERE id = 1"
        ).fetchone()
        assert json.loads(snapshot) == {"skippedExercises": []}
        assert version == 0
        cols = [r[1] for r in conn.execute("PRAGMA table_info(exercise_logs)")]
        assert "exercise_key" in cols
        tables = [
            r[0]
            for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        ]
        assert "exercise_videos" in tables
        assert "template_exercises" not in tables
        conn.close()
