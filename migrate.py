import json
import sqlite3
import sys


def migrate(db_path='workout.db'):
    conn = sqlite3.connect(db_path)
    cur = conn.cursor()
    cur.execute("PRAGMA table_info(workout_sessions);")
    cols = [r[1] for r in cur.fetchall()]
    if cols and 'snapshot_data' not in cols:
        cur.execute("ALTER TABLE workout_sessions ADD COLUMN snapshot_data TEXT;")
        cur.execute(
            "UPDATE workout_sessions SET snapshot_data = ?;",
            (json.dumps({"skippedExercises": []}),),
        )
    if cols and 'version' not in cols:
        cur.execute(
            "ALTER TABLE workout_sessions ADD COLUMN version INTEGER NOT NULL DEFAULT 0;"
        )
    cur.execute("PRAGMA table_info(exercise_logs);")
    cols = [r[1] for r in cur.fetchall()]
    if cols and 'exercise_key' not in cols:
        cur.execute(
            "ALTER TABLE exercise_logs ADD COLUMN exercise_key TEXT NOT NULL DEFAULT '';"
        )
    cur.execute("PRAGMA table_info(template_exercises);")
    cols = [r[1] for r in cur.fetchall()]
    if cols and 'notes' not in cols:
        cur.execute("ALTER TABLE template_exercises ADD COLUMN notes TEXT;")
    cur.execute("PRAGMA table_info(exercise_videos);")
    if not cur.fetchall():
        cur.execute(
            "CREATE TABLE exercise_videos (name TEXT PRIMARY KEY, youtube_url TEXT, video_type TEXT);"
        )
    conn.commit()
    conn.close()


if __name__ == '__main__':
    path = sys.argv[1] if len(sys.argv) > 1 else 'workout.db'
    migrate(path)
