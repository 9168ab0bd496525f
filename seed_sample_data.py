import logging

from db import ExerciseVideoRepository, TemplateExerciseRepository, TemplateRepository

logger = logging.getLogger(__name__)

SAMPLE_EXERCISES = [
    ("Bench Press", 3, "8-12", 60.0),
    ("Incline Dumbbell Press", 3, "10", 22.5),
    ("Cable Fly", 2, "12-15", 15.0),
    ("Plank", 3, "45 sec", None),
]


def seed(db_path: str = "workout.db") -> int | None:
    """Insert a sample push-day template; return its id, or None if templates exist."""
    templates = TemplateRepository(db_path)
    if templates.fetch_all_templates():
        logger.info("Database already contains templates")
        return None
    exercises = TemplateExerciseRepository(db_path)
    videos = ExerciseVideoRepository(db_path)
    tid = templates.create("Push Day", "chest", 1)
    for name, sets, reps, weight in SAMPLE_EXERCISES:
        exercises.add(tid, name, sets, reps, weight)
    videos.set("Bench Press", "https://www.youtube.com/watch?v=rT7DgCr-3pg", "youtube")
    logger.info("Seed template %s inserted", tid)
    return tid


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed()
