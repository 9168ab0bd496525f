import logging
from typing import Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException

from db import (
    ExerciseLogRepository,
    ExerciseVideoRepository,
    SessionRepository,
    SettingsRepository,
    StaleVersionError,
    TemplateExerciseRepository,
    TemplateRepository,
)

logger = logging.getLogger(__name__)


class RunnerAPI:
    """Provides REST endpoints backing the workout session runner."""

    def __init__(
        self,
        db_path: str = "workout.db",
        yaml_path: str = "settings.yaml",
        api_token: str | None = None,
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path)
        self.sessions = SessionRepository(db_path)
        self.logs = ExerciseLogRepository(db_path)
        self.templates = TemplateRepository(db_path)
        self.template_exercises = TemplateExerciseRepository(db_path)
        self.videos = ExerciseVideoRepository(db_path)
        self.api_token = api_token or self.settings.get_text("api_token", "") or None
        self.app = FastAPI(
            title="Session Runner API",
            description="Persistence boundary for active workout sessions.",
            dependencies=[Depends(self._check_token)],
        )
        self._setup_routes()

    def _check_token(self, x_api_token: Optional[str] = Header(None)) -> None:
        if self.api_token and x_api_token != self.api_token:
            raise HTTPException(status_code=401, detail="invalid api token")

    def _session_or_404(self, session_id: int) -> dict:
        try:
            return self.sessions.fetch_detail(session_id)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))

    def _setup_routes(self) -> None:
        @self.app.get("/health")
        def health():
            self.sessions.fetch_active()
            return {"status": "ok"}

        @self.app.post("/templates")
        def create_template(
            name: str,
            muscle_focus: str = None,
            day_of_week: int = None,
        ):
            tid = self.templates.create(name, muscle_focus, day_of_week)
            return {"id": tid}

        @self.app.get("/templates")
        def list_templates():
            return [
                {"id": tid, "template_name": name}
                for tid, name in self.templates.fetch_all_templates()
            ]

        @self.app.get("/templates/{template_id}")
        def get_template(template_id: int):
            try:
                detail = self.templates.fetch_detail(template_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            detail["exercises"] = self.template_exercises.fetch_for_template(
                template_id
            )
            return detail

        @self.app.post("/templates/{template_id}/exercises")
        def add_template_exercise(
            template_id: int,
            name: str,
            target_sets: int,
            target_reps: str = "8-12",
            target_weight: float = None,
            exercise_key: str = None,
            notes: str = None,
        ):
            try:
                self.templates.fetch_detail(template_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            try:
                eid = self.template_exercises.add(
                    template_id,
                    name,
                    target_sets,
                    target_reps,
                    target_weight,
                    exercise_key,
                    notes,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": eid}

        @self.app.post("/sessions")
        def create_session(
            template_id: int = None,
            session_name: str = None,
            session_type: str = "strength",
            started_at: str = None,
        ):
            if template_id is not None:
                try:
                    self.templates.fetch_detail(template_id)
                except ValueError as e:
                    raise HTTPException(status_code=404, detail=str(e))
            sid = self.sessions.create(
                template_id, session_name, session_type, started_at
            )
            logger.info("Created session %s (template %s)", sid, template_id)
            return {"id": sid}

        @self.app.get("/sessions/active")
        def active_session():
            return self.sessions.fetch_active()

        @self.app.get("/sessions/{session_id}")
        def get_session(session_id: int):
            return self._session_or_404(session_id)

        @self.app.get("/sessions/{session_id}/details")
        def session_details(session_id: int):
            session = self._session_or_404(session_id)
            session["logs"] = self.logs.fetch_for_session(session_id)
            return session

        @self.app.patch("/sessions/{session_id}/snapshot")
        def patch_snapshot(
            session_id: int,
            payload: dict = Body(...),
            expected_version: int = None,
        ):
            skipped = payload.get("skippedExercises")
            if not isinstance(skipped, list) or not all(
                isinstance(i, int) and not isinstance(i, bool) for i in skipped
            ):
                raise HTTPException(
                    status_code=400, detail="skippedExercises must be a list of integers"
                )
            self._session_or_404(session_id)
            try:
                version = self.sessions.update_snapshot(
                    session_id, skipped, expected_version
                )
            except StaleVersionError as e:
                logger.info("Rejected stale snapshot for session %s: %s", session_id, e)
                raise HTTPException(status_code=409, detail=str(e))
            return {"skippedExercises": skipped, "version": version}

        @self.app.post("/sessions/{session_id}/complete")
        def complete_session(session_id: int, force: bool = False):
            self._session_or_404(session_id)
            missing = self.sessions.missing_exercises(session_id)
            if missing and not force:
                raise HTTPException(
                    status_code=400,
                    detail={
                        "message": "session has incomplete exercises",
                        "missing_exercises": missing,
                    },
                )
            self.sessions.complete(session_id)
            return {"status": "completed"}

        @self.app.patch("/sessions/{session_id}/cancel")
        def cancel_session(session_id: int):
            self._session_or_404(session_id)
            try:
                self.sessions.cancel(session_id)
            except StaleVersionError as e:
                raise HTTPException(status_code=409, detail=str(e))
            return {"status": "cancelled"}

        @self.app.get("/sessions/{session_id}/logs")
        def list_logs(session_id: int):
            self._session_or_404(session_id)
            return self.logs.fetch_for_session(session_id)

        @self.app.post("/sessions/{session_id}/logs")
        def create_log(
            session_id: int,
            exercise_key: str,
            exercise_title: str,
            exercise_order_index: int,
            set_number: int,
            reps: int = None,
            weight: float = None,
            completed: bool = False,
        ):
            self._session_or_404(session_id)
            try:
                lid = self.logs.add(
                    session_id,
                    exercise_key,
                    exercise_title,
                    exercise_order_index,
                    set_number,
                    reps,
                    weight,
                    completed,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": lid}

        @self.app.post("/sessions/{session_id}/logs/{order_index}/bulk-update")
        def bulk_update_logs(
            session_id: int,
            order_index: int,
            weight: float = None,
            reps: int = None,
        ):
            session = self._session_or_404(session_id)
            try:
                updated = self.logs.bulk_update(
                    session_id, order_index, weight=weight, reps=reps
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            if session["template_id"] is not None:
                self.template_exercises.update_targets(
                    session["template_id"], order_index, weight=weight, reps=reps
                )
            return {"updated": updated}

        @self.app.patch("/logs/{log_id}")
        def update_log(
            log_id: int,
            reps: int = None,
            weight: float = None,
            completed: bool = None,
        ):
            try:
                self.logs.fetch_detail(log_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            try:
                self.logs.update(log_id, reps=reps, weight=weight, completed=completed)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"status": "updated"}

        @self.app.get("/exercises/video")
        def exercise_video(name: str):
            video = self.videos.fetch(name)
            if video is None:
                return {"youtube_url": None, "video_type": None}
            return video

        @self.app.put("/exercises/video")
        def set_exercise_video(name: str, youtube_url: str, video_type: str = "youtube"):
            self.videos.set(name, youtube_url, video_type)
            return {"status": "saved"}

        @self.app.get("/settings")
        def get_settings():
            data = self.settings.all_settings()
            data.pop("api_token", None)
            return data

        @self.app.put("/settings/{key}")
        def update_setting(key: str, value: str):
            try:
                self.settings.set_text(key, value)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"status": "updated"}


api = RunnerAPI()
app = api.app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app)
