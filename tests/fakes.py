import asyncio
import os
import sys
from dataclasses import replace

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from gateway import ConflictError, GatewayError, IncompleteSessionError, NotFoundError
from session_models import PlanEntry, Session, SetLog


def entry(name, sets, reps=10, weight=50.0, order_index=0):
    return PlanEntry(
        exercise_name=name,
        exercise_key=name.lower().replace(" ", "-"),
        target_sets=sets,
        target_reps=reps,
        target_weight=weight,
        order_index=order_index,
    )


class FakeGateway:
    """In-memory ``SessionGateway`` that records calls and can be told to fail."""

    def __init__(self):
        self.templates = {}
        self.sessions = {}
        self.logs = {}
        self.videos = {}
        self.calls = []
        self.failures = {}
        self._next_template = 1
        self._next_session = 1
        self._next_log = 1

    def fail(self, method, exc=None):
        self.failures[method] = exc or GatewayError(f"{method} failed")

    def recover(self, method):
        self.failures.pop(method, None)

    def calls_to(self, method):
        return [args for name, args in self.calls if name == method]

    async def _enter(self, method, *args):
        self.calls.append((method, args))
        await asyncio.sleep(0)
        if method in self.failures:
            raise self.failures[method]

    def add_template(self, entries):
        tid = self._next_template
        self._next_template += 1
        self.templates[tid] = tuple(
            replace(e, order_index=i) for i, e in enumerate(entries)
        )
        return tid

    def add_session(self, template_id, skipped=None, status="pending"):
        sid = self._next_session
        self._next_session += 1
        self.sessions[sid] = Session(
            id=sid,
            template_id=template_id,
            status=status,
            started_at="2024-01-01T10:00:00",
            snapshot_data={"skippedExercises": list(skipped or [])},
        )
        return sid

    def add_log(self, session_id, title, order_index, set_number, weight=50.0, reps=10, completed=True):
        lid = self._next_log
        self._next_log += 1
        self.logs[lid] = SetLog(
            id=lid,
            session_id=session_id,
            exercise_key=f"{title.lower()}-{set_number - 1}",
            exercise_title=title,
            exercise_order_index=order_index,
            set_number=set_number,
            weight=weight,
            reps=reps,
            completed=completed,
        )
        return lid

    def session_logs(self, session_id):
        return sorted(
            (log for log in self.logs.values() if log.session_id == session_id),
            key=lambda log: (log.exercise_order_index, log.set_number, log.id),
        )

    async def create_session(self, template_id, session_name=None, session_type="strength", started_at=None):
        await self._enter("create_session", template_id, session_name)
        return self.add_session(template_id)

    async def fetch_template(self, template_id):
        await self._enter("fetch_template", template_id)
        if template_id not in self.templates:
            raise NotFoundError("template not found")
        return self.templates[template_id]

    async def fetch_session(self, session_id):
        await self._enter("fetch_session", session_id)
        if session_id not in self.sessions:
            raise NotFoundError("session not found")
        return self.sessions[session_id]

    async def fetch_active_session(self):
        await self._enter("fetch_active_session")
        pending = [s for s in self.sessions.values() if s.status == "pending"]
        return pending[-1] if pending else None

    async def fetch_session_logs(self, session_id, fresh=False):
        await self._enter("fetch_session_logs", session_id, fresh)
        return tuple(self.session_logs(session_id))

    async def create_set_log(self, session_id, exercise_key, exercise_title, exercise_order_index, set_number, reps, weight, completed):
        await self._enter(
            "create_set_log",
            session_id,
            exercise_key,
            exercise_title,
            exercise_order_index,
            set_number,
            reps,
            weight,
            completed,
        )
        lid = self.add_log(session_id, exercise_title, exercise_order_index, set_number, weight, reps, completed)
        self.logs[lid] = replace(self.logs[lid], exercise_key=exercise_key)
        return lid

    async def update_set_log(self, log_id, reps=None, weight=None, completed=None):
        await self._enter("update_set_log", log_id, reps, weight, completed)
        log = self.logs[log_id]
        self.logs[log_id] = replace(
            log,
            reps=log.reps if reps is None else reps,
            weight=log.weight if weight is None else weight,
            completed=log.completed if completed is None else completed,
        )

    async def bulk_update_set_logs(self, session_id, exercise_order_index, weight=None, reps=None):
        await self._enter("bulk_update_set_logs", session_id, exercise_order_index, weight, reps)
        updated = 0
        for log in self.session_logs(session_id):
            if log.exercise_order_index == exercise_order_index and not log.completed:
                self.logs[log.id] = replace(
                    log,
                    weight=log.weight if weight is None else weight,
                    reps=log.reps if reps is None else reps,
                )
                updated += 1
        return updated

    async def patch_session_snapshot(self, session_id, skipped_exercises, expected_version=None):
        await self._enter("patch_session_snapshot", session_id, list(skipped_exercises), expected_version)
        session = self.sessions[session_id]
        if expected_version is not None and expected_version != session.version:
            raise ConflictError("stale version")
        self.sessions[session_id] = replace(
            session,
            snapshot_data={"skippedExercises": list(skipped_exercises)},
            version=session.version + 1,
        )
        return session.version + 1

    async def fetch_exercise_video(self, exercise_name):
        await self._enter("fetch_exercise_video", exercise_name)
        return self.videos.get(exercise_name)

    async def complete_session(self, session_id):
        await self._enter("complete_session", session_id)
        session = self.sessions[session_id]
        done = {}
        for log in self.session_logs(session_id):
            if log.completed:
                done[log.exercise_order_index] = done.get(log.exercise_order_index, 0) + 1
        missing = [
            {
                "title": e.exercise_name,
                "planned_sets": e.target_sets,
                "completed_sets": done.get(e.order_index, 0),
            }
            for e in self.templates.get(session.template_id, ())
            if done.get(e.order_index, 0) < e.target_sets
        ]
        if missing:
            raise IncompleteSessionError(missing)
        self.sessions[session_id] = replace(session, status="completed")

    async def cancel_session(self, session_id):
        await self._enter("cancel_session", session_id)
        session = self.sessions[session_id]
        if session.status != "pending":
            raise ConflictError("only pending sessions can be cancelled")
        self.sessions[session_id] = replace(session, status="cancelled")
