"""Async controller that drives one workout session.

The runner owns the current ``RunnerState``. Every user action awaits the
gateway as needed and then feeds what happened into ``state_machine.reduce``.
Persistence failures are reported through the notifier and leave the state
as it was before the action (or roll it back), so the action can be retried.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping

import plan_loader
from bulk_propagation import Choice, Decision, bulk_values, negotiate
from gateway import (
    ConflictError,
    GatewayError,
    IncompleteSessionError,
    MissingSessionError,
    NotFoundError,
    SessionGateway,
)
from notices import Notifier
from progress_tracker import all_exercises_complete
from session_models import (
    Phase,
    RestType,
    RunnerSettings,
    RunnerState,
    ServerSnapshot,
    SetLog,
    exercise_key_for,
    is_time_based,
    parse_int,
    parse_weight,
)
from skip_queue import SkipQueueManager
from state_machine import (
    BulkApplied,
    BulkDeclined,
    BulkRequested,
    ExerciseSkipped,
    ExtraSetAdded,
    FinalSetResolved,
    InputChanged,
    RestFinished,
    Resynced,
    SetSaved,
    SkipQueueChanged,
    WriteFinished,
    WriteStarted,
    reduce,
)

logger = logging.getLogger(__name__)


class SessionRunner:
    def __init__(
        self,
        gateway: SessionGateway,
        settings: RunnerSettings | Mapping | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.gateway = gateway
        if not isinstance(settings, RunnerSettings):
            settings = RunnerSettings.from_dict(settings)
        self.settings = settings
        self.notifier = notifier or Notifier()
        self.skips = SkipQueueManager(gateway, self.notifier)
        self.state = RunnerState(session_id=None)
        self._synthesized = False

    def dispatch(self, event: object) -> RunnerState:
        self.state = reduce(self.state, event)
        return self.state

    def _apply_queue(self, queue: tuple[int, ...]) -> None:
        self.dispatch(SkipQueueChanged(queue))

    def _require_session(self) -> int:
        if self.state.session_id is None:
            self.notifier.error("No active session", "Start or resume a session first.")
            raise MissingSessionError("no active session")
        return self.state.session_id

    # loading

    async def _load_snapshot(self, session_id: int) -> ServerSnapshot:
        session = await self.gateway.fetch_session(session_id)
        template_exercises = None
        if session.template_id is not None:
            try:
                template_exercises = await self.gateway.fetch_template(
                    session.template_id
                )
            except NotFoundError:
                logger.info(
                    "Template %s of session %s is gone, rebuilding plan from logs",
                    session.template_id,
                    session_id,
                )
        logs = await self.gateway.fetch_session_logs(session_id, fresh=True)
        return ServerSnapshot(session, template_exercises, logs)

    async def start(
        self,
        template_id: int | None,
        session_name: str | None = None,
        session_type: str = "strength",
    ) -> RunnerState:
        """Resume the pending session for ``template_id`` or create a new one."""
        active = await self.gateway.fetch_active_session()
        if active is not None and active.template_id == template_id:
            logger.info("Resuming pending session %s", active.id)
            return await self.resume(active.id)
        session_id = await self.gateway.create_session(
            template_id, session_name, session_type
        )
        logger.info("Started session %s from template %s", session_id, template_id)
        return await self.resume(session_id)

    async def resume(self, session_id: int) -> RunnerState:
        snapshot = await self._load_snapshot(session_id)
        state, needs_persist = plan_loader.reconcile(snapshot)
        self.state = state
        self._synthesized = not snapshot.template_exercises
        self.skips.bind(session_id, snapshot.session.version)
        if needs_persist:
            stored = plan_loader.validate_skip_queue(
                snapshot.session.skipped_exercises, len(state.plan)
            )
            await self.skips.reconcile(stored, state.skip_queue, self._apply_queue)
        return self.state

    async def resync(self) -> RunnerState:
        """Refetch everything from the server and merge it into the state."""
        session_id = self._require_session()
        snapshot = await self._load_snapshot(session_id)
        fresh, needs_persist = plan_loader.reconcile(snapshot)
        self._synthesized = not snapshot.template_exercises
        self.skips.bind(session_id, snapshot.session.version)
        self.dispatch(Resynced(snapshot))
        if needs_persist and self.state.deferred_snapshot is None:
            stored = plan_loader.validate_skip_queue(
                snapshot.session.skipped_exercises, len(fresh.plan)
            )
            await self.skips.reconcile(stored, fresh.skip_queue, self._apply_queue)
        return self.state

    async def _resync_after_conflict(self) -> None:
        try:
            await self.resync()
        except GatewayError as e:
            logger.warning("Resync after conflict failed: %s", e)

    # set logging

    def set_input(self, weight: str | None = None, reps: str | None = None) -> None:
        self.dispatch(InputChanged(weight, reps))

    async def complete_set(
        self, weight: float | str | None = None, reps: int | str | None = None
    ) -> Decision | None:
        """Handle the "complete set" action.

        Returns the negotiator's decision, or None when nothing was done.
        ``SAVE_ONLY`` sets are saved right away; the other decisions leave the
        set pending until ``resolve_bulk`` is called.
        """
        self._require_session()
        state = self.state
        entry = state.current_entry
        if state.write_pending or entry is None or state.phase is not Phase.EXERCISE:
            return None
        if state.position.set_idx >= entry.target_sets:
            return None
        weight = parse_weight(state.input_values.weight if weight is None else weight)
        reps = parse_int(state.input_values.reps if reps is None else reps)
        if reps == 0 and not is_time_based(entry.target_reps):
            self.notifier.error("Enter reps", "Reps must be greater than zero.")
            return None

        decision = negotiate(
            entry,
            state.is_last_set,
            weight,
            reps,
            state.previous_values,
            state.planned_values,
            self.settings.smart_rep_threshold,
        )
        if decision is Decision.SAVE_ONLY:
            await self.complete_single_set(weight, reps)
        else:
            logger.debug("Session %s: %s for %s", state.session_id, decision.value, entry.exercise_name)
            self.dispatch(BulkRequested(weight, reps))
        return decision

    async def complete_single_set(self, weight: float, reps: int) -> bool:
        """Save the current set; return True when the session is complete."""
        _, session_complete = await self._complete(weight, reps)
        return session_complete

    async def _complete(self, weight: float, reps: int) -> tuple[bool, bool]:
        session_id = self._require_session()
        if self.state.write_pending:
            logger.debug("Session %s: ignoring set while a write is pending", session_id)
            return False, False
        entry = self.state.current_entry
        if entry is None or self.state.phase is not Phase.EXERCISE:
            return False, False

        self.dispatch(WriteStarted())
        try:
            try:
                log = await self._save_set(session_id, weight, reps)
            except GatewayError as e:
                logger.warning("Could not save set for session %s: %s", session_id, e)
                self.notifier.error("Could not save set", str(e))
                return False, False

            was_last = self.state.is_last_set
            queue_before = self.state.skip_queue
            idx = self.state.position.exercise_idx
            self.dispatch(SetSaved(log, weight, reps))
            if not was_last:
                return True, False

            if idx in queue_before:
                await self.skips.remove(queue_before, idx, self._apply_queue)
            session_complete = await self._check_session_complete(session_id)
            return True, session_complete
        finally:
            self.dispatch(WriteFinished())

    async def _save_set(self, session_id: int, weight: float, reps: int) -> SetLog:
        state = self.state
        entry = state.current_entry
        idx = state.position.exercise_idx
        set_number = state.position.set_idx + 1
        placeholder_id = state.placeholders.get((idx, set_number))
        if placeholder_id is not None:
            await self.gateway.update_set_log(
                placeholder_id, reps=reps, weight=weight, completed=True
            )
            for log in state.logs:
                if log.id == placeholder_id:
                    return replace(log, weight=weight, reps=reps, completed=True)
            log_id = placeholder_id
        else:
            log_id = await self.gateway.create_set_log(
                session_id,
                exercise_key_for(entry.exercise_name, state.position.set_idx),
                entry.exercise_name,
                entry.order_index,
                set_number,
                reps,
                weight,
                True,
            )
        return SetLog(
            id=log_id,
            session_id=session_id,
            exercise_key=exercise_key_for(entry.exercise_name, state.position.set_idx),
            exercise_title=entry.exercise_name,
            exercise_order_index=idx,
            set_number=set_number,
            weight=weight,
            reps=reps,
            completed=True,
        )

    async def _check_session_complete(self, session_id: int) -> bool:
        try:
            fresh = await self.gateway.fetch_session_logs(session_id, fresh=True)
        except GatewayError as e:
            logger.warning(
                "Fresh log fetch failed for session %s, continuing to rest: %s",
                session_id,
                e,
            )
            self.dispatch(FinalSetResolved(session_complete=False))
            return False
        logs = plan_loader.localize_logs(self.state.plan, fresh, self._synthesized)
        session_complete = all_exercises_complete(self.state.plan, logs)
        if session_complete:
            logger.info("Session %s: all exercises complete", session_id)
        self.dispatch(FinalSetResolved(session_complete, logs))
        return session_complete

    async def resolve_bulk(self, choice: Choice) -> bool:
        """Answer a pending propagation prompt; return True when applied."""
        session_id = self._require_session()
        pending = self.state.pending_set
        if pending is None:
            return False
        if choice is Choice.DECLINE:
            saved, _ = await self._complete(pending.weight, pending.reps)
            if saved:
                self.dispatch(BulkDeclined())
            return False

        values = bulk_values(choice, pending.weight, pending.reps, self.state.planned_values)
        idx = self.state.position.exercise_idx
        entry = self.state.current_entry
        saved, _ = await self._complete(pending.weight, pending.reps)
        if not saved:
            return False

        weight, reps = values
        try:
            await self.gateway.bulk_update_set_logs(
                session_id, entry.order_index, weight=weight, reps=reps
            )
        except GatewayError as e:
            logger.warning("Bulk update failed for session %s: %s", session_id, e)
            self.notifier.error("Could not update remaining sets", str(e))
            self.dispatch(BulkDeclined())
            return False
        self.dispatch(BulkApplied(weight, reps, idx))
        self.notifier.info(
            "Remaining sets updated", f"{entry.exercise_name}: {weight:g} x {reps}"
        )
        return True

    # rest

    def rest_seconds(self) -> int:
        if self.state.rest_type is RestType.EXERCISE:
            return self.settings.rest_time_exercise
        return self.settings.rest_time_set

    def finish_rest(self) -> RunnerState:
        return self.dispatch(RestFinished())

    def skip_rest(self) -> RunnerState:
        logger.debug("Session %s: rest skipped", self.state.session_id)
        return self.dispatch(RestFinished())

    # exercise level actions

    async def skip_exercise(self) -> bool:
        self._require_session()
        state = self.state
        if state.write_pending or state.current_entry is None:
            return False
        ok = await self.skips.add(
            state.skip_queue, state.position.exercise_idx, self._apply_queue
        )
        if not ok:
            if isinstance(self.skips.last_error, ConflictError):
                await self._resync_after_conflict()
            return False
        self.dispatch(ExerciseSkipped())
        return True

    async def add_extra_set(self) -> bool:
        session_id = self._require_session()
        entry = self.state.current_entry
        if entry is None or self.state.write_pending:
            return False
        set_number = entry.target_sets + 1
        key = exercise_key_for(entry.exercise_name, set_number)
        try:
            log_id = await self.gateway.create_set_log(
                session_id,
                key,
                entry.exercise_name,
                entry.order_index,
                set_number,
                0,
                0.0,
                False,
            )
        except GatewayError as e:
            logger.warning("Could not add set for session %s: %s", session_id, e)
            self.notifier.error("Could not add set", str(e))
            return False
        log = SetLog(
            id=log_id,
            session_id=session_id,
            exercise_key=key,
            exercise_title=entry.exercise_name,
            exercise_order_index=self.state.position.exercise_idx,
            set_number=set_number,
            weight=0.0,
            reps=0,
            completed=False,
        )
        self.dispatch(ExtraSetAdded(log))
        self.notifier.info("Set added", f"{entry.exercise_name} now has {set_number} sets")
        return True

    # session level actions

    async def finish_session(self) -> bool:
        session_id = self._require_session()
        try:
            await self.gateway.complete_session(session_id)
        except IncompleteSessionError as e:
            titles = ", ".join(m["title"] for m in e.missing)
            logger.info("Session %s not finished, missing: %s", session_id, titles)
            self.notifier.error("Could not finish workout", f"Unfinished: {titles}")
            return False
        except GatewayError as e:
            logger.warning("Could not complete session %s: %s", session_id, e)
            self.notifier.error("Could not finish workout", str(e))
            return False
        self.notifier.info("Workout complete")
        return True

    async def cancel_session(self) -> bool:
        session_id = self._require_session()
        try:
            await self.gateway.cancel_session(session_id)
        except ConflictError:
            self.notifier.error("Session already finished")
            return False
        except GatewayError as e:
            logger.warning("Could not cancel session %s: %s", session_id, e)
            self.notifier.error("Could not cancel workout", str(e))
            return False
        logger.info("Session %s cancelled", session_id)
        return True

    async def exercise_video(self) -> dict | None:
        entry = self.state.current_entry
        if entry is None:
            return None
        try:
            return await self.gateway.fetch_exercise_video(entry.exercise_name)
        except GatewayError as e:
            logger.warning("Video lookup for %s failed: %s", entry.exercise_name, e)
            return None
