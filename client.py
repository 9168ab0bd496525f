import logging
from typing import Sequence

import httpx

from gateway import ConflictError, GatewayError, IncompleteSessionError, NotFoundError
from session_models import PlanEntry, Session, SetLog

logger = logging.getLogger(__name__)


def _params(**values) -> dict:
    return {k: v for k, v in values.items() if v is not None}


def _error_body(resp: httpx.Response) -> object:
    try:
        data = resp.json()
    except ValueError:
        return resp.text
    if isinstance(data, dict) and "detail" in data:
        return data["detail"]
    return data


def _detail(body: object) -> str:
    if isinstance(body, dict):
        return str(body.get("message", body))
    return str(body)


class RunnerClient:
    """Async REST client for the session runner API.

    Implements the ``SessionGateway`` operations. Session logs are cached per
    session until a write touches them; ``fresh=True`` always refetches.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        token: str | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {"X-API-Token": token} if token else None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers=headers,
        )
        self._log_cache: dict[int, tuple[SetLog, ...]] = {}

    async def __aenter__(self) -> "RunnerClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs):
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            body = _error_body(e.response)
            detail = _detail(body)
            logger.debug("%s %s -> %s: %s", method, path, status, detail)
            if status == 409:
                raise ConflictError(detail) from e
            if status == 404:
                raise NotFoundError(detail) from e
            if isinstance(body, dict) and "missing_exercises" in body:
                raise IncompleteSessionError(body["missing_exercises"]) from e
            raise GatewayError(detail) from e
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise GatewayError(str(e)) from e
        return resp.json()

    async def health(self) -> dict:
        return await self._request("GET", "/health")

    async def create_session(
        self,
        template_id: int | None,
        session_name: str | None = None,
        session_type: str = "strength",
        started_at: str | None = None,
    ) -> int:
        data = await self._request(
            "POST",
            "/sessions",
            params=_params(
                template_id=template_id,
                session_name=session_name,
                session_type=session_type,
                started_at=started_at,
            ),
        )
        return data["id"]

    async def fetch_template(self, template_id: int) -> tuple[PlanEntry, ...]:
        data = await self._request("GET", f"/templates/{template_id}")
        return tuple(PlanEntry.from_dict(e) for e in data["exercises"])

    async def fetch_session(self, session_id: int) -> Session:
        return Session.from_dict(await self._request("GET", f"/sessions/{session_id}"))

    async def fetch_active_session(self) -> Session | None:
        data = await self._request("GET", "/sessions/active")
        return Session.from_dict(data) if data else None

    async def fetch_session_logs(
        self, session_id: int, fresh: bool = False
    ) -> tuple[SetLog, ...]:
        if not fresh and session_id in self._log_cache:
            return self._log_cache[session_id]
        data = await self._request(
            "GET",
            f"/sessions/{session_id}/logs",
            headers={"Cache-Control": "no-cache"} if fresh else None,
        )
        logs = tuple(SetLog.from_dict(r) for r in data)
        self._log_cache[session_id] = logs
        return logs

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
        self._log_cache.pop(session_id, None)
        data = await self._request(
            "POST",
            f"/sessions/{session_id}/logs",
            params=_params(
                exercise_key=exercise_key,
                exercise_title=exercise_title,
                exercise_order_index=exercise_order_index,
                set_number=set_number,
                reps=reps,
                weight=weight,
                completed=completed,
            ),
        )
        return data["id"]

    async def update_set_log(
        self,
        log_id: int,
        reps: int | None = None,
        weight: float | None = None,
        completed: bool | None = None,
    ) -> None:
        self._log_cache.clear()
        await self._request(
            "PATCH",
            f"/logs/{log_id}",
            params=_params(reps=reps, weight=weight, completed=completed),
        )

    async def bulk_update_set_logs(
        self,
        session_id: int,
        exercise_order_index: int,
        weight: float | None = None,
        reps: int | None = None,
    ) -> int:
        self._log_cache.pop(session_id, None)
        data = await self._request(
            "POST",
            f"/sessions/{session_id}/logs/{exercise_order_index}/bulk-update",
            params=_params(weight=weight, reps=reps),
        )
        return data["updated"]

    async def patch_session_snapshot(
        self,
        session_id: int,
        skipped_exercises: Sequence[int],
        expected_version: int | None = None,
    ) -> int:
        data = await self._request(
            "PATCH",
            f"/sessions/{session_id}/snapshot",
            params=_params(expected_version=expected_version),
            json={"skippedExercises": list(skipped_exercises)},
        )
        return data["version"]

    async def fetch_exercise_video(self, exercise_name: str) -> dict | None:
        data = await self._request(
            "GET", "/exercises/video", params={"name": exercise_name}
        )
        if not data.get("youtube_url"):
            return None
        return data

    async def complete_session(self, session_id: int) -> None:
        await self._request("POST", f"/sessions/{session_id}/complete")

    async def cancel_session(self, session_id: int) -> None:
        await self._request("PATCH", f"/sessions/{session_id}/cancel")
