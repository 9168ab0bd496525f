from __future__ import annotations

import logging
from typing import Callable, Sequence

from gateway import GatewayError, SessionGateway
from notices import Notifier

logger = logging.getLogger(__name__)


class SkipQueueManager:
    """Persist the ordered list of deferred plan indices for one session.

    Every mutation is applied locally first through ``apply`` and written with
    a single snapshot replace. When the write fails the previous list is
    applied again and an error notice is raised.
    """

    def __init__(
        self,
        gateway: SessionGateway,
        notifier: Notifier,
        session_id: int | None = None,
        version: int | None = None,
    ) -> None:
        self.gateway = gateway
        self.notifier = notifier
        self.session_id = session_id
        self.version = version
        self.last_error: GatewayError | None = None

    def bind(self, session_id: int, version: int | None) -> None:
        self.session_id = session_id
        self.version = version

    async def add(
        self,
        queue: Sequence[int],
        idx: int,
        apply: Callable[[tuple[int, ...]], None],
    ) -> bool:
        if idx in queue:
            return True
        return await self.replace(queue, tuple(queue) + (idx,), apply)

    async def remove(
        self,
        queue: Sequence[int],
        idx: int,
        apply: Callable[[tuple[int, ...]], None],
    ) -> bool:
        if idx not in queue:
            return True
        return await self.replace(queue, tuple(i for i in queue if i != idx), apply)

    async def reconcile(
        self,
        queue: Sequence[int],
        cleaned: Sequence[int],
        apply: Callable[[tuple[int, ...]], None],
    ) -> bool:
        """Write back a queue that dropped completed or invalid entries."""
        return await self.replace(queue, cleaned, apply)

    async def replace(
        self,
        previous: Sequence[int],
        updated: Sequence[int],
        apply: Callable[[tuple[int, ...]], None],
    ) -> bool:
        previous = tuple(previous)
        updated = tuple(updated)
        self.last_error = None
        apply(updated)
        try:
            self.version = await self.gateway.patch_session_snapshot(
                self.session_id, list(updated), self.version
            )
        except GatewayError as e:
            logger.warning(
                "Could not save skip queue %s for session %s: %s",
                list(updated),
                self.session_id,
                e,
            )
            self.last_error = e
            apply(previous)
            self.notifier.error("Could not save skipped exercises", str(e))
            return False
        logger.debug("Session %s skip queue is now %s", self.session_id, list(updated))
        return True
