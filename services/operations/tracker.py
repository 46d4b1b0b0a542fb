"""
Operation Tracker - state machine and background poller.

States:
    processing -> completed | failed | timeout

``processing`` is the only non-terminal state. Transitions are computed by
pure functions applied through ``OperationStore.update``, so a background tick
and an opportunistic poll from a status read serialize on the store lock and a
terminal record is never overwritten.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from core.exceptions import RelayError
from services.video_generation.client import VeoClient
from services.video_generation.extractor import extract_artifact_ref
from services.video_generation.models import Operation, OperationStatus, PollResult

from .store import OperationStore

logger = logging.getLogger(__name__)


def apply_poll_result(
    operation: Operation,
    poll: PollResult,
    now: Optional[datetime] = None,
) -> Optional[Operation]:
    """
    Compute the record that follows ``poll``.

    Returns None when nothing changes: the job is still running, or the
    operation already reached a terminal state (stale observation).
    """
    if operation.is_terminal or not poll.done:
        return None

    now = now or datetime.utcnow()
    artifact_ref = extract_artifact_ref(poll.raw_response)

    if artifact_ref:
        return replace(
            operation,
            status=OperationStatus.COMPLETED,
            artifact_ref=artifact_ref,
            result_metadata=poll.raw_response.get("response", poll.raw_response),
            completed_at=now,
            error=None,
        )

    return replace(
        operation,
        status=OperationStatus.FAILED,
        result_metadata=poll.raw_response,
        completed_at=now,
        error=poll.error_message or "Remote job finished without a video",
    )


def mark_timed_out(operation: Operation, now: Optional[datetime] = None) -> Optional[Operation]:
    """Processing -> timeout; terminal records are left alone."""
    if operation.is_terminal:
        return None
    return replace(
        operation,
        status=OperationStatus.TIMEOUT,
        completed_at=now or datetime.utcnow(),
        error="Remote job did not finish within the polling limit",
    )


class OperationTracker:
    """
    Runs one polling task per in-flight operation.

    Usage:
        tracker = OperationTracker(store, client, interval_seconds=1.0, max_attempts=120)
        tracker.start(operation.id)

        # Opportunistic poll from a status read
        operation = await tracker.refresh(operation.id)

        # Operation deleted
        await tracker.cancel(operation.id)
    """

    def __init__(
        self,
        store: OperationStore,
        client: VeoClient,
        interval_seconds: float = 1.0,
        max_attempts: int = 120,
    ):
        self.store = store
        self.client = client
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self._tasks: dict[str, asyncio.Task] = {}

    def start(self, operation_id: str) -> asyncio.Task:
        """Start polling ``operation_id``; a running poller is reused."""
        existing = self._tasks.get(operation_id)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.create_task(self._run(operation_id), name=f"poll-{operation_id}")
        self._tasks[operation_id] = task
        task.add_done_callback(lambda t: self._forget(operation_id, t))
        return task

    def _forget(self, operation_id: str, task: asyncio.Task):
        if self._tasks.get(operation_id) is task:
            del self._tasks[operation_id]

    def is_tracking(self, operation_id: str) -> bool:
        task = self._tasks.get(operation_id)
        return task is not None and not task.done()

    @property
    def active_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    async def refresh(self, operation_id: str) -> Optional[Operation]:
        """Poll once now and return the resulting record (None if unknown)."""
        operation = await self.store.get(operation_id)
        if operation is None or operation.is_terminal:
            return operation
        return await self._poll_once(operation)

    async def _poll_once(self, operation: Operation) -> Optional[Operation]:
        try:
            poll = await self.client.poll(operation.remote_job_ref)
        except RelayError as e:
            logger.warning(f"Monitoring error for {operation.id}: {e}")
            return await self.store.get(operation.id)

        transitioned: list[Operation] = []

        def mutation(current: Operation) -> Optional[Operation]:
            updated = apply_poll_result(current, poll)
            if updated is not None:
                transitioned.append(updated)
            return updated

        stored = await self.store.update(operation.id, mutation)

        if transitioned:
            outcome = transitioned[0]
            if outcome.status == OperationStatus.COMPLETED:
                logger.info(f"Video ready: {outcome.id}")
            else:
                logger.warning(f"Operation {outcome.id} failed: {outcome.error}")

        return stored

    async def _run(self, operation_id: str):
        """Poll until a terminal state, eviction or the attempt cap."""
        for attempt in range(1, self.max_attempts + 1):
            await asyncio.sleep(self.interval_seconds)

            operation = await self.store.get(operation_id)
            if operation is None:
                logger.info(f"Operation {operation_id} evicted, polling stopped")
                return
            if operation.is_terminal:
                return

            try:
                operation = await self._poll_once(operation)
            except Exception as e:
                logger.error(f"Unexpected monitoring error for {operation_id}: {type(e).__name__}: {e}")
                continue

            if operation is None:
                logger.info(f"Operation {operation_id} evicted, polling stopped")
                return
            if operation.is_terminal:
                return

            logger.debug(f"Operation {operation_id} still processing ({attempt}/{self.max_attempts})")

        timed_out = await self.store.update(operation_id, mark_timed_out)
        if timed_out is not None and timed_out.status == OperationStatus.TIMEOUT:
            logger.info(f"Monitoring timeout for {operation_id} after {self.max_attempts} attempts")

    async def cancel(self, operation_id: str):
        """Stop polling ``operation_id`` and wait for the task to finish."""
        task = self._tasks.pop(operation_id, None)
        if task is None or task.done():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Polling cancelled for {operation_id}")

    async def shutdown(self):
        """Cancel every running poller."""
        for operation_id in list(self._tasks):
            await self.cancel(operation_id)
