"""
In-memory Operation Store.

Maps operation ids to immutable ``Operation`` records. Every mutation goes
through ``update``, which applies a function to the current record under a
lock and commits its result, so concurrent pollers and readers never lose an
update or observe a half-written record. Nothing survives a process restart.
"""

import asyncio
import logging
from typing import Callable, Optional

from services.video_generation.models import Operation

logger = logging.getLogger(__name__)

# Returns the replacement record, or None to leave the stored one untouched
Mutation = Callable[[Operation], Optional[Operation]]


class OperationStore:
    """
    Keyed registry of tracked operations.

    Usage:
        store = OperationStore()
        await store.create(operation)
        op = await store.get(operation.id)
        op = await store.update(operation.id, lambda op: replace(op, ...))
    """

    def __init__(self):
        self._operations: dict[str, Operation] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._operations)

    def __contains__(self, operation_id: str) -> bool:
        return operation_id in self._operations

    async def create(self, operation: Operation) -> Operation:
        """Register a new operation. Ids are never reused."""
        async with self._lock:
            if operation.id in self._operations:
                raise KeyError(f"Operation {operation.id} already exists")
            self._operations[operation.id] = operation
            return operation

    async def get(self, operation_id: str) -> Optional[Operation]:
        async with self._lock:
            return self._operations.get(operation_id)

    async def update(self, operation_id: str, mutation: Mutation) -> Optional[Operation]:
        """
        Atomically apply ``mutation`` to the stored record.

        Returns:
            The record as stored after the update, or None if the id is unknown
        """
        async with self._lock:
            current = self._operations.get(operation_id)
            if current is None:
                return None

            updated = mutation(current)
            if updated is None or updated is current:
                return current

            if updated.id != current.id:
                raise ValueError("Mutation must not change the operation id")

            self._operations[operation_id] = updated
            return updated

    async def delete(self, operation_id: str) -> Optional[Operation]:
        async with self._lock:
            return self._operations.pop(operation_id, None)

    async def list_all(self) -> list[Operation]:
        async with self._lock:
            return sorted(self._operations.values(), key=lambda op: op.created_at)

    async def count_active(self) -> int:
        async with self._lock:
            return sum(1 for op in self._operations.values() if not op.is_terminal)
