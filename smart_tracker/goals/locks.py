"""
Per-key mutation locks.

Goal and ledger mutations are read-compute-write sequences over several
storage calls. Two interleaved sequences for the same user can lose an
update to saved_amount or spend the same savings twice, so every mutation
runs under its user's lock.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID

from smart_tracker.audit import AuditLogger, create_correlation_id
from smart_tracker.errors import LedgerError
from smart_tracker.services.storage import StorageError


class GoalLockRegistry:
    """
    One asyncio.Lock per key (a user ID).

    Locks are process-local. Multi-process deployments additionally rely
    on the goal version check in storage. A key's lock is dropped once
    nobody holds or waits on it.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


@asynccontextmanager
async def guarded_operation(
    locks: GoalLockRegistry,
    audit_logger: AuditLogger,
    operation: str,
    user_id: str,
    entity_id: Optional[UUID] = None,
) -> AsyncIterator[UUID]:
    """
    Run one mutation under the user's lock and audit how it ends.

    Yields the correlation ID for the operation's events. Rejections
    (LedgerError) are logged as warnings, storage failures as errors;
    both are re-raised unchanged.
    """
    correlation_id = create_correlation_id()
    async with locks.hold(user_id):
        try:
            yield correlation_id
        except LedgerError as e:
            await audit_logger.log_rejection(
                operation,
                user_id,
                e,
                entity_id=entity_id,
                correlation_id=correlation_id,
            )
            raise
        except StorageError as e:
            await audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"operation": operation, "user_id": user_id},
                correlation_id=correlation_id,
            )
            raise
