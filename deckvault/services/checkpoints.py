"""
Checkpoint storage for resumable bulk operations.

A CheckpointPort stores one record per operation kind. Durable storage has a
size quota; CheckpointWriter owns the policy for writes that exceed it:

1. write the record as-is
2. on PersistenceFullError, clear the other kind's record and retry
3. retry with the bulky per-item payload stripped
4. keep the record in process memory only

A record held only in memory survives until the process exits, so the
operation can still finish; it just cannot be resumed after a restart.
"""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from deckvault.models.checkpoint import (
    DeleteCheckpoint,
    ImportCheckpoint,
    OperationKind,
    checkpoint_from_json,
    checkpoint_to_json,
)
from deckvault.models.db import CheckpointDB, utcnow
from deckvault.models.failure import PersistenceFullError

logger = logging.getLogger(__name__)

Checkpoint = ImportCheckpoint | DeleteCheckpoint


class CheckpointPort(Protocol):
    """Key-value checkpoint storage scoped by operation kind."""

    async def put(self, kind: OperationKind, record: Checkpoint) -> None:
        """Store a record, replacing any previous one. May raise PersistenceFullError."""
        ...

    async def get(self, kind: OperationKind) -> Checkpoint | None:
        """Return the stored record, or None."""
        ...

    async def clear(self, kind: OperationKind) -> None:
        """Remove the stored record, if any."""
        ...


def _payload_size(payload: str) -> int:
    return len(payload.encode("utf-8"))


class InMemoryCheckpointStore:
    """
    Checkpoint store backed by a dict.

    Records are kept serialized so a read returns an independent copy, the
    same as a durable store would. `quota_bytes` emulates a storage quota.
    """

    def __init__(self, quota_bytes: int | None = None) -> None:
        self.quota_bytes = quota_bytes
        self._payloads: dict[OperationKind, str] = {}

    async def put(self, kind: OperationKind, record: Checkpoint) -> None:
        payload = checkpoint_to_json(record)
        if self.quota_bytes is not None:
            others = sum(_payload_size(p) for k, p in self._payloads.items() if k != kind)
            needed = _payload_size(payload) + others
            if needed > self.quota_bytes:
                raise PersistenceFullError(kind.value, needed, self.quota_bytes)
        self._payloads[kind] = payload

    async def get(self, kind: OperationKind) -> Checkpoint | None:
        payload = self._payloads.get(kind)
        if payload is None:
            return None
        return checkpoint_from_json(payload)

    async def clear(self, kind: OperationKind) -> None:
        self._payloads.pop(kind, None)


class SqlCheckpointStore:
    """
    Durable checkpoint store on the `checkpoints` table.

    Every call runs in its own short session so a checkpoint write is never
    part of (or rolled back with) a stage's unit of work.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        quota_bytes: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.quota_bytes = quota_bytes

    async def put(self, kind: OperationKind, record: Checkpoint) -> None:
        payload = checkpoint_to_json(record)
        size = _payload_size(payload)

        async with self._session_factory() as session:
            if self.quota_bytes is not None:
                result = await session.execute(
                    select(CheckpointDB.size_bytes).where(CheckpointDB.kind != kind.value)
                )
                needed = size + sum(result.scalars().all())
                if needed > self.quota_bytes:
                    raise PersistenceFullError(kind.value, needed, self.quota_bytes)

            row = await session.get(CheckpointDB, kind.value)
            if row is None:
                session.add(CheckpointDB(kind=kind.value, payload=payload, size_bytes=size))
            else:
                row.payload = payload
                row.size_bytes = size
                row.updated_at = utcnow()
            await session.commit()

    async def get(self, kind: OperationKind) -> Checkpoint | None:
        async with self._session_factory() as session:
            row = await session.get(CheckpointDB, kind.value)
            if row is None:
                return None
            return checkpoint_from_json(row.payload)

    async def clear(self, kind: OperationKind) -> None:
        async with self._session_factory() as session:
            row = await session.get(CheckpointDB, kind.value)
            if row is not None:
                await session.delete(row)
                await session.commit()


class WriteOutcome(str, Enum):
    """How a checkpoint write was finally satisfied."""

    STORED = "stored"
    RECLAIMED = "reclaimed"  # stored after clearing the other kind's record
    STRIPPED = "stripped"  # stored without the per-item payload
    MEMORY_ONLY = "memory_only"

    @property
    def degraded(self) -> bool:
        return self is not WriteOutcome.STORED


class CheckpointWriter:
    """
    Checkpoint access with the quota fallback policy.

    Reads prefer the in-memory copy: after a stripped or memory-only write it
    is the only complete version of the record.
    """

    def __init__(self, port: CheckpointPort) -> None:
        self.port = port
        self._memory: dict[OperationKind, Checkpoint] = {}

    async def write(self, kind: OperationKind, record: Checkpoint) -> WriteOutcome:
        self._memory.pop(kind, None)
        try:
            await self.port.put(kind, record)
            return WriteOutcome.STORED
        except PersistenceFullError as exc:
            logger.warning("Checkpoint storage full writing %s: %s", kind.value, exc)

        # Make room by dropping the other operation's record
        other = kind.other
        logger.warning("Clearing %s checkpoint to make room for %s", other.value, kind.value)
        await self.port.clear(other)
        self._memory.pop(other, None)
        try:
            await self.port.put(kind, record)
            return WriteOutcome.RECLAIMED
        except PersistenceFullError:
            pass

        self._memory[kind] = record
        try:
            await self.port.put(kind, record.stripped())
            logger.warning("Stored %s checkpoint without its per-item payload", kind.value)
            return WriteOutcome.STRIPPED
        except PersistenceFullError:
            logger.error(
                "Checkpoint for %s kept in memory only; it will not survive a restart",
                kind.value,
            )
            return WriteOutcome.MEMORY_ONLY

    async def read(self, kind: OperationKind) -> Checkpoint | None:
        record = self._memory.get(kind)
        if record is not None:
            return record.model_copy(deep=True)
        return await self.port.get(kind)

    async def clear(self, kind: OperationKind) -> None:
        self._memory.pop(kind, None)
        await self.port.clear(kind)
