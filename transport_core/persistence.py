"""Two-tier, append-only record sink.

Safety events, accepted suggestions and sent sync snapshots are handed to a
persistence collaborator. That collaborator may be slow, missing or failing;
the monitors must never block or crash on it. FallbackRecordSink wraps the
primary sink and, when an append raises, keeps the record (with the failure
reason) in a bounded local buffer that can be exported or replayed later.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_CAPACITY = 50


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


class RecordKind(str, Enum):
    """Kinds of records the core persists."""

    SAFETY_EVENT = "safety_event"
    SUGGESTION_ACCEPTED = "suggestion_accepted"
    SYNC_SNAPSHOT = "sync_snapshot"


class PersistedRecord(BaseModel):
    """A single append-only record.

    Attributes:
        kind: What produced the record
        payload: JSON-compatible record body
        created_at: When the core created the record
        fallback_reason: Primary-sink failure message, set when buffered locally
    """

    kind: RecordKind
    payload: dict[str, Any]
    created_at: datetime = Field(default_factory=utc_now)
    fallback_reason: Optional[str] = None


class RecordSink(Protocol):
    """Persistence collaborator. ``append`` may raise on failure."""

    def append(self, record: PersistedRecord) -> None: ...


class InMemoryRecordSink:
    """Primary sink that keeps records in a list."""

    def __init__(self):
        self.records: list[PersistedRecord] = []

    def append(self, record: PersistedRecord) -> None:
        self.records.append(record)


class FallbackRecordSink:
    """Best-effort sink: primary collaborator plus bounded local fallback.

    Attributes:
        primary: Persistence collaborator, or None to buffer everything locally
        fallback_capacity: Maximum buffered records; the oldest is dropped first
    """

    def __init__(
        self,
        primary: Optional[RecordSink] = None,
        fallback_capacity: int = DEFAULT_FALLBACK_CAPACITY,
    ):
        self.primary = primary
        self.fallback_capacity = fallback_capacity
        self._fallback: deque[PersistedRecord] = deque(maxlen=fallback_capacity)
        self.primary_failures = 0

    @property
    def fallback_records(self) -> list[PersistedRecord]:
        return list(self._fallback)

    def record(self, kind: RecordKind, payload: dict[str, Any]) -> bool:
        """Build and append a record of ``kind``.

        Returns:
            True if the primary sink accepted it, False if it was buffered.
        """
        return self.append(PersistedRecord(kind=kind, payload=payload))

    def append(self, record: PersistedRecord) -> bool:
        if self.primary is None:
            self._buffer(record, "no primary sink configured")
            return False

        try:
            self.primary.append(record)
        except Exception as e:
            self.primary_failures += 1
            logger.warning(f"Primary sink rejected {record.kind.value} record, buffering locally: {e}")
            self._buffer(record, str(e))
            return False
        return True

    def _buffer(self, record: PersistedRecord, reason: str) -> None:
        self._fallback.append(record.model_copy(update={"fallback_reason": reason}))

    def flush_fallback(self) -> int:
        """Replay buffered records into the primary sink, oldest first.

        Stops at the first failure so ordering is preserved.

        Returns:
            Number of records delivered.
        """
        if self.primary is None:
            return 0

        delivered = 0
        while self._fallback:
            record = self._fallback[0]
            try:
                self.primary.append(record.model_copy(update={"fallback_reason": None}))
            except Exception as e:
                logger.warning(f"Fallback flush stopped after {delivered} records: {e}")
                break
            self._fallback.popleft()
            delivered += 1

        if delivered:
            logger.info(f"Flushed {delivered} buffered records to primary sink")
        return delivered

    def export_fallback(self) -> list[dict[str, Any]]:
        """Return buffered records as JSON-compatible dicts and clear the buffer."""
        exported = [record.model_dump(mode="json") for record in self._fallback]
        self._fallback.clear()
        return exported
