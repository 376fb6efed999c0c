"""In-memory work item store with guarded status transitions."""

from __future__ import annotations

import threading
from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from bulk_gen.orchestrator.models import (
    Artifact,
    GenerationSpec,
    QueueCounts,
    WorkItemEvent,
    WorkItemStatus,
    WorkItemView,
)

_DEFAULT_EVENT_TYPES = {
    WorkItemStatus.QUEUED: "requeued",
    WorkItemStatus.RUNNING: "admitted",
    WorkItemStatus.SUCCEEDED: "succeeded",
    WorkItemStatus.FAILED: "failed",
}


class WorkItemNotFoundError(LookupError):
    """Raised when an item id is not present in the store."""

    def __init__(self, item_id: str) -> None:
        super().__init__(f"Work item not found: {item_id}")
        self.item_id = item_id


@dataclass(slots=True)
class _WorkItemRecord:
    item_id: str
    sequence: int
    spec: GenerationSpec
    status: WorkItemStatus
    created_at: datetime
    updated_at: datetime
    attempt: int = 0
    result: Artifact | None = None
    error: str | None = None
    events: list[WorkItemEvent] = field(default_factory=list)


class WorkItemStore:
    """Holds every submitted item and its current lifecycle state.

    All reads return immutable snapshots taken under the store lock, so a
    reader never observes an item half-way through a transition. Items are
    kept in insertion order and are never removed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[str, _WorkItemRecord] = {}
        self._next_sequence = 0

    def enqueue(self, spec: GenerationSpec) -> str:
        """Create a queued item and return its id."""

        now = _utc_now()
        with self._lock:
            item_id = str(uuid4())
            while item_id in self._items:
                item_id = str(uuid4())
            record = _WorkItemRecord(
                item_id=item_id,
                sequence=self._next_sequence,
                spec=spec,
                status=WorkItemStatus.QUEUED,
                created_at=now,
                updated_at=now,
            )
            self._next_sequence += 1
            record.events.append(
                WorkItemEvent(
                    item_id=item_id,
                    event_type="enqueued",
                    status_from=None,
                    status_to=WorkItemStatus.QUEUED,
                    created_at=now,
                    details={"model": spec.model, "input_type": spec.input_type.value},
                ),
            )
            self._items[item_id] = record
            return item_id

    def get(self, item_id: str) -> WorkItemView:
        with self._lock:
            return _to_view(self._require(item_id))

    def list_all(self) -> list[WorkItemView]:
        """Return every item in insertion order."""

        with self._lock:
            return [_to_view(record) for record in self._items.values()]

    def list_by_status(self, status: WorkItemStatus) -> list[WorkItemView]:
        """Return items currently in ``status``, earliest-submitted first."""

        with self._lock:
            return [_to_view(record) for record in self._items.values() if record.status == status]

    def count_by_status(self, status: WorkItemStatus) -> int:
        with self._lock:
            return sum(1 for record in self._items.values() if record.status == status)

    def counts(self) -> QueueCounts:
        counts = QueueCounts()
        with self._lock:
            for record in self._items.values():
                name = record.status.value
                setattr(counts, name, getattr(counts, name) + 1)
        return counts

    def list_events(self, item_id: str) -> list[WorkItemEvent]:
        with self._lock:
            return list(self._require(item_id).events)

    def transition(  # noqa: PLR0913
        self,
        item_id: str,
        from_statuses: Collection[WorkItemStatus],
        to_status: WorkItemStatus,
        *,
        result: Artifact | None = None,
        error: str | None = None,
        event_type: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> bool:
        """Move an item to ``to_status`` if it is currently in ``from_statuses``.

        The check and the write happen under one lock acquisition. When the
        item is in some other status nothing changes and ``False`` is
        returned; callers re-read state rather than assume the move happened.
        ``result`` is required for ``SUCCEEDED``, ``error`` for ``FAILED``,
        and both are cleared for every other target status.
        """

        _check_patch(to_status=to_status, result=result, error=error)
        now = _utc_now()
        with self._lock:
            record = self._require(item_id)
            if record.status not in from_statuses:
                return False
            previous = record.status
            record.status = to_status
            record.result = result
            record.error = error
            record.updated_at = now
            if to_status == WorkItemStatus.RUNNING:
                record.attempt += 1
            record.events.append(
                WorkItemEvent(
                    item_id=item_id,
                    event_type=event_type or _DEFAULT_EVENT_TYPES[to_status],
                    status_from=previous,
                    status_to=to_status,
                    created_at=now,
                    details=dict(details or {}),
                ),
            )
            return True

    def _require(self, item_id: str) -> _WorkItemRecord:
        record = self._items.get(item_id)
        if record is None:
            raise WorkItemNotFoundError(item_id)
        return record


def _check_patch(
    *,
    to_status: WorkItemStatus,
    result: Artifact | None,
    error: str | None,
) -> None:
    if to_status == WorkItemStatus.SUCCEEDED:
        if result is None or error is not None:
            raise ValueError("Succeeded transition requires a result and no error.")
        return
    if to_status == WorkItemStatus.FAILED:
        if not error or result is not None:
            raise ValueError("Failed transition requires an error message and no result.")
        return
    if result is not None or error is not None:
        raise ValueError(f"Transition to {to_status.value} must not carry result or error.")


def _to_view(record: _WorkItemRecord) -> WorkItemView:
    return WorkItemView(
        item_id=record.item_id,
        sequence=record.sequence,
        spec=record.spec,
        status=record.status,
        attempt=record.attempt,
        created_at=record.created_at,
        updated_at=record.updated_at,
        result=record.result,
        error=record.error,
    )


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)
