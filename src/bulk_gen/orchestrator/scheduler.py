"""Admission cycle: promote queued items to running within capacity and rate budget."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from bulk_gen.config import ConfigurationError, validate_max_concurrent
from bulk_gen.orchestrator.models import WorkItemStatus, WorkItemView
from bulk_gen.orchestrator.rate_window import RateWindowTracker
from bulk_gen.orchestrator.store import WorkItemStore

logger = logging.getLogger(__name__)

_QUEUED = frozenset({WorkItemStatus.QUEUED})
_RUNNING = frozenset({WorkItemStatus.RUNNING})


@dataclass(slots=True, frozen=True)
class CycleOutcome:
    """What one admission cycle observed and decided."""

    admitted: tuple[str, ...]
    running: int
    queued: int
    free_slots: int
    rate_budget: int

    @property
    def idle(self) -> bool:
        """Nothing admitted, nothing queued, nothing in flight."""

        return not self.admitted and self.running == 0 and self.queued == 0


class AdmissionScheduler:
    """Decides, once per cycle, which queued items start now.

    A cycle takes ``min(free slots, remaining rate budget)`` items from the
    queued set in insertion order, moves them to running, records one
    admission per item at the cycle instant, and hands each to ``launch``.
    The whole decision runs under one lock so concurrent cycles or a capacity
    change cannot interleave with it.
    """

    def __init__(
        self,
        *,
        store: WorkItemStore,
        tracker: RateWindowTracker,
        launch: Callable[[WorkItemView], None],
        max_concurrent: int,
    ) -> None:
        validate_max_concurrent(max_concurrent)
        self._store = store
        self._tracker = tracker
        self._launch = launch
        self._max_concurrent = max_concurrent
        self._lock = threading.Lock()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    def set_max_concurrent(self, value: int) -> None:
        """Change capacity; only allowed while no item is running."""

        validate_max_concurrent(value)
        with self._lock:
            running = self._store.count_by_status(WorkItemStatus.RUNNING)
            if running:
                raise ConfigurationError(
                    "max_concurrent can only change while no items are running "
                    f"({running} running).",
                )
            self._max_concurrent = value

    def has_pending(self) -> bool:
        counts = self._store.counts()
        return counts.pending > 0

    def run_cycle(self) -> CycleOutcome:
        with self._lock:
            now = self._tracker.now()
            running = self._store.count_by_status(WorkItemStatus.RUNNING)
            free_slots = max(0, self._max_concurrent - running)
            rate_budget = self._tracker.available_now(at=now)
            slots_to_fill = min(free_slots, rate_budget)
            queued = self._store.list_by_status(WorkItemStatus.QUEUED)

            if slots_to_fill <= 0 or not queued:
                logger.debug(
                    "No admissions: running=%d queued=%d free_slots=%d rate_budget=%d",
                    running,
                    len(queued),
                    free_slots,
                    rate_budget,
                )
                return CycleOutcome(
                    admitted=(),
                    running=running,
                    queued=len(queued),
                    free_slots=free_slots,
                    rate_budget=rate_budget,
                )

            admitted: list[WorkItemView] = []
            for candidate in queued[:slots_to_fill]:
                if self._store.transition(
                    candidate.item_id,
                    _QUEUED,
                    WorkItemStatus.RUNNING,
                    details={"running_before": running, "rate_budget": rate_budget},
                ):
                    admitted.append(self._store.get(candidate.item_id))
            self._tracker.record_admissions(len(admitted), at=now)

        logger.info(
            "Admitted %d item(s): running=%d queued=%d rate_budget=%d",
            len(admitted),
            running + len(admitted),
            len(queued) - len(admitted),
            rate_budget - len(admitted),
        )
        launch_failures = sum(1 for item in admitted if not self._launch_one(item))
        return CycleOutcome(
            admitted=tuple(item.item_id for item in admitted),
            running=running + len(admitted) - launch_failures,
            queued=len(queued) - len(admitted),
            free_slots=free_slots - len(admitted),
            rate_budget=rate_budget - len(admitted),
        )

    def _launch_one(self, item: WorkItemView) -> bool:
        """Hand one item to ``launch``; a launch error fails only that item."""

        try:
            self._launch(item)
        except Exception as error:
            logger.exception("Could not launch item %s", item.item_id)
            self._store.transition(
                item.item_id,
                _RUNNING,
                WorkItemStatus.FAILED,
                error=f"Launch failed: {str(error) or type(error).__name__}",
                details={"transient": True},
            )
            return False
        return True
