"""Use-case facade wiring store, rate window, scheduler, runner, and controller."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable

from bulk_gen.config import SchedulerSettings
from bulk_gen.orchestrator.backend import GenerationBackend
from bulk_gen.orchestrator.controller import QueueController
from bulk_gen.orchestrator.models import (
    GenerationSpec,
    QueueCounts,
    WorkItemEvent,
    WorkItemStatus,
    WorkItemView,
)
from bulk_gen.orchestrator.rate_window import RateWindowTracker
from bulk_gen.orchestrator.runner import ExecutionRunner
from bulk_gen.orchestrator.scheduler import AdmissionScheduler
from bulk_gen.orchestrator.store import WorkItemStore
from bulk_gen.orchestrator.validation import validate_spec

_FAILED = frozenset({WorkItemStatus.FAILED})


class BulkGenerationService:
    """Submission, retry, and read interface for one scheduler instance."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        backend: GenerationBackend,
        max_concurrent: int = 4,
        rate_limit: int = 10,
        window_seconds: float = 60.0,
        poll_interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = WorkItemStore()
        self.tracker = RateWindowTracker(
            rate_limit=rate_limit,
            window_seconds=window_seconds,
            clock=clock,
        )
        self.runner = ExecutionRunner(store=self.store, backend=backend)
        self.scheduler = AdmissionScheduler(
            store=self.store,
            tracker=self.tracker,
            launch=self.runner.launch,
            max_concurrent=max_concurrent,
        )
        self.controller = QueueController(
            scheduler=self.scheduler,
            poll_interval_seconds=poll_interval_seconds,
        )

    @classmethod
    def from_settings(
        cls,
        settings: SchedulerSettings,
        *,
        backend: GenerationBackend,
    ) -> BulkGenerationService:
        return cls(
            backend=backend,
            max_concurrent=settings.max_concurrent,
            rate_limit=settings.rate_limit,
            window_seconds=settings.window_seconds,
            poll_interval_seconds=settings.poll_interval_seconds,
        )

    def enqueue(self, spec: GenerationSpec) -> str:
        """Validate and queue one request; starts the admission loop if needed."""

        validate_spec(spec)
        item_id = self.store.enqueue(spec)
        self.controller.ensure_started()
        return item_id

    def enqueue_many(self, specs: Iterable[GenerationSpec]) -> list[str]:
        """Queue a batch in order. Nothing is queued if any spec is invalid."""

        batch = list(specs)
        for spec in batch:
            validate_spec(spec)
        item_ids = [self.store.enqueue(spec) for spec in batch]
        if item_ids:
            self.controller.ensure_started()
        return item_ids

    def retry(self, item_id: str) -> bool:
        """Re-queue a failed item. Any other status is left untouched."""

        retried = self.store.transition(
            item_id,
            _FAILED,
            WorkItemStatus.QUEUED,
            event_type="manual_retry",
        )
        if retried:
            self.controller.ensure_started()
        return retried

    def get(self, item_id: str) -> WorkItemView:
        return self.store.get(item_id)

    def list_all(self) -> list[WorkItemView]:
        return self.store.list_all()

    def list_events(self, item_id: str) -> list[WorkItemEvent]:
        return self.store.list_events(item_id)

    def counts(self) -> QueueCounts:
        return self.store.counts()

    @property
    def max_concurrent(self) -> int:
        return self.scheduler.max_concurrent

    def set_max_concurrent(self, value: int) -> None:
        self.scheduler.set_max_concurrent(value)

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until the admission loop stops; ``False`` if the timeout expired."""

        return self.controller.wait_until_idle(timeout)

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop admitting work. In-flight executions are not cancelled."""

        self.controller.stop(timeout)

    def __enter__(self) -> BulkGenerationService:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
