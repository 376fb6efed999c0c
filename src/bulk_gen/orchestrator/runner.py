"""Per-item execution of admitted work."""

from __future__ import annotations

import logging
import threading
import time

from bulk_gen.orchestrator.backend import ExecutionError, GenerationBackend
from bulk_gen.orchestrator.models import WorkItemStatus, WorkItemView
from bulk_gen.orchestrator.store import WorkItemStore

logger = logging.getLogger(__name__)

_RUNNING = frozenset({WorkItemStatus.RUNNING})


class ExecutionRunner:
    """Runs the backend call for each admitted item on its own daemon thread.

    ``launch`` returns immediately. When the call settles, the outcome is
    written back to the store as ``Running -> Succeeded`` or
    ``Running -> Failed``. A failure only ever affects its own item.
    """

    def __init__(self, *, store: WorkItemStore, backend: GenerationBackend) -> None:
        self._store = store
        self._backend = backend
        self._threads_lock = threading.Lock()
        self._threads: set[threading.Thread] = set()

    def launch(self, item: WorkItemView) -> None:
        thread = threading.Thread(
            target=self._execute,
            args=(item,),
            daemon=True,
            name=f"bulk-gen-exec-{item.item_id[:8]}",
        )
        with self._threads_lock:
            self._threads.add(thread)
        thread.start()

    @property
    def in_flight(self) -> int:
        with self._threads_lock:
            return len(self._threads)

    def wait_all(self, timeout: float | None = None) -> bool:
        """Join every in-flight execution; return ``False`` if the timeout expired."""

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._threads_lock:
                pending = next(iter(self._threads), None)
            if pending is None:
                return True
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            pending.join(remaining)
            if pending.is_alive():
                return False

    def _execute(self, item: WorkItemView) -> None:
        try:
            self._settle(item)
        finally:
            with self._threads_lock:
                self._threads.discard(threading.current_thread())

    def _settle(self, item: WorkItemView) -> None:
        try:
            artifact = self._backend.generate(item.spec)
        except ExecutionError as error:
            self._fail(item, message=str(error) or type(error).__name__, transient=error.transient)
            return
        except Exception as error:
            logger.exception("Unexpected error while generating item %s", item.item_id)
            self._fail(item, message=str(error) or type(error).__name__, transient=False)
            return

        if self._store.transition(
            item.item_id,
            _RUNNING,
            WorkItemStatus.SUCCEEDED,
            result=artifact,
            details={"uri": artifact.uri},
        ):
            logger.info("Item %s succeeded: %s", item.item_id, artifact.uri)

    def _fail(self, item: WorkItemView, *, message: str, transient: bool) -> None:
        if self._store.transition(
            item.item_id,
            _RUNNING,
            WorkItemStatus.FAILED,
            error=message,
            details={"transient": transient},
        ):
            logger.warning("Item %s failed: %s", item.item_id, message)
