"""Start/stop management for the periodic admission loop."""

from __future__ import annotations

import logging
import threading

from bulk_gen.orchestrator.scheduler import AdmissionScheduler

logger = logging.getLogger(__name__)


class QueueController:
    """Owns the single scheduler thread.

    ``ensure_started`` launches the loop if it is not already running. The
    loop runs one admission cycle per ``poll_interval_seconds`` and exits on
    its own after a cycle that admitted nothing while nothing was queued or
    running. The exit decision and ``ensure_started`` share a lock, so work
    submitted while the loop is winding down is never stranded. Starting again
    after a ``stop`` whose timeout expired before the loop exited withdraws the
    stop request, so the still-running loop picks up the new work.
    """

    def __init__(self, *, scheduler: AdmissionScheduler, poll_interval_seconds: float) -> None:
        self._scheduler = scheduler
        self._poll_interval = poll_interval_seconds
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._idle = threading.Event()
        self._idle.set()
        self._thread: threading.Thread | None = None
        self.cycles = 0

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._thread is not None

    def ensure_started(self) -> bool:
        """Start the loop; return ``False`` when it was already active."""

        with self._lock:
            self._stop.clear()
            if self._thread is not None:
                return False
            self._idle.clear()
            self._thread = threading.Thread(
                target=self._loop,
                daemon=True,
                name="bulk-gen-scheduler",
            )
            self._thread.start()
        logger.info("Admission loop started")
        return True

    def stop(self, timeout: float | None = None) -> None:
        """Stop the loop without waiting for in-flight executions."""

        with self._lock:
            thread = self._thread
        if thread is None:
            return
        self._stop.set()
        thread.join(timeout)

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until the loop has stopped; ``False`` if the timeout expired."""

        return self._idle.wait(timeout)

    def _loop(self) -> None:
        try:
            while not self._finish_if_stopped():
                outcome = self._scheduler.run_cycle()
                self.cycles += 1
                if outcome.idle and self._finish_if_idle():
                    logger.info("Admission loop stopped: no queued or running items")
                    return
                self._stop.wait(self._poll_interval)
            logger.info("Admission loop stopped on request")
        except Exception:
            logger.exception("Admission loop crashed")
            raise
        finally:
            with self._lock:
                if self._thread is threading.current_thread():
                    self._thread = None
                    self._idle.set()

    def _finish_if_stopped(self) -> bool:
        with self._lock:
            if not self._stop.is_set():
                return False
            self._thread = None
            self._idle.set()
            return True

    def _finish_if_idle(self) -> bool:
        with self._lock:
            if self._scheduler.has_pending():
                return False
            self._thread = None
            self._idle.set()
            return True
