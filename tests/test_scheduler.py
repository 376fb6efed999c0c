from __future__ import annotations

import random

import allure
import pytest

from bulk_gen.config import ConfigurationError
from bulk_gen.orchestrator.models import Artifact, GenerationSpec, WorkItemStatus
from bulk_gen.orchestrator.rate_window import RateWindowTracker
from bulk_gen.orchestrator.scheduler import AdmissionScheduler
from bulk_gen.orchestrator.store import WorkItemStore

pytestmark = [
    allure.epic("Generation Queue"),
    allure.feature("Admission Scheduler"),
]

RUNNING = frozenset({WorkItemStatus.RUNNING})


def _build(clock, launcher, *, max_concurrent: int, rate_limit: int, window: float = 60.0):
    store = WorkItemStore()
    tracker = RateWindowTracker(rate_limit=rate_limit, window_seconds=window, clock=clock)
    scheduler = AdmissionScheduler(
        store=store,
        tracker=tracker,
        launch=launcher,
        max_concurrent=max_concurrent,
    )
    return store, tracker, scheduler


def _enqueue(store: WorkItemStore, *prompts: str) -> dict[str, str]:
    return {prompt: store.enqueue(GenerationSpec(prompt=prompt)) for prompt in prompts}


def _statuses(store: WorkItemStore) -> dict[str, WorkItemStatus]:
    return {item.spec.prompt: item.status for item in store.list_all()}


def test_concurrency_bound_admits_in_insertion_order(clock, launcher) -> None:
    store, _, scheduler = _build(clock, launcher, max_concurrent=2, rate_limit=100)
    ids = _enqueue(store, "A", "B", "C", "D", "E")

    outcome = scheduler.run_cycle()

    assert outcome.admitted == (ids["A"], ids["B"])
    assert launcher.prompts == ["A", "B"]
    assert all(item.status == WorkItemStatus.RUNNING for item in launcher.launched)
    assert store.count_by_status(WorkItemStatus.RUNNING) == 2
    assert store.count_by_status(WorkItemStatus.QUEUED) == 3

    store.transition(ids["A"], RUNNING, WorkItemStatus.SUCCEEDED, result=Artifact(uri="a"))
    clock.advance(1)
    outcome = scheduler.run_cycle()

    assert outcome.admitted == (ids["C"],)
    assert _statuses(store) == {
        "A": WorkItemStatus.SUCCEEDED,
        "B": WorkItemStatus.RUNNING,
        "C": WorkItemStatus.RUNNING,
        "D": WorkItemStatus.QUEUED,
        "E": WorkItemStatus.QUEUED,
    }


def test_rate_bound_admits_only_window_budget(clock, launcher) -> None:
    store, tracker, scheduler = _build(clock, launcher, max_concurrent=10, rate_limit=2)
    _enqueue(store, "A", "B", "C", "D", "E")

    first = scheduler.run_cycle()
    assert len(first.admitted) == 2
    assert first.rate_budget == 0
    assert first.free_slots == 8

    for item in launcher.launched:
        store.transition(item.item_id, RUNNING, WorkItemStatus.SUCCEEDED, result=Artifact(uri="x"))

    clock.advance(30)
    assert scheduler.run_cycle().admitted == ()
    assert store.count_by_status(WorkItemStatus.QUEUED) == 3

    clock.advance(30)
    third = scheduler.run_cycle()
    assert len(third.admitted) == 2
    assert launcher.prompts == ["A", "B", "C", "D"]
    assert tracker.recorded_count() == 2


def test_cycle_without_work_reports_idle_and_records_nothing(clock, launcher) -> None:
    store, tracker, scheduler = _build(clock, launcher, max_concurrent=2, rate_limit=5)
    ids = _enqueue(store, "A")
    scheduler.run_cycle()
    store.transition(ids["A"], RUNNING, WorkItemStatus.FAILED, error="boom")
    recorded = tracker.recorded_count()

    outcome = scheduler.run_cycle()

    assert outcome.idle
    assert outcome.admitted == ()
    assert tracker.recorded_count() == recorded
    assert launcher.prompts == ["A"]


def test_cycle_with_running_items_is_not_idle(clock, launcher) -> None:
    store, _, scheduler = _build(clock, launcher, max_concurrent=1, rate_limit=5)
    _enqueue(store, "A")
    scheduler.run_cycle()

    outcome = scheduler.run_cycle()

    assert outcome.admitted == ()
    assert outcome.running == 1
    assert not outcome.idle


def test_queued_items_blocked_by_rate_are_not_idle(clock, launcher) -> None:
    store, _, scheduler = _build(clock, launcher, max_concurrent=3, rate_limit=1)
    ids = _enqueue(store, "A", "B")
    scheduler.run_cycle()
    store.transition(ids["A"], RUNNING, WorkItemStatus.SUCCEEDED, result=Artifact(uri="a"))

    outcome = scheduler.run_cycle()

    assert outcome.admitted == ()
    assert outcome.queued == 1
    assert not outcome.idle


def test_retried_item_keeps_its_original_queue_position(clock, launcher) -> None:
    store, _, scheduler = _build(clock, launcher, max_concurrent=1, rate_limit=100)
    ids = _enqueue(store, "A", "B")
    scheduler.run_cycle()
    store.transition(ids["A"], RUNNING, WorkItemStatus.FAILED, error="boom")
    store.transition(ids["A"], {WorkItemStatus.FAILED}, WorkItemStatus.QUEUED)

    outcome = scheduler.run_cycle()

    assert outcome.admitted == (ids["A"],)
    assert store.get(ids["A"]).attempt == 2


def test_set_max_concurrent_rejected_while_items_run(clock, launcher) -> None:
    store, _, scheduler = _build(clock, launcher, max_concurrent=1, rate_limit=100)
    ids = _enqueue(store, "A", "B", "C")
    scheduler.run_cycle()

    with pytest.raises(ConfigurationError, match="no items are running"):
        scheduler.set_max_concurrent(3)

    store.transition(ids["A"], RUNNING, WorkItemStatus.SUCCEEDED, result=Artifact(uri="a"))
    scheduler.set_max_concurrent(3)
    assert scheduler.max_concurrent == 3
    assert len(scheduler.run_cycle().admitted) == 2


@pytest.mark.parametrize("value", [0, -1])
def test_set_max_concurrent_rejects_values_below_one(clock, launcher, value) -> None:
    _, _, scheduler = _build(clock, launcher, max_concurrent=1, rate_limit=1)

    with pytest.raises(ConfigurationError):
        scheduler.set_max_concurrent(value)
    assert scheduler.max_concurrent == 1


def test_constructor_rejects_invalid_capacity(clock, launcher) -> None:
    with pytest.raises(ConfigurationError):
        _build(clock, launcher, max_concurrent=0, rate_limit=1)


@pytest.mark.parametrize("seed", [1, 7, 42])
def test_capacity_and_rate_hold_under_random_completions(clock, launcher, seed) -> None:
    max_concurrent = 3
    rate_limit = 4
    window = 10.0
    store, _, scheduler = _build(
        clock,
        launcher,
        max_concurrent=max_concurrent,
        rate_limit=rate_limit,
        window=window,
    )
    rng = random.Random(seed)
    admissions: list[float] = []

    for step in range(300):
        if rng.random() < 0.4:
            store.enqueue(GenerationSpec(prompt=f"p{step}"))
        for item in store.list_by_status(WorkItemStatus.RUNNING):
            roll = rng.random()
            if roll < 0.2:
                store.transition(
                    item.item_id, RUNNING, WorkItemStatus.SUCCEEDED, result=Artifact("u"),
                )
            elif roll < 0.3:
                store.transition(item.item_id, RUNNING, WorkItemStatus.FAILED, error="x")

        queued_before = [item.item_id for item in store.list_by_status(WorkItemStatus.QUEUED)]
        outcome = scheduler.run_cycle()
        admissions.extend([clock.now] * len(outcome.admitted))

        assert list(outcome.admitted) == queued_before[: len(outcome.admitted)]
        assert store.count_by_status(WorkItemStatus.RUNNING) <= max_concurrent
        in_window = [stamp for stamp in admissions if clock.now - window < stamp <= clock.now]
        assert len(in_window) <= rate_limit
        clock.advance(rng.choice([0.5, 1.0, 2.0]))

    for item in store.list_all():
        if item.status in {WorkItemStatus.QUEUED, WorkItemStatus.RUNNING}:
            assert item.result is None
            assert item.error is None


class _FailingLauncher:
    """Raises for the listed prompts and records every other launch."""

    def __init__(self, fail_prompts: set[str] | None = None) -> None:
        self.fail_prompts = fail_prompts
        self.launched: list[str] = []

    def __call__(self, item) -> None:
        if self.fail_prompts is None or item.spec.prompt in self.fail_prompts:
            raise RuntimeError("can't start new thread")
        self.launched.append(item.spec.prompt)


def test_launch_error_fails_only_that_item(clock) -> None:
    launcher = _FailingLauncher({"B"})
    store, tracker, scheduler = _build(clock, launcher, max_concurrent=3, rate_limit=100)
    ids = _enqueue(store, "A", "B", "C", "D")

    outcome = scheduler.run_cycle()

    assert outcome.admitted == (ids["A"], ids["B"], ids["C"])
    assert outcome.running == 2
    assert launcher.launched == ["A", "C"]
    failed = store.get(ids["B"])
    assert failed.status == WorkItemStatus.FAILED
    assert failed.error == "Launch failed: can't start new thread"
    assert tracker.recorded_count() == 3

    assert scheduler.run_cycle().admitted == (ids["D"],)
    assert launcher.launched == ["A", "C", "D"]
