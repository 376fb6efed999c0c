"""Shared test fixtures."""

from __future__ import annotations

import os
import threading

import pytest

from bulk_gen.orchestrator.backend import ExecutionError
from bulk_gen.orchestrator.models import Artifact, GenerationSpec, WorkItemView


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingLauncher:
    """Collects items handed off by the scheduler instead of executing them."""

    def __init__(self) -> None:
        self.launched: list[WorkItemView] = []

    def __call__(self, item: WorkItemView) -> None:
        self.launched.append(item)

    @property
    def prompts(self) -> list[str]:
        return [item.spec.prompt for item in self.launched]


class ScriptedBackend:
    """Returns an artifact per prompt, or raises the exception scripted for it.

    A list of outcomes is consumed one per call, which lets a prompt fail on
    its first attempt and succeed on a retry.
    """

    def __init__(self, outcomes: dict[str, object] | None = None) -> None:
        self.outcomes = dict(outcomes or {})
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def generate(self, spec: GenerationSpec) -> Artifact:
        with self._lock:
            self.calls.append(spec.prompt)
            outcome = self.outcomes.get(spec.prompt)
            if isinstance(outcome, list):
                outcome = outcome.pop(0) if outcome else None
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, Artifact):
            return outcome
        return Artifact(uri=f"https://cdn.example.com/{spec.prompt}.mp4")

    def plan_scenes(self, topic: str, scene_count: int) -> list[str]:
        return [f"{topic} scene {index}" for index in range(1, scene_count + 1)]


class GatedBackend:
    """Blocks every generation until released and tracks peak concurrency."""

    def __init__(self, *, fail_prompts: frozenset[str] = frozenset()) -> None:
        self.release = threading.Event()
        self.fail_prompts = fail_prompts
        self.active = 0
        self.peak = 0
        self.started: list[str] = []
        self._lock = threading.Lock()

    def generate(self, spec: GenerationSpec) -> Artifact:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.started.append(spec.prompt)
        try:
            if not self.release.wait(timeout=10):
                raise ExecutionError("gate never released")
            if spec.prompt in self.fail_prompts:
                raise ExecutionError(f"rejected {spec.prompt}")
            return Artifact(uri=f"https://cdn.example.com/{spec.prompt}.mp4")
        finally:
            with self._lock:
                self.active -= 1

    def plan_scenes(self, topic: str, scene_count: int) -> list[str]:
        return [topic] * scene_count


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Drop any BULK_GEN_* variables from the developer environment."""
    for name in list(os.environ):
        if name.startswith("BULK_GEN_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def launcher() -> RecordingLauncher:
    return RecordingLauncher()


@pytest.fixture()
def scripted_backend():
    """Factory for ``ScriptedBackend`` with per-prompt outcomes."""
    return ScriptedBackend


@pytest.fixture()
def make_gated_backend():
    created: list[GatedBackend] = []

    def _make(**kwargs) -> GatedBackend:
        backend = GatedBackend(**kwargs)
        created.append(backend)
        return backend

    yield _make
    for backend in created:
        backend.release.set()
