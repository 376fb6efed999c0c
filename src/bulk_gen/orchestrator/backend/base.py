"""Backend interface for generation requests."""

from __future__ import annotations

from typing import Protocol

from bulk_gen.orchestrator.models import Artifact, GenerationSpec


class ExecutionError(RuntimeError):
    """Generation failure for one item, with retryability hint."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class GenerationBackend(Protocol):
    """Protocol implemented by generation service clients."""

    def generate(self, spec: GenerationSpec) -> Artifact:
        """Run one generation to completion and return its artifact."""

    def plan_scenes(self, topic: str, scene_count: int) -> list[str]:
        """Return ``scene_count`` prompts describing a story about ``topic``."""
