"""Local stand-in for the generation service."""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable

from bulk_gen.orchestrator.backend.base import ExecutionError
from bulk_gen.orchestrator.models import Artifact, GenerationSpec

logger = logging.getLogger(__name__)

SAMPLE_VIDEO_URI = "https://storage.googleapis.com/gtv-videos-bucket/sample/BigBuckBunny.mp4"


class MockGenerationBackend:
    """Simulates slow generation with random latency and optional failures."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        min_delay_seconds: float = 5.0,
        max_delay_seconds: float = 10.0,
        failure_rate: float = 0.0,
        sample_uri: str = SAMPLE_VIDEO_URI,
        seed: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_delay_seconds = min_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.failure_rate = failure_rate
        self.sample_uri = sample_uri
        self._random = random.Random(seed)  # noqa: S311
        self._random_lock = threading.Lock()
        self._sleep = sleep

    def generate(self, spec: GenerationSpec) -> Artifact:
        with self._random_lock:
            delay = self._random.uniform(self.min_delay_seconds, self.max_delay_seconds)
            fail = self._random.random() < self.failure_rate
        logger.debug("Mock generation for %r takes %.2fs", spec.prompt[:40], delay)
        self._sleep(delay)
        if fail:
            raise ExecutionError("Mock generation failed.", transient=True)
        return Artifact(uri=self.sample_uri)

    def plan_scenes(self, topic: str, scene_count: int) -> list[str]:
        return [f'Mock prompt for "{topic}", scene {index}.' for index in range(1, scene_count + 1)]
