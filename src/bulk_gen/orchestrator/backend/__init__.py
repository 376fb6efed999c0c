"""Generation backend implementations."""

from bulk_gen.orchestrator.backend.base import ExecutionError, GenerationBackend
from bulk_gen.orchestrator.backend.mock_backend import MockGenerationBackend
from bulk_gen.orchestrator.backend.veo_http import VeoHttpBackend

__all__ = [
    "ExecutionError",
    "GenerationBackend",
    "MockGenerationBackend",
    "VeoHttpBackend",
]
