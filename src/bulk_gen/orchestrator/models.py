"""Domain models for the generation queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


class WorkItemStatus(str, Enum):
    """Work item lifecycle states."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class InputType(str, Enum):
    """What the generation request is conditioned on."""

    TEXT_TO_VIDEO = "text_to_video"
    IMAGE_TO_VIDEO = "image_to_video"
    FRAME_TO_VIDEO = "frame_to_video"

    @property
    def needs_image(self) -> bool:
        return self is not InputType.TEXT_TO_VIDEO


SUPPORTED_MODELS = (
    "veo-2.0-generate-001",
    "veo-3.0-generate-001",
    "veo-3.0-fast-generate-001",
)
ASPECT_RATIOS = ("16:9", "9:16")


@dataclass(slots=True, frozen=True)
class GenerationSpec:
    """Request parameters for one generation; immutable once enqueued."""

    prompt: str
    input_type: InputType = InputType.TEXT_TO_VIDEO
    model: str = SUPPORTED_MODELS[0]
    aspect_ratio: str = ASPECT_RATIOS[0]
    output_count: int = 1
    image_path: Path | None = None


@dataclass(slots=True, frozen=True)
class Artifact:
    """Reference to a generated artifact returned by the backend."""

    uri: str
    mime_type: str = "video/mp4"


@dataclass(slots=True, frozen=True)
class WorkItemView:
    """Readable snapshot of one work item."""

    item_id: str
    sequence: int
    spec: GenerationSpec
    status: WorkItemStatus
    attempt: int
    created_at: datetime
    updated_at: datetime
    result: Artifact | None = None
    error: str | None = None


@dataclass(slots=True, frozen=True)
class WorkItemEvent:
    """Work item event entry for audit trail."""

    item_id: str
    event_type: str
    status_from: WorkItemStatus | None
    status_to: WorkItemStatus | None
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class QueueCounts:
    """Per-status counters for CLI reporting."""

    queued: int = 0
    running: int = 0
    succeeded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.queued + self.running + self.succeeded + self.failed

    @property
    def pending(self) -> int:
        return self.queued + self.running
