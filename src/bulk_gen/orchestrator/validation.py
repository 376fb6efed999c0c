"""Submission checks applied before anything reaches the store."""

from __future__ import annotations

from bulk_gen.orchestrator.models import ASPECT_RATIOS, GenerationSpec

MAX_SCENES = 50


class ValidationError(ValueError):
    """Malformed submission; never enqueued."""


def validate_spec(spec: GenerationSpec) -> None:
    if not spec.prompt.strip():
        raise ValidationError("Please enter a prompt.")
    if not spec.model.strip():
        raise ValidationError("Model must not be empty.")
    if spec.aspect_ratio not in ASPECT_RATIOS:
        raise ValidationError(
            f"Unsupported aspect ratio {spec.aspect_ratio!r}; expected one of {ASPECT_RATIOS}.",
        )
    if spec.output_count < 1:
        raise ValidationError(f"output_count must be >= 1, got {spec.output_count}.")
    if spec.input_type.needs_image:
        if spec.image_path is None:
            raise ValidationError(
                f"An image file is required for input type {spec.input_type.value}.",
            )
        if not spec.image_path.is_file():
            raise ValidationError(f"Image file not found: {spec.image_path}")


def validate_scene_request(topic: str, scene_count: int) -> None:
    if not topic.strip() or not 1 <= scene_count <= MAX_SCENES:
        raise ValidationError(
            f"Please enter a valid topic and a scene count between 1 and {MAX_SCENES}.",
        )
