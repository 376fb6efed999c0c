"""Controllers for queue CLI commands."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path

from bulk_gen.config import BackendSettings, Settings
from bulk_gen.orchestrator.backend import (
    ExecutionError,
    GenerationBackend,
    MockGenerationBackend,
    VeoHttpBackend,
)
from bulk_gen.orchestrator.export import ArtifactExporter
from bulk_gen.orchestrator.models import (
    GenerationSpec,
    InputType,
    QueueCounts,
    WorkItemStatus,
    WorkItemView,
)
from bulk_gen.orchestrator.service import BulkGenerationService
from bulk_gen.orchestrator.validation import validate_scene_request

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class QueueOptions:
    """Shared CLI input for how a batch is generated and processed."""

    model: str | None = None
    aspect_ratio: str = "16:9"
    input_type: InputType = InputType.TEXT_TO_VIDEO
    image_path: Path | None = None
    max_concurrent: int | None = None
    export_dir: Path | None = None
    mock: bool | None = None
    retry_failed: int = 0
    timeout_seconds: float | None = None
    progress_interval_seconds: float = 5.0


@dataclass(slots=True)
class RunCommand:
    """CLI input for submitting a batch of prompts."""

    prompts: tuple[str, ...]
    prompts_file: Path | None
    options: QueueOptions


@dataclass(slots=True)
class PlanCommand:
    """CLI input for storyboard planning."""

    topic: str
    scene_count: int
    enqueue: bool
    options: QueueOptions


@dataclass(slots=True)
class CliResult:
    """Report to render in CLI."""

    lines: list[str]
    success: bool


class BulkGenCliController:
    """Coordinates batch submission, queue processing, and export for the CLI."""

    def __init__(self, on_progress: Callable[[str], None] | None = None) -> None:
        self._on_progress = on_progress or (lambda _msg: None)

    def run(self, command: RunCommand) -> CliResult:
        """Queue every prompt, process the batch until drained, then report."""

        try:
            prompts = collect_prompts(command.prompts, command.prompts_file)
        except OSError as error:
            return CliResult(lines=[f"Cannot read prompts file: {error}"], success=False)
        if not prompts:
            return CliResult(
                lines=["No prompts given. Use --prompt or --prompts-file."],
                success=False,
            )

        settings = _settings(command.options)
        specs = [_build_spec(prompt, command.options, settings) for prompt in prompts]
        with _backend(settings.backend, mock=command.options.mock) as backend:
            return self._process(
                settings=settings,
                backend=backend,
                specs=specs,
                options=command.options,
                lines=[],
            )

    def plan(self, command: PlanCommand) -> CliResult:
        """Generate scene prompts for a topic and optionally queue them as a batch."""

        validate_scene_request(command.topic, command.scene_count)
        settings = _settings(command.options)
        with _backend(settings.backend, mock=command.options.mock) as backend:
            try:
                scenes = backend.plan_scenes(command.topic, command.scene_count)
            except ExecutionError as error:
                return CliResult(lines=[f"Scene planning failed: {error}"], success=False)

            lines = [f"Scene {index}: {scene}" for index, scene in enumerate(scenes, start=1)]
            if not command.enqueue:
                return CliResult(lines=lines, success=True)
            if not scenes:
                return CliResult(lines=[*lines, "No prompts generated to add."], success=False)

            options = command.options
            if options.image_path is not None:
                options = replace(options, input_type=InputType.IMAGE_TO_VIDEO)
            specs = [_build_spec(scene, options, settings) for scene in scenes]
            return self._process(
                settings=settings,
                backend=backend,
                specs=specs,
                options=options,
                lines=lines,
            )

    def _process(
        self,
        *,
        settings: Settings,
        backend: GenerationBackend,
        specs: list[GenerationSpec],
        options: QueueOptions,
        lines: list[str],
    ) -> CliResult:
        with BulkGenerationService.from_settings(settings.scheduler, backend=backend) as service:
            service.enqueue_many(specs)
            self._emit(f"Queued {len(specs)} item(s): {_fmt_counts(service.counts())}")
            completed = self._wait(service, options)

            for _ in range(options.retry_failed):
                if not completed:
                    break
                failed = [
                    item for item in service.list_all() if item.status == WorkItemStatus.FAILED
                ]
                if not failed:
                    break
                for item in failed:
                    service.retry(item.item_id)
                self._emit(f"Retrying {len(failed)} failed item(s)")
                completed = self._wait(service, options)

            items = service.list_all()
            counts = service.counts()

        lines.extend(render_item_line(item) for item in items)
        lines.append(f"Queue summary: {_fmt_counts(counts)}")
        if not completed:
            lines.append("Timed out waiting for the queue to drain.")

        if options.export_dir is not None:
            with ArtifactExporter(
                output_dir=options.export_dir,
                stagger_seconds=settings.export.stagger_seconds,
                api_key=settings.backend.api_key,
                api_base_url=settings.backend.base_url,
            ) as exporter:
                summary = exporter.export(items)
            if summary.message:
                lines.append(summary.message)
            lines.extend(
                f"Export error: item={item_id} {message}"
                for item_id, message in summary.errors.items()
            )
        return CliResult(lines=lines, success=completed and counts.failed == 0)

    def _wait(self, service: BulkGenerationService, options: QueueOptions) -> bool:
        """Wait for the queue to drain, emitting progress; ``False`` on timeout."""

        interval = options.progress_interval_seconds
        deadline = None
        if options.timeout_seconds is not None:
            deadline = time.monotonic() + options.timeout_seconds
        while True:
            step = interval
            if deadline is not None:
                step = min(interval, max(0.0, deadline - time.monotonic()))
            if service.wait_until_idle(timeout=step):
                return True
            self._emit(f"Progress: {_fmt_counts(service.counts())}")
            if deadline is not None and time.monotonic() >= deadline:
                return False

    def _emit(self, message: str) -> None:
        logger.info(message)
        self._on_progress(message)


def collect_prompts(prompts: tuple[str, ...], prompts_file: Path | None) -> list[str]:
    """Merge inline prompts with one-per-line file prompts; blanks and ``#`` lines skipped."""

    collected = [prompt.strip() for prompt in prompts if prompt.strip()]
    if prompts_file is not None:
        for line in prompts_file.read_text("utf-8").splitlines():
            stripped = line.strip()
            if stripped and not stripped.startswith("#"):
                collected.append(stripped)
    return collected


def render_item_line(item: WorkItemView) -> str:
    prompt = item.spec.prompt if len(item.spec.prompt) <= 60 else item.spec.prompt[:57] + "..."
    line = f"[{item.status.value}] item={item.item_id} attempt={item.attempt} prompt={prompt!r}"
    if item.result is not None:
        return f"{line} video={item.result.uri}"
    if item.error is not None:
        return f"{line} error={item.error}"
    return line


def build_backend(settings: BackendSettings, *, mock: bool | None = None) -> GenerationBackend:
    """Pick the HTTP backend when an API key is configured, otherwise the mock."""

    use_mock = settings.use_mock if mock is None else mock
    if use_mock:
        if settings.use_mock:
            logger.warning("BULK_GEN_API_KEY is not set. Using a mock generation service.")
        return MockGenerationBackend(
            min_delay_seconds=settings.mock_min_delay_seconds,
            max_delay_seconds=settings.mock_max_delay_seconds,
            failure_rate=settings.mock_failure_rate,
        )
    return VeoHttpBackend(
        api_key=settings.api_key,
        base_url=settings.base_url,
        planner_model=settings.planner_model,
        operation_poll_seconds=settings.operation_poll_seconds,
        request_timeout_seconds=settings.request_timeout_seconds,
    )


@contextmanager
def _backend(settings: BackendSettings, *, mock: bool | None) -> Iterator[GenerationBackend]:
    backend = build_backend(settings, mock=mock)
    try:
        yield backend
    finally:
        if isinstance(backend, VeoHttpBackend):
            backend.close()


def _settings(options: QueueOptions) -> Settings:
    settings = Settings.from_env()
    if options.max_concurrent is not None:
        settings.scheduler.max_concurrent = options.max_concurrent
    settings.validate()
    return settings


def _build_spec(prompt: str, options: QueueOptions, settings: Settings) -> GenerationSpec:
    return GenerationSpec(
        prompt=prompt,
        input_type=options.input_type,
        model=options.model or settings.backend.default_model,
        aspect_ratio=options.aspect_ratio,
        image_path=options.image_path,
    )


def _fmt_counts(counts: QueueCounts) -> str:
    return (
        f"queued={counts.queued} running={counts.running} "
        f"succeeded={counts.succeeded} failed={counts.failed} total={counts.total}"
    )
