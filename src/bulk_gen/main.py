"""CLI entrypoint for bulk-gen."""

import logging
from pathlib import Path

import rich_click as click

from bulk_gen import __version__
from bulk_gen.config import ConfigurationError
from bulk_gen.orchestrator.controllers import (
    BulkGenCliController,
    CliResult,
    PlanCommand,
    QueueOptions,
    RunCommand,
)
from bulk_gen.orchestrator.models import ASPECT_RATIOS, SUPPORTED_MODELS, InputType
from bulk_gen.orchestrator.validation import MAX_SCENES, ValidationError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = BulkGenCliController(on_progress=click.echo)


def queue_options(func):
    """Options shared by every command that processes a batch."""

    decorators = [
        click.option(
            "--model",
            type=click.Choice(SUPPORTED_MODELS),
            default=None,
            help="Video model. Defaults to BULK_GEN_DEFAULT_MODEL.",
        ),
        click.option(
            "--aspect-ratio",
            type=click.Choice(ASPECT_RATIOS),
            default=ASPECT_RATIOS[0],
            show_default=True,
        ),
        click.option(
            "--image",
            "image_path",
            type=click.Path(path_type=Path, exists=True, dir_okay=False),
            default=None,
            help="Reference image for image-to-video or frame-to-video input.",
        ),
        click.option(
            "--max-concurrent",
            type=click.IntRange(min=1, max=10),
            default=None,
            help="Concurrent generations. Defaults to BULK_GEN_MAX_CONCURRENT.",
        ),
        click.option(
            "--export-dir",
            type=click.Path(path_type=Path, file_okay=False),
            default=None,
            help="Download every successful video into this directory when done.",
        ),
        click.option(
            "--mock/--no-mock",
            default=None,
            help="Force the mock backend on or off. Default: mock when no API key is set.",
        ),
        click.option(
            "--retry-failed",
            type=click.IntRange(min=0, max=10),
            default=0,
            show_default=True,
            help="Rounds of automatic retry for failed items after the queue drains.",
        ),
        click.option(
            "--timeout-seconds",
            type=click.FloatRange(min=1),
            default=None,
            help="Give up waiting for the queue after this long.",
        ),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


@click.group()
@click.version_option(version=__version__, prog_name="bulk-gen")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
def bulk_gen(log_level: str) -> None:
    """Bulk video generation queue."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@bulk_gen.command("run")
@click.option("--prompt", "prompts", multiple=True, help="Prompt to generate. Can be repeated.")
@click.option(
    "--prompts-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="Text file with one prompt per line; blank lines and # comments are skipped.",
)
@click.option(
    "--input-type",
    type=click.Choice([item.value for item in InputType]),
    default=InputType.TEXT_TO_VIDEO.value,
    show_default=True,
)
@queue_options
def run(  # noqa: PLR0913
    prompts: tuple[str, ...],
    prompts_file: Path | None,
    input_type: str,
    model: str | None,
    aspect_ratio: str,
    image_path: Path | None,
    max_concurrent: int | None,
    export_dir: Path | None,
    mock: bool | None,
    retry_failed: int,
    timeout_seconds: float | None,
) -> None:
    """Queue prompts and process them until every item succeeds or fails."""

    _finish(
        lambda: CONTROLLER.run(
            RunCommand(
                prompts=prompts,
                prompts_file=prompts_file,
                options=QueueOptions(
                    model=model,
                    aspect_ratio=aspect_ratio,
                    input_type=InputType(input_type),
                    image_path=image_path,
                    max_concurrent=max_concurrent,
                    export_dir=export_dir,
                    mock=mock,
                    retry_failed=retry_failed,
                    timeout_seconds=timeout_seconds,
                ),
            ),
        ),
    )


@bulk_gen.command("plan")
@click.option("--topic", required=True, help="Story topic to split into scenes.")
@click.option(
    "--scenes",
    "scene_count",
    type=click.IntRange(min=1, max=MAX_SCENES),
    default=5,
    show_default=True,
)
@click.option(
    "--enqueue/--no-enqueue",
    default=False,
    show_default=True,
    help="Queue the generated scene prompts as one batch.",
)
@queue_options
def plan(  # noqa: PLR0913
    topic: str,
    scene_count: int,
    enqueue: bool,
    model: str | None,
    aspect_ratio: str,
    image_path: Path | None,
    max_concurrent: int | None,
    export_dir: Path | None,
    mock: bool | None,
    retry_failed: int,
    timeout_seconds: float | None,
) -> None:
    """Generate scene prompts for a topic, optionally queueing them."""

    _finish(
        lambda: CONTROLLER.plan(
            PlanCommand(
                topic=topic,
                scene_count=scene_count,
                enqueue=enqueue,
                options=QueueOptions(
                    model=model,
                    aspect_ratio=aspect_ratio,
                    image_path=image_path,
                    max_concurrent=max_concurrent,
                    export_dir=export_dir,
                    mock=mock,
                    retry_failed=retry_failed,
                    timeout_seconds=timeout_seconds,
                ),
            ),
        ),
    )


def _finish(action) -> None:
    try:
        result: CliResult = action()
    except (ValidationError, ConfigurationError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Some items did not complete successfully.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    bulk_gen()
