"""Command-line interface for stylegen.

Batch generates style-consistent images from a style guide and a list of
image definitions.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from collections.abc import Callable, Sequence
from pathlib import Path
import sys
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt

from stylegen.core.config import (
    ConfigError,
    LoggingConfig,
    build_settings,
    get_config_template,
    load_config_file,
    load_image_requests,
    load_style_guide,
    merge_options,
)
from stylegen.core.config.models import GeneratorSettings
from stylegen.core.generation.api import clear_progress, list_models
from stylegen.core.generation.errors import format_error_for_cli
from stylegen.core.generation.image_client import ImageClient
from stylegen.core.generation.models import (
    MAX_REFERENCE_IMAGES,
    BatchSummary,
    ImageRequest,
)
from stylegen.core.generation.orchestrator import BatchOptions, BatchOrchestrator
from stylegen.core.generation.progress import ProgressStore
from stylegen.core.generation.prompt_builder import build_prompt
from stylegen.core.utils.logging import configure_logging

console = Console()
logger = logging.getLogger(__name__)

CONFIG_INIT_FILENAME = ".stylegenrc.json"
PREVIEW_CHARS = 150

# Approximate Gemini pricing
INPUT_COST_PER_1K_TOKENS = 0.00025
OUTPUT_COST_PER_IMAGE = 0.02
CHARS_PER_TOKEN = 4


class CostEstimate(BaseModel):
    """Approximate cost of generating a batch."""

    model_config = ConfigDict(frozen=True)

    image_count: int
    estimated_tokens: int
    input_cost: float
    output_cost: float

    @property
    def total_cost(self) -> float:
        return self.input_cost + self.output_cost


def estimate_cost(image_count: int, prompts: Sequence[str]) -> CostEstimate:
    """Estimate batch cost from prompt length and image count.

    Tokens are approximated as one per four characters (rounded up).
    """
    total_chars = sum(len(p) for p in prompts)
    estimated_tokens = -(-total_chars // CHARS_PER_TOKEN)
    return CostEstimate(
        image_count=image_count,
        estimated_tokens=estimated_tokens,
        input_cost=(estimated_tokens / 1000) * INPUT_COST_PER_1K_TOKENS,
        output_cost=image_count * OUTPUT_COST_PER_IMAGE,
    )


def _preview(text: str) -> str:
    return f"{text[:PREVIEW_CHARS]}..."


def prompt_for_reference_images(request: ImageRequest) -> list[Path]:
    """Interactively collect reference image paths for one request.

    Blocking; run it off the event loop.

    Returns:
        Resolved paths of existing files, at most MAX_REFERENCE_IMAGES.
    """
    console.print(f"\n[cyan]--- Image: {escape(request.title)} ---[/cyan]")
    console.print(f"[dim]ID: {escape(request.id)}[/dim]")
    console.print(f"[dim]Section: {escape(request.section)}[/dim]")
    console.print(f"[dim]Aspect: {escape(request.aspect_ratio)}[/dim]")
    console.print(f"[dim]\nPrompt preview: {escape(_preview(request.prompt))}[/dim]")

    if not Confirm.ask(
        "Add reference images for this generation?", default=False, console=console
    ):
        return []

    references: list[Path] = []
    while len(references) < MAX_REFERENCE_IMAGES:
        raw = Prompt.ask(
            f"Reference image path ({len(references) + 1}/{MAX_REFERENCE_IMAGES})",
            console=console,
        ).strip()
        if not raw:
            console.print("[red]Path cannot be empty[/red]")
            continue
        path = Path(raw).expanduser().resolve()
        if not path.is_file():
            console.print(f"[red]File not found: {escape(str(path))}[/red]")
            continue
        references.append(path)

        if len(references) >= MAX_REFERENCE_IMAGES:
            break
        if not Confirm.ask("Add another reference image?", default=False, console=console):
            break

    console.print(f"[green]Added {len(references)} reference image(s)[/green]")
    return references


async def _collect_reference_images(request: ImageRequest) -> list[Path]:
    return await asyncio.to_thread(prompt_for_reference_images, request)


def _cli_options(args: argparse.Namespace) -> dict[str, Any]:
    """CLI values keyed the way merge_options expects (None = unset)."""
    return {
        "style_guide": args.style_guide,
        "images": args.images,
        "output": args.output,
        "api_key": args.api_key,
        "model": args.model,
        "size": args.size,
        "format": args.format,
        "filename": args.filename,
        "concurrency": args.concurrency,
        "interactive": args.interactive,
    }


def _print_settings(settings: GeneratorSettings, style_guide_path: str, image_count: int) -> None:
    console.print("\n[bold]Generation Summary:[/bold]")
    console.print(f"[dim]  Style Guide: {escape(style_guide_path)}[/dim]")
    console.print(f"[dim]  Images: {image_count} total[/dim]")
    console.print(f"[dim]  Output: {escape(str(settings.output_dir))}[/dim]")
    console.print(f"[dim]  Model: {settings.model}[/dim]")
    console.print(f"[dim]  Image Size: {settings.image_size}[/dim]")
    console.print(f"[dim]  Format: {settings.output_format}[/dim]")
    console.print(
        f"[dim]  Filename: {escape(settings.filename_template)}.{settings.output_format}[/dim]"
    )
    console.print(f"[dim]  Concurrency: {settings.concurrency} parallel requests[/dim]")


def _print_batch_summary(summary: BatchSummary, output_dir: Path) -> None:
    console.print("\n[bold]=== Generation Complete ===[/bold]")
    console.print(f"[green]  Successful: {len(summary.successful)}[/green]")
    console.print(f"[red]  Failed: {len(summary.failed)}[/red]")
    console.print(f"[dim]  Skipped (already done): {summary.skipped}[/dim]")

    if summary.failed:
        console.print("\n[yellow]Failed images:[/yellow]")
        for failure in summary.failed:
            console.print(
                f"[red]  - {escape(failure.request_id)}: {escape(str(failure.error))}[/red]"
            )
            console.print(f"[dim]    Hint: {escape(failure.error.hint)}[/dim]")

    console.print(f"\n[dim]Output saved to: {escape(str(output_dir.resolve()))}[/dim]")


async def run_generate_async(
    args: argparse.Namespace,
    *,
    client: ImageClient | None = None,
    cwd: Path | None = None,
) -> int:
    """Run the generate command.

    Args:
        args: Parsed ``generate`` arguments.
        client: Image client override.
        cwd: Directory searched for a config file (default: current dir).

    Returns:
        Exit code (0 for success, 1 if configuration is invalid or any
        image failed)
    """
    config_result = load_config_file(cwd)
    file_config: dict[str, Any] | None = None
    if config_result is not None:
        file_config, config_path = config_result
        console.print(f"[dim]Using config from {escape(str(config_path))}[/dim]")
    options = merge_options(_cli_options(args), file_config)
    logger.debug("Merged options: %s", {k: v for k, v in options.items() if k != "api_key"})

    if not options.get("style_guide") or not options.get("images"):
        console.print(
            "[red]ERROR: --style-guide and --images are required "
            "(pass them or set styleGuide/images in a config file)[/red]"
        )
        return 1

    try:
        style_guide = load_style_guide(options["style_guide"])
        requests = load_image_requests(options["images"])
        settings = build_settings(options)
        orchestrator = BatchOrchestrator(settings, client=client)
    except ConfigError as e:
        console.print(f"[red]{escape(format_error_for_cli(e))}[/red]")
        return 1

    console.print(f"[green]Loaded style guide and {len(requests)} image definitions[/green]")
    _print_settings(settings, str(options["style_guide"]), len(requests))

    await orchestrator.progress.load()
    stats = orchestrator.progress.get_stats()
    has_progress = stats.completed > 0
    if has_progress:
        console.print(
            f"\n[yellow]  Existing progress: {stats.completed} completed, "
            f"{stats.failed} failed[/yellow]"
        )

    fresh_start = bool(args.fresh)
    if not args.yes:
        question = "Resume generation?" if has_progress else "Start generation?"
        proceed = await asyncio.to_thread(Confirm.ask, question, default=True, console=console)
        if not proceed:
            console.print("[dim]Generation cancelled[/dim]")
            return 0
        if has_progress and not fresh_start:
            fresh_start = await asyncio.to_thread(
                Confirm.ask,
                "Start fresh (ignore previous progress)?",
                default=False,
                console=console,
            )

    def on_request_start(request: ImageRequest, current: int, total: int) -> None:
        console.print(f"\n[blue][{current}/{total}] Processing: {escape(request.title)}[/blue]")

    def on_progress(message: str) -> None:
        console.print(f"[dim]  {escape(message)}[/dim]")

    console.print("\n[bold]Starting generation...[/bold]\n")
    summary = await orchestrator.run_batch(
        style_guide,
        requests,
        BatchOptions(
            fresh_start=fresh_start,
            on_progress=on_progress,
            on_request_start=on_request_start,
            get_reference_artifacts=_collect_reference_images if settings.interactive else None,
        ),
    )

    _print_batch_summary(summary, settings.output_dir)
    return 1 if summary.failed else 0


def run_generate(args: argparse.Namespace) -> int:
    """Generate images from a style guide and image definitions."""
    return asyncio.run(run_generate_async(args))


def run_list(args: argparse.Namespace) -> int:
    """List the images of a definitions file."""
    try:
        requests = load_image_requests(args.images)
    except ConfigError as e:
        console.print(f"[red]{escape(format_error_for_cli(e))}[/red]")
        return 1

    console.print(f"\n[bold]Images in {escape(args.images)}:[/bold]\n")
    for i, request in enumerate(requests, start=1):
        console.print(f"[cyan]{i}. {escape(request.title)}[/cyan]")
        console.print(f"[dim]   ID: {escape(request.id)}[/dim]")
        console.print(f"[dim]   Section: {escape(request.section)}[/dim]")
        console.print(f"[dim]   Aspect: {escape(request.aspect_ratio)}[/dim]")
        console.print()
    console.print(f"[dim]Total: {len(requests)} images[/dim]")
    return 0


def run_status(args: argparse.Namespace) -> int:
    """Show generation progress for an output directory."""
    store = asyncio.run(ProgressStore.open(args.output))
    stats = store.get_stats()
    record = store.record

    console.print("\n[bold]Generation Progress:[/bold]\n")
    console.print(f"[dim]  Started: {stats.started_at}[/dim]")
    console.print(f"[green]  Completed: {stats.completed}[/green]")
    console.print(f"[red]  Failed: {stats.failed}[/red]")

    if record.completed:
        console.print("\n[green]  Completed images:[/green]")
        for request_id in record.completed:
            console.print(f"[dim]    - {escape(request_id)}[/dim]")

    if record.failed:
        console.print("\n[red]  Failed images:[/red]")
        for failure in record.failed:
            console.print(
                f"[dim]    - {escape(failure.id)} ({failure.attempts} attempts): "
                f"{escape(failure.last_error)}[/dim]"
            )
    return 0


def run_clear(args: argparse.Namespace) -> int:
    """Clear generation progress for an output directory."""
    asyncio.run(clear_progress(args.output))
    console.print("[green]Progress cleared[/green]")
    return 0


def run_dry_run(args: argparse.Namespace) -> int:
    """Preview prompts and estimate cost without calling the API."""
    try:
        style_guide = load_style_guide(args.style_guide)
        requests = load_image_requests(args.images)
    except ConfigError as e:
        console.print(f"[red]{escape(format_error_for_cli(e))}[/red]")
        return 1

    console.print(f"\n[bold]Dry Run: Previewing {len(requests)} prompts[/bold]\n")
    console.print(f"[dim]{'=' * 60}[/dim]")

    prompts: list[str] = []
    for i, request in enumerate(requests, start=1):
        prompt = build_prompt(style_guide, request)
        prompts.append(prompt)

        console.print(f"\n[cyan][{i}/{len(requests)}] {escape(request.title)}[/cyan]")
        console.print(f"[dim]ID: {escape(request.id)}[/dim]")
        console.print(f"[dim]Section: {escape(request.section)}[/dim]")
        console.print(f"[dim]Aspect Ratio: {escape(request.aspect_ratio)}[/dim]")
        console.print(f"[dim]Prompt Length: {len(prompt)} characters[/dim]")

        if args.full:
            console.print("[dim]\n--- Full Prompt ---[/dim]")
            console.print(prompt, markup=False, highlight=False)
            console.print("[dim]--- End Prompt ---\n[/dim]")
        else:
            console.print(f"[dim]\nPrompt Preview: {escape(_preview(request.prompt))}[/dim]")
        console.print(f"[dim]{'-' * 60}[/dim]")

    cost = estimate_cost(len(requests), prompts)
    console.print("\n[bold]Cost Estimate:[/bold]")
    console.print(f"[dim]  Images: {cost.image_count}[/dim]")
    console.print(f"[dim]  Estimated tokens: ~{cost.estimated_tokens:,}[/dim]")
    console.print(f"[dim]  Input cost: ~${cost.input_cost:.4f}[/dim]")
    console.print(f"[dim]  Output cost: ~${cost.output_cost:.2f}[/dim]")
    console.print(f"[yellow]  Total estimate: ~${cost.total_cost:.2f}[/yellow]")
    console.print("[dim]  (Actual costs may vary based on model and settings)[/dim]")
    console.print("\n[dim]Run 'stylegen generate' to generate images[/dim]")
    return 0


def run_init(args: argparse.Namespace, cwd: Path | None = None) -> int:
    """Write a config file template to the current directory."""
    config_path = (cwd or Path.cwd()) / CONFIG_INIT_FILENAME

    if config_path.exists() and not args.force:
        overwrite = Confirm.ask(
            f"{CONFIG_INIT_FILENAME} already exists. Overwrite?", default=False, console=console
        )
        if not overwrite:
            console.print("[dim]Cancelled[/dim]")
            return 0

    config_path.write_text(json.dumps(get_config_template(), indent=2), encoding="utf-8")
    console.print(f"[green]Created {escape(str(config_path))}[/green]")
    console.print("[dim]\nEdit the file to configure your project, then run:[/dim]")
    console.print("[cyan]  stylegen generate[/cyan]")
    return 0


def run_models(args: argparse.Namespace) -> int:
    """List supported image models."""
    console.print("\n[bold]Supported models:[/bold]\n")
    for model in list_models():
        console.print(
            f"[cyan]{model['id']}[/cyan] [dim]{model['name']} "
            f"(default size {model['default_size']})[/dim]"
        )
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for CLI."""
    p = argparse.ArgumentParser(
        prog="stylegen",
        description="Batch generate AI images with consistent style using the Gemini API",
    )
    p.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    p.add_argument("--log-file", default=None, help="Write logs to a file instead of stdout")
    p.add_argument("--log-json", action="store_true", help="Emit structured JSON logs")
    sub = p.add_subparsers(dest="cmd", required=True)

    gen = sub.add_parser("generate", help="Generate images from style guide and image definitions")
    gen.add_argument("-s", "--style-guide", help="Path to style guide JSON file")
    gen.add_argument("-i", "--images", help="Path to images definition JSON file")
    gen.add_argument("-o", "--output", help="Output directory (default: ./output)")
    gen.add_argument(
        "-k", "--api-key", help="Gemini API key (or use GOOGLE_AI_STUDIO_API_KEY env var)"
    )
    gen.add_argument("-m", "--model", help="Model to use (default: gemini-3-pro-image-preview)")
    gen.add_argument("--size", help="Image size: 1K, 2K, or 4K (default: 2K)")
    gen.add_argument(
        "-c", "--concurrency", type=int, help="Number of parallel requests (default: 5)"
    )
    gen.add_argument("-f", "--format", help="Output format: png, jpg, webp (default: png)")
    gen.add_argument(
        "--filename", help="Filename template: {id}, {section}, {title}, {ratio} (default: {id})"
    )
    gen.add_argument(
        "--interactive",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Prompt for reference images before generation",
    )
    gen.add_argument("--fresh", action="store_true", help="Ignore previous progress")
    gen.add_argument("-y", "--yes", action="store_true", help="Skip confirmation prompts")

    lst = sub.add_parser("list", help="List all images in a configuration file")
    lst.add_argument("-i", "--images", required=True, help="Path to images definition JSON file")

    status = sub.add_parser("status", help="Check generation progress")
    status.add_argument("-o", "--output", default="./output", help="Output directory")

    clear = sub.add_parser("clear", help="Clear generation progress")
    clear.add_argument("-o", "--output", default="./output", help="Output directory")

    dry = sub.add_parser("dry-run", help="Preview prompts without making API calls")
    dry.add_argument("-s", "--style-guide", required=True, help="Path to style guide JSON file")
    dry.add_argument("-i", "--images", required=True, help="Path to images definition JSON file")
    dry.add_argument("--full", action="store_true", help="Show full prompts instead of previews")

    init = sub.add_parser("init", help="Create a config file in the current directory")
    init.add_argument("--force", action="store_true", help="Overwrite an existing config file")

    sub.add_parser("models", help="List supported image models")

    return p


_COMMANDS: dict[str, Callable[[argparse.Namespace], int]] = {
    "generate": run_generate,
    "list": run_list,
    "status": run_status,
    "clear": run_clear,
    "dry-run": run_dry_run,
    "init": run_init,
    "models": run_models,
}


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point for CLI."""
    p = build_arg_parser()
    args = p.parse_args(argv)

    try:
        log_config = LoggingConfig(
            level=args.log_level.upper(), structured=args.log_json, filename=args.log_file
        )
    except ValidationError:
        p.error(f"invalid --log-level: {args.log_level}")
    configure_logging(
        level=log_config.level,
        filename=log_config.filename,
        structured=log_config.structured,
    )

    try:
        exit_code = _COMMANDS[args.cmd](args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted. Progress is saved; run again to resume.[/yellow]")
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
