"""Public entry points for batch and single-image generation."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from stylegen.core.config.models import GeneratorSettings
from stylegen.core.generation.executor import execute_request
from stylegen.core.generation.image_client import (
    SUPPORTED_MODELS,
    GeminiImageClient,
    ImageClient,
)
from stylegen.core.generation.models import (
    BatchSummary,
    GenerationResult,
    ImageRequest,
    ProgressStats,
    StyleGuide,
)
from stylegen.core.generation.orchestrator import BatchOptions, BatchOrchestrator
from stylegen.core.generation.progress import ProgressStore
from stylegen.core.generation.prompt_builder import build_prompt

logger = logging.getLogger(__name__)


async def generate_batch(
    style_guide: StyleGuide,
    requests: Sequence[ImageRequest],
    settings: GeneratorSettings,
    options: BatchOptions | None = None,
    *,
    client: ImageClient | None = None,
) -> BatchSummary:
    """Generate a batch of images, resuming from saved progress.

    Args:
        style_guide: Style guide shared by all requests.
        requests: Requests to generate.
        settings: Generator settings.
        options: Run options (fresh start, concurrency, callbacks).
        client: Image client override.

    Returns:
        BatchSummary of the run.

    Raises:
        ConfigError: If no client is given and no API key can be resolved.
    """
    orchestrator = BatchOrchestrator(settings, client=client)
    return await orchestrator.run_batch(style_guide, requests, options)


async def generate_one(
    style_guide: StyleGuide,
    request: ImageRequest,
    settings: GeneratorSettings,
    reference_artifacts: Sequence[Path | str] | None = None,
    *,
    client: ImageClient | None = None,
) -> GenerationResult:
    """Generate a single image without progress tracking.

    Reference images declared on the request are attached ahead of
    ``reference_artifacts``.

    Raises:
        GenerationError: On terminal failure.
        ConfigError: If no client is given and no API key can be resolved.
    """
    logger.info("Generating single image %s", request.id)
    image_client = client or GeminiImageClient.from_api_key(settings.resolve_api_key())
    references = [*request.reference_images, *(reference_artifacts or [])]
    return await execute_request(
        request,
        client=image_client,
        settings=settings,
        prompt=build_prompt(style_guide, request),
        reference_paths=references,
    )


async def get_progress_stats(output_dir: Path | str) -> ProgressStats:
    """Progress counts for an output directory."""
    store = await ProgressStore.open(output_dir)
    return store.get_stats()


async def clear_progress(output_dir: Path | str) -> None:
    """Delete the saved progress of an output directory."""
    store = ProgressStore(output_dir)
    await store.clear()


def list_models() -> list[dict[str, str]]:
    """Supported image models with display name and default size."""
    return [
        {"id": model_id, "name": name, "default_size": size}
        for model_id, name, size in SUPPORTED_MODELS
    ]
