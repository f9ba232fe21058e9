"""Single-request executor.

Performs one generation request end-to-end: builds the outbound payload,
submits it with retry-and-backoff on retryable failures, validates the
response, and writes the output artifact.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from io import BytesIO
from pathlib import Path

from PIL import Image

from stylegen.core.config.models import GeneratorSettings
from stylegen.core.generation.errors import (
    ErrorKind,
    GenerationError,
    classify,
    make_error,
)
from stylegen.core.generation.image_client import ImageClient, read_reference_artifacts
from stylegen.core.generation.models import (
    GenerationPayload,
    GenerationResponse,
    GenerationResult,
    ImageRequest,
)
from stylegen.core.generation.prompt_builder import format_filename, normalize_aspect_ratio
from stylegen.core.utils.logging import get_logger

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]
SleepFn = Callable[[float], Awaitable[None]]

# Output format → (PIL format, MIME type)
_OUTPUT_FORMATS: dict[str, tuple[str, str]] = {
    "png": ("PNG", "image/png"),
    "jpg": ("JPEG", "image/jpeg"),
    "webp": ("WEBP", "image/webp"),
}

# Case-insensitive markers of a model refusal in a text-only response
_REFUSAL_MARKERS: tuple[str, ...] = ("cannot", "sorry")


def noop_progress(message: str) -> None:
    """Default progress callback."""


async def build_payload(
    request: ImageRequest,
    *,
    prompt: str,
    settings: GeneratorSettings,
    reference_paths: Sequence[Path | str] = (),
) -> GenerationPayload:
    """Build the outbound payload for a request.

    Unreadable reference files are skipped with a warning.

    Args:
        request: The image request.
        prompt: Full prompt text.
        settings: Generator settings (model, size).
        reference_paths: Reference images to attach.

    Returns:
        GenerationPayload ready for the image client.
    """
    references = await read_reference_artifacts(reference_paths)
    return GenerationPayload(
        model=settings.model,
        prompt=prompt,
        aspect_ratio=normalize_aspect_ratio(request.aspect_ratio),
        image_size=settings.image_size,
        references=references,
    )


def build_output_path(request: ImageRequest, settings: GeneratorSettings) -> Path:
    """Output artifact path: ``{output_dir}/{filename_template}.{format}``."""
    filename = format_filename(settings.filename_template, request)
    return settings.output_dir / f"{filename}.{settings.output_format}"


def _write_image(image_data: bytes, mime_type: str, output_path: Path, output_format: str) -> Path:
    """Re-encode to the output format if needed and write to disk.

    Pure CPU/file work, run in a thread.
    """
    pil_format, target_mime = _OUTPUT_FORMATS[output_format]
    image_bytes = image_data

    if mime_type != target_mime:
        logger.debug("Converting %s to %s for %s", mime_type, target_mime, output_path.name)
        img: Image.Image = Image.open(BytesIO(image_data))
        if pil_format == "JPEG" and img.mode not in {"RGB", "L"}:
            img = img.convert("RGB")
        buf = BytesIO()
        img.save(buf, pil_format)
        image_bytes = buf.getvalue()

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(image_bytes)
    return output_path


async def save_response(
    response: GenerationResponse,
    request: ImageRequest,
    settings: GeneratorSettings,
) -> Path:
    """Validate a response and persist its image.

    Args:
        response: Normalized service response.
        request: The request the response belongs to.
        settings: Generator settings (output location, format, filename).

    Returns:
        Path of the written artifact.

    Raises:
        GenerationError: If the response carries no usable image.
    """
    if not response.parts:
        raise GenerationError(
            make_error(ErrorKind.UNKNOWN, "Invalid response structure from API", request.id)
        )

    for part in response.parts:
        if part.image_data:
            output_path = build_output_path(request, settings)
            return await asyncio.to_thread(
                _write_image,
                part.image_data,
                part.mime_type or "image/png",
                output_path,
                settings.output_format,
            )

    for part in response.parts:
        if part.text:
            lowered = part.text.lower()
            if any(marker in lowered for marker in _REFUSAL_MARKERS):
                raise GenerationError(
                    make_error(
                        ErrorKind.CONTENT_SAFETY,
                        f"Model refused to generate the image: {part.text[:200]}",
                        request.id,
                        raw_message=part.text,
                    )
                )
            raise GenerationError(
                make_error(
                    ErrorKind.UNKNOWN,
                    f"API returned text instead of image: {part.text[:200]}",
                    request.id,
                    raw_message=part.text,
                )
            )

    raise GenerationError(make_error(ErrorKind.UNKNOWN, "No image data in response", request.id))


async def execute_request(
    request: ImageRequest,
    *,
    client: ImageClient,
    settings: GeneratorSettings,
    prompt: str,
    reference_paths: Sequence[Path | str] = (),
    on_progress: ProgressCallback = noop_progress,
    sleep: SleepFn = asyncio.sleep,
) -> GenerationResult:
    """Execute one generation request with retry.

    Retryable failures (rate limit, transient server, timeout) are retried
    after the policy's delays; anything else, or an exhausted budget, is
    terminal.

    Args:
        request: The image request.
        client: Image-generation client.
        settings: Generator settings.
        prompt: Full prompt text.
        reference_paths: Reference images to attach.
        on_progress: Progress notification callback.
        sleep: Backoff sleep (injectable for tests).

    Returns:
        Successful GenerationResult with the artifact path.

    Raises:
        GenerationError: Terminal failure, carrying the classified error and
            the number of remote calls made.
    """
    payload = await build_payload(
        request, prompt=prompt, settings=settings, reference_paths=reference_paths
    )
    policy = settings.retry
    request_logger = get_logger(__name__, request_id=request.id)

    attempt = 0
    while True:
        attempt += 1
        try:
            response = await client.generate(payload)
            file_path = await save_response(response, request, settings)
        except Exception as e:
            error = classify(e, request.id)
            if not error.retryable or attempt > policy.max_retries:
                request_logger.error(
                    "Generation failed for %s after %d attempt(s): %s",
                    request.id,
                    attempt,
                    error,
                )
                raise GenerationError(error, attempts=attempt) from e

            request_logger.warning(
                "Generation attempt %d/%d for %s failed (retryable): %s",
                attempt,
                policy.max_attempts,
                request.id,
                error.raw_message,
            )
            await sleep(policy.delay_for(attempt))
            on_progress(f"Retry attempt {attempt}/{policy.max_retries} for {request.id}...")
            continue

        request_logger.info("Generated %s -> %s", request.id, file_path)
        return GenerationResult(
            success=True,
            request_id=request.id,
            file_path=file_path,
            attempts=attempt,
        )
