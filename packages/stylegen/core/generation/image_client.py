"""Gemini image-generation client.

Async-first adapter around the google-genai SDK. Converts a
GenerationPayload into a ``generate_content`` call and normalizes the
response into a GenerationResponse. Retry and classification are the
executor's concern, not the client's.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

import aiofiles  # type: ignore[import-untyped]
from google import genai
from google.genai import types

from stylegen.core.generation.models import (
    MAX_REFERENCE_IMAGES,
    GenerationPayload,
    GenerationResponse,
    ReferenceArtifact,
    ResponsePart,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-3-pro-image-preview"

# (id, display name, default size)
SUPPORTED_MODELS: tuple[tuple[str, str, str], ...] = (
    ("gemini-3-pro-image-preview", "Gemini 3 Pro Image (Preview)", "2K"),
    ("gemini-2.5-flash-image", "Gemini 2.5 Flash Image", "1K"),
)

_MIME_TYPES: dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def get_mime_type(path: Path | str) -> str:
    """MIME type from a file extension (defaults to image/png)."""
    return _MIME_TYPES.get(Path(path).suffix.lower(), "image/png")


async def read_reference_artifacts(paths: Sequence[Path | str]) -> list[ReferenceArtifact]:
    """Read reference images for attachment to a request.

    Unreadable files are skipped with a warning. At most
    MAX_REFERENCE_IMAGES are attached.

    Args:
        paths: Reference image paths.

    Returns:
        Loaded artifacts, in input order.
    """
    if len(paths) > MAX_REFERENCE_IMAGES:
        logger.warning(
            "%d reference images given, only the first %d are attached",
            len(paths),
            MAX_REFERENCE_IMAGES,
        )

    artifacts: list[ReferenceArtifact] = []
    for raw_path in list(paths)[:MAX_REFERENCE_IMAGES]:
        path = Path(raw_path)
        try:
            async with aiofiles.open(path, "rb") as f:
                data = await f.read()
        except OSError as e:
            logger.warning("Could not read reference image %s: %s", path, e)
            continue
        artifacts.append(ReferenceArtifact(path=path, mime_type=get_mime_type(path), data=data))
    return artifacts


class ImageClient(Protocol):
    """Protocol for the remote image-generation service."""

    async def generate(self, payload: GenerationPayload) -> GenerationResponse:
        """Submit one generation call.

        Raises:
            Exception: Any transport or service error; callers classify it.
        """
        ...


def _normalize_response(response: Any) -> GenerationResponse:
    """Extract the first candidate's content parts from an SDK response."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return GenerationResponse()
    content = getattr(candidates[0], "content", None)
    raw_parts = getattr(content, "parts", None) or []

    parts: list[ResponsePart] = []
    for raw in raw_parts:
        inline = getattr(raw, "inline_data", None)
        if inline is not None and getattr(inline, "data", None):
            parts.append(
                ResponsePart(
                    image_data=inline.data,
                    mime_type=getattr(inline, "mime_type", None) or "image/png",
                )
            )
        elif getattr(raw, "text", None):
            parts.append(ResponsePart(text=raw.text))
    return GenerationResponse(parts=parts)


class GeminiImageClient:
    """Async client for Gemini image models.

    Args:
        client: google-genai Client instance.
    """

    def __init__(self, client: genai.Client) -> None:
        self._client = client

    @classmethod
    def from_api_key(cls, api_key: str) -> GeminiImageClient:
        """Build a client from an already-resolved API key."""
        return cls(genai.Client(api_key=api_key))

    async def generate(self, payload: GenerationPayload) -> GenerationResponse:
        """Generate one image.

        Args:
            payload: Prompt, aspect ratio, size, model, and reference images.

        Returns:
            Normalized response parts.
        """
        contents: list[Any] = [types.Part.from_text(text=payload.prompt)]
        contents.extend(
            types.Part.from_bytes(data=ref.data, mime_type=ref.mime_type)
            for ref in payload.references
        )

        config = types.GenerateContentConfig(
            response_modalities=["TEXT", "IMAGE"],
            image_config=types.ImageConfig(
                aspect_ratio=payload.aspect_ratio.value,
                image_size=payload.image_size,
            ),
        )

        logger.debug(
            "generate_content(model=%s, aspect=%s, size=%s, references=%d)",
            payload.model,
            payload.aspect_ratio.value,
            payload.image_size,
            len(payload.references),
        )
        response = await self._client.aio.models.generate_content(
            model=payload.model,
            contents=contents,
            config=config,
        )
        return _normalize_response(response)
