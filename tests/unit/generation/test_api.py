"""Tests for the public generation entry points."""

from __future__ import annotations

from pathlib import Path

import pytest

from stylegen.core.config.models import GeneratorSettings
from stylegen.core.generation.api import (
    clear_progress,
    generate_batch,
    generate_one,
    get_progress_stats,
    list_models,
)
from stylegen.core.generation.errors import ErrorKind, GenerationError
from stylegen.core.generation.models import StyleGuide
from stylegen.core.generation.orchestrator import BatchOptions
from stylegen.core.generation.progress import PROGRESS_FILENAME
from tests.fixtures.generation import FakeImageClient, make_request


@pytest.mark.asyncio
async def test_generate_batch_and_progress_tools(
    settings: GeneratorSettings, style_guide: StyleGuide, output_dir: Path
) -> None:
    client = FakeImageClient({"b": [RuntimeError("content blocked by safety filters")]})

    summary = await generate_batch(
        style_guide,
        [make_request("a"), make_request("b")],
        settings,
        BatchOptions(concurrency=2),
        client=client,
    )

    assert [r.request_id for r in summary.successful] == ["a"]
    assert summary.failed[0].error.kind is ErrorKind.CONTENT_SAFETY

    stats = await get_progress_stats(output_dir)
    assert (stats.completed, stats.failed) == (1, 1)

    await clear_progress(output_dir)
    assert not (output_dir / PROGRESS_FILENAME).exists()
    assert (await get_progress_stats(output_dir)).completed == 0


@pytest.mark.asyncio
async def test_generate_one_does_not_track_progress(
    settings: GeneratorSettings, style_guide: StyleGuide, output_dir: Path, tmp_path: Path
) -> None:
    own = tmp_path / "own.png"
    own.write_bytes(b"own")
    extra = tmp_path / "extra.png"
    extra.write_bytes(b"extra")
    client = FakeImageClient()

    result = await generate_one(
        style_guide,
        make_request("solo", reference_images=[own]),
        settings,
        [extra],
        client=client,
    )

    assert result.success is True
    assert result.file_path == output_dir / "solo.png"
    assert [r.data for r in client.payloads[0].references] == [b"own", b"extra"]
    assert not (output_dir / PROGRESS_FILENAME).exists()


@pytest.mark.asyncio
async def test_generate_one_raises(settings: GeneratorSettings, style_guide: StyleGuide) -> None:
    client = FakeImageClient({"solo": [RuntimeError("400 bad request")]})

    with pytest.raises(GenerationError) as exc_info:
        await generate_one(style_guide, make_request("solo"), settings, client=client)

    assert exc_info.value.error.kind is ErrorKind.MALFORMED_REQUEST


def test_list_models() -> None:
    models = list_models()
    assert models[0] == {
        "id": "gemini-3-pro-image-preview",
        "name": "Gemini 3 Pro Image (Preview)",
        "default_size": "2K",
    }
    assert {m["id"] for m in models} >= {"gemini-2.5-flash-image"}
