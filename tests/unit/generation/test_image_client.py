"""Tests for the Gemini image client adapter."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from stylegen.core.generation.image_client import (
    GeminiImageClient,
    _normalize_response,
    get_mime_type,
    read_reference_artifacts,
)
from stylegen.core.generation.models import AspectRatio, GenerationPayload, ReferenceArtifact


def _sdk_response(*parts: SimpleNamespace) -> SimpleNamespace:
    return SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))]
    )


def _image_part(data: bytes, mime_type: str = "image/png") -> SimpleNamespace:
    return SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime_type), text=None)


def _text_part(text: str) -> SimpleNamespace:
    return SimpleNamespace(inline_data=None, text=text)


@pytest.fixture
def mock_genai_client() -> MagicMock:
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(
        return_value=_sdk_response(_image_part(b"img"))
    )
    return client


class TestMimeTypes:
    @pytest.mark.parametrize(
        ("name", "mime"),
        [
            ("a.png", "image/png"),
            ("a.JPG", "image/jpeg"),
            ("a.jpeg", "image/jpeg"),
            ("a.webp", "image/webp"),
            ("a.gif", "image/gif"),
            ("a.bmp", "image/png"),
        ],
    )
    def test_get_mime_type(self, name: str, mime: str) -> None:
        assert get_mime_type(name) == mime


class TestReadReferenceArtifacts:
    @pytest.mark.asyncio
    async def test_reads_files(self, tmp_path: Path) -> None:
        ref = tmp_path / "ref.jpg"
        ref.write_bytes(b"jpeg-bytes")

        artifacts = await read_reference_artifacts([ref])

        assert artifacts == [
            ReferenceArtifact(path=ref, mime_type="image/jpeg", data=b"jpeg-bytes")
        ]

    @pytest.mark.asyncio
    async def test_skips_unreadable(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        good = tmp_path / "good.png"
        good.write_bytes(b"x")

        artifacts = await read_reference_artifacts([tmp_path / "missing.png", good])

        assert [a.path for a in artifacts] == [good]
        assert "Could not read reference image" in caplog.text

    @pytest.mark.asyncio
    async def test_caps_at_fourteen(self, tmp_path: Path) -> None:
        paths = []
        for i in range(16):
            path = tmp_path / f"ref{i}.png"
            path.write_bytes(b"x")
            paths.append(path)

        artifacts = await read_reference_artifacts(paths)

        assert len(artifacts) == 14
        assert artifacts[-1].path == paths[13]


class TestNormalizeResponse:
    def test_image_part(self) -> None:
        response = _normalize_response(_sdk_response(_image_part(b"img", "image/webp")))
        assert response.parts[0].image_data == b"img"
        assert response.parts[0].mime_type == "image/webp"

    def test_text_part(self) -> None:
        response = _normalize_response(_sdk_response(_text_part("hello")))
        assert response.parts[0].text == "hello"
        assert response.parts[0].image_data is None

    def test_no_candidates(self) -> None:
        assert _normalize_response(SimpleNamespace(candidates=[])).parts == []
        assert _normalize_response(SimpleNamespace(candidates=None)).parts == []

    def test_no_content(self) -> None:
        response = SimpleNamespace(candidates=[SimpleNamespace(content=None)])
        assert _normalize_response(response).parts == []


class TestGeminiImageClient:
    @pytest.mark.asyncio
    async def test_generate_builds_request(self, mock_genai_client: MagicMock) -> None:
        client = GeminiImageClient(mock_genai_client)
        payload = GenerationPayload(
            model="gemini-2.5-flash-image",
            prompt="draw a cat",
            aspect_ratio=AspectRatio.SQUARE,
            image_size="1K",
            references=[
                ReferenceArtifact(path=Path("r.png"), mime_type="image/png", data=b"ref")
            ],
        )

        response = await client.generate(payload)

        assert response.parts[0].image_data == b"img"
        call = mock_genai_client.aio.models.generate_content.await_args
        assert call.kwargs["model"] == "gemini-2.5-flash-image"
        contents = call.kwargs["contents"]
        assert len(contents) == 2
        assert contents[0].text == "draw a cat"
        assert contents[1].inline_data.data == b"ref"
        config = call.kwargs["config"]
        assert config.response_modalities == ["TEXT", "IMAGE"]
        assert config.image_config.aspect_ratio == "1:1"
        assert config.image_config.image_size == "1K"

    @pytest.mark.asyncio
    async def test_generate_propagates_errors(self, mock_genai_client: MagicMock) -> None:
        mock_genai_client.aio.models.generate_content.side_effect = RuntimeError("503 down")
        client = GeminiImageClient(mock_genai_client)
        payload = GenerationPayload(
            model="m", prompt="p", aspect_ratio=AspectRatio.WIDE, image_size="2K"
        )

        with pytest.raises(RuntimeError, match="503"):
            await client.generate(payload)
