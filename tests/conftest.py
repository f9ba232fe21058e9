"""Shared pytest fixtures for stylegen tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from stylegen.core.config.models import GeneratorSettings, RetryPolicy
from stylegen.core.generation.models import Palette, StyleGuide
from tests.fixtures.generation import FakeImageClient


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "output"


@pytest.fixture
def settings(output_dir: Path) -> GeneratorSettings:
    """Settings with zero retry delays."""
    return GeneratorSettings(
        api_key="test-key",
        output_dir=output_dir,
        retry=RetryPolicy(delays_s=(0.0, 0.0, 0.0)),
    )


@pytest.fixture
def style_guide() -> StyleGuide:
    return StyleGuide(
        brand_keywords=["clean", "modern"],
        palette=Palette(background=["#FFFFFF"], primary_accents=["#0055FF"]),
        avoid=["clutter"],
    )


@pytest.fixture
def fake_client() -> FakeImageClient:
    return FakeImageClient()
