"""Configuration models for stylegen."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stylegen.core.config.errors import ConfigError
from stylegen.core.generation.image_client import DEFAULT_MODEL

API_KEY_ENV_VARS: tuple[str, ...] = ("GOOGLE_AI_STUDIO_API_KEY", "GEMINI_API_KEY")


class RetryPolicy(BaseModel):
    """Per-request retry policy for transient generation failures.

    Args:
        delays_s: Delay before each retry, in seconds. Its length is the
            retry budget: one initial attempt plus ``len(delays_s)`` retries.
    """

    model_config = ConfigDict(frozen=True)

    delays_s: tuple[float, ...] = (1.0, 2.0, 4.0)

    @field_validator("delays_s")
    @classmethod
    def validate_delays(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        """Ensure delays are non-negative."""
        if any(d < 0 for d in v):
            raise ValueError("retry delays must be >= 0")
        return v

    @property
    def max_retries(self) -> int:
        return len(self.delays_s)

    @property
    def max_attempts(self) -> int:
        return len(self.delays_s) + 1

    def delay_for(self, retry: int) -> float:
        """Delay before a retry.

        Args:
            retry: Retry number (1-indexed, 1 = first retry after initial failure)

        Returns:
            Delay in seconds
        """
        return self.delays_s[retry - 1]


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    structured: bool = Field(default=False, description="Emit JSON log lines")
    filename: str | None = Field(default=None, description="Log file (stdout if None)")


class GeneratorSettings(BaseModel):
    """Flat options struct for the generation engine.

    Merged from CLI flags and the config file; the API key is resolved once
    via resolve_api_key() and then injected.

    Example:
        >>> settings = GeneratorSettings(output_dir=Path("out"), concurrency=2)
        >>> settings.resolve_api_key()
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    api_key: str | None = Field(default=None, repr=False)
    model: str = Field(default=DEFAULT_MODEL, min_length=1)
    output_dir: Path = Path("./output")
    image_size: Literal["1K", "2K", "4K"] = "2K"
    output_format: Literal["png", "jpg", "webp"] = "png"
    filename_template: str = Field(default="{id}", min_length=1)
    concurrency: int = Field(default=5, ge=1)
    interactive: bool = False
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    max_failed_runs: int = Field(
        default=3, ge=1, description="Failed runs after which a request is skipped"
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("output_format", mode="before")
    @classmethod
    def normalize_format(cls, v: object) -> object:
        """Accept 'jpeg' and mixed case."""
        if isinstance(v, str):
            v = v.lower().lstrip(".")
            return "jpg" if v == "jpeg" else v
        return v

    @field_validator("image_size", mode="before")
    @classmethod
    def normalize_size(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v

    def resolve_api_key(self) -> str:
        """Resolve the API key: explicit option first, then environment.

        Returns:
            API key

        Raises:
            ConfigError: If no key is configured
        """
        if self.api_key:
            return self.api_key
        for var in API_KEY_ENV_VARS:
            value = os.getenv(var)
            if value:
                return value
        raise ConfigError(
            "GOOGLE_AI_STUDIO_API_KEY is required. Set it via environment variable or options.",
            field="apiKey",
        )
