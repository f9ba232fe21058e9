"""Image generation models.

Defines the core data models for batch image generation:
- AspectRatio: Aspect ratios accepted by the image model
- StyleGuide / ImageStyle: Brand style inputs for prompt construction
- ImageRequest: One unit of generation work
- FailureRecord / ProgressRecord / ProgressStats: Durable resume state
- GenerationResult / FailedRequest / BatchSummary: Run outcomes
- ReferenceArtifact / GenerationPayload / ResponsePart / GenerationResponse:
  Normalized shapes of the remote call
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from stylegen.core.generation.errors import ClassifiedError

MAX_REFERENCE_IMAGES = 14


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


class AspectRatio(str, Enum):
    """Aspect ratios supported by the image model."""

    SQUARE = "1:1"
    WIDE = "16:9"
    ULTRAWIDE = "21:9"
    PORTRAIT_4_5 = "4:5"
    LANDSCAPE_5_4 = "5:4"
    PORTRAIT_2_3 = "2:3"
    LANDSCAPE_3_2 = "3:2"
    PORTRAIT_3_4 = "3:4"
    LANDSCAPE_4_3 = "4:3"
    TALL = "9:16"


class Palette(BaseModel):
    """Style guide color palette."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    background: list[str] = Field(default_factory=list)
    primary_accents: list[str] = Field(default_factory=list)
    secondary_accents: list[str] = Field(default_factory=list)
    neutrals: list[str] = Field(default_factory=list)


class UIStyle(BaseModel):
    """Style guide UI rendering hints."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    mode: str | None = None
    shapes: str | None = None
    charts: str | None = None
    icons: str | None = None


class StyleGuide(BaseModel):
    """Brand style guide shared by every image in a batch.

    Attributes:
        brand_keywords: Short style keywords.
        palette: Color palette.
        ui_style: UI rendering hints.
        typography_feel: Typography descriptors.
        visual_motifs: Recurring visual motifs.
        avoid: Things the generated images must not contain.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    brand_keywords: list[str] = Field(default_factory=list)
    palette: Palette | None = None
    ui_style: UIStyle | None = None
    typography_feel: list[str] = Field(default_factory=list)
    visual_motifs: list[str] = Field(default_factory=list)
    avoid: list[str] = Field(default_factory=list)

    @classmethod
    def from_raw(cls, data: dict[str, Any]) -> StyleGuide:
        """Build from a raw JSON object, unwrapping a top-level ``style_guide`` key.

        Args:
            data: Parsed style guide document.

        Returns:
            Validated StyleGuide.
        """
        inner = data.get("style_guide", data)
        return cls.model_validate(inner)


class ImageStyle(BaseModel):
    """Per-image style attributes."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    lighting: str | None = None
    detail_level: str | None = None
    ui_fidelity: str | None = None
    mood: str | None = None


class ImageRequest(BaseModel):
    """One unit of generation work.

    Immutable for the duration of a run. ``id`` is the progress-tracking key
    and the default artifact name.

    Attributes:
        id: Unique id within a batch.
        title: Human-readable title.
        section: Document section the image belongs to.
        aspect_ratio: Requested aspect ratio (normalized at execution time).
        prompt: Main generation prompt.
        style: Optional image-specific style.
        reference_images: Reference image paths attached to the request.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str = Field(min_length=1)
    title: str = ""
    section: str = ""
    aspect_ratio: str = AspectRatio.WIDE.value
    prompt: str = ""
    style: ImageStyle | None = None
    reference_images: list[Path] = Field(default_factory=list, max_length=MAX_REFERENCE_IMAGES)


class FailureRecord(BaseModel):
    """Failure history for one request id.

    Attributes:
        id: Request id.
        attempts: Number of runs that ended in terminal failure.
        last_error: Message of the most recent failure.
        last_attempt: ISO timestamp of the most recent failure.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(min_length=1)
    attempts: int = Field(default=1, ge=1)
    last_error: str = Field(default="", alias="lastError")
    last_attempt: str = Field(default_factory=utc_now_iso, alias="lastAttempt")


class ProgressRecord(BaseModel):
    """Durable progress for one output directory.

    Serialized with camelCase keys:
    ``{completed: [...], failed: [{id, attempts, lastError, lastAttempt}], startedAt}``.

    Attributes:
        completed: Ids that finished successfully (set semantics, insertion ordered).
        failed: Failure records, one per id.
        started_at: ISO timestamp of first creation.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    completed: list[str] = Field(default_factory=list)
    failed: list[FailureRecord] = Field(default_factory=list)
    started_at: str = Field(default_factory=utc_now_iso, alias="startedAt")

    def find_failure(self, request_id: str) -> FailureRecord | None:
        """Look up the failure record for an id.

        Args:
            request_id: Request id to find.

        Returns:
            FailureRecord if present, None otherwise.
        """
        for record in self.failed:
            if record.id == request_id:
                return record
        return None

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with the on-disk key names."""
        return self.model_dump(mode="json", by_alias=True)


class ProgressStats(BaseModel):
    """Summary counts of a progress record."""

    model_config = ConfigDict(frozen=True)

    completed: int = Field(ge=0)
    failed: int = Field(ge=0)
    started_at: str


class GenerationResult(BaseModel):
    """A successfully generated artifact.

    Failures are carried by FailedRequest (batch) or GenerationError
    (single request), never by this model.

    Attributes:
        success: Always True.
        request_id: Id of the request.
        file_path: Written artifact.
        attempts: Remote calls made for this request in this run.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    success: Literal[True] = True
    request_id: str
    file_path: Path
    attempts: int = Field(default=1, ge=1)


class FailedRequest(BaseModel):
    """A request that reached terminal failure in a batch run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    request_id: str
    error: ClassifiedError
    attempts: int = Field(default=0, ge=0)

    @property
    def message(self) -> str:
        return self.error.message


class BatchSummary(BaseModel):
    """Aggregate outcome of one batch run.

    Attributes:
        successful: Successful results, in completion order.
        failed: Terminal failures, in completion order.
        skipped: Requests skipped because already completed or out of retries.
    """

    model_config = ConfigDict(extra="forbid")

    successful: list[GenerationResult] = Field(default_factory=list)
    failed: list[FailedRequest] = Field(default_factory=list)
    skipped: int = Field(default=0, ge=0)

    @property
    def total_processed(self) -> int:
        return len(self.successful) + len(self.failed)


class ReferenceArtifact(BaseModel):
    """A reference image attached to an outbound request."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    path: Path
    mime_type: str
    data: bytes = Field(repr=False)


class GenerationPayload(BaseModel):
    """Everything the remote service needs for one call."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    model: str
    prompt: str
    aspect_ratio: AspectRatio
    image_size: str
    references: list[ReferenceArtifact] = Field(default_factory=list)


class ResponsePart(BaseModel):
    """One content part of a service response (image bytes or text)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    image_data: bytes | None = Field(default=None, repr=False)
    mime_type: str | None = None
    text: str | None = None


class GenerationResponse(BaseModel):
    """Normalized service response: the content parts of the first candidate."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    parts: list[ResponsePart] = Field(default_factory=list)
