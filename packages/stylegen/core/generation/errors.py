"""Classified generation errors.

Maps raw failure signals from the image-generation service into a closed
set of error kinds, each with a stable remediation hint and a retry policy.

- ErrorKind: The closed taxonomy of generation failures
- ClassifiedError: Immutable, hint-carrying description of one failure
- GenerationError: Exception carrying a ClassifiedError across raise boundaries
- classify(): Deterministic keyword classifier (first rule wins)
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

API_KEY_URL = "https://aistudio.google.com/app/apikey"


class ErrorKind(str, Enum):
    """Closed taxonomy of generation failures.

    Attributes:
        AUTH: Missing, invalid, or expired API key.
        RATE_LIMIT: Quota or request-rate limit hit.
        CONTENT_SAFETY: Prompt or output rejected by safety filters.
        MALFORMED_REQUEST: Request rejected as invalid by the service.
        TRANSIENT_SERVER: Server-side failure (5xx).
        TIMEOUT: Request did not complete in time.
        UNKNOWN: Anything not matched by a more specific rule.
    """

    AUTH = "AuthError"
    RATE_LIMIT = "RateLimitError"
    CONTENT_SAFETY = "ContentSafetyError"
    MALFORMED_REQUEST = "MalformedRequestError"
    TRANSIENT_SERVER = "TransientServerError"
    TIMEOUT = "TimeoutError"
    UNKNOWN = "UnknownGenerationError"


# Kind → retryable. Retrying cannot change the outcome of the non-retryable kinds.
_RETRYABLE: dict[ErrorKind, bool] = {
    ErrorKind.AUTH: False,
    ErrorKind.RATE_LIMIT: True,
    ErrorKind.CONTENT_SAFETY: False,
    ErrorKind.MALFORMED_REQUEST: False,
    ErrorKind.TRANSIENT_SERVER: True,
    ErrorKind.TIMEOUT: True,
    ErrorKind.UNKNOWN: False,
}

AUTH_HINT = (
    "Set GOOGLE_AI_STUDIO_API_KEY environment variable or pass --api-key.\n"
    f"Get your key at: {API_KEY_URL}"
)
RATE_LIMIT_HINT = (
    "Reduce concurrency with -c flag or wait before retrying.\n"
    "Example: stylegen generate -s style.json -i images.json -c 2"
)
CONTENT_SAFETY_HINT = (
    "Try adjusting your prompt to be less specific or remove potentially problematic content."
)
MALFORMED_REQUEST_HINT = "Verify your JSON configuration files are valid"
TRANSIENT_SERVER_HINT = (
    "The API is temporarily unavailable. Your progress is saved and you can resume later."
)
TIMEOUT_HINT = "The request took too long. Try reducing image complexity or concurrency."


def _unknown_hint(request_id: str | None) -> str:
    if request_id:
        return (
            f'Failed to generate image "{request_id}". '
            "Check your prompt or try with different settings."
        )
    return "Image generation failed. Try adjusting the prompt or reducing complexity."


class ClassifiedError(BaseModel):
    """A typed, remediation-hinted description of one failed attempt.

    Created fresh per failure and never mutated.

    Attributes:
        kind: Error kind from the closed taxonomy.
        message: Human-readable description.
        hint: Remediation hint intended for direct display.
        request_id: Originating request id (None for errors outside a request).
        raw_message: The unmodified message of the underlying failure.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: ErrorKind
    message: str
    hint: str
    request_id: str | None = None
    raw_message: str = Field(default="", repr=False)

    @property
    def retryable(self) -> bool:
        """Whether another attempt could change the outcome."""
        return _RETRYABLE[self.kind]

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class GenerationError(Exception):
    """Terminal failure of a generation request.

    Attributes:
        error: The classified failure.
        attempts: Remote calls made before giving up (0 if none were made).
    """

    def __init__(self, error: ClassifiedError, *, attempts: int = 0) -> None:
        self.error = error
        self.attempts = attempts
        super().__init__(error.message)

    @property
    def request_id(self) -> str | None:
        return self.error.request_id


def make_error(
    kind: ErrorKind,
    message: str,
    request_id: str | None = None,
    *,
    raw_message: str | None = None,
) -> ClassifiedError:
    """Build a ClassifiedError of the given kind with its standard hint."""
    hints: dict[ErrorKind, str] = {
        ErrorKind.AUTH: AUTH_HINT,
        ErrorKind.RATE_LIMIT: RATE_LIMIT_HINT,
        ErrorKind.CONTENT_SAFETY: CONTENT_SAFETY_HINT,
        ErrorKind.MALFORMED_REQUEST: MALFORMED_REQUEST_HINT,
        ErrorKind.TRANSIENT_SERVER: TRANSIENT_SERVER_HINT,
        ErrorKind.TIMEOUT: TIMEOUT_HINT,
        ErrorKind.UNKNOWN: _unknown_hint(request_id),
    }
    return ClassifiedError(
        kind=kind,
        message=message,
        hint=hints[kind],
        request_id=request_id,
        raw_message=message if raw_message is None else raw_message,
    )


# Ordered rules: first match wins.
_RULES: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    (ErrorKind.AUTH, ("api key", "401", "unauthorized")),
    (ErrorKind.RATE_LIMIT, ("rate limit", "429", "quota")),
    (ErrorKind.CONTENT_SAFETY, ("safety", "blocked", "harmful")),
    (ErrorKind.MALFORMED_REQUEST, ("invalid", "400")),
    (ErrorKind.TRANSIENT_SERVER, ("503", "500", "server")),
    (ErrorKind.TIMEOUT, ("timeout", "timed out")),
)

_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.AUTH: "Invalid or expired API key",
    ErrorKind.RATE_LIMIT: "API rate limit exceeded. The request will be retried automatically.",
    ErrorKind.CONTENT_SAFETY: (
        "Content was blocked by safety filters. Try adjusting your prompt to be less "
        "specific or remove potentially problematic content."
    ),
    ErrorKind.TRANSIENT_SERVER: "Google API server error. This is temporary - please retry.",
    ErrorKind.TIMEOUT: "Request timed out",
}


def classify(raw_error: BaseException | str, request_id: str | None = None) -> ClassifiedError:
    """Classify a raw failure into the closed error taxonomy.

    A GenerationError is already classified and is returned unchanged.

    Args:
        raw_error: Exception raised by the remote call, or its message.
        request_id: Id of the request the failure belongs to.

    Returns:
        ClassifiedError for the first matching rule, or UNKNOWN carrying
        the raw message verbatim.

    Example:
        >>> classify("429 quota exceeded", "hero").kind
        <ErrorKind.RATE_LIMIT: 'RateLimitError'>
    """
    if isinstance(raw_error, GenerationError):
        return raw_error.error

    raw_message = str(raw_error) if not isinstance(raw_error, str) else raw_error
    if not raw_message and isinstance(raw_error, BaseException):
        raw_message = type(raw_error).__name__
    haystack = raw_message.lower()

    for kind, patterns in _RULES:
        if any(pattern in haystack for pattern in patterns):
            if kind is ErrorKind.MALFORMED_REQUEST:
                message = f"Invalid request: {raw_message}"
            else:
                message = _MESSAGES[kind]
            return make_error(kind, message, request_id, raw_message=raw_message)

    return make_error(
        ErrorKind.UNKNOWN,
        raw_message or "Unknown error occurred",
        request_id,
        raw_message=raw_message,
    )


def format_error_for_cli(exc: BaseException | ClassifiedError) -> str:
    """Format an error for terminal output, including its hint when known."""
    if isinstance(exc, GenerationError):
        exc = exc.error
    if isinstance(exc, ClassifiedError):
        return f"{exc.kind.value}: {exc.message}\n\nHint: {exc.hint}"
    hint = getattr(exc, "hint", None)
    if hint:
        return f"{type(exc).__name__}: {exc}\n\nHint: {hint}"
    return f"Error: {exc}"
