"""Batch orchestrator.

Runs a batch of image requests in contiguous, bounded-concurrency groups,
recording every terminal outcome in the progress store so an interrupted
or partially failed batch can be resumed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from stylegen.core.config.models import GeneratorSettings
from stylegen.core.generation.errors import GenerationError, classify
from stylegen.core.generation.executor import ProgressCallback, SleepFn, execute_request
from stylegen.core.generation.image_client import GeminiImageClient, ImageClient
from stylegen.core.generation.models import (
    MAX_REFERENCE_IMAGES,
    BatchSummary,
    FailedRequest,
    GenerationResult,
    ImageRequest,
    StyleGuide,
)
from stylegen.core.generation.progress import ProgressStore
from stylegen.core.generation.prompt_builder import build_prompt

logger = logging.getLogger(__name__)

RequestStartCallback = Callable[[ImageRequest, int, int], None]
ReferenceCollector = Callable[[ImageRequest], Awaitable[list[Path]]]


def _noop_progress(message: str) -> None:
    pass


def _noop_request_start(request: ImageRequest, index: int, total: int) -> None:
    pass


@dataclass(frozen=True)
class BatchOptions:
    """Per-run options for BatchOrchestrator.run_batch.

    Attributes:
        fresh_start: Clear progress before computing remaining work.
        concurrency: Group size (overrides settings.concurrency when set).
        on_progress: Called with human-readable progress messages.
        on_request_start: Called as ``(request, index, total)`` when a request
            starts; ``index`` is 1-based over the remaining requests.
        get_reference_artifacts: Optional per-request reference collector,
            run for every remaining request before any generation starts.
    """

    fresh_start: bool = False
    concurrency: int | None = None
    on_progress: ProgressCallback = _noop_progress
    on_request_start: RequestStartCallback = _noop_request_start
    get_reference_artifacts: ReferenceCollector | None = None

    def __post_init__(self) -> None:
        if self.concurrency is not None and self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")


def _guarded(callback: Callable[..., None]) -> Callable[..., None]:
    """Wrap a caller callback so its errors are logged instead of raised."""

    def call(*args: object) -> None:
        try:
            callback(*args)
        except Exception:
            logger.warning("Progress callback %r raised", callback, exc_info=True)

    return call


def _chunk(requests: Sequence[ImageRequest], size: int) -> list[list[ImageRequest]]:
    """Split into contiguous groups of at most ``size``, preserving order."""
    return [list(requests[i : i + size]) for i in range(0, len(requests), size)]


class BatchOrchestrator:
    """Runs batches of generation requests with resume support.

    Args:
        settings: Generator settings.
        client: Image client (a Gemini client is built from the resolved
            API key when omitted).
        progress: Progress store (one for ``settings.output_dir`` when omitted).
        sleep: Backoff sleep passed to the executor.

    Raises:
        ConfigError: If no client is given and no API key can be resolved.

    Example:
        >>> orchestrator = BatchOrchestrator(settings)
        >>> summary = await orchestrator.run_batch(style_guide, requests, BatchOptions())
    """

    def __init__(
        self,
        settings: GeneratorSettings,
        *,
        client: ImageClient | None = None,
        progress: ProgressStore | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.client = client or GeminiImageClient.from_api_key(settings.resolve_api_key())
        self.progress = progress or ProgressStore(settings.output_dir)
        self._sleep = sleep

    async def run_batch(
        self,
        style_guide: StyleGuide,
        requests: Sequence[ImageRequest],
        options: BatchOptions | None = None,
    ) -> BatchSummary:
        """Run a batch.

        Completed ids and ids that already failed ``settings.max_failed_runs``
        times are skipped. A failing request never aborts its siblings or
        later groups.

        Args:
            style_guide: Style guide shared by all requests.
            requests: All requests of the batch.
            options: Run options.

        Returns:
            BatchSummary with successes, failures, and the skipped count.
        """
        options = options or BatchOptions()
        concurrency = options.concurrency or self.settings.concurrency

        if options.fresh_start:
            await self.progress.clear()
        else:
            await self.progress.load()

        remaining = self.progress.get_remaining(requests, self.settings.max_failed_runs)
        summary = BatchSummary(skipped=len(requests) - len(remaining))
        if summary.skipped:
            logger.info("Skipping %d already completed or exhausted request(s)", summary.skipped)

        references = await self._collect_references(remaining, options)

        total = len(remaining)
        index = 0
        for group in _chunk(remaining, concurrency):
            tasks = []
            for request in group:
                index += 1
                tasks.append(
                    self._run_one(
                        style_guide, request, references[request.id], index, total, options
                    )
                )
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)

            for request, outcome in zip(group, outcomes):
                if isinstance(outcome, GenerationResult):
                    summary.successful.append(outcome)
                elif isinstance(outcome, FailedRequest):
                    summary.failed.append(outcome)
                elif isinstance(outcome, Exception):
                    summary.failed.append(await self._record_stray_failure(request, outcome))
                else:
                    raise outcome

        logger.info(
            "Batch complete: %d succeeded, %d failed, %d skipped",
            len(summary.successful),
            len(summary.failed),
            summary.skipped,
        )
        return summary

    async def _collect_references(
        self, remaining: Sequence[ImageRequest], options: BatchOptions
    ) -> dict[str, list[Path]]:
        """Gather reference paths for every remaining request, sequentially.

        A collector that raises leaves the request with only its own
        ``reference_images``.
        """
        references: dict[str, list[Path]] = {}
        for request in remaining:
            paths = list(request.reference_images)
            if options.get_reference_artifacts is not None:
                try:
                    paths.extend(await options.get_reference_artifacts(request))
                except Exception:
                    logger.warning(
                        "Reference collection failed for %s, using its own references only",
                        request.id,
                        exc_info=True,
                    )
            if len(paths) > MAX_REFERENCE_IMAGES:
                logger.warning(
                    "Request %s has %d reference images, keeping the first %d",
                    request.id,
                    len(paths),
                    MAX_REFERENCE_IMAGES,
                )
                paths = paths[:MAX_REFERENCE_IMAGES]
            references[request.id] = paths
        return references

    async def _run_one(
        self,
        style_guide: StyleGuide,
        request: ImageRequest,
        reference_paths: list[Path],
        index: int,
        total: int,
        options: BatchOptions,
    ) -> GenerationResult | FailedRequest:
        """Execute one request and record its terminal outcome."""
        on_progress = _guarded(options.on_progress)
        _guarded(options.on_request_start)(request, index, total)
        try:
            result = await execute_request(
                request,
                client=self.client,
                settings=self.settings,
                prompt=build_prompt(style_guide, request),
                reference_paths=reference_paths,
                on_progress=on_progress,
                sleep=self._sleep,
            )
        except Exception as e:
            error = e.error if isinstance(e, GenerationError) else classify(e, request.id)
            attempts = e.attempts if isinstance(e, GenerationError) else 0
            if not isinstance(e, GenerationError):
                logger.exception("Unexpected error while generating %s", request.id)
            await self.progress.mark_failed(request.id, error.message)
            on_progress(f"Failed {request.id} after {attempts} attempt(s): {error}")
            return FailedRequest(request_id=request.id, error=error, attempts=attempts)

        await self.progress.mark_completed(request.id)
        on_progress(f"Completed {request.id}")
        return result

    async def _record_stray_failure(self, request: ImageRequest, exc: Exception) -> FailedRequest:
        """Turn an exception that escaped _run_one into a recorded failure."""
        logger.error("Request %s ended with an unhandled error", request.id, exc_info=exc)
        error = classify(exc, request.id)
        await self.progress.mark_failed(request.id, error.message)
        return FailedRequest(request_id=request.id, error=error)
