"""Durable progress tracking for resumable batch generation.

One JSON document per output directory records which request ids have
completed and which have failed (with attempt counts). Every mutation is
flushed immediately so a crash loses at most the in-flight requests.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Sequence
from pathlib import Path

import aiofiles  # type: ignore[import-untyped]
from pydantic import ValidationError

from stylegen.core.generation.models import (
    FailureRecord,
    ImageRequest,
    ProgressRecord,
    ProgressStats,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

PROGRESS_FILENAME = ".progress.json"
DEFAULT_MAX_RETRIES = 3


class ProgressStore:
    """File-backed record of completed and failed request ids.

    Writes are best-effort: a failed save is logged, never raised, so it
    cannot abort an otherwise-successful generation. Concurrent saves are
    serialized through a single lock and each one writes the full record.

    Example:
        >>> store = ProgressStore(Path("output"))
        >>> await store.load()
        >>> remaining = store.get_remaining(requests)
        >>> await store.mark_completed("hero")
    """

    def __init__(self, output_dir: Path | str) -> None:
        """Initialize the store (does not touch disk).

        Args:
            output_dir: Output directory that owns the progress file.
        """
        self.output_dir = Path(output_dir)
        self.progress_file = self.output_dir / PROGRESS_FILENAME
        self._record = ProgressRecord()
        self._write_lock = asyncio.Lock()

    @classmethod
    async def open(cls, output_dir: Path | str) -> ProgressStore:
        """Create a store and load any existing progress."""
        store = cls(output_dir)
        await store.load()
        return store

    @property
    def record(self) -> ProgressRecord:
        """Current in-memory record (read-only use)."""
        return self._record

    async def load(self) -> ProgressRecord:
        """Load durable state, falling back to a fresh record.

        Never raises: a corrupt or unreadable progress file must not block a
        retry run.

        Returns:
            The loaded (or fresh) record.
        """
        self._record = ProgressRecord()
        if not self.progress_file.exists():
            return self._record

        try:
            async with aiofiles.open(self.progress_file, encoding="utf-8") as f:
                content = await f.read()
            self._record = ProgressRecord.model_validate(json.loads(content))
            logger.debug(
                "Loaded progress from %s: %d completed, %d failed",
                self.progress_file,
                len(self._record.completed),
                len(self._record.failed),
            )
        except (OSError, ValueError, ValidationError):
            logger.warning(
                "Could not load progress file %s, starting fresh",
                self.progress_file,
                exc_info=True,
            )
            self._record = ProgressRecord()
        return self._record

    async def save(self) -> None:
        """Persist the full record (atomic replace, serialized, best-effort)."""
        async with self._write_lock:
            payload = json.dumps(self._record.to_json_dict(), indent=2)
            tmp_path = self.progress_file.with_name(f"{PROGRESS_FILENAME}.tmp")
            try:
                self.output_dir.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                    await f.write(payload)
                os.replace(tmp_path, self.progress_file)
            except OSError as e:
                logger.error("Failed to save progress to %s: %s", self.progress_file, e)

    def is_completed(self, request_id: str) -> bool:
        return request_id in self._record.completed

    async def mark_completed(self, request_id: str) -> None:
        """Record a success. Idempotent: a known id is a no-op."""
        if self.is_completed(request_id):
            return
        self._record.completed.append(request_id)
        await self.save()

    async def mark_failed(self, request_id: str, error_message: str) -> None:
        """Record a terminal failure, incrementing the id's attempt count.

        Args:
            request_id: Request id.
            error_message: Message of the failure.
        """
        existing = self._record.find_failure(request_id)
        if existing is not None:
            existing.attempts += 1
            existing.last_error = error_message
            existing.last_attempt = utc_now_iso()
        else:
            self._record.failed.append(
                FailureRecord(id=request_id, attempts=1, last_error=error_message)
            )
        await self.save()

    def get_failed_attempts(self, request_id: str) -> int:
        record = self._record.find_failure(request_id)
        return record.attempts if record is not None else 0

    def get_remaining(
        self,
        requests: Sequence[ImageRequest],
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> list[ImageRequest]:
        """Requests that still need processing, in their original order.

        Excludes completed ids and ids whose failed attempts reached
        ``max_retries``.

        Args:
            requests: All requests of the batch.
            max_retries: Failed-attempt count at which an id is given up on.

        Returns:
            Order-preserving subset of ``requests``.
        """
        return [
            request
            for request in requests
            if not self.is_completed(request.id)
            and self.get_failed_attempts(request.id) < max_retries
        ]

    def get_stats(self) -> ProgressStats:
        return ProgressStats(
            completed=len(self._record.completed),
            failed=len(self._record.failed),
            started_at=self._record.started_at,
        )

    async def clear(self) -> None:
        """Reset to an empty record and remove the progress file."""
        async with self._write_lock:
            self._record = ProgressRecord()
            if self.progress_file.exists():
                self.progress_file.unlink()
                logger.info("Cleared progress file %s", self.progress_file)
