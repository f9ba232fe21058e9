"""Tests for ProgressStore."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from stylegen.core.generation.progress import PROGRESS_FILENAME, ProgressStore
from tests.fixtures.generation import make_request


def _read(output_dir: Path) -> dict:
    return json.loads((output_dir / PROGRESS_FILENAME).read_text(encoding="utf-8"))


class TestLoad:
    @pytest.mark.asyncio
    async def test_missing_file_starts_fresh(self, output_dir: Path) -> None:
        store = await ProgressStore.open(output_dir)
        assert store.record.completed == []
        assert store.record.failed == []
        assert store.record.started_at

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_fresh(self, output_dir: Path) -> None:
        output_dir.mkdir(parents=True)
        (output_dir / PROGRESS_FILENAME).write_text("{not json", encoding="utf-8")

        store = await ProgressStore.open(output_dir)

        assert store.get_stats().completed == 0

    @pytest.mark.asyncio
    async def test_wrong_shape_starts_fresh(self, output_dir: Path) -> None:
        output_dir.mkdir(parents=True)
        (output_dir / PROGRESS_FILENAME).write_text('{"completed": 5}', encoding="utf-8")

        store = await ProgressStore.open(output_dir)

        assert store.record.completed == []

    @pytest.mark.asyncio
    async def test_reads_camel_case_document(self, output_dir: Path) -> None:
        output_dir.mkdir(parents=True)
        (output_dir / PROGRESS_FILENAME).write_text(
            json.dumps(
                {
                    "completed": ["a"],
                    "failed": [
                        {
                            "id": "b",
                            "attempts": 2,
                            "lastError": "boom",
                            "lastAttempt": "2026-01-01T00:00:00+00:00",
                        }
                    ],
                    "startedAt": "2026-01-01T00:00:00+00:00",
                }
            ),
            encoding="utf-8",
        )

        store = await ProgressStore.open(output_dir)

        assert store.is_completed("a")
        assert store.get_failed_attempts("b") == 2
        assert store.record.started_at == "2026-01-01T00:00:00+00:00"


class TestMutations:
    @pytest.mark.asyncio
    async def test_mark_completed_persists(self, output_dir: Path) -> None:
        store = await ProgressStore.open(output_dir)
        await store.mark_completed("a")

        assert _read(output_dir)["completed"] == ["a"]
        reloaded = await ProgressStore.open(output_dir)
        assert reloaded.is_completed("a")

    @pytest.mark.asyncio
    async def test_mark_completed_idempotent(self, output_dir: Path) -> None:
        store = await ProgressStore.open(output_dir)
        await store.mark_completed("a")
        await store.mark_completed("a")

        assert store.record.completed == ["a"]

    @pytest.mark.asyncio
    async def test_mark_failed_counts(self, output_dir: Path) -> None:
        store = await ProgressStore.open(output_dir)
        await store.mark_failed("b", "first")
        await store.mark_failed("b", "second")

        assert store.get_failed_attempts("b") == 2
        doc = _read(output_dir)
        assert doc["failed"][0]["id"] == "b"
        assert doc["failed"][0]["attempts"] == 2
        assert doc["failed"][0]["lastError"] == "second"
        assert "lastAttempt" in doc["failed"][0]
        assert "startedAt" in doc

    @pytest.mark.asyncio
    async def test_unknown_id_has_zero_attempts(self, output_dir: Path) -> None:
        store = await ProgressStore.open(output_dir)
        assert store.get_failed_attempts("nope") == 0

    @pytest.mark.asyncio
    async def test_concurrent_writes_are_not_lost(self, output_dir: Path) -> None:
        store = await ProgressStore.open(output_dir)
        ids = [f"img-{i}" for i in range(20)]

        await asyncio.gather(*(store.mark_completed(i) for i in ids))

        assert sorted(_read(output_dir)["completed"]) == sorted(ids)
        assert not (output_dir / f"{PROGRESS_FILENAME}.tmp").exists()

    @pytest.mark.asyncio
    async def test_clear_removes_file(self, output_dir: Path) -> None:
        store = await ProgressStore.open(output_dir)
        await store.mark_completed("a")
        await store.mark_failed("b", "err")

        await store.clear()

        assert not (output_dir / PROGRESS_FILENAME).exists()
        assert store.get_stats().completed == 0
        assert store.get_stats().failed == 0

    @pytest.mark.asyncio
    async def test_clear_without_file(self, output_dir: Path) -> None:
        store = ProgressStore(output_dir)
        await store.clear()
        assert store.record.completed == []

    @pytest.mark.asyncio
    async def test_save_failure_is_logged_not_raised(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory", encoding="utf-8")
        store = ProgressStore(blocker / "output")

        await store.mark_completed("a")

        assert store.is_completed("a")
        assert "Failed to save progress" in caplog.text


class TestRemaining:
    @pytest.mark.asyncio
    async def test_excludes_completed_and_exhausted(self, output_dir: Path) -> None:
        store = await ProgressStore.open(output_dir)
        requests = [make_request(i) for i in ("a", "b", "c", "d")]
        await store.mark_completed("a")
        for _ in range(3):
            await store.mark_failed("c", "err")
        await store.mark_failed("d", "err")

        remaining = store.get_remaining(requests)

        assert [r.id for r in remaining] == ["b", "d"]

    @pytest.mark.asyncio
    async def test_custom_max_retries(self, output_dir: Path) -> None:
        store = await ProgressStore.open(output_dir)
        await store.mark_failed("a", "err")
        requests = [make_request("a"), make_request("b")]

        assert [r.id for r in store.get_remaining(requests, max_retries=1)] == ["b"]
        assert [r.id for r in store.get_remaining(requests, max_retries=2)] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_preserves_input_order(self, output_dir: Path) -> None:
        store = await ProgressStore.open(output_dir)
        requests = [make_request(i) for i in ("z", "m", "a")]

        assert [r.id for r in store.get_remaining(requests)] == ["z", "m", "a"]

    @pytest.mark.asyncio
    async def test_stats(self, output_dir: Path) -> None:
        store = await ProgressStore.open(output_dir)
        await store.mark_completed("a")
        await store.mark_completed("b")
        await store.mark_failed("c", "err")

        stats = store.get_stats()

        assert stats.completed == 2
        assert stats.failed == 1
        assert stats.started_at == store.record.started_at
