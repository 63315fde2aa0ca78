"""
tests/test_retry_queue.py

Pytest unit tests for the file-backed retry queue.

Coverage
--------
- Add, remove, batch removal and clear
- Duplicate and invalid ids
- No rewrite when the queue is unchanged
- File reads and writes run off the event loop thread
- Missing, corrupted and mixed-content files
- Lock timeout while another holder keeps the lock
- Concurrent adds under the lock
"""

from __future__ import annotations

import asyncio
import fcntl
import json
import threading

import pytest

from app.services.retry_queue import QueueLockTimeoutError, RetryQueue, normalize_queue


def _stored(queue: RetryQueue) -> object:
    return json.loads(queue.path.read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Basic operations
# ---------------------------------------------------------------------------


class TestRetryQueueOperations:
    def test_list_creates_empty_file(self, retry_queue: RetryQueue) -> None:
        assert asyncio.run(retry_queue.list()) == []
        assert _stored(retry_queue) == []

    def test_add_is_idempotent(self, retry_queue: RetryQueue) -> None:
        async def scenario() -> list[bool]:
            return [await retry_queue.add(7), await retry_queue.add(7), await retry_queue.add(3)]

        assert asyncio.run(scenario()) == [True, False, True]
        assert _stored(retry_queue) == [7, 3]

    @pytest.mark.parametrize("value", [0, -4, True, "5", None, 2.5])
    def test_add_ignores_invalid_ids(self, retry_queue: RetryQueue, value: object) -> None:
        assert asyncio.run(retry_queue.add(value)) is False  # type: ignore[arg-type]
        assert asyncio.run(retry_queue.list()) == []

    def test_remove_uses_absolute_value(self, retry_queue: RetryQueue) -> None:
        async def scenario() -> list[int]:
            await retry_queue.add(9)
            await retry_queue.add(4)
            assert await retry_queue.remove(-9) is True
            assert await retry_queue.remove(123) is False
            return await retry_queue.list()

        assert asyncio.run(scenario()) == [4]

    def test_remove_batch_counts_removed_ids(self, retry_queue: RetryQueue) -> None:
        async def scenario() -> tuple[int, list[int]]:
            for keyword_id in (1, 2, 3, 4):
                await retry_queue.add(keyword_id)
            removed = await retry_queue.remove_batch([2, 4, 99, -1])
            return removed, await retry_queue.list()

        assert asyncio.run(scenario()) == (2, [1, 3])

    def test_clear_empties_queue(self, retry_queue: RetryQueue) -> None:
        async def scenario() -> list[int]:
            await retry_queue.add(5)
            await retry_queue.clear()
            return await retry_queue.list()

        assert asyncio.run(scenario()) == []
        assert _stored(retry_queue) == []


# ---------------------------------------------------------------------------
# Persistence behavior
# ---------------------------------------------------------------------------


class TestRetryQueuePersistence:
    def test_unchanged_queue_is_not_rewritten(self, retry_queue: RetryQueue, monkeypatch: pytest.MonkeyPatch) -> None:
        asyncio.run(retry_queue.add(11))
        writes: list[list[int]] = []
        monkeypatch.setattr(retry_queue, "_write", lambda ids: writes.append(ids))

        async def scenario() -> None:
            await retry_queue.add(11)
            await retry_queue.remove(42)
            await retry_queue.remove_batch([43, 44])

        asyncio.run(scenario())
        assert writes == []

    def test_file_io_runs_off_the_loop_thread(self, retry_queue: RetryQueue, monkeypatch: pytest.MonkeyPatch) -> None:
        threads: list[tuple[str, int]] = []
        read_raw = retry_queue._read_raw
        write = retry_queue._write

        def recording_read():
            threads.append(("read", threading.get_ident()))
            return read_raw()

        def recording_write(ids: list[int]) -> None:
            threads.append(("write", threading.get_ident()))
            write(ids)

        monkeypatch.setattr(retry_queue, "_read_raw", recording_read)
        monkeypatch.setattr(retry_queue, "_write", recording_write)

        async def scenario() -> list[int]:
            await retry_queue.add(4)
            return await retry_queue.list()

        assert asyncio.run(scenario()) == [4]
        assert [step for step, _ in threads] == ["read", "write", "read"]
        assert all(ident != threading.get_ident() for _, ident in threads)
        assert _stored(retry_queue) == [4]

    def test_corrupted_file_reads_as_empty(self, retry_queue: RetryQueue) -> None:
        retry_queue.path.parent.mkdir(parents=True, exist_ok=True)
        retry_queue.path.write_text("[1, 2", encoding="utf-8")

        assert asyncio.run(retry_queue.list()) == []
        assert asyncio.run(retry_queue.add(6)) is True
        assert _stored(retry_queue) == [6]

    def test_invalid_entries_are_dropped_on_next_write(self, retry_queue: RetryQueue) -> None:
        retry_queue.path.parent.mkdir(parents=True, exist_ok=True)
        retry_queue.path.write_text('[3, "x", -2, 3, null, 8]', encoding="utf-8")

        assert asyncio.run(retry_queue.list()) == [3, 8]
        asyncio.run(retry_queue.add(10))
        assert _stored(retry_queue) == [3, 8, 10]

    def test_no_temporary_files_left_behind(self, retry_queue: RetryQueue) -> None:
        asyncio.run(retry_queue.add(1))
        leftovers = [path.name for path in retry_queue.path.parent.iterdir() if path.suffix == ".tmp"]
        assert leftovers == []

    def test_normalize_queue_rejects_non_lists(self) -> None:
        assert normalize_queue({"ids": [1]}) == []
        assert normalize_queue([2, 2, 1]) == [2, 1]


# ---------------------------------------------------------------------------
# Locking
# ---------------------------------------------------------------------------


class TestRetryQueueLocking:
    def test_held_lock_times_out(self, retry_queue: RetryQueue) -> None:
        retry_queue.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(retry_queue.lock_path, "a+", encoding="utf-8") as holder:
            fcntl.flock(holder.fileno(), fcntl.LOCK_EX)
            try:
                with pytest.raises(QueueLockTimeoutError):
                    asyncio.run(retry_queue.add(1))
            finally:
                fcntl.flock(holder.fileno(), fcntl.LOCK_UN)

        assert asyncio.run(retry_queue.add(1)) is True

    def test_concurrent_adds_keep_every_id(self, tmp_path) -> None:
        queue = RetryQueue(tmp_path / "queue.json", lock_attempts=50, lock_backoff_seconds=0.001)

        async def scenario() -> list[int]:
            await asyncio.gather(*(queue.add(keyword_id) for keyword_id in range(1, 21)))
            return await queue.list()

        assert sorted(asyncio.run(scenario())) == list(range(1, 21))
