"""
File-backed retry queue of keyword ids whose last scrape failed.

The queue is a JSON array of positive integers shared by the web process and
the cron worker. Every read-modify-write cycle runs under an exclusive
advisory lock on a sidecar `<queue>.lock` file, and every write replaces the
queue file atomically, so a reader never sees a half-written array.
"""

from __future__ import annotations

import asyncio
import fcntl
import json
import logging
import os
from collections.abc import Callable, Iterable
from functools import lru_cache
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, IO

from app.config import get_retry_queue_settings
from app.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)


class RetryQueueError(Exception):
    """Base exception for retry queue failures."""


class QueueLockTimeoutError(RetryQueueError):
    """Raised when the queue lock cannot be acquired within the retry budget."""


def _is_keyword_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def normalize_queue(raw: Any) -> list[int]:
    """
    Keep positive integer ids in first-seen order, without duplicates.
    """

    if not isinstance(raw, list):
        return []
    seen: set[int] = set()
    ids: list[int] = []
    for value in raw:
        if _is_keyword_id(value) and value not in seen:
            seen.add(value)
            ids.append(value)
    return ids


class QueueFileLock:
    """
    Cross-process exclusive lock using `flock` on a dedicated lock file.

    Acquisition is non-blocking with bounded exponential backoff so a stuck
    holder surfaces as QueueLockTimeoutError instead of a hung event loop.
    """

    def __init__(
        self,
        lock_path: Path,
        *,
        attempts: int = 20,
        backoff_seconds: float = 0.05,
        max_backoff_seconds: float = 1.0,
    ) -> None:
        self.lock_path = lock_path
        self.attempts = max(attempts, 1)
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self._handle: IO[str] | None = None

    async def acquire(self) -> None:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_path, "a+", encoding="utf-8")
        try:
            for attempt in range(self.attempts):
                try:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                except BlockingIOError:
                    if attempt + 1 >= self.attempts:
                        break
                    delay = min(self.backoff_seconds * (2**attempt), self.max_backoff_seconds)
                    await asyncio.sleep(delay)
                    continue
                self._handle = handle
                return
        except BaseException:
            handle.close()
            raise

        handle.close()
        raise QueueLockTimeoutError(
            f"Could not lock {self.lock_path} after {self.attempts} attempts."
        )

    def release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        except OSError as exc:
            log_event(
                logger,
                logging.WARNING,
                "retry_queue_unlock_failed",
                lock_path=str(self.lock_path),
                error=str(exc),
            )
        finally:
            handle.close()

    async def __aenter__(self) -> "QueueFileLock":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()


class RetryQueue:
    """
    Set of keyword ids awaiting a retry, persisted as one JSON file.
    """

    def __init__(
        self,
        path: Path | str,
        *,
        lock_attempts: int = 20,
        lock_backoff_seconds: float = 0.05,
    ) -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_name(f"{self.path.name}.lock")
        self._lock_attempts = lock_attempts
        self._lock_backoff_seconds = lock_backoff_seconds
        self._mutex: asyncio.Lock | None = None
        self._mutex_loop: asyncio.AbstractEventLoop | None = None

    def _local_lock(self) -> asyncio.Lock:
        # Tasks of this process wait here; the file lock serializes processes.
        loop = asyncio.get_running_loop()
        if self._mutex is None or self._mutex_loop is not loop:
            self._mutex = asyncio.Lock()
            self._mutex_loop = loop
        return self._mutex

    def _lock(self) -> QueueFileLock:
        return QueueFileLock(
            self.lock_path,
            attempts=self._lock_attempts,
            backoff_seconds=self._lock_backoff_seconds,
        )

    def _ensure_file(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.path, "x", encoding="utf-8") as handle:
                handle.write("[]")
        except FileExistsError:
            pass

    def _read_raw(self) -> Any:
        try:
            raw_text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        try:
            return json.loads(raw_text) if raw_text.strip() else []
        except json.JSONDecodeError as exc:
            log_event(
                logger,
                logging.WARNING,
                "retry_queue_corrupted",
                path=str(self.path),
                error=str(exc),
            )
            return None

    def _write(self, ids: list[int]) -> None:
        with NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=str(self.path.parent),
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            json.dump(ids, handle)
            handle.flush()
            os.fsync(handle.fileno())
            tmp_name = handle.name

        try:
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def _mutate(self, operation: Callable[[list[int]], list[int]]) -> tuple[list[int], list[int]]:
        """
        Run one locked read-modify-write cycle; returns (before, after).

        The file is rewritten only when the set of valid ids changes. File I/O
        runs in a worker thread while the lock is held.
        """

        await asyncio.to_thread(self._ensure_file)
        async with self._local_lock(), self._lock():
            raw = await asyncio.to_thread(self._read_raw)
            current = normalize_queue(raw)
            updated = operation(list(current))
            if updated != current:
                await asyncio.to_thread(self._write, updated)
            return current, updated

    async def add(self, keyword_id: int) -> bool:
        """
        Add one id; invalid ids are ignored. Returns True when the queue changed.
        """

        if not _is_keyword_id(keyword_id):
            return False

        def _add(ids: list[int]) -> list[int]:
            return ids if keyword_id in ids else [*ids, keyword_id]

        before, after = await self._mutate(_add)
        return before != after

    async def remove(self, keyword_id: int) -> bool:
        if isinstance(keyword_id, bool) or not isinstance(keyword_id, int) or keyword_id == 0:
            return False
        target = abs(keyword_id)
        before, after = await self._mutate(lambda ids: [value for value in ids if value != target])
        return before != after

    async def remove_batch(self, keyword_ids: Iterable[int]) -> int:
        """
        Remove several ids in one locked cycle. Returns how many were removed.
        """

        targets = {value for value in keyword_ids if _is_keyword_id(value)}
        if not targets:
            return 0
        before, after = await self._mutate(lambda ids: [value for value in ids if value not in targets])
        return len(before) - len(after)

    async def clear(self) -> None:
        await self._mutate(lambda ids: [])

    async def list(self) -> list[int]:
        await asyncio.to_thread(self._ensure_file)
        async with self._local_lock(), self._lock():
            return normalize_queue(await asyncio.to_thread(self._read_raw))


@lru_cache(maxsize=1)
def get_retry_queue() -> RetryQueue:
    settings = get_retry_queue_settings()
    return RetryQueue(
        settings.path,
        lock_attempts=settings.lock_attempts,
        lock_backoff_seconds=settings.lock_backoff_seconds,
    )
