"""Detached background summary generation for chapters.

`SummaryWorker.submit` starts a daemon thread and returns immediately;
callers keep no handle on the job. When the summarizer finishes, the
worker hands a `SummaryResult` to its completion callback, which is the
only place the summary is written back. Write-backs for the same chapter
are serialized with a per-chapter lock. Failures are logged and dropped.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Protocol

_LOGGER = logging.getLogger("learnhub.summary")


class Summarizer(Protocol):
    def summarize(self, text: str) -> str: ...


@dataclass(frozen=True)
class SummaryResult:
    """A finished summary for `chapter_id`, computed from `source_text`."""
    chapter_id: str
    source_text: str
    summary: str


class SummaryWorker:
    def __init__(self, summarizer: Summarizer, on_complete: Callable[[SummaryResult], None]):
        self._summarizer = summarizer
        self._on_complete = on_complete
        self._lock = threading.Lock()
        self._chapter_locks: Dict[str, threading.Lock] = {}
        self._chapter_jobs: Dict[str, int] = {}
        self._threads: set[threading.Thread] = set()

    def submit(self, chapter_id: str, text: str) -> None:
        """Queue a summary of `text` for `chapter_id` and return at once."""
        if not text or not text.strip():
            return
        thread = threading.Thread(
            target=self._run_job,
            kwargs={"chapter_id": chapter_id, "text": text},
            name=f"summary-{chapter_id[:8]}",
            daemon=True,
        )
        with self._lock:
            self._threads.add(thread)
            self._chapter_jobs[chapter_id] = self._chapter_jobs.get(chapter_id, 0) + 1
        thread.start()

    def pending(self) -> int:
        with self._lock:
            return len(self._threads)

    def drain(self, timeout: float = 10.0) -> bool:
        """Wait for in-flight jobs; return True if none are left."""
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                threads = list(self._threads)
            if not threads:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            threads[0].join(remaining)

    def _chapter_lock(self, chapter_id: str) -> threading.Lock:
        with self._lock:
            return self._chapter_locks.setdefault(chapter_id, threading.Lock())

    def _run_job(self, *, chapter_id: str, text: str) -> None:
        started = time.perf_counter()
        try:
            summary = self._summarizer.summarize(text)
            with self._chapter_lock(chapter_id):
                self._on_complete(SummaryResult(chapter_id=chapter_id, source_text=text, summary=summary))
            _LOGGER.info(
                "summary_done chapter=%s duration_ms=%.2f",
                chapter_id,
                (time.perf_counter() - started) * 1000.0,
            )
        except Exception:
            _LOGGER.warning("summary_failed chapter=%s", chapter_id, exc_info=True)
        finally:
            with self._lock:
                self._threads.discard(threading.current_thread())
                self._release_chapter(chapter_id)

    def _release_chapter(self, chapter_id: str) -> None:
        # caller holds self._lock; the lock entry lives while jobs are pending
        left = self._chapter_jobs.get(chapter_id, 1) - 1
        if left > 0:
            self._chapter_jobs[chapter_id] = left
        else:
            self._chapter_jobs.pop(chapter_id, None)
            self._chapter_locks.pop(chapter_id, None)
