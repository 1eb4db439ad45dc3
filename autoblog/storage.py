"""Article persistence and generation job state.

The pipeline only talks to the :class:`ArticleStore` protocol. The bundled
:class:`JsonArticleStore` keeps every article in one JSON file, which is
enough for a single-host deployment and for tests.
"""

from __future__ import annotations

import fcntl
import json
import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Optional, Protocol

from autoblog.config import ARTICLE_STORE_PATH, JOB_LOOKUP_FAILURE_TTL, JOB_STATE_TTL
from autoblog.models import Article, JobState

logger = logging.getLogger(__name__)


@contextmanager
def flocked(path: Path):
    """Exclusive flock on ``path`` for the duration of the block (blocking)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a+", encoding="utf-8") as handle:
        fcntl.flock(handle, fcntl.LOCK_EX)
        try:
            yield handle
        finally:
            fcntl.flock(handle, fcntl.LOCK_UN)


class ArticleStore(Protocol):
    def titles(self) -> list[str]: ...

    def slug_exists(self, slug: str) -> bool: ...

    def related(self, category: str, exclude_slug: str, limit: int) -> list[Article]: ...

    def save(self, article: Article) -> None: ...

    def update_thumbnail(self, slug: str, path: Optional[str]) -> None: ...


class JsonArticleStore:
    """Articles in a JSON file, newest last."""

    def __init__(self, path: Path = ARTICLE_STORE_PATH):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> list[dict]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, rows: list[dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(rows, f, indent=2, ensure_ascii=False)
        tmp.replace(self.path)

    def all(self) -> list[Article]:
        with self._lock:
            return [Article.from_dict(row) for row in self._read()]

    def titles(self) -> list[str]:
        with self._lock:
            return [row["title"] for row in self._read()]

    def slug_exists(self, slug: str) -> bool:
        with self._lock:
            return any(row["slug"] == slug for row in self._read())

    def get(self, slug: str) -> Optional[Article]:
        with self._lock:
            for row in self._read():
                if row["slug"] == slug:
                    return Article.from_dict(row)
        return None

    def related(self, category: str, exclude_slug: str = "", limit: int = 4) -> list[Article]:
        """Most recent articles in the same category, excluding one slug."""
        if limit <= 0:
            return []
        with self._lock:
            rows = [
                row for row in reversed(self._read())
                if row.get("category", "").lower() == category.lower() and row["slug"] != exclude_slug
            ]
        return [Article.from_dict(row) for row in rows[:limit]]

    def save(self, article: Article) -> None:
        with self._lock:
            rows = self._read()
            for i, row in enumerate(rows):
                if row["slug"] == article.slug:
                    rows[i] = article.to_dict()
                    break
            else:
                rows.append(article.to_dict())
            self._write(rows)
        logger.info("Saved article %s", article.slug)

    def update_thumbnail(self, slug: str, path: Optional[str]) -> None:
        with self._lock:
            rows = self._read()
            for row in rows:
                if row["slug"] == slug:
                    row["thumbnail_path"] = path
                    self._write(rows)
                    return
        raise KeyError(f"No article with slug {slug!r}")


class JobStateStore:
    """In-memory job states with per-entry expiry.

    Processing and completed states live for ``JOB_STATE_TTL`` seconds;
    failures to look up or start a job for ``JOB_LOOKUP_FAILURE_TTL``.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._states: dict[str, tuple[JobState, float]] = {}
        self._lock = threading.Lock()

    def set(self, job_id: str, state: JobState, ttl: Optional[float] = None) -> None:
        if ttl is None:
            ttl = JOB_LOOKUP_FAILURE_TTL if state.status == "failed" else JOB_STATE_TTL
        now = self.clock()
        with self._lock:
            for expired in [k for k, (_, expires) in self._states.items() if expires <= now]:
                del self._states[expired]
            self._states[job_id] = (state, now + ttl)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def get(self, job_id: str) -> Optional[JobState]:
        with self._lock:
            entry = self._states.get(job_id)
            if entry is None:
                return None
            state, expires = entry
            if expires <= self.clock():
                del self._states[job_id]
                return None
            return state
