"""Daily scheduling pass.

Once a day the scheduler plans up to ``DAILY_ARTICLE_LIMIT`` generation runs,
spaced ``DAILY_RUN_SPACING_MINUTES`` apart plus random jitter, each for a
random category, and hands them to a dispatch callable (the queue). Only one
process plans per day: planning happens under a lease stored next to the
scheduler state.
"""

from __future__ import annotations

import errno
import fcntl
import json
import logging
import os
import random
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from autoblog.config import (
    CATEGORIES,
    DAILY_ARTICLE_LIMIT,
    DAILY_RUN_INTERVAL_SECONDS,
    DAILY_RUN_JITTER_MINUTES,
    DAILY_RUN_SPACING_MINUTES,
    SCHEDULER_LOCK_PATH,
    SCHEDULER_LOCK_SECONDS,
    SCHEDULER_STATE_PATH,
    STALE_LOCK_SECONDS,
    STALLED_ALERT_SECONDS,
)
from autoblog.storage import flocked

logger = logging.getLogger(__name__)


class LeaseLock:
    """A time-bounded lease shared between processes.

    The lease record ``{owner, acquired_at, expires_at}`` lives in a lock file
    and is read and written under ``flock``. A lease is held until it is
    released or ``hold`` seconds pass. A lease older than ``stale_after`` is
    force-released even if its holder kept renewing it.
    """

    def __init__(
        self,
        path: Path = SCHEDULER_LOCK_PATH,
        hold: float = SCHEDULER_LOCK_SECONDS,
        stale_after: float = STALE_LOCK_SECONDS,
        clock: Callable[[], float] = time.time,
        owner: Optional[str] = None,
    ):
        self.path = Path(path)
        self.hold = hold
        self.stale_after = stale_after
        self.clock = clock
        self.owner = owner or f"{os.getpid()}-{id(self)}"

    @staticmethod
    def _read(handle) -> Optional[dict]:
        handle.seek(0)
        raw = handle.read().strip()
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Corrupt lease record, ignoring")
            return None

    @staticmethod
    def _write(handle, record: Optional[dict]) -> None:
        handle.seek(0)
        handle.truncate()
        if record is not None:
            handle.write(json.dumps(record))
        handle.flush()

    def acquire(self) -> bool:
        """Take the lease. Returns False when another owner holds a live lease."""
        now = self.clock()
        with flocked(self.path) as handle:
            lease = self._read(handle)
            if lease and lease.get("owner") != self.owner:
                age = now - lease.get("acquired_at", 0)
                if age >= self.stale_after:
                    logger.warning(
                        "Force-releasing stale scheduler lease held by %s for %.0fs",
                        lease.get("owner"), age,
                    )
                elif lease.get("expires_at", 0) > now:
                    logger.info("Scheduler lease held by %s, skipping", lease.get("owner"))
                    return False
            acquired_at = lease["acquired_at"] if lease and lease.get("owner") == self.owner else now
            self._write(handle, {"owner": self.owner, "acquired_at": acquired_at, "expires_at": now + self.hold})
        return True

    def renew(self) -> bool:
        """Push the expiry out by another ``hold`` seconds if we still own the lease."""
        now = self.clock()
        with flocked(self.path) as handle:
            lease = self._read(handle)
            if not lease or lease.get("owner") != self.owner:
                return False
            lease["expires_at"] = now + self.hold
            self._write(handle, lease)
        return True

    def release(self) -> None:
        with flocked(self.path) as handle:
            lease = self._read(handle)
            if lease and lease.get("owner") == self.owner:
                self._write(handle, None)


def try_lock_nonblocking(path: Path):
    """Process-lifetime exclusive lock; returns the open handle or None if taken.

    Used by the CLI so two ``--daily`` processes never run side by side.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = open(path, "a+", encoding="utf-8")
    try:
        fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError as e:
        handle.close()
        if e.errno in (errno.EAGAIN, errno.EACCES):
            return None
        raise
    handle.seek(0)
    handle.truncate()
    handle.write(str(os.getpid()))
    handle.flush()
    return handle


@dataclass
class PlannedRun:
    category: str
    at: float


class DailyScheduler:
    def __init__(
        self,
        state_path: Path = SCHEDULER_STATE_PATH,
        lock: Optional[LeaseLock] = None,
        notifier=None,
        rng: Optional[random.Random] = None,
        categories: list[str] = CATEGORIES,
        daily_limit: int = DAILY_ARTICLE_LIMIT,
        clock: Callable[[], float] = time.time,
    ):
        self.state_path = Path(state_path)
        self.clock = clock
        self.lock = lock or LeaseLock(self.state_path.with_suffix(".lock"), clock=clock)
        self.notifier = notifier
        self.rng = rng or random.Random()
        self.categories = list(categories)
        self.daily_limit = daily_limit

    # ── state ─────────────────────────────────────────────────────────────

    def _load(self) -> dict:
        if not self.state_path.exists():
            return {"date": None, "count": 0, "last_run": None}
        with open(self.state_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _save(self, state: dict) -> None:
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.state_path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2)
        tmp.replace(self.state_path)

    @staticmethod
    def _date(ts: float) -> str:
        return datetime.fromtimestamp(ts).date().isoformat()

    def _today(self, state: dict, now: float) -> dict:
        today = self._date(now)
        if state.get("date") != today:
            state["date"] = today
            state["count"] = 0
        return state

    def generated_today(self, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        return self._today(self._load(), now)["count"]

    def can_generate(self, now: Optional[float] = None) -> bool:
        return self.generated_today(now) < self.daily_limit

    def record_generation(self, now: Optional[float] = None) -> bool:
        """Count one published article for today. False when the daily limit is reached."""
        now = self.clock() if now is None else now
        with flocked(self.state_path.with_suffix(".state.lock")):
            state = self._today(self._load(), now)
            if state["count"] >= self.daily_limit:
                logger.info("Daily limit of %d articles reached", self.daily_limit)
                return False
            state["count"] += 1
            self._save(state)
        logger.info("Generated %d/%d articles today", state["count"], self.daily_limit)
        return True

    # ── planning ──────────────────────────────────────────────────────────

    def plan(self, now: Optional[float] = None) -> list[PlannedRun]:
        """Spread today's remaining runs out from ``now``."""
        now = self.clock() if now is None else now
        remaining = self.daily_limit - self.generated_today(now)
        runs = []
        at = now
        for i in range(max(remaining, 0)):
            if i > 0:
                jitter = self.rng.randint(0, DAILY_RUN_JITTER_MINUTES)
                at += (DAILY_RUN_SPACING_MINUTES + jitter) * 60
            runs.append(PlannedRun(self.rng.choice(self.categories), at))
        return runs

    def _check_stalled(self, state: dict, now: float) -> None:
        last = state.get("last_run")
        if last is None or now - last <= STALLED_ALERT_SECONDS or self.notifier is None:
            return
        hours = (now - last) / 3600
        logger.warning("Scheduler has not run for %.1f hours", hours)
        self.notifier.send_alert(
            "Blog scheduler stalled",
            f"The daily scheduler last planned runs {hours:.1f} hours ago "
            f"({datetime.fromtimestamp(last).isoformat(timespec='minutes')}).",
        )

    @staticmethod
    def _ran_recently(state: dict, now: float) -> bool:
        last = state.get("last_run")
        if last is not None and now - last < DAILY_RUN_INTERVAL_SECONDS:
            logger.info("Last scheduling pass %.1fh ago, skipping", (now - last) / 3600)
            return True
        return False

    def maybe_run(
        self,
        dispatch: Callable[[str, float], None],
        now: Optional[float] = None,
    ) -> list[PlannedRun]:
        """Plan and dispatch today's runs unless that already happened in the last 24h.

        ``dispatch(category, at)`` enqueues one run. Returns the dispatched runs,
        empty when skipped.
        """
        now = self.clock() if now is None else now
        state = self._load()
        self._check_stalled(state, now)

        if self._ran_recently(state, now):
            return []

        if not self.lock.acquire():
            return []
        try:
            # another trigger may have finished a pass while we waited for the lease
            state = self._load()
            if self._ran_recently(state, now):
                return []
            runs = self.plan(now)
            for run in runs:
                dispatch(run.category, run.at)
                logger.info(
                    "Scheduled %s at %s",
                    run.category, datetime.fromtimestamp(run.at).strftime("%H:%M"),
                )
            state = self._load()
            state["last_run"] = now
            self._save(self._today(state, now))
        finally:
            self.lock.release()
        return runs
