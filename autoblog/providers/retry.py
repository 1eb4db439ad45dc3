"""Exponential backoff shared by every external call site.

Providers time out, return 5xx, or rate-limit (429) regularly. One policy
object decides how often to retry and how long to wait, so every caller
behaves the same and tests can swap the sleep function.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from autoblog.config import PROVIDER_BACKOFF_BASE, PROVIDER_BACKOFF_MAX, PROVIDER_MAX_RETRIES
from autoblog.providers.base import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: Exception) -> bool:
    """Transient provider failures are retried; everything else is not."""
    return isinstance(exc, ProviderError) and exc.retryable


@dataclass
class BackoffPolicy:
    """Retry up to ``max_attempts`` times, waiting ``base_delay ** attempt`` seconds."""

    max_attempts: int = PROVIDER_MAX_RETRIES
    base_delay: float = PROVIDER_BACKOFF_BASE
    max_delay: float = PROVIDER_BACKOFF_MAX
    retryable: Callable[[Exception], bool] = is_retryable
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay(self, attempt: int) -> float:
        """Wait before retry number ``attempt + 1`` (attempt is zero-based)."""
        return min(self.base_delay ** attempt, self.max_delay)

    def run(self, fn: Callable[[], T], label: str = "call") -> T:
        """Call ``fn`` until it succeeds, a non-retryable error occurs, or attempts run out."""
        for attempt in range(self.max_attempts):
            try:
                return fn()
            except Exception as e:
                if not self.retryable(e) or attempt == self.max_attempts - 1:
                    raise
                delay = self.delay(attempt)
                logger.info(
                    "%s failed (%s), retrying in %.0fs (attempt %d/%d)",
                    label, e, delay, attempt + 1, self.max_attempts,
                )
                self.sleep(delay)
        raise RuntimeError("retry loop exited without return or raise")
