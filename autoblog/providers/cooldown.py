"""Process-wide cool-down state for providers that failed on auth or quota.

A provider that answers 401/402/403 is disabled for a window so concurrent
runs skip it too. The first disable in each window sends one operator alert.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from autoblog.config import PROVIDER_COOLDOWN_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class Cooldown:
    provider_id: str
    until: float
    reason: str


class CooldownStore:
    def __init__(
        self,
        window: float = PROVIDER_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.time,
        notifier=None,
    ):
        self.window = window
        self.clock = clock
        self.notifier = notifier
        self._entries: dict[str, Cooldown] = {}
        self._notified_at: dict[str, float] = {}
        self._lock = threading.Lock()

    def is_disabled(self, provider_id: str) -> bool:
        with self._lock:
            entry = self._entries.get(provider_id)
            if entry is None:
                return False
            if entry.until <= self.clock():
                del self._entries[provider_id]
                return False
            return True

    def disable(self, provider_id: str, reason: str) -> bool:
        """Start (or extend) a cool-down. Returns True when an alert should go out."""
        now = self.clock()
        with self._lock:
            self._entries[provider_id] = Cooldown(provider_id, now + self.window, reason)
            last = self._notified_at.get(provider_id)
            should_notify = last is None or now - last >= self.window
            if should_notify:
                self._notified_at[provider_id] = now
        logger.warning("Provider %s disabled for %ds: %s", provider_id, self.window, reason)
        if should_notify:
            self._notify(provider_id, reason)
        return should_notify

    def active(self) -> dict[str, Cooldown]:
        now = self.clock()
        with self._lock:
            return {pid: c for pid, c in self._entries.items() if c.until > now}

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._notified_at.clear()

    def _notify(self, provider_id: str, reason: str) -> None:
        if self.notifier is None:
            return
        minutes = int(self.window // 60)
        try:
            self.notifier.send_alert(
                f"Provider disabled: {provider_id}",
                f"Provider {provider_id} failed with an account/quota error and is "
                f"disabled for {minutes} minutes.\n\nReason: {reason}\n\n"
                "Remaining providers in the chain are used until the window expires.",
            )
        except Exception as e:
            logger.error("Failed to send cool-down alert for %s: %s", provider_id, e)


_default_store: Optional[CooldownStore] = None
_default_lock = threading.Lock()


def default_store() -> CooldownStore:
    """The shared store used by every invoker that is not given its own."""
    global _default_store
    with _default_lock:
        if _default_store is None:
            _default_store = CooldownStore()
        return _default_store
