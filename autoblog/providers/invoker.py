"""Try an ordered provider list until one returns a usable response."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence

from autoblog.config import PROVIDER_TIMEOUT
from autoblog.providers.base import (
    ACCOUNT,
    ALL_REJECTED,
    EMPTY,
    NO_PROVIDERS,
    REJECTED,
    SUCCESS,
    UNREACHABLE,
    EmptyResponseError,
    InvocationResult,
    Provider,
    ProviderError,
)
from autoblog.providers.cooldown import CooldownStore, default_store
from autoblog.providers.retry import BackoffPolicy

logger = logging.getLogger(__name__)


def has_payload(data: Any) -> bool:
    """Default validator: non-empty text, bytes, list or dict."""
    if data is None:
        return False
    if isinstance(data, str):
        return bool(data.strip())
    if isinstance(data, (bytes, list, dict, tuple)):
        return len(data) > 0
    return True


class FallbackInvoker:
    """Walk providers in order with per-provider retries.

    - transient errors (timeout, 5xx, 429) are retried by the backoff policy
    - 400/404 stop that provider and move on
    - 401/402/403 put the provider in cool-down and move on
    - an empty payload moves on without retrying
    """

    def __init__(
        self,
        policy: Optional[BackoffPolicy] = None,
        cooldowns: Optional[CooldownStore] = None,
        timeout: float = PROVIDER_TIMEOUT,
    ):
        self.policy = policy or BackoffPolicy()
        self.cooldowns = cooldowns or default_store()
        self.timeout = timeout

    def invoke(
        self,
        providers: Sequence[Provider],
        payload: dict,
        validate: Callable[[Any], bool] = has_payload,
        timeout: Optional[float] = None,
        label: str = "",
    ) -> InvocationResult:
        label = label or payload.get("task", "request")
        if not providers:
            logger.warning("%s: no providers configured", label)
            return InvocationResult(outcome=NO_PROVIDERS)

        call_timeout = timeout or self.timeout
        attempts = 0
        errors: list[str] = []
        failure_kinds: list[str] = []

        for provider in providers:
            if self.cooldowns.is_disabled(provider.id):
                logger.info("%s: skipping %s (cooling down)", label, provider.id)
                errors.append(f"{provider.id}: cooling down")
                continue

            calls = 0

            def _attempt(p=provider):
                nonlocal calls
                calls += 1
                data = p.call(payload, call_timeout)
                if not validate(data):
                    raise EmptyResponseError()
                return data

            try:
                data = self.policy.run(_attempt, label=f"{label} via {provider.id}")
            except ProviderError as e:
                attempts += calls
                failure_kinds.append(e.kind)
                errors.append(f"{provider.id}: {e}")
                if e.kind == ACCOUNT:
                    self.cooldowns.disable(provider.id, f"HTTP {e.status}: {e}")
                elif e.kind == EMPTY:
                    logger.warning("%s: %s returned an unusable response", label, provider.id)
                else:
                    logger.warning("%s: %s failed (%s)", label, provider.id, e)
                continue

            attempts += calls
            logger.info("%s: succeeded with %s after %d call(s)", label, provider.id, attempts)
            return InvocationResult(
                outcome=SUCCESS,
                data=data,
                provider=provider.id,
                model=provider.model,
                attempts=attempts,
                errors=errors,
            )

        if failure_kinds and all(k in (REJECTED, ACCOUNT) for k in failure_kinds):
            outcome = ALL_REJECTED
        else:
            outcome = UNREACHABLE
        logger.error("%s: all %d provider(s) exhausted (%s)", label, len(providers), outcome)
        return InvocationResult(outcome=outcome, attempts=attempts, errors=errors)
