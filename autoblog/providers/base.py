"""Provider records, the error taxonomy, and invocation results."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

# Failure classes
TRANSIENT = "transient"  # timeout, connection error, 5xx, 429 – retry
REJECTED = "rejected"  # 400, 404 and other client errors – next provider
ACCOUNT = "account"  # 401, 402, 403 – cool-down the whole provider
EMPTY = "empty"  # success with an unusable payload – next provider

ACCOUNT_STATUSES = {401, 402, 403}


def classify_status(status: Optional[int]) -> str:
    """Map an HTTP status (None for timeouts/connection errors) to a failure class."""
    if status is None or status == 429 or status >= 500:
        return TRANSIENT
    if status in ACCOUNT_STATUSES:
        return ACCOUNT
    return REJECTED


class ProviderError(Exception):
    """A provider call failed. ``kind`` decides retry, advance, or cool-down."""

    def __init__(self, message: str, status: Optional[int] = None, kind: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.kind = kind or classify_status(status)

    @property
    def retryable(self) -> bool:
        return self.kind == TRANSIENT


class EmptyResponseError(ProviderError):
    def __init__(self, message: str = "empty or unusable response"):
        super().__init__(message, kind=EMPTY)


@dataclass
class Provider:
    """One backend + credential (+ model). ``call(payload, timeout)`` returns raw data."""

    id: str
    call: Callable[[dict, float], Any]
    model: str = ""
    kind: str = "chat"

    def __repr__(self) -> str:
        return f"Provider({self.id!r}, model={self.model!r})"


# Invocation outcomes
SUCCESS = "success"
UNREACHABLE = "unreachable"
ALL_REJECTED = "rejected"
NO_PROVIDERS = "no-providers"


@dataclass
class InvocationResult:
    outcome: str
    data: Any = None
    provider: Optional[str] = None
    model: Optional[str] = None
    attempts: int = 0
    errors: Optional[list[str]] = None

    @property
    def ok(self) -> bool:
        return self.outcome == SUCCESS

    @property
    def exhausted(self) -> bool:
        return not self.ok
