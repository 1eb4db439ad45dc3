"""Provider fallback invocation: retry/backoff, cool-downs, and backends."""

from autoblog.providers.base import InvocationResult, Provider, ProviderError
from autoblog.providers.cooldown import CooldownStore, default_store
from autoblog.providers.hub import ProviderHub, extract_json
from autoblog.providers.invoker import FallbackInvoker
from autoblog.providers.retry import BackoffPolicy

__all__ = [
    "BackoffPolicy",
    "CooldownStore",
    "FallbackInvoker",
    "InvocationResult",
    "Provider",
    "ProviderError",
    "ProviderHub",
    "default_store",
    "extract_json",
]
