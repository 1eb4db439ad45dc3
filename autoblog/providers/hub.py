"""One object holding every provider chain the pipeline talks to."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Optional

from autoblog.config import LINK_CHECK_TIMEOUT
from autoblog.providers import backends
from autoblog.providers.base import InvocationResult, Provider
from autoblog.providers.invoker import FallbackInvoker


def extract_json(text: str) -> Optional[dict]:
    """Parse the first JSON object in a model reply (code fences and chatter allowed)."""
    if not isinstance(text, str):
        return None
    candidate = text.strip()
    if "```" in candidate:
        parts = candidate.split("```")
        if len(parts) >= 2:
            candidate = parts[1]
            if candidate.startswith("json"):
                candidate = candidate[4:]
    try:
        data = json.loads(candidate.strip())
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", text, re.DOTALL)
        if not match:
            return None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None
    return data if isinstance(data, dict) else None


@dataclass
class ProviderHub:
    chat_chain: list[Provider] = field(default_factory=list)
    search_chain: list[Provider] = field(default_factory=list)
    scrape_chain: list[Provider] = field(default_factory=list)
    image_chain: list[Provider] = field(default_factory=list)
    invoker: FallbackInvoker = field(default_factory=FallbackInvoker)

    @classmethod
    def from_config(cls, invoker: Optional[FallbackInvoker] = None) -> "ProviderHub":
        return cls(
            chat_chain=backends.chat_providers(),
            search_chain=backends.search_providers(),
            scrape_chain=backends.scrape_providers(),
            image_chain=backends.image_providers(),
            invoker=invoker or FallbackInvoker(),
        )

    def complete(self, task: str, system: str, prompt: str, **options) -> InvocationResult:
        """Chat completion; ``data`` is the reply text."""
        payload = {"task": task, "system": system, "prompt": prompt, **options}
        return self.invoker.invoke(self.chat_chain, payload)

    def complete_json(self, task: str, system: str, prompt: str, **options) -> InvocationResult:
        """Structured completion; a reply without a JSON object counts as unusable."""
        payload = {"task": task, "system": system, "prompt": prompt, **options}
        result = self.invoker.invoke(
            self.chat_chain, payload, validate=lambda text: extract_json(text) is not None
        )
        if result.ok:
            result.data = extract_json(result.data)
        return result

    def search(self, query: str, num: int = 10) -> InvocationResult:
        return self.invoker.invoke(self.search_chain, {"task": "search", "query": query, "num": num})

    def scrape(self, url: str) -> InvocationResult:
        return self.invoker.invoke(
            self.scrape_chain,
            {"task": "scrape", "url": url},
            validate=lambda page: bool(page and (page.get("content") or page.get("snippet"))),
            timeout=LINK_CHECK_TIMEOUT * 3,
        )

    def text_to_image(self, prompt: str) -> InvocationResult:
        return self.invoker.invoke(self.image_chain, {"task": "image", "prompt": prompt})
