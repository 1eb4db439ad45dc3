"""Shared fixtures: scripted providers, a hub wired to them, sample articles.

Nothing here touches the network. Providers are plain callables that answer
according to ``payload["task"]``.
"""

import json

import pytest

from autoblog.providers import BackoffPolicy, CooldownStore, FallbackInvoker, Provider, ProviderHub

SENTENCE = "Teams that adopt the new tooling report faster releases and fewer production incidents."


def paragraph(sentences: int = 4) -> str:
    return "<p>" + " ".join([SENTENCE] * sentences) + "</p>"


def article_html(title: str = "Serverless Architecture Explained", sections: int = 5, paras: int = 3) -> str:
    """A well-formed draft of roughly 130 words per section plus an intro."""
    parts = [f"<h1>{title}</h1>", paragraph(3)]
    for i in range(sections):
        parts.append(f"<h2>Section {i + 1}</h2>")
        parts.extend(paragraph() for _ in range(paras))
    return "\n".join(parts)


VISUAL_SPEC = {
    "palette": ["#112233", "#445566", "#778899"],
    "composition": "radial",
    "mood": "calm",
    "elements": ["rocket", "globe", "code"],
}

OTHER_VISUAL_SPEC = {
    "palette": ["#FF0000", "#00FF00", "#0000FF", "#FFFF00"],
    "composition": "grid",
    "mood": "bold",
    "elements": ["heart", "leaf", "ball", "money"],
}

DEFAULT_REPLIES = {
    "draft": article_html(),
    "expand": article_html(sections=6),
    "optimize": article_html(),
    "keywords": json.dumps({"keywords": ["serverless", "cloud functions", "devops"]}),
    "link_score": json.dumps({"score": 90, "anchor": "serverless background"}),
    "visual_spec": json.dumps(VISUAL_SPEC),
}


class ScriptedProvider:
    """Provider callable. Replies are looked up by task; callables and exceptions are honoured."""

    def __init__(self, replies=None, default=None):
        self.replies = dict(DEFAULT_REPLIES if default is None else default)
        self.replies.update(replies or {})
        self.calls = []

    def __call__(self, payload, timeout):
        self.calls.append(payload)
        reply = self.replies.get(payload.get("task"))
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(payload)
        return reply

    def tasks(self):
        return [p.get("task") for p in self.calls]


class FailingProvider:
    """Raises the same error on every call."""

    def __init__(self, error):
        self.error = error
        self.calls = 0

    def __call__(self, payload, timeout):
        self.calls += 1
        raise self.error


def search_results(num: int = 5):
    return [
        {
            "url": f"https://news{i}.example.org/story-{i}",
            "title": f"Story {i}",
            "snippet": f"Independent coverage number {i}.",
        }
        for i in range(num)
    ]


def scraped_page(payload):
    url = payload["url"]
    return {
        "title": f"Page at {url}",
        "content": "Long form background on serverless platforms. " * 10,
        "snippet": "Long form background on serverless platforms.",
    }


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def policy(sleeps):
    return BackoffPolicy(sleep=sleeps.append)


@pytest.fixture
def cooldowns():
    return CooldownStore()


@pytest.fixture
def invoker(policy, cooldowns):
    return FallbackInvoker(policy=policy, cooldowns=cooldowns)


@pytest.fixture
def chat():
    return ScriptedProvider()


@pytest.fixture
def make_hub(invoker, chat):
    def _make(chat_providers=None, search=None, scrape=None, image=None):
        chat_chain = chat_providers if chat_providers is not None else [Provider("chat-1", chat, "test-model")]
        search_chain = [Provider("search-1", search or (lambda p, t: search_results(p.get("num", 5))), kind="search")]
        scrape_chain = [Provider("scrape-1", scrape or (lambda p, t: scraped_page(p)), kind="scrape")]
        image_chain = [Provider("image-1", image, kind="image")] if image else []
        return ProviderHub(
            chat_chain=chat_chain,
            search_chain=search_chain,
            scrape_chain=scrape_chain,
            image_chain=image_chain,
            invoker=invoker,
        )

    return _make


@pytest.fixture
def hub(make_hub):
    return make_hub()
