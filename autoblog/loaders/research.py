"""Research step: gather background text for a topic before drafting.

Wikipedia is tried first (search API, then the article page itself). When it
has nothing, the web-search provider chain fills in. The result is a plain
text brief that gets injected into the draft prompt. Research failures never
stop a run: the brief degrades to a general-knowledge instruction.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from bs4 import BeautifulSoup

from autoblog.providers import backends
from autoblog.providers.base import ProviderError
from autoblog.providers.hub import ProviderHub
from autoblog.providers.retry import BackoffPolicy

logger = logging.getLogger(__name__)

WIKIPEDIA_API = "https://en.wikipedia.org/w/api.php"
WIKIPEDIA_PAGE = "https://en.wikipedia.org/wiki/"
WIKIPEDIA_TIMEOUT = 10

NO_RESEARCH = (
    "No external research available. "
    "Please generate content based on general knowledge about this topic."
)

_URL = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)
_TRAILING_PUNCTUATION = ".,;:!?)]}'\""


def extract_url(prompt: str) -> Optional[str]:
    """Return the first http(s) URL in free text, without trailing punctuation."""
    if not prompt:
        return None
    match = _URL.search(prompt)
    if not match:
        return None
    url = match.group(0).rstrip(_TRAILING_PUNCTUATION)
    host = url.split("://", 1)[1].split("/", 1)[0]
    return url if "." in host else None


def _brief(sections: list[str]) -> str:
    if not sections:
        return NO_RESEARCH
    return "Research findings:\n" + "\n\n".join(sections)


# ── Wikipedia ─────────────────────────────────────────────────────────────


def search_wikipedia(topic: str, policy: Optional[BackoffPolicy] = None) -> Optional[dict]:
    """Top Wikipedia search hit as {title, snippet, url}, or None when nothing matched."""
    policy = policy or BackoffPolicy()

    def _call():
        resp = backends.request(
            "GET",
            WIKIPEDIA_API,
            WIKIPEDIA_TIMEOUT,
            params={
                "action": "query",
                "list": "search",
                "srsearch": topic,
                "format": "json",
                "srlimit": 1,
            },
        )
        return backends.json_body(resp)

    data = policy.run(_call, label=f"wikipedia search '{topic}'")
    if not isinstance(data, dict):
        return None
    hits = (data.get("query") or {}).get("search") or []
    if not hits:
        return None
    title = hits[0].get("title", "")
    if not title:
        return None
    snippet = BeautifulSoup(hits[0].get("snippet", ""), "html.parser").get_text()
    return {
        "title": title,
        "snippet": snippet,
        "url": WIKIPEDIA_PAGE + title.replace(" ", "_"),
    }


def _web_search_section(topic: str, hub: ProviderHub) -> Optional[str]:
    result = hub.search(topic, num=1)
    if not result.ok:
        logger.warning("Web search fallback returned nothing for '%s' (%s)", topic, result.outcome)
        return None
    first = result.data[0]
    if not first.get("snippet"):
        return None
    source = f"Source: Web Search ({first['url']})" if first.get("url") else "Source: Web Search"
    return f"{source}\n{first['snippet']}"


def research_topic(topic: str, hub: ProviderHub, policy: Optional[BackoffPolicy] = None) -> str:
    """Build a research brief for a topic.

    Args:
        topic: Article topic, e.g. "Serverless Architecture Explained".
        hub: Provider hub; its scrape and search chains are used.
        policy: Backoff policy for the Wikipedia API call.

    Returns:
        "Research findings:\\n..." or the general-knowledge sentence.
    """
    sections: list[str] = []
    try:
        logger.info("Searching Wikipedia for: %s", topic)
        hit = search_wikipedia(topic, policy)
    except ProviderError as e:
        logger.warning("Wikipedia research failed: %s", e)
        hit = None
        wikipedia_failed = True
    else:
        wikipedia_failed = False

    if hit:
        logger.info("Wikipedia found '%s', scraping %s", hit["title"], hit["url"])
        page = hub.scrape(hit["url"])
        if page.ok and page.data.get("content"):
            sections.append(f"Source: Wikipedia ({hit['title']})\nFrom: {hit['url']}\n{page.data['content']}")
        elif hit["snippet"]:
            sections.append(f"Source: Wikipedia ({hit['title']} - Snippet)\n{hit['snippet']}...")
    else:
        if not wikipedia_failed:
            logger.warning("Wikipedia search returned no results for: %s", topic)
        section = _web_search_section(topic, hub)
        if section:
            sections.append(section)

    return _brief(sections)


def research_custom_prompt(prompt: str, hub: ProviderHub) -> str:
    """Seed research from the URL embedded in a custom prompt, if any."""
    url = extract_url(prompt)
    if not url:
        return NO_RESEARCH
    logger.info("Scraping URL from custom prompt: %s", url)
    page = hub.scrape(url)
    if not page.ok:
        logger.warning("Could not scrape %s (%s), using general knowledge", url, page.outcome)
        return NO_RESEARCH
    title = page.data.get("title") or url
    content = page.data.get("content") or page.data.get("snippet", "")
    return _brief([f"Source: {title}\nFrom: {url}\n{content}"])
