"""Trending topic candidates from RSS/Atom feeds, with static fallbacks."""

from __future__ import annotations

import calendar
import logging
import random
import time
from typing import Optional

import feedparser
import requests

from autoblog.config import (
    BROWSER_USER_AGENT,
    FALLBACK_TOPICS,
    GENERIC_FALLBACK_TOPICS,
    RSS_MAX_AGE_SECONDS,
    RSS_SOURCES,
    RSS_SOURCES_PER_RUN,
    RSS_TOPICS_PER_RUN,
)
from autoblog.models import CandidateTopic

logger = logging.getLogger(__name__)

RSS_TIMEOUT = 15


def fallback_topics(category: str) -> list[str]:
    return list(FALLBACK_TOPICS.get(category.lower(), GENERIC_FALLBACK_TOPICS))


def parse_feed(xml_text: str) -> list[tuple[str, Optional[float]]]:
    """Return (title, published timestamp) for every entry in an RSS or Atom feed.

    A feed feedparser cannot make sense of yields no entries.
    """
    parsed = feedparser.parse(xml_text)
    if parsed.bozo and not parsed.entries:
        logger.warning("Feed failed to parse: %s", parsed.get("bozo_exception"))
        return []
    items = []
    for entry in parsed.entries:
        title = (entry.get("title") or "").strip()
        stamp = entry.get("published_parsed") or entry.get("updated_parsed")
        if title:
            items.append((title, float(calendar.timegm(stamp)) if stamp else None))
    return items


def fetch_trending_topics(
    category: str,
    session: Optional[requests.Session] = None,
    rng: Optional[random.Random] = None,
    now: Optional[float] = None,
) -> list[CandidateTopic]:
    """Collect up to 5 recent headlines for the category, topped up from the fallback list.

    Feeds that 404, time out, or fail to parse are skipped.
    """
    rng = rng or random.Random()
    now = now if now is not None else time.time()
    http = session or requests.Session()

    sources = list(RSS_SOURCES.get(category.lower(), []))
    rng.shuffle(sources)

    topics: list[str] = []
    for url in sources[:RSS_SOURCES_PER_RUN]:
        try:
            logger.info("Fetching RSS from %s", url)
            resp = http.get(url, timeout=RSS_TIMEOUT, headers={"User-Agent": BROWSER_USER_AGENT})
            if resp.status_code >= 400:
                logger.warning("RSS %s returned %d, skipping", url, resp.status_code)
                continue
            if not resp.text.strip():
                logger.warning("RSS %s returned empty content, skipping", url)
                continue
            entries = parse_feed(resp.text)
        except requests.RequestException as e:
            logger.warning("RSS fetch failed for %s: %s", url, e)
            continue

        recent = 0
        for title, published in entries:
            if published is not None and now - published > RSS_MAX_AGE_SECONDS:
                continue
            if title not in topics:
                topics.append(title)
                recent += 1
            if len(topics) >= RSS_TOPICS_PER_RUN:
                break
        logger.info("RSS %s returned %d recent topics", url, recent)
        if len(topics) >= RSS_TOPICS_PER_RUN:
            break

    candidates = [CandidateTopic(t, "rss") for t in topics]
    if len(candidates) < RSS_TOPICS_PER_RUN:
        if not candidates:
            logger.warning("No RSS topics for %s, using fallback topics", category)
        for topic in fallback_topics(category):
            if len(candidates) >= RSS_TOPICS_PER_RUN:
                break
            if topic not in topics:
                candidates.append(CandidateTopic(topic, "fallback"))
    return candidates
