"""Link management for one article.

Runs once per generated article, in this order:

1. prune duplicate and excess anchors (first 4 internal, first 3 external)
2. check external links, demoting dead ones to plain text
3. discover outbound links through search when no external link survived
4. inject links to related articles from the same category

Whatever the input looks like, the result has at most 4 internal links,
at most 4 external links, at most 7 in total, and no repeated href.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup, Tag

from autoblog.config import (
    ARTICLE_PATH_PREFIX,
    BROWSER_USER_AGENT,
    DISCOVERY_CANDIDATES,
    LINK_CHECK_TIMEOUT,
    LINK_SCORE_THRESHOLD,
    MAX_DISCOVERED_LINKS,
    MAX_EXTERNAL_LINKS,
    MAX_INTERNAL_LINKS,
    MAX_TOTAL_LINKS,
    MAX_VALID_EXTERNAL_LINKS,
    SITE_URL,
)
from autoblog.pipeline.prompts import build_link_score_prompt
from autoblog.providers.hub import ProviderHub
from autoblog.text import is_internal_url

logger = logging.getLogger(__name__)

SNIPPET_CHARS = 500

INTERNAL_TEMPLATES = [
    "You might also like:",
    "Related reading:",
    "See also:",
    "Don't miss:",
]

EXTERNAL_TEMPLATES = [
    "For more background, see",
    "Further reading:",
]


@dataclass
class LinkRecord:
    url: str
    anchor: str
    kind: str  # internal | external
    position: int


@dataclass
class LinkReport:
    html: str
    internal_count: int
    external_count: int
    logs: list[str] = field(default_factory=list)
    links: list[LinkRecord] = field(default_factory=list)


# ── Link checking ─────────────────────────────────────────────────────────


def check_link(url: str, timeout: float = LINK_CHECK_TIMEOUT) -> bool:
    """True when the URL answers 2xx/3xx. HEAD first, GET when HEAD fails or is refused."""
    if urlparse(url).scheme not in ("http", "https"):
        return False
    headers = {"User-Agent": BROWSER_USER_AGENT}
    try:
        resp = requests.head(url, timeout=timeout, headers=headers, allow_redirects=True)
        if resp.status_code < 400:
            return 200 <= resp.status_code < 400
    except requests.RequestException as e:
        logger.debug("HEAD %s failed: %s", url, e)
    try:
        resp = requests.get(url, timeout=timeout, headers=headers, allow_redirects=True, stream=True)
        resp.close()
    except requests.RequestException as e:
        logger.info("Link check failed for %s: %s", url, e)
        return False
    return 200 <= resp.status_code < 400


# ── Helpers ───────────────────────────────────────────────────────────────


def _is_link(a: Tag) -> bool:
    href = (a.get("href") or "").strip()
    return bool(href) and not href.startswith(("#", "mailto:"))


def _anchors(soup: BeautifulSoup) -> list[Tag]:
    return [a for a in soup.find_all("a", href=True) if _is_link(a)]


def _injection_points(paragraphs: int, slots: int) -> list[int]:
    """Paragraph indexes to insert after: ~1st, middle, second-to-last (then 3/4)."""
    if paragraphs == 0:
        return []
    candidates = [1, paragraphs // 2, paragraphs - 2, paragraphs * 3 // 4]
    return [min(max(p, 0), paragraphs - 1) for p in candidates[:slots]]


# ── Engine ────────────────────────────────────────────────────────────────


class LinkManager:
    def __init__(
        self,
        hub: ProviderHub,
        store,
        site_url: str = SITE_URL,
        checker: Callable[[str], bool] = check_link,
        year: Optional[int] = None,
    ):
        self.hub = hub
        self.store = store
        self.site_url = site_url
        self.checker = checker
        self.year = year or datetime.now().year

    def is_internal(self, href: str) -> bool:
        return is_internal_url(href, self.site_url)

    def process(self, html: str, category: str, title: str = "", current_slug: str = "") -> LinkReport:
        """Apply every link pass to one article body and report the result."""
        soup = BeautifulSoup(html, "html.parser")
        logs: list[str] = []

        self._prune(soup, logs)
        valid = self._validate_external(soup, logs)
        if valid < 1:
            self._discover(soup, category, title, logs)
        self._inject_internal(soup, category, current_slug, logs)

        links = self._records(soup)
        internal = sum(1 for r in links if r.kind == "internal")
        external = len(links) - internal
        logs.append(f"Links final: {internal} internal, {external} external")
        for line in logs:
            logger.info(line)
        return LinkReport(str(soup), internal, external, logs, links)

    def relink(self, html: str, category: str, current_slug: str = "") -> LinkReport:
        """Prune and inject internal links only. No link checks, no search."""
        soup = BeautifulSoup(html, "html.parser")
        logs: list[str] = []
        self._prune(soup, logs)
        self._inject_internal(soup, category, current_slug, logs)
        links = self._records(soup)
        internal = sum(1 for r in links if r.kind == "internal")
        return LinkReport(str(soup), internal, len(links) - internal, logs, links)

    # ── 1. prune ──────────────────────────────────────────────────────────

    def _prune(self, soup: BeautifulSoup, logs: list[str]) -> None:
        seen: set[str] = set()
        internal = external = demoted = 0
        for a in _anchors(soup):
            href = a["href"].strip()
            if href in seen:
                a.unwrap()
                demoted += 1
                continue
            if self.is_internal(href) and internal < MAX_INTERNAL_LINKS:
                internal += 1
            elif not self.is_internal(href) and external < MAX_EXTERNAL_LINKS:
                external += 1
            else:
                a.unwrap()
                demoted += 1
                continue
            seen.add(href)
        logs.append(f"Pruned {demoted} link(s); kept {internal} internal, {external} external")

    # ── 2. validate ───────────────────────────────────────────────────────

    def _validate_external(self, soup: BeautifulSoup, logs: list[str]) -> int:
        valid = 0
        for a in _anchors(soup):
            href = a["href"].strip()
            if self.is_internal(href):
                continue
            if valid >= MAX_VALID_EXTERNAL_LINKS:
                a.unwrap()
                continue
            if not self.checker(href):
                logs.append(f"Removed broken external link: {href}")
                a.unwrap()
                continue
            a["rel"] = "dofollow"
            a["target"] = "_blank"
            valid += 1
        logs.append(f"{valid} valid external link(s)")
        return valid

    # ── 3. discover ───────────────────────────────────────────────────────

    def _discovery_topic(self, soup: BeautifulSoup, title: str) -> str:
        h1 = soup.find("h1")
        if h1 and h1.get_text(strip=True):
            return h1.get_text(" ", strip=True)
        if title:
            return title
        h2 = soup.find("h2")
        return h2.get_text(" ", strip=True) if h2 else ""

    def _discover(self, soup: BeautifulSoup, category: str, title: str, logs: list[str]) -> int:
        topic = self._discovery_topic(soup, title)
        if not topic:
            return 0
        query = f"{topic} {category} related articles {self.year}"
        results = self.hub.search(query, num=DISCOVERY_CANDIDATES)
        if not results.ok:
            logs.append(f"Link discovery: search unavailable ({results.outcome})")
            return 0

        present = {a["href"].strip() for a in _anchors(soup)}
        budget = MAX_VALID_EXTERNAL_LINKS - sum(
            1 for a in _anchors(soup) if not self.is_internal(a["href"])
        )
        budget = min(budget, MAX_DISCOVERED_LINKS)
        accepted: list[tuple[str, str]] = []
        forced = False

        for candidate in results.data[:DISCOVERY_CANDIDATES]:
            if len(accepted) >= budget:
                break
            url = candidate.get("url", "")
            if not url or url in present or self.is_internal(url):
                continue
            page = self.hub.scrape(url)
            if not page.ok:
                continue
            snippet = (page.data.get("snippet") or page.data.get("content") or "")[:SNIPPET_CHARS]
            if not snippet:
                continue
            page_title = page.data.get("title") or candidate.get("title") or urlparse(url).netloc

            verdict = self.hub.complete_json(
                "link_score",
                "You are an SEO editor. Reply with JSON only.",
                build_link_score_prompt(topic, category, url, page_title, snippet),
            )
            if verdict.ok:
                try:
                    score = float(verdict.data.get("score", 0))
                except (TypeError, ValueError):
                    score = 0.0
                if score < LINK_SCORE_THRESHOLD:
                    logs.append(f"Discovery rejected {url} (score {score:.0f})")
                    continue
                anchor = str(verdict.data.get("anchor") or page_title).strip()
                logs.append(f"Discovery accepted {url} (score {score:.0f})")
            elif not accepted and not forced:
                forced = True
                anchor = page_title
                logs.append(f"Scorer unavailable, accepting {url} without a score")
            else:
                continue
            accepted.append((url, anchor))
            present.add(url)

        paragraphs = soup.find_all("p")
        for i, (url, anchor) in reversed(list(enumerate(accepted))):
            new_p = soup.new_tag("p")
            new_p.append(EXTERNAL_TEMPLATES[i % len(EXTERNAL_TEMPLATES)] + " ")
            link = soup.new_tag("a", href=url, rel="dofollow", target="_blank")
            link.string = anchor
            new_p.append(link)
            new_p.append(".")
            if paragraphs:
                paragraphs[min(1 + i, len(paragraphs) - 1)].insert_after(new_p)
            else:
                soup.append(new_p)
        logs.append(f"Link discovery added {len(accepted)} external link(s)")
        return len(accepted)

    # ── 4. internal ───────────────────────────────────────────────────────

    def _inject_internal(self, soup: BeautifulSoup, category: str, current_slug: str, logs: list[str]) -> int:
        anchors = _anchors(soup)
        internal = sum(1 for a in anchors if self.is_internal(a["href"]))
        slots = min(MAX_INTERNAL_LINKS - internal, MAX_TOTAL_LINKS - len(anchors))
        if slots <= 0 or self.store is None:
            return 0

        hrefs = [a["href"].strip() for a in anchors]
        related = []
        for article in self.store.related(category, current_slug, slots + len(hrefs)):
            path = f"{ARTICLE_PATH_PREFIX}{article.slug}"
            if any(path in h for h in hrefs):
                continue
            related.append((path, article.title))
            if len(related) >= slots:
                break
        if not related:
            logs.append("No related articles to link")
            return 0

        paragraphs = soup.find_all("p")
        points = _injection_points(len(paragraphs), len(related))
        for i in reversed(range(len(related))):
            path, title = related[i]
            new_p = soup.new_tag("p")
            label = soup.new_tag("em")
            label.string = INTERNAL_TEMPLATES[i % len(INTERNAL_TEMPLATES)]
            new_p.append(label)
            new_p.append(" ")
            link = soup.new_tag("a", href=path)
            link.string = title
            new_p.append(link)
            if paragraphs:
                paragraphs[points[i]].insert_after(new_p)
            else:
                soup.append(new_p)
        logs.append(f"Injected {len(related)} internal link(s)")
        return len(related)

    # ── report ────────────────────────────────────────────────────────────

    def _records(self, soup: BeautifulSoup) -> list[LinkRecord]:
        return [
            LinkRecord(
                url=a["href"].strip(),
                anchor=a.get_text(" ", strip=True),
                kind="internal" if self.is_internal(a["href"]) else "external",
                position=i,
            )
            for i, a in enumerate(_anchors(soup))
        ]
