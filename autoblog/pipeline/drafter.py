"""Draft stage: first article HTML from the chat provider chain.

The draft is kept inside word-count bounds: a short draft gets one
expansion call, a long one is cut at a sentence boundary. When every chat
provider is exhausted the article is assembled locally from the research
brief so the run can still publish.
"""

from __future__ import annotations

import html as html_lib
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

import markdown as md_lib
from bs4 import BeautifulSoup, NavigableString

from autoblog.config import FALLBACK_KEYWORDS, MAX_WORDS, MIN_WORDS
from autoblog.pipeline.prompts import (
    build_draft_prompt,
    build_expand_prompt,
    build_keywords_prompt,
    build_system_prompt,
)
from autoblog.providers.hub import ProviderHub
from autoblog.text import split_sentences, word_count

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?|\n?```\s*$")


@dataclass
class DraftResult:
    html: str
    title: Optional[str] = None
    source: str = "provider"  # provider | fallback
    provider: Optional[str] = None
    words: int = 0
    logs: list[str] = field(default_factory=list)


# ── HTML normalisation ────────────────────────────────────────────────────


def strip_code_fences(text: str) -> str:
    return _FENCE.sub("", text.strip()).strip()


def ensure_html(article: str) -> str:
    """If the article already looks like HTML keep it, otherwise convert from markdown."""
    article = strip_code_fences(article)
    html_indicators = ["<h1>", "<h1 ", "<h2>", "<h2 ", "<p>", "<p ", "<a href="]
    if any(indicator in article for indicator in html_indicators):
        return article.strip()

    return md_lib.markdown(article, extensions=["extra", "sane_lists", "smarty"])


def extract_title(html: str) -> Optional[str]:
    """Text of the first <h1>, if the model wrote one."""
    soup = BeautifulSoup(html, "html.parser")
    h1 = soup.find("h1")
    if h1 is None:
        return None
    title = h1.get_text(" ", strip=True)
    return title or None


def truncate_html(html: str, max_words: int = MAX_WORDS) -> str:
    """Cut an article to ``max_words`` at a sentence boundary, keeping it well-formed.

    Top-level blocks are kept whole while they fit. The block that crosses
    the limit is cut at a sentence boundary if it is a paragraph, dropped
    otherwise. Everything after it is dropped.
    """
    soup = BeautifulSoup(html, "html.parser")
    used = 0
    cut = False
    for node in list(soup.contents):
        if cut:
            node.extract()
            continue
        if isinstance(node, NavigableString):
            used += len(str(node).split())
            continue
        words = len(node.get_text(" ").split())
        if used + words <= max_words:
            used += words
            continue

        cut = True
        if node.name != "p":
            node.extract()
            continue
        kept = []
        for sentence in split_sentences(node.get_text(" ", strip=True)):
            n = len(sentence.split())
            if used + n > max_words:
                break
            kept.append(sentence)
            used += n
        if kept:
            node.clear()
            node.append(" ".join(kept))
        else:
            node.extract()
    return str(soup).strip()


# ── Provider draft ────────────────────────────────────────────────────────


def generate_draft(
    hub: ProviderHub,
    topic: str,
    category: str,
    research: str,
    keywords: list[str] = (),
) -> DraftResult:
    """Generate the first draft and keep it within the word-count bounds.

    Args:
        hub: Provider hub (chat chain).
        topic: Selected topic or custom prompt text.
        category: Article category.
        research: Research brief.
        keywords: SEO keywords to work in.

    Returns:
        DraftResult; ``source`` is "fallback" when every chat provider failed.
    """
    logs: list[str] = []
    result = hub.complete(
        "draft",
        build_system_prompt(),
        build_draft_prompt(topic, category, research, list(keywords)),
    )
    if not result.ok:
        logs.append(f"Draft providers exhausted ({result.outcome}), building local fallback article")
        logger.warning("Draft providers exhausted (%s) for '%s'", result.outcome, topic)
        draft = generate_scraped_fallback(topic, category, research)
        draft.logs = logs + draft.logs
        return draft

    html = ensure_html(result.data)
    words = word_count(html)
    logs.append(f"Draft generated via {result.provider} ({words} words)")

    if words < MIN_WORDS:
        expanded = hub.complete(
            "expand", build_system_prompt(), build_expand_prompt(html, topic, words)
        )
        if expanded.ok:
            expanded_html = ensure_html(expanded.data)
            expanded_words = word_count(expanded_html)
            if expanded_words > words:
                html, words = expanded_html, expanded_words
                logs.append(f"Expanded short draft to {words} words")
            else:
                logs.append("Expansion was not longer, kept original draft")
        else:
            logs.append(f"Expansion failed ({expanded.outcome}), kept {words}-word draft")

    if words > MAX_WORDS:
        html = truncate_html(html, MAX_WORDS)
        words = word_count(html)
        logs.append(f"Truncated long draft to {words} words")

    return DraftResult(
        html=html,
        title=extract_title(html),
        source="provider",
        provider=result.provider,
        words=words,
        logs=logs,
    )


# ── Local fallback ────────────────────────────────────────────────────────

_FALLBACK_SECTIONS = [
    "Background",
    "Key Developments",
    "Why It Matters",
    "What to Watch Next",
]


def _research_paragraphs(research: str) -> tuple[list[str], list[tuple[str, str]]]:
    """Split a research brief into body paragraphs and (label, url) sources."""
    paragraphs: list[str] = []
    sources: list[tuple[str, str]] = []
    label = ""
    for line in research.splitlines():
        line = line.strip()
        if not line or line == "Research findings:":
            continue
        if line.startswith("Source:"):
            label = line[len("Source:"):].strip()
            continue
        if line.startswith("From:"):
            url = line[len("From:"):].strip()
            if url.startswith(("http://", "https://")):
                sources.append((label or url, url))
            continue
        if line.startswith("No external research available"):
            continue
        paragraphs.append(line.rstrip("."))
    return paragraphs, sources


def generate_scraped_fallback(topic: str, category: str, research: str) -> DraftResult:
    """Assemble an article locally from the research brief.

    Used when no chat provider answered. Research paragraphs are spread over
    a fixed set of h2 sections; source URLs become outbound links.
    """
    paragraphs, sources = _research_paragraphs(research or "")
    esc_topic = html_lib.escape(topic)
    esc_category = html_lib.escape(category.lower())

    parts = [
        f"<h1>{esc_topic}</h1>",
        f"<p>{esc_topic} has become one of the most discussed subjects in {esc_category}. "
        "This article collects the essential background, the most recent developments, "
        "and the questions readers should keep in mind.</p>",
    ]

    per_section = max(1, -(-len(paragraphs) // len(_FALLBACK_SECTIONS))) if paragraphs else 0
    for i, heading in enumerate(_FALLBACK_SECTIONS):
        parts.append(f"<h2>{heading}</h2>")
        chunk = paragraphs[i * per_section:(i + 1) * per_section] if per_section else []
        if chunk:
            parts.extend(f"<p>{html_lib.escape(p)}.</p>" for p in chunk)
        else:
            parts.append(
                f"<p>Coverage of {esc_topic} continues to evolve. Readers following "
                f"{esc_category} should compare several reputable sources and look for "
                "primary data before drawing conclusions.</p>"
            )
        if i == 0 and sources:
            label, url = sources[0]
            parts.append(
                f'<p>For a detailed reference, see <a href="{html_lib.escape(url)}">'
                f"{html_lib.escape(label)}</a>.</p>"
            )

    parts.append(
        f"<p>{esc_topic} will keep shaping the {esc_category} conversation. "
        "Check back for updates as new information becomes available.</p>"
    )
    html = "\n".join(parts)
    return DraftResult(
        html=html,
        title=topic,
        source="fallback",
        words=word_count(html),
        logs=[f"Fallback article built from {len(paragraphs)} research paragraph(s)"],
    )


# ── Keywords ──────────────────────────────────────────────────────────────


def generate_keywords(hub: ProviderHub, topic: str, category: str) -> list[str]:
    """SEO keywords for tags; static list when the chat chain is exhausted."""
    result = hub.complete_json(
        "keywords", "You are an SEO assistant. Reply with JSON only.", build_keywords_prompt(topic, category)
    )
    if result.ok:
        raw = result.data.get("keywords") or []
        keywords = [str(k).strip() for k in raw if str(k).strip()]
        if keywords:
            return keywords[:8]
    logger.info("Keyword generation unavailable, using fallback keywords")
    return list(FALLBACK_KEYWORDS)

