"""Optimize stage: readability rewrite, structural fixes, and the TOC.

The rewrite is optional. Whatever comes out of it (or the draft, when the
rewrite is unusable) goes through :func:`structural_fix`, which rebuilds the
tree so headings carry anchor ids, long paragraphs are split, and forbidden
punctuation is gone. Running the fix twice gives the same HTML.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Union

from bs4 import BeautifulSoup, Comment, NavigableString, Tag
from bs4.element import PreformattedString

from autoblog.config import OPTIMIZE_INPUT_CHARS, PARAGRAPH_CHUNK_WORDS, PARAGRAPH_SPLIT_WORDS
from autoblog.models import TocEntry
from autoblog.pipeline.drafter import ensure_html
from autoblog.pipeline.prompts import build_optimize_prompt, build_optimize_system_prompt
from autoblog.providers.hub import ProviderHub
from autoblog.text import slugify, word_count
from autoblog.validation.checks import check_html_structure

logger = logging.getLogger(__name__)

MIN_REWRITE_RATIO = 0.6

_EM_DASH = re.compile(r"\s*—\s*")
_SPACED_EN_DASH = re.compile(r"\s+–\s+")
_DOUBLE_COMMA = re.compile(r",\s*,")
_TAG_SPLIT = re.compile(r"(<[^>]+>)")
_BOUNDARY = re.compile(r"\s+(?=[\"'“(\[]?[A-Z0-9])")
_VOID_TAGS = {"br", "img", "hr", "wbr", "input"}
_UNWRAP = {"html", "body"}
_DROP = {"h1", "head", "script", "style"}
_CONTAINERS = {"div", "section", "article", "main"}


# ── Structural fix ────────────────────────────────────────────────────────


def normalize_punctuation(text: str) -> str:
    """Em dashes and spaced en dashes become commas."""
    if "—" not in text and "–" not in text:
        return text
    text = _EM_DASH.sub(", ", text)
    text = _SPACED_EN_DASH.sub(", ", text)
    return _DOUBLE_COMMA.sub(",", text)


def _normalize_strings(tag: Tag) -> None:
    for s in list(tag.find_all(string=True)):
        if isinstance(s, Comment):
            continue
        fixed = normalize_punctuation(str(s))
        if fixed != str(s):
            s.replace_with(NavigableString(fixed))


def _sentences_html(inner_html: str) -> list[str]:
    """Split a paragraph's inner HTML into sentences without breaking inline tags.

    Boundaries are only taken outside inline elements, so every returned
    fragment is balanced.
    """
    sentences: list[str] = []
    current: list[str] = []
    depth = 0
    last_char = ""
    for token in _TAG_SPLIT.split(inner_html):
        if not token:
            continue
        if token.startswith("<"):
            current.append(token)
            name = token.strip("</> ").split()[0].lower() if token.strip("</> ") else ""
            if token.startswith("</"):
                depth = max(0, depth - 1)
            elif not token.endswith("/>") and name not in _VOID_TAGS:
                depth += 1
            continue
        if depth > 0:
            current.append(token)
            if token.strip():
                last_char = token.rstrip()[-1]
            continue

        pos = 0
        for match in _BOUNDARY.finditer(token):
            before = token[pos:match.start()]
            prev = before.rstrip()[-1] if before.strip() else last_char
            if prev in ".!?":
                current.append(before)
                sentences.append("".join(current).strip())
                current = []
                pos = match.end()
                last_char = ""
        rest = token[pos:]
        current.append(rest)
        if rest.strip():
            last_char = rest.rstrip()[-1]
    tail = "".join(current).strip()
    if tail:
        sentences.append(tail)
    return [s for s in sentences if s]


def _chunk_sentences(sentences: list[str]) -> list[list[str]]:
    """Group sentences into ~40-word chunks that never exceed the split limit."""
    chunks: list[list[str]] = []
    current: list[str] = []
    current_words = 0
    for sentence in sentences:
        n = word_count(sentence)
        if current and (current_words >= PARAGRAPH_CHUNK_WORDS or current_words + n > PARAGRAPH_SPLIT_WORDS):
            chunks.append(current)
            current, current_words = [], 0
        current.append(sentence)
        current_words += n
    if current:
        chunks.append(current)
    return chunks


def _split_paragraph(p: Tag, out: BeautifulSoup) -> list[Tag]:
    if len(p.get_text(" ").split()) <= PARAGRAPH_SPLIT_WORDS:
        return [p]
    chunks = _chunk_sentences(_sentences_html(p.decode_contents()))
    if len(chunks) <= 1:
        return [p]
    paragraphs = []
    for i, chunk in enumerate(chunks):
        attrs = dict(p.attrs) if i == 0 else {k: v for k, v in p.attrs.items() if k != "id"}
        new_p = out.new_tag("p", attrs=attrs)
        fragment = BeautifulSoup(" ".join(chunk), "html.parser")
        for child in list(fragment.contents):
            new_p.append(child.extract())
        paragraphs.append(new_p)
    return paragraphs


def _rebuild(node, out: BeautifulSoup) -> list:
    """New nodes for ``out`` built from one node of the source tree."""
    if isinstance(node, PreformattedString):
        return []
    if isinstance(node, NavigableString):
        return [NavigableString(normalize_punctuation(str(node)))]
    if not isinstance(node, Tag):
        return []
    if node.name in _DROP:
        return []
    if node.name in _UNWRAP:
        return [new for child in node.contents for new in _rebuild(child, out)]
    if node.name in _CONTAINERS:
        container = out.new_tag(node.name, attrs=dict(node.attrs))
        for child in node.contents:
            for new in _rebuild(child, out):
                container.append(new)
        return [container]

    clone = copy.copy(node)
    for nested in clone.find_all("h1"):
        nested.decompose()
    _normalize_strings(clone)
    if clone.name == "p":
        result = []
        for i, p in enumerate(_split_paragraph(clone, out)):
            if i:
                result.append(NavigableString("\n"))
            result.append(p)
        return result
    return [clone]


def _assign_heading_ids(soup: BeautifulSoup) -> None:
    headings = soup.find_all(["h2", "h3"])
    counts: dict[str, int] = {}
    for h in headings:
        if h.get("id"):
            counts[h["id"]] = counts.get(h["id"], 0) + 1
    used = {hid for hid, n in counts.items() if n == 1}
    kept: set[str] = set()

    for h in headings:
        hid = h.get("id")
        if hid and counts.get(hid) == 1 and hid not in kept:
            kept.add(hid)
            continue
        base = slugify(h.get_text(" ", strip=True)) or "section"
        candidate, n = base, 2
        while candidate in used:
            candidate = f"{base}-{n}"
            n += 1
        used.add(candidate)
        h["id"] = candidate


def build_toc(html: Union[str, BeautifulSoup]) -> list[TocEntry]:
    """Ordered h2/h3 entries; headings without an id are skipped."""
    soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html, "html.parser")
    return [
        TocEntry(level=int(h.name[1]), title=h.get_text(" ", strip=True), id=h["id"])
        for h in soup.find_all(["h2", "h3"])
        if h.get("id")
    ]


def structural_fix(html: str) -> tuple[str, list[TocEntry]]:
    """Rebuild the article tree and return (html, table of contents).

    - em dashes (and spaced en dashes) become commas
    - <h1> elements are removed from the body
    - paragraphs over 80 words are split at sentence boundaries into ~40-word chunks
    - every h2/h3 gets a unique slug id; existing unique ids are kept
    """
    source = BeautifulSoup(html or "", "html.parser")
    out = BeautifulSoup("", "html.parser")
    for node in list(source.contents):
        for new in _rebuild(node, out):
            out.append(new)
    _assign_heading_ids(out)
    return str(out).strip(), build_toc(out)


# ── AI-artifact cleanup ───────────────────────────────────────────────────

_ROBOTIC_LEAD = re.compile(
    r"(^|(?<=[.!?])\s+)(?:in conclusion|to sum up|to summarize|in summary|ultimately)\s*[,:]?\s*(\w)",
    re.IGNORECASE,
)
_AI_NOTE = re.compile(
    r"\s*\(?\s*note:\s*this (?:article|content|post|text)?\s*(?:is|was)\s*(?:an?\s*)?ai[- ]generated[^.!?)]*[.!?)]*",
    re.IGNORECASE,
)


def _strip_robotic(text: str) -> str:
    text = _AI_NOTE.sub("", text)
    return _ROBOTIC_LEAD.sub(lambda m: m.group(1) + m.group(2).upper(), text)


def cleanup_ai_artifacts(html: str, topic: str) -> str:
    """Remove robotic phrasing and excessive bolding from generated HTML."""
    soup = BeautifulSoup(html or "", "html.parser")

    for s in list(soup.find_all(string=True)):
        if isinstance(s, Comment):
            continue
        cleaned = _strip_robotic(str(s))
        if cleaned != str(s):
            s.replace_with(NavigableString(cleaned))

    for p in soup.find_all("p"):
        if not p.get_text(strip=True) and not p.find(["img", "a"]):
            p.decompose()

    # Paragraph-leading bold restatement of the topic
    topic_key = topic.strip().lower()
    for p in soup.find_all("p"):
        first = next((c for c in p.contents if not (isinstance(c, NavigableString) and not c.strip())), None)
        if isinstance(first, Tag) and first.name in ("strong", "b"):
            if first.get_text(strip=True).lower() == topic_key:
                first.unwrap()

    bold = soup.find_all(["strong", "b"])
    allowed = 5 + word_count(str(soup)) // 500
    for tag in bold[allowed:]:
        tag.unwrap()

    return str(soup).strip()


# ── Optimize ──────────────────────────────────────────────────────────────


@dataclass
class OptimizeResult:
    html: str
    toc: list[TocEntry]
    optimized: bool = False
    logs: list[str] = field(default_factory=list)


def optimize_content(hub: ProviderHub, html: str, topic: str = "") -> OptimizeResult:
    """Rewrite for readability, then run the structural fix.

    The rewrite is discarded if the chat chain is exhausted, the HTML is not
    well-formed, or it lost more than 40% of the words. The structural fix
    always runs, so this never blocks publication.
    """
    logs: list[str] = []
    original_words = word_count(html)
    result = hub.complete(
        "optimize",
        build_optimize_system_prompt(),
        build_optimize_prompt(html[:OPTIMIZE_INPUT_CHARS]),
    )

    chosen, optimized = html, False
    if not result.ok:
        logs.append(f"Optimizer unavailable ({result.outcome}), using structural fix only")
    else:
        rewrite = ensure_html(result.data)
        problems = check_html_structure(rewrite)
        rewrite_words = word_count(rewrite)
        if problems:
            logs.append(f"Optimizer output rejected: {problems[0]}")
        elif rewrite_words < original_words * MIN_REWRITE_RATIO:
            logs.append(
                f"Optimizer output rejected: {rewrite_words} words vs {original_words} in the draft"
            )
        else:
            chosen, optimized = rewrite, True
            logs.append(f"Optimized via {result.provider} ({rewrite_words} words)")

    for line in logs:
        logger.info(line)
    fixed, toc = structural_fix(chosen)
    logs.append(f"Structural fix done, {len(toc)} TOC entries")
    return OptimizeResult(html=fixed, toc=toc, optimized=optimized, logs=logs)
