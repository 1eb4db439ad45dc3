"""Small text helpers shared by the pipeline stages."""

import re
import unicodedata
from urllib.parse import urlparse

from bs4 import BeautifulSoup

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+(?=[\"'“(\[]?[A-Z0-9])")


def slugify(text: str) -> str:
    """'Hello, World!' -> 'hello-world'"""
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    normalized = re.sub(r"[^\w\s-]", "", normalized.lower())
    return re.sub(r"[-\s_]+", "-", normalized).strip("-")


def plain_text(html: str) -> str:
    """Visible text of an HTML fragment with whitespace collapsed."""
    if not html:
        return ""
    text = BeautifulSoup(html, "html.parser").get_text(" ")
    return re.sub(r"\s+", " ", text).strip()


def word_count(html: str) -> int:
    return len(plain_text(html).split())


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_END.split(text) if s.strip()]


def limit(text: str, length: int, end: str = "...") -> str:
    """Truncate to ``length`` characters on a word boundary."""
    text = text.strip()
    if len(text) <= length:
        return text
    cut = text[:length].rsplit(" ", 1)[0].rstrip(",;:-")
    return cut + end


def is_internal_url(href: str, site_url: str) -> bool:
    """Relative paths and absolute URLs on the site's own host are internal."""
    parsed = urlparse(href.strip())
    if not parsed.scheme and not parsed.netloc:
        return True
    host = parsed.netloc.lower().removeprefix("www.")
    site_host = urlparse(site_url).netloc.lower().removeprefix("www.")
    return bool(site_host) and host == site_host
