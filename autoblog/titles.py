"""Title cleanup for topics that arrive as URLs or with HTML entities."""

import html
import re
from urllib.parse import urlparse

SECTIONS = [
    "news", "tech", "technology", "business", "sports", "entertainment",
    "politics", "science", "health", "world", "opinion", "lifestyle",
    "travel", "food", "culture", "arts", "education", "finance",
]

_ENTITY = re.compile(r"&([a-zA-Z0-9]+|#[0-9]{1,6}|#x[0-9a-fA-F]{1,6});")
_MALFORMED_URL = re.compile(r"^https?[a-z0-9]+", re.IGNORECASE)
_DOMAIN = re.compile(r"(?:https?)?(?:www)?([a-z0-9\-]+?)(?:com|net|org|co)", re.IGNORECASE)


def _is_url(text: str) -> bool:
    parsed = urlparse(text.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and " " not in text.strip()


def _title_from_url(url: str) -> str:
    parsed = urlparse(url.strip())
    host = parsed.netloc.lower()
    clean = parsed.path.rstrip("/").rsplit("/", 1)[-1]
    if not clean or clean == host:
        clean = host.removeprefix("www.")
    clean = re.sub(r"\.(html?|php|aspx?)$", "", clean, flags=re.IGNORECASE)
    clean = clean.replace("-", " ").replace("_", " ")
    return " ".join(word.capitalize() for word in clean.split())


def _title_from_malformed(text: str) -> str:
    """'httpswwwexamplecomtechnology...' -> 'Technology'."""
    for section in SECTIONS:
        if re.search(rf"(?:com|net|org|co){section}", text, re.IGNORECASE):
            return section.capitalize()
    match = _DOMAIN.search(text)
    if match and match.group(1):
        return match.group(1).capitalize()
    return "Article"


def sanitize_title(title: str) -> str:
    """Turn URL-shaped titles into words, decode entities, collapse whitespace."""
    if _is_url(title):
        title = _title_from_url(title)
    elif _MALFORMED_URL.match(title.strip()) and " " not in title.strip():
        title = _title_from_malformed(title.strip())

    if _ENTITY.search(title):
        title = html.unescape(title)

    return re.sub(r"\s+", " ", title).strip()
