"""Individual validation checks and the main validate_article orchestrator."""

import re
from collections import Counter

from bs4 import BeautifulSoup

from autoblog.config import (
    MAX_EXTERNAL_LINKS,
    MAX_INTERNAL_LINKS,
    MAX_TOTAL_LINKS,
    MAX_VALID_EXTERNAL_LINKS,
    MAX_WORDS,
    MIN_WORDS,
)
from autoblog.text import is_internal_url, word_count
from autoblog.validation.report import compute_grade

BLOCK_TAGS = ["p", "h1", "h2", "h3", "h4", "ul", "ol", "li", "blockquote", "div", "section", "table"]

_MARKDOWN_HEADING = re.compile(r"^\s*#{1,6}\s+\S", re.MULTILINE)


# ── Well-formedness ───────────────────────────────────────────────────────


def check_html_structure(html: str) -> list[str]:
    """Problems that make generated HTML unusable; empty list when well-formed.

    - every block tag opened is closed
    - at least one paragraph
    - no markdown headings left in the text
    """
    problems = []
    if not html or not html.strip():
        return ["empty document"]

    for tag in BLOCK_TAGS:
        opened = len(re.findall(rf"<{tag}(?:\s[^>]*)?>", html, re.IGNORECASE))
        closed = len(re.findall(rf"</{tag}\s*>", html, re.IGNORECASE))
        if opened != closed:
            problems.append(f"unbalanced <{tag}>: {opened} opened, {closed} closed")

    soup = BeautifulSoup(html, "html.parser")
    if not soup.find("p"):
        problems.append("no <p> paragraphs")
    if _MARKDOWN_HEADING.search(soup.get_text("\n")):
        problems.append("stray markdown heading")
    return problems


# ── Main validation entry point ──────────────────────────────────────────


def validate_article(html: str, site_url: str) -> dict:
    """Run all validation checks on a finished article body.

    Returns a dict with per-check results, issues, warnings, grade, and
    overall pass/fail.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    results = {
        "word_count": check_word_count(html),
        "h2_count": check_h2_count(soup),
        "structure": check_structure(soup),
        "heading_ids": check_heading_ids(soup),
        "internal_links": check_internal_links(soup, site_url),
        "external_links": check_external_links(soup, site_url),
        "duplicate_links": check_duplicate_links(soup),
        "html_structure": {"problems": check_html_structure(html)},
    }

    issues, warnings = _collect_issues(results)
    results["issues"] = issues
    results["warnings"] = warnings
    results["pass"] = len(issues) == 0
    results["grade"] = compute_grade(issues, warnings)
    return results


# ── Issue aggregation ─────────────────────────────────────────────────────


def _collect_issues(results: dict) -> tuple[list[str], list[str]]:
    """Walk through all check results and collect issues/warnings."""
    issues = []
    warnings = []

    wc = results["word_count"]
    if wc["count"] < MIN_WORDS:
        issues.append(f"Too short: {wc['count']} words (need {MIN_WORDS}+)")
    if wc["count"] > MAX_WORDS:
        issues.append(f"Too long: {wc['count']} words (max {MAX_WORDS})")

    h2 = results["h2_count"]
    if h2["count"] < 2:
        issues.append(f"Too few H2s: {h2['count']} (need 2+)")
    elif h2["count"] < 4:
        warnings.append(f"Only {h2['count']} H2 sections (target 4-7)")

    structure = results["structure"]
    if structure["has_h1"]:
        issues.append("Body contains an <h1> (title lives outside the content)")
    if structure["em_dashes"]:
        issues.append(f"{structure['em_dashes']} em dash(es) left in the text")
    if not structure["starts_with_paragraph"]:
        warnings.append("Article doesn't start with a paragraph before first H2")
    if structure["has_conclusion_header"]:
        warnings.append("Article has a 'Conclusion' header")
    if structure["h2_immediately_followed_by_h3"]:
        warnings.append("An H2 is immediately followed by H3 without body text")

    ids = results["heading_ids"]
    if ids["missing"]:
        issues.append(f"{ids['missing']} heading(s) without an anchor id")
    if ids["duplicates"]:
        issues.append(f"Duplicate heading ids: {', '.join(ids['duplicates'])}")

    internal = results["internal_links"]["count"]
    external = results["external_links"]["count"]
    if internal > MAX_INTERNAL_LINKS:
        issues.append(f"Too many internal links: {internal} (max {MAX_INTERNAL_LINKS})")
    if external > MAX_VALID_EXTERNAL_LINKS:
        issues.append(f"Too many external links: {external} (max {MAX_VALID_EXTERNAL_LINKS})")
    elif external > MAX_EXTERNAL_LINKS:
        warnings.append(f"{external} external links (includes discovered links)")
    if internal + external > MAX_TOTAL_LINKS:
        issues.append(f"Too many links: {internal + external} (max {MAX_TOTAL_LINKS})")
    if external == 0:
        warnings.append("No external links")
    if internal == 0:
        warnings.append("No internal links")

    dupes = results["duplicate_links"]["found"]
    if dupes:
        issues.append(f"Duplicate links: {', '.join(dupes)}")

    for problem in results["html_structure"]["problems"]:
        issues.append(f"Malformed HTML: {problem}")

    return issues, warnings


# ── Individual check functions ────────────────────────────────────────────


def _hrefs(soup: BeautifulSoup) -> list[str]:
    return [
        a["href"].strip()
        for a in soup.find_all("a", href=True)
        if not a["href"].strip().startswith(("#", "mailto:"))
    ]


def check_word_count(html: str) -> dict:
    count = word_count(html)
    return {"count": count, "pass": MIN_WORDS <= count <= MAX_WORDS}


def check_h2_count(soup: BeautifulSoup) -> dict:
    h2s = [h.get_text(" ", strip=True) for h in soup.find_all("h2")]
    return {"count": len(h2s), "headers": h2s, "pass": len(h2s) >= 4}


def check_structure(soup: BeautifulSoup) -> dict:
    blocks = [t for t in soup.find_all(True, recursive=False)]
    first = blocks[0].name if blocks else ""
    has_conclusion = any(
        h.get_text(strip=True).lower().startswith("conclusion") for h in soup.find_all(["h2", "h3"])
    )
    h2_then_h3 = False
    for h2 in soup.find_all("h2"):
        nxt = h2.find_next_sibling(True)
        if nxt is not None and nxt.name == "h3":
            h2_then_h3 = True
            break

    return {
        "starts_with_paragraph": first == "p",
        "has_h1": soup.find("h1") is not None,
        "has_conclusion_header": has_conclusion,
        "h2_immediately_followed_by_h3": h2_then_h3,
        "em_dashes": soup.get_text().count("—"),
    }


def check_heading_ids(soup: BeautifulSoup) -> dict:
    headings = soup.find_all(["h2", "h3"])
    ids = Counter(h["id"] for h in headings if h.get("id"))
    return {
        "total": len(headings),
        "missing": sum(1 for h in headings if not h.get("id")),
        "duplicates": sorted(i for i, n in ids.items() if n > 1),
    }


def check_internal_links(soup: BeautifulSoup, site_url: str) -> dict:
    links = [h for h in _hrefs(soup) if is_internal_url(h, site_url)]
    return {"count": len(links), "links": links, "pass": len(links) <= MAX_INTERNAL_LINKS}


def check_external_links(soup: BeautifulSoup, site_url: str) -> dict:
    links = [h for h in _hrefs(soup) if not is_internal_url(h, site_url)]
    return {"count": len(links), "links": links, "pass": len(links) <= MAX_VALID_EXTERNAL_LINKS}


def check_duplicate_links(soup: BeautifulSoup) -> dict:
    counts = Counter(_hrefs(soup))
    found = sorted(h for h, n in counts.items() if n > 1)
    return {"found": found, "pass": not found}
