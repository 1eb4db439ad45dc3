"""Maintenance passes over articles that are already published."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup

from autoblog.pipeline.generator import META_DESCRIPTION_CHARS, META_TITLE_CHARS
from autoblog.pipeline.links import LinkManager
from autoblog.pipeline.thumbnail import ThumbnailEngine
from autoblog.text import limit as truncate
from autoblog.text import plain_text

logger = logging.getLogger(__name__)


@dataclass
class RegenerationSummary:
    regenerated: int = 0
    skipped: int = 0
    failed: int = 0
    total: int = 0


def regenerate_thumbnails(
    store,
    engine: ThumbnailEngine,
    force: bool = False,
    limit: Optional[int] = None,
    category: Optional[str] = None,
) -> RegenerationSummary:
    """Give every article whose thumbnail is missing or too similar a new one.

    Articles whose current thumbnail still passes the uniqueness check are
    skipped unless ``force`` is set. ``category`` matches case-insensitively.
    """
    articles = store.all()
    if category:
        articles = [a for a in articles if a.category.lower() == category.lower()]
    if limit is not None:
        articles = articles[:limit]

    summary = RegenerationSummary(total=len(articles))
    for article in articles:
        if not force and article.thumbnail_path and engine.is_unique(article.thumbnail_path):
            summary.skipped += 1
            continue

        result = engine.generate(article.slug, article.title, article.content, article.category)
        if result.path is None:
            logger.error("No thumbnail produced for %s", article.slug)
            summary.failed += 1
            continue
        try:
            store.update_thumbnail(article.slug, result.path)
        except (OSError, KeyError) as e:
            logger.error("Could not store thumbnail for %s: %s", article.slug, e)
            summary.failed += 1
            continue
        logger.info("Regenerated thumbnail for %s (%s)", article.slug, result.tier)
        summary.regenerated += 1

    logger.info(
        "Thumbnail regeneration: %d regenerated, %d skipped, %d failed of %d",
        summary.regenerated, summary.skipped, summary.failed, summary.total,
    )
    return summary


def _has_internal_link(html: str, link_manager: LinkManager) -> bool:
    soup = BeautifulSoup(html, "html.parser")
    return any(link_manager.is_internal(a["href"]) for a in soup.find_all("a", href=True))


def fix_seo(store, link_manager: LinkManager) -> list[str]:
    """Fill missing meta fields and link articles that have no internal links.

    Returns the slugs of the articles that changed.
    """
    changed = []
    for article in store.all():
        updated = False
        if not article.meta_title:
            article.meta_title = truncate(article.title, META_TITLE_CHARS)
            updated = True
        if not article.meta_description:
            article.meta_description = truncate(plain_text(article.content), META_DESCRIPTION_CHARS)
            updated = True

        if not _has_internal_link(article.content, link_manager):
            links = link_manager.relink(article.content, article.category, current_slug=article.slug)
            if links.internal_count:
                article.content = links.html
                updated = True

        if updated:
            store.save(article)
            changed.append(article.slug)
    logger.info("SEO pass updated %d article(s)", len(changed))
    return changed
