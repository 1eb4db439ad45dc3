"""Generation orchestrator: one category in, one published article out."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from autoblog.config import JOB_MAX_ATTEMPTS, JOB_RETRY_DELAY, SITE_URL
from autoblog.loaders import fallback_topics, fetch_trending_topics, research_custom_prompt, research_topic
from autoblog.models import Article, CandidateTopic, JobState, RunReport
from autoblog.pipeline.dedup import select_topic
from autoblog.pipeline.drafter import generate_draft, generate_keywords
from autoblog.pipeline.links import LinkManager
from autoblog.pipeline.optimizer import cleanup_ai_artifacts, optimize_content
from autoblog.pipeline.thumbnail import ThumbnailEngine
from autoblog.providers.hub import ProviderHub
from autoblog.text import limit, plain_text, slugify
from autoblog.titles import sanitize_title
from autoblog.validation import validate_article

logger = logging.getLogger(__name__)

META_TITLE_CHARS = 60
META_DESCRIPTION_CHARS = 160

ProgressCallback = Callable[[str, int], None]


class GenerationError(Exception):
    """The run cannot produce an article and retrying will not help."""


@dataclass
class GenerationOutcome:
    status: str  # success | duplicate
    article: Optional[Article] = None
    logs: list[str] = field(default_factory=list)
    rejected_topics: list[str] = field(default_factory=list)


@dataclass
class GenerationRun:
    """State shared by every attempt of one job.

    ``logs`` collects stage messages across attempts. ``article`` is set once
    the article is persisted; a later attempt then only finishes the thumbnail.
    """

    logs: list[str] = field(default_factory=list)
    article: Optional[Article] = None


class BlogGenerator:
    def __init__(
        self,
        hub: ProviderHub,
        store,
        thumbnails: Optional[ThumbnailEngine] = None,
        link_manager: Optional[LinkManager] = None,
        topic_source: Callable[[str], list[CandidateTopic]] = fetch_trending_topics,
        researcher: Callable[[str, ProviderHub], str] = research_topic,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        site_url: str = SITE_URL,
    ):
        self.hub = hub
        self.store = store
        self.thumbnails = thumbnails or ThumbnailEngine(hub)
        self.link_manager = link_manager or LinkManager(hub, store, site_url=site_url)
        self.topic_source = topic_source
        self.researcher = researcher
        self.rng = rng or random.Random()
        self.clock = clock
        self.site_url = site_url

    def _unique_slug(self, title: str, timestamp: int) -> str:
        base = f"{slugify(title) or 'article'}-{timestamp}"
        slug, n = base, 1
        while self.store.slug_exists(slug):
            n += 1
            slug = f"{base}-{n}"
        return slug

    @staticmethod
    def _tags(category: str, keywords: list[str]) -> list[str]:
        tags = [category]
        for keyword in keywords:
            if keyword.lower() not in (t.lower() for t in tags):
                tags.append(keyword)
        return tags

    def generate_for_category(
        self,
        category: str,
        progress: Optional[ProgressCallback] = None,
        custom_prompt: Optional[str] = None,
        run: Optional[GenerationRun] = None,
    ) -> GenerationOutcome:
        """Run every stage for one category and persist the article.

        Args:
            category: Article category (also the first tag).
            progress: Called with ``(message, percent)`` as stages complete.
            custom_prompt: Write about this prompt instead of a trending topic.
                Topic deduplication is skipped; a URL in the prompt seeds research.
            run: State from earlier attempts of the same job. When it already
                holds a saved article only the thumbnail stage is repeated.

        Returns:
            GenerationOutcome with status "success", or "duplicate" when every
            candidate topic matched an existing title.
        """
        if not category or not category.strip():
            raise GenerationError("No category given")
        category = category.strip()
        run = run if run is not None else GenerationRun()
        logs = run.logs

        def step(message: str, percent: int) -> None:
            logs.append(message)
            logger.info("[%3d%%] %s", percent, message)
            if progress is not None:
                progress(message, percent)

        if run.article is not None:
            step(f"Resuming saved article {run.article.slug}", 85)
            return self._finish(run.article, logs, step)

        # ── 1. Topic ───────────────────────────────────────────────────────
        if custom_prompt and custom_prompt.strip():
            topic = CandidateTopic(custom_prompt.strip(), "custom")
            step("Using custom prompt", 5)
        else:
            candidates = self.topic_source(category)
            selection = select_topic(
                candidates, self.store.titles(), fallback_topics(category), rng=self.rng
            )
            if selection.exhausted:
                logs.append(f"All {selection.attempts} topic attempts were duplicates")
                return GenerationOutcome("duplicate", None, logs, selection.rejected)
            topic = selection.topic
            step(f"Selected topic: {topic.text} ({topic.source})", 5)

        # ── 2. Research ────────────────────────────────────────────────────
        if topic.source == "custom":
            research = research_custom_prompt(topic.text, self.hub)
        else:
            research = self.researcher(topic.text, self.hub)
        step(f"Research gathered ({len(research)} chars)", 15)

        # ── 3. Keywords + draft ────────────────────────────────────────────
        keywords = generate_keywords(self.hub, topic.text, category)
        draft = generate_draft(self.hub, topic.text, category, research, keywords)
        logs.extend(draft.logs)
        step(f"Draft ready: {draft.words} words via {draft.provider or draft.source}", 30)

        # ── 4. Cleanup + optimize ──────────────────────────────────────────
        html = cleanup_ai_artifacts(draft.html, topic.text)
        optimized = optimize_content(self.hub, html, topic.text)
        logs.extend(optimized.logs)
        step(f"Optimized ({len(optimized.toc)} TOC entries)", 50)

        # ── 5. Title + slug, then links ────────────────────────────────────
        title = sanitize_title(draft.title or topic.text)
        timestamp = int(self.clock())
        slug = self._unique_slug(title, timestamp)

        links = self.link_manager.process(optimized.html, category, title=title, current_slug=slug)
        logs.extend(links.logs)
        step(f"Links: {links.internal_count} internal, {links.external_count} external", 65)

        # ── 6. Metadata ────────────────────────────────────────────────────
        article = Article(
            title=title,
            slug=slug,
            content=links.html,
            category=category,
            meta_title=limit(title, META_TITLE_CHARS),
            meta_description=limit(plain_text(links.html), META_DESCRIPTION_CHARS),
            tags=self._tags(category, keywords),
            table_of_contents=optimized.toc,
            published_at=datetime.fromtimestamp(timestamp, tz=timezone.utc),
            custom_prompt=custom_prompt if topic.source == "custom" else None,
        )
        validation = validate_article(article.content, self.site_url)
        step(f"Metadata ready, validation grade {validation['grade']}", 75)
        for issue in validation["issues"]:
            logger.warning("Validation: %s", issue)

        # ── 7. Persist, then thumbnail ─────────────────────────────────────
        self.store.save(article)
        run.article = article
        step(f"Saved article {slug}", 85)

        return self._finish(article, logs, step)

    def _finish(self, article: Article, logs: list[str], step: ProgressCallback) -> GenerationOutcome:
        thumb = self.thumbnails.generate(article.slug, article.title, article.content, article.category)
        logs.extend(thumb.logs)
        article.thumbnail_path = thumb.path
        self.store.update_thumbnail(article.slug, thumb.path)
        step(f"Thumbnail: {thumb.tier}", 100)

        return GenerationOutcome("success", article, logs)


# ── Job wrapper ───────────────────────────────────────────────────────────


def _send_report(notifier, report: RunReport) -> None:
    try:
        notifier.send_report(report)
    except Exception:
        logger.exception("Failed to send %s report for %s", report.outcome, report.category)


def run_generation_job(
    category: str,
    job_id: str,
    generator: BlogGenerator,
    job_store,
    notifier,
    max_attempts: int = JOB_MAX_ATTEMPTS,
    retry_delay: float = JOB_RETRY_DELAY,
    sleep: Callable[[float], None] = time.sleep,
    custom_prompt: Optional[str] = None,
    progress: Optional[ProgressCallback] = None,
) -> RunReport:
    """Run one generation job and send exactly one report.

    Unexpected exceptions are retried up to ``max_attempts`` times, waiting
    ``retry_delay * attempt`` seconds between tries. ``GenerationError`` is
    not retried. Attempts share one :class:`GenerationRun`, so a retry after
    the article was saved only redoes the thumbnail for the same slug.
    """
    job_store.set(job_id, JobState("processing", 0, "Starting generation"))
    run = GenerationRun()
    reached = 0

    def on_progress(message: str, percent: int) -> None:
        nonlocal reached
        reached = max(reached, percent)
        job_store.set(job_id, JobState("processing", reached, message))
        if progress is not None:
            progress(message, reached)

    error = None
    for attempt in range(1, max_attempts + 1):
        try:
            outcome = generator.generate_for_category(
                category, progress=on_progress, custom_prompt=custom_prompt, run=run
            )
        except GenerationError as e:
            logger.error("Generation for %s failed: %s", category, e)
            error = str(e)
            run.logs.append(f"Generation failed: {error}")
            break
        except Exception as e:
            logger.exception("Generation attempt %d/%d for %s failed", attempt, max_attempts, category)
            error = f"{type(e).__name__}: {e}"
            run.logs.append(f"Attempt {attempt}/{max_attempts} failed: {error}")
            if attempt < max_attempts:
                sleep(retry_delay * attempt)
            continue

        if outcome.status == "duplicate":
            job_store.set(job_id, JobState("completed", 100, "All candidate topics were duplicates"))
            report = RunReport("all-topics-duplicate", category, logs=outcome.logs)
        else:
            job_store.set(
                job_id,
                JobState("completed", 100, "Article published", outcome.article.title),
            )
            report = RunReport("success", category, outcome.article, logs=outcome.logs)
        _send_report(notifier, report)
        return report

    job_store.set(job_id, JobState("failed", reached, error or "Generation failed"))
    report = RunReport("failed", category, error=error, logs=run.logs)
    _send_report(notifier, report)
    return report
