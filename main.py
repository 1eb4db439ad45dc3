#!/usr/bin/env python3
"""Main pipeline: generate and publish long-form blog articles.

Usage:
    python main.py --category Technology          # One article for a category
    python main.py --category AI --prompt "..."   # Write about a custom prompt (URLs are scraped)
    python main.py --daily                        # Plan and run today's articles
    python main.py --placeholders                 # Write default thumbnails for every category
    python main.py --category Science --dry-run   # Show topic and research, don't call the chat API
    python main.py --regenerate-thumbnails --limit 20   # Replace missing or near-duplicate thumbnails
    python main.py --regenerate-thumbnails --force --category Health
    python main.py --fix-seo                      # Fill missing meta fields and internal links
"""

import argparse
import logging
import sys
import time
import uuid
from datetime import datetime

from autoblog.config import ARTICLE_STORE_PATH, CATEGORIES, SCHEDULER_LOCK_PATH
from autoblog.loaders import fallback_topics, fetch_trending_topics, research_custom_prompt, research_topic
from autoblog.maintenance import fix_seo, regenerate_thumbnails
from autoblog.notify import default_notifier
from autoblog.pipeline import BlogGenerator, LinkManager, ThumbnailEngine, run_generation_job, select_topic
from autoblog.providers import FallbackInvoker, ProviderHub, default_store
from autoblog.scheduler import DailyScheduler, try_lock_nonblocking
from autoblog.storage import JobStateStore, JsonArticleStore
from autoblog.validation import format_validation_report, validate_article


def build_generator(notifier) -> BlogGenerator:
    cooldowns = default_store()
    cooldowns.notifier = notifier
    invoker = FallbackInvoker(cooldowns=cooldowns)
    hub = ProviderHub.from_config(invoker=invoker)
    store = JsonArticleStore(ARTICLE_STORE_PATH)
    return BlogGenerator(hub, store)


def print_progress(message: str, percent: int) -> None:
    print(f"  → [{percent:3d}%] {message}")


def run_one(category: str, generator: BlogGenerator, notifier, custom_prompt: str = None):
    print(f"\n{'='*60}")
    print(f"Generating: {category}" + (" (custom prompt)" if custom_prompt else ""))
    print(f"{'='*60}")

    job_id = uuid.uuid4().hex
    jobs = JobStateStore()
    report = run_generation_job(
        category,
        job_id,
        generator,
        jobs,
        notifier,
        custom_prompt=custom_prompt,
        progress=print_progress,
    )

    if report.outcome == "success":
        article = report.article
        print(f"  ✓ Published '{article.title}' ({article.slug})")
        validation = validate_article(article.content, generator.site_url)
        print(f"\n{format_validation_report(validation, article.title)}")
    elif report.outcome == "all-topics-duplicate":
        print("  ⚠ Every candidate topic was a duplicate, nothing published")
    else:
        print(f"  ✗ Failed: {report.error}")
    return report


def dry_run(category: str, custom_prompt: str = None) -> None:
    print(f"\n  [DRY RUN] {category}")
    hub = ProviderHub.from_config()
    if custom_prompt:
        print(f"    Prompt: {custom_prompt[:80]}")
        research = research_custom_prompt(custom_prompt, hub)
    else:
        candidates = fetch_trending_topics(category)
        print(f"    Candidates: {[c.text for c in candidates]}")
        store = JsonArticleStore(ARTICLE_STORE_PATH)
        selection = select_topic(candidates, store.titles(), fallback_topics(category))
        if selection.exhausted:
            print(f"    All {selection.attempts} topic attempts were duplicates")
            return
        print(f"    Topic: {selection.topic.text} ({selection.topic.source})")
        research = research_topic(selection.topic.text, hub)
    print(f"    Research: {research[:300]}...")
    print(f"    Chat providers: {[p.id for p in hub.chat_chain]}")


def regenerate(category: str, force: bool, limit: int = None) -> None:
    store = JsonArticleStore(ARTICLE_STORE_PATH)
    engine = ThumbnailEngine(ProviderHub.from_config())
    print(f"\n{'='*60}")
    print("Regenerating thumbnails" + (f" for {category}" if category else ""))
    print(f"{'='*60}")
    summary = regenerate_thumbnails(store, engine, force=force, limit=limit, category=category or None)
    print(f"  Regenerated:              {summary.regenerated}")
    print(f"  Skipped (already unique): {summary.skipped}")
    print(f"  Failed:                   {summary.failed}")
    print(f"  Total:                    {summary.total}")


def seo_pass() -> None:
    store = JsonArticleStore(ARTICLE_STORE_PATH)
    manager = LinkManager(ProviderHub(), store)
    changed = fix_seo(store, manager)
    for slug in changed:
        print(f"  → Updated {slug}")
    print(f"  ✓ SEO fixed for {len(changed)} article(s)")


def run_daily(generator: BlogGenerator, notifier) -> int:
    handle = try_lock_nonblocking(SCHEDULER_LOCK_PATH.with_suffix(".pid"))
    if handle is None:
        print("Another --daily process is running, exiting")
        return 0

    scheduler = DailyScheduler(notifier=notifier)
    planned = []
    scheduler.maybe_run(lambda category, at: planned.append((category, at)))
    if not planned:
        print("Nothing scheduled (already planned within the last 24h or lease held)")
        handle.close()
        return 0

    print(f"Planned {len(planned)} run(s):")
    for category, at in planned:
        print(f"  {datetime.fromtimestamp(at).strftime('%H:%M')}  {category}")

    published = 0
    try:
        for category, at in planned:
            wait = at - time.time()
            if wait > 0:
                print(f"\n  → Sleeping {wait / 60:.0f} min until the {category} run")
                time.sleep(wait)
            if not scheduler.can_generate():
                print("  ⚠ Daily limit reached, stopping")
                break
            report = run_one(category, generator, notifier)
            if report.outcome == "success" and scheduler.record_generation():
                published += 1
    finally:
        handle.close()
    return published


def main():
    parser = argparse.ArgumentParser(description="Generate long-form blog articles")
    parser.add_argument("--category", type=str, default="", help=f"One of: {', '.join(CATEGORIES)}")
    parser.add_argument("--prompt", type=str, default="", help="Custom prompt instead of a trending topic")
    parser.add_argument("--daily", action="store_true", help="Plan and run today's scheduled articles")
    parser.add_argument("--placeholders", action="store_true", help="Generate default category thumbnails")
    parser.add_argument("--dry-run", action="store_true", help="Show topic and research without generating")
    parser.add_argument("--regenerate-thumbnails", action="store_true",
                        help="Replace thumbnails that are missing or too similar (filter with --category)")
    parser.add_argument("--force", action="store_true", help="With --regenerate-thumbnails: replace unique ones too")
    parser.add_argument("--limit", type=int, default=None, help="With --regenerate-thumbnails: max articles")
    parser.add_argument("--fix-seo", action="store_true", help="Fill missing meta fields and internal links")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.placeholders:
        engine = ThumbnailEngine(ProviderHub())
        paths = engine.generate_category_placeholders(CATEGORIES)
        print(f"  ✓ Wrote {len(paths)} placeholder thumbnails")
        return

    if args.regenerate_thumbnails:
        regenerate(args.category, args.force, args.limit)
        return

    if args.fix_seo:
        seo_pass()
        return

    if args.daily:
        notifier = default_notifier()
        published = run_daily(build_generator(notifier), notifier)
        print(f"\n✓ Published {published} article(s) today")
        return

    if not args.category:
        print("No category given (use --category, --daily or --placeholders)")
        sys.exit(1)

    if args.dry_run:
        dry_run(args.category, args.prompt or None)
        return

    notifier = default_notifier()
    report = run_one(args.category, build_generator(notifier), notifier, args.prompt or None)
    if report.outcome == "failed":
        sys.exit(1)


if __name__ == "__main__":
    main()
