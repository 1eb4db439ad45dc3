"""Article generation pipeline: topic selection, draft, optimize, links, thumbnails."""

from autoblog.pipeline.dedup import TopicSelection, is_duplicate, select_topic, similarity
from autoblog.pipeline.drafter import generate_draft, generate_keywords, generate_scraped_fallback
from autoblog.pipeline.generator import (
    BlogGenerator,
    GenerationError,
    GenerationOutcome,
    GenerationRun,
    run_generation_job,
)
from autoblog.pipeline.links import LinkManager, LinkReport, check_link
from autoblog.pipeline.optimizer import cleanup_ai_artifacts, optimize_content, structural_fix
from autoblog.pipeline.thumbnail import ThumbnailEngine, VisualSpec

__all__ = [
    "BlogGenerator",
    "GenerationError",
    "GenerationOutcome",
    "GenerationRun",
    "LinkManager",
    "LinkReport",
    "ThumbnailEngine",
    "TopicSelection",
    "VisualSpec",
    "check_link",
    "cleanup_ai_artifacts",
    "generate_draft",
    "generate_keywords",
    "generate_scraped_fallback",
    "is_duplicate",
    "optimize_content",
    "run_generation_job",
    "select_topic",
    "similarity",
    "structural_fix",
]
