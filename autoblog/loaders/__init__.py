"""Data loading: trending topics and research briefs."""

from autoblog.loaders.topics import fetch_trending_topics, fallback_topics
from autoblog.loaders.research import research_topic, research_custom_prompt, extract_url

__all__ = [
    "fetch_trending_topics",
    "fallback_topics",
    "research_topic",
    "research_custom_prompt",
    "extract_url",
]
