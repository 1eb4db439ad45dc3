"""Topic deduplication against already-published titles."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Iterable, Optional, Sequence

from autoblog.config import MAX_TOPIC_ATTEMPTS, SIMILARITY_THRESHOLD
from autoblog.models import CandidateTopic

logger = logging.getLogger(__name__)


def _ratio(a: Sequence, b: Sequence) -> float:
    if not a and not b:
        return 100.0
    return SequenceMatcher(None, a, b, autojunk=False).ratio() * 100


def similarity(a: str, b: str) -> float:
    """Case-insensitive similarity of two strings, 0-100."""
    return _ratio(a.lower(), b.lower())


def sequence_similarity(a: Sequence, b: Sequence) -> float:
    """Similarity of two token sequences, 0-100."""
    return _ratio(list(a), list(b))


def is_duplicate(
    candidate: str,
    existing_titles: Iterable[str],
    threshold: float = SIMILARITY_THRESHOLD,
) -> Optional[str]:
    """Return the existing title ``candidate`` collides with, or None.

    A collision is substring containment either way (case-sensitive) or a
    similarity strictly above ``threshold``.
    """
    for title in existing_titles:
        if not title:
            continue
        if candidate in title or title in candidate:
            return title
        if similarity(candidate, title) > threshold:
            return title
    return None


@dataclass
class TopicSelection:
    topic: Optional[CandidateTopic]
    exhausted: bool = False
    attempts: int = 0
    rejected: list[str] = field(default_factory=list)


def select_topic(
    candidates: Sequence[CandidateTopic],
    existing_titles: Iterable[str],
    fallback_topics: Sequence[str] = (),
    rng: Optional[random.Random] = None,
    max_attempts: int = MAX_TOPIC_ATTEMPTS,
    threshold: float = SIMILARITY_THRESHOLD,
) -> TopicSelection:
    """Pick one candidate that does not duplicate an existing title.

    Candidates are drawn uniformly at random. A duplicate is dropped from the
    pool before the next draw. When the pool runs dry it is refilled once
    from ``fallback_topics`` (minus anything already rejected). After
    ``max_attempts`` draws the selection is returned as exhausted.
    """
    rng = rng or random.Random()
    titles = list(existing_titles)
    pool = list(candidates)
    rejected: list[str] = []
    refilled = False
    attempts = 0

    while attempts < max_attempts:
        if not pool:
            if refilled:
                break
            refilled = True
            pool = [
                CandidateTopic(t, "fallback")
                for t in fallback_topics
                if t not in rejected
            ]
            if not pool:
                break
            logger.info("Topic pool empty, refilled with %d fallback topics", len(pool))

        choice = rng.choice(pool)
        attempts += 1
        match = is_duplicate(choice.text, titles, threshold)
        if match is None:
            logger.info("Selected topic '%s' after %d attempt(s)", choice.text, attempts)
            return TopicSelection(choice, attempts=attempts, rejected=rejected)

        logger.info("Retry %d: Topic '%s' is duplicate of '%s'", attempts, choice.text, match)
        rejected.append(choice.text)
        pool = [c for c in pool if c.text != choice.text]

    logger.warning("All %d topic attempts were duplicates", attempts)
    return TopicSelection(None, exhausted=True, attempts=attempts, rejected=rejected)
