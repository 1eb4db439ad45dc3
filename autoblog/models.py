"""Records passed between pipeline stages and external collaborators."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class CandidateTopic:
    """A topic under consideration; ``source`` is rss, fallback, search or custom."""

    text: str
    source: str = "rss"


@dataclass
class TocEntry:
    level: int
    title: str
    id: str


@dataclass
class Article:
    title: str
    slug: str
    content: str
    category: str
    meta_title: str = ""
    meta_description: str = ""
    tags: list[str] = field(default_factory=list)
    table_of_contents: list[TocEntry] = field(default_factory=list)
    published_at: Optional[datetime] = None
    thumbnail_path: Optional[str] = None
    custom_prompt: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["published_at"] = self.published_at.isoformat() if self.published_at else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Article":
        published = data.get("published_at")
        return cls(
            title=data["title"],
            slug=data["slug"],
            content=data.get("content", ""),
            category=data.get("category", ""),
            meta_title=data.get("meta_title", ""),
            meta_description=data.get("meta_description", ""),
            tags=list(data.get("tags", [])),
            table_of_contents=[TocEntry(**t) for t in data.get("table_of_contents", [])],
            published_at=datetime.fromisoformat(published) if published else None,
            thumbnail_path=data.get("thumbnail_path"),
            custom_prompt=data.get("custom_prompt"),
        )


@dataclass
class JobState:
    status: str  # pending | processing | completed | failed
    progress: int = 0
    message: str = ""
    article_title: Optional[str] = None


@dataclass
class RunReport:
    """One report per generation run, handed to the notifier."""

    outcome: str  # success | failed | all-topics-duplicate
    category: str
    article: Optional[Article] = None
    error: Optional[str] = None
    logs: list[str] = field(default_factory=list)
