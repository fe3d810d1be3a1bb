from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional
from urllib.parse import urlparse

TITLE_MAX_CHARS = 80
SUMMARY_MAX_CHARS = 300


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CrawlStatus(str, Enum):
    IDLE = "idle"
    CRAWLING = "crawling"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CrawlStatus.COMPLETED, CrawlStatus.FAILED)


@dataclass
class TopicRecord:
    id: str
    name: str
    icon: str
    description: Optional[str] = None


@dataclass
class CrawlSourceRecord:
    id: str
    url: str
    topic_id: str
    user_id: str
    status: CrawlStatus = CrawlStatus.IDLE
    last_crawled_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class SourceLink:
    url: str
    title: str

    @classmethod
    def for_url(cls, url: str) -> "SourceLink":
        return cls(url=url, title=urlparse(url).hostname or url)


@dataclass
class InsightRecord:
    id: str
    topic_id: str
    title: str
    summary: str
    source_links: List[SourceLink] = field(default_factory=list)
    date: date = field(default_factory=lambda: utcnow().date())
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ParsedInsight:
    """A single insight candidate recovered from a model response."""

    title: str
    summary: str


@dataclass
class FetchResult:
    url: str
    status_code: int
    text: str


@dataclass
class CrawlOutcome:
    source_id: str
    status: CrawlStatus
    insights_created: int = 0
    insights_skipped: int = 0
    error_message: Optional[str] = None


def validate_source_url(url: str) -> str:
    """
    Return the URL stripped of surrounding whitespace, or raise ValueError
    when it is not an absolute http(s) URL.
    """
    candidate = (url or "").strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Not a valid absolute URL: {url!r}")
    return candidate
