"""
Crawling subsystem exports.
"""

from .config import CrawlerConfig
from .curator import InsightCurator
from .errors import (
    CrawlError,
    CurationError,
    CurationErrorKind,
    DuplicateSourceError,
    FetchError,
    NotFound,
    ParseError,
    SourceBusyError,
    StoreError,
)
from .extractor import extract_text
from .fetcher import ContentFetcher
from .job_queue import RQCrawlQueue, build_change_notifier, build_orchestrator, run_crawl_job
from .models import (
    CrawlOutcome,
    CrawlSourceRecord,
    CrawlStatus,
    FetchResult,
    InsightRecord,
    ParsedInsight,
    SourceLink,
    TopicRecord,
    validate_source_url,
)
from .notifications import ChangeNotifier, RedisChangeNotifier, SourceChange
from .orchestrator import CrawlOrchestrator
from .repository import CrawlRepository, InMemoryCrawlRepository, SqlAlchemyCrawlRepository
from .response_parser import extract_json_payload, parse_insights
from .retry import RetryPolicy
from .topics import DEFAULT_TOPICS

__all__ = [
    "ChangeNotifier",
    "ContentFetcher",
    "CrawlError",
    "CrawlOrchestrator",
    "CrawlOutcome",
    "CrawlRepository",
    "CrawlSourceRecord",
    "CrawlStatus",
    "CrawlerConfig",
    "CurationError",
    "CurationErrorKind",
    "DEFAULT_TOPICS",
    "DuplicateSourceError",
    "FetchError",
    "FetchResult",
    "InMemoryCrawlRepository",
    "InsightCurator",
    "InsightRecord",
    "NotFound",
    "ParseError",
    "ParsedInsight",
    "RQCrawlQueue",
    "RedisChangeNotifier",
    "RetryPolicy",
    "SourceBusyError",
    "SourceChange",
    "SourceLink",
    "SqlAlchemyCrawlRepository",
    "StoreError",
    "TopicRecord",
    "build_change_notifier",
    "build_orchestrator",
    "extract_json_payload",
    "extract_text",
    "parse_insights",
    "run_crawl_job",
    "validate_source_url",
]
