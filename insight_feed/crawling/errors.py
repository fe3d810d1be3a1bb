"""
Error taxonomy for the crawl pipeline.

Every pipeline stage raises a subclass of ``CrawlError``; the orchestrator
turns any of them into the ``failed`` status message of the crawl source.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class CrawlError(Exception):
    """Base class for all crawl pipeline errors."""


class FetchError(CrawlError):
    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class CurationErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    PAYMENT_REQUIRED = "payment_required"
    UPSTREAM_ERROR = "upstream_error"
    EMPTY_RESPONSE = "empty_response"


class CurationError(CrawlError):
    def __init__(self, kind: CurationErrorKind, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class ParseError(CrawlError):
    """Model output could not be turned into an insights payload."""


class StoreError(CrawlError):
    """The record store failed to read or write."""


class NotFound(CrawlError):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class DuplicateSourceError(CrawlError):
    def __init__(self, url: str, topic_id: str):
        super().__init__(f"This URL is already added for this topic: {url} ({topic_id})")
        self.url = url
        self.topic_id = topic_id


class SourceBusyError(CrawlError):
    def __init__(self, source_id: str):
        super().__init__(f"Crawl source is already crawling: {source_id}")
        self.source_id = source_id
