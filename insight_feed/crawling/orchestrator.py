from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, List, Optional, Set

from .curator import InsightCurator
from .errors import CrawlError, NotFound, SourceBusyError, StoreError
from .extractor import DEFAULT_MAX_CHARS, extract_text
from .fetcher import ContentFetcher
from .models import (
    SUMMARY_MAX_CHARS,
    TITLE_MAX_CHARS,
    CrawlOutcome,
    CrawlSourceRecord,
    CrawlStatus,
    InsightRecord,
    ParsedInsight,
    SourceLink,
    utcnow,
)
from .repository import CrawlRepository
from .response_parser import parse_insights
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class CrawlOrchestrator:
    """
    Drives one crawl source through fetch -> extract -> curate -> parse ->
    persist and owns its status transitions (idle|completed|failed ->
    crawling -> completed|failed).

    The orchestrator keeps no per-crawl state on the instance; each crawl is
    an independent coroutine and the repository is the only shared state.
    Repository calls are synchronous and run on a worker thread.
    """

    def __init__(
        self,
        repository: CrawlRepository,
        fetcher: ContentFetcher,
        curator: InsightCurator,
        fetch_retry: Optional[RetryPolicy] = None,
        curation_retry: Optional[RetryPolicy] = None,
        max_content_chars: int = DEFAULT_MAX_CHARS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repository
        self.fetcher = fetcher
        self.curator = curator
        self.fetch_retry = fetch_retry or RetryPolicy()
        self.curation_retry = curation_retry or RetryPolicy()
        self.max_content_chars = max_content_chars
        self.clock = clock
        self._inflight: Set[asyncio.Task] = set()

    async def _store(self, fn, *args):
        return await asyncio.to_thread(fn, *args)

    async def trigger_crawl(self, source_id: str, schedule: Optional[Callable[..., Any]] = None) -> CrawlSourceRecord:
        """
        Acknowledge a crawl request and run it in the background. Raises
        NotFound or SourceBusyError when the crawl cannot start; otherwise the
        returned record is already ``crawling``.

        ``schedule`` hands ``execute`` to an external runner (for example
        FastAPI's ``BackgroundTasks.add_task``). Without one the crawl becomes
        an asyncio task that ``wait_idle`` can await.
        """
        source = await self.begin(source_id)
        if schedule is not None:
            schedule(self.execute, source)
            return source
        task = asyncio.create_task(self.execute(source), name=f"crawl-{source_id}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return source

    async def wait_idle(self) -> List[CrawlOutcome]:
        if not self._inflight:
            return []
        return list(await asyncio.gather(*self._inflight))

    async def run(self, source_id: str) -> CrawlOutcome:
        source = await self.begin(source_id)
        return await self.execute(source)

    async def begin(self, source_id: str) -> CrawlSourceRecord:
        # Nothing is marked failed here: until try_begin_crawl commits, the
        # status may belong to another crawl.
        try:
            source = await self._store(self.repo.get_source, source_id)
            if source is None:
                raise NotFound("Crawl source", source_id)
            started = await self._store(self.repo.try_begin_crawl, source_id)
            if started is None:
                raise NotFound("Crawl source", source_id)
        except (NotFound, SourceBusyError, StoreError):
            raise
        except Exception as exc:
            logger.exception("Could not start crawl for source %s", source_id)
            raise StoreError(f"Could not start crawl: {exc}") from exc

        logger.info("Starting crawl for %s (source %s)", started.url, source_id)
        return started

    async def execute(self, source: CrawlSourceRecord) -> CrawlOutcome:
        """
        Run the pipeline for a source that is already ``crawling``. Never
        raises: every failure ends in the ``failed`` status.
        """
        source_id = source.id
        try:
            insights = await self._curate_source(source)
            created, skipped = await self._persist_insights(source, insights)
            updated = await self._store(self.repo.complete_crawl, source_id, self.clock())
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            if isinstance(exc, CrawlError):
                logger.warning("Crawl failed for source %s: %s", source_id, message)
            else:
                logger.exception("Unexpected error while crawling source %s", source_id)
            await self._mark_failed(source_id, message)
            return CrawlOutcome(source_id=source_id, status=CrawlStatus.FAILED, error_message=message)

        if not updated:
            logger.warning("Crawl source %s disappeared during crawl; status not recorded", source_id)
        logger.info("Crawl completed for source %s: %d insights created, %d skipped", source_id, created, skipped)
        return CrawlOutcome(
            source_id=source_id,
            status=CrawlStatus.COMPLETED,
            insights_created=created,
            insights_skipped=skipped,
        )

    async def _curate_source(self, source: CrawlSourceRecord) -> List[ParsedInsight]:
        fetched = await self.fetch_retry.run(lambda: self.fetcher.fetch(source.url), description=f"fetch {source.url}")
        text = extract_text(fetched.text, self.max_content_chars)
        logger.info("Website content extracted for %s, length: %d", source.url, len(text))

        topic = await self._store(self.repo.get_topic, source.topic_id)
        topic_name = topic.name if topic else source.topic_id
        topic_description = topic.description if topic else None

        content = await self.curation_retry.run(
            lambda: self.curator.curate(text, topic_name, source.url, topic_description),
            description=f"curate {source.url}",
        )
        return parse_insights(content)

    async def _persist_insights(self, source: CrawlSourceRecord, insights: List[ParsedInsight]):
        created = 0
        skipped = 0
        today = self.clock().date()
        for parsed in insights:
            record = InsightRecord(
                id=uuid.uuid4().hex,
                topic_id=source.topic_id,
                title=parsed.title.strip()[:TITLE_MAX_CHARS],
                summary=parsed.summary.strip()[:SUMMARY_MAX_CHARS],
                source_links=[SourceLink.for_url(source.url)],
                date=today,
                created_at=self.clock(),
            )
            try:
                await self._store(self.repo.insert_insight, record)
                created += 1
            except Exception as exc:  # noqa: BLE001
                skipped += 1
                logger.warning("Error inserting insight %r for source %s: %s", record.title, source.id, exc)
        return created, skipped

    async def _mark_failed(self, source_id: str, message: str) -> None:
        try:
            await self._store(self.repo.fail_crawl, source_id, message)
        except Exception:  # noqa: BLE001
            logger.exception("Error updating failed status for source %s", source_id)
