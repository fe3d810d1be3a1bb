from __future__ import annotations

import asyncio
import logging
from typing import Optional

from redis import Redis
from rq import Queue, Worker

from .config import CrawlerConfig
from .curator import InsightCurator
from .errors import SourceBusyError
from .fetcher import ContentFetcher
from .models import CrawlOutcome
from .notifications import ChangeNotifier, RedisChangeNotifier
from .orchestrator import CrawlOrchestrator
from .repository import CrawlRepository, SqlAlchemyCrawlRepository
from .retry import RetryPolicy
from .topics import DEFAULT_TOPICS

logger = logging.getLogger(__name__)


def build_change_notifier(config: CrawlerConfig) -> ChangeNotifier:
    """
    With RQ workers writing from other processes, changes go through Redis so
    every API process can stream them; otherwise they stay in-process.
    """
    if config.crawl_queue == "rq":
        return RedisChangeNotifier(Redis.from_url(config.redis_url))
    return ChangeNotifier()


def build_orchestrator(config: CrawlerConfig, repository: Optional[CrawlRepository] = None) -> CrawlOrchestrator:
    """
    Wire a CrawlOrchestrator from configuration. A repository can be passed
    in to share one store (and its change notifier) with the caller.
    """
    if repository is None:
        repository = SqlAlchemyCrawlRepository(config.database_url, notifier=build_change_notifier(config))
        repository.seed_topics(DEFAULT_TOPICS)
    return CrawlOrchestrator(
        repository=repository,
        fetcher=ContentFetcher(),
        curator=InsightCurator(
            api_key=config.ai_api_key,
            base_url=config.ai_gateway_url,
            model=config.ai_model,
            temperature=config.ai_temperature,
        ),
        fetch_retry=RetryPolicy(
            max_attempts=config.fetch_max_attempts,
            base_delay=config.retry_base_delay,
            max_backoff_seconds=config.retry_max_backoff,
        ),
        curation_retry=RetryPolicy(
            max_attempts=config.curation_max_attempts,
            base_delay=config.retry_base_delay,
            max_backoff_seconds=config.retry_max_backoff,
        ),
        max_content_chars=config.max_content_chars,
    )


def run_crawl_job(source_id: str, config: CrawlerConfig) -> CrawlOutcome:
    """
    RQ task entrypoint. Builds the pipeline and runs one crawl to completion
    on a fresh event loop. If the pipeline cannot even be built, the source is
    marked failed before the error propagates to RQ.
    """
    try:
        config.validate()
        orchestrator = build_orchestrator(config)
    except Exception as exc:
        logger.exception("Could not set up crawl job for source %s", source_id)
        _fail_unstarted_crawl(source_id, config, str(exc) or exc.__class__.__name__)
        raise
    outcome = asyncio.run(orchestrator.run(source_id))
    logger.info("Crawl job for %s finished with status %s", source_id, outcome.status.value)
    return outcome


def _fail_unstarted_crawl(source_id: str, config: CrawlerConfig, message: str) -> None:
    # Take the lease first so a crawl already running elsewhere is left alone.
    try:
        repository = SqlAlchemyCrawlRepository(config.database_url, notifier=build_change_notifier(config))
        if repository.try_begin_crawl(source_id) is not None:
            repository.fail_crawl(source_id, message)
    except SourceBusyError:
        logger.warning("Source %s is already crawling; leaving its status alone", source_id)
    except Exception:  # noqa: BLE001
        logger.exception("Error updating failed status for source %s", source_id)


class RQCrawlQueue:
    """
    Redis-backed crawl queue using RQ. Crawls are pushed to Redis and run by
    workers started with `work()` in a dedicated process.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", queue_name: str = "crawl-jobs"):
        self.redis = Redis.from_url(redis_url)
        self.queue = Queue(queue_name, connection=self.redis)

    def enqueue_crawl(self, source_id: str, config: CrawlerConfig):
        # No RQ-level retry: a failed crawl is re-triggered by a human.
        return self.queue.enqueue(run_crawl_job, source_id, config, retry=None)

    def work(self):
        worker = Worker([self.queue], connection=self.redis)
        worker.work(with_scheduler=True)
