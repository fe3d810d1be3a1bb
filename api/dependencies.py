from __future__ import annotations

import uuid
from functools import lru_cache
from pathlib import Path

from sqlalchemy.engine import make_url

from insight_feed.crawling import (
    DEFAULT_TOPICS,
    CrawlerConfig,
    CrawlOrchestrator,
    CrawlRepository,
    RQCrawlQueue,
    RedisChangeNotifier,
    SqlAlchemyCrawlRepository,
    build_change_notifier,
    build_orchestrator,
)

DEFAULT_USER_ID = "local-user"


@lru_cache(maxsize=1)
def get_config() -> CrawlerConfig:
    return CrawlerConfig.from_env()


@lru_cache(maxsize=1)
def get_repo() -> CrawlRepository:
    db_url = get_config().database_url
    url = make_url(db_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    notifier = build_change_notifier(get_config())
    if isinstance(notifier, RedisChangeNotifier):
        notifier.start_relay()
    repo = SqlAlchemyCrawlRepository(db_url, notifier=notifier)
    repo.seed_topics(DEFAULT_TOPICS)
    return repo


@lru_cache(maxsize=1)
def get_orchestrator() -> CrawlOrchestrator:
    config = get_config()
    config.validate()
    return build_orchestrator(config, repository=get_repo())


@lru_cache(maxsize=1)
def get_crawl_queue() -> RQCrawlQueue:
    config = get_config()
    return RQCrawlQueue(redis_url=config.redis_url, queue_name=config.queue_name)


def build_source_id() -> str:
    return uuid.uuid4().hex
