from __future__ import annotations

import os
from dataclasses import dataclass

from .curator import DEFAULT_GATEWAY_URL, DEFAULT_MODEL
from .extractor import DEFAULT_MAX_CHARS


@dataclass
class CrawlerConfig:
    database_url: str = "sqlite+pysqlite:///./data/insight_feed.db"
    ai_gateway_url: str = DEFAULT_GATEWAY_URL
    ai_api_key: str = ""
    ai_model: str = DEFAULT_MODEL
    ai_temperature: float = 0.7
    max_content_chars: int = DEFAULT_MAX_CHARS
    fetch_max_attempts: int = 1
    curation_max_attempts: int = 1
    retry_base_delay: float = 1.0
    retry_max_backoff: float = 30.0
    crawl_queue: str = "background"
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = "crawl-jobs"

    @classmethod
    def from_env(cls) -> "CrawlerConfig":
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            ai_gateway_url=os.getenv("AI_GATEWAY_URL", defaults.ai_gateway_url),
            ai_api_key=os.getenv("AI_API_KEY", defaults.ai_api_key),
            ai_model=os.getenv("AI_MODEL", defaults.ai_model),
            ai_temperature=float(os.getenv("AI_TEMPERATURE", str(defaults.ai_temperature))),
            max_content_chars=int(os.getenv("MAX_CONTENT_CHARS", str(defaults.max_content_chars))),
            fetch_max_attempts=int(os.getenv("FETCH_MAX_ATTEMPTS", str(defaults.fetch_max_attempts))),
            curation_max_attempts=int(os.getenv("CURATION_MAX_ATTEMPTS", str(defaults.curation_max_attempts))),
            retry_base_delay=float(os.getenv("RETRY_BASE_DELAY", str(defaults.retry_base_delay))),
            retry_max_backoff=float(os.getenv("RETRY_MAX_BACKOFF", str(defaults.retry_max_backoff))),
            crawl_queue=os.getenv("CRAWL_QUEUE", defaults.crawl_queue),
            redis_url=os.getenv("REDIS_URL", defaults.redis_url),
            queue_name=os.getenv("CRAWL_QUEUE_NAME", defaults.queue_name),
        )

    def validate(self) -> None:
        if not self.ai_api_key:
            raise ValueError("AI_API_KEY environment variable is not set")
        if self.crawl_queue not in ("background", "rq"):
            raise ValueError(f"CRAWL_QUEUE must be 'background' or 'rq', got {self.crawl_queue!r}")
