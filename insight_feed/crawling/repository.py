from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from copy import deepcopy
from datetime import datetime
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .errors import DuplicateSourceError, SourceBusyError, StoreError
from .models import CrawlSourceRecord, CrawlStatus, InsightRecord, SourceLink, TopicRecord
from .notifications import ChangeNotifier, Listener, SourceChange

logger = logging.getLogger(__name__)

Base = declarative_base()


class TopicModel(Base):
    __tablename__ = "topics"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    icon = Column(String)
    description = Column(Text)


class CrawlSourceModel(Base):
    __tablename__ = "crawl_sources"
    __table_args__ = (UniqueConstraint("user_id", "url", "topic_id", name="uq_crawl_source_owner_url_topic"),)
    id = Column(String, primary_key=True)
    url = Column(String, nullable=False)
    topic_id = Column(String, index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    status = Column(Enum(CrawlStatus), nullable=False)
    last_crawled_at = Column(DateTime(timezone=True))
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True))


class InsightModel(Base):
    __tablename__ = "insights"
    id = Column(String, primary_key=True)
    topic_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    summary = Column(Text, nullable=False)
    source_links_json = Column(Text)
    date = Column(Date)
    created_at = Column(DateTime(timezone=True))


class CrawlRepository:
    """
    Persistence boundary for crawl sources, topics and insights. All methods
    are synchronous; async callers push them onto a worker thread.

    Status writes go through the three transition methods so that the
    ``crawling`` lease stays a single compare-and-swap in every backend.
    """

    def __init__(self, notifier: Optional[ChangeNotifier] = None):
        self.notifier = notifier or ChangeNotifier()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.notifier.subscribe(listener)

    def _notify(self, source_id: str, kind: str) -> None:
        self.notifier.publish(SourceChange(source_id=source_id, kind=kind))

    # Topics
    def get_topic(self, topic_id: str) -> Optional[TopicRecord]:
        raise NotImplementedError

    def list_topics(self) -> List[TopicRecord]:
        raise NotImplementedError

    def save_topic(self, topic: TopicRecord) -> None:
        raise NotImplementedError

    def seed_topics(self, topics: Iterable[TopicRecord]) -> None:
        for topic in topics:
            if self.get_topic(topic.id) is None:
                self.save_topic(topic)

    # Crawl sources
    def get_source(self, source_id: str) -> Optional[CrawlSourceRecord]:
        raise NotImplementedError

    def list_sources(self, user_id: Optional[str] = None) -> List[CrawlSourceRecord]:
        raise NotImplementedError

    def add_source(self, source: CrawlSourceRecord) -> None:
        raise NotImplementedError

    def delete_source(self, source_id: str) -> bool:
        raise NotImplementedError

    def try_begin_crawl(self, source_id: str) -> Optional[CrawlSourceRecord]:
        """
        Atomically move a source from any non-crawling status to ``crawling``.
        Returns the updated record, None if the source does not exist, and
        raises SourceBusyError if it is already crawling.
        """
        raise NotImplementedError

    def complete_crawl(self, source_id: str, crawled_at: datetime) -> bool:
        raise NotImplementedError

    def fail_crawl(self, source_id: str, error_message: str) -> bool:
        raise NotImplementedError

    # Insights
    def insert_insight(self, insight: InsightRecord) -> str:
        raise NotImplementedError

    def list_insights(self, topic_id: Optional[str] = None, limit: int = 50) -> List[InsightRecord]:
        raise NotImplementedError


class InMemoryCrawlRepository(CrawlRepository):
    """
    In-memory store for local runs and tests. Keeps copies of the dataclasses
    to avoid cross-mutation, and a lock so the status lease is atomic across
    worker threads.
    """

    def __init__(self, notifier: Optional[ChangeNotifier] = None):
        super().__init__(notifier)
        self.topics: Dict[str, TopicRecord] = {}
        self.sources: Dict[str, CrawlSourceRecord] = {}
        self.insights: Dict[str, InsightRecord] = {}
        self._lock = threading.RLock()

    def _clone(self, obj):
        return deepcopy(obj)

    def get_topic(self, topic_id: str) -> Optional[TopicRecord]:
        topic = self.topics.get(topic_id)
        return self._clone(topic) if topic else None

    def list_topics(self) -> List[TopicRecord]:
        return [self._clone(t) for t in sorted(self.topics.values(), key=lambda t: t.name)]

    def save_topic(self, topic: TopicRecord) -> None:
        self.topics[topic.id] = self._clone(topic)

    def get_source(self, source_id: str) -> Optional[CrawlSourceRecord]:
        source = self.sources.get(source_id)
        return self._clone(source) if source else None

    def list_sources(self, user_id: Optional[str] = None) -> List[CrawlSourceRecord]:
        sources = [s for s in self.sources.values() if user_id is None or s.user_id == user_id]
        sources.sort(key=lambda s: s.created_at, reverse=True)
        return [self._clone(s) for s in sources]

    def add_source(self, source: CrawlSourceRecord) -> None:
        with self._lock:
            for existing in self.sources.values():
                if (existing.user_id, existing.url, existing.topic_id) == (source.user_id, source.url, source.topic_id):
                    raise DuplicateSourceError(source.url, source.topic_id)
            self.sources[source.id] = self._clone(source)
        self._notify(source.id, "insert")

    def delete_source(self, source_id: str) -> bool:
        with self._lock:
            source = self.sources.get(source_id)
            if not source:
                return False
            if source.status == CrawlStatus.CRAWLING:
                raise SourceBusyError(source_id)
            del self.sources[source_id]
        self._notify(source_id, "delete")
        return True

    def try_begin_crawl(self, source_id: str) -> Optional[CrawlSourceRecord]:
        with self._lock:
            source = self.sources.get(source_id)
            if not source:
                return None
            if source.status == CrawlStatus.CRAWLING:
                raise SourceBusyError(source_id)
            source.status = CrawlStatus.CRAWLING
            snapshot = self._clone(source)
        self._notify(source_id, "update")
        return snapshot

    def complete_crawl(self, source_id: str, crawled_at: datetime) -> bool:
        with self._lock:
            source = self.sources.get(source_id)
            if not source:
                return False
            source.status = CrawlStatus.COMPLETED
            source.last_crawled_at = crawled_at
            source.error_message = None
        self._notify(source_id, "update")
        return True

    def fail_crawl(self, source_id: str, error_message: str) -> bool:
        with self._lock:
            source = self.sources.get(source_id)
            if not source:
                return False
            source.status = CrawlStatus.FAILED
            source.error_message = error_message
        self._notify(source_id, "update")
        return True

    def insert_insight(self, insight: InsightRecord) -> str:
        self.insights[insight.id] = self._clone(insight)
        return insight.id

    def list_insights(self, topic_id: Optional[str] = None, limit: int = 50) -> List[InsightRecord]:
        insights = [i for i in self.insights.values() if topic_id is None or i.topic_id == topic_id]
        insights.sort(key=lambda i: i.created_at, reverse=True)
        return [self._clone(i) for i in insights[:limit]]


class SqlAlchemyCrawlRepository(CrawlRepository):
    """
    SQL-backed repository using SQLAlchemy. Works with SQLite/Postgres URLs.
    """

    def __init__(self, database_url: str, notifier: Optional[ChangeNotifier] = None):
        super().__init__(notifier)
        self.engine = create_engine(database_url, future=True)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.SessionLocal()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(f"Database error: {exc.__class__.__name__}: {exc}") from exc
        finally:
            session.close()

    # region Topics
    def get_topic(self, topic_id: str) -> Optional[TopicRecord]:
        with self._session() as session:
            model = session.get(TopicModel, topic_id)
            return self._to_topic(model) if model else None

    def list_topics(self) -> List[TopicRecord]:
        with self._session() as session:
            models = session.execute(select(TopicModel).order_by(TopicModel.name)).scalars().all()
            return [self._to_topic(m) for m in models]

    def save_topic(self, topic: TopicRecord) -> None:
        with self._session() as session:
            session.merge(
                TopicModel(id=topic.id, name=topic.name, icon=topic.icon, description=topic.description)
            )
            session.commit()

    # endregion

    # region Crawl sources
    def get_source(self, source_id: str) -> Optional[CrawlSourceRecord]:
        with self._session() as session:
            model = session.get(CrawlSourceModel, source_id)
            return self._to_source(model) if model else None

    def list_sources(self, user_id: Optional[str] = None) -> List[CrawlSourceRecord]:
        with self._session() as session:
            stmt = select(CrawlSourceModel).order_by(CrawlSourceModel.created_at.desc())
            if user_id is not None:
                stmt = stmt.where(CrawlSourceModel.user_id == user_id)
            return [self._to_source(m) for m in session.execute(stmt).scalars().all()]

    def add_source(self, source: CrawlSourceRecord) -> None:
        session = self.SessionLocal()
        try:
            session.add(
                CrawlSourceModel(
                    id=source.id,
                    url=source.url,
                    topic_id=source.topic_id,
                    user_id=source.user_id,
                    status=source.status,
                    last_crawled_at=source.last_crawled_at,
                    error_message=source.error_message,
                    created_at=source.created_at,
                )
            )
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise DuplicateSourceError(source.url, source.topic_id) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(f"Database error: {exc.__class__.__name__}: {exc}") from exc
        finally:
            session.close()
        self._notify(source.id, "insert")

    def delete_source(self, source_id: str) -> bool:
        with self._session() as session:
            result = session.execute(
                delete(CrawlSourceModel).where(
                    CrawlSourceModel.id == source_id,
                    CrawlSourceModel.status != CrawlStatus.CRAWLING,
                )
            )
            session.commit()
            if result.rowcount == 0:
                if session.get(CrawlSourceModel, source_id) is not None:
                    raise SourceBusyError(source_id)
                return False
        self._notify(source_id, "delete")
        return True

    def try_begin_crawl(self, source_id: str) -> Optional[CrawlSourceRecord]:
        with self._session() as session:
            result = session.execute(
                update(CrawlSourceModel)
                .where(
                    CrawlSourceModel.id == source_id,
                    CrawlSourceModel.status != CrawlStatus.CRAWLING,
                )
                .values(status=CrawlStatus.CRAWLING)
            )
            model = session.get(CrawlSourceModel, source_id)
            if model is None:
                return None
            if result.rowcount == 0:
                raise SourceBusyError(source_id)
            record = self._to_source(model)
            # Commit last: any earlier failure rolls back and leaves no lease.
            session.commit()
        self._notify(source_id, "update")
        return record

    def complete_crawl(self, source_id: str, crawled_at: datetime) -> bool:
        return self._update_source(
            source_id,
            status=CrawlStatus.COMPLETED,
            last_crawled_at=crawled_at,
            error_message=None,
        )

    def fail_crawl(self, source_id: str, error_message: str) -> bool:
        return self._update_source(source_id, status=CrawlStatus.FAILED, error_message=error_message)

    def _update_source(self, source_id: str, **values) -> bool:
        # A plain UPDATE: a source deleted mid-crawl is never re-created.
        with self._session() as session:
            result = session.execute(
                update(CrawlSourceModel).where(CrawlSourceModel.id == source_id).values(**values)
            )
            session.commit()
            updated = result.rowcount > 0
        if updated:
            self._notify(source_id, "update")
        return updated

    # endregion

    # region Insights
    def insert_insight(self, insight: InsightRecord) -> str:
        with self._session() as session:
            session.add(
                InsightModel(
                    id=insight.id,
                    topic_id=insight.topic_id,
                    title=insight.title,
                    summary=insight.summary,
                    source_links_json=json.dumps(
                        [{"url": link.url, "title": link.title} for link in insight.source_links]
                    ),
                    date=insight.date,
                    created_at=insight.created_at,
                )
            )
            session.commit()
        return insight.id

    def list_insights(self, topic_id: Optional[str] = None, limit: int = 50) -> List[InsightRecord]:
        with self._session() as session:
            stmt = select(InsightModel).order_by(InsightModel.created_at.desc()).limit(limit)
            if topic_id is not None:
                stmt = stmt.where(InsightModel.topic_id == topic_id)
            models = session.execute(stmt).scalars().all()
            return [
                InsightRecord(
                    id=m.id,
                    topic_id=m.topic_id,
                    title=m.title,
                    summary=m.summary,
                    source_links=[SourceLink(**link) for link in json.loads(m.source_links_json or "[]")],
                    date=m.date,
                    created_at=m.created_at,
                )
                for m in models
            ]

    # endregion

    @staticmethod
    def _to_topic(model: TopicModel) -> TopicRecord:
        return TopicRecord(id=model.id, name=model.name, icon=model.icon, description=model.description)

    @staticmethod
    def _to_source(model: CrawlSourceModel) -> CrawlSourceRecord:
        return CrawlSourceRecord(
            id=model.id,
            url=model.url,
            topic_id=model.topic_id,
            user_id=model.user_id,
            status=model.status,
            last_crawled_at=model.last_crawled_at,
            error_message=model.error_message,
            created_at=model.created_at,
        )
