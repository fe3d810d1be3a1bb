from datetime import date, datetime

import pytest

from insight_feed.crawling import (
    DEFAULT_TOPICS,
    CrawlSourceRecord,
    CrawlStatus,
    DuplicateSourceError,
    InMemoryCrawlRepository,
    InsightRecord,
    SourceBusyError,
    SourceLink,
    SqlAlchemyCrawlRepository,
    validate_source_url,
)


@pytest.fixture(params=["memory", "sqlalchemy"])
def repo(request, tmp_path):
    if request.param == "memory":
        repository = InMemoryCrawlRepository()
    else:
        repository = SqlAlchemyCrawlRepository(f"sqlite+pysqlite:///{tmp_path / 'test.db'}")
    repository.seed_topics(DEFAULT_TOPICS)
    return repository


def make_source(source_id="src-1", url="https://example.com", topic_id="ai", user_id="user-1"):
    return CrawlSourceRecord(id=source_id, url=url, topic_id=topic_id, user_id=user_id)


def test_topics_are_seeded_once(repo):
    repo.seed_topics(DEFAULT_TOPICS)
    topics = repo.list_topics()
    assert len(topics) == len(DEFAULT_TOPICS)
    assert repo.get_topic("ai").name == "Artificial Intelligence"
    assert repo.get_topic("missing") is None


def test_add_and_get_source(repo):
    repo.add_source(make_source())
    fetched = repo.get_source("src-1")
    assert fetched and fetched.url == "https://example.com"
    assert fetched.status == CrawlStatus.IDLE
    assert fetched.last_crawled_at is None and fetched.error_message is None
    assert repo.get_source("nope") is None


def test_duplicate_registration_is_rejected_without_mutation(repo):
    repo.add_source(make_source())
    repo.fail_crawl("src-1", "boom")
    with pytest.raises(DuplicateSourceError):
        repo.add_source(make_source(source_id="src-2"))

    assert repo.get_source("src-2") is None
    existing = repo.get_source("src-1")
    assert existing.status == CrawlStatus.FAILED and existing.error_message == "boom"

    # Same URL under another topic or for another owner is a different source.
    repo.add_source(make_source(source_id="src-3", topic_id="tech"))
    repo.add_source(make_source(source_id="src-4", user_id="user-2"))
    assert len(repo.list_sources()) == 3
    assert [s.id for s in repo.list_sources(user_id="user-2")] == ["src-4"]


def test_begin_crawl_is_a_lease(repo):
    repo.add_source(make_source())
    started = repo.try_begin_crawl("src-1")
    assert started.status == CrawlStatus.CRAWLING
    with pytest.raises(SourceBusyError):
        repo.try_begin_crawl("src-1")
    assert repo.try_begin_crawl("unknown") is None


def test_terminal_transitions_and_recrawl(repo):
    repo.add_source(make_source())
    repo.try_begin_crawl("src-1")
    assert repo.fail_crawl("src-1", "Failed to fetch website: 404 Not Found")
    failed = repo.get_source("src-1")
    assert failed.status == CrawlStatus.FAILED
    assert failed.error_message == "Failed to fetch website: 404 Not Found"

    repo.try_begin_crawl("src-1")
    crawled_at = datetime(2026, 1, 2, 3, 4, 5)
    assert repo.complete_crawl("src-1", crawled_at)
    done = repo.get_source("src-1")
    assert done.status == CrawlStatus.COMPLETED
    assert done.error_message is None
    assert done.last_crawled_at.replace(tzinfo=None) == crawled_at


def test_delete_refused_while_crawling_and_update_never_recreates(repo):
    repo.add_source(make_source())
    repo.try_begin_crawl("src-1")
    with pytest.raises(SourceBusyError):
        repo.delete_source("src-1")

    repo.complete_crawl("src-1", datetime(2026, 1, 1))
    assert repo.delete_source("src-1") is True
    assert repo.delete_source("src-1") is False
    assert repo.fail_crawl("src-1", "late failure") is False
    assert repo.get_source("src-1") is None


def test_insert_and_list_insights(repo):
    insight = InsightRecord(
        id="ins-1",
        topic_id="ai",
        title="Title",
        summary="Summary",
        source_links=[SourceLink.for_url("https://news.example.com/post/1")],
        date=date(2026, 10, 19),
    )
    assert repo.insert_insight(insight) == "ins-1"
    listed = repo.list_insights(topic_id="ai")
    assert len(listed) == 1
    assert listed[0].source_links == [SourceLink(url="https://news.example.com/post/1", title="news.example.com")]
    assert listed[0].date == date(2026, 10, 19)
    assert repo.list_insights(topic_id="tech") == []


def test_change_notifications(repo):
    events = []
    unsubscribe = repo.subscribe(events.append)
    repo.add_source(make_source())
    repo.try_begin_crawl("src-1")
    repo.complete_crawl("src-1", datetime(2026, 1, 1))
    repo.delete_source("src-1")
    assert [e.kind for e in events] == ["insert", "update", "update", "delete"]
    assert {e.source_id for e in events} == {"src-1"}

    unsubscribe()
    repo.add_source(make_source(source_id="src-2", url="https://other.example.com"))
    assert len(events) == 4


@pytest.mark.parametrize("url", ["example.com", "ftp://example.com/file", "https://", "", "not a url"])
def test_invalid_urls_are_rejected(url):
    with pytest.raises(ValueError):
        validate_source_url(url)


def test_valid_url_is_trimmed():
    assert validate_source_url("  https://example.com/a?b=1 ") == "https://example.com/a?b=1"
