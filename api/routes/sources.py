from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from insight_feed.crawling import (
    CrawlerConfig,
    CrawlOrchestrator,
    CrawlRepository,
    CrawlSourceRecord,
    CrawlStatus,
    DuplicateSourceError,
    NotFound,
    SourceBusyError,
    StoreError,
    validate_source_url,
)

from api.dependencies import (
    DEFAULT_USER_ID,
    build_source_id,
    get_config,
    get_crawl_queue,
    get_orchestrator,
    get_repo,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sources", tags=["sources"])

KEEPALIVE_SECONDS = 15.0


class CreateSourceRequest(BaseModel):
    url: str
    topic_id: str
    user_id: str = DEFAULT_USER_ID


def _serialize(source: CrawlSourceRecord) -> dict:
    return {
        "id": source.id,
        "url": source.url,
        "topic_id": source.topic_id,
        "user_id": source.user_id,
        "status": source.status,
        "last_crawled_at": source.last_crawled_at.isoformat() if source.last_crawled_at else None,
        "error_message": source.error_message,
        "created_at": source.created_at.isoformat() if source.created_at else None,
    }


@router.get("")
def list_sources(user_id: Optional[str] = None, repo: CrawlRepository = Depends(get_repo)):
    return [_serialize(s) for s in repo.list_sources(user_id=user_id)]


@router.post("", status_code=201)
def create_source(body: CreateSourceRequest, repo: CrawlRepository = Depends(get_repo)):
    try:
        url = validate_source_url(body.url)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if repo.get_topic(body.topic_id) is None:
        raise HTTPException(status_code=404, detail=f"Topic not found: {body.topic_id}")

    source = CrawlSourceRecord(id=build_source_id(), url=url, topic_id=body.topic_id, user_id=body.user_id)
    try:
        repo.add_source(source)
    except DuplicateSourceError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    logger.info("Registered crawl source %s for %s under %s", source.id, url, body.topic_id)
    return _serialize(source)


@router.get("/changes")
async def stream_changes(request: Request, repo: CrawlRepository = Depends(get_repo)):
    """Server-sent events; each event only says a source changed, clients re-read."""
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = repo.subscribe(lambda change: loop.call_soon_threadsafe(queue.put_nowait, change))

    async def events():
        try:
            while not await request.is_disconnected():
                try:
                    change = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield f"data: {json.dumps({'source_id': change.source_id, 'kind': change.kind})}\n\n"
        finally:
            unsubscribe()

    return StreamingResponse(events(), media_type="text/event-stream")


@router.get("/{source_id}")
def get_source(source_id: str, repo: CrawlRepository = Depends(get_repo)):
    source = repo.get_source(source_id)
    if not source:
        raise HTTPException(status_code=404, detail=f"Crawl source not found: {source_id}")
    return _serialize(source)


@router.delete("/{source_id}")
def delete_source(source_id: str, repo: CrawlRepository = Depends(get_repo)):
    try:
        deleted = repo.delete_source(source_id)
    except SourceBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Crawl source not found: {source_id}")
    return {"status": "deleted", "source_id": source_id}


@router.post("/{source_id}/crawl", status_code=202)
async def trigger_crawl(
    source_id: str,
    background_tasks: BackgroundTasks,
    repo: CrawlRepository = Depends(get_repo),
    orchestrator: CrawlOrchestrator = Depends(get_orchestrator),
    config: CrawlerConfig = Depends(get_config),
):
    if config.crawl_queue == "rq":
        source = await asyncio.to_thread(repo.get_source, source_id)
        if not source:
            raise HTTPException(status_code=404, detail=f"Crawl source not found: {source_id}")
        if source.status == CrawlStatus.CRAWLING:
            raise HTTPException(status_code=409, detail=f"Crawl source is already crawling: {source_id}")
        job = get_crawl_queue().enqueue_crawl(source_id, config)
        return {"source_id": source_id, "status": "queued", "job_id": job.id}

    try:
        source = await orchestrator.trigger_crawl(source_id, schedule=background_tasks.add_task)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except SourceBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))

    return {"source_id": source_id, "status": source.status}
