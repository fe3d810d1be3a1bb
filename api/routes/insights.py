from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from insight_feed.crawling import CrawlRepository

from api.dependencies import get_repo

router = APIRouter(tags=["insights"])


@router.get("/topics")
def list_topics(repo: CrawlRepository = Depends(get_repo)):
    return [
        {"id": t.id, "name": t.name, "icon": t.icon, "description": t.description}
        for t in repo.list_topics()
    ]


@router.get("/insights")
def list_insights(
    topic_id: Optional[str] = None,
    limit: int = 50,
    repo: CrawlRepository = Depends(get_repo),
):
    if limit < 1 or limit > 500:
        raise HTTPException(status_code=400, detail="limit must be between 1 and 500")
    if topic_id is not None and repo.get_topic(topic_id) is None:
        raise HTTPException(status_code=404, detail=f"Topic not found: {topic_id}")
    return [
        {
            "id": i.id,
            "topic_id": i.topic_id,
            "title": i.title,
            "summary": i.summary,
            "source_links": [{"url": link.url, "title": link.title} for link in i.source_links],
            "date": i.date.isoformat() if i.date else None,
        }
        for i in repo.list_insights(topic_id=topic_id, limit=limit)
    ]
