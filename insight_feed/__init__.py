"""
Insight feed core package.

The ``crawling`` subsystem registers web pages under a topic and turns them
into short curated insights: it exposes the record dataclasses and status
lifecycle, a repository boundary with in-memory and SQLAlchemy backends, the
fetch/extract/curate/parse stages, and an orchestrator that drives each crawl
from ``crawling`` to ``completed`` or ``failed``.
"""
