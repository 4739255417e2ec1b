"""
Pytest configuration and shared fixtures for the SearchStream test suite.
"""

from __future__ import annotations

import os

# Settings must import without a docker-compose environment. These defaults
# are only applied when the variables are not already set by the caller/CI.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")

os.environ.setdefault("POSTGRES_USER", "test")
os.environ.setdefault("POSTGRES_PASSWORD", "test")
os.environ.setdefault("POSTGRES_DB", "test")

os.environ.setdefault("REDIS_PASSWORD", "test")
os.environ.setdefault("QUERY_BUS_BACKEND", "memory")

import asyncio  # noqa: E402
from typing import Dict, List, Optional, Sequence  # noqa: E402

import pytest  # noqa: E402
from searchstream.schemas.search import RankedHit  # noqa: E402
from searchstream.services.query_builder import SearchRequest  # noqa: E402
from searchstream.services.search_gateway import SearchGateway  # noqa: E402


def make_hit(id: int, score: float = 1.0, title: Optional[str] = None, description: str = "") -> RankedHit:
    return RankedHit(id=id, title=title or f"Product {id}", description=description, score=score)


class FakeGateway(SearchGateway):
    """In-memory gateway that records every request it receives.

    ``results`` maps a normalized term to the hits returned for it; ``delay``
    is awaited before answering so tests can race new input against a lookup.
    """

    def __init__(
        self,
        results: Optional[Dict[str, Sequence[RankedHit]]] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.results = results or {}
        self.delay = delay
        self.error = error
        self.requests: List[SearchRequest] = []
        self.completed: List[str] = []
        self.cancelled: List[str] = []

    async def execute(self, request: SearchRequest) -> List[RankedHit]:
        self.requests.append(request)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled.append(request.normalized_term)
            raise
        if self.error is not None:
            raise self.error
        self.completed.append(request.normalized_term)
        return list(self.results.get(request.normalized_term, []))[: request.limit]

    async def search_page(self, request: SearchRequest):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        hits = list(self.results.get(request.normalized_term, []))
        return hits[request.offset : request.offset + request.limit], len(hits)

    @property
    def terms(self) -> List[str]:
        return [request.normalized_term for request in self.requests]


@pytest.fixture
def fake_gateway():
    """Gateway with no configured results."""
    return FakeGateway()
