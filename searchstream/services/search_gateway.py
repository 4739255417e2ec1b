"""
Search Gateway

Runs a SearchRequest against the product catalog and returns ranked hits.

PostgresSearchGateway uses PostgreSQL full-text search through SQLAlchemy
async Core:

    WITH q AS (SELECT to_tsquery(:cfg, 'sam:* & ga:*') AS query)
    SELECT id, title, description, ts_rank(tsv, q.query) AS score
    FROM products, q
    WHERE tsv @@ q.query
    ORDER BY score DESC, id ASC
    LIMIT :limit OFFSET :offset

NATURAL_LANGUAGE requests use websearch_to_tsquery(:cfg, :term) instead.

Cancelling the awaiting task cancels the query and releases the pooled
connection. Database failures surface as TransientBackendError.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Sequence, Tuple

from sqlalchemy import cast, func, literal, select
from sqlalchemy.dialects.postgresql import REGCONFIG
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from searchstream.core.logging import get_logger
from searchstream.core.metrics import search_lookup_duration_seconds, search_results_per_lookup
from searchstream.core.search_errors import RowDecodeError, TransientBackendError
from searchstream.models.product import products_table
from searchstream.schemas.search import RankedHit, coerce_score, rank_hits
from searchstream.services.query_builder import QueryMode, SearchRequest

logger = get_logger(__name__)

REQUIRED_COLUMNS = ("id", "title", "description")


def decode_row(row: Mapping[str, Any]) -> RankedHit:
    """Map one backend row to a RankedHit.

    Raises:
        RowDecodeError: id, title or description is absent or NULL.
    """
    missing = [name for name in REQUIRED_COLUMNS if row.get(name) is None]
    if missing:
        raise RowDecodeError(f"row is missing required column(s): {', '.join(missing)}")
    try:
        return RankedHit(
            id=int(row["id"]),
            title=str(row["title"]),
            description=str(row["description"]),
            score=coerce_score(row.get("score")),
        )
    except (TypeError, ValueError) as e:
        raise RowDecodeError(f"row could not be decoded: {e}") from e


def decode_rows(rows: Sequence[Mapping[str, Any]]) -> List[RankedHit]:
    """Decode and re-rank rows so the ordering contract holds for any input."""
    return rank_hits(decode_row(row) for row in rows)


class SearchGateway(ABC):
    """Ranked full-text lookup consumed by the session pipeline."""

    @abstractmethod
    async def execute(self, request: SearchRequest) -> List[RankedHit]:
        """Return at most request.limit hits, score desc then id asc."""


class PostgresSearchGateway(SearchGateway):
    """PostgreSQL full-text search over the products table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fts_config: str = "english",
    ):
        self._session_factory = session_factory
        self.fts_config = fts_config

    # ------------------------------------------------------------------
    # Statement building
    # ------------------------------------------------------------------

    def _query_cte(self, request: SearchRequest):
        config = cast(literal(self.fts_config), REGCONFIG)
        if request.mode is QueryMode.PREFIX:
            tsquery = func.to_tsquery(config, request.ts_query)
        else:
            tsquery = func.websearch_to_tsquery(config, request.normalized_term)
        return select(tsquery.label("query")).cte("q")

    def search_statement(self, request: SearchRequest):
        products = products_table
        q = self._query_cte(request)
        score = func.ts_rank(products.c.tsv, q.c.query).label("score")
        return (
            select(products.c.id, products.c.title, products.c.description, score)
            .where(products.c.tsv.bool_op("@@")(q.c.query))
            .order_by(score.desc(), products.c.id.asc())
            .limit(request.limit)
            .offset(request.offset)
        )

    def count_statement(self, request: SearchRequest):
        products = products_table
        q = self._query_cte(request)
        return (
            select(func.count())
            .select_from(products)
            .where(products.c.tsv.bool_op("@@")(q.c.query))
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _fetch_rows(self, statement) -> Sequence[Mapping[str, Any]]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return result.mappings().all()
        except (SQLAlchemyError, OSError) as e:
            raise TransientBackendError(f"search backend unavailable: {e}") from e

    async def _fetch_scalar(self, statement) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return int(result.scalar_one())
        except (SQLAlchemyError, OSError) as e:
            raise TransientBackendError(f"search backend unavailable: {e}") from e

    async def execute(self, request: SearchRequest) -> List[RankedHit]:
        start = time.monotonic()
        try:
            rows = await self._fetch_rows(self.search_statement(request))
            hits = decode_rows(rows)
        except TransientBackendError as e:
            logger.warning(
                "search_lookup_failed",
                session_id=request.session_id,
                term=request.normalized_term,
                mode=request.mode.value,
                code=e.code,
                error=str(e),
            )
            raise
        finally:
            search_lookup_duration_seconds.labels(mode=request.mode.value).observe(time.monotonic() - start)

        search_results_per_lookup.observe(len(hits))
        logger.debug("search_lookup_completed", hits=len(hits), **request.to_dict())
        return hits[: request.limit]

    async def count(self, request: SearchRequest) -> int:
        """Number of products matching the request's tsquery."""
        return await self._fetch_scalar(self.count_statement(request))

    async def search_page(self, request: SearchRequest) -> Tuple[List[RankedHit], int]:
        """One page of hits plus the total match count."""
        hits = await self.execute(request)
        total = await self.count(request)
        return hits, total
