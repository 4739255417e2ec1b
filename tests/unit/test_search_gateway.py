"""
Unit Tests for the PostgreSQL Search Gateway

The database is replaced by an AsyncMock session factory; SQL is checked by
compiling statements with the PostgreSQL dialect.
"""

import asyncio
import math
from unittest.mock import AsyncMock, MagicMock

import pytest
from searchstream.core.search_errors import RowDecodeError, TransientBackendError
from searchstream.services.query_builder import QueryBuilder
from searchstream.services.search_gateway import PostgresSearchGateway, decode_row, decode_rows
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError


def compile_sql(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


def compile_params(statement) -> dict:
    return statement.compile(dialect=postgresql.dialect()).params


def make_session_factory(rows=None, scalar=None, error=None):
    """Build an async_sessionmaker stand-in returning the given rows."""
    result = MagicMock()
    result.mappings.return_value.all.return_value = rows or []
    result.scalar_one.return_value = scalar

    session = MagicMock()
    session.execute = AsyncMock(side_effect=error, return_value=result)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=session)
    context.__aexit__ = AsyncMock(return_value=False)

    factory = MagicMock(return_value=context)
    factory.session = session
    return factory


@pytest.fixture
def builder():
    return QueryBuilder(default_limit=20)


class TestDecodeRow:
    """Schema-checked row decoding."""

    def test_decodes_complete_row(self):
        hit = decode_row({"id": 7, "title": " Galaxy ", "description": "phone", "score": 0.42})

        assert hit.id == 7
        assert hit.title == "Galaxy"
        assert hit.score == pytest.approx(0.42)

    @pytest.mark.parametrize("column", ["id", "title", "description"])
    def test_missing_required_column_raises(self, column):
        row = {"id": 1, "title": "a", "description": "b", "score": 1.0}
        del row[column]

        with pytest.raises(RowDecodeError) as exc_info:
            decode_row(row)
        assert column in str(exc_info.value)

    def test_null_required_column_raises(self):
        with pytest.raises(RowDecodeError):
            decode_row({"id": 1, "title": None, "description": "b"})

    def test_non_integer_id_raises(self):
        with pytest.raises(RowDecodeError):
            decode_row({"id": "abc", "title": "a", "description": "b"})

    @pytest.mark.parametrize("score", [None, math.nan, "oops"])
    def test_bad_score_becomes_zero(self, score):
        assert decode_row({"id": 1, "title": "a", "description": "b", "score": score}).score == 0.0

    def test_missing_score_becomes_zero(self):
        assert decode_row({"id": 1, "title": "a", "description": "b"}).score == 0.0

    def test_decode_rows_reranks(self):
        """Rows out of order (e.g. a NaN rank sorted first) are re-ranked."""
        rows = [
            {"id": 5, "title": "e", "description": "", "score": math.nan},
            {"id": 2, "title": "b", "description": "", "score": 0.5},
            {"id": 1, "title": "a", "description": "", "score": 0.5},
        ]

        assert [hit.id for hit in decode_rows(rows)] == [1, 2, 5]


class TestStatements:
    """Generated SQL."""

    def test_prefix_statement(self, builder):
        gateway = PostgresSearchGateway(make_session_factory(), fts_config="english")
        statement = gateway.search_statement(builder.build("sam ga", 20))

        sql = compile_sql(statement)
        params = compile_params(statement)

        assert "WITH q AS" in sql
        assert "to_tsquery(CAST(" in sql
        assert "websearch_to_tsquery" not in sql
        assert "ts_rank(products.tsv, q.query)" in sql
        assert "products.tsv @@ q.query" in sql
        assert "ORDER BY score DESC, products.id ASC" in sql
        assert "sam:* & ga:*" in params.values()
        assert "english" in params.values()

    def test_natural_language_statement(self, builder):
        gateway = PostgresSearchGateway(make_session_factory())
        statement = gateway.search_statement(builder.build("?!", 20))

        assert "websearch_to_tsquery" in compile_sql(statement)
        assert "?!" in compile_params(statement).values()

    def test_limit_and_offset(self, builder):
        gateway = PostgresSearchGateway(make_session_factory())
        statement = gateway.search_statement(builder.build("tv", 5, offset=10))

        sql = compile_sql(statement)
        params = compile_params(statement)

        assert "LIMIT" in sql and "OFFSET" in sql
        assert 5 in params.values()
        assert 10 in params.values()

    def test_custom_fts_config(self, builder):
        gateway = PostgresSearchGateway(make_session_factory(), fts_config="simple")
        statement = gateway.search_statement(builder.build("tv"))
        assert "simple" in compile_params(statement).values()

    def test_count_statement(self, builder):
        gateway = PostgresSearchGateway(make_session_factory())
        sql = compile_sql(gateway.count_statement(builder.build("tv")))

        assert "count(*)" in sql
        assert "products.tsv @@ q.query" in sql
        assert "ORDER BY" not in sql


class TestExecute:
    """Execution against a mocked session."""

    @pytest.mark.asyncio
    async def test_returns_ranked_hits(self, builder):
        rows = [
            {"id": 3, "title": "Galaxy Tab", "description": "", "score": 0.2},
            {"id": 1, "title": "Galaxy S24", "description": "", "score": 0.9},
        ]
        gateway = PostgresSearchGateway(make_session_factory(rows=rows))

        hits = await gateway.execute(builder.build("galaxy"))

        assert [hit.id for hit in hits] == [1, 3]

    @pytest.mark.asyncio
    async def test_truncates_to_limit(self, builder):
        rows = [{"id": i, "title": f"t{i}", "description": "", "score": 1.0} for i in range(1, 6)]
        gateway = PostgresSearchGateway(make_session_factory(rows=rows))

        hits = await gateway.execute(builder.build("t", 3))

        assert len(hits) == 3

    @pytest.mark.asyncio
    async def test_database_error_is_transient(self, builder):
        error = OperationalError("SELECT", {}, Exception("connection refused"))
        gateway = PostgresSearchGateway(make_session_factory(error=error))

        with pytest.raises(TransientBackendError):
            await gateway.execute(builder.build("tv"))

    @pytest.mark.asyncio
    async def test_os_error_is_transient(self, builder):
        gateway = PostgresSearchGateway(make_session_factory(error=ConnectionRefusedError()))

        with pytest.raises(TransientBackendError):
            await gateway.execute(builder.build("tv"))

    @pytest.mark.asyncio
    async def test_malformed_row_raises_row_decode_error(self, builder):
        gateway = PostgresSearchGateway(make_session_factory(rows=[{"id": 1, "title": "a"}]))

        with pytest.raises(RowDecodeError):
            await gateway.execute(builder.build("tv"))

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, builder):
        gateway = PostgresSearchGateway(make_session_factory(error=asyncio.CancelledError()))

        with pytest.raises(asyncio.CancelledError):
            await gateway.execute(builder.build("tv"))

    @pytest.mark.asyncio
    async def test_count(self, builder):
        gateway = PostgresSearchGateway(make_session_factory(scalar=42))

        assert await gateway.count(builder.build("tv")) == 42

    @pytest.mark.asyncio
    async def test_search_page(self, builder):
        rows = [{"id": 1, "title": "tv", "description": "", "score": 0.5}]
        gateway = PostgresSearchGateway(make_session_factory(rows=rows, scalar=11))

        hits, total = await gateway.search_page(builder.build("tv", 1, offset=3))

        assert [hit.id for hit in hits] == [1]
        assert total == 11
