"""Unit tests for RankedHit and the ranking contract."""

import math

import pytest
from searchstream.schemas.search import RankedHit, coerce_score, rank_hits


class TestRankedHit:
    """Tests for RankedHit validation."""

    def test_title_is_trimmed(self):
        hit = RankedHit(id=1, title="  Samsung Galaxy  ", description="phone", score=0.5)
        assert hit.title == "Samsung Galaxy"

    def test_nan_score_becomes_zero(self):
        assert RankedHit(id=1, title="a", description="", score=math.nan).score == 0.0

    def test_missing_score_defaults_to_zero(self):
        assert RankedHit(id=1, title="a", description="").score == 0.0

    def test_none_score_becomes_zero(self):
        assert RankedHit(id=1, title="a", description="", score=None).score == 0.0

    def test_hit_is_frozen(self):
        hit = RankedHit(id=1, title="a", description="")
        with pytest.raises(Exception):
            hit.score = 2.0


class TestCoerceScore:
    @pytest.mark.parametrize(
        "value,expected",
        [(None, 0.0), ("abc", 0.0), (math.nan, 0.0), (-math.inf, 0.0), ("0.25", 0.25), (1, 1.0)],
    )
    def test_coerce(self, value, expected):
        assert coerce_score(value) == expected


class TestRanking:
    """Score descending, ties broken by ascending id."""

    def test_rank_hits_orders_by_score_then_id(self):
        hits = [
            RankedHit(id=3, title="c", description="", score=0.5),
            RankedHit(id=1, title="a", description="", score=0.5),
            RankedHit(id=2, title="b", description="", score=0.9),
            RankedHit(id=4, title="d", description="", score=0.1),
        ]

        ranked = rank_hits(hits)

        assert [hit.id for hit in ranked] == [2, 1, 3, 4]

    def test_ties_break_by_ascending_id(self):
        hits = [
            RankedHit(id=2, title="b", description="", score=0.5),
            RankedHit(id=1, title="a", description="", score=0.5),
        ]
        assert [hit.id for hit in rank_hits(hits)] == [1, 2]

    def test_empty(self):
        assert rank_hits([]) == []
