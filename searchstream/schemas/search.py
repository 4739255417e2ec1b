"""Search result schemas shared by the gateway, the pipeline and the HTTP surface.

Ranking contract: within one result set, hits are ordered by descending
score with ties broken by ascending id. Scores are only comparable inside a
single result set.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, List

from pydantic import BaseModel, ConfigDict, field_validator


class RankedHit(BaseModel):
    """One matched product with its relevance score."""

    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    description: str
    score: float = 0.0

    @field_validator("title")
    @classmethod
    def _trim_title(cls, value: str) -> str:
        return value.strip()

    @field_validator("score", mode="before")
    @classmethod
    def _finite_score(cls, value: Any) -> float:
        return coerce_score(value)


def coerce_score(value: Any) -> float:
    """Missing, non-numeric and non-finite scores all become 0.0."""
    if value is None:
        return 0.0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    return score if math.isfinite(score) else 0.0


def ranking_key(hit: RankedHit):
    """Sort key implementing score desc, id asc."""
    return (-hit.score, hit.id)


def rank_hits(hits: Iterable[RankedHit]) -> List[RankedHit]:
    """Return hits ordered by the ranking contract."""
    return sorted(hits, key=ranking_key)
