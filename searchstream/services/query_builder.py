"""
Query Builder

Turns a settled search term into an immutable SearchRequest.

Modes:
- PREFIX: every cleaned token becomes a prefix match and all tokens are
  required, so "sam ga" matches "Samsung Galaxy" while the user is still typing.
  Rendered for PostgreSQL as to_tsquery("sam:* & ga:*").
- NATURAL_LANGUAGE: fallback when no usable token survives cleaning (for
  example punctuation-only input). The trimmed term goes to the backend's
  web-search style parser (websearch_to_tsquery).

Usage:
    builder = QueryBuilder(default_limit=20)
    request = builder.build("iphone 15", 20, session_id="u1")
    request.tokens   # ("iphone", "15")
    request.ts_query # "iphone:* & 15:*"
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from searchstream.services.query_normalizer import normalize

# tsquery operators and punctuation never survive token cleaning
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_WHITESPACE = re.compile(r"\s+")


class QueryMode(str, Enum):
    """How the backend should interpret a request."""

    PREFIX = "prefix"
    NATURAL_LANGUAGE = "natural_language"


@dataclass(frozen=True)
class SearchRequest:
    """Structured search request built from one settled term."""

    normalized_term: str
    tokens: Tuple[str, ...]
    mode: QueryMode
    limit: int
    session_id: Optional[str] = None
    offset: int = 0

    @property
    def ts_query(self) -> Optional[str]:
        """Conjunctive prefix tsquery text, or None in natural-language mode."""
        if self.mode is not QueryMode.PREFIX:
            return None
        return " & ".join(f"{token}:*" for token in self.tokens)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "term": self.normalized_term,
            "tokens": list(self.tokens),
            "mode": self.mode.value,
            "limit": self.limit,
            "offset": self.offset,
        }


def tokenize(term: str) -> List[str]:
    """Split on whitespace, keep ASCII letters/digits, lower-case, drop empties.

    Order and duplicates are preserved.
    """
    tokens = []
    for piece in _WHITESPACE.split(term.strip()):
        token = _NON_ALNUM.sub("", piece).lower()
        if token:
            tokens.append(token)
    return tokens


class QueryBuilder:
    """Builds SearchRequests; stateless and safe to share across sessions."""

    def __init__(self, default_limit: int = 20):
        if default_limit <= 0:
            raise ValueError("default_limit must be > 0")
        self.default_limit = default_limit

    def build(
        self,
        term: str,
        limit: Optional[int] = None,
        session_id: Optional[str] = None,
        offset: int = 0,
    ) -> SearchRequest:
        """Build a request for a non-empty normalized term.

        Raises:
            ValueError: blank term, limit <= 0 or negative offset. Callers
                short-circuit these before building.
        """
        normalized = normalize(term)
        if not normalized:
            raise ValueError("cannot build a search request for a blank term")
        limit = self.default_limit if limit is None else limit
        if limit <= 0:
            raise ValueError("limit must be > 0")
        if offset < 0:
            raise ValueError("offset must be >= 0")

        tokens = tuple(tokenize(normalized))
        mode = QueryMode.PREFIX if tokens else QueryMode.NATURAL_LANGUAGE
        return SearchRequest(
            normalized_term=normalized,
            tokens=tokens,
            mode=mode,
            limit=limit,
            session_id=session_id,
            offset=offset,
        )
