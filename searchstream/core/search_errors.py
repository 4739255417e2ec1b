"""
Search error taxonomy.

Every failure the search pipeline can observe falls into one category:
- INPUT: bad session id or request parameters, fatal to that session only
- BACKEND: the full-text backend failed or returned a malformed row,
  recovered as "no results" for the settled term
- SERIALIZATION: a batch could not be framed for delivery, recovered by
  sending an empty batch

Reaching a session's emission cap is a terminal state, not an error, and has
no exception class.
"""

from enum import Enum


class SearchErrorCategory(str, Enum):
    """Search error categories for classification."""

    INPUT = "input"
    BACKEND = "backend"
    SERIALIZATION = "serialization"


class SearchError(Exception):
    """Base class for search pipeline errors."""

    category: SearchErrorCategory = SearchErrorCategory.BACKEND
    code: str = "SEARCH_ERROR"

    def __init__(self, message: str = "", *, code: str | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "category": self.category.value, "message": str(self)}


class InputError(SearchError, ValueError):
    """Missing or invalid caller input (e.g. blank session id)."""

    category = SearchErrorCategory.INPUT
    code = "INVALID_INPUT"


class TransientBackendError(SearchError):
    """Search backend unavailable, timed out or misbehaving."""

    category = SearchErrorCategory.BACKEND
    code = "BACKEND_UNAVAILABLE"


class RowDecodeError(TransientBackendError):
    """A backend row lacks a required field."""

    code = "MALFORMED_ROW"


class SerializationError(SearchError):
    """A result batch could not be encoded for delivery."""

    category = SearchErrorCategory.SERIALIZATION
    code = "SERIALIZATION_FAILED"


def require_session_id(session_id: str | None) -> str:
    """Return the session id unchanged, or raise InputError when it is missing or blank."""
    if session_id is None or not str(session_id).strip():
        raise InputError("userId must be provided", code="MISSING_SESSION_ID")
    return session_id
