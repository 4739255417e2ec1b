"""
Standard API response envelope for the JSON search endpoints.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, model_validator


class PaginationMetadata(BaseModel):
    """Pagination metadata for list responses (0-based page index)."""

    page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next: Optional[bool] = None
    has_prev: Optional[bool] = None

    @model_validator(mode="after")
    def compute_pagination_flags(self):
        """Automatically compute has_next and has_prev if not provided."""
        if self.has_next is None:
            self.has_next = self.page + 1 < self.total_pages
        if self.has_prev is None:
            self.has_prev = self.page > 0
        return self

    @classmethod
    def for_page(cls, page: int, page_size: int, total_items: int) -> "PaginationMetadata":
        total_pages = (total_items + page_size - 1) // page_size if page_size > 0 else 0
        return cls(page=page, page_size=page_size, total_items=total_items, total_pages=total_pages)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def success_response(
    data: Any,
    request_id: Optional[str] = None,
    pagination: Optional[PaginationMetadata] = None,
    **extra_metadata,
) -> Dict[str, Any]:
    """
    Create a successful API response.

    Args:
        data: Response data
        request_id: Request correlation ID
        pagination: Pagination metadata (if applicable)
        extra_metadata: Additional metadata fields

    Returns:
        API envelope dictionary
    """
    metadata = {
        **({"request_id": request_id} if request_id else {}),
        **({"pagination": pagination.model_dump()} if pagination else {}),
        **extra_metadata,
    }

    return {
        "success": True,
        "data": data,
        "error": None,
        "metadata": metadata if metadata else None,
        "timestamp": _timestamp(),
    }


def error_response(
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create an error API response.

    Args:
        code: Machine-readable error code (e.g., "BACKEND_UNAVAILABLE")
        message: Human-readable error message
        details: Additional error details
        request_id: Request correlation ID

    Returns:
        API envelope dictionary
    """
    return {
        "success": False,
        "data": None,
        "error": {"code": code, "message": message, "details": details},
        "metadata": {"request_id": request_id} if request_id else None,
        "timestamp": _timestamp(),
    }
