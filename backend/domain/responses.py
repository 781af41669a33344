"""
Response envelopes shared by every router.

- Success: { "success": true, "data": <payload>, "meta": {...} }
- Error:   { "success": false, "error": { "code": "...", "message": "...", "details": {...} } }

The exception handlers in main.py build errors through error_response(); the
models below document that envelope in the OpenAPI schema.
"""
from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Standard error detail structure."""
    code: str = Field(..., description="Error code (e.g., 'notfound', 'validation')")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(default=None, description="Additional error context")


class StandardErrorResponse(BaseModel):
    """Standard error response envelope."""
    success: bool = Field(False, description="Always false for errors")
    error: ErrorDetail


ERROR_RESPONSES = {
    400: {"model": StandardErrorResponse},
    401: {"model": StandardErrorResponse},
    403: {"model": StandardErrorResponse},
    404: {"model": StandardErrorResponse},
    409: {"model": StandardErrorResponse},
    422: {"model": StandardErrorResponse},
    429: {"model": StandardErrorResponse},
}


def error_code_for(exc: Exception) -> str:
    """NotFoundError -> "notfound", RateLimitError -> "ratelimit"."""
    return exc.__class__.__name__.replace("Error", "").lower()


def error_response(status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message, "details": details},
        },
    )


def success_response(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Create a standardized success response.

    Args:
        data: The response payload
        meta: Optional metadata (pagination, counts, etc.)
    """
    response = {"success": True, "data": data}
    if meta:
        response["meta"] = meta
    return response


def paginated_response(
    items: list[Any],
    limit: int,
    offset: int = 0,
    total: int | None = None,
) -> dict[str, Any]:
    """
    Create a standardized paginated response.

    Args:
        items: Items for this page
        limit: Page size
        offset: Number of items skipped
        total: Total number of matching items (defaults to len(items))
    """
    if total is None:
        total = len(items)

    meta = {
        "limit": limit,
        "offset": offset,
        "total": total,
        "hasMore": (offset + limit) < total,
    }
    return success_response(data=items, meta=meta)
