"""Response envelope shared by every endpoint."""

from math import ceil
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


T = TypeVar("T")


class Pagination(BaseModel):
    """Page metadata for list responses."""

    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, total_pages=ceil(total / limit))


class ApiResponse(BaseModel, Generic[T]):
    """Envelope: ``{success, data?, message?, error?, pagination?}``."""

    success: bool = True
    data: T | None = None
    message: str | None = None
    error: str | None = None
    pagination: Pagination | None = None


def error_body(error: str, message: str | None = None, **extra: Any) -> dict[str, Any]:
    """Failure envelope used by the exception handlers.

    ``error`` is a short machine-readable code, ``message`` the text shown to
    users. Extra keys with a None value are dropped.
    """
    body: dict[str, Any] = {"success": False, "error": error}
    if message is not None:
        body["message"] = message
    body.update({k: v for k, v in extra.items() if v is not None})
    return body
