from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from pydantic import Field

from editorial.config.settings import settings
from editorial.schemas.camel_base_model import CamelCaseBaseModel as BaseModel
from editorial.utils.datetime_utils import utc_now


class ResponseStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class PaginationMeta(BaseModel):
    page: int = Field(..., description="Current page number")
    per_page: int = Field(..., description="Submissions per page")
    total: int = Field(..., description="Submissions matching the filters")
    total_pages: int = Field(..., description="Total number of pages")
    has_next: bool
    has_prev: bool
    next_page: Optional[int] = None
    prev_page: Optional[int] = None

    @classmethod
    def for_page(cls, page: int, per_page: int, total: int) -> "PaginationMeta":
        total_pages = (total + per_page - 1) // per_page
        has_next = page < total_pages
        has_prev = page > 1
        return cls(
            page=page,
            per_page=per_page,
            total=total,
            total_pages=total_pages,
            has_next=has_next,
            has_prev=has_prev,
            next_page=page + 1 if has_next else None,
            prev_page=page - 1 if has_prev else None,
        )


class ApiResponse(BaseModel):
    """
    Envelope shared by every endpoint. Top-level keys stay snake_case;
    ``data`` and ``pagination`` are camelCase.

    On errors ``meta`` holds ``error_code``, ``category`` (``retry``,
    ``retry_later``, ``not_allowed``, ``not_found``, ``unauthenticated``) and
    ``retryable``.
    """

    success: bool
    status: ResponseStatus
    message: str
    data: Optional[Any] = None
    meta: Optional[Dict[str, Any]] = None
    pagination: Optional[PaginationMeta] = None
    errors: Optional[List[Dict[str, Any]]] = Field(
        default=None, description="Field-level validation errors"
    )
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())
    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    path: Optional[str] = None
    version: str = Field(default_factory=lambda: settings.VERSION)
