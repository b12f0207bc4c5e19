import uuid
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

from editorial.schemas.response_schemas import (
    ApiResponse,
    PaginationMeta,
    ResponseStatus,
)

if TYPE_CHECKING:
    from editorial.utils.errors import WorkflowError


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _envelope(request: Request, status_code: int, **fields: Any) -> JSONResponse:
    response = ApiResponse(
        request_id=_request_id(request),
        path=str(request.url.path),
        **fields,
    )
    return JSONResponse(
        status_code=status_code,
        content=response.model_dump(exclude_none=True),
    )


class ResponseBuilder:
    """Builds the ``ApiResponse`` envelope every endpoint returns."""

    @staticmethod
    def success(
        request: Request,
        data: Any = None,
        message: str = "Request successful",
        meta: Optional[Dict[str, Any]] = None,
        pagination: Optional[PaginationMeta] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> JSONResponse:
        return _envelope(
            request,
            status_code,
            success=True,
            status=ResponseStatus.SUCCESS,
            message=message,
            data=data,
            meta=meta,
            pagination=pagination,
        )

    @staticmethod
    def created(
        request: Request,
        data: Any,
        message: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        return ResponseBuilder.success(
            request=request,
            data=data,
            message=message,
            meta=meta,
            status_code=status.HTTP_201_CREATED,
        )

    @staticmethod
    def error(
        request: Request,
        message: str = "An error occurred",
        errors: Optional[List[Dict[str, Any]]] = None,
        error_code: Optional[str] = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        meta: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        response_meta = dict(meta or {})
        if error_code:
            response_meta["error_code"] = error_code

        return _envelope(
            request,
            status_code,
            success=False,
            status=ResponseStatus.ERROR,
            message=message,
            meta=response_meta or None,
            errors=errors,
        )

    @staticmethod
    def from_error(request: Request, exc: "WorkflowError") -> JSONResponse:
        """
        Render a workflow error. ``meta`` carries the error code, the message
        category and whether the caller may retry; version conflicts add the
        expected and current versions so clients can re-read and resubmit.
        """
        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=exc.status_code,
            meta=exc.describe(),
        )

    @staticmethod
    def paginated(
        request: Request,
        data: List[Any],
        page: int,
        per_page: int,
        total: int,
        message: str = "Data retrieved successfully",
        meta: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        return ResponseBuilder.success(
            request=request,
            data=data,
            message=message,
            meta=meta,
            pagination=PaginationMeta.for_page(page, per_page, total),
        )
