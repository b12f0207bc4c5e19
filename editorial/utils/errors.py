from fastapi import FastAPI, Request, status
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from pydantic import ValidationError
import traceback
from .logging import get_logger
from .responses import ResponseBuilder

logger = get_logger()


# Message categories let clients tell "try again" apart from "not allowed"
CATEGORY_RETRY = "retry"
CATEGORY_RETRY_LATER = "retry_later"
CATEGORY_NOT_ALLOWED = "not_allowed"
CATEGORY_NOT_FOUND = "not_found"
CATEGORY_UNAUTHENTICATED = "unauthenticated"


class WorkflowError(Exception):
    """Base class for errors raised by the editorial workflow services."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    category: str = CATEGORY_NOT_ALLOWED
    retryable: bool = False
    default_code: str = "WORKFLOW_ERROR"

    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code

    def describe(self) -> dict:
        return {
            "error_type": type(self).__name__,
            "category": self.category,
            "retryable": self.retryable,
        }


class NotFoundError(WorkflowError):
    """Custom exception for resource not found errors."""

    status_code = status.HTTP_404_NOT_FOUND
    category = CATEGORY_NOT_FOUND
    default_code = "NOT_FOUND"

    def __init__(
        self, message: str = "Resource not found", error_code: str = "NOT_FOUND"
    ):
        super().__init__(message, error_code)


class InvalidTransitionError(WorkflowError):
    """The requested (current, target) status pair is not an allowed edge."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "INVALID_TRANSITION"


class GuardRejectedError(WorkflowError):
    """A transition guard (assignment, plagiarism, note) is not satisfied."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "GUARD_REJECTED"


class RoleNotPermittedError(GuardRejectedError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "ROLE_NOT_PERMITTED"


class VersionConflictError(WorkflowError):
    """Stale write: the submission changed since the caller read it."""

    status_code = status.HTTP_409_CONFLICT
    category = CATEGORY_RETRY
    retryable = True
    default_code = "VERSION_CONFLICT"

    def __init__(self, message: str, expected_version: int = None, current_version: int = None):
        super().__init__(message)
        self.expected_version = expected_version
        self.current_version = current_version

    def describe(self) -> dict:
        meta = super().describe()
        meta["expected_version"] = self.expected_version
        meta["current_version"] = self.current_version
        return meta


class InvalidStateError(WorkflowError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "INVALID_STATE"


class TransientStoreError(WorkflowError):
    """Store timeout or unavailability. Safe to retry with a fresh read."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    category = CATEGORY_RETRY
    retryable = True
    default_code = "TRANSIENT_STORE_FAILURE"


class DownstreamError(WorkflowError):
    """An external collaborator (certificate issuer) failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
    category = CATEGORY_RETRY_LATER
    retryable = True
    default_code = "DOWNSTREAM_FAILURE"


class AuthenticationError(WorkflowError):
    """Caller identity is missing or malformed."""

    status_code = status.HTTP_401_UNAUTHORIZED
    category = CATEGORY_UNAUTHENTICATED
    default_code = "AUTH_ERROR"

    def __init__(
        self, message: str = "Authentication failed", error_code: str = "AUTH_ERROR"
    ):
        super().__init__(message, error_code)


def setup_error_handlers(app: FastAPI):
    """Setup custom error handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.error(f"HTTP Exception: {exc.status_code} - {exc.detail}")
        return ResponseBuilder.error(
            request=request,
            message=str(exc.detail),
            error_code="HTTP_ERROR",
            status_code=exc.status_code,
            meta={"http_status": exc.status_code},
        )

    """
    RequestValidationError is a sub-class of Pydantic's ValidationError.
    """

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.error(f"Request Validation Error: {exc.errors()}")

        formatted_errors = []
        for error in exc.errors():
            field_path = " -> ".join(str(loc) for loc in error["loc"])
            formatted_errors.append(
                {
                    "field": field_path,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )

        return ResponseBuilder.error(
            request=request,
            message="Request validation failed",
            errors=formatted_errors,
            error_code="VALIDATION_ERROR",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    @app.exception_handler(ValidationError)
    async def pydantic_validation_exception_handler(
        request: Request, exc: ValidationError
    ):
        logger.error(f"Pydantic Validation Error: {exc.errors()}")

        return ResponseBuilder.error(
            request=request,
            message="Data validation failed",
            error_code="INTERNAL_VALIDATION_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(WorkflowError)
    async def workflow_exception_handler(request: Request, exc: WorkflowError):
        if exc.retryable:
            logger.warning(f"{type(exc).__name__}: {exc.message}")
        else:
            logger.info(f"{type(exc).__name__}: {exc.message}")

        return ResponseBuilder.from_error(request, exc)

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"SQLAlchemy Error: {str(exc)}")

        # Don't expose internal database errors to users
        return ResponseBuilder.error(
            request=request,
            message="A database error occurred",
            error_code="DATABASE_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "SQLALCHEMY_ERROR"},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        logger.error(f"Value Error: {str(exc)}")

        return ResponseBuilder.error(
            request=request,
            message=str(exc),
            error_code="VALUE_ERROR",
            status_code=status.HTTP_400_BAD_REQUEST,
            meta={"error_type": "VALUE_ERROR"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other unhandled exceptions"""
        logger.error(f"Unhandled Exception: {str(exc)}")
        logger.error(f"Traceback: {traceback.format_exc()}")

        return ResponseBuilder.error(
            request=request,
            message="An internal server error occurred",
            error_code="INTERNAL_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "INTERNAL_ERROR"},
        )
