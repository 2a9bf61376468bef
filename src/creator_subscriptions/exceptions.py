"""
Domain exceptions and FastAPI exception handlers with request ID support
Standardized error response format: { code, message, details?, request_id }
"""
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
from typing import Optional, Dict, Any, List

from .logging_config import get_request_id

logger = logging.getLogger(__name__)


class SubscriptionError(Exception):
    """Base exception for subscription accounting errors"""
    code = "SUBSCRIPTION_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class NotFoundError(SubscriptionError):
    """Referenced team, plan, user or session does not exist"""
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} '{identifier}' not found")


class InconsistentPlanStateError(SubscriptionError):
    """A team has no resolvable plan even after the FREE fallback"""
    code = "INCONSISTENT_PLAN_STATE"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class PlanValidationError(SubscriptionError):
    """Plan definition or deletion rejected by business rules"""
    code = "PLAN_VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class TransientNetworkError(SubscriptionError):
    """A best-effort call to the session/status endpoints failed"""
    code = "TRANSIENT_NETWORK_ERROR"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ErrorResponse:
    """
    Standard error response format

    Schema: { code, message, status_code, request_id?, details? }
    """

    @staticmethod
    def create(
        message: str,
        code: str,
        status_code: int,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> dict:
        """
        Create standardized error response

        Args:
            message: Human-readable error message
            code: Error code (e.g., "VALIDATION_ERROR", "NOT_FOUND", "PLAN_LIMIT_EXCEEDED")
            status_code: HTTP status code
            request_id: Request ID from context (auto-fetched if None)
            details: Optional additional error details

        Returns:
            Dictionary with error details
        """
        if request_id is None:
            request_id = get_request_id()

        response = {
            "code": code,
            "message": message,
            "status_code": status_code,
        }
        if request_id:
            response["request_id"] = request_id
        if details:
            response["details"] = details
        return response


ERROR_CODE_MAP = {
    400: "BAD_REQUEST",
    401: "AUTH_ERROR",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions with request ID"""
    request_id = get_request_id()
    error_code = ERROR_CODE_MAP.get(exc.status_code, "HTTP_ERROR")

    detail = exc.detail
    error_message = str(detail) if detail else f"HTTP {exc.status_code} error"
    error_details = None

    # Dict details carry structured data (plan limit denials, retry hints)
    if isinstance(detail, dict):
        error_message = detail.get("message", str(detail))
        error_code = detail.get("error", error_code)
        error_details = {k: v for k, v in detail.items() if k not in ["error", "message", "code"]}

    logger.warning(
        f"HTTP {exc.status_code}: {error_message}",
        extra={"path": request.url.path}
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse.create(
            message=error_message,
            code=error_code,
            status_code=exc.status_code,
            request_id=request_id,
            details=error_details or None,
        ),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle validation exceptions with request ID"""
    errors = exc.errors()
    detail = "; ".join(f"{err['loc']}: {err['msg']}" for err in errors)

    logger.warning(f"Validation error: {detail}", extra={"path": request.url.path})

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse.create(
            message=f"Validation error: {detail}",
            code="VALIDATION_ERROR",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in errors]},
        ),
    )


async def subscription_exception_handler(request: Request, exc: SubscriptionError) -> JSONResponse:
    """Handle domain exceptions raised by the accounting services"""
    details = None
    if isinstance(exc, PlanValidationError):
        details = {"errors": exc.errors}

    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc}", exc_info=True, extra={"path": request.url.path})
    else:
        logger.warning(f"{exc.code}: {exc}", extra={"path": request.url.path})

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse.create(
            message=str(exc),
            code=exc.code,
            status_code=exc.status_code,
            details=details,
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general exceptions with request ID"""
    from .config import config

    error_message = "Internal server error"
    error_details = None
    if config.ENV == "dev":
        error_message = f"Internal server error: {str(exc)}"
        error_details = {"exception_type": type(exc).__name__}

    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True, extra={"path": request.url.path})

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse.create(
            message=error_message,
            code="INTERNAL_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=error_details,
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all handlers to the application"""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SubscriptionError, subscription_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
