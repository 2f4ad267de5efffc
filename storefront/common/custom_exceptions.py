from typing import Any, Optional
from fastapi import FastAPI, HTTPException, Request,status
from fastapi.exceptions import RequestValidationError
from storefront import logger
from storefront.common.utils import build_error, json_error
from storefront.common.constants import request_id_ctx


class AppError(Exception):
    """Base for domain errors; carries the HTTP mapping used by the exception handler."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "APP_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if code:
            self.code = code


class ValidationFailed(AppError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VALIDATION_FAILED"


class CouponRejected(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "COUPON_REJECTED"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class StateConflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "STATE_CONFLICT"


class IntegrityFailure(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTEGRITY_FAILURE"


class GatewayConfigError(AppError):
    """Merchant credentials missing or malformed; retrying will not help."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "GATEWAY_CONFIG_ERROR"


class GatewayError(AppError):
    """Gateway unreachable, timed out, answered non-2xx or rejected the request."""
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "GATEWAY_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None, code: Optional[str] = None,
                 transient: bool = False):
        super().__init__(message, details=details, code=code)
        self.transient = transient


async def app_error_handler(request: Request, exc: AppError):
    rid = request_id_ctx.get(None)

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request.app_error",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_code": exc.code,
            "error_message": exc.message,
        },
    )

    details = {"message": exc.message}
    if exc.details is not None:
        details["details"] = exc.details
    payload = build_error(code=exc.code, details=details, request_id=rid)
    return json_error(payload, status_code=exc.status_code)


async def fallback_handler(request: Request, exc: Exception):

    rid = request_id_ctx.get(None)
    body = {"message": "Internal Server Error"}

    logger.error(
        "unexpected.exception",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=exc,
    )

    payload = build_error(code="SERVER_ERROR", details=body, request_id=rid)
    return json_error(payload, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    rid = request_id_ctx.get(None)
    logger.warning(
        "request.validation_failed",
        extra={
            "errors": exc.errors(),
            "path": request.url.path,
        },
    )

    payload = build_error(code="UNPROCESSABLE_ENTITY", details={"message":"invalid request"}, request_id=rid)
    return json_error(payload, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


async def http_exception_handler(request: Request, exc: HTTPException):

    rid = request_id_ctx.get(None)

    error_code = f"HTTP_{exc.status_code}"
    payload = build_error(code=error_code, details={"message":exc.detail}, request_id=rid)
    return json_error(payload, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def register_all_exceptions(app: FastAPI):

    app.add_exception_handler(
        Exception, # catch all unidentified/unhandled exceptions
        fallback_handler
    )

    app.add_exception_handler(
        AppError,
        app_error_handler
    )

    app.add_exception_handler(
        RequestValidationError,
        validation_exception_handler
    )

    app.add_exception_handler(
        HTTPException,
        http_exception_handler
    )
