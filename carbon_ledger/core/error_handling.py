import datetime
import logging
import traceback
from typing import Any, Iterator

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from carbon_ledger.core.errors import InvariantViolation, LedgerError
from carbon_ledger.settings import settings

logger = logging.getLogger(__name__)

# Seconds a client should wait before retrying a conflicting write
CONFLICT_RETRY_AFTER = 1


def _request_context(request: Request) -> dict[str, Any]:
    endpoint = request.scope.get("endpoint")
    return {
        "method": request.method,
        "path": request.url.path,
        "endpoint": f"{endpoint.__module__}.{endpoint.__name__}" if endpoint else None,
    }


def _stack_details(exc: BaseException) -> dict[str, Any]:
    tb_exc = traceback.TracebackException.from_exception(exc)
    details: dict[str, Any] = {"stack": list(tb_exc.format())}
    if tb_exc.stack:
        frame = tb_exc.stack[-1]
        details["source_location"] = {
            "file": frame.filename,
            "line": frame.lineno,
            "function": frame.name,
        }
    return details


class ErrorResponse(Exception):
    """The error envelope every API failure is rendered with."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        request: Request | None = None,
        details: dict[str, Any] | None = None,
        error_type: str = "error",
        exc: Exception | None = None,
        include_stack: bool = False,
    ) -> None:
        self.timestamp = datetime.datetime.now(datetime.timezone.utc)
        self.status_code = status_code
        self.message = message
        self.error_type = error_type
        self.details = dict(details or {})

        if request:
            self.details.update(_request_context(request))
        if include_stack and exc and exc.__traceback__:
            self.details.update(_stack_details(exc))

    @classmethod
    def from_ledger_error(cls, exc: LedgerError, request: Request) -> "ErrorResponse":
        return cls(
            status_code=exc.status_code,
            message=exc.message,
            request=request,
            details={**exc.details, "retryable": exc.retryable},
            error_type=exc.error_type,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status_code": self.status_code,
            "error_message": self.message,
            "details": self.details,
            "error_type": self.error_type,
        }

    def render(self, headers: dict[str, str] | None = None) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code, content=self.to_dict(), headers=headers
        )


def _value_at(body: Any, loc: tuple[Any, ...]) -> Any:
    """Follow an error location such as ('body', 'amount') into the request body."""
    value = body
    for key in loc[1:]:
        if isinstance(value, dict):
            value = value.get(key)
        elif isinstance(value, list) and isinstance(key, int) and key < len(value):
            value = value[key]
        else:
            return None
    return value


def _validation_entries(exc: RequestValidationError) -> Iterator[dict[str, Any]]:
    for err in exc.errors():
        loc = tuple(err["loc"])
        yield {
            "location": " -> ".join(str(part) for part in loc),
            "field": loc[-1] if len(loc) > 1 else None,
            "invalid_value": _value_at(exc.body, loc),
            "message": err["msg"],
            "type": err["type"],
        }


def format_validation_error(
    exc: RequestValidationError,
    request: Request,
) -> ErrorResponse:
    return ErrorResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        request=request,
        details={"errors": list(_validation_entries(exc))},
        error_type="validation_error",
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    error_response = format_validation_error(exc, request)
    logger.warning(f"Validation error on {request.url.path}")
    return error_response.render()


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Render a ledger error with its own status code and error type.

    Invariant violations mean the ledger state is inconsistent and are logged
    at CRITICAL; every other ledger error is a rejected request. Conflicts
    carry a Retry-After header.
    """
    error_response = ErrorResponse.from_ledger_error(exc, request)
    if isinstance(exc, InvariantViolation):
        logger.critical(f"Invariant violation: {error_response.to_dict()}")
    else:
        logger.warning(f"Ledger error: {error_response.to_dict()}")

    headers = {"Retry-After": str(CONFLICT_RETRY_AFTER)} if exc.retryable else None
    return error_response.render(headers)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    error_response = ErrorResponse(
        status_code=exc.status_code, message=str(exc.detail), error_type="http_error"
    )
    logger.warning(f"HTTP error: {error_response.to_dict()}")
    return error_response.render(getattr(exc, "headers", None))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    error_response = ErrorResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message=str(exc),
        request=request,
        details={"exception_type": type(exc).__name__},
        error_type="server_error",
        exc=exc,
        include_stack=settings.ENVIRONMENT != "PROD",
    )
    logger.error("Unhandled exception", exc_info=exc)
    return error_response.render()
