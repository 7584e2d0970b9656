"""
API Error Mapping
Translate claim service errors into HTTP responses
Source: https://fastapi.tiangolo.com/tutorial/handling-errors/
Verified: 2026-10-19
"""

from typing import TypeVar

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from claimflow.core.errors import ClaimsServiceError
from claimflow.core.results import OperationResult
from claimflow.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def to_http_exception(error: ClaimsServiceError) -> HTTPException:
    """
    Map a service error to its HTTP status.

    404 not found, 409 state conflict or lost race, 400 malformed input,
    422 validation failure, 502 clearinghouse failure.
    """
    return HTTPException(status_code=error.status_code, detail=error.to_dict())


def unwrap_or_raise(result: OperationResult[T]) -> T:
    """Return the operation value or raise the mapped HTTPException."""
    if not result.success:
        assert result.error is not None
        raise to_http_exception(result.error)
    return result.value  # type: ignore[return-value]


async def claims_service_error_handler(request: Request, exc: ClaimsServiceError) -> JSONResponse:
    """Handle faults raised out of the services (integration, concurrency)."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ClaimsServiceError, claims_service_error_handler)  # type: ignore[arg-type]
