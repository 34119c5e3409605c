"""Common exception handlers for API responses."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.exceptions import (
    DimensionMismatchError,
    EmptyInputError,
    EncodingError,
    IndexingError,
    InvalidQueryError,
    PCShopException,
    ProductNotFoundError,
    QueueError,
    RecordNotFoundError,
    StoreUnavailableError,
    ValidationError,
    VectorIndexError,
    VectorSearchError,
    VectorStoreError,
)
from app.core.logging import get_logger
from app.api.response_utils import build_meta
from app.schemas.response import ResponseError, ResponseEnvelope

logger = get_logger(__name__)


EXCEPTION_RESPONSE_MAP: dict[type[Exception], tuple[int, str]] = {
    ProductNotFoundError: (status.HTTP_404_NOT_FOUND, "ProductNotFoundError"),
    RecordNotFoundError: (status.HTTP_404_NOT_FOUND, "RecordNotFoundError"),
    InvalidQueryError: (status.HTTP_400_BAD_REQUEST, "InvalidQueryError"),
    ValidationError: (status.HTTP_400_BAD_REQUEST, "ValidationError"),
    EmptyInputError: (status.HTTP_400_BAD_REQUEST, "EmptyInputError"),
    EncodingError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "EncodingError"),
    DimensionMismatchError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "DimensionMismatchError"),
    StoreUnavailableError: (status.HTTP_503_SERVICE_UNAVAILABLE, "StoreUnavailableError"),
    VectorIndexError: (status.HTTP_503_SERVICE_UNAVAILABLE, "VectorIndexError"),
    VectorSearchError: (status.HTTP_503_SERVICE_UNAVAILABLE, "VectorSearchError"),
    VectorStoreError: (status.HTTP_503_SERVICE_UNAVAILABLE, "VectorStoreError"),
    IndexingError: (status.HTTP_502_BAD_GATEWAY, "IndexingError"),
    QueueError: (status.HTTP_503_SERVICE_UNAVAILABLE, "QueueError"),
}
DEFAULT_ERROR_CODE = "INTERNAL.UNEXPECTED"


def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers that wrap exceptions in the common envelope."""

    app.add_exception_handler(PCShopException, _app_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_error_handler)
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)


def resolve_exception_response(exc: Exception) -> tuple[int, str]:
    """Status and code of the closest mapped class in the exception's MRO."""
    for cls in type(exc).__mro__:
        if cls in EXCEPTION_RESPONSE_MAP:
            return EXCEPTION_RESPONSE_MAP[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR, DEFAULT_ERROR_CODE


def _serialize_error(
    *,
    code: str,
    message: str,
    details: Any | None = None,
) -> ResponseError:
    return ResponseError(
        code=code,
        message=message,
        details=details,
    )


def _compress_detail(detail: Any) -> tuple[str, Any | None]:
    if isinstance(detail, dict):
        message = detail.get("message", str(detail))
        return message, detail.get("details") or detail

    return str(detail), None


def _format_validation_message(errors: list[dict[str, Any]]) -> str:
    if not errors:
        return "Validation error"

    parts: list[str] = []
    for error in errors:
        loc = error.get("loc", [])
        msg = error.get("msg", "Validation error")
        loc_path = ".".join(str(item) for item in loc) if loc else None
        parts.append(f"{loc_path}: {msg}" if loc_path else msg)

    return "; ".join(parts)


def _envelope_response(request: Request, status_code: int, error: ResponseError) -> JSONResponse:
    envelope = ResponseEnvelope[None](
        success=False,
        data=None,
        error=error,
        meta=build_meta(request),
    )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(envelope, by_alias=True),
    )


async def _app_exception_handler(request: Request, exc: PCShopException) -> JSONResponse:
    status_code, error_code = resolve_exception_response(exc)
    if status_code >= 500:
        logger.error(
            "request_failed",
            path=request.url.path,
            error_code=error_code,
            error=str(exc),
        )

    error_payload = _serialize_error(
        code=error_code or getattr(exc, "code", DEFAULT_ERROR_CODE),
        message=str(exc),
        details=getattr(exc, "details", None),
    )
    return _envelope_response(request, status_code, error_payload)


async def _request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors() or []
    error_payload = _serialize_error(
        code="ValidationError",
        message=_format_validation_message(errors),
        details={"errors": jsonable_encoder(errors)},
    )
    return _envelope_response(request, status.HTTP_422_UNPROCESSABLE_ENTITY, error_payload)


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message, details = _compress_detail(exc.detail)
    code = getattr(exc, "code", None) or f"HTTP.{exc.status_code}"

    error_payload = _serialize_error(code=code, message=message, details=details)
    return _envelope_response(request, exc.status_code, error_payload)


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        error=str(exc),
        error_type=exc.__class__.__name__,
    )
    error_payload = _serialize_error(
        code=DEFAULT_ERROR_CODE,
        message="Unexpected server error.",
    )
    return _envelope_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, error_payload)
