"""Translate domain and validation failures into the API's failure shape."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from ..domain.errors import ServiceError, ValidationError

logger = logging.getLogger(__name__)


def _field_errors(errors: Iterable[dict[str, Any]]) -> list[dict[str, str]]:
    """Flatten pydantic error dicts into ``{field, message}`` pairs."""
    flattened = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        field = ".".join(loc)
        message = error.get("msg", "Invalid value")
        if error.get("type") != "invalid_field" and field:
            message = f"{field}: {message}"
        flattened.append({"field": field, "message": message})
    return flattened


def failure(status_code: int, message: str, errors: list[dict[str, str]] | None = None) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return JSONResponse(status_code=status_code, content=body)


def validation_failure(errors: Iterable[dict[str, Any]]) -> ValidationError:
    """Build a single ``ValidationError`` whose message joins every field message."""
    field_errors = _field_errors(errors)
    return ValidationError(", ".join(item["message"] for item in field_errors), field_errors)


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return failure(exc.status_code, exc.message, getattr(exc, "errors", None))


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = validation_failure(exc.errors())
    return failure(error.status_code, error.message, error.errors)


async def _pydantic_validation_handler(request: Request, exc: PydanticValidationError) -> JSONResponse:
    error = validation_failure(exc.errors())
    return failure(error.status_code, error.message, error.errors)


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def install_error_handlers(app: FastAPI) -> None:
    """Register the handlers producing ``{"success": false, "message": ...}`` bodies."""
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(PydanticValidationError, _pydantic_validation_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
