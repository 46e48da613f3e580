"""Render domain failures as JSON error responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError

from delivery.errors import DeliveryError

logger = structlog.get_logger(__name__)


async def delivery_error_handler(request: Request, exc: DeliveryError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "code": "validation_error",
            "message": "Invalid request",
            "details": exc.messages,
        },
    )


async def not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"success": False, "code": "not_found", "message": str(exc), "details": {}},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DeliveryError, delivery_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(ObjectNotFoundError, not_found_handler)
