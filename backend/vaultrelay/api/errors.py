# vaultrelay/api/errors.py

import logging

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from vaultrelay.core.errors import NotFound, RelayError

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    @app.exception_handler(RelayError)
    async def handle_relay_error(request: Request, exc: RelayError):
        # NotFound is the normal answer to a retried delete
        level = logging.DEBUG if isinstance(exc, NotFound) else logging.INFO
        logger.log(
            level,
            f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}",
            extra={"status_code": exc.status_code},
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )
