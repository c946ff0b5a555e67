"""
Maps the typed error taxonomy onto HTTP responses.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ticketing.core.exceptions import AuthenticationError, BookingEngineError
from ticketing.core.logging import get_logger

logger = get_logger(__name__)


async def booking_engine_error_handler(request: Request, exc: BookingEngineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_error", error_type=type(exc).__name__, detail=exc.message)
    else:
        logger.info("request_rejected", error_type=type(exc).__name__, detail=exc.message)

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingEngineError, booking_engine_error_handler)
