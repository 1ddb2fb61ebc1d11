# backend/tutorbook/main.py
"""
FastAPI application exposing the booking engine over HTTP.

Run with: uvicorn tutorbook.main:app
"""

import logging
from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
import ulid

from . import __version__
from .core.config import settings
from .core.exceptions import DomainException
from .core.logging import reset_request_id, set_request_id, setup_logging
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes import availability, bookings

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="tutorbook",
    description="Booking and availability engine for tutors and students",
    version=__version__,
)


@app.middleware("http")
async def attach_request_id(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    request_id = request.headers.get("x-request-id") or str(ulid.ULID())
    token = set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        reset_request_id(token)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Convert domain exceptions to the same body HTTPException would produce."""
    http_exc = exc.to_http_exception()
    if http_exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}", extra={"path": request.url.path})
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


app.include_router(bookings.router)
app.include_router(availability.router)


@app.get("/health")
def health() -> dict:
    return {"status": "healthy", "environment": settings.environment, "version": __version__}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
