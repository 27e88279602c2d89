"""Alex voice assistant: FastAPI entry point."""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from alexvoice.config import settings
from alexvoice.logging_config import setup_logging
from alexvoice.routers import assistant
from alexvoice.services.container import build_services
from alexvoice.telemetry import instrument_fastapi

setup_logging(
    is_dev=settings.is_dev,
    level="DEBUG" if settings.is_dev else "INFO",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app.state.services = build_services(settings)
    logger.info("Assistant ready (chat provider: %s)", settings.chat_provider)
    try:
        yield
    finally:
        await app.state.services.aclose()


app = FastAPI(
    title="Alex Voice Assistant",
    description="Voice and text assistant: scripted skills plus hosted chat and speech.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Transcript", "X-Response", "X-Request-ID", "Location"],
)

instrument_fastapi(app)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Log every HTTP request with method, path, status, and duration."""
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    start = time.perf_counter()

    response = await call_next(request)

    duration_ms = round((time.perf_counter() - start) * 1000, 1)
    logger.info(
        "%s %s -> %d (%.1fms)",
        request.method, request.url.path, response.status_code, duration_ms,
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": str(request.url.path),
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(assistant.router)


@app.get("/api/health")
async def health() -> dict:
    return {
        "status": "ok",
        "chat_provider": settings.chat_provider,
        "configured": {
            "groq": settings.has_groq_key,
            "bedrock": settings.has_aws_credentials,
            "cartesia": settings.has_cartesia_key,
            "web_search": settings.has_search_credentials,
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "alexvoice.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.is_dev,
    )
