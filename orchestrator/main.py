"""FastAPI application entry point."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from orchestrator.api import admin, generations
from orchestrator.core.config import load_config
from orchestrator.logging import configure_logging, get_request_id
from orchestrator.middleware.request_context import RequestContextMiddleware
from orchestrator.storage.database import init_db
from orchestrator.telemetry.events import record_event

configure_logging()

logger = logging.getLogger("orchestrator.app")

app = FastAPI(
    title="Structured Generation Orchestrator",
    version="0.1.0",
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url=None,
)
app.include_router(generations.router)
app.include_router(admin.router)
app.add_middleware(RequestContextMiddleware)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    config = load_config()
    logger.info(
        "Orchestrator started",
        extra={
            "event": "startup",
            "providers": [provider.name for provider in config.providers if provider.active],
        },
    )


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


@app.exception_handler(Exception)
async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error",
        extra={
            "event": "request_error",
            "path": request.url.path,
            "request_id": get_request_id(),
        },
    )
    record_event(
        "request_error",
        "ERROR",
        message=str(exc),
        meta={"path": request.url.path},
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "message": "Internal server error",
                "type": "internal_server_error",
                "code": "internal_error",
            }
        },
    )
