from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import router
from app.web import router as web_router
from datastore.reading_store import StorageError, build_default_store
from logging_config import configure_logging
from services.broadcaster import build_default_broadcaster
from services.dispatcher import build_default_dispatcher, build_default_registry
from services.ingestion import build_default_ingestion, build_default_sessions
from settings import get_settings

logger = logging.getLogger(__name__)

# Drain window for in-flight push deliveries at shutdown.
SHUTDOWN_DRAIN_SECONDS = 5.0


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    ingestion = build_default_ingestion()
    try:
        ingestion.store.connect()
    except StorageError as exc:
        logger.error("Reading store unavailable at startup; continuing", extra={"reason": str(exc)})
    try:
        yield
    finally:
        if not ingestion.dispatcher.drain(timeout=SHUTDOWN_DRAIN_SECONDS):
            logger.warning("Shutting down with push deliveries still in flight")
        ingestion.dispatcher.shutdown(wait=False)
        for factory in (
            build_default_ingestion,
            build_default_sessions,
            build_default_dispatcher,
            build_default_registry,
            build_default_broadcaster,
            build_default_store,
        ):
            factory.cache_clear()


async def storage_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.error("Storage operation failed", extra={"reason": str(exc)})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": str(exc)},
    )


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(
        title="Rain Watch",
        description="Turns sensor temperature/humidity samples into rain episodes and alerts subscribers.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.cors_origin.split(",") if origin.strip()],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StorageError, storage_error_handler)
    app.include_router(router)
    app.include_router(web_router)
    return app

app = create_app()
