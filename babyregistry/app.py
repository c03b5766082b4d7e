"""
FastAPI application entry point for the registry API.

Run with ``uvicorn babyregistry.app:app``.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from babyregistry.config import Settings, get_settings
from babyregistry.db import RegistryStore, to_iso
from babyregistry.dependencies import build_admin_gate, build_store
from babyregistry.errors import RegistryError
from babyregistry.messages import MessageService
from babyregistry.routes import router
from babyregistry.schemas import HealthResponse
from babyregistry.votes import VoteService

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None, store: Optional[RegistryStore] = None
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        active_store = store if store is not None else build_store(settings)
        app.state.store = active_store
        app.state.vote_service = VoteService(active_store)
        app.state.message_service = MessageService(
            active_store, duplicate_window=settings.duplicate_window_seconds
        )
        yield
        active_store.close()

    app = FastAPI(title="Baby Registry API", version="0.1.0", lifespan=lifespan)
    app.state.admin_gate = build_admin_gate(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "x-admin-key"],
    )

    @app.exception_handler(RegistryError)
    async def registry_error_handler(request: Request, exc: RegistryError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        detail = first.get("msg", "Invalid request")
        message = f"{field}: {detail}" if field else detail
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(
            "Unhandled error on %s %s", request.method, request.url.path
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(
            status="ok",
            timestamp=to_iso(time.time()),
        )

    @app.get("/")
    def root():
        return {"message": "Baby Registry API Server", "status": "running"}

    return app


app = create_app()
