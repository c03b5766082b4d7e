"""
Dependency wiring for the FastAPI app.

The store is chosen once, at startup, from configuration; request handlers
only ever see the services built on top of it.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, Query, Request
from sqlalchemy.exc import SQLAlchemyError

from babyregistry.admin import AdminGate
from babyregistry.config import DEFAULT_ADMIN_KEY, Settings
from babyregistry.db import InMemoryStore, RegistryStore, SqlStore, UnavailableStore
from babyregistry.errors import RegistryError
from babyregistry.filestore import JsonFileStore
from babyregistry.messages import MessageService
from babyregistry.votes import VoteService

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> RegistryStore:
    """
    Select and initialize the storage backend. A database that cannot be
    reached at startup degrades to the "no database" mode.
    """
    try:
        if settings.use_in_memory_backends:
            store = InMemoryStore()
        elif settings.database_url:
            store = SqlStore(
                settings.database_url,
                connect_timeout=settings.database_connect_timeout,
            )
        elif settings.data_dir:
            store = JsonFileStore(settings.data_dir)
        else:
            logger.warning("No DATABASE_URL or DATA_DIR set; running without storage")
            return UnavailableStore()
        store.initialize()
    except (RegistryError, SQLAlchemyError, ImportError) as exc:
        logger.error("Storage initialization failed (%s); running without storage", exc)
        return UnavailableStore()
    logger.info("Storage backend: %s", type(store).__name__)
    return store


def build_admin_gate(settings: Settings) -> AdminGate:
    if settings.admin_key == DEFAULT_ADMIN_KEY:
        logger.warning("ADMIN_KEY not set; using the development default")
    return AdminGate(settings.admin_key, settings.admin_credentials())


def get_store(request: Request) -> RegistryStore:
    return request.app.state.store


def get_vote_service(request: Request) -> VoteService:
    return request.app.state.vote_service


def get_message_service(request: Request) -> MessageService:
    return request.app.state.message_service


def get_admin_gate(request: Request) -> AdminGate:
    return request.app.state.admin_gate


def get_admin_key(
    x_admin_key: Optional[str] = Header(default=None),
    admin_key: Optional[str] = Query(default=None, alias="adminKey"),
) -> Optional[str]:
    return x_admin_key or admin_key


def require_admin(
    key: Optional[str] = Depends(get_admin_key),
    gate: AdminGate = Depends(get_admin_gate),
) -> None:
    gate.require(key)


def get_client_origin(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
