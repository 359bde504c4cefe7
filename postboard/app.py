"""
FastAPI application entry point for the post board service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from postboard.config import Settings, get_settings
from postboard.db import PostStore
from postboard.dependencies import (
    Backends,
    build_blob_store,
    build_post_store,
    build_services,
    open_backends,
)
from postboard.errors import PostboardError
from postboard.routes import router
from postboard.storage import BlobStore, LocalBlobStore

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def handle_postboard_error(request: Request, exc: PostboardError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return _error(exc.status_code, exc.message)


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unknown paths and unsupported methods are refused outright.
    if exc.status_code in (404, 405):
        return _error(403, "Forbidden")
    return _error(exc.status_code, str(exc.detail))


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(400, "Invalid request")


def _mount_local_blobs(app: FastAPI, settings: Settings, blob_store: Optional[BlobStore]) -> None:
    if isinstance(blob_store, LocalBlobStore):
        directory, prefix = str(blob_store.root), blob_store.url_prefix
    elif blob_store is None and settings.resolved_blob_backend() == "local":
        directory, prefix = settings.local_blob_dir, settings.local_blob_url_prefix.rstrip("/")
    else:
        return
    # Only a same-origin path prefix can be served from here.
    if prefix.startswith("/"):
        app.mount(prefix, StaticFiles(directory=directory, check_dir=False), name="blobs")


def create_app(
    settings: Optional[Settings] = None,
    *,
    post_store: Optional[PostStore] = None,
    blob_store: Optional[BlobStore] = None,
) -> FastAPI:
    """
    Build the application. Store handles passed in are used as-is and stay
    owned by the caller; otherwise they are opened at startup from
    ``settings`` and closed at shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned: Optional[Backends] = None
        if not hasattr(app.state, "pipeline"):
            owned = open_backends(settings)
            build_services(app, owned, settings)
        try:
            yield
        finally:
            if owned is not None:
                owned.close()
                logger.info("Closed backends")

    app = FastAPI(title="Postboard", version="0.1.0", lifespan=lifespan)
    app.add_exception_handler(PostboardError, handle_postboard_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.include_router(router)

    if post_store is not None or blob_store is not None:
        backends = Backends(
            post_store=post_store or build_post_store(settings),
            blob_store=blob_store or build_blob_store(settings),
        )
        build_services(app, backends, settings)
        _mount_local_blobs(app, settings, backends.blob_store)
    else:
        _mount_local_blobs(app, settings, None)
    return app


app = create_app()
