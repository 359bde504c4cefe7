"""
Dependency wiring for the FastAPI app.

Store handles are opened once by the application lifespan and kept on
``app.state``; request handlers reach them through the getters below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request

from postboard.classifier import AttachmentClassifier
from postboard.config import Settings
from postboard.db import InMemoryPostStore, PostStore, SqlPostStore
from postboard.listing import ListingService
from postboard.pipeline import PostIngestionPipeline
from postboard.storage import BlobStore, InMemoryBlobStore, LocalBlobStore, S3BlobStore

logger = logging.getLogger(__name__)


@dataclass
class Backends:
    post_store: PostStore
    blob_store: BlobStore

    def close(self) -> None:
        self.blob_store.close()
        self.post_store.close()


def build_post_store(settings: Settings) -> PostStore:
    database_url = settings.resolved_database_url()
    if settings.use_in_memory_backends or not database_url:
        logger.warning("No database configured, posts are kept in memory")
        return InMemoryPostStore()
    return SqlPostStore(database_url, timeout=settings.db_timeout_seconds)


def build_blob_store(settings: Settings) -> BlobStore:
    backend = settings.resolved_blob_backend()
    if backend == "memory":
        return InMemoryBlobStore()
    if backend == "local":
        return LocalBlobStore(settings.local_blob_dir, settings.local_blob_url_prefix)
    if not settings.blob_bucket:
        raise ValueError("BLOB_BUCKET is required for the s3 blob backend")
    return S3BlobStore(
        bucket=settings.blob_bucket,
        endpoint=settings.blob_endpoint,
        region=settings.blob_region,
        access_key_id=settings.aws_access_key_id,
        secret_access_key=settings.aws_secret_access_key,
        public_base_url=settings.blob_public_base_url,
        timeout=settings.upload_timeout_seconds,
    )


def open_backends(settings: Settings) -> Backends:
    post_store = build_post_store(settings)
    blob_store = build_blob_store(settings)
    logger.info(
        "Opened backends: posts=%s blobs=%s",
        type(post_store).__name__,
        type(blob_store).__name__,
    )
    return Backends(post_store=post_store, blob_store=blob_store)


def build_services(app, backends: Backends, settings: Settings) -> None:
    classifier = AttachmentClassifier(max_bytes=settings.max_attachment_bytes)
    app.state.backends = backends
    app.state.pipeline = PostIngestionPipeline(
        classifier, backends.blob_store, backends.post_store
    )
    app.state.listing = ListingService(backends.post_store)


def get_pipeline(request: Request) -> PostIngestionPipeline:
    return request.app.state.pipeline


def get_listing(request: Request) -> ListingService:
    return request.app.state.listing
