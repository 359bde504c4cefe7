"""
Post ingestion: turns one decoded submission into one persisted post.

The blob upload always completes before the post row is inserted, so a
stored post never references a missing blob. If the insert fails after a
successful upload, the blob is left behind as an orphan; see
``postboard.sweep`` for the cleanup job.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import BinaryIO, Callable, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from postboard.classifier import AttachmentClassifier
from postboard.db import Post, PostStore
from postboard.errors import (
    BlobWriteError,
    EmptyPayload,
    InternalError,
    MalformedPayload,
    PersistenceError,
    PostStoreError,
    StorageUnavailable,
)
from postboard.storage import BlobStore

logger = logging.getLogger(__name__)


@dataclass
class Attachment:
    stream: BinaryIO
    size: Optional[int] = None
    filename: Optional[str] = None


@dataclass
class Submission:
    json: Optional[str]
    attachment: Optional[Attachment] = None


class SubmissionPayload(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")

    name: str = ""
    body: str = ""


def decode_payload(raw: Optional[str]) -> SubmissionPayload:
    if raw is None or not raw.strip():
        raise EmptyPayload("Empty json error")
    try:
        payload = SubmissionPayload.model_validate_json(raw)
    except ValidationError as exc:
        raise MalformedPayload(f"Unmarshal error, {exc.errors()[0]['msg']}") from exc
    if not payload.name or not payload.body:
        raise EmptyPayload("Both name and body are required")
    return payload


def random_object_name(extension: str) -> str:
    return f"{uuid.uuid4().hex}.{extension}"


class PostIngestionPipeline:
    def __init__(
        self,
        classifier: AttachmentClassifier,
        blob_store: BlobStore,
        post_store: PostStore,
        name_factory: Callable[[str], str] = random_object_name,
    ):
        self.classifier = classifier
        self.blob_store = blob_store
        self.post_store = post_store
        self.name_factory = name_factory

    def _store_attachment(self, attachment: Attachment) -> str:
        fmt = self.classifier.classify(attachment.stream, attachment.size)

        try:
            object_name = self.name_factory(fmt.extension)
        except Exception as exc:
            raise InternalError(f"randomFilename error, {exc}") from exc
        if not object_name:
            raise InternalError("randomFilename error, empty object name")

        try:
            address = self.blob_store.upload(
                object_name, attachment.stream, content_type=fmt.content_type
            )
        except BlobWriteError as exc:
            logger.error("Upload of %s failed: %s", object_name, exc)
            raise StorageUnavailable(f"Upload error, {exc}") from exc
        logger.info("Stored %s attachment as %s", fmt.tag, object_name)
        return address

    def ingest(self, submission: Submission) -> Post:
        payload = decode_payload(submission.json)

        image_url = ""
        if submission.attachment is not None:
            image_url = self._store_attachment(submission.attachment)

        try:
            created = self.post_store.insert(
                Post(name=payload.name, body=payload.body, image_url=image_url)
            )
        except PostStoreError as exc:
            if image_url:
                logger.error("Insert failed, orphaned blob at %s: %s", image_url, exc)
            else:
                logger.error("Insert failed: %s", exc)
            raise PersistenceError(f"Insert error, {exc}") from exc

        logger.info("Created post by %r at %s", created.name, created.created_at)
        return created
