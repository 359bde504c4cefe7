"""
HTTP routes for the post board API.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from starlette.datastructures import UploadFile

from postboard.dependencies import get_listing, get_pipeline
from postboard.listing import ListingService
from postboard.pipeline import Attachment, PostIngestionPipeline, Submission
from postboard.schemas import ErrorResponse, PostResponse

logger = logging.getLogger(__name__)

INDEX_PATH = Path(__file__).resolve().parent / "static" / "index.html"
JSON_FIELD = "json"
ATTACHMENT_FIELD = "attachment-file"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
    415: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

router = APIRouter()


def _decode_field(data: bytes) -> str:
    # Same fallback Starlette applies to plain form fields, so the json part
    # decodes identically whether or not it carries a filename.
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


async def _read_json_field(value: Union[str, UploadFile, None]) -> Optional[str]:
    # Clients that send the json part with a filename get an UploadFile.
    if isinstance(value, UploadFile):
        return _decode_field(await value.read())
    return value


def _attachment_from(value: Union[str, UploadFile, None]) -> Optional[Attachment]:
    # A plain field, or a file input submitted with nothing selected, counts
    # as no attachment.
    if not isinstance(value, UploadFile) or not value.filename:
        return None
    return Attachment(stream=value.file, size=value.size, filename=value.filename)


@router.get("/", include_in_schema=False)
def index():
    return FileResponse(INDEX_PATH, media_type="text/html")


@router.get("/posts", response_model=list[PostResponse], responses={500: {"model": ErrorResponse}})
def list_posts(listing: ListingService = Depends(get_listing)):
    return [PostResponse.from_post(post) for post in listing.list_all()]


@router.post("/posts", response_model=PostResponse, responses=ERROR_RESPONSES)
async def create_post(
    request: Request,
    pipeline: PostIngestionPipeline = Depends(get_pipeline),
):
    """
    Accepts a multipart form with a ``json`` field holding ``{"name", "body"}``
    and an optional ``attachment-file`` image part.
    """
    form = await request.form()
    try:
        submission = Submission(
            json=await _read_json_field(form.get(JSON_FIELD)),
            attachment=_attachment_from(form.get(ATTACHMENT_FIELD)),
        )
        post = await run_in_threadpool(pipeline.ingest, submission)
    finally:
        await form.close()
    return PostResponse.from_post(post)
