"""
Attachment classification: size policy plus image format sniffing.

Pillow's ``Image.open`` only parses the file header; pixel data is not
decoded until ``load()`` is called, which never happens here.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import BinaryIO, Dict, Iterable, Optional

from PIL import Image

from postboard.config import DEFAULT_MAX_ATTACHMENT_BYTES
from postboard.errors import AttachmentIOError, AttachmentTooLarge, UnsupportedFormat

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageFormat:
    tag: str
    extension: str
    content_type: str


SUPPORTED_FORMATS: Dict[str, ImageFormat] = {
    "JPEG": ImageFormat("JPEG", "jpeg", "image/jpeg"),
    "PNG": ImageFormat("PNG", "png", "image/png"),
    "GIF": ImageFormat("GIF", "gif", "image/gif"),
    "WEBP": ImageFormat("WEBP", "webp", "image/webp"),
}


def _measure(stream: BinaryIO) -> int:
    size = stream.seek(0, io.SEEK_END)
    stream.seek(0, io.SEEK_SET)
    return size


class AttachmentClassifier:
    def __init__(
        self,
        max_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES,
        formats: Optional[Iterable[str]] = None,
    ):
        self.max_bytes = max_bytes
        tags = list(formats) if formats is not None else list(SUPPORTED_FORMATS)
        unknown = [tag for tag in tags if tag not in SUPPORTED_FORMATS]
        if unknown:
            raise ValueError(f"Unsupported image formats: {unknown}")
        self.formats = [SUPPORTED_FORMATS[tag] for tag in tags]

    def classify(self, stream: BinaryIO, declared_size: Optional[int] = None) -> ImageFormat:
        """
        Return the image format of ``stream`` and rewind it to the start.

        The size is checked first; an oversized attachment is rejected without
        reading from the stream. ``declared_size`` is the length reported by
        the transport; when missing, the stream length is measured by seeking.
        """
        if declared_size is None:
            try:
                declared_size = _measure(stream)
            except (OSError, ValueError) as exc:
                raise AttachmentIOError(f"Seek error, {exc}") from exc
        if declared_size > self.max_bytes:
            raise AttachmentTooLarge(
                f"Attachment is {declared_size} bytes, limit is {self.max_bytes}"
            )

        try:
            stream.seek(0, io.SEEK_SET)
        except (OSError, ValueError) as exc:
            raise AttachmentIOError(f"Seek error, {exc}") from exc

        decode_error = None
        try:
            with Image.open(stream, formats=[fmt.tag for fmt in self.formats]) as img:
                tag = img.format
        except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
            # Unrecognized, truncated and corrupt headers all land here.
            decode_error = exc

        try:
            stream.seek(0, io.SEEK_SET)
        except (OSError, ValueError) as exc:
            raise AttachmentIOError(f"Seek error, {exc}") from exc

        if decode_error is not None:
            raise UnsupportedFormat(
                "DecodeConfig error, unrecognized image format"
            ) from decode_error
        return SUPPORTED_FORMATS[tag]
