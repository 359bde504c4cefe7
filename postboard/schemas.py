"""
Pydantic schemas for the post board HTTP API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from postboard.db import Post


class PostResponse(BaseModel):
    name: str
    body: str
    imageurl: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_post(cls, post: Post) -> "PostResponse":
        return cls(**post.as_dict())


class ErrorResponse(BaseModel):
    error: str
