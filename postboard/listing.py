from __future__ import annotations

import logging
from typing import List

from postboard.db import Post, PostStore
from postboard.errors import PersistenceError, PostStoreError

logger = logging.getLogger(__name__)


class ListingService:
    """Reads every stored post, oldest first."""

    def __init__(self, post_store: PostStore):
        self.post_store = post_store

    def list_all(self) -> List[Post]:
        try:
            return list(self.post_store.list_all())
        except PostStoreError as exc:
            logger.error("Listing posts failed: %s", exc)
            raise PersistenceError(f"GetAll error, {exc}") from exc
