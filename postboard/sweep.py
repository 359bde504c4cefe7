"""
Reconciliation sweep for blobs that no stored post references.

Orphans appear when an upload succeeds and the following post insert fails.
Blobs younger than the grace period are never touched, so uploads whose
insert is still in flight survive the sweep.
"""

from __future__ import annotations

import logging
import posixpath
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set
from urllib.parse import urlparse

from postboard.db import PostStore
from postboard.storage import BlobInfo, BlobStore

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = timedelta(hours=1)


def referenced_names(post_store: PostStore) -> Set[str]:
    names = set()
    for post in post_store.list_all():
        if post.image_url:
            names.add(posixpath.basename(urlparse(post.image_url).path))
    return names


def find_orphaned_blobs(
    post_store: PostStore,
    blob_store: BlobStore,
    *,
    grace_period: timedelta = DEFAULT_GRACE_PERIOD,
    now: Optional[datetime] = None,
) -> List[BlobInfo]:
    # Blobs are listed before posts so that a post inserted in between is
    # still seen as a reference.
    blobs = blob_store.list_blobs()
    referenced = referenced_names(post_store)
    cutoff = (now or datetime.now(timezone.utc)) - grace_period
    orphans = []
    for blob in blobs:
        if blob.name in referenced:
            continue
        updated_at = blob.updated_at
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        if updated_at <= cutoff:
            orphans.append(blob)
    return orphans


def sweep_orphaned_blobs(
    post_store: PostStore,
    blob_store: BlobStore,
    *,
    grace_period: timedelta = DEFAULT_GRACE_PERIOD,
    dry_run: bool = False,
) -> int:
    orphans = find_orphaned_blobs(post_store, blob_store, grace_period=grace_period)
    for blob in orphans:
        if dry_run:
            logger.info("Would delete orphaned blob %s", blob.name)
            continue
        logger.info("Deleting orphaned blob %s", blob.name)
        blob_store.delete(blob.name)
    return len(orphans)
