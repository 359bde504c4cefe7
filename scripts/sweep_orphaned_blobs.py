"""
Delete blobs that no stored post references.

An upload followed by a failed insert leaves such a blob behind. Run this
periodically (e.g. from cron); it is safe to run while the API is serving.
"""

from __future__ import annotations

import argparse
import logging
from datetime import timedelta

from postboard.config import get_settings
from postboard.dependencies import open_backends
from postboard.sweep import sweep_orphaned_blobs

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Sweep orphaned blobs")
    parser.add_argument(
        "--grace-minutes",
        type=int,
        default=60,
        help="Leave blobs younger than this alone",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report orphaned blobs without deleting them",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    settings = get_settings()
    if settings.use_in_memory_backends or not settings.resolved_database_url():
        # Without the real post store every blob would look orphaned.
        logger.error("A database must be configured to sweep blobs")
        return 1

    backends = open_backends(settings)
    try:
        count = sweep_orphaned_blobs(
            backends.post_store,
            backends.blob_store,
            grace_period=timedelta(minutes=args.grace_minutes),
            dry_run=args.dry_run,
        )
    finally:
        backends.close()

    logger.info("%s %d orphaned blobs", "Found" if args.dry_run else "Deleted", count)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
