"""
Post store abstraction for SQL databases and an in-memory test implementation.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import List, Optional, Protocol

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine, func, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from postboard.errors import PostStoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Post:
    name: str
    body: str
    image_url: str = ""
    created_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "body": self.body,
            "imageurl": self.image_url,
            "created_at": self.created_at,
        }


class PostStore(Protocol):
    """Interface for post persistence."""

    def insert(self, post: Post) -> Post:
        ...

    def list_all(self) -> List[Post]:
        ...

    def close(self) -> None:
        ...


class InMemoryPostStore:
    """Simple in-memory post store for development and tests."""

    def __init__(self):
        self.posts: List[Post] = []
        self._lock = threading.Lock()

    def insert(self, post: Post) -> Post:
        with self._lock:
            now = datetime.now(timezone.utc)
            if self.posts and self.posts[-1].created_at > now:
                now = self.posts[-1].created_at
            stored = replace(post, created_at=now)
            self.posts.append(stored)
            return stored

    def list_all(self) -> List[Post]:
        with self._lock:
            return list(self.posts)

    def reset(self) -> None:
        """Clear all stored posts (useful in tests)."""
        with self._lock:
            self.posts.clear()

    def close(self) -> None:
        pass


def _timeout_connect_args(database_url: str, timeout: Optional[float]) -> dict:
    if not timeout:
        return {}
    backend = make_url(database_url).get_backend_name()
    if backend == "postgresql":
        return {"options": f"-c statement_timeout={int(timeout * 1000)}"}
    if backend == "mysql":
        return {"read_timeout": int(timeout), "write_timeout": int(timeout)}
    if backend == "sqlite":
        return {"timeout": timeout}
    logger.warning("No timeout support for %s; ignoring db timeout", backend)
    return {}


def _utc_connect_args(database_url: str) -> dict:
    # MySQL NOW() follows the session time zone.
    if make_url(database_url).get_backend_name() == "mysql":
        return {"init_command": "SET time_zone = '+00:00'"}
    return {}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite and MySQL hand back naive datetimes; their now() is UTC here.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlPostStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (Postgres,
    MySQL, or SQLite for tests).
    """

    def __init__(self, database_url: str, *, timeout: Optional[float] = None):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlPostStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
            connect_args={
                **_timeout_connect_args(database_url, timeout),
                **_utc_connect_args(database_url),
            },
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_post(self, row: "PostRow") -> Post:
        return Post(
            name=row.name,
            body=row.body,
            image_url=row.imageurl or "",
            created_at=_as_utc(row.created_at),
        )

    def insert(self, post: Post) -> Post:
        try:
            with self.Session() as session:
                row = PostRow(name=post.name, body=post.body, imageurl=post.image_url)
                session.add(row)
                session.commit()
                # created_at is filled in by the database.
                session.refresh(row)
                return self._to_post(row)
        except SQLAlchemyError as exc:
            raise PostStoreError(f"Insert error, {exc}") from exc

    def list_all(self) -> List[Post]:
        try:
            with self.Session() as session:
                rows = session.execute(select(PostRow).order_by(PostRow.id.asc())).scalars()
                return [self._to_post(row) for row in rows]
        except SQLAlchemyError as exc:
            raise PostStoreError(f"Query error, {exc}") from exc

    def close(self) -> None:
        self.engine.dispose()


Base = declarative_base()


class PostRow(Base):
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    imageurl = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
