"""
Configuration and settings for the post board service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional
from urllib.parse import quote

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_ATTACHMENT_BYTES = 2 * 1024 * 1024


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Relational store. DATABASE_URL wins; otherwise a Cloud SQL (MySQL)
    # socket DSN is assembled from the DB_* variables.
    database_url: Optional[str] = Field(
        default=None, validation_alias="DATABASE_URL"
    )
    db_user: Optional[str] = Field(default=None, validation_alias="DB_USER")
    db_pass: Optional[str] = Field(default=None, validation_alias="DB_PASS")
    db_name: Optional[str] = Field(default=None, validation_alias="DB_NAME")
    instance_connection_name: Optional[str] = Field(
        default=None, validation_alias="INSTANCE_CONNECTION_NAME"
    )
    db_socket_dir: str = Field(default="/cloudsql", validation_alias="DB_SOCKET_DIR")
    db_timeout_seconds: Optional[float] = Field(
        default=None, validation_alias="DB_TIMEOUT_SECONDS"
    )

    # Blob store
    blob_backend: Optional[Literal["memory", "local", "s3"]] = Field(
        default=None, validation_alias="BLOB_BACKEND"
    )
    blob_bucket: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("BLOB_BUCKET", "GCS_BUCKET")
    )
    blob_endpoint: Optional[str] = Field(default=None, validation_alias="BLOB_ENDPOINT")
    blob_region: Optional[str] = Field(default=None, validation_alias="BLOB_REGION")
    blob_public_base_url: Optional[str] = Field(
        default=None, validation_alias="BLOB_PUBLIC_BASE_URL"
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, validation_alias="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, validation_alias="AWS_SECRET_ACCESS_KEY"
    )
    local_blob_dir: str = Field(default="data/blobs", validation_alias="LOCAL_BLOB_DIR")
    local_blob_url_prefix: str = Field(
        default="/blobs", validation_alias="LOCAL_BLOB_URL_PREFIX"
    )

    # Ingestion limits
    upload_timeout_seconds: float = Field(
        default=60.0, validation_alias="UPLOAD_TIMEOUT_SECONDS"
    )
    max_attachment_bytes: int = Field(
        default=DEFAULT_MAX_ATTACHMENT_BYTES, validation_alias="MAX_ATTACHMENT_BYTES"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="POSTBOARD_USE_IN_MEMORY_BACKENDS"
    )

    # Server
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=8080, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    def resolved_database_url(self) -> Optional[str]:
        if self.database_url:
            return self.database_url
        parts = (self.db_user, self.db_pass, self.db_name, self.instance_connection_name)
        if not all(parts):
            return None
        socket = f"{self.db_socket_dir.rstrip('/')}/{self.instance_connection_name}"
        return (
            f"mysql+pymysql://{quote(self.db_user, safe='')}:{quote(self.db_pass, safe='')}"
            f"@/{self.db_name}?unix_socket={quote(socket, safe='/')}"
        )

    def resolved_blob_backend(self) -> str:
        if self.use_in_memory_backends:
            return "memory"
        if self.blob_backend:
            return self.blob_backend
        return "s3" if self.blob_bucket else "local"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
