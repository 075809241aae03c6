"""Runtime configuration read from environment variables.

Every setting has a default so the server starts with nothing configured:
SQLite under ~/.edna-quiz, no webhook, and S3 credentials from the usual AWS
environment/instance chain.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = os.path.expanduser("~/.edna-quiz")


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %d", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


class Settings(BaseModel):
    """Deployment configuration for the quiz backend."""

    data_dir: Path = Path(DEFAULT_DATA_DIR)
    database_url: Optional[str] = None

    s3_bucket: str = "brandscaling-edna-pdf"
    aws_region: str = "us-east-1"
    s3_endpoint_url: Optional[str] = None
    s3_key_prefix: str = "pdfs/"

    public_base_url: str = "http://localhost:8080"
    ghl_webhook_url: Optional[str] = None

    download_token_ttl_days: int = 7
    presigned_url_ttl_seconds: int = 7 * 60 * 60
    webhook_timeout_seconds: float = 10.0
    render_timeout_seconds: float = 60.0
    pipeline_concurrency: int = 2
    token_reap_interval_hours: int = 24

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        return cls(
            data_dir=Path(_env_str("DATA_DIR", DEFAULT_DATA_DIR)).expanduser(),
            database_url=_env_str("DATABASE_URL"),
            s3_bucket=_env_str("S3_BUCKET_NAME", "brandscaling-edna-pdf"),
            aws_region=_env_str("AWS_REGION", "us-east-1"),
            s3_endpoint_url=_env_str("S3_ENDPOINT_URL"),
            s3_key_prefix=_env_str("S3_KEY_PREFIX", "pdfs/"),
            public_base_url=_env_str("PUBLIC_BACKEND_BASE_URL", "http://localhost:8080").rstrip("/"),
            ghl_webhook_url=_env_str("GHL_INBOUND_WEBHOOK_URL"),
            download_token_ttl_days=_env_int("DOWNLOAD_TOKEN_TTL_DAYS", 7),
            presigned_url_ttl_seconds=_env_int("PRESIGNED_URL_TTL_SECONDS", 7 * 60 * 60),
            webhook_timeout_seconds=_env_float("WEBHOOK_TIMEOUT_SECONDS", 10.0),
            render_timeout_seconds=_env_float("RENDER_TIMEOUT_SECONDS", 60.0),
            pipeline_concurrency=max(1, _env_int("PIPELINE_CONCURRENCY", 2)),
            token_reap_interval_hours=_env_int("TOKEN_REAP_INTERVAL_HOURS", 24),
            host=_env_str("HOST", "0.0.0.0"),
            port=_env_int("PORT", 8080),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def temp_dir(self) -> Path:
        """Scratch directory for rendered PDFs awaiting upload."""
        return self.data_dir / "tmp"

    def resolved_database_url(self) -> str:
        """The configured database URL, or SQLite inside the data directory."""
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{self.data_dir / 'data.db'}"

    def download_link(self, token: str) -> str:
        return f"{self.public_base_url}/download?token={token}"
