"""S3 object storage for rendered PDF reports.

Objects are private; readers only ever get time-limited presigned GET URLs.
boto3 is synchronous, so every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import StorageError
from ..models import StoredArtifact

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
MAX_PRESIGN_SECONDS = 7 * 24 * 60 * 60  # SigV4 limit


class S3Storage:
    """Uploads PDFs to one bucket and presigns downloads for them."""

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        key_prefix: str = "pdfs/",
        client: Any = None,
    ):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.key_prefix = key_prefix
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.region,
                endpoint_url=self.endpoint_url,
                config=Config(signature_version="s3v4"),
            )
        return self._client

    def key_for(self, file_name: str) -> str:
        return f"{self.key_prefix}{file_name}"

    def _presign_sync(self, key: str, ttl_seconds: int) -> str:
        return self.client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=min(int(ttl_seconds), MAX_PRESIGN_SECONDS),
        )

    def _upload_sync(self, local_path: Path, key: str) -> StoredArtifact:
        self.client.upload_file(
            str(local_path),
            self.bucket,
            key,
            ExtraArgs={"ContentType": PDF_CONTENT_TYPE},
        )
        return StoredArtifact(key=key, url=self._presign_sync(key, MAX_PRESIGN_SECONDS))

    async def upload(self, local_path: Path | str, key: str) -> StoredArtifact:
        """Upload a local PDF under ``key``.

        Returns the key and a presigned URL valid for seven days.
        """
        try:
            artifact = await asyncio.to_thread(self._upload_sync, Path(local_path), key)
        except (BotoCoreError, ClientError, OSError) as exc:
            raise StorageError(f"S3 upload of {key} failed: {exc}") from exc
        logger.info("PDF uploaded to s3://%s/%s", self.bucket, key)
        return artifact

    async def presign(self, key: str, ttl_seconds: int) -> str:
        """A fresh presigned GET URL for ``key``."""
        try:
            url = await asyncio.to_thread(self._presign_sync, key, ttl_seconds)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Could not presign {key}: {exc}") from exc
        logger.info("Presigned URL generated for %s (expires in %.1fh)", key, ttl_seconds / 3600)
        return url
