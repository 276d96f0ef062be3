from __future__ import annotations

import io

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import ClientError

from app.core.config import Settings

logger = structlog.get_logger(__name__)


class ObjectStorage:
    """S3-compatible blob store for papers and verification documents."""

    def __init__(self, settings: Settings, client=None):
        self.bucket = settings.s3_bucket
        self._settings = settings
        self._client = client

    def _get_s3_client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=self._settings.s3_endpoint,
                aws_access_key_id=self._settings.s3_access_key,
                aws_secret_access_key=self._settings.s3_secret_key,
                region_name=self._settings.s3_region,
                config=Config(signature_version="s3v4"),
            )
        return self._client

    def ensure_bucket_exists(self) -> None:
        s3 = self._get_s3_client()
        try:
            s3.head_bucket(Bucket=self.bucket)
        except ClientError:
            s3.create_bucket(Bucket=self.bucket)
            logger.info("storage_bucket_created", bucket=self.bucket)

    def public_url(self, object_key: str) -> str:
        base = self._settings.s3_public_url or f"{(self._settings.s3_endpoint or '').rstrip('/')}/{self.bucket}"
        return f"{base.rstrip('/')}/{object_key}"

    def upload_bytes(self, data: bytes, object_key: str, content_type: str) -> str:
        """Upload ``data`` under ``object_key`` and return its public URL."""
        s3 = self._get_s3_client()
        s3.upload_fileobj(
            Fileobj=io.BytesIO(data),
            Bucket=self.bucket,
            Key=object_key,
            ExtraArgs={"ContentType": content_type},
        )
        logger.info("storage_object_uploaded", key=object_key, size_bytes=len(data))
        return self.public_url(object_key)
