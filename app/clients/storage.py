"""S3 object storage client.

This module issues pre-signed URLs so browsers and the client package can
PUT raw video bytes directly to the bucket, and stores small server-side
artifacts (thumbnails, transcripts, caption files).

Architecture Pattern:
    boto3 is synchronous; object writes run in asyncio.to_thread().
    Pre-signing is local computation and needs no network call.

Usage:
    storage = StorageClient(bucket="studio-media", region="us-east-1")
    url = storage.presigned_put_url("uploads/u1/clip_abc.mp4", "video/mp4")
    await storage.put_object("thumbnails/u1/v1/t.png", png_bytes, "image/png")
"""

import asyncio

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.constants import UPLOAD_URL_EXPIRES_SECONDS
from app.exceptions import CollaboratorUnavailableError, ConfigurationError
from app.utils.logging import get_logger

log = get_logger(__name__)


class StorageClient:
    """Thin wrapper over a boto3 S3 client bound to one bucket."""

    def __init__(self, bucket: str | None, region: str = "us-east-1", s3_client=None):
        self.bucket = bucket
        self.region = region
        self._s3 = s3_client

    @property
    def s3(self):
        if not self.bucket:
            raise ConfigurationError("S3_BUCKET_NAME is not configured")
        if self._s3 is None:
            self._s3 = boto3.client("s3", region_name=self.region)
        return self._s3

    def presigned_put_url(
        self,
        key: str,
        content_type: str,
        expires_in: int = UPLOAD_URL_EXPIRES_SECONDS,
    ) -> str:
        """Return a pre-signed URL that accepts a single PUT of the object.

        Raises:
            ConfigurationError: If no bucket is configured.
            CollaboratorUnavailableError: If signing fails.
        """
        try:
            return self.s3.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            log.error("storage_presign_failed", key=key, operation="put", error=str(e))
            raise CollaboratorUnavailableError("s3", "Could not create upload URL") from e

    def presigned_get_url(self, key: str, expires_in: int = UPLOAD_URL_EXPIRES_SECONDS) -> str:
        """Return a pre-signed URL for reading the object."""
        try:
            return self.s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            log.error("storage_presign_failed", key=key, operation="get", error=str(e))
            raise CollaboratorUnavailableError("s3", "Could not create download URL") from e

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        """Upload bytes to key.

        Raises:
            CollaboratorUnavailableError: If the upload fails.
        """
        try:
            await asyncio.to_thread(
                self.s3.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            log.error("storage_put_failed", key=key, error=str(e))
            raise CollaboratorUnavailableError("s3", "Could not store object") from e

        log.info("storage_put_success", key=key, size_bytes=len(data))
