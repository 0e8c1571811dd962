"""
S3 storage gateway for stored video assets.

Owns every interaction with the object store: key generation, uploads,
presigned upload/download URLs and deletion. Each stored object carries a
per-object secret key in its user metadata; reads and deletes are only
allowed when the caller presents the same secret key.
"""

import asyncio
import hmac
import re
import secrets
import time
from datetime import datetime, timezone
from functools import partial
from typing import Optional, Dict, Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
import structlog

from config import settings
from services.errors import AccessDeniedError, NotFoundError, StorageError

logger = structlog.get_logger()

# S3 returns user metadata keys lowercased, so only lowercase names are used
METADATA_SECRET_KEY = "secret-key"
METADATA_VIDEO_ID = "video-id"
METADATA_OWNER = "owner"
METADATA_UPLOADED_AT = "uploaded-at"

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def sanitize_key_segment(value: str) -> str:
    """Replace every character outside [A-Za-z0-9._-] with an underscore."""
    return _UNSAFE_KEY_CHARS.sub("_", value)


def generate_storage_key(owner_id: str, video_id: str, filename: str) -> str:
    """
    Generate a unique S3 key for a video.

    Args:
        owner_id: Owner identifier (user id or email)
        video_id: Video id
        filename: Original filename; sanitized before use

    Returns:
        Key of the form videos/{ownerId}/{videoId}/{epochMillis}_{filename}

    Examples:
        >>> generate_storage_key("u1", "video_1", "My Tour.mp4")
        "videos/u1/video_1/1700000000000_My_Tour.mp4"
    """
    timestamp = int(time.time() * 1000)
    return (
        f"videos/{sanitize_key_segment(owner_id)}/{sanitize_key_segment(video_id)}/"
        f"{timestamp}_{sanitize_key_segment(filename)}"
    )


def generate_secret_key() -> str:
    """Generate a 32-byte hex-encoded capability token for one stored object."""
    return secrets.token_hex(32)


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES


class VideoStorageGateway:
    """
    Gateway for video objects in S3 with secret-key access control.
    """

    def __init__(self, s3_client=None, bucket_name: Optional[str] = None):
        """
        Initialize the S3 client.

        Args:
            s3_client: Optional preconfigured boto3 S3 client
            bucket_name: Optional bucket override (default: settings.STORAGE_BUCKET)
        """
        if s3_client is None:
            client_config = Config(
                signature_version="s3v4",
                s3={"addressing_style": "path" if settings.S3_FORCE_PATH_STYLE else "auto"},
            )
            s3_client = boto3.client(
                "s3",
                region_name=settings.AWS_REGION,
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
                endpoint_url=settings.S3_ENDPOINT_URL,
                config=client_config,
            )
        self.s3_client = s3_client
        self.bucket_name = bucket_name or settings.STORAGE_BUCKET

        logger.info(
            "video_storage_initialized",
            bucket=self.bucket_name,
            region=settings.AWS_REGION,
            endpoint=settings.S3_ENDPOINT_URL,
        )

    def _head_with_secret(self, s3_key: str, secret_key: str) -> Dict[str, Any]:
        """
        Fetch object metadata and check the caller's secret key against it.

        Raises:
            NotFoundError: If the object does not exist
            AccessDeniedError: If the secret key does not match
            StorageError: For any other store failure
        """
        try:
            head = self.s3_client.head_object(Bucket=self.bucket_name, Key=s3_key)
        except ClientError as e:
            if _is_not_found(e):
                raise NotFoundError("Video not found in storage", storageKey=s3_key)
            raise StorageError(f"Failed to read object metadata: {e}", storageKey=s3_key)
        except BotoCoreError as e:
            raise StorageError(f"Failed to read object metadata: {e}", storageKey=s3_key)

        stored_secret = (head.get("Metadata") or {}).get(METADATA_SECRET_KEY, "")
        if not secret_key or not hmac.compare_digest(stored_secret.encode(), secret_key.encode()):
            logger.warning("s3_secret_key_mismatch", s3_key=s3_key)
            raise AccessDeniedError("Invalid secret key for video access", storageKey=s3_key)
        return head

    def upload_direct(
        self,
        s3_key: str,
        data: bytes,
        content_type: str,
        metadata: Dict[str, str],
    ) -> str:
        """
        Upload bytes to S3, binding the caller's metadata (including the
        secret key) to the object.

        Returns:
            S3 key of uploaded object

        Raises:
            StorageError if upload fails
        """
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=data,
                ContentType=content_type,
                Metadata={k: str(v) for k, v in metadata.items()},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("s3_upload_failed", s3_key=s3_key, error=str(e), exc_info=True)
            raise StorageError(f"Failed to upload video to storage: {e}", storageKey=s3_key)

        logger.info(
            "s3_video_uploaded",
            bucket=self.bucket_name,
            s3_key=s3_key,
            content_type=content_type,
            size=len(data),
        )
        return s3_key

    def create_upload_handle(
        self,
        owner_id: str,
        video_id: str,
        filename: str,
        content_type: str = "video/mp4",
        expiry: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Mint a storage key, a fresh secret key and a presigned PUT URL for a
        writer that uploads the object itself.

        The presigned signature covers the metadata headers, so the writer must
        send them unchanged (returned as requiredHeaders).

        Returns:
            {storageKey, secretKey, uploadUrl, expiresIn, requiredHeaders}
        """
        if expiry is None:
            expiry = settings.UPLOAD_URL_EXPIRY

        s3_key = generate_storage_key(owner_id, video_id, filename)
        secret_key = generate_secret_key()
        metadata = {
            METADATA_OWNER: owner_id,
            METADATA_VIDEO_ID: video_id,
            METADATA_SECRET_KEY: secret_key,
            METADATA_UPLOADED_AT: datetime.now(timezone.utc).isoformat(),
        }

        try:
            upload_url = self.s3_client.generate_presigned_url(
                "put_object",
                Params={
                    "Bucket": self.bucket_name,
                    "Key": s3_key,
                    "ContentType": content_type,
                    "Metadata": metadata,
                },
                ExpiresIn=expiry,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("s3_upload_url_failed", s3_key=s3_key, error=str(e), exc_info=True)
            raise StorageError(f"Failed to create upload URL: {e}", storageKey=s3_key)

        required_headers = {"Content-Type": content_type}
        required_headers.update({f"x-amz-meta-{k}": v for k, v in metadata.items()})

        logger.info("s3_upload_url_generated", s3_key=s3_key, expiry_seconds=expiry)

        return {
            "storageKey": s3_key,
            "secretKey": secret_key,
            "uploadUrl": upload_url,
            "expiresIn": expiry,
            "requiredHeaders": required_headers,
        }

    def create_download_url(
        self,
        s3_key: str,
        secret_key: str,
        expiry: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Generate a presigned download URL after verifying the secret key.

        Args:
            s3_key: S3 object key
            secret_key: Secret key the object was stored with
            expiry: URL expiration in seconds (default: from settings)

        Returns:
            {downloadUrl, expiresIn}

        Raises:
            NotFoundError: Object does not exist
            AccessDeniedError: Secret key mismatch
            StorageError: Any other store failure
        """
        if expiry is None:
            expiry = settings.PRESIGNED_URL_EXPIRY

        self._head_with_secret(s3_key, secret_key)

        try:
            url = self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": s3_key},
                ExpiresIn=expiry,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("s3_presigned_url_failed", s3_key=s3_key, error=str(e), exc_info=True)
            raise StorageError(f"Failed to generate presigned URL: {e}", storageKey=s3_key)

        logger.info("s3_presigned_url_generated", s3_key=s3_key, expiry_seconds=expiry)

        return {"downloadUrl": url, "expiresIn": expiry}

    def delete(self, s3_key: str, secret_key: str) -> bool:
        """
        Delete an object after verifying the secret key.

        Returns:
            True if the object was deleted, False if verification or deletion
            failed (logged, never raised)
        """
        try:
            self._head_with_secret(s3_key, secret_key)
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=s3_key)
        except (AccessDeniedError, NotFoundError, StorageError) as e:
            logger.warning("s3_delete_rejected", s3_key=s3_key, error=str(e))
            return False
        except (ClientError, BotoCoreError) as e:
            logger.error("s3_delete_failed", s3_key=s3_key, error=str(e), exc_info=True)
            return False

        logger.info("s3_video_deleted", bucket=self.bucket_name, s3_key=s3_key)
        return True

    def get_object_metadata(self, s3_key: str, secret_key: str) -> Dict[str, Any]:
        """
        Check whether an object exists and return its stored attributes.

        Returns:
            {exists: False} for a missing object, otherwise
            {exists, size, contentType, lastModified, metadata}

        Raises:
            AccessDeniedError: Secret key mismatch
            StorageError: Any other store failure
        """
        try:
            head = self._head_with_secret(s3_key, secret_key)
        except NotFoundError:
            return {"exists": False}

        return {
            "exists": True,
            "size": head.get("ContentLength"),
            "contentType": head.get("ContentType"),
            "lastModified": head.get("LastModified"),
            "metadata": {
                k: v for k, v in (head.get("Metadata") or {}).items() if k != METADATA_SECRET_KEY
            },
        }

    # Async wrappers for use in request handlers

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def upload_direct_async(
        self,
        s3_key: str,
        data: bytes,
        content_type: str,
        metadata: Dict[str, str],
    ) -> str:
        """Async wrapper for upload_direct."""
        return await self._run(self.upload_direct, s3_key, data, content_type, metadata)

    async def create_upload_handle_async(
        self,
        owner_id: str,
        video_id: str,
        filename: str,
        content_type: str = "video/mp4",
    ) -> Dict[str, Any]:
        """Async wrapper for create_upload_handle."""
        return await self._run(self.create_upload_handle, owner_id, video_id, filename, content_type)

    async def create_download_url_async(
        self,
        s3_key: str,
        secret_key: str,
        expiry: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Async wrapper for create_download_url."""
        return await self._run(self.create_download_url, s3_key, secret_key, expiry)

    async def delete_async(self, s3_key: str, secret_key: str) -> bool:
        """Async wrapper for delete."""
        return await self._run(self.delete, s3_key, secret_key)

    async def get_object_metadata_async(self, s3_key: str, secret_key: str) -> Dict[str, Any]:
        """Async wrapper for get_object_metadata."""
        return await self._run(self.get_object_metadata, s3_key, secret_key)


def validate_s3_key(s3_key: Optional[str], field_name: str = "S3 key") -> Optional[str]:
    """
    Validate that an S3 key is not a URL.

    Keys look like "videos/{owner}/{id}/file.mp4". Presigned URLs expire, so
    they must never be persisted in place of a key.

    Raises:
        ValueError: If s3_key appears to be a URL instead of a key
    """
    if s3_key is None:
        return None

    s3_key = s3_key.strip()

    if s3_key.startswith(("http://", "https://", "s3://")):
        raise ValueError(
            f"{field_name} must be an S3 key (e.g., 'videos/{{owner}}/{{id}}/file.mp4'), "
            f"not a URL. Received: {s3_key[:50]}..."
        )

    if "?" in s3_key and ("X-Amz-" in s3_key or "AWSAccessKeyId" in s3_key):
        raise ValueError(
            f"{field_name} must be an S3 key, not a presigned URL. "
            f"Presigned URLs contain query parameters and expire. Received: {s3_key[:50]}..."
        )

    return s3_key


# Singleton instance
_video_storage: Optional[VideoStorageGateway] = None


def get_video_storage() -> VideoStorageGateway:
    """
    Get singleton video storage gateway instance.
    """
    global _video_storage
    if _video_storage is None:
        _video_storage = VideoStorageGateway()
    return _video_storage
