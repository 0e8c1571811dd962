"""
Video asset lifecycle.

Coordinates the record store and the storage gateway:
- store-from-URL creation (fetch, upload, record as ready)
- generation submission (record as processing, job sent to the generator)
- status reconciliation from generator callbacks
- best-effort teardown (storage first, record always)

Status transitions are unrestricted: callbacks may arrive out of order, and
any status can be rewritten by a later update.
"""

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Callable, Awaitable, Tuple
from urllib.parse import unquote, urlparse

import structlog

from config import settings
from services.asset_records import VideoRecordStore
from services.errors import (
    AccessDeniedError,
    ConfigurationError,
    NotFoundError,
    ValidationError,
)
from services.http_client import dispatch_generation_job, fetch_source_video
from services.s3_storage import (
    METADATA_OWNER,
    METADATA_SECRET_KEY,
    METADATA_UPLOADED_AT,
    METADATA_VIDEO_ID,
    VideoStorageGateway,
    generate_secret_key,
    generate_storage_key,
)
from video_models import OwnerRef, VideoAsset, VideoStatus, generate_video_id

logger = structlog.get_logger()

DEFAULT_TITLE = "My Video"

GENERATION_FIELDS = (
    "hook",
    "body",
    "conclusion",
    "company_name",
    "social_handles",
    "license",
    "avatar",
    "title",
)


def clean_title(title: str) -> str:
    """Drop characters other than word chars, whitespace and '-', and collapse whitespace."""
    title = re.sub(r"[^\w\s-]", "", title.strip())
    return re.sub(r"\s+", " ", title).strip()


def filename_from_url(video_url: str, video_id: str) -> str:
    """Last path segment of the URL, or <videoId>.mp4 when the path has none."""
    path = unquote(urlparse(video_url).path)
    return path.rstrip("/").split("/")[-1] or f"{video_id}.mp4"


def derive_title(filename: str) -> str:
    """
    Derive a display title from a filename.

    Examples:
        >>> derive_title("My_Great-Listing.mp4")
        "My Great Listing"
    """
    stem = re.sub(r"\.[^/.]+$", "", filename)
    return clean_title(re.sub(r"[_-]", " ", stem)) or DEFAULT_TITLE


def format_from_content_type(content_type: str) -> str:
    """'video/mp4; codecs=avc1' -> 'mp4'"""
    media_type = content_type.split(";")[0].strip()
    return media_type.split("/")[-1] if "/" in media_type else media_type


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"Missing required field: {field}", field=field)
    return str(value).strip()


def callback_error_message(error: Any) -> Optional[str]:
    """
    Error text for a callback's error field, or None when it reports no error.

    Empty objects and lists still count as an error; only None, False, 0
    and blank strings mean "no error".
    """
    if isinstance(error, (dict, list)):
        return json.dumps(error) if error else "Generation failed"
    if error is None or error is False or error == 0:
        return None
    text = str(error).strip()
    return text or None


def _check_owner(asset: VideoAsset, owner: Optional[OwnerRef]) -> None:
    if owner is not None and asset.owner != owner:
        logger.warning(
            "video_owner_mismatch",
            video_id=asset.videoId,
            owner=owner.key,
        )
        raise AccessDeniedError("Not allowed to access this video", videoId=asset.videoId)


class AssetLifecycleService:
    """
    Orchestrates creation, status reconciliation and deletion of video assets.
    """

    def __init__(
        self,
        records: VideoRecordStore,
        storage: VideoStorageGateway,
        fetcher: Callable[[str], Awaitable[Tuple[bytes, str]]] = fetch_source_video,
        dispatcher: Callable[[str, Dict[str, Any]], Awaitable[int]] = dispatch_generation_job,
    ):
        self.records = records
        self.storage = storage
        self.fetcher = fetcher
        self.dispatcher = dispatcher

    async def _get_asset(self, video_id: str, include_secret_key: bool = False) -> VideoAsset:
        asset = await self.records.get_by_id_async(video_id, include_secret_key=include_secret_key)
        if asset is None:
            logger.warning("video_not_found", video_id=video_id)
            raise NotFoundError(f"Video {video_id} not found", videoId=video_id)
        return asset

    async def _unique_title(self, owner: OwnerRef, base_title: str) -> str:
        """Suffix -1, -2, ... until no other video of this owner has the title."""
        title = base_title
        counter = 1
        while await self.records.find_by_title_async(owner, title) is not None:
            title = f"{base_title}-{counter}"
            counter += 1
        return title

    async def create_from_url(
        self,
        video_url: Optional[str],
        owner: Optional[OwnerRef],
        title: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Fetch a video from a URL, store it and record it as ready.

        Not idempotent: every call generates a new video id, so retrying after
        a partial failure may leave a duplicate object in storage.

        Returns:
            Public projection of the record plus the stored size

        Raises:
            ValidationError: Missing URL or owner
            UpstreamFetchError: The URL could not be downloaded
            StorageError: Upload failed
            DatabaseError: Record could not be written
        """
        video_url = _require_text(video_url, "videoUrl")
        if urlparse(video_url).scheme not in ("http", "https"):
            raise ValidationError("videoUrl must be an http(s) URL", field="videoUrl")
        if owner is None:
            raise ValidationError("Missing required field: email", field="email")

        video_id = generate_video_id()
        filename = filename_from_url(video_url, video_id)
        base_title = clean_title(title) if title and clean_title(title) else derive_title(filename)
        final_title = await self._unique_title(owner, base_title)

        logger.info("store_from_url_started", video_id=video_id, owner=owner.key, video_url=video_url)
        data, content_type = await self.fetcher(video_url)

        storage_key = generate_storage_key(owner.value, video_id, filename)
        secret_key = generate_secret_key()

        await self.storage.upload_direct_async(
            storage_key,
            data,
            content_type,
            {
                METADATA_VIDEO_ID: video_id,
                METADATA_SECRET_KEY: secret_key,
                METADATA_OWNER: owner.key,
                METADATA_UPLOADED_AT: datetime.now(timezone.utc).isoformat(),
            },
        )

        try:
            asset = await self.records.create_async(
                owner,
                final_title,
                storage_key,
                secret_key=secret_key,
                status=VideoStatus.READY,
                metadata={
                    "size": len(data),
                    "format": format_from_content_type(content_type),
                    "contentType": content_type,
                    "sourceUrl": video_url,
                },
                video_id=video_id,
            )
        except Exception:
            logger.error("stored_object_without_record", video_id=video_id, storage_key=storage_key)
            raise

        logger.info("store_from_url_completed", video_id=video_id, size=len(data))

        result = asset.to_public_dict()
        result["size"] = len(data)
        return result

    async def submit_generation(
        self,
        form: Dict[str, Optional[str]],
        owner: Optional[OwnerRef],
    ) -> Dict[str, Any]:
        """
        Validate a generation request and record the video as processing.

        The returned job payload carries a presigned upload target; the
        generator uploads the finished video there, then calls back with the
        final status.

        Returns:
            {video, job, estimatedCompletion}

        Raises:
            ValidationError: Missing form field or owner email
            ConfigurationError: No generation webhook configured
        """
        values = {field: _require_text(form.get(field), field) for field in GENERATION_FIELDS}
        email = _require_text(form.get("email"), "email")
        if owner is None:
            owner = OwnerRef.email(email)

        if not settings.GENERATE_VIDEO_WEBHOOK_URL:
            raise ConfigurationError("GENERATE_VIDEO_WEBHOOK_URL is not set")

        video_id = generate_video_id()
        handle = await self.storage.create_upload_handle_async(owner.value, video_id, f"{video_id}.mp4")

        asset = await self.records.create_async(
            owner,
            await self._unique_title(owner, clean_title(values["title"]) or DEFAULT_TITLE),
            handle["storageKey"],
            secret_key=handle["secretKey"],
            status=VideoStatus.PROCESSING,
            video_id=video_id,
        )

        now = datetime.now(timezone.utc)
        job = dict(values)
        job.update({
            "videoId": video_id,
            "email": email,
            "timestamp": now.isoformat(),
            "callbackUrl": settings.webhook_callback_url,
            "upload": {
                "url": handle["uploadUrl"],
                "headers": handle["requiredHeaders"],
                "storageKey": handle["storageKey"],
                "expiresIn": handle["expiresIn"],
            },
        })

        logger.info("generation_submitted", video_id=video_id, owner=owner.key)

        return {
            "video": asset.to_public_dict(),
            "job": job,
            "estimatedCompletion": (
                now + timedelta(minutes=settings.GENERATE_VIDEO_ESTIMATE_MINUTES)
            ).isoformat(),
        }

    async def dispatch_generation(self, job: Dict[str, Any]) -> bool:
        """
        Send a submitted job to the generation webhook. Runs after the
        response has been returned; a job that cannot be delivered marks the
        video as failed.
        """
        video_id = job["videoId"]
        try:
            await self.dispatcher(settings.GENERATE_VIDEO_WEBHOOK_URL, job)
            return True
        except Exception as e:
            logger.error("generation_dispatch_failed", video_id=video_id, error=str(e))
            await self.records.update_status_async(
                video_id,
                VideoStatus.FAILED,
                f"Generation request could not be delivered: {e}",
            )
            return False

    async def apply_status_update(
        self,
        video_id: Optional[str],
        status: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        error: Any = None,
        storage_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Apply a status update, typically from a generator callback.

        Any reported error (see callback_error_message) forces the failed status,
        whatever status was sent alongside it. Metadata is merged, never replaced.

        Returns:
            {videoId, status, updatedAt}

        Raises:
            ValidationError: Missing video id, non-object metadata, or unknown status with no error
            NotFoundError: Unknown video id
        """
        video_id = _require_text(video_id, "videoId")
        error_message = callback_error_message(error)
        if error_message is not None:
            final_status = VideoStatus.FAILED
        else:
            requested = status or VideoStatus.READY.value
            if requested not in VideoStatus.values():
                raise ValidationError(
                    f"Invalid status. Must be one of: {', '.join(VideoStatus.values())}",
                    field="status",
                )
            final_status = VideoStatus(requested)
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata must be an object", field="metadata")

        asset = await self._get_asset(video_id)

        if storage_key and storage_key != asset.storageKey:
            logger.warning(
                "callback_storage_key_ignored",
                video_id=video_id,
                stored_key=asset.storageKey,
                callback_key=storage_key,
            )

        updated = await self.records.update_status_async(video_id, final_status, error_message)
        if updated is None:
            raise NotFoundError(f"Video {video_id} not found", videoId=video_id)

        if metadata:
            updated = await self.records.merge_metadata_async(video_id, metadata) or updated

        logger.info(
            "video_status_reconciled",
            video_id=video_id,
            status=updated.status.value,
            had_error=error_message is not None,
        )

        return {
            "videoId": updated.videoId,
            "status": updated.status.value,
            "updatedAt": updated.updatedAt.isoformat(),
        }

    async def delete_asset(self, video_id: Optional[str], owner: Optional[OwnerRef] = None) -> Dict[str, Any]:
        """
        Delete the stored object (best effort) and then the record.

        Returns:
            {videoId, storageDeleted, deletedAt}; storageDeleted is False when
            the object could not be removed and needs out-of-band cleanup

        Raises:
            NotFoundError: Unknown video id
            AccessDeniedError: Video belongs to another owner
            DatabaseError: Record deletion failed
        """
        video_id = _require_text(video_id, "videoId")
        asset = await self._get_asset(video_id, include_secret_key=True)
        _check_owner(asset, owner)

        storage_deleted = False
        try:
            storage_deleted = await self.storage.delete_async(asset.storageKey, asset.secretKey)
        except Exception as e:
            logger.error(
                "video_storage_delete_failed",
                video_id=video_id,
                storage_key=asset.storageKey,
                error=str(e),
            )

        if not storage_deleted:
            logger.warning("video_storage_orphaned", video_id=video_id, storage_key=asset.storageKey)

        if not await self.records.delete_async(video_id):
            logger.warning("video_record_already_deleted", video_id=video_id)

        logger.info("video_deleted", video_id=video_id, storage_deleted=storage_deleted)

        return {
            "videoId": video_id,
            "storageDeleted": storage_deleted,
            "deletedAt": datetime.now(timezone.utc).isoformat(),
        }

    async def get_download(
        self,
        video_id: str,
        owner: Optional[OwnerRef] = None,
        expiry: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Mint a download URL for one ready video. Storage errors propagate.

        Raises:
            NotFoundError: Unknown video id or object missing in storage
            AccessDeniedError: Wrong owner or secret key mismatch
            ValidationError: Video is not ready
        """
        asset = await self._get_asset(video_id, include_secret_key=True)
        _check_owner(asset, owner)

        if asset.status != VideoStatus.READY:
            raise ValidationError(
                f"Video is not ready (status: {asset.status.value})",
                field="status",
                videoId=video_id,
            )

        download = await self.storage.create_download_url_async(asset.storageKey, asset.secretKey, expiry)
        return {
            "videoId": asset.videoId,
            "title": asset.title,
            "downloadUrl": download["downloadUrl"],
            "expiresIn": download["expiresIn"],
        }

    async def rename(self, video_id: str, title: Optional[str], owner: Optional[OwnerRef] = None) -> Dict[str, Any]:
        """Change a video's title; the new title is cleaned and made unique for the owner."""
        cleaned = clean_title(_require_text(title, "title"))
        if not cleaned:
            raise ValidationError("title must contain letters or digits", field="title")

        asset = await self._get_asset(video_id)
        _check_owner(asset, owner)

        if cleaned != asset.title:
            cleaned = await self._unique_title(asset.owner, cleaned)
        updated = await self.records.update_title_async(video_id, cleaned)
        if updated is None:
            raise NotFoundError(f"Video {video_id} not found", videoId=video_id)
        return updated.to_public_dict()
