"""
Record store for video assets backed by DynamoDB.

Every read returns VideoAsset values with the secret key projected out
unless the caller explicitly asks for it. PynamoDB failures are raised as
DatabaseError; a missing record is reported as None / False.
"""

import asyncio
from functools import partial
from typing import Optional, Dict, Any, List

from pynamodb.exceptions import DoesNotExist, PutError, PynamoDBException
import structlog

from services.errors import DatabaseError
from services.s3_storage import generate_secret_key
from video_models import (
    OwnerRef,
    VideoAsset,
    VideoAssetItem,
    VideoStatus,
    create_video_item,
    generate_video_id,
)

logger = structlog.get_logger()


class VideoRecordStore:
    """
    CRUD over VideoAssetItem.
    """

    def _get_item(self, video_id: str) -> Optional[VideoAssetItem]:
        try:
            return VideoAssetItem.get(video_id)
        except DoesNotExist:
            return None
        except PynamoDBException as e:
            logger.error("video_record_get_failed", video_id=video_id, error=str(e))
            raise DatabaseError(f"Failed to load video {video_id}: {e}", videoId=video_id)

    def _save_item(self, item: VideoAssetItem) -> None:
        item.touch()
        try:
            item.save()
        except PynamoDBException as e:
            logger.error("video_record_save_failed", video_id=item.videoId, error=str(e))
            raise DatabaseError(f"Failed to save video {item.videoId}: {e}", videoId=item.videoId)

    def create(
        self,
        owner: OwnerRef,
        title: str,
        storage_key: str,
        secret_key: Optional[str] = None,
        status: Optional[VideoStatus] = None,
        metadata: Optional[Dict[str, Any]] = None,
        video_id: Optional[str] = None,
    ) -> VideoAsset:
        """
        Persist a new video record.

        Args:
            owner: Owner reference
            title: Display title
            storage_key: S3 object key
            secret_key: Capability token (default: freshly generated)
            status: Initial status (default: processing)
            metadata: Optional free-form metadata
            video_id: Optional id (default: freshly generated)

        Returns:
            The created VideoAsset (without secret key)

        Raises:
            DatabaseError: If the write fails or the id already exists
        """
        item = create_video_item(
            video_id=video_id or generate_video_id(),
            owner=owner,
            title=title,
            storage_key=storage_key,
            secret_key=secret_key or generate_secret_key(),
            status=status or VideoStatus.PROCESSING,
            metadata=metadata,
        )

        try:
            item.save(condition=VideoAssetItem.videoId.does_not_exist())
        except PutError as e:
            if e.cause_response_code == "ConditionalCheckFailedException":
                logger.error("video_record_duplicate_id", video_id=item.videoId)
                raise DatabaseError(f"Video {item.videoId} already exists", videoId=item.videoId)
            logger.error("video_record_create_failed", video_id=item.videoId, error=str(e))
            raise DatabaseError(f"Failed to create video record: {e}", videoId=item.videoId)

        logger.info(
            "video_record_created",
            video_id=item.videoId,
            owner=owner.key,
            status=item.status,
        )
        return item.to_asset()

    def get_by_id(self, video_id: str, include_secret_key: bool = False) -> Optional[VideoAsset]:
        item = self._get_item(video_id)
        if item is None:
            return None
        return item.to_asset(include_secret_key=include_secret_key)

    def list_by_owner(self, owner: OwnerRef, include_secret_key: bool = False) -> List[VideoAsset]:
        """Return all of an owner's videos, newest first."""
        try:
            items = VideoAssetItem.owner_index.query(owner.key, scan_index_forward=False)
            return [item.to_asset(include_secret_key=include_secret_key) for item in items]
        except PynamoDBException as e:
            logger.error("video_record_list_failed", owner=owner.key, error=str(e))
            raise DatabaseError(f"Failed to list videos: {e}", owner=owner.key)

    def find_by_title(self, owner: OwnerRef, title: str) -> Optional[VideoAsset]:
        """Return the owner's video with exactly this title, if any."""
        try:
            for item in VideoAssetItem.owner_index.query(
                owner.key,
                filter_condition=VideoAssetItem.title == title,
            ):
                return item.to_asset()
        except PynamoDBException as e:
            logger.error("video_record_title_lookup_failed", owner=owner.key, error=str(e))
            raise DatabaseError(f"Failed to look up video by title: {e}", owner=owner.key)
        return None

    def update_status(
        self,
        video_id: str,
        status: VideoStatus,
        error_message: Optional[str] = None,
    ) -> Optional[VideoAsset]:
        """
        Set the status of a video. The error message is kept only while the
        video is failed.
        """
        item = self._get_item(video_id)
        if item is None:
            return None

        status = VideoStatus(status)
        previous_status = item.status
        item.status = status.value
        item.errorMessage = error_message if status == VideoStatus.FAILED else None
        self._save_item(item)

        logger.info(
            "video_status_updated",
            video_id=video_id,
            previous_status=previous_status,
            status=item.status,
        )
        return item.to_asset()

    def merge_metadata(self, video_id: str, partial_metadata: Dict[str, Any]) -> Optional[VideoAsset]:
        """Shallow-merge new metadata over the existing metadata."""
        item = self._get_item(video_id)
        if item is None:
            return None

        merged = item.metadata
        merged.update(partial_metadata)
        item.metadata = merged
        self._save_item(item)

        logger.info("video_metadata_merged", video_id=video_id, keys=sorted(partial_metadata))
        return item.to_asset()

    def update_title(self, video_id: str, title: str) -> Optional[VideoAsset]:
        item = self._get_item(video_id)
        if item is None:
            return None

        item.title = title
        self._save_item(item)
        return item.to_asset()

    def delete(self, video_id: str) -> bool:
        """
        Delete a video record.

        Returns:
            True if deleted, False if no such record

        Raises:
            DatabaseError: If the delete itself fails
        """
        item = self._get_item(video_id)
        if item is None:
            return False

        try:
            item.delete()
        except PynamoDBException as e:
            logger.error("video_record_delete_failed", video_id=video_id, error=str(e))
            raise DatabaseError(f"Failed to delete video {video_id}: {e}", videoId=video_id)

        logger.info("video_record_deleted", video_id=video_id)
        return True

    # Async wrappers; PynamoDB is blocking, so calls run in the default executor

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def create_async(self, owner: OwnerRef, title: str, storage_key: str, **kwargs) -> VideoAsset:
        return await self._run(self.create, owner, title, storage_key, **kwargs)

    async def get_by_id_async(self, video_id: str, include_secret_key: bool = False) -> Optional[VideoAsset]:
        return await self._run(self.get_by_id, video_id, include_secret_key=include_secret_key)

    async def list_by_owner_async(self, owner: OwnerRef, include_secret_key: bool = False) -> List[VideoAsset]:
        return await self._run(self.list_by_owner, owner, include_secret_key=include_secret_key)

    async def find_by_title_async(self, owner: OwnerRef, title: str) -> Optional[VideoAsset]:
        return await self._run(self.find_by_title, owner, title)

    async def update_status_async(
        self,
        video_id: str,
        status: VideoStatus,
        error_message: Optional[str] = None,
    ) -> Optional[VideoAsset]:
        return await self._run(self.update_status, video_id, status, error_message)

    async def merge_metadata_async(self, video_id: str, partial_metadata: Dict[str, Any]) -> Optional[VideoAsset]:
        return await self._run(self.merge_metadata, video_id, partial_metadata)

    async def update_title_async(self, video_id: str, title: str) -> Optional[VideoAsset]:
        return await self._run(self.update_title, video_id, title)

    async def delete_async(self, video_id: str) -> bool:
        return await self._run(self.delete, video_id)


# Singleton instance
_video_record_store: Optional[VideoRecordStore] = None


def get_video_record_store() -> VideoRecordStore:
    global _video_record_store
    if _video_record_store is None:
        _video_record_store = VideoRecordStore()
    return _video_record_store
