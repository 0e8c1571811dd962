"""
Gallery assembly: an owner's videos with fresh download links.
"""

import asyncio
from typing import Optional, Dict, Any

import structlog

from config import settings
from services.asset_records import VideoRecordStore
from services.s3_storage import VideoStorageGateway
from video_models import OwnerRef, VideoAsset, VideoStatus

logger = structlog.get_logger()


class GalleryAssembler:
    """
    Read-only composition of the record store and the storage gateway.

    One broken object never fails the whole gallery: URL minting is isolated
    per video and a failure only leaves that video's downloadUrl empty.
    """

    def __init__(
        self,
        records: VideoRecordStore,
        storage: VideoStorageGateway,
        concurrency: Optional[int] = None,
        url_expiry: Optional[int] = None,
    ):
        self.records = records
        self.storage = storage
        self.concurrency = concurrency or settings.GALLERY_URL_CONCURRENCY
        self.url_expiry = url_expiry or settings.PRESIGNED_URL_EXPIRY

    async def _gallery_item(self, asset: VideoAsset, semaphore: asyncio.Semaphore) -> Dict[str, Any]:
        item = {
            "videoId": asset.videoId,
            "title": asset.title,
            "status": asset.status.value,
            "metadata": dict(asset.metadata),
            "errorMessage": asset.errorMessage,
            "createdAt": asset.createdAt.isoformat(),
            "updatedAt": asset.updatedAt.isoformat(),
            "downloadUrl": None,
            "expiresIn": None,
        }
        if asset.status != VideoStatus.READY:
            return item

        try:
            async with semaphore:
                download = await self.storage.create_download_url_async(
                    asset.storageKey,
                    asset.secretKey,
                    self.url_expiry,
                )
            item["downloadUrl"] = download["downloadUrl"]
            item["expiresIn"] = download["expiresIn"]
        except Exception as e:
            logger.warning(
                "gallery_download_url_failed",
                video_id=asset.videoId,
                storage_key=asset.storageKey,
                error=str(e),
                error_type=type(e).__name__,
            )
        return item

    async def build(self, owner: OwnerRef) -> Dict[str, Any]:
        """
        Build the gallery for an owner.

        Returns:
            {videos, totalCount, readyCount, processingCount, failedCount};
            an owner without videos gets an empty list
        """
        assets = await self.records.list_by_owner_async(owner, include_secret_key=True)

        semaphore = asyncio.Semaphore(self.concurrency)
        videos = await asyncio.gather(*(self._gallery_item(asset, semaphore) for asset in assets))
        videos = list(videos)

        counts = {status: 0 for status in VideoStatus.values()}
        for video in videos:
            counts[video["status"]] += 1

        logger.info(
            "gallery_built",
            owner=owner.key,
            total=len(videos),
            links=sum(1 for video in videos if video["downloadUrl"]),
        )

        return {
            "videos": videos,
            "totalCount": len(videos),
            "readyCount": counts[VideoStatus.READY.value],
            "processingCount": counts[VideoStatus.PROCESSING.value],
            "failedCount": counts[VideoStatus.FAILED.value],
        }
