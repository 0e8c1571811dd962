"""
Shared fixtures for the video asset tests.

The storage gateway and record store under test are the real classes; only
the S3 client and the DynamoDB persistence calls are replaced by in-memory
doubles, so no AWS services are needed.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest
from botocore.exceptions import ClientError

from services.asset_lifecycle import AssetLifecycleService
from services.asset_records import VideoRecordStore
from services.errors import DatabaseError, UpstreamFetchError
from services.gallery import GalleryAssembler
from services.s3_storage import VideoStorageGateway, generate_secret_key
from video_models import (
    OwnerRef,
    VideoAsset,
    VideoAssetItem,
    VideoStatus,
    create_video_item,
    generate_video_id,
)


class InMemoryS3Client:
    """Minimal stand-in for the boto3 S3 client calls the gateway makes."""

    def __init__(self):
        self.objects: Dict[str, dict] = {}

    def put_object(self, Bucket, Key, Body, ContentType, Metadata):
        self.objects[Key] = {
            "Body": Body,
            "ContentType": ContentType,
            "Metadata": {k.lower(): v for k, v in Metadata.items()},
            "LastModified": datetime.now(timezone.utc),
        }
        return {"ETag": '"etag"'}

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        obj = self.objects[Key]
        return {
            "ContentLength": len(obj["Body"]),
            "ContentType": obj["ContentType"],
            "LastModified": obj["LastModified"],
            "Metadata": dict(obj["Metadata"]),
        }

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)
        return {}

    def generate_presigned_url(self, ClientMethod, Params=None, ExpiresIn=3600):
        return (
            f"https://{Params['Bucket']}.s3.amazonaws.com/{Params['Key']}"
            f"?X-Amz-Expires={ExpiresIn}&X-Amz-Signature=test"
        )


class InMemoryVideoRecordStore(VideoRecordStore):
    """VideoRecordStore with DynamoDB persistence replaced by a dict."""

    def __init__(self):
        self.items: Dict[str, VideoAssetItem] = {}

    def _get_item(self, video_id: str) -> Optional[VideoAssetItem]:
        return self.items.get(video_id)

    def _save_item(self, item: VideoAssetItem) -> None:
        item.touch()
        self.items[item.videoId] = item

    def create(self, owner, title, storage_key, secret_key=None, status=None, metadata=None, video_id=None):
        if video_id and video_id in self.items:
            raise DatabaseError(f"Video {video_id} already exists", videoId=video_id)
        item = create_video_item(
            video_id=video_id or generate_video_id(),
            owner=owner,
            title=title,
            storage_key=storage_key,
            secret_key=secret_key or generate_secret_key(),
            status=status or VideoStatus.PROCESSING,
            metadata=metadata,
        )
        self.items[item.videoId] = item
        return item.to_asset()

    def list_by_owner(self, owner: OwnerRef, include_secret_key: bool = False) -> List[VideoAsset]:
        items = [item for item in self.items.values() if item.ownerKey == owner.key]
        items.sort(key=lambda item: item.createdAtSort, reverse=True)
        return [item.to_asset(include_secret_key=include_secret_key) for item in items]

    def find_by_title(self, owner: OwnerRef, title: str) -> Optional[VideoAsset]:
        for item in self.items.values():
            if item.ownerKey == owner.key and item.title == title:
                return item.to_asset()
        return None

    def delete(self, video_id: str) -> bool:
        return self.items.pop(video_id, None) is not None


@pytest.fixture
def s3_client():
    return InMemoryS3Client()


@pytest.fixture
def storage(s3_client):
    return VideoStorageGateway(s3_client=s3_client, bucket_name="test-bucket")


@pytest.fixture
def records():
    return InMemoryVideoRecordStore()


@pytest.fixture
def fetched_videos():
    """Responses served by the fake source fetcher, keyed by URL."""
    return {}


@pytest.fixture
def fetcher(fetched_videos):
    async def _fetch(video_url: str):
        if video_url not in fetched_videos:
            raise UpstreamFetchError("Failed to download video: 404 Not Found", status_code=404)
        return fetched_videos[video_url]

    return _fetch


@pytest.fixture
def dispatched_jobs():
    return []


@pytest.fixture
def dispatcher(dispatched_jobs):
    async def _dispatch(webhook_url, payload):
        dispatched_jobs.append((webhook_url, payload))
        return 200

    return _dispatch


@pytest.fixture
def lifecycle(records, storage, fetcher, dispatcher):
    return AssetLifecycleService(records, storage, fetcher=fetcher, dispatcher=dispatcher)


@pytest.fixture
def gallery(records, storage):
    return GalleryAssembler(records, storage)


@pytest.fixture
def owner():
    return OwnerRef.user("user-123")
