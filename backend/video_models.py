"""
PynamoDB models for stored video assets.

One item per video:
- Partition Key: videoId
- GSI owner-created-index: ownerKey + createdAt, for newest-first gallery listing

The owner of an asset is either an authenticated user id or an email address,
both folded into a single ownerKey string ("user#<id>" / "email#<addr>").
"""

import json
import secrets
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, Literal

from pydantic import BaseModel, ConfigDict
from pynamodb.attributes import UnicodeAttribute, UTCDateTimeAttribute
from pynamodb.indexes import GlobalSecondaryIndex, AllProjection

from config import settings
from dynamodb_config import BaseDynamoModel
from services.s3_storage import validate_s3_key


class VideoStatus(str, Enum):
    """Lifecycle status of a video asset."""

    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"

    @classmethod
    def values(cls) -> list:
        return [status.value for status in cls]


class OwnerRef(BaseModel):
    """
    Identity under which an asset is listed and managed.

    Either a user id (authenticated portal user) or an email address
    (anonymous/email-keyed flows). Emails are normalised to lowercase.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["user", "email"]
    value: str

    @classmethod
    def user(cls, user_id: str) -> "OwnerRef":
        return cls(kind="user", value=user_id.strip())

    @classmethod
    def email(cls, address: str) -> "OwnerRef":
        return cls(kind="email", value=address.strip().lower())

    @classmethod
    def from_key(cls, key: str) -> "OwnerRef":
        """Rebuild an OwnerRef from its persisted ownerKey."""
        kind, sep, value = key.partition("#")
        if not sep or kind not in ("user", "email"):
            raise ValueError(f"Malformed owner key: {key}")
        return cls(kind=kind, value=value)

    @property
    def key(self) -> str:
        return f"{self.kind}#{self.value}"

    def __str__(self) -> str:
        return self.key


class VideoAsset(BaseModel):
    """
    Read-only view of a stored video record.

    secretKey is only populated when the record was read with
    include_secret_key=True; to_public_dict() never includes it.
    """

    model_config = ConfigDict(frozen=True)

    videoId: str
    owner: OwnerRef
    title: str
    storageKey: str
    status: VideoStatus
    metadata: Dict[str, Any] = {}
    errorMessage: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime
    secretKey: Optional[str] = None

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "videoId": self.videoId,
            "owner": self.owner.key,
            "title": self.title,
            "storageKey": self.storageKey,
            "status": self.status.value,
            "metadata": dict(self.metadata),
            "errorMessage": self.errorMessage,
            "createdAt": self.createdAt.isoformat(),
            "updatedAt": self.updatedAt.isoformat(),
        }


class OwnerIndex(GlobalSecondaryIndex):
    """
    Global Secondary Index for listing an owner's videos by creation time.
    """

    class Meta:
        index_name = "owner-created-index"
        read_capacity_units = 5
        write_capacity_units = 5
        projection = AllProjection()

    ownerKey = UnicodeAttribute(hash_key=True)
    createdAtSort = UnicodeAttribute(range_key=True)  # createdAt ISO string


class VideoAssetItem(BaseDynamoModel):
    """
    DynamoDB model for a stored video asset.

    NOTE: storageKey stores the S3 object key (e.g. "videos/{owner}/{id}/..."),
    never a presigned URL. Download URLs are minted on demand.
    """

    class Meta:
        table_name = settings.DYNAMODB_TABLE_NAME
        region = settings.DYNAMODB_REGION
        # DynamoDB Local requires explicit (fake) credentials; production uses
        # the boto3 credential chain.
        if settings.USE_LOCAL_DYNAMODB:
            host = settings.DYNAMODB_ENDPOINT
            aws_access_key_id = settings.dynamodb_access_key_id
            aws_secret_access_key = settings.dynamodb_secret_access_key

    videoId = UnicodeAttribute(hash_key=True)

    ownerKey = UnicodeAttribute()
    title = UnicodeAttribute()
    storageKey = UnicodeAttribute()
    secretKey = UnicodeAttribute()
    status = UnicodeAttribute()  # processing, ready, failed
    metadataJson = UnicodeAttribute(null=True)  # JSON-encoded free-form metadata
    errorMessage = UnicodeAttribute(null=True)
    createdAt = UTCDateTimeAttribute()
    updatedAt = UTCDateTimeAttribute()

    createdAtSort = UnicodeAttribute()
    owner_index = OwnerIndex()

    @property
    def metadata(self) -> Dict[str, Any]:
        if not self.metadataJson:
            return {}
        return json.loads(self.metadataJson)

    @metadata.setter
    def metadata(self, value: Optional[Dict[str, Any]]) -> None:
        self.metadataJson = json.dumps(value or {})

    def touch(self) -> None:
        self.updatedAt = datetime.now(timezone.utc)

    def to_asset(self, include_secret_key: bool = False) -> VideoAsset:
        """
        Convert the item into a VideoAsset.

        Args:
            include_secret_key: Only internal callers that talk to the object
                store pass True.
        """
        return VideoAsset(
            videoId=self.videoId,
            owner=OwnerRef.from_key(self.ownerKey),
            title=self.title,
            storageKey=self.storageKey,
            status=VideoStatus(self.status),
            metadata=self.metadata,
            errorMessage=self.errorMessage,
            createdAt=self.createdAt,
            updatedAt=self.updatedAt,
            secretKey=self.secretKey if include_secret_key else None,
        )


def generate_video_id() -> str:
    """
    Generate a video id of the form video_<epochMillis>_<16 hex chars>.

    The random suffix keeps ids unique even when generated within the same
    millisecond.
    """
    return f"video_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def create_video_item(
    video_id: str,
    owner: OwnerRef,
    title: str,
    storage_key: str,
    secret_key: str,
    status: VideoStatus = VideoStatus.PROCESSING,
    metadata: Optional[Dict[str, Any]] = None,
) -> VideoAssetItem:
    """
    Build a new (unsaved) video item.

    Args:
        video_id: Unique video id
        owner: Owner reference
        title: Display title
        storage_key: S3 object key, NOT a URL
        secret_key: Per-object capability token
        status: Initial status
        metadata: Optional free-form metadata

    Returns:
        VideoAssetItem instance

    Raises:
        ValueError: If storage_key is a URL instead of a key
    """
    now = datetime.now(timezone.utc)

    item = VideoAssetItem()
    item.videoId = video_id
    item.ownerKey = owner.key
    item.title = title
    item.storageKey = validate_s3_key(storage_key, "storage_key")
    item.secretKey = secret_key
    item.status = VideoStatus(status).value
    item.metadata = metadata
    item.errorMessage = None
    item.createdAt = now
    item.updatedAt = now
    item.createdAtSort = now.isoformat()

    return item
