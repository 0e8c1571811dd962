"""
Pydantic schemas for the video asset API endpoints.

Request fields are optional at the schema level; required-field checks live
in the lifecycle service so every entry point reports them the same way.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


class StoreVideoRequest(BaseModel):
    """Request model for storing a video fetched from a URL."""
    videoUrl: Optional[str] = Field(None, description="Source URL of the finished video")
    email: Optional[str] = Field(None, description="Owner email when the caller is not authenticated")
    title: Optional[str] = Field(None, description="Title override; derived from the URL when omitted")

    class Config:
        json_schema_extra = {
            "example": {
                "videoUrl": "https://cdn.example.com/renders/My_Great-Listing.mp4",
                "email": "agent@example.com"
            }
        }


class StoredVideoResponse(BaseModel):
    """
    Response model for a stored video record.

    Note: never contains the secret key.
    """
    videoId: str
    owner: str
    title: str
    storageKey: str
    status: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    errorMessage: Optional[str] = None
    createdAt: str
    updatedAt: str
    size: Optional[int] = None


class GenerateVideoRequest(BaseModel):
    """Request model for the video generation form."""
    hook: Optional[str] = None
    body: Optional[str] = None
    conclusion: Optional[str] = None
    company_name: Optional[str] = None
    social_handles: Optional[str] = None
    license: Optional[str] = None
    avatar: Optional[str] = None
    email: Optional[str] = None
    title: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "hook": "Just listed in Westlake!",
                "body": "Four bedrooms, a chef's kitchen and a pool with a view.",
                "conclusion": "Book your private tour today.",
                "company_name": "Hill Country Realty",
                "social_handles": "@hillcountryrealty",
                "license": "TX-123456",
                "avatar": "avatar_02",
                "email": "agent@example.com",
                "title": "Westlake Listing"
            }
        }


class GenerateVideoResponse(BaseModel):
    """Response model for an accepted generation request."""
    videoId: str
    status: str
    title: str
    estimatedCompletion: str
    message: str = "Video generation started successfully"


class StatusUpdateRequest(BaseModel):
    """
    Request model for status updates and generator callbacks.

    Any reported error, even an empty object or list, results in the failed status.
    """
    videoId: Optional[str] = None
    status: Optional[str] = Field(None, description="processing, ready or failed (default: ready)")
    metadata: Optional[Any] = None
    error: Optional[Any] = None
    s3Key: Optional[str] = Field(None, description="Storage key reported by the generator")

    class Config:
        json_schema_extra = {
            "example": {
                "videoId": "video_1731840000000_a1b2c3d4e5f60718",
                "status": "ready",
                "metadata": {"duration": 42.5, "format": "mp4"}
            }
        }


class StatusUpdateResponse(BaseModel):
    """Response model for a status update."""
    videoId: str
    status: str
    updatedAt: str


class RenameVideoRequest(BaseModel):
    """Request model for renaming a video."""
    title: Optional[str] = None


class DeleteVideoResponse(BaseModel):
    """Response model for deleting a video."""
    videoId: str
    storageDeleted: bool = Field(..., description="False when the stored object could not be removed")
    deletedAt: str


class DownloadUrlResponse(BaseModel):
    """Response model for a single video download link."""
    videoId: str
    title: str
    downloadUrl: str
    expiresIn: int


class GalleryVideo(BaseModel):
    """
    One video in the gallery.

    Note: downloadUrl is a presigned URL minted per request, never stored.
    """
    videoId: str
    title: str
    status: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    errorMessage: Optional[str] = None
    createdAt: str
    updatedAt: str
    downloadUrl: Optional[str] = None
    expiresIn: Optional[int] = None


class GalleryResponse(BaseModel):
    """Response model for an owner's gallery."""
    videos: List[GalleryVideo]
    totalCount: int
    readyCount: int
    processingCount: int
    failedCount: int
