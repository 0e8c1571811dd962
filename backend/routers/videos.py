"""
Video assets API Router.

Thin HTTP binding over the asset lifecycle service and the gallery
assembler. Domain errors (services.errors.AssetError) are mapped to HTTP
responses by the application's exception handler.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends

from auth import get_current_owner, get_optional_owner
from services.asset_lifecycle import AssetLifecycleService
from services.asset_records import get_video_record_store
from services.gallery import GalleryAssembler
from services.s3_storage import get_video_storage
from video_models import OwnerRef
from video_schemas import (
    DeleteVideoResponse,
    DownloadUrlResponse,
    GalleryResponse,
    GenerateVideoRequest,
    GenerateVideoResponse,
    RenameVideoRequest,
    StatusUpdateRequest,
    StatusUpdateResponse,
    StoreVideoRequest,
    StoredVideoResponse,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/videos", tags=["Videos"])


def get_lifecycle_service() -> AssetLifecycleService:
    return AssetLifecycleService(get_video_record_store(), get_video_storage())


def get_gallery_assembler() -> GalleryAssembler:
    return GalleryAssembler(get_video_record_store(), get_video_storage())


@router.post(
    "/store",
    response_model=StoredVideoResponse,
    status_code=201,
    summary="Store Video From URL",
    description="""
Download a finished video from a URL, store it and record it as ready.

The owner is the authenticated caller, or `email` when no identity is
forwarded. The title is derived from the URL filename unless `title` is given.
"""
)
async def store_video(
    request: StoreVideoRequest,
    owner: Optional[OwnerRef] = Depends(get_optional_owner),
    lifecycle: AssetLifecycleService = Depends(get_lifecycle_service),
):
    if owner is None and request.email and request.email.strip():
        owner = OwnerRef.email(request.email)

    logger.info("store_video_request", has_owner=owner is not None)
    return await lifecycle.create_from_url(request.videoUrl, owner, title=request.title)


@router.post(
    "/generate",
    response_model=GenerateVideoResponse,
    status_code=202,
    summary="Start Video Generation",
    description="""
Validate the generation form, record the video as processing and hand the job
to the external generator. The generator calls back on
`/api/webhooks/video-complete` when the video is ready or has failed.
"""
)
async def generate_video(
    request: GenerateVideoRequest,
    background_tasks: BackgroundTasks,
    owner: Optional[OwnerRef] = Depends(get_optional_owner),
    lifecycle: AssetLifecycleService = Depends(get_lifecycle_service),
):
    submission = await lifecycle.submit_generation(request.model_dump(), owner)
    background_tasks.add_task(lifecycle.dispatch_generation, submission["job"])

    video = submission["video"]
    return GenerateVideoResponse(
        videoId=video["videoId"],
        status=video["status"],
        title=video["title"],
        estimatedCompletion=submission["estimatedCompletion"],
    )


@router.get(
    "/gallery",
    response_model=GalleryResponse,
    summary="Video Gallery",
    description="All of the caller's videos, newest first, with fresh download links for ready videos."
)
async def get_gallery(
    owner: OwnerRef = Depends(get_current_owner),
    gallery: GalleryAssembler = Depends(get_gallery_assembler),
):
    return await gallery.build(owner)


@router.get(
    "/{video_id}/download",
    response_model=DownloadUrlResponse,
    summary="Download Link",
)
async def get_download_url(
    video_id: str,
    owner: Optional[OwnerRef] = Depends(get_optional_owner),
    lifecycle: AssetLifecycleService = Depends(get_lifecycle_service),
):
    return await lifecycle.get_download(video_id, owner)


@router.patch(
    "/{video_id}",
    response_model=StoredVideoResponse,
    summary="Rename Video",
)
async def rename_video(
    video_id: str,
    request: RenameVideoRequest,
    owner: Optional[OwnerRef] = Depends(get_optional_owner),
    lifecycle: AssetLifecycleService = Depends(get_lifecycle_service),
):
    return await lifecycle.rename(video_id, request.title, owner)


@router.delete(
    "/{video_id}",
    response_model=DeleteVideoResponse,
    summary="Delete Video",
    description="""
Delete the stored object and the record. Storage deletion is best effort:
the record is always removed and `storageDeleted` reports whether the object
was removed too.
"""
)
async def delete_video(
    video_id: str,
    owner: Optional[OwnerRef] = Depends(get_optional_owner),
    lifecycle: AssetLifecycleService = Depends(get_lifecycle_service),
):
    return await lifecycle.delete_asset(video_id, owner)


@router.put(
    "/{video_id}/status",
    response_model=StatusUpdateResponse,
    summary="Update Video Status",
)
async def update_video_status(
    video_id: str,
    request: StatusUpdateRequest,
    lifecycle: AssetLifecycleService = Depends(get_lifecycle_service),
):
    return await lifecycle.apply_status_update(
        video_id,
        status=request.status,
        metadata=request.metadata,
        error=request.error,
    )
