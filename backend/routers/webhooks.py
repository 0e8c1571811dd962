"""
Callbacks from the external video generation service.
"""

import structlog
from fastapi import APIRouter, Depends

from auth import verify_webhook_signature
from routers.videos import get_lifecycle_service
from services.asset_lifecycle import AssetLifecycleService, callback_error_message
from video_schemas import StatusUpdateRequest, StatusUpdateResponse

logger = structlog.get_logger()

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


@router.post(
    "/video-complete",
    response_model=StatusUpdateResponse,
    dependencies=[Depends(verify_webhook_signature)],
    summary="Video Generation Callback",
    description="""
Called by the generator when a job finishes.

- `status` defaults to `ready`
- any reported `error`, even an empty object or list, marks the video `failed`
- `metadata` is merged into the stored metadata
"""
)
async def video_complete(
    callback: StatusUpdateRequest,
    lifecycle: AssetLifecycleService = Depends(get_lifecycle_service),
):
    logger.info(
        "video_complete_webhook_received",
        video_id=callback.videoId,
        status=callback.status,
        has_error=callback_error_message(callback.error) is not None,
    )
    return await lifecycle.apply_status_update(
        callback.videoId,
        status=callback.status,
        metadata=callback.metadata,
        error=callback.error,
        storage_key=callback.s3Key,
    )
