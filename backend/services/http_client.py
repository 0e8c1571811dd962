"""
Outbound HTTP for the asset lifecycle.

All outbound calls go through build_http_client(), which registers the
request/response hooks (logging, upstream auth rejections) once at client
construction time.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential,
)

from config import settings
from services.errors import UpstreamFetchError

logger = structlog.get_logger()

DEFAULT_CONTENT_TYPE = "video/mp4"


async def _log_request(request: httpx.Request) -> None:
    logger.info("outbound_request_started", method=request.method, host=request.url.host, path=request.url.path)


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    if response.status_code in (401, 403):
        logger.warning(
            "outbound_request_unauthorized",
            method=request.method,
            host=request.url.host,
            status_code=response.status_code,
        )
    logger.info(
        "outbound_request_completed",
        method=request.method,
        host=request.url.host,
        status_code=response.status_code,
    )


def build_http_client(timeout: Optional[float] = None, **kwargs) -> httpx.AsyncClient:
    """
    Build the AsyncClient used for all outbound calls.

    Args:
        timeout: Seconds, or None for no client-side timeout
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        event_hooks={"request": [_log_request], "response": [_log_response]},
        **kwargs,
    )


async def fetch_source_video(video_url: str) -> Tuple[bytes, str]:
    """
    Download a source video.

    A desktop browser User-Agent is sent because some hosts block obvious
    bots.

    Returns:
        (content bytes, content type)

    Raises:
        UpstreamFetchError: Non-2xx response or transport failure
    """
    headers = {"User-Agent": settings.SOURCE_FETCH_USER_AGENT}
    try:
        async with build_http_client(timeout=settings.SOURCE_FETCH_TIMEOUT) as client:
            response = await client.get(video_url, headers=headers)
    except httpx.HTTPError as e:
        logger.error("source_video_fetch_failed", video_url=video_url, error=str(e))
        raise UpstreamFetchError(f"Failed to download video: {e}", videoUrl=video_url)

    if not response.is_success:
        logger.error(
            "source_video_fetch_rejected",
            video_url=video_url,
            status_code=response.status_code,
        )
        raise UpstreamFetchError(
            f"Failed to download video: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            videoUrl=video_url,
        )

    content_type = response.headers.get("content-type") or DEFAULT_CONTENT_TYPE
    logger.info("source_video_fetched", video_url=video_url, size=len(response.content))
    return response.content, content_type


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, httpx.TransportError):
        return True
    return isinstance(error, httpx.HTTPStatusError) and error.response.status_code >= 500


@retry(
    stop=stop_after_attempt(settings.WEBHOOK_MAX_RETRIES),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((httpx.TransportError, httpx.HTTPStatusError)),
    before_sleep=before_sleep_log(logger, logging.INFO),
    reraise=True,
)
async def _post_job(webhook_url: str, payload: Dict[str, Any]) -> int:
    async with build_http_client(timeout=30.0) as client:
        response = await client.post(webhook_url, json=payload)
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        if not _is_retryable(e):
            # 4xx from the generator will not change on retry
            raise ValueError(f"Generation webhook rejected job: {response.status_code}") from e
        raise
    return response.status_code


async def dispatch_generation_job(webhook_url: str, payload: Dict[str, Any]) -> int:
    """
    POST a generation job to the external video generation webhook.

    Transport errors and 5xx responses are retried with exponential backoff.

    Returns:
        Final HTTP status code

    Raises:
        httpx.HTTPError or ValueError once retries are exhausted or the job is rejected
    """
    logger.info("generation_job_dispatching", video_id=payload.get("videoId"))
    status_code = await _post_job(webhook_url, payload)
    logger.info("generation_job_dispatched", video_id=payload.get("videoId"), status_code=status_code)
    return status_code
