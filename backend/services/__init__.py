"""
Services module for the video asset lifecycle
"""

from .errors import AssetError, ErrorCode
from .s3_storage import VideoStorageGateway, get_video_storage

__all__ = ["AssetError", "ErrorCode", "VideoStorageGateway", "get_video_storage"]
