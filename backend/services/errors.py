"""
Error taxonomy for the video asset lifecycle.

Provides structured errors with:
- Categorized error codes for every failure the asset layer can surface
- HTTP status mapping for the API layer
- Detailed context for logging and debugging
"""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(Enum):
    """
    Enumeration of asset lifecycle error codes.

    Client errors (4xx) are never retried automatically. Upstream and storage
    errors (5xx) may be retried by the caller by re-running the whole operation.
    """

    VALIDATION_ERROR = "ValidationError"
    NOT_FOUND = "NotFound"
    ACCESS_DENIED = "AccessDenied"
    UPSTREAM_FETCH_ERROR = "UpstreamFetchError"
    STORAGE_ERROR = "StorageError"
    DATABASE_ERROR = "DatabaseError"
    CONFIGURATION_ERROR = "ConfigurationError"


HTTP_STATUS_BY_CODE = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.ACCESS_DENIED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.UPSTREAM_FETCH_ERROR: 502,
    ErrorCode.STORAGE_ERROR: 502,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.CONFIGURATION_ERROR: 500,
}


class AssetError(Exception):
    """
    Base exception for the asset layer.

    Example:
        >>> raise AssetError(
        ...     ErrorCode.VALIDATION_ERROR,
        ...     "Missing required field: videoUrl",
        ...     {"field": "videoUrl"}
        ... )
    """

    code: ErrorCode = ErrorCode.STORAGE_ERROR

    def __init__(
        self,
        code: Optional[ErrorCode] = None,
        message: str = "",
        details: Optional[Dict[str, Any]] = None,
    ):
        if code is not None:
            self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_CODE.get(self.code, 500)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for API responses.

        Example:
            >>> NotFoundError("Video video_1 not found").to_dict()
            {"error": "NotFound", "message": "Video video_1 not found", "details": {}}
        """
        return {
            "error": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(AssetError):
    """Missing or malformed required field."""

    def __init__(self, message: str, field: Optional[str] = None, **details):
        if field:
            details["field"] = field
        super().__init__(ErrorCode.VALIDATION_ERROR, message, details)


class NotFoundError(AssetError):
    """Referenced record or stored object does not exist."""

    def __init__(self, message: str, **details):
        super().__init__(ErrorCode.NOT_FOUND, message, details)


class AccessDeniedError(AssetError):
    """Secret key mismatch on a storage operation, or a caller acting on another owner's asset."""

    def __init__(self, message: str, **details):
        super().__init__(ErrorCode.ACCESS_DENIED, message, details)


class UpstreamFetchError(AssetError):
    """The source video URL could not be retrieved."""

    def __init__(self, message: str, status_code: Optional[int] = None, **details):
        if status_code is not None:
            details["upstreamStatus"] = status_code
        super().__init__(ErrorCode.UPSTREAM_FETCH_ERROR, message, details)


class StorageError(AssetError):
    """Generic object store failure (network, permissions, service errors)."""

    def __init__(self, message: str, **details):
        super().__init__(ErrorCode.STORAGE_ERROR, message, details)


class DatabaseError(AssetError):
    """Record store failure. Never swallowed."""

    def __init__(self, message: str, **details):
        super().__init__(ErrorCode.DATABASE_ERROR, message, details)


class ConfigurationError(AssetError):
    """A required setting is missing for the requested operation."""

    def __init__(self, message: str, **details):
        super().__init__(ErrorCode.CONFIGURATION_ERROR, message, details)
