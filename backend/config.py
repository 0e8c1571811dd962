"""
Configuration management for the video asset backend
"""

import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return float(value)


class Settings:
    """Application settings"""

    # CORS
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:3000")

    # Application
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    # Externally reachable base URL, used to build the webhook callback URL
    PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")

    # Object storage (S3 or an S3-compatible store)
    STORAGE_BUCKET: str = os.getenv("STORAGE_BUCKET", "")
    AWS_ACCESS_KEY_ID: str = os.getenv("AWS_ACCESS_KEY_ID", "")
    AWS_SECRET_ACCESS_KEY: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")
    AWS_REGION: str = os.getenv("AWS_REGION", "us-east-1")
    S3_ENDPOINT_URL: Optional[str] = os.getenv("S3_ENDPOINT_URL") or None
    S3_FORCE_PATH_STYLE: bool = os.getenv("S3_FORCE_PATH_STYLE", "false").lower() == "true"
    PRESIGNED_URL_EXPIRY: int = int(os.getenv("PRESIGNED_URL_EXPIRY", "3600"))  # 1 hour in seconds
    UPLOAD_URL_EXPIRY: int = int(os.getenv("UPLOAD_URL_EXPIRY", "3600"))  # 1 hour in seconds

    # DynamoDB Configuration
    DYNAMODB_ENDPOINT: str = os.getenv("DYNAMODB_ENDPOINT", "http://localhost:8001")
    DYNAMODB_REGION: str = os.getenv("DYNAMODB_REGION", "us-east-1")
    DYNAMODB_TABLE_NAME: str = os.getenv("DYNAMODB_TABLE_NAME", "VideoAssets")
    # Use local DynamoDB for development
    USE_LOCAL_DYNAMODB: bool = os.getenv("USE_LOCAL_DYNAMODB", "true").lower() == "true"

    # External video generation webhook
    GENERATE_VIDEO_WEBHOOK_URL: str = os.getenv("GENERATE_VIDEO_WEBHOOK_URL", "")
    GENERATE_VIDEO_ESTIMATE_MINUTES: int = int(os.getenv("GENERATE_VIDEO_ESTIMATE_MINUTES", "15"))
    WEBHOOK_MAX_RETRIES: int = int(os.getenv("WEBHOOK_MAX_RETRIES", "3"))
    # Shared secret for signing inbound webhook callbacks (empty = unsigned callbacks accepted)
    WEBHOOK_SECRET: str = os.getenv("WEBHOOK_SECRET", "")

    # Source video fetch (store-from-URL flow). Unset means no client-side timeout.
    SOURCE_FETCH_TIMEOUT: Optional[float] = _optional_float("SOURCE_FETCH_TIMEOUT")
    SOURCE_FETCH_USER_AGENT: str = os.getenv(
        "SOURCE_FETCH_USER_AGENT",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    )

    # Gallery
    GALLERY_URL_CONCURRENCY: int = int(os.getenv("GALLERY_URL_CONCURRENCY", "10"))

    @property
    def dynamodb_access_key_id(self) -> str:
        """Get DynamoDB access key, using fake credentials for local dev if not set."""
        if self.USE_LOCAL_DYNAMODB:
            return self.AWS_ACCESS_KEY_ID if self.AWS_ACCESS_KEY_ID else "fakeAccessKey"
        return self.AWS_ACCESS_KEY_ID

    @property
    def dynamodb_secret_access_key(self) -> str:
        """Get DynamoDB secret key, using fake credentials for local dev if not set."""
        if self.USE_LOCAL_DYNAMODB:
            return self.AWS_SECRET_ACCESS_KEY if self.AWS_SECRET_ACCESS_KEY else "fakeSecretKey"
        return self.AWS_SECRET_ACCESS_KEY

    def validate_dynamodb_config(self) -> None:
        """
        Validate DynamoDB configuration at startup.
        Raises ValueError if production mode lacks required credentials.
        """
        if not self.USE_LOCAL_DYNAMODB:
            if not self.AWS_ACCESS_KEY_ID:
                raise ValueError("AWS_ACCESS_KEY_ID is required when USE_LOCAL_DYNAMODB=false")
            if not self.AWS_SECRET_ACCESS_KEY:
                raise ValueError("AWS_SECRET_ACCESS_KEY is required when USE_LOCAL_DYNAMODB=false")

    def validate_storage_config(self) -> None:
        """
        Validate object storage configuration at startup.
        Raises ValueError if the bucket or credentials are missing.
        """
        if not self.STORAGE_BUCKET:
            raise ValueError("STORAGE_BUCKET is required")
        if not self.AWS_ACCESS_KEY_ID or not self.AWS_SECRET_ACCESS_KEY:
            raise ValueError("AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY are required for object storage")

    @property
    def webhook_callback_url(self) -> str:
        """URL the generation service calls back when a job finishes"""
        return f"{self.PUBLIC_BASE_URL.rstrip('/')}/api/webhooks/video-complete"

    @property
    def cors_origins_list(self) -> list:
        """Parse CORS origins into a list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


# Global settings instance
settings = Settings()
