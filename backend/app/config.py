# app/config.py
import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    # General app settings
    APP_NAME: str = "Colorise API"
    APP_VERSION: str = "1.0.0"
    env: str = os.getenv("ENV", "production")

    # Host & Port settings
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3500"))

    # CORS origins for the mobile/web clients
    CORS_ORIGINS: list[str] = _csv(os.getenv("CORS_ORIGINS", "*"))

    # Credentials
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret")
    token_ttl_seconds: int = int(os.getenv("TOKEN_TTL_SECONDS", str(24 * 60 * 60)))

    # Quota and retention
    daily_limit: int = int(os.getenv("DAILY_LIMIT", "20"))
    recent_sessions_limit: int = int(os.getenv("RECENT_SESSIONS_LIMIT", "5"))
    session_retention_days: int = int(os.getenv("SESSION_RETENTION_DAYS", "7"))
    event_retention_days: int = int(os.getenv("EVENT_RETENTION_DAYS", "90"))
    cleanup_interval_sec: int = int(os.getenv("CLEANUP_INTERVAL_SEC", "3600"))

    # Image processing
    max_image_bytes: int = int(os.getenv("MAX_IMAGE_BYTES", str(10 * 1024 * 1024)))
    processing_timeout_sec: float = float(os.getenv("PROCESSING_TIMEOUT_SEC", "120"))
    # Used by the dev-only trial endpoint when no image is uploaded
    sample_image_path: str | None = os.getenv("SAMPLE_IMAGE_PATH")

    # Replicate API Settings (image restoration)
    replicate_api_token: str | None = os.getenv("REPLICATE_API_TOKEN")
    replicate_api_url: str = os.getenv("REPLICATE_API_URL", "https://api.replicate.com/v1")
    # Tried in order; the next model is used when the previous one fails
    restoration_models: list[str] = _csv(
        os.getenv("RESTORATION_MODELS", "flux-kontext-apps/restore-image")
    )

    @property
    def dev_mode(self) -> bool:
        return self.env.lower() in ("dev", "development")


settings = Settings()  # Instantiate configuration
