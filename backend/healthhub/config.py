from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List
import os


class Settings(BaseSettings):
    """Global app settings loaded from environment.
    - Keep defaults light for dev.
    - Override via .env or real env vars.
    """

    APP_NAME: str = "healthhub_api"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = True

    MONGODB_URI: str = "mongodb://localhost:27017/healthhub"

    # JWT settings
    JWT_SECRET: str = "healthhub_dev_secret"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Raw CORS string from env (comma-separated); parsed via cors_origins property
    CORS_ORIGINS: str | None = None

    LOG_DIR: str = "logs"
    LOG_MAX_BYTES: int = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT: int = 5

    # Socket.IO
    # When enabled, `authenticate` only binds an identity backed by a valid access token.
    SOCKET_REQUIRE_TOKEN: bool = False
    # Emit every legacy wire name for a logical event (new-message, newMessage, ...).
    # Disable once all clients listen on the canonical names only.
    REALTIME_EVENT_ALIASES: bool = True

    # MongoDB change streams (need a replica set)
    CHANGE_FEED_ENABLED: bool = True
    CHANGE_FEED_SETTLE_SECONDS: float = 2.0

    # Chat / notifications
    NOTIFICATION_PAGE_SIZE: int = 100
    NOTIFICATION_PREVIEW_LENGTH: int = 100
    CHAT_HISTORY_LIMIT: int = 1000
    CHAT_MESSAGE_MAX_LENGTH: int = 1000

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def cors_origins(self) -> List[str]:
        """Return CORS origins as a list, parsing comma-separated env string."""
        raw = self.CORS_ORIGINS or os.getenv("CORS_ORIGINS", "") or ""
        return [o.strip() for o in raw.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
