import logging
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROJECT_NAME: str = "chatsync"
    LOG_LEVEL: str = "INFO"

    # Remote document store
    MONGO_URL: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "chatsync"

    # Realtime feed; empty means in-process fan-out only
    REDIS_URL: str = ""

    # Blob storage
    FILES_BASE_URL: str = "http://localhost:8000/files"
    MAX_ATTACHMENT_BYTES: int = 25 * 1024 * 1024
    MAX_AVATAR_BYTES: int = 5 * 1024 * 1024

    # Message stream and search windows
    MESSAGE_PAGE_SIZE: int = 100
    SEARCH_MESSAGE_WINDOW: int = 500
    USER_SEARCH_LIMIT: int = 25
    SEARCH_DEBOUNCE_SECONDS: float = 0.3

    # Client-local read markers; empty keeps them in memory only
    READ_MARKERS_PATH: str = ""

    @field_validator("MESSAGE_PAGE_SIZE", "SEARCH_MESSAGE_WINDOW", "USER_SEARCH_LIMIT")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("FILES_BASE_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    logger.debug("Loaded settings for %s (db=%s)", settings.PROJECT_NAME, settings.MONGO_DB_NAME)
    return settings
