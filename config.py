from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings

from core.constants import (
    CONFLICT_LOG_CAPACITY,
    CONSISTENCY_WINDOW,
    DEFAULT_EVENT_MAX_AGE_MS,
    DEVICE_CAPACITY,
    DEVICE_COUNT_WINDOW,
    EVENT_LOG_CAPACITY,
    PATTERN_WINDOW,
)


class Settings(BaseSettings):
    event_log_capacity: int = EVENT_LOG_CAPACITY
    consistency_window: int = CONSISTENCY_WINDOW
    device_count_window: int = DEVICE_COUNT_WINDOW
    pattern_window: int = PATTERN_WINDOW
    event_max_age_ms: int = DEFAULT_EVENT_MAX_AGE_MS
    device_capacity: int = DEVICE_CAPACITY
    conflict_log_capacity: int = CONFLICT_LOG_CAPACITY
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    class Config:
        env_file = ".env"
        env_prefix = "SYNC_"


@lru_cache()
def get_settings():
    return Settings()
