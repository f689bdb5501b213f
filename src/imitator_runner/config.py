"""Configuration management for Imitator Runner."""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from imitator_runner.core.enums import FailurePolicy, StreamBackend


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Every setting has a default so the service starts with no configuration.
    """

    # Application
    APP_NAME: str = "Imitator Runner"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # API
    API_PREFIX: str = "/api/imitator"

    # Storage
    STORAGE_ROOT: str = "uploads"
    ARCHIVE_NAME: str = "outputs.zip"

    # Database (job history)
    DATABASE_URL: str = "sqlite:///./imitator_runner.db"
    DATABASE_ECHO: bool = False

    # Streaming
    STREAM_BACKEND: StreamBackend = StreamBackend.MEMORY
    STREAM_HISTORY_CHANNELS: int = 256
    REDIS_URL: str = "redis://localhost:6379/0"

    # Verification tool
    TOOL_COMMAND: str = "imitator"
    TOOL_OUTPUT_FLAG: str = "-output-prefix"
    DISALLOWED_OPTIONS: List[str] = ["-output-prefix"]

    # Execution limits
    DEFAULT_TIMEOUT_SECONDS: float = 300.0
    MAX_TIMEOUT_SECONDS: float = 3600.0
    MAX_CONCURRENT_MODELS: int = 4
    KILL_GRACE_SECONDS: float = 5.0
    OUTPUT_CHUNK_SIZE: int = 4096
    FAILURE_POLICY: FailurePolicy = FailurePolicy.ISOLATE
    DISCONNECT_POLL_INTERVAL: float = 1.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Singleton settings instance
    """
    return Settings()
