# core/config.py
"""
Runtime settings for blob-migrator.

Every field can be overridden with an environment variable of the same name
(or a line in ``.env``), e.g. ``CONCURRENCY=10 blob-migrator migrate``.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Durable queue store
    DATABASE_URL: str = "sqlite:///./blob_migrator.db"

    # Control API
    DEBUG: bool = False
    API_KEY: str | None = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None

    # Source storage zone (listing + download)
    SOURCE_BASE_URL: str = "https://ny.storage.bunnycdn.com"
    SOURCE_STORAGE_ZONE: str = ""
    SOURCE_ACCESS_KEY: str = ""

    # Destination bucket (upload)
    DEST_BASE_URL: str = ""
    DEST_API_KEY: str = ""
    DEST_BUCKET: str = "migrated-storage"

    HTTP_TIMEOUT_SECONDS: float = 120.0

    # Transfer tuning
    SMALL_FILE_THRESHOLD_BYTES: int = 25 * 1024 * 1024
    CONCURRENCY: int = 5
    MAX_RETRIES: int = 3
    BATCH_SIZE: int = 1000
    RETRY_BASE_DELAY_SECONDS: float = 1.0

    # Discovery
    ROOT_PATH: str = "/"
    ALLOW_PARALLEL_DISCOVER: bool = False

    # Lifecycle / polling
    HEARTBEAT_SECONDS: float = 15.0
    STALE_JOB_MINUTES: float = 2.0
    PAUSE_POLL_SECONDS: float = 2.0
    EMPTY_CLAIM_RECHECK_SECONDS: float = 2.0

    # In-process reclaim of stale in_progress claims (0 disables)
    RECLAIM_INTERVAL_SECONDS: float = 300.0
    RECLAIM_STALE_MINUTES: float = 30.0


settings = Settings()
