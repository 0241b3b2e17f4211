from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./samsync.db"
    DB_TIMEOUT_SECONDS: int = 30

    # SAM.gov source
    SAM_API_KEY: str | None = None
    SAM_API_BASE_URL: str = "https://api.sam.gov"
    SAM_PAGE_LIMIT: int = 1000           # SAM.gov caps a page at 1000
    SAM_REQUEST_TIMEOUT: int = 30
    USER_AGENT: str = "samsync/1.0 (+contact: ops@example.org)"

    # Sync / backfill
    SYNC_PAGE_DELAY_SECONDS: float = 0.2
    RECENT_SYNC_DAYS: int = 7
    BACKFILL_MONTHS: int = 24
    BACKFILL_WINDOW_DAYS: int = 30
    BACKFILL_WINDOW_DELAY_SECONDS: float = 5.0
    BACKFILL_LOW_WATER_MARK: int = 100

    # Scheduler
    SCHEDULER_TIMEZONE: str = "America/New_York"
    STARTUP_DELAY_SECONDS: int = 5
    DAILY_SYNC_HOUR: int = 0
    SAVED_SEARCH_HOUR: int = 8
    REMINDER_INTERVAL_MINUTES: int = 60

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()
