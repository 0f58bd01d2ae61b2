from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    APP_NAME: str = "Masjid Dashboard"
    DEBUG: bool = False
    DATABASE_URL: str = "sqlite+aiosqlite:///./masjid_dashboard.db"

    # Seed administrator + /admin panel login
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "masjid@admin"
    ADMIN_EMAIL: str = ""
    SESSION_SECRET: str = "change-me-masjid-session"

    # Activity logs
    ACTIVITY_PAGE_LIMIT: int = 50
    ACTIVITY_SCOPED_PAGE_LIMIT: int = 20
    ACTIVITY_EXPORT_LIMIT: int = 1000
    ACTIVITY_CLEANUP_DAYS: int = 90

    # Admin notifications
    NOTIFICATION_HISTORY_LIMIT: int = 100
    NOTIFICATION_HISTORY_HOURS: int = 24
    NOTIFICATION_PRUNE_INTERVAL_MINUTES: int = 60
    NOTIFICATION_QUEUE_LIMIT: int = 1000
    NOTIFICATION_DISPATCH_DELAY_MS: int = 100

    # Admin websocket liveness
    WS_PING_INTERVAL_SECONDS: int = 30
    WS_PONG_TIMEOUT_SECONDS: int = 60


settings = Settings()
