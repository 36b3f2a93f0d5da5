from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

from pydantic import Field

# This file is in backend/app/settings.py -> parent.parent is backend/
BASE_DIR = Path(__file__).resolve().parent.parent
DB_PATH = BASE_DIR / "data" / "app.db"

class Settings(BaseSettings):
    # Default to SQLite if APP_DB_URL not set
    app_db_url: str = Field(
        default="sqlite:///" + str(DB_PATH),
        validation_alias="APP_DB_URL"
    )

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_timezone: str = "Asia/Jakarta"
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Auth
    secret_key: str = Field(default="change-this-secret-in-production-3f9a1c5e7b2d4a6f8e0c", validation_alias="SECRET_KEY")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 1 day
    remember_me_expire_minutes: int = 60 * 24 * 30  # 30 days
    auth_cookie_name: str = "auth_token"
    cookie_secure: bool = Field(default=False, validation_alias="COOKIE_SECURE")

    cors_origins: list[str] = Field(default=["http://localhost:3000"], validation_alias="CORS_ORIGINS")

    # Uploads are served back under /uploads
    upload_dir: Path = Field(default=BASE_DIR / "data" / "uploads", validation_alias="UPLOAD_DIR")
    max_upload_bytes: int = 5 * 1024 * 1024

    # Optional shared cache; in-process memory is used when unset
    redis_url: str | None = Field(default=None, validation_alias="REDIS_URL")
    stats_cache_ttl: int = 60

    scheduler_enabled: bool = Field(default=True, validation_alias="SCHEDULER_ENABLED")
    event_status_interval_minutes: int = Field(default=15, validation_alias="EVENT_STATUS_INTERVAL_MINUTES")

settings = Settings()
