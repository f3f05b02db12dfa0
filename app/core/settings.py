from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(default="sqlite+pysqlite:///./dev.db", validation_alias="DATABASE_URL")
    db_auto_create: bool = Field(default=True, validation_alias="DB_AUTO_CREATE")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")

    google_cloud_project: str | None = Field(default=None, validation_alias="GOOGLE_CLOUD_PROJECT")
    google_cloud_location: str = Field(default="us-central1", validation_alias="GOOGLE_CLOUD_LOCATION")

    gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
    gemini_text_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_TEXT_MODEL")
    gemini_timeout_seconds: float = Field(default=60.0, validation_alias="GEMINI_TIMEOUT_SECONDS")

    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_image_model: str = Field(default="dall-e-3", validation_alias="OPENAI_IMAGE_MODEL")
    openai_image_size: str = Field(default="1024x1024", validation_alias="OPENAI_IMAGE_SIZE")
    openai_image_quality: str = Field(default="standard", validation_alias="OPENAI_IMAGE_QUALITY")
    openai_image_style: str = Field(default="vivid", validation_alias="OPENAI_IMAGE_STYLE")
    openai_timeout_seconds: float = Field(default=120.0, validation_alias="OPENAI_TIMEOUT_SECONDS")

    google_places_api_key: str | None = Field(default=None, validation_alias="GOOGLE_PLACES_API_KEY")
    google_places_timeout_seconds: float = Field(default=15.0, validation_alias="GOOGLE_PLACES_TIMEOUT_SECONDS")

    provider_max_attempts: int = Field(default=3, validation_alias="PROVIDER_MAX_ATTEMPTS")
    provider_base_delay_seconds: float = Field(default=2.0, validation_alias="PROVIDER_BASE_DELAY_SECONDS")
    provider_max_jitter_seconds: float = Field(default=0.5, validation_alias="PROVIDER_MAX_JITTER_SECONDS")

    min_reviews: int = Field(default=5, validation_alias="MIN_REVIEWS")
    selection_cap: int = Field(default=5, validation_alias="SELECTION_CAP")
    analysis_cap: int = Field(default=5, validation_alias="ANALYSIS_CAP")
    cache_duration_days: float = Field(default=7.0, validation_alias="CACHE_DURATION_DAYS")
    leaderboard_min_score: float = Field(default=20.0, validation_alias="LEADERBOARD_MIN_SCORE")

    media_root: str = Field(default="./storage/media", validation_alias="MEDIA_ROOT")
    media_url_prefix: str = Field(default="/media", validation_alias="MEDIA_URL_PREFIX")
    media_public_read: bool = Field(default=False, validation_alias="MEDIA_PUBLIC_READ")
    media_signing_key: str = Field(default="change-me", validation_alias="MEDIA_SIGNING_KEY")
    public_base_url: str = Field(default="", validation_alias="PUBLIC_BASE_URL")

    overlay_font_path: str | None = Field(default=None, validation_alias="OVERLAY_FONT_PATH")

    cleanup_enabled: bool = Field(default=True, validation_alias="CLEANUP_ENABLED")
    cleanup_interval_minutes: int = Field(default=30, validation_alias="CLEANUP_INTERVAL_MINUTES")
    cleanup_batch_size: int = Field(default=25, validation_alias="CLEANUP_BATCH_SIZE")

    @property
    def cache_duration(self) -> timedelta:
        return timedelta(days=self.cache_duration_days)


settings = Settings()
