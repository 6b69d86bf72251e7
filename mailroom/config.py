"""
Centralized configuration using Pydantic Settings.

All environment variables are loaded and validated here.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Mail storage database
    mail_storage_host: str = "mail-storage"
    mail_storage_port: int = 5432
    mail_storage_db: str = "mailroom"
    mail_storage_user: str = "mailroom"
    mail_storage_password: str = ""

    # Classifier service (remote classification API)
    classifier_service_url: str = "http://classifier:8002"
    classifier_timeout_seconds: float = 30.0
    use_remote_classifier: bool = True  # False uses Gemini directly

    # Gemini (local classifier backend)
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"

    # Document summaries
    summary_max_pages: int = 3
    summary_fetch_timeout_seconds: float = 30.0

    # MinIO (optional, for scanned file URLs)
    minio_endpoint: str | None = None
    minio_access_key: str | None = None
    minio_secret_key: str | None = None
    minio_bucket: str = "scanned-mail"
    minio_region: str = "us-east-1"
    minio_secure: bool = True
    file_url_expiry_hours: int = 12

    # Live channel
    live_channel_base: str = "ws://localhost:8001"
    notification_buffer_size: int = 100
    channel_idle_timeout_seconds: int = 900
    delivered_history_size: int = 10000  # versions remembered per subscriber for dedup

    # Classification cache
    cache_ttl_seconds: int = 86400
    cache_max_entries: int = 10000

    # Re-classification of items whose classification failed
    reclassify_batch_size: int = 50
    reclassify_max_attempts: int = 5

    # Scheduler settings
    scheduler_enabled: bool = True
    scheduler_reclassify_interval_minutes: int = 10
    scheduler_sweep_interval_minutes: int = 5

    # Categories counted as urgent in unread counts
    urgent_categories: list[str] = ["Government", "Legal"]

    # Logging
    log_level: str = "INFO"
    json_logs: bool = True  # False for colored dev output

    @property
    def database_url(self) -> str:
        """PostgreSQL connection URL for mail storage database."""
        return (
            f"postgresql://{self.mail_storage_user}:{self.mail_storage_password}"
            f"@{self.mail_storage_host}:{self.mail_storage_port}/{self.mail_storage_db}"
        )

    @property
    def mail_socket_url(self) -> str:
        """Endpoint of the live mail notification feed."""
        return f"{self.live_channel_base.rstrip('/')}/ws/mail"

    def is_urgent_category(self, category: str | None) -> bool:
        """Check if a category label counts as urgent."""
        if not category:
            return False
        return category.lower() in {c.lower() for c in self.urgent_categories}


# Global settings instance
settings = Settings()
