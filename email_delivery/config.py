from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Public base URL used for tracking pixels and unsubscribe links
    APP_URL: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("APP_URL", "NEXT_PUBLIC_APP_URL"),
    )

    # Redis settings (sent records + scheduled emails)
    REDIS_URL: str = "redis://localhost:6379/0"

    # SendGrid settings
    SENDGRID_API_KEY: str | None = None
    SENDGRID_FROM_EMAIL: str | None = None
    SENDGRID_API_URL: str = "https://api.sendgrid.com/v3/mail/send"

    # AWS SES settings
    AWS_SES_ACCESS_KEY: str | None = None
    AWS_SES_SECRET_KEY: str | None = None
    AWS_SES_REGION: str = "us-west-2"

    # SMTP settings (Gmail takes precedence over a custom host)
    GMAIL_USER: str | None = None
    GMAIL_PASS: str | None = None
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_SECURE: bool = False
    SMTP_USER: str | None = None
    SMTP_PASS: str | None = None
    SMTP_VERIFY_CACHE_SECONDS: float = 60.0

    DEFAULT_FROM_EMAIL: str = "noreply@fisherbackflows.com"

    # =================================================================
    # DELIVERY SETTINGS
    # =================================================================
    EMAIL_MAX_RETRIES: int = 3
    EMAIL_RETRY_INTERVAL_SECONDS: float = 5.0
    EMAIL_BULK_BATCH_SIZE: int = 50
    EMAIL_BULK_BATCH_DELAY_SECONDS: float = 1.0
    EMAIL_PROVIDER_TIMEOUT_SECONDS: float = 30.0
    EMAIL_SENT_RECORD_TTL_SECONDS: int = 86400 * 30  # 30 days

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def app_url(self) -> str:
        """Base application URL without a trailing slash."""
        return self.APP_URL.rstrip("/")


settings = Settings()
