from __future__ import annotations

import os

APP_VERSION = "0.4.0"


def _flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings:
    PROJECT_NAME: str = "Cardflow"
    API_V1_PREFIX: str = "/api/v1"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Full SQLAlchemy URL wins over the individual POSTGRES_* parts
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: str = os.getenv("POSTGRES_PORT", "5432")
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "cardflow")
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "cardflow")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "cardflow")

    ALLOWED_ORIGINS: list[str] = [
        o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",") if o.strip()
    ]

    RESET_DB: bool = _flag("RESET_DB")
    RUN_BACKGROUND_TASKS: bool = _flag("RUN_BACKGROUND_TASKS", "true")

    # Entropy: idle published cards are moved to "not now" after this period
    ENTROPY_DEFAULT_PERIOD_DAYS: int = int(os.getenv("ENTROPY_DEFAULT_PERIOD_DAYS", "30"))
    ENTROPY_SWEEP_INTERVAL_SECONDS: int = int(os.getenv("ENTROPY_SWEEP_INTERVAL_SECONDS", "3600"))
    ENTROPY_WARNING_THRESHOLD: float = float(os.getenv("ENTROPY_WARNING_THRESHOLD", "0.75"))

    # Notification bundling
    NOTIFICATION_BUNDLE_WINDOW_MINUTES: int = int(
        os.getenv("NOTIFICATION_BUNDLE_WINDOW_MINUTES", "30")
    )
    NOTIFICATION_SWEEP_INTERVAL_SECONDS: int = int(
        os.getenv("NOTIFICATION_SWEEP_INTERVAL_SECONDS", "300")
    )
    NOTIFICATION_RETRY_BASE_SECONDS: int = int(os.getenv("NOTIFICATION_RETRY_BASE_SECONDS", "60"))
    NOTIFICATION_RETRY_MAX_SECONDS: int = int(
        os.getenv("NOTIFICATION_RETRY_MAX_SECONDS", str(6 * 3600))
    )
    NOTIFICATION_PROCESSING_TIMEOUT_MINUTES: int = int(
        os.getenv("NOTIFICATION_PROCESSING_TIMEOUT_MINUTES", "15")
    )

    # Activity spike: this many comments inside the window flags the card
    ACTIVITY_SPIKE_THRESHOLD: int = int(os.getenv("ACTIVITY_SPIKE_THRESHOLD", "3"))
    ACTIVITY_SPIKE_WINDOW_HOURS: int = int(os.getenv("ACTIVITY_SPIKE_WINDOW_HOURS", "24"))

    # Email / SMTP (optional; without SMTP_HOST digests are only logged)
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    SMTP_FROM: str = os.getenv("SMTP_FROM", "noreply@cardflow.local")
    SMTP_TLS: bool = _flag("SMTP_TLS", "true")
    # Recipient ids are opaque; the address is built from this template
    SMTP_RECIPIENT_TEMPLATE: str = os.getenv("SMTP_RECIPIENT_TEMPLATE", "{recipient_id}@cardflow.local")
    APP_BASE_URL: str = os.getenv("APP_BASE_URL", "http://localhost:8000")

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()
