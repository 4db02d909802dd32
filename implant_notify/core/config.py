"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # Database
    DATABASE_URL: str = "postgresql+psycopg://localhost:5432/implant_notify"

    # Email (Resend). Without an API key, emails are logged instead of sent.
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "noreply@example.com"

    # Frontend (for deep links in emails)
    FRONTEND_URL: str = "http://localhost:5000"

    # Internal scheduled endpoints (external cron triggers)
    INTERNAL_SECRET: str = ""

    # Scheduler
    SCHEDULER_ENABLED: bool = True  # worker_service starts the in-process scheduler
    SCHEDULER_INTERVAL_SECONDS: int = 60
    DAILY_JOBS_HOUR: int = 7  # Server-local hour for the daily sweeps

    # Notifications
    DEDUPE_COOLDOWN_MINUTES: int = 30
    DIGEST_DEFAULT_TIME: str = "08:00"
    DIGEST_PERIOD_HOURS: int = 24

    # Clinical thresholds
    ISQ_LOW_THRESHOLD: float = 55.0  # Strictly below is low
    ISQ_DECLINE_THRESHOLD: float = 10.0  # Drop of at least this many points
    IMPLANT_FOLLOWUP_MONTHS: int = 24
    IMPLANT_FOLLOWUP_GRACE_DAYS: int = 7

    # Follow-up rules (days)
    NO_RECENT_ISQ_DAYS: int = 90
    POSTOP_FOLLOWUP_MIN_DAYS: int = 30  # Operations strictly between min and max days old
    POSTOP_FOLLOWUP_MAX_DAYS: int = 90
    NO_RECENT_APPOINTMENT_DAYS: int = 180

    @property
    def email_enabled(self) -> bool:
        """Real sends only when a Resend key is configured."""
        return bool(self.RESEND_API_KEY)


settings = Settings()
