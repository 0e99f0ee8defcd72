from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite:///./data/bookings.db"
    DATABASE_ECHO: bool = False

    BUSINESS_NAME: str = "Your Business"
    BUSINESS_TIMEZONE: str = "Europe/Madrid"
    DEFAULT_CURRENCY: str = "EUR"
    DEFAULT_COUNTRY_CODE: str = "+34"
    DEFAULT_RESOURCE: str = "default"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    SCAN_INTERVAL_SECONDS: int = 300
    RETRY_DRAIN_INTERVAL_SECONDS: int = 600
    CLEANUP_INTERVAL_SECONDS: int = 86400
    CALENDAR_SYNC_INTERVAL_SECONDS: int = 900
    SCHEDULER_ENABLED: bool = True

    MAX_RETRIES: int = 3
    RETRY_DELAY_SECONDS: int = 300
    NOTIFICATION_RETENTION_DAYS: int = 30
    PREPARATION_CATEGORIES: list[str] = ["coloracion", "tratamiento", "alisado", "permanente"]
    SERVICE_CACHE_TTL_SECONDS: int = 300

    COLLABORATOR_TIMEOUT_SECONDS: float = 30.0
    CALENDAR_AVAILABILITY_CHECK: bool = True

    CAL_COM_API_KEY: str | None = None
    CAL_COM_CALENDAR_ID: str | None = None
    CAL_COM_BASE_URL: str = "https://api.cal.com/v1"

    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_WHATSAPP_NUMBER: str | None = None
    TWILIO_BASE_URL: str = "https://api.twilio.com/2010-04-01"


settings = Settings()
