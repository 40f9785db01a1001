from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = "SchoolSync"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Database settings (key-value sync state)
    DATABASE_URL: str = "sqlite+aiosqlite:///./schoolsync.db"
    DATABASE_ECHO: bool = False

    # Capsule API
    CAPSULE_ENDPOINT: str = ""
    SYNC_BATCH_SIZE: int = 50
    SYNC_REQUEST_TIMEOUT: float = 15.0
    HEALTH_CHECK_TIMEOUT: float = 5.0
    SYNC_LOG_LIMIT: int = 50

    # Detail crawl settings
    CRAWL_DELAY: float = 0.8
    CRAWL_TIMEOUT: float = 10.0
    CRAWL_MAX_ATTEMPTS: int = 2
    CRAWL_RETRY_BASE_DELAY: float = 1.0
    USER_AGENT: str = "SchoolSync/1.0"

    # Credential vault
    PBKDF2_ITERATIONS: int = 100_000

    model_config = SettingsConfigDict(
        env_prefix="SCHOOLSYNC_",
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("CAPSULE_ENDPOINT")
    @classmethod
    def validate_capsule_endpoint(cls, v):
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("CAPSULE_ENDPOINT must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("PBKDF2_ITERATIONS")
    @classmethod
    def validate_iterations(cls, v):
        if v < 100_000:
            raise ValueError("PBKDF2_ITERATIONS must be at least 100000")
        return v

    @field_validator("SYNC_BATCH_SIZE", "CRAWL_MAX_ATTEMPTS")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        return v


settings = Settings()
