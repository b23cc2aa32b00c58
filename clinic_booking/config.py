from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROJECT_NAME: str = "Clinic Booking API"

    # Database
    DATABASE_URL: str = "sqlite:///./clinic_booking.db"
    SQL_ECHO: bool = False

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # Booking
    DEFAULT_APPOINTMENT_MINUTES: int = 30

    # No-show sweep
    SCHEDULER_ENABLED: bool = True
    NO_SHOW_SWEEP_MINUTES: int = 15
    NO_SHOW_GRACE_MINUTES: int = 30

    # Initial admin account, created on startup when all three are set
    BOOTSTRAP_ADMIN_USERNAME: Optional[str] = None
    BOOTSTRAP_ADMIN_EMAIL: Optional[str] = None
    BOOTSTRAP_ADMIN_PASSWORD: Optional[str] = None


settings = Settings()
