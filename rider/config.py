from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Rider Backend API"
    VERSION: str = "1.0.0"

    # --- Storage ---
    DATA_DIR: str = "data"
    CACHE_ENABLED: bool = True
    AUDIT_LOG_FILE: str = "logs/kpi.csv"

    # --- Business rules ---
    TIMEZONE: str = "UTC"
    MIN_WITHDRAWAL: Decimal = Decimal("10")
    MAX_WITHDRAWAL: Decimal = Decimal("10000")
    # Serialises balance check + append per rider. Off = last write wins.
    WITHDRAWAL_LOCKING: bool = True

    LOG_LEVEL: str = "INFO"
    DEFAULT_RIDER_ID: str = "rider_001"

    model_config = SettingsConfigDict(
        env_prefix="RIDER_",
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
