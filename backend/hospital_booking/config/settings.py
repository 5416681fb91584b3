import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Literal

env = os.getenv("APP_ENV", "development")
env_file = f".env.{env}"

class Settings(BaseSettings):
    database_url: str
    # CORS origins can be overridden via CORS_ORIGINS env var (JSON list or comma-separated)
    cors_origins: List[str] = Field(default=["http://localhost:3000"])
    # JWT configuration
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Scheduling
    clinic_timezone: str = "UTC"
    default_slot_minutes: int = 30
    allowed_durations: List[int] = Field(default=[15, 30, 45, 60])

    # Payments
    currency: str = "USD"
    settlement_timeout_seconds: float = 10.0
    card_decline_rate: float = 0.10
    simulated_gateway_latency_seconds: float = 0.0
    refund_delay_seconds: float = 0.0

    # Saga compensation: "cancel" keeps the appointment row as an audit trail,
    # "delete" removes it outright.
    compensation_mode: Literal["cancel", "delete"] = "cancel"
    compensation_max_attempts: int = 2

    create_tables_on_startup: bool = False
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=env_file,
        env_file_encoding="utf-8",
        extra="ignore",
    )

settings = Settings()
