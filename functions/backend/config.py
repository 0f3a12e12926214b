"""
Configuration and settings shared by the Cloud Functions and the FastAPI service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="CONSULT_USE_IN_MEMORY_BACKENDS"
    )

    # Razorpay (callable payment flow)
    razorpay_key_id: str = Field(default="", validation_alias="RAZORPAY_KEY_ID")
    razorpay_key_secret: str = Field(
        default="", validation_alias="RAZORPAY_KEY_SECRET"
    )

    # PhonePe (redirect checkout flow)
    phonepe_base_url: str = Field(
        default="https://api-preprod.phonepe.com/apis/pg-sandbox",
        validation_alias="PHONEPE_BASE_URL",
    )
    phonepe_client_id: Optional[str] = Field(
        default=None, validation_alias="PHONEPE_CLIENT_ID"
    )
    phonepe_client_secret: Optional[str] = Field(
        default=None, validation_alias="PHONEPE_CLIENT_SECRET"
    )
    phonepe_client_version: int = Field(
        default=1, validation_alias="PHONEPE_CLIENT_VERSION"
    )
    phonepe_order_expiry_seconds: int = Field(default=1200)
    default_origin: str = Field(
        default="http://localhost:5173", validation_alias="DEFAULT_ORIGIN"
    )

    # LLM / Gemini (chat assistant replies)
    gemini_api_key: Optional[str] = Field(
        default=None, validation_alias="GEMINI_API_KEY"
    )

    # Per-user ceilings between two hourly rate-limit resets
    max_appointments_per_window: int = Field(default=5)
    max_chat_sessions_per_window: int = Field(default=20)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
