"""
Application configuration using Pydantic Settings.
"""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Inbound review callbacks (HMAC-SHA256 over the raw body)
    WEBHOOK_SECRET: str = ""

    # Outbound review workflow
    REVIEW_WORKFLOW_URL: str = ""
    REVIEW_API_KEY: str = ""
    REVIEW_TIMEOUT_SECONDS: float = 10.0
    DISPATCH_MAX_WORKERS: int = 4

    # 32-byte AES key, hex encoded; no default, see validate_security_settings
    PII_ENC_KEY: str = ""

    # API
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()


def validate_security_settings(config: Settings) -> None:
    """Fail fast when the PII encryption key is missing or malformed."""
    try:
        key = bytes.fromhex(config.PII_ENC_KEY.strip())
    except ValueError:
        raise ValueError("PII_ENC_KEY must be hex encoded") from None
    if len(key) != 32:
        raise ValueError("PII_ENC_KEY is not configured. Set a 32-byte key (64 hex characters).")
