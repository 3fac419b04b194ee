"""
Configuration management using Pydantic settings.
Loads from environment variables with validation.
"""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Upstream proof API
    proof_api_base_url: str = "http://localhost:4000"
    request_timeout_seconds: float = 15.0

    # Concurrency caps
    batch_concurrency: int = 10  # per-wallet fallback tier
    ens_concurrency: int = 5

    # Cache settings
    ens_cache_ttl_seconds: int = 300

    # Demo data
    mock_wallet_count: int = 25

    # Dev-mode re-evaluation of one wallet after each run
    determinism_spot_check: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # App settings
    app_name: str = "Proof of Usage Engine"
    app_version: str = "1.0.0"
    debug: bool = False
    cors_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )

    def get_window_seconds(self, window_type: str) -> int:
        """Get the fixed lookback offset for a usage window type."""
        mapping = {
            "last_7_days": 7 * 24 * 60 * 60,
            "last_14_days": 14 * 24 * 60 * 60,
            "last_30_days": 30 * 24 * 60 * 60,
        }
        return mapping.get(window_type.lower(), 0)


settings = Settings()
