"""
Application Configuration

All settings loaded from environment variables.
"""

from functools import lru_cache
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Autopilot Risk Gate"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"
    api_prefix: str = "/api/v1"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # SQLite (local persistence)
    sqlite_path: Optional[str] = None  # Defaults to ./data/autopilot.db
    database_url: Optional[str] = None  # Overrides sqlite_path when set

    # Redis (market state)
    redis_url: str = "redis://localhost:6379"

    # CORS (Frontend URL)
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Safety signal collaborators
    signal_provider: Literal["stub", "live"] = "stub"
    signal_api_base_url: str = "http://localhost:8100"
    signal_api_key: Optional[str] = None
    iv_gate_source: Literal["provider", "engine"] = "provider"

    # Broker
    broker_mode: Literal["simulated", "live"] = "simulated"
    broker_base_url: str = "https://api.topstepx.com"
    broker_api_key: Optional[str] = None

    # Timeouts (seconds)
    threat_timeout: float = 2.0
    blind_spot_timeout: float = 2.0
    iv_gate_timeout: float = 2.0
    data_timeout: float = 5.0
    broker_timeout: float = 10.0

    # Circuit breaker / signal cache
    circuit_failure_threshold: int = 3
    circuit_cooldown_seconds: float = 30.0
    threat_cache_ttl: float = 30.0
    blind_spot_cache_ttl: float = 60.0
    iv_gate_cache_ttl: float = 30.0
    signal_stale_horizon: float = 600.0

    # Risk Limits (Defaults)
    default_max_trades_per_day: int = 10
    max_concurrent_positions: int = 10
    margin_rate: float = 0.10
    iv_gate_min_score: float = 8.5
    volatility_strategy_markers: list[str] = ["vix"]

    # Proposal lifecycle
    proposal_ttl_minutes: int = 15
    approval_recheck_seconds: int = 30


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
