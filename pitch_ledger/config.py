from __future__ import annotations

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Account
    starting_balance: Decimal = Decimal("1000.00")

    # Observation feed (the scraper publishes match and odds observations here)
    feed_base_url: str | None = None
    feed_timeout_seconds: float = 15.0

    # Scheduling
    ingest_interval_seconds: int = 30
    betting_check_interval_seconds: int = 60
    reconcile_interval_minutes: int = 5

    # Auto-betting strategy (off unless explicitly enabled)
    auto_bet_enabled: bool = False
    auto_bet_min_odds: float = 2.0
    auto_bet_stake: Decimal = Decimal("10.00")
    auto_bet_min_balance: Decimal = Decimal("10.00")

    # Read views
    recent_results_limit: int = 20

    # Database
    db_path: str = "virtual_football_betting.db"

    # Logging
    log_level: str = "INFO"
