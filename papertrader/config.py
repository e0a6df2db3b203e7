"""Application configuration via environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = f"sqlite:///{PROJECT_ROOT / 'papertrader.db'}"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173"]  # Vite dev server

    # Market data
    market_venues: list[str] = ["binanceus", "binance", "coinbase"]  # ccxt ids, tried in order
    venue_timeout_seconds: float = 10.0
    price_cache_ttl_seconds: float = 60.0
    synthetic_history_points: int = 20

    # Paper trading
    default_starting_balance: float = 10000.0

    # Bot execution
    cycle_timeout_seconds: float = 120.0
    max_concurrent_bots: int = 4
    default_schedule_interval: str = "15m"
    scheduler_enabled: bool = True

    model_config = {"env_prefix": "PT_", "env_file": ".env"}


settings = Settings()
