"""
TRUEEQUITY — Central Configuration
All settings are loaded from environment variables with sensible defaults.
"""
from pydantic_settings import BaseSettings
from pydantic import AliasChoices, Field
from typing import List, Optional


class DataSourceSettings(BaseSettings):
    """Upstream provider endpoints, credentials and call budgets."""
    provider_mode: str = Field(default="hybrid", env="PROVIDER_MODE")  # hybrid, yahoo, alpha_vantage

    yahoo_chart_url: str = Field(
        default="https://query1.finance.yahoo.com/v8/finance/chart", env="YAHOO_CHART_URL"
    )
    yahoo_quote_url: str = Field(
        default="https://query1.finance.yahoo.com/v7/finance/quote", env="YAHOO_QUOTE_URL"
    )
    user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
        validation_alias=AliasChoices("HTTP_USER_AGENT", "user_agent"),
    )

    alpha_vantage_api_key: str = Field(default="", env="ALPHA_VANTAGE_API_KEY")
    alpha_vantage_base_url: str = Field(
        default="https://www.alphavantage.co/query", env="ALPHA_VANTAGE_BASE_URL"
    )
    alpha_vantage_min_interval_seconds: float = Field(
        default=12.0,
        validation_alias=AliasChoices("ALPHA_VANTAGE_MIN_INTERVAL", "alpha_vantage_min_interval_seconds"),
    )  # 5/min
    alpha_vantage_daily_limit: int = Field(default=500, env="ALPHA_VANTAGE_DAILY_LIMIT")

    request_timeout_seconds: float = Field(default=15.0, env="REQUEST_TIMEOUT_SECONDS")
    cache_ttl_seconds: int = Field(default=60, env="CACHE_TTL_SECONDS")

    class Config:
        env_file = ".env"
        extra = "ignore"


class IngestionSettings(BaseSettings):
    """Staleness windows and defaults for the ingestion pipeline."""
    profile_stale_days: int = Field(default=7, env="PROFILE_STALE_DAYS")
    fundamentals_stale_hours: int = Field(default=12, env="FUNDAMENTALS_STALE_HOURS")
    score_stale_hours: int = Field(default=1, env="SCORE_STALE_HOURS")
    bootstrap_price_days: int = Field(default=60, env="BOOTSTRAP_PRICE_DAYS")
    default_exchange: str = Field(default="NASDAQ", env="DEFAULT_EXCHANGE")
    step_pause_seconds: float = Field(default=0.0, env="STEP_PAUSE_SECONDS")

    class Config:
        env_file = ".env"
        extra = "ignore"


class IndicatorSettings(BaseSettings):
    """Indicator computation parameters."""
    rsi_period: int = 14
    daily_lookback_days: int = 30
    daily_min_rows: int = 14

    class Config:
        env_file = ".env"
        extra = "ignore"


class ScoringSettings(BaseSettings):
    """Score composition switches."""
    # Off keeps the fixed 40/40/20 valuation weights even when factors are missing
    renormalize_valuation: bool = Field(default=False, env="RENORMALIZE_VALUATION")

    class Config:
        env_file = ".env"
        extra = "ignore"


class DatabaseSettings(BaseSettings):
    """Database configuration."""
    db_url: str = Field(
        default="sqlite+aiosqlite:///trueequity.db",
        validation_alias=AliasChoices("DATABASE_URL", "db_url"),
    )
    echo_sql: bool = Field(default=False, validation_alias=AliasChoices("DB_ECHO_SQL", "echo_sql"))

    class Config:
        env_file = ".env"
        extra = "ignore"


class AppSettings(BaseSettings):
    """Top-level application settings."""
    app_name: str = "TRUEEQUITY"
    version: str = "1.0.0"
    debug: bool = Field(default=False, env="DEBUG")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    symbols: List[str] = Field(
        default=["AAPL", "MSFT", "GOOGL", "AMZN", "NVDA", "META", "TSLA"],
        env="SYMBOLS"
    )
    market_timezone: str = Field(default="America/New_York", env="MARKET_TIMEZONE")
    market_open_hour: int = 9
    market_open_minute: int = 30
    market_close_hour: int = 16

    data: DataSourceSettings = DataSourceSettings()
    ingestion: IngestionSettings = IngestionSettings()
    indicators: IndicatorSettings = IndicatorSettings()
    scoring: ScoringSettings = ScoringSettings()
    database: DatabaseSettings = DatabaseSettings()

    class Config:
        env_file = ".env"
        extra = "ignore"


# Singleton
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings
