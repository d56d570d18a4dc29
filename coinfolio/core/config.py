"""Application configuration settings."""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///./db/coinfolio.db"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    enable_docs: bool = True
    api_reload: bool = False

    # Security (JWT Authentication)
    jwt_secret_key: str = "change-this-to-a-random-secret-key-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7

    # Market data and exchange-rate providers
    market_api_base_url: str = "https://crypto-tracker-backend-xt56.onrender.com/api"
    exir_ticker_url: str = "https://api.exir.io/v1/ticker?symbol=usdt-irt"
    wallex_markets_url: str = "https://api.wallex.ir/v1/markets"
    http_timeout_seconds: float = 10.0

    # Caching
    rate_cache_ttl_seconds: int = 60
    fallback_usdt_rate: float = 100000.0
    portfolio_cache_ttl_seconds: int = 10

    # Portfolio valuation
    portfolio_baseline_balance: float = 10000.0

    # Transaction history
    default_page_size: int = 10
    max_page_size: int = 100

    # Trade intent bounds
    max_trade_amount: float = 1_000_000
    max_trade_price: float = 1_000_000_000_000

    # Registration bounds
    max_initial_balance_tmn: float = 1_000_000_000_000
    max_initial_balance_usdt: float = 1_000_000

    # Logging / clock
    timezone: str = "Asia/Tehran"
    log_dir: str = "logs"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
