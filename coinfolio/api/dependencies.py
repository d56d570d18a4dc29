"""Process-wide service instances handed to routes through FastAPI's Depends.

Each getter is cached, so the caches and locks inside these services are
created once per process. Tests replace them via ``app.dependency_overrides``.
"""
from functools import lru_cache

from coinfolio.core.cache import TTLStore
from coinfolio.core.config import get_settings
from coinfolio.core.database import SessionLocal
from coinfolio.services.ledger import UserLockRegistry, WalletLedger
from coinfolio.services.market_api import MarketPriceGateway
from coinfolio.services.portfolio import PortfolioValuator
from coinfolio.services.rates import RateResolver, default_rate_providers


@lru_cache()
def get_rate_resolver() -> RateResolver:
    settings = get_settings()
    return RateResolver(
        providers=default_rate_providers(),
        cache=TTLStore(ttl=settings.rate_cache_ttl_seconds, maxsize=1),
        fallback_rate=settings.fallback_usdt_rate,
    )


@lru_cache()
def get_market_gateway() -> MarketPriceGateway:
    return MarketPriceGateway()


@lru_cache()
def get_valuator() -> PortfolioValuator:
    settings = get_settings()
    return PortfolioValuator(
        rate_resolver=get_rate_resolver(),
        market_gateway=get_market_gateway(),
        cache=TTLStore(ttl=settings.portfolio_cache_ttl_seconds),
        baseline=settings.portfolio_baseline_balance,
    )


@lru_cache()
def get_ledger() -> WalletLedger:
    """Ledger that invalidates the user's cached portfolio on every commit."""
    return WalletLedger(
        session_factory=SessionLocal,
        locks=UserLockRegistry(),
        on_commit=get_valuator().invalidate,
    )
