"""Shared fixtures: throwaway database, fake clocks and stubbed price sources."""
import os
import tempfile
from datetime import datetime, timedelta
from decimal import Decimal

# Keep test runs from writing into the working tree
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="coinfolio-logs-"))
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(tempfile.mkdtemp(prefix="coinfolio-db-"), "app.db"))

import pytest
from sqlalchemy.orm import sessionmaker

from coinfolio.core.cache import TTLStore
from coinfolio.core.database import build_engine, init_db
from coinfolio.models.database import Asset
from coinfolio.models.user import AuthProvider, User
from coinfolio.services.market_api import MarketPriceInfo
from coinfolio.services.rates import RateResolver


class FakeClock:
    """Monotonic seconds for cache expiry, advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """Wall-clock datetimes, advanced by hand."""

    def __init__(self, start: datetime = datetime(2024, 3, 15, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class StubRateProvider:
    """Returns queued answers; an Exception instance is raised instead of returned."""

    def __init__(self, name: str, *answers):
        self.name = name
        self.answers = list(answers)
        self.calls = 0

    def fetch_rate(self):
        self.calls += 1
        answer = self.answers[min(self.calls, len(self.answers)) - 1] if self.answers else None
        if isinstance(answer, Exception):
            raise answer
        return answer


def market_info(coin: str, last_price: float, change_24h: float = 0.0) -> MarketPriceInfo:
    return MarketPriceInfo(
        symbol=f"{coin}TMN",
        base_asset=coin,
        last_price=last_price,
        change_24h=change_24h,
        high_24h=last_price,
        low_24h=last_price,
        volume_24h=0.0,
        fa_name=coin,
        en_name=coin,
    )


class StubMarketGateway:
    """In-memory stand-in for MarketPriceGateway."""

    def __init__(self, prices=None):
        self.prices = dict(prices or {})
        self.calls = 0

    def set_price(self, coin: str, last_price: float, change_24h: float = 0.0) -> None:
        self.prices[coin.upper()] = market_info(coin.upper(), last_price, change_24h)

    def get_all_market_prices(self):
        self.calls += 1
        return list(self.prices.values())

    def get_prices(self, coins):
        self.calls += 1
        return {coin: self.prices.get(coin.upper()) for coin in coins}

    def get_price(self, coin):
        return self.get_prices([coin])[coin]


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'coinfolio-test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(session_factory):
    """Insert a user with the given balances and holdings; returns its id."""

    def _make_user(email="trader@example.com", tmn=0, usdt=0, assets=None):
        session = session_factory()
        try:
            user = User(
                email=email,
                username=email.split("@")[0],
                provider=AuthProvider.LOCAL,
                balance_tmn=Decimal(str(tmn)),
                balance_usdt=Decimal(str(usdt)),
                liked_coins=[],
                bookmarked_coins=[],
            )
            session.add(user)
            session.commit()
            if assets:
                for coin, amount in assets.items():
                    user.assets.append(Asset(coin=coin, amount=Decimal(str(amount))))
                session.commit()
            return user.id
        finally:
            session.close()

    return _make_user


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return FakeWallClock()


@pytest.fixture
def rate_resolver(clock, wall_clock):
    """Resolver pinned to 50,000 TMN per USDT."""
    return RateResolver(
        providers=[StubRateProvider("stub", 50000.0)],
        cache=TTLStore(ttl=60, maxsize=1, timer=clock),
        fallback_rate=100000.0,
        clock=wall_clock,
    )


@pytest.fixture
def market_gateway():
    return StubMarketGateway()
