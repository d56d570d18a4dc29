"""USDT to Toman exchange-rate resolution with caching and provider fallback."""
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence

import requests

from coinfolio.core.cache import TTLStore
from coinfolio.core.config import get_settings
from coinfolio.core.database import local_now

logger = logging.getLogger(__name__)
api_logger = logging.getLogger('api')

CACHE_KEY = "usdt_toman_rate"


def _as_number(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


class ExirRateProvider:
    """USDT/IRT ticker from Exir."""

    name = "exir"

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        settings = get_settings()
        self.url = url or settings.exir_ticker_url
        self.timeout = timeout or settings.http_timeout_seconds

    def fetch_rate(self) -> Optional[float]:
        """Fetch the current rate.

        Returns:
            Rate in Toman per USDT, or None if unavailable
        """
        try:
            response = requests.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json() or {}
        except (requests.exceptions.RequestException, ValueError) as e:
            api_logger.warning(f"Exir rate request failed: {e}")
            return None

        # "open" takes precedence; "last" is used when open is missing or zero
        return _as_number(data.get("open") or data.get("last"))


class WallexRateProvider:
    """USDTTMN market from Wallex."""

    name = "wallex"

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        settings = get_settings()
        self.url = url or settings.wallex_markets_url
        self.timeout = timeout or settings.http_timeout_seconds

    def fetch_rate(self) -> Optional[float]:
        """Fetch the current rate.

        Returns:
            Rate in Toman per USDT, or None if unavailable
        """
        try:
            response = requests.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json() or {}
        except (requests.exceptions.RequestException, ValueError) as e:
            api_logger.warning(f"Wallex rate request failed: {e}")
            return None

        markets = (data.get("data") or {}).get("markets") or []
        usdt = next((m for m in markets if m.get("symbol") == "USDTTMN"), None)
        if usdt is None:
            api_logger.warning("Wallex response has no USDTTMN market")
            return None
        return _as_number((usdt.get("stats") or {}).get("lastPrice"))


@dataclass(frozen=True)
class RateInfo:
    """A resolved exchange rate and where it came from."""
    rate: float
    resolved_at: datetime
    source: str


class RateResolver:
    """Resolves the USDT→TMN rate from an ordered list of providers.

    The first provider returning a finite positive number wins. When
    every provider fails the fallback rate is returned, and it is cached
    like a real rate so an outage is not retried until the TTL lapses.

    Args:
        providers: Objects exposing ``fetch_rate() -> float | None``, in priority order
        cache: TTL store holding the resolved rate
        fallback_rate: Rate used when no provider answers
        clock: Returns the wall-clock time stamped on resolved rates
    """

    def __init__(
        self,
        providers: Sequence,
        cache: Optional[TTLStore] = None,
        fallback_rate: Optional[float] = None,
        clock: Callable[[], datetime] = local_now,
    ):
        settings = get_settings()
        self.providers = list(providers)
        self.cache = cache if cache is not None else TTLStore(ttl=settings.rate_cache_ttl_seconds, maxsize=1)
        self.fallback_rate = fallback_rate if fallback_rate is not None else settings.fallback_usdt_rate
        self.clock = clock

    def _query_providers(self) -> Optional[RateInfo]:
        for provider in self.providers:
            name = getattr(provider, "name", type(provider).__name__)
            started = time.monotonic()
            try:
                rate = provider.fetch_rate()
            except Exception as e:
                logger.warning(f"Rate provider {name} raised: {e}")
                continue

            api_logger.debug(f"Rate provider {name} returned {rate!r} in {time.monotonic() - started:.3f}s")
            if isinstance(rate, (int, float)) and not isinstance(rate, bool) and math.isfinite(rate) and rate > 0:
                return RateInfo(rate=float(rate), resolved_at=self.clock(), source=name)
        return None

    def get_rate_info(self) -> RateInfo:
        """Get the current rate with its resolution time. Never raises."""
        cached = self.cache.get(CACHE_KEY)
        if cached is not None:
            return cached

        info = self._query_providers()
        if info is None:
            logger.warning(f"All rate providers failed, using fallback rate {self.fallback_rate}")
            info = RateInfo(rate=float(self.fallback_rate), resolved_at=self.clock(), source="fallback")

        self.cache.set(CACHE_KEY, info)
        return info

    def get_usdt_rate(self) -> float:
        """Get Toman per USDT."""
        return self.get_rate_info().rate

    def convert_usdt_to_toman(self, usdt: float) -> float:
        return usdt * self.get_usdt_rate()

    def convert_toman_to_usdt(self, toman: float) -> float:
        return toman / self.get_usdt_rate()


def default_rate_providers() -> List:
    """Providers in priority order."""
    return [ExirRateProvider(), WallexRateProvider()]
