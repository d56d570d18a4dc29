"""Market data gateway: last price and 24h change per coin."""
import logging
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List, Optional

import requests

from coinfolio.core.config import get_settings
from coinfolio.core.exceptions import PriceUnavailable

logger = logging.getLogger(__name__)
api_logger = logging.getLogger('api')


def _to_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class MarketPriceInfo:
    """Price snapshot of one market."""
    symbol: str
    base_asset: str
    last_price: float
    change_24h: float
    high_24h: float
    low_24h: float
    volume_24h: float
    fa_name: str
    en_name: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_market(cls, market: dict) -> "MarketPriceInfo":
        """Build from one entry of the upstream market list."""
        stats = market.get("stats") or {}
        return cls(
            symbol=market.get("symbol", ""),
            base_asset=market.get("baseAsset", ""),
            last_price=_to_float(stats.get("lastPrice")),
            change_24h=_to_float(stats.get("24h_ch")),
            high_24h=_to_float(stats.get("24h_highPrice")),
            low_24h=_to_float(stats.get("24h_lowPrice")),
            volume_24h=_to_float(stats.get("24h_volume")),
            fa_name=market.get("faName", ""),
            en_name=market.get("enName", ""),
        )


class MarketPriceGateway:
    """Client for the market-data service.

    ``get_price`` and ``get_prices`` never raise: an unknown symbol or an
    upstream failure yields ``None`` for that symbol.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        settings = get_settings()
        self.base_url = (base_url or settings.market_api_base_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds

    def get_all_markets(self) -> List[dict]:
        """Fetch the raw market list.

        Raises:
            PriceUnavailable: If the upstream call fails
        """
        url = f"{self.base_url}/oldmarkets"
        try:
            response = requests.get(url, headers={"accept": "application/json"}, timeout=self.timeout)
            response.raise_for_status()
            markets = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            api_logger.error(f"Error fetching markets from {url}: {e}")
            raise PriceUnavailable("Market data service unavailable") from e

        if not isinstance(markets, list):
            raise PriceUnavailable("Unexpected market data payload")

        api_logger.debug(f"Fetched {len(markets)} markets")
        return markets

    def get_all_market_prices(self) -> List[MarketPriceInfo]:
        """Fetch price info for every market.

        Raises:
            PriceUnavailable: If the upstream call fails
        """
        return [MarketPriceInfo.from_market(m) for m in self.get_all_markets() if isinstance(m, dict)]

    def get_prices(self, coins: Iterable[str]) -> Dict[str, Optional[MarketPriceInfo]]:
        """Batch lookup keyed by the symbols as given.

        Args:
            coins: Coin symbols, any case

        Returns:
            Mapping of each requested symbol to its MarketPriceInfo or None
        """
        coins = list(coins)
        try:
            prices = self.get_all_market_prices()
        except PriceUnavailable as e:
            logger.warning(f"Prices unavailable for {coins}: {e}")
            return {coin: None for coin in coins}

        by_asset = {}
        for info in prices:
            by_asset.setdefault(info.base_asset.upper(), info)
        return {coin: by_asset.get(coin.upper()) for coin in coins}

    def get_price(self, coin: str) -> Optional[MarketPriceInfo]:
        """Single-symbol lookup; None if unknown or unavailable."""
        return self.get_prices([coin])[coin]
