"""Portfolio valuation: wallet state priced with live market data."""
import logging
from decimal import Decimal
from typing import Callable, Optional, Sequence

from coinfolio.core.cache import TTLStore
from coinfolio.core.config import get_settings
from coinfolio.core.database import local_now
from coinfolio.models.database import TransactionType
from coinfolio.schemas.trading import (
    AssetValuation,
    BalanceBreakdown,
    ExchangeRateInfo,
    MarketPrice,
    PerformanceStats,
    Portfolio,
)
from coinfolio.services.history import calculate_success_rate
from coinfolio.services.ledger import TransactionRecord, WalletState
from coinfolio.services.market_api import MarketPriceGateway
from coinfolio.services.rates import RateResolver
from coinfolio.utils.helpers import calculate_profit_percentage, format_percentage, round_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _cache_key(user_id: int) -> str:
    return f"portfolio_{user_id}"


class PortfolioValuator:
    """Values wallets in Toman and caches the result per user.

    Cached snapshots live for a short TTL; the ledger calls
    :meth:`invalidate` after every committed trade so a portfolio read
    right after a trade reflects it.

    Args:
        rate_resolver: Source of the USDT→TMN rate
        market_gateway: Source of last prices
        cache: TTL store for snapshots, keyed per user
        baseline: Opening value that profit/loss is measured against
        clock: Wall-clock used for ``generated_at``
    """

    def __init__(
        self,
        rate_resolver: RateResolver,
        market_gateway: MarketPriceGateway,
        cache: Optional[TTLStore] = None,
        baseline: Optional[float] = None,
        clock: Callable = local_now,
    ):
        settings = get_settings()
        self.rate_resolver = rate_resolver
        self.market_gateway = market_gateway
        self.cache = cache if cache is not None else TTLStore(ttl=settings.portfolio_cache_ttl_seconds)
        self.baseline = Decimal(str(baseline if baseline is not None else settings.portfolio_baseline_balance))
        self.clock = clock

    def invalidate(self, user_id: int) -> None:
        """Drop the cached snapshot for a user."""
        self.cache.delete(_cache_key(user_id))

    def get_portfolio(
        self,
        user_id: int,
        wallet: WalletState,
        transactions: Sequence[TransactionRecord],
    ) -> Portfolio:
        """Get the user's portfolio, from cache when fresh.

        Args:
            user_id: Cache key
            wallet: Current wallet snapshot
            transactions: Transaction log in chronological order

        Returns:
            Portfolio snapshot
        """
        key = _cache_key(user_id)
        # Snapshots are stamped with the log length they were valued at; every
        # committed trade appends to the log, so a snapshot valued from a
        # pre-trade wallet is never served for a post-trade one.
        log_length = len(transactions)
        cached = self.cache.get(key)
        if cached is not None:
            cached_length, portfolio = cached
            if cached_length == log_length:
                return portfolio

        portfolio = self.value(wallet, transactions)
        self.cache.set(key, (log_length, portfolio))
        return portfolio

    def value(self, wallet: WalletState, transactions: Sequence[TransactionRecord]) -> Portfolio:
        """Compute a fresh valuation without touching the cache."""
        rate_info = self.rate_resolver.get_rate_info()
        rate = Decimal(str(rate_info.rate))

        usdt_in_toman = wallet.balance.usdt * rate
        cash_value = wallet.balance.tmn + usdt_in_toman

        coins = list(dict.fromkeys(lot.coin for lot in wallet.assets))
        market_prices = self.market_gateway.get_prices(coins) if coins else {}

        assets_value = ZERO
        assets = []
        for lot in wallet.assets:
            info = market_prices.get(lot.coin)
            if info is None:
                logger.info(f"No market price for {lot.coin}, valuing at 0")
            last_price = Decimal(str(info.last_price)) if info else ZERO
            value_in_toman = lot.amount * last_price
            assets_value += value_in_toman

            change_24h = info.change_24h if info else 0.0
            assets.append(AssetValuation(
                coin=lot.coin,
                amount=float(lot.amount),
                market_info=MarketPrice(**info.to_dict()) if info else None,
                value_in_toman=round_money(value_in_toman, 0),
                value_in_dollar=float(value_in_toman / rate),
                change_24h=change_24h,
                total_change=change_24h * float(lot.amount) if info else 0.0,
            ))

        total_value = cash_value + assets_value
        profit_loss = total_value - self.baseline

        return Portfolio(
            total_value=round_money(total_value),
            cash_balance=round_money(cash_value),
            assets_value=round_money(assets_value),
            assets=assets,
            profit_loss=round_money(profit_loss),
            profit_loss_percentage=round_money(calculate_profit_percentage(self.baseline, total_value)),
            currency="TMN",
            performance=PerformanceStats(
                total_transactions=len(transactions),
                buy_count=sum(1 for t in transactions if t.type is TransactionType.BUY),
                sell_count=sum(1 for t in transactions if t.type is TransactionType.SELL),
                success_rate=format_percentage(calculate_success_rate(transactions)),
            ),
            balance_breakdown=BalanceBreakdown(
                tmn=float(wallet.balance.tmn),
                usdt=float(wallet.balance.usdt),
                usdt_in_toman=float(usdt_in_toman),
                total_in_toman=float(cash_value),
            ),
            exchange_rate=ExchangeRateInfo(
                usdt_to_toman=rate_info.rate,
                source=rate_info.source,
                last_updated=rate_info.resolved_at,
            ),
            generated_at=self.clock(),
        )
