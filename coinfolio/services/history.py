"""Read-only projections over a user's transaction log.

Records are passed in append order, which is chronological order.
Aggregates (success rate, monthly volume) walk them in that order;
only the paginated listing is reversed for display.
"""
import math
from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from coinfolio.core.config import get_settings
from coinfolio.core.exceptions import InvalidTransactionInput
from coinfolio.models.database import TransactionType
from coinfolio.schemas.trading import (
    AnalyticsResponse,
    AssetResponse,
    Pagination,
    PortfolioStats,
    TransactionPage,
    TransactionResponse,
    TransactionStats,
    TransactionSummary,
    UserStats,
)
from coinfolio.services.ledger import TransactionRecord, WalletState, parse_transaction_type
from coinfolio.utils.helpers import format_percentage

ZERO = Decimal("0")


def to_transaction_response(record: TransactionRecord) -> TransactionResponse:
    return TransactionResponse(
        coin=record.coin,
        amount=float(record.amount),
        price=float(record.price),
        type=record.type.value,
        currency=record.currency.value,
        date=record.timestamp,
    )


def calculate_success_rate(records: Sequence[TransactionRecord]) -> float:
    """Share of sells priced above the average of earlier buys of the same coin.

    A sell with no earlier buy of its coin counts in the denominator only.

    Args:
        records: Transaction log in chronological order

    Returns:
        Percentage between 0 and 100 (0 when there are no sells)
    """
    buy_price_sums: Dict[str, Decimal] = {}
    buy_counts: Dict[str, int] = {}
    sells = 0
    profitable = 0

    for record in records:
        if record.type is TransactionType.BUY:
            buy_price_sums[record.coin] = buy_price_sums.get(record.coin, ZERO) + record.price
            buy_counts[record.coin] = buy_counts.get(record.coin, 0) + 1
        elif record.type is TransactionType.SELL:
            sells += 1
            count = buy_counts.get(record.coin, 0)
            if count and record.price > buy_price_sums[record.coin] / count:
                profitable += 1

    if sells == 0:
        return 0.0
    return profitable / sells * 100


def filter_transactions(
    records: Sequence[TransactionRecord],
    type: Optional[str] = None,
    coin: Optional[str] = None,
) -> List[TransactionRecord]:
    """Filter by type and/or coin (case-insensitive exact match), keeping order."""
    result = list(records)
    if type:
        wanted = parse_transaction_type(type)
        result = [r for r in result if r.type is wanted]
    if coin:
        symbol = coin.strip().upper()
        result = [r for r in result if r.coin.upper() == symbol]
    return result


def total_volume(records: Sequence[TransactionRecord]) -> Decimal:
    return sum((r.total for r in records), ZERO)


def get_transaction_page(
    records: Sequence[TransactionRecord],
    page: int = 1,
    limit: Optional[int] = None,
    type: Optional[str] = None,
    coin: Optional[str] = None,
    max_page_size: Optional[int] = None,
) -> TransactionPage:
    """Filtered, most-recent-first page of the log.

    Args:
        records: Transaction log in chronological order
        page: 1-based page number
        limit: Page size, bounded by ``max_page_size``
        type: Optional "buy"/"sell" filter
        coin: Optional coin filter
        max_page_size: Upper bound on ``limit`` (defaults to settings)

    Returns:
        TransactionPage with pagination metadata and a summary of the filtered set

    Raises:
        InvalidTransactionInput: On a page below 1 or a page size outside the bounds
    """
    settings = get_settings()
    limit = settings.default_page_size if limit is None else limit
    max_page_size = max_page_size or settings.max_page_size
    if page < 1:
        raise InvalidTransactionInput("page must be at least 1")
    if limit < 1 or limit > max_page_size:
        raise InvalidTransactionInput(f"limit must be between 1 and {max_page_size}")

    filtered = filter_transactions(records, type=type, coin=coin)
    newest_first = list(reversed(filtered))

    start = (page - 1) * limit
    end = start + limit
    items = newest_first[start:end]

    return TransactionPage(
        transactions=[to_transaction_response(r) for r in items],
        pagination=Pagination(
            current_page=page,
            page_size=limit,
            total_pages=math.ceil(len(filtered) / limit),
            total_transactions=len(filtered),
            has_next=end < len(filtered),
            has_prev=start > 0,
        ),
        summary=TransactionSummary(
            total_buy=sum(1 for r in filtered if r.type is TransactionType.BUY),
            total_sell=sum(1 for r in filtered if r.type is TransactionType.SELL),
            total_volume=float(total_volume(filtered)),
        ),
    )


def most_traded_coin(records: Sequence[TransactionRecord]) -> str:
    """Coin with the most transactions; ties go to the coin traded first."""
    if not records:
        return "N/A"
    counts = Counter(r.coin for r in records)
    return counts.most_common(1)[0][0]


def monthly_volume(records: Sequence[TransactionRecord], now: datetime) -> Decimal:
    """Traded volume within the calendar month of ``now``."""
    return total_volume([
        r for r in records
        if r.timestamp and r.timestamp.year == now.year and r.timestamp.month == now.month
    ])


def average_trade_size(records: Sequence[TransactionRecord]) -> float:
    if not records:
        return 0.0
    return float(sum((r.amount for r in records), ZERO) / len(records))


def get_analytics(
    records: Sequence[TransactionRecord],
    wallet: WalletState,
    joined_at: Optional[datetime],
    now: datetime,
) -> AnalyticsResponse:
    """Trading, holdings and activity statistics for one user.

    Args:
        records: Transaction log in chronological order
        wallet: Current wallet snapshot
        joined_at: Account creation time
        now: Reference time for monthly volume and account age
    """
    assets = wallet.assets
    top = max(assets, key=lambda lot: lot.amount) if assets else None
    total_days = max(0, (now - joined_at).days) if joined_at else 0
    success_rate = format_percentage(calculate_success_rate(records))

    return AnalyticsResponse(
        transaction_stats=TransactionStats(
            total=len(records),
            buy_count=sum(1 for r in records if r.type is TransactionType.BUY),
            sell_count=sum(1 for r in records if r.type is TransactionType.SELL),
            total_volume=float(total_volume(records)),
            most_traded_coin=most_traded_coin(records),
            monthly_volume=float(monthly_volume(records, now)),
            avg_trade_size=average_trade_size(records),
        ),
        portfolio_stats=PortfolioStats(
            diversity=len(assets),
            top_holding=AssetResponse(coin=top.coin, amount=float(top.amount)) if top else None,
            risk_score=min(len(assets) * 10, 100),
            total_assets_amount=float(sum((lot.amount for lot in assets), ZERO)),
        ),
        user_stats=UserStats(
            join_date=joined_at,
            total_days=total_days,
            success_rate=success_rate,
            trading_activity=len(records) / max(1, total_days) if records else 0.0,
        ),
    )
