"""Pydantic schemas for trading, portfolio and history responses."""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional
from enum import Enum


class TransactionTypeEnum(str, Enum):
    """Transaction type enumeration."""
    BUY = "buy"
    SELL = "sell"


class CurrencyEnum(str, Enum):
    """Cash currency enumeration."""
    TMN = "TMN"
    USDT = "USDT"


class TradeRequest(BaseModel):
    """Schema for a buy or sell request."""
    coin: str = Field(..., min_length=1, max_length=10, description="Coin symbol (e.g., BTC, ETH)")
    amount: float = Field(..., gt=0, le=1_000_000, description="Amount of coin to buy/sell")
    price: float = Field(..., gt=0, le=1_000_000_000_000, description="Price per coin in the trade currency")
    currency: CurrencyEnum = Field(..., description="Currency paid or received")


class CoinToggleRequest(BaseModel):
    """Schema for like/bookmark toggles."""
    coin: str = Field(..., min_length=1, max_length=20)


class BalanceResponse(BaseModel):
    """Cash balances per currency."""
    tmn: float
    usdt: float


class AssetResponse(BaseModel):
    """Held amount of one coin."""
    coin: str
    amount: float


class TransactionResponse(BaseModel):
    """Schema for one transaction log entry."""
    coin: str
    amount: float
    price: float
    type: TransactionTypeEnum
    currency: CurrencyEnum
    date: datetime


class TradeResponse(BaseModel):
    """Schema for a committed buy or sell."""
    message: str
    new_balance: BalanceResponse
    updated_assets: List[AssetResponse]
    transaction: TransactionResponse
    total_transactions: int


class MarketPrice(BaseModel):
    """Schema for current market price."""
    symbol: str
    base_asset: str
    last_price: float
    change_24h: float
    high_24h: float
    low_24h: float
    volume_24h: float
    fa_name: str
    en_name: str


class AssetValuation(BaseModel):
    """An asset lot valued at the last market price."""
    coin: str
    amount: float
    market_info: Optional[MarketPrice]
    value_in_toman: float
    value_in_dollar: float
    change_24h: float
    total_change: float


class PerformanceStats(BaseModel):
    total_transactions: int
    buy_count: int
    sell_count: int
    success_rate: str


class BalanceBreakdown(BaseModel):
    tmn: float
    usdt: float
    usdt_in_toman: float
    total_in_toman: float


class ExchangeRateInfo(BaseModel):
    usdt_to_toman: float
    source: str
    last_updated: datetime


class Portfolio(BaseModel):
    """Point-in-time valuation of a wallet, in Toman."""
    total_value: float
    cash_balance: float
    assets_value: float
    assets: List[AssetValuation]
    profit_loss: float
    profit_loss_percentage: float
    currency: str = "TMN"
    performance: PerformanceStats
    balance_breakdown: BalanceBreakdown
    exchange_rate: ExchangeRateInfo
    generated_at: datetime


class Pagination(BaseModel):
    current_page: int
    page_size: int
    total_pages: int
    total_transactions: int
    has_next: bool
    has_prev: bool


class TransactionSummary(BaseModel):
    total_buy: int
    total_sell: int
    total_volume: float


class TransactionPage(BaseModel):
    """Schema for a page of transaction history, most recent first."""
    transactions: List[TransactionResponse]
    pagination: Pagination
    summary: TransactionSummary


class TransactionStats(BaseModel):
    total: int
    buy_count: int
    sell_count: int
    total_volume: float
    most_traded_coin: str
    monthly_volume: float
    avg_trade_size: float


class PortfolioStats(BaseModel):
    diversity: int
    top_holding: Optional[AssetResponse]
    risk_score: int
    total_assets_amount: float


class UserStats(BaseModel):
    join_date: Optional[datetime]
    total_days: int
    success_rate: str
    trading_activity: float


class AnalyticsResponse(BaseModel):
    """Schema for trading analytics."""
    transaction_stats: TransactionStats
    portfolio_stats: PortfolioStats
    user_stats: UserStats


class MarketListResponse(BaseModel):
    markets: List[MarketPrice]
    total_markets: int
    last_updated: datetime


class UserHolding(BaseModel):
    amount: float
    value_in_toman: float
    value_in_dollar: float


class CurrencyInfoResponse(BaseModel):
    market: MarketPrice
    user_holding: Optional[UserHolding]


class ToggleResponse(BaseModel):
    message: str
    coin: str
    active: bool
    coins: List[str]
