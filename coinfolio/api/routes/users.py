"""Endpoints for the authenticated user's wallet, portfolio and history."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from coinfolio.api.dependencies import get_ledger, get_rate_resolver, get_valuator
from coinfolio.core.config import get_settings
from coinfolio.core.database import get_db, local_now
from coinfolio.core.exceptions import (
    InsufficientFunds,
    InsufficientHoldings,
    InvalidTransactionInput,
    PersistenceConflict,
    UserNotFound,
)
from coinfolio.core.security import get_current_user
from coinfolio.models.database import TransactionType
from coinfolio.models.user import User
from coinfolio.schemas.trading import (
    AnalyticsResponse,
    AssetResponse,
    CoinToggleRequest,
    Portfolio,
    ToggleResponse,
    TradeRequest,
    TradeResponse,
    TransactionPage,
    TransactionTypeEnum,
)
from coinfolio.schemas.user import ProfileResponse, ProfileUpdate
from coinfolio.services import history
from coinfolio.services import users as user_service
from coinfolio.services.ledger import (
    TradeIntent,
    WalletLedger,
    transaction_records,
    wallet_state_from_user,
)
from coinfolio.services.portfolio import PortfolioValuator
from coinfolio.services.rates import RateResolver

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/users/me", tags=["users"])


def _execute_trade(kind: TransactionType, trade: TradeRequest, user: User, ledger: WalletLedger) -> TradeResponse:
    try:
        intent = TradeIntent.create(
            coin=trade.coin,
            amount=trade.amount,
            price=trade.price,
            type=kind,
            currency=trade.currency.value,
        )
        result = ledger.apply(user.id, intent)
    except InsufficientFunds as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": f"Insufficient {e.currency} balance",
                "required": float(e.required),
                "current": float(e.available),
                "currency": e.currency,
            },
        )
    except InsufficientHoldings as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": f"Insufficient {e.coin} holdings",
                "available": float(e.available),
                "requested": float(e.requested),
            },
        )
    except InvalidTransactionInput as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PersistenceConflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except UserNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    verb = "Bought" if kind is TransactionType.BUY else "Sold"
    return TradeResponse(
        message=f"{verb} {intent.amount} {intent.coin} for {intent.currency.value}",
        new_balance=result.wallet.balance.as_dict(),
        updated_assets=[AssetResponse(coin=lot.coin, amount=float(lot.amount)) for lot in result.wallet.assets],
        transaction=history.to_transaction_response(result.record),
        total_transactions=result.transaction_count,
    )


@router.post("/buy", response_model=TradeResponse)
def buy_crypto(
    trade: TradeRequest,
    current_user: User = Depends(get_current_user),
    ledger: WalletLedger = Depends(get_ledger),
):
    """Buy a coin with TMN or USDT."""
    return _execute_trade(TransactionType.BUY, trade, current_user, ledger)


@router.post("/sell", response_model=TradeResponse)
def sell_crypto(
    trade: TradeRequest,
    current_user: User = Depends(get_current_user),
    ledger: WalletLedger = Depends(get_ledger),
):
    """Sell a held coin for TMN or USDT."""
    return _execute_trade(TransactionType.SELL, trade, current_user, ledger)


@router.get("/portfolio", response_model=Portfolio)
def get_portfolio(
    current_user: User = Depends(get_current_user),
    valuator: PortfolioValuator = Depends(get_valuator),
):
    """Get the current valuation of the user's wallet."""
    return valuator.get_portfolio(
        current_user.id,
        wallet_state_from_user(current_user),
        transaction_records(current_user),
    )


@router.get("/transactions", response_model=TransactionPage)
def get_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    type: Optional[TransactionTypeEnum] = None,
    coin: Optional[str] = Query(None, max_length=20),
    current_user: User = Depends(get_current_user),
):
    """Get transaction history, most recent first.

    Args:
        page: Page number (1-based)
        limit: Page size (1-100)
        type: Filter by buy/sell
        coin: Filter by coin symbol
        current_user: Current authenticated user

    Returns:
        Page of transactions with pagination and summary
    """
    try:
        return history.get_transaction_page(
            transaction_records(current_user),
            page=page,
            limit=limit,
            type=type.value if type else None,
            coin=coin,
        )
    except InvalidTransactionInput as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/analytics", response_model=AnalyticsResponse)
def get_analytics(current_user: User = Depends(get_current_user)):
    """Get trading statistics for the current user."""
    return history.get_analytics(
        transaction_records(current_user),
        wallet_state_from_user(current_user),
        joined_at=current_user.created_at,
        now=local_now(),
    )


@router.get("/profile", response_model=ProfileResponse)
def get_profile(
    current_user: User = Depends(get_current_user),
    rate_resolver: RateResolver = Depends(get_rate_resolver),
):
    """Get the current user's profile."""
    return user_service.build_profile(current_user, rate_resolver.get_usdt_rate())


@router.put("/profile", response_model=ProfileResponse)
def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    rate_resolver: RateResolver = Depends(get_rate_resolver),
):
    """Update the current user's profile."""
    try:
        user = user_service.update_profile(db, current_user, username=payload.username)
    except PersistenceConflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return user_service.build_profile(user, rate_resolver.get_usdt_rate())


def _toggle(toggle, noun: str, payload: CoinToggleRequest, user: User, db: Session) -> ToggleResponse:
    try:
        coins, active = toggle(db, user, payload.coin)
    except InvalidTransactionInput as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PersistenceConflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    symbol = payload.coin.strip().upper()
    action = "added to" if active else "removed from"
    return ToggleResponse(message=f"{symbol} {action} {noun}", coin=symbol, active=active, coins=coins)


@router.post("/coins/like", response_model=ToggleResponse)
def toggle_like_coin(
    payload: CoinToggleRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Like or unlike a coin."""
    return _toggle(user_service.toggle_liked_coin, "liked coins", payload, current_user, db)


@router.post("/coins/bookmark", response_model=ToggleResponse)
def toggle_bookmark_coin(
    payload: CoinToggleRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Bookmark or un-bookmark a coin."""
    return _toggle(user_service.toggle_bookmarked_coin, "bookmarks", payload, current_user, db)
