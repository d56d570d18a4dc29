"""Market data API endpoints."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from coinfolio.api.dependencies import get_market_gateway, get_rate_resolver
from coinfolio.core.database import local_now
from coinfolio.core.exceptions import PriceUnavailable
from coinfolio.core.security import get_optional_user
from coinfolio.models.user import User
from coinfolio.schemas.trading import CurrencyInfoResponse, MarketListResponse, MarketPrice, UserHolding
from coinfolio.services.ledger import wallet_state_from_user
from coinfolio.services.market_api import MarketPriceGateway
from coinfolio.services.rates import RateResolver
from coinfolio.utils.helpers import round_money

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/markets", tags=["markets"])


@router.get("/", response_model=MarketListResponse)
def list_markets(gateway: MarketPriceGateway = Depends(get_market_gateway)):
    """List every market with its last price and 24h stats.

    Raises:
        HTTPException: If the market data service is unavailable
    """
    try:
        prices = gateway.get_all_market_prices()
    except PriceUnavailable as e:
        logger.warning(f"Market listing failed: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return MarketListResponse(
        markets=[MarketPrice(**p.to_dict()) for p in prices],
        total_markets=len(prices),
        last_updated=local_now(),
    )


@router.get("/{coin}", response_model=CurrencyInfoResponse)
def get_market(
    coin: str,
    current_user: Optional[User] = Depends(get_optional_user),
    gateway: MarketPriceGateway = Depends(get_market_gateway),
    rate_resolver: RateResolver = Depends(get_rate_resolver),
):
    """Get one market, plus the caller's holding when authenticated.

    Args:
        coin: Coin symbol, any case
        current_user: Caller if a bearer token was sent
        gateway: Market data gateway
        rate_resolver: USDT/TMN rate source

    Returns:
        Market info and the valued holding (None if not held)
    """
    info = gateway.get_price(coin)
    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Market {coin.upper()} not found")

    holding = None
    if current_user is not None:
        amount = wallet_state_from_user(current_user).holding(coin.upper())
        if amount > 0:
            value_in_toman = float(amount) * info.last_price
            holding = UserHolding(
                amount=float(amount),
                value_in_toman=round_money(value_in_toman, 0),
                value_in_dollar=round_money(rate_resolver.convert_toman_to_usdt(value_in_toman)),
            )

    return CurrencyInfoResponse(market=MarketPrice(**info.to_dict()), user_holding=holding)
