"""Account services: registration, login, federated sign-in, profile and coin lists."""
import logging
import secrets
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coinfolio.core.config import get_settings
from coinfolio.core.database import local_now
from coinfolio.core.exceptions import (
    EmailAlreadyRegistered,
    InvalidTransactionInput,
    PersistenceConflict,
    UserNotFound,
)
from coinfolio.core.security import get_password_hash, verify_password
from coinfolio.models.user import AuthProvider, User
from coinfolio.schemas.trading import AssetResponse, BalanceResponse
from coinfolio.schemas.user import ProfileResponse, UserResponse, WalletResponse, WalletSummary

logger = logging.getLogger(__name__)

LIKED = "liked_coins"
BOOKMARKED = "bookmarked_coins"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def email_exists(db: Session, email: str) -> bool:
    """Check whether an account already uses this email."""
    return db.query(User.id).filter(User.email == normalize_email(email)).first() is not None


def get_user(db: Session, user_id: int) -> User:
    """Load a user by id.

    Raises:
        UserNotFound: If no such user exists
    """
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise UserNotFound(f"User {user_id} not found")
    return user


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def commit_session(db: Session, what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to {what}: {e}")
        raise PersistenceConflict(f"Failed to {what}") from e


def register_user(
    db: Session,
    email: str,
    password: str,
    username: Optional[str] = None,
    initial_balance_tmn: float = 0,
    initial_balance_usdt: float = 0,
) -> User:
    """Create a local account with opening cash balances.

    Args:
        db: Database session
        email: Unique email
        password: Plain text password
        username: Display name, defaults to the email local part
        initial_balance_tmn: Opening Toman balance
        initial_balance_usdt: Opening USDT balance

    Returns:
        Created User with an empty wallet and log

    Raises:
        EmailAlreadyRegistered: If the email is taken
        InvalidTransactionInput: If an opening balance is out of bounds
    """
    settings = get_settings()
    tmn = Decimal(str(initial_balance_tmn or 0))
    usdt = Decimal(str(initial_balance_usdt or 0))
    if tmn < 0 or tmn > Decimal(str(settings.max_initial_balance_tmn)):
        raise InvalidTransactionInput("Initial TMN balance out of range")
    if usdt < 0 or usdt > Decimal(str(settings.max_initial_balance_usdt)):
        raise InvalidTransactionInput("Initial USDT balance out of range")

    email = normalize_email(email)
    if email_exists(db, email):
        raise EmailAlreadyRegistered(email)

    user = User(
        email=email,
        username=username or email.split("@")[0],
        hashed_password=get_password_hash(password),
        provider=AuthProvider.LOCAL,
        balance_tmn=tmn,
        balance_usdt=usdt,
        liked_coins=[],
        bookmarked_coins=[],
    )
    db.add(user)
    commit_session(db, f"register {email}")
    db.refresh(user)

    logger.info(f"Registered user {user.id} ({email})")
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    """Check credentials and stamp the login time.

    Returns:
        User if the credentials match, None otherwise
    """
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        return None

    user.last_login = local_now()
    commit_session(db, f"record login for user {user.id}")
    return user


def generate_username(name: Optional[str], email: str) -> str:
    """Username for a federated account: compacted display name plus a random suffix."""
    base = "".join((name or "").split()).lower() or email.split("@")[0]
    return f"{base}_{secrets.token_hex(3)}"


def get_or_create_federated_user(
    db: Session,
    provider: AuthProvider,
    provider_id: str,
    email: str,
    name: Optional[str] = None,
    avatar: Optional[str] = None,
) -> User:
    """Find or create the account behind an already verified federated identity.

    Looks up by provider id first, then links an existing account with
    the same email, and otherwise creates a new account with zero
    opening balances.
    """
    if provider is AuthProvider.LOCAL:
        raise ValueError("Federated sign-in requires an external provider")

    id_column = User.google_id if provider is AuthProvider.GOOGLE else User.github_id
    id_attr = "google_id" if provider is AuthProvider.GOOGLE else "github_id"

    user = db.query(User).filter(id_column == provider_id).first()
    if user is None:
        user = get_user_by_email(db, email)
        if user is not None:
            logger.info(f"Linking {provider.value} identity to existing user {user.id}")
            setattr(user, id_attr, provider_id)
            user.provider = provider

    if user is None:
        user = User(
            email=normalize_email(email),
            username=generate_username(name, email),
            provider=provider,
            avatar=avatar,
            is_verified=True,
            notifications=True,
            balance_tmn=Decimal("0"),
            balance_usdt=Decimal("0"),
            liked_coins=[],
            bookmarked_coins=[],
        )
        setattr(user, id_attr, provider_id)
        db.add(user)
        logger.info(f"Creating {provider.value} user for {email}")

    user.last_login = local_now()
    commit_session(db, f"sign in {provider.value} user {email}")
    db.refresh(user)
    return user


def update_profile(db: Session, user: User, username: Optional[str] = None) -> User:
    if username:
        user.username = username
        commit_session(db, f"update profile of user {user.id}")
    return user


def toggle_symbol(coins: List[str], coin: str) -> Tuple[List[str], bool]:
    """Add ``coin`` if absent, remove it if present.

    Returns:
        New list and whether the coin is now a member
    """
    symbol = coin.strip().upper()
    if not symbol:
        raise InvalidTransactionInput("Coin symbol is required")
    current = [c for c in coins or [] if c]
    if symbol in current:
        return [c for c in current if c != symbol], False
    return current + [symbol], True


def _toggle(db: Session, user: User, attr: str, coin: str) -> Tuple[List[str], bool]:
    coins, active = toggle_symbol(getattr(user, attr), coin)
    setattr(user, attr, coins)
    commit_session(db, f"update {attr} of user {user.id}")
    return coins, active


def toggle_liked_coin(db: Session, user: User, coin: str) -> Tuple[List[str], bool]:
    """Toggle a coin in the user's liked list. Wallet and log are untouched."""
    return _toggle(db, user, LIKED, coin)


def toggle_bookmarked_coin(db: Session, user: User, coin: str) -> Tuple[List[str], bool]:
    """Toggle a coin in the user's bookmarks. Wallet and log are untouched."""
    return _toggle(db, user, BOOKMARKED, coin)


def wallet_balance(user: User) -> BalanceResponse:
    return BalanceResponse(tmn=float(user.balance_tmn or 0), usdt=float(user.balance_usdt or 0))


def to_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        username=user.username,
        provider=user.provider.value,
        wallet=WalletResponse(
            balance=wallet_balance(user),
            assets=[AssetResponse(coin=a.coin, amount=float(a.amount)) for a in user.assets],
        ),
        last_login=user.last_login,
        created_at=user.created_at,
    )


def build_profile(user: User, usdt_rate: float) -> ProfileResponse:
    """Profile view with cash valued in Toman at ``usdt_rate``."""
    balance = wallet_balance(user)
    return ProfileResponse(
        id=user.id,
        email=user.email,
        username=user.username,
        join_date=user.created_at,
        last_login=user.last_login,
        total_transactions=len(user.transactions),
        liked_coins=list(user.liked_coins or []),
        bookmarked_coins=list(user.bookmarked_coins or []),
        wallet=WalletSummary(
            balance=balance,
            total_assets=len(user.assets),
            total_value=balance.tmn + balance.usdt * usdt_rate,
        ),
    )
