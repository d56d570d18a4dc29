"""Wallet ledger: the only code path that mutates balances, holdings and the transaction log.

The trade algorithm itself is the pure function :func:`apply_transaction`,
which takes a :class:`WalletState` snapshot and returns a new one together
with the record to append. :class:`WalletLedger` wraps it with the storage
side: a per-user lock, a locked read of the user row, write-back and commit
as one unit.
"""
import logging
import threading
import weakref
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coinfolio.core.config import get_settings
from coinfolio.core.database import local_now
from coinfolio.core.exceptions import (
    InsufficientFunds,
    InsufficientHoldings,
    InvalidTransactionInput,
    PersistenceConflict,
    UnknownCurrency,
    UserNotFound,
)
from coinfolio.models.database import AMOUNT_SCALE, Asset, Currency, Transaction, TransactionType
from coinfolio.models.user import User

logger = logging.getLogger(__name__)
ledger_logger = logging.getLogger('ledger')

ZERO = Decimal("0")
# Smallest unit the amount columns can store
QUANTUM = Decimal(1).scaleb(-AMOUNT_SCALE)


def to_decimal(value, field_name: str) -> Decimal:
    """Convert a numeric input to Decimal without binary float noise."""
    if isinstance(value, bool):
        raise InvalidTransactionInput(f"{field_name} must be a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidTransactionInput(f"{field_name} must be a number, got {value!r}")
    if not result.is_finite():
        raise InvalidTransactionInput(f"{field_name} must be finite")
    return result


def quantize_amount(value: Decimal) -> Decimal:
    """Round to the stored precision, half-up."""
    return value.quantize(QUANTUM, rounding=ROUND_HALF_UP)


def parse_currency(value) -> Currency:
    """Resolve a currency code, case-insensitively."""
    if isinstance(value, Currency):
        return value
    try:
        return Currency(str(value).strip().upper())
    except ValueError:
        raise UnknownCurrency(value)


def parse_transaction_type(value) -> TransactionType:
    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(str(value).strip().lower())
    except ValueError:
        raise InvalidTransactionInput(f"Transaction type must be 'buy' or 'sell', got {value!r}")


@dataclass(frozen=True)
class CashBalance:
    """Cash held in each supported currency."""
    tmn: Decimal = ZERO
    usdt: Decimal = ZERO

    def get(self, currency: Currency) -> Decimal:
        if currency is Currency.TMN:
            return self.tmn
        if currency is Currency.USDT:
            return self.usdt
        raise UnknownCurrency(currency)

    def adjust(self, currency: Currency, delta: Decimal) -> "CashBalance":
        if currency is Currency.TMN:
            return replace(self, tmn=self.tmn + delta)
        if currency is Currency.USDT:
            return replace(self, usdt=self.usdt + delta)
        raise UnknownCurrency(currency)

    def as_dict(self) -> Dict[str, float]:
        return {"tmn": float(self.tmn), "usdt": float(self.usdt)}


@dataclass(frozen=True)
class AssetLot:
    """Aggregated holding of a single coin."""
    coin: str
    amount: Decimal


@dataclass(frozen=True)
class WalletState:
    """Snapshot of a wallet: cash balances plus asset lots in insertion order."""
    balance: CashBalance = field(default_factory=CashBalance)
    assets: Tuple[AssetLot, ...] = ()

    def find_asset(self, coin: str) -> Optional[AssetLot]:
        for lot in self.assets:
            if lot.coin == coin:
                return lot
        return None

    def holding(self, coin: str) -> Decimal:
        lot = self.find_asset(coin)
        return lot.amount if lot else ZERO


@dataclass(frozen=True)
class TradeIntent:
    """A validated buy or sell request."""
    coin: str
    amount: Decimal
    price: Decimal
    type: TransactionType
    currency: Currency

    @property
    def total(self) -> Decimal:
        return quantize_amount(self.amount * self.price)

    @classmethod
    def create(cls, coin, amount, price, type, currency, max_amount=None, max_price=None) -> "TradeIntent":
        """Normalize and validate raw trade input.

        Args:
            coin: Coin symbol, any case
            amount: Quantity of coin, must be > 0
            price: Price per unit in ``currency``, must be > 0
            type: "buy" or "sell"
            currency: "TMN" or "USDT"
            max_amount: Upper bound on amount (defaults to settings)
            max_price: Upper bound on price (defaults to settings)

        Returns:
            TradeIntent

        Raises:
            InvalidTransactionInput: On malformed numbers, symbols or type
            UnknownCurrency: On an unsupported currency code
        """
        settings = get_settings()
        max_amount = Decimal(str(max_amount if max_amount is not None else settings.max_trade_amount))
        max_price = Decimal(str(max_price if max_price is not None else settings.max_trade_price))

        symbol = (coin or "").strip().upper() if isinstance(coin, str) else ""
        if not symbol or len(symbol) > 10:
            raise InvalidTransactionInput("Coin symbol must be 1-10 characters")

        amount = to_decimal(amount, "amount")
        price = to_decimal(price, "price")
        if amount <= 0:
            raise InvalidTransactionInput("amount must be positive")
        if price <= 0:
            raise InvalidTransactionInput("price must be positive")
        if amount > max_amount:
            raise InvalidTransactionInput(f"amount must not exceed {max_amount}")
        if price > max_price:
            raise InvalidTransactionInput(f"price must not exceed {max_price}")
        if amount != amount.quantize(QUANTUM):
            raise InvalidTransactionInput(f"amount must have at most {AMOUNT_SCALE} decimal places")
        if price != price.quantize(QUANTUM):
            raise InvalidTransactionInput(f"price must have at most {AMOUNT_SCALE} decimal places")

        return cls(
            coin=symbol,
            amount=amount,
            price=price,
            type=parse_transaction_type(type),
            currency=parse_currency(currency),
        )


@dataclass(frozen=True)
class TransactionRecord:
    """An entry of the append-only transaction log."""
    coin: str
    amount: Decimal
    price: Decimal
    type: TransactionType
    currency: Currency
    timestamp: datetime

    @property
    def total(self) -> Decimal:
        return quantize_amount(self.amount * self.price)


def apply_transaction(state: WalletState, intent: TradeIntent, now: Optional[datetime] = None):
    """Apply a trade intent to a wallet snapshot.

    Pure: ``state`` is never modified and nothing is persisted.

    Args:
        state: Wallet snapshot read at the start of the operation
        intent: Validated trade intent
        now: Timestamp for the record (defaults to the current time)

    Returns:
        Tuple of (new WalletState, TransactionRecord)

    Raises:
        InsufficientFunds: Buy cost exceeds the balance in the trade currency
        InsufficientHoldings: Sell amount exceeds the held amount
    """
    if intent.type is TransactionType.BUY:
        cost = intent.total
        available = state.balance.get(intent.currency)
        if available < cost:
            raise InsufficientFunds(intent.currency.value, cost, available)

        balance = state.balance.adjust(intent.currency, -cost)
        assets = list(state.assets)
        for index, lot in enumerate(assets):
            if lot.coin == intent.coin:
                assets[index] = AssetLot(lot.coin, lot.amount + intent.amount)
                break
        else:
            assets.append(AssetLot(intent.coin, intent.amount))

    elif intent.type is TransactionType.SELL:
        lot = state.find_asset(intent.coin)
        if lot is None or lot.amount < intent.amount:
            raise InsufficientHoldings(intent.coin, intent.amount, lot.amount if lot else ZERO)

        balance = state.balance.adjust(intent.currency, intent.total)
        remaining = lot.amount - intent.amount
        assets = []
        for existing in state.assets:
            if existing.coin != intent.coin:
                assets.append(existing)
            elif remaining > 0:
                assets.append(AssetLot(existing.coin, remaining))

    else:
        raise InvalidTransactionInput(f"Unsupported transaction type: {intent.type!r}")

    record = TransactionRecord(
        coin=intent.coin,
        amount=intent.amount,
        price=intent.price,
        type=intent.type,
        currency=intent.currency,
        timestamp=now or local_now(),
    )
    return WalletState(balance=balance, assets=tuple(assets)), record


def wallet_state_from_user(user: User) -> WalletState:
    """Snapshot a user's wallet."""
    return WalletState(
        balance=CashBalance(tmn=Decimal(user.balance_tmn or 0), usdt=Decimal(user.balance_usdt or 0)),
        assets=tuple(AssetLot(asset.coin, Decimal(asset.amount)) for asset in user.assets),
    )


def transaction_records(user: User) -> List[TransactionRecord]:
    """Snapshot a user's transaction log in append order."""
    return [
        TransactionRecord(
            coin=tx.coin,
            amount=Decimal(tx.amount),
            price=Decimal(tx.price),
            type=tx.type,
            currency=tx.currency,
            timestamp=tx.created_at,
        )
        for tx in user.transactions
    ]


def write_wallet_state(user: User, state: WalletState, record: TransactionRecord) -> None:
    """Copy a new wallet snapshot onto the ORM row and append the log entry."""
    user.balance_tmn = state.balance.tmn
    user.balance_usdt = state.balance.usdt

    rows = {asset.coin: asset for asset in user.assets}
    kept = set()
    for lot in state.assets:
        kept.add(lot.coin)
        if lot.coin in rows:
            rows[lot.coin].amount = lot.amount
        else:
            user.assets.append(Asset(coin=lot.coin, amount=lot.amount))
    for coin, row in rows.items():
        if coin not in kept:
            user.assets.remove(row)

    user.transactions.append(Transaction(
        coin=record.coin,
        amount=record.amount,
        price=record.price,
        type=record.type,
        currency=record.currency,
        created_at=record.timestamp,
    ))


class UserLockRegistry:
    """Hands out one re-entrant lock per user id.

    Locks are held weakly: an entry disappears once no thread holds or
    waits on it, so the registry only tracks users with trades in flight.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[int, threading.RLock]" = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def get(self, user_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.RLock()
            return lock


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of a committed trade."""
    wallet: WalletState
    record: TransactionRecord
    transaction_count: int


class WalletLedger:
    """Applies trades to persisted wallets, one user at a time.

    Every call runs under the user's lock and inside a single session:
    the user row is read with ``FOR UPDATE``, the trade is validated
    against that fresh read, and balances, lots and the log entry are
    committed together. The row's version column makes a concurrent
    writer in another process fail with ``PersistenceConflict`` instead
    of overwriting.

    Args:
        session_factory: Callable returning a new Session
        locks: Per-user lock registry (shared by all ledgers of a process)
        on_commit: Called with the user id after a successful commit and
            before ``apply`` returns; used to invalidate cached valuations
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        locks: Optional[UserLockRegistry] = None,
        on_commit: Optional[Callable[[int], None]] = None,
    ):
        self.session_factory = session_factory
        self.locks = locks if locks is not None else UserLockRegistry()
        self.on_commit = on_commit

    def apply(self, user_id: int, intent: TradeIntent) -> LedgerResult:
        """Apply a trade intent to the user's wallet atomically.

        Args:
            user_id: Owner of the wallet
            intent: Validated trade intent

        Returns:
            LedgerResult with the committed wallet state and record

        Raises:
            UserNotFound: No such user
            InsufficientFunds / InsufficientHoldings: Trade rejected, nothing written
            PersistenceConflict: Commit failed and was rolled back
        """
        with self.locks.get(user_id):
            db = self.session_factory()
            try:
                user = (
                    db.query(User)
                    .filter(User.id == user_id)
                    .with_for_update()
                    .one_or_none()
                )
                if user is None:
                    raise UserNotFound(f"User {user_id} not found")

                state = wallet_state_from_user(user)
                try:
                    new_state, record = apply_transaction(state, intent)
                except (InsufficientFunds, InsufficientHoldings) as e:
                    ledger_logger.info(f"Rejected {intent.type.value} for user {user_id}: {e}")
                    raise

                write_wallet_state(user, new_state, record)
                transaction_count = len(user.transactions)
                db.commit()

            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Ledger commit failed for user {user_id}: {e}")
                raise PersistenceConflict(f"Could not commit trade for user {user_id}") from e
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

            if self.on_commit:
                self.on_commit(user_id)

        ledger_logger.info(
            f"Applied {record.type.value} user={user_id} coin={record.coin} "
            f"amount={record.amount} price={record.price} currency={record.currency.value} "
            f"balance={new_state.balance.as_dict()}"
        )
        return LedgerResult(wallet=new_state, record=record, transaction_count=transaction_count)
