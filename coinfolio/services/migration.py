"""Upgrade of user records exported from the single-currency wallet schema.

Older records store ``wallet.balance`` as one number (Toman) and
transactions without a ``currency`` field. They are upgraded to the
multi-currency shape before import instead of being supported side by side.
"""
import copy
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable

from sqlalchemy.orm import Session

from coinfolio.core.database import local_now
from coinfolio.models.database import Asset, Currency, Transaction, TransactionType
from coinfolio.models.user import AuthProvider, User
from coinfolio.services.users import commit_session, email_exists, normalize_email

logger = logging.getLogger(__name__)

VALID_TYPES = {t.value for t in TransactionType}
VALID_CURRENCIES = {c.value for c in Currency}


def _decimal(value) -> Decimal:
    try:
        return Decimal(str(value if value is not None else 0))
    except InvalidOperation:
        return Decimal("0")


def _timestamp(value):
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
    return local_now()


def upgrade_legacy_record(record: Dict) -> Dict:
    """Convert a user document to the multi-currency shape.

    - numeric ``wallet.balance`` becomes ``{"tmn": value, "usdt": 0}``
    - transactions without ``currency`` are tagged ``TMN``
    - coin symbols are upper-cased, duplicate lots merged, empty lots dropped
    - transactions with an unknown type, currency or coin are dropped and
      counted in ``droppedTransactions``

    The input is not modified. Already upgraded records pass through.
    """
    upgraded = copy.deepcopy(record)
    wallet = upgraded.setdefault("wallet", {})

    balance = wallet.get("balance", 0)
    if isinstance(balance, dict):
        wallet["balance"] = {
            "tmn": _decimal(balance.get("tmn")),
            "usdt": _decimal(balance.get("usdt")),
        }
    else:
        wallet["balance"] = {"tmn": _decimal(balance), "usdt": Decimal("0")}

    lots: Dict[str, Decimal] = {}
    for asset in wallet.get("assets") or []:
        coin = str(asset.get("coin") or "").strip().upper()
        if coin:
            lots[coin] = lots.get(coin, Decimal("0")) + _decimal(asset.get("amount"))
    wallet["assets"] = [{"coin": c, "amount": a} for c, a in lots.items() if a > 0]

    transactions = []
    dropped = 0
    for tx in upgraded.get("transactions") or []:
        tx = dict(tx)
        tx["coin"] = str(tx.get("coin") or "").strip().upper()
        tx["currency"] = str(tx.get("currency") or Currency.TMN.value).upper()
        tx["type"] = str(tx.get("type") or "").lower()
        if tx["type"] not in VALID_TYPES or tx["currency"] not in VALID_CURRENCIES or not tx["coin"]:
            logger.warning(f"Dropping malformed transaction of {upgraded.get('email')}: {tx}")
            dropped += 1
            continue
        transactions.append(tx)
    upgraded["transactions"] = transactions
    upgraded["droppedTransactions"] = dropped

    upgraded["likedCoins"] = list(dict.fromkeys(upgraded.get("likedCoins") or []))
    upgraded["bookmarkedCoins"] = list(dict.fromkeys(upgraded.get("bookmarkedCoins") or []))
    return upgraded


def user_from_record(record: Dict) -> User:
    """Build an (unsaved) User from an upgraded record."""
    wallet = record["wallet"]
    user = User(
        email=normalize_email(record["email"]),
        username=record.get("username"),
        hashed_password=record.get("password"),
        provider=AuthProvider(record.get("provider") or AuthProvider.LOCAL.value),
        google_id=record.get("googleId"),
        github_id=record.get("githubId"),
        avatar=record.get("avatar"),
        balance_tmn=wallet["balance"]["tmn"],
        balance_usdt=wallet["balance"]["usdt"],
        liked_coins=record["likedCoins"],
        bookmarked_coins=record["bookmarkedCoins"],
        last_login=_timestamp(record["lastLogin"]) if record.get("lastLogin") else None,
        created_at=_timestamp(record.get("createdAt")),
    )
    user.assets = [Asset(coin=a["coin"], amount=a["amount"]) for a in wallet["assets"]]
    user.transactions = [
        Transaction(
            coin=tx["coin"],
            amount=_decimal(tx.get("amount")),
            price=_decimal(tx.get("price")),
            type=TransactionType(tx["type"]),
            currency=Currency(tx["currency"]),
            created_at=_timestamp(tx.get("date")),
        )
        for tx in sorted(record["transactions"], key=lambda t: _timestamp(t.get("date")))
    ]
    return user


def import_legacy_users(db: Session, records: Iterable[Dict]) -> Dict[str, int]:
    """Upgrade and insert exported users, skipping emails that already exist.

    Returns:
        Dictionary with import statistics (imported, skipped, total,
        dropped_transactions)
    """
    stats = {"imported": 0, "skipped": 0, "total": 0, "dropped_transactions": 0}
    seen = set()

    for record in records:
        stats["total"] += 1
        email = normalize_email(record.get("email") or "")
        if not email or email in seen or email_exists(db, email):
            stats["skipped"] += 1
            continue

        upgraded = upgrade_legacy_record(record)
        stats["dropped_transactions"] += upgraded["droppedTransactions"]
        db.add(user_from_record(upgraded))
        seen.add(email)
        stats["imported"] += 1

    commit_session(db, "import legacy users")

    logger.info(
        f"Legacy import complete: {stats['imported']} imported, "
        f"{stats['skipped']} skipped, {stats['dropped_transactions']} transactions dropped, "
        f"{stats['total']} total"
    )
    return stats
