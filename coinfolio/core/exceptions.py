"""Domain exceptions shared by the ledger, pricing and account services."""
from decimal import Decimal


class CoinfolioError(Exception):
    """Base class for all application errors."""


# Ledger -------------------------------------------------------------------

class LedgerError(CoinfolioError):
    """Base class for errors raised while applying a trade."""


class InvalidTransactionInput(LedgerError):
    """Malformed trade intent; rejected before any mutation."""


class UnknownCurrency(InvalidTransactionInput):
    """Currency code outside the supported set."""

    def __init__(self, currency):
        self.currency = currency
        super().__init__(f"Unsupported currency: {currency!r}")


class InsufficientFunds(LedgerError):
    """Buy rejected because the cash balance in the trade currency is too low."""

    def __init__(self, currency: str, required: Decimal, available: Decimal):
        self.currency = currency
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient {currency} balance: required {required}, available {available}"
        )


class InsufficientHoldings(LedgerError):
    """Sell rejected because the asset lot is missing or too small."""

    def __init__(self, coin: str, requested: Decimal, available: Decimal):
        self.coin = coin
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient {coin} holdings: requested {requested}, available {available}"
        )


class PersistenceConflict(LedgerError):
    """The atomic commit failed; nothing was written and the call may be retried."""


# Pricing ------------------------------------------------------------------

class PriceUnavailable(CoinfolioError):
    """Market data could not be obtained from the upstream service."""


# Accounts -----------------------------------------------------------------

class UserNotFound(CoinfolioError):
    """No user matches the given identity."""


class EmailAlreadyRegistered(CoinfolioError):
    """Registration attempted with an email that already has an account."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email already registered: {email}")
