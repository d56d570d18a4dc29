"""Database models for wallet holdings and the transaction log."""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from coinfolio.core.database import Base, local_now
import enum

# Amounts, prices and balances share one precision
AMOUNT_SCALE = 8
AMOUNT_TYPE = Numeric(28, AMOUNT_SCALE)


class Currency(str, enum.Enum):
    """Supported cash currencies."""
    TMN = "TMN"
    USDT = "USDT"


class TransactionType(str, enum.Enum):
    """Transaction type enumeration."""
    BUY = "buy"
    SELL = "sell"


class Asset(Base):
    """Aggregated holding of one coin in a user's wallet."""
    __tablename__ = "assets"
    __table_args__ = (UniqueConstraint("user_id", "coin", name="uq_assets_user_coin"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    coin = Column(String(20), nullable=False)
    amount = Column(AMOUNT_TYPE, nullable=False, default=0)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)

    user = relationship("User", back_populates="assets")

    def __repr__(self):
        return f"<Asset(coin='{self.coin}', amount={self.amount})>"


class Transaction(Base):
    """Immutable record of an applied buy or sell."""
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    coin = Column(String(20), nullable=False, index=True)
    amount = Column(AMOUNT_TYPE, nullable=False)
    price = Column(AMOUNT_TYPE, nullable=False)
    type = Column(Enum(TransactionType), nullable=False)
    currency = Column(Enum(Currency), nullable=False, default=Currency.TMN)
    created_at = Column(DateTime, default=local_now, nullable=False)

    user = relationship("User", back_populates="transactions")

    def __repr__(self):
        return f"<Transaction({self.type.value} {self.amount} {self.coin} @ {self.price} {self.currency.value})>"
