"""User model: account identity plus the embedded wallet aggregate."""
import enum
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum, JSON
from sqlalchemy.orm import relationship
from coinfolio.core.database import Base, local_now
from coinfolio.models.database import AMOUNT_TYPE


class AuthProvider(str, enum.Enum):
    """Where the account's credentials live."""
    LOCAL = "local"
    GOOGLE = "google"
    GITHUB = "github"


class User(Base):
    """User model owning the wallet balances, asset lots and transaction log."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, index=True, nullable=True)
    hashed_password = Column(String, nullable=True)  # None for federated accounts
    provider = Column(Enum(AuthProvider), default=AuthProvider.LOCAL, nullable=False)
    google_id = Column(String, unique=True, nullable=True)
    github_id = Column(String, unique=True, nullable=True)
    avatar = Column(String, nullable=True)
    is_verified = Column(Boolean, default=False)
    notifications = Column(Boolean, default=False)

    # Wallet cash balances
    balance_tmn = Column(AMOUNT_TYPE, nullable=False, default=0)
    balance_usdt = Column(AMOUNT_TYPE, nullable=False, default=0)

    liked_coins = Column(JSON, nullable=False, default=list)
    bookmarked_coins = Column(JSON, nullable=False, default=list)

    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=local_now)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)

    # Optimistic lock: bumped on every UPDATE of this row
    version_id = Column(Integer, nullable=False)

    assets = relationship(
        "Asset", back_populates="user", order_by="Asset.id", cascade="all, delete-orphan"
    )
    transactions = relationship(
        "Transaction", back_populates="user", order_by="Transaction.id", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"
