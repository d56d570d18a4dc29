"""User schemas for API validation."""
from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import List, Optional

from coinfolio.schemas.trading import AssetResponse, BalanceResponse


class UserCreate(BaseModel):
    """Schema for user registration."""
    email: EmailStr
    username: Optional[str] = Field(None, min_length=3, max_length=30)
    password: str = Field(..., min_length=6, max_length=128)
    initial_balance_tmn: float = Field(0, ge=0, le=1_000_000_000_000)
    initial_balance_usdt: float = Field(0, ge=0, le=1_000_000)


class UserLogin(BaseModel):
    """Schema for user login."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class EmailCheck(BaseModel):
    email: EmailStr


class EmailCheckResponse(BaseModel):
    exists: bool


class ProfileUpdate(BaseModel):
    """Schema for profile updates."""
    username: Optional[str] = Field(None, min_length=3, max_length=30)


class WalletResponse(BaseModel):
    balance: BalanceResponse
    assets: List[AssetResponse]


class UserResponse(BaseModel):
    """Schema for user response."""
    id: int
    email: str
    username: Optional[str]
    provider: str
    wallet: WalletResponse
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class WalletSummary(BaseModel):
    balance: BalanceResponse
    total_assets: int
    total_value: float


class ProfileResponse(BaseModel):
    """Schema for the profile view."""
    id: int
    email: str
    username: Optional[str]
    join_date: Optional[datetime]
    last_login: Optional[datetime]
    total_transactions: int
    liked_coins: List[str]
    bookmarked_coins: List[str]
    wallet: WalletSummary


class AuthResponse(BaseModel):
    """Schema for register/login responses."""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class TokenData(BaseModel):
    """Schema for token payload data."""
    user_id: Optional[int] = None
    email: Optional[str] = None
