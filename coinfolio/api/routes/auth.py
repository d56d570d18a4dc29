"""Authentication API endpoints."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from coinfolio.core.database import get_db
from coinfolio.core.exceptions import EmailAlreadyRegistered, InvalidTransactionInput, PersistenceConflict
from coinfolio.core.security import create_user_token, get_current_user
from coinfolio.models.user import User
from coinfolio.schemas.user import (
    AuthResponse,
    EmailCheck,
    EmailCheckResponse,
    UserCreate,
    UserLogin,
    UserResponse,
)
from coinfolio.services import users as user_service

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(user_data: UserCreate, db: Session = Depends(get_db)):
    """Register a new user with opening balances.

    Args:
        user_data: User registration data
        db: Database session

    Returns:
        Access token and the created user

    Raises:
        HTTPException: If the email already exists
    """
    try:
        user = user_service.register_user(
            db,
            email=user_data.email,
            password=user_data.password,
            username=user_data.username,
            initial_balance_tmn=user_data.initial_balance_tmn,
            initial_balance_usdt=user_data.initial_balance_usdt,
        )
    except EmailAlreadyRegistered:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered"
        )
    except InvalidTransactionInput as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PersistenceConflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return AuthResponse(access_token=create_user_token(user), user=user_service.to_user_response(user))


@router.post("/login", response_model=AuthResponse)
def login(user_data: UserLogin, db: Session = Depends(get_db)):
    """Login and get access token.

    Raises:
        HTTPException: If authentication fails
    """
    user = user_service.authenticate(db, user_data.email, user_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return AuthResponse(access_token=create_user_token(user), user=user_service.to_user_response(user))


@router.post("/check-email", response_model=EmailCheckResponse)
def check_email(payload: EmailCheck, db: Session = Depends(get_db)):
    """Report whether an email is already registered."""
    return EmailCheckResponse(exists=user_service.email_exists(db, payload.email))


@router.get("/me", response_model=UserResponse)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information."""
    return user_service.to_user_response(current_user)
