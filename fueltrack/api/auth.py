"""Authentication API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from fueltrack.api.dependencies import get_current_user
from fueltrack.config import Settings, get_settings
from fueltrack.database import get_db
from fueltrack.schemas.auth import (
    AuthenticatedUser,
    AuthResponse,
    UserLogin,
    UserRegister,
    UserResponse,
)
from fueltrack.services.auth import authenticate, issue_access_token, register_user
from fueltrack.services.errors import EmailAlreadyRegisteredError, InvalidCredentialsError

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserRegister,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Create an account and sign the caller in."""
    try:
        user = register_user(db, user_data.email, user_data.password, user_data.name)
    except EmailAlreadyRegisteredError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        ) from e

    return AuthResponse(
        access_token=issue_access_token(user, settings),
        user=UserResponse.model_validate(user),
    )


@router.post("/login", response_model=AuthResponse)
def login(
    credentials: UserLogin,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Exchange email and password for a bearer token."""
    try:
        user = authenticate(db, credentials.email, credentials.password)
    except InvalidCredentialsError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    return AuthResponse(
        access_token=issue_access_token(user, settings),
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=UserResponse)
def get_me(
    current_user: Annotated[AuthenticatedUser, Depends(get_current_user)],
):
    return current_user
