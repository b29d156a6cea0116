"""FastAPI dependencies for authentication, database and services."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from fueltrack.config import Settings, get_settings
from fueltrack.database import get_db
from fueltrack.models.user import User
from fueltrack.schemas.auth import AuthenticatedUser
from fueltrack.services.auth import token_subject
from fueltrack.services.brand_logo import BrandLogoService
from fueltrack.services.duplicate_guard import DuplicateUploadGuard
from fueltrack.services.ingestion import ReceiptIngestionService
from fueltrack.services.storage import ObjectStorage
from fueltrack.services.vision import VisionExtractionClient

# Missing credentials are answered with 401 below, not HTTPBearer's default
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthenticatedUser:
    """Resolve the authenticated caller from the JWT token."""
    user_id = token_subject(credentials.credentials, settings) if credentials else None
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return AuthenticatedUser.model_validate(user)


@lru_cache
def get_duplicate_guard() -> DuplicateUploadGuard:
    """Process-wide duplicate upload guard."""
    return DuplicateUploadGuard()


def get_object_storage(settings: Annotated[Settings, Depends(get_settings)]) -> ObjectStorage:
    return ObjectStorage(settings)


def get_vision_client(
    settings: Annotated[Settings, Depends(get_settings)],
    storage: Annotated[ObjectStorage, Depends(get_object_storage)],
) -> VisionExtractionClient:
    return VisionExtractionClient(settings, storage)


def get_brand_logo_service(
    settings: Annotated[Settings, Depends(get_settings)],
) -> BrandLogoService:
    return BrandLogoService(settings.logos_bucket, settings.storage_region)


def get_ingestion_service(
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ObjectStorage, Depends(get_object_storage)],
    vision: Annotated[VisionExtractionClient, Depends(get_vision_client)],
    logos: Annotated[BrandLogoService, Depends(get_brand_logo_service)],
) -> ReceiptIngestionService:
    """Get ingestion service with dependencies."""
    return ReceiptIngestionService(db, storage, vision, logos)
