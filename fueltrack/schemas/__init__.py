"""Pydantic schemas for API requests and responses."""

from fueltrack.schemas.auth import (
    AuthenticatedUser,
    AuthResponse,
    UserLogin,
    UserRegister,
    UserResponse,
)
from fueltrack.schemas.extraction import ExtractedFuelData
from fueltrack.schemas.fuel_record import (
    FuelReceiptResponse,
    FuelRecordPage,
    FuelRecordUpdate,
    FuelSummary,
)

__all__ = [
    "UserRegister",
    "UserLogin",
    "AuthResponse",
    "UserResponse",
    "AuthenticatedUser",
    "ExtractedFuelData",
    "FuelReceiptResponse",
    "FuelRecordUpdate",
    "FuelRecordPage",
    "FuelSummary",
]
