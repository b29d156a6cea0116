"""SQLAlchemy models."""

from fueltrack.models.fuel_record import FuelRecord
from fueltrack.models.user import User

__all__ = [
    "User",
    "FuelRecord",
]
