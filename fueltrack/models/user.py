"""User model."""

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from fueltrack.database import Base
from fueltrack.models.mixins import TimestampMixin


class User(Base, TimestampMixin):
    """User model for authentication and ownership."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)

    fuel_records = relationship(
        "FuelRecord", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
