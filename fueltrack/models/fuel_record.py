"""FuelRecord model for processed fuel receipts."""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, event
from sqlalchemy.orm import relationship

from fueltrack.database import Base
from fueltrack.models.mixins import TimestampMixin

PRICE_QUANTUM = Decimal("0.001")


def derive_price_per_liter(amount, liters) -> Decimal | None:
    """Return amount / liters rounded half-up to 3 places, or None if underivable."""
    if amount is None or liters is None:
        return None
    liters = Decimal(str(liters))
    if liters <= 0:
        return None
    return (Decimal(str(amount)) / liters).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


class FuelRecord(Base, TimestampMixin):
    """A single processed fuel receipt owned by one user."""

    __tablename__ = "fuel_records"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    station_name = Column(String(255), nullable=True)
    station_brand = Column(String(100), nullable=True)
    fuel_type = Column(String(50), nullable=True)
    amount = Column(Numeric(10, 2), nullable=True)
    liters = Column(Numeric(10, 3), nullable=True)
    price_per_liter = Column(Numeric(10, 3), nullable=True)  # derived, see _apply_price_invariant

    # Provenance
    extracted_data = Column(Text, nullable=True)  # JSON of the vision extraction
    receipt_image_url = Column(String(1024), nullable=True)
    location = Column(String(500), nullable=True)
    purchase_date = Column(DateTime, nullable=True)  # local wall-clock time on the receipt

    user = relationship("User", back_populates="fuel_records")


@event.listens_for(FuelRecord, "before_insert")
@event.listens_for(FuelRecord, "before_update")
def _apply_price_invariant(mapper, connection, target: FuelRecord) -> None:
    derived = derive_price_per_liter(target.amount, target.liters)
    if derived is not None:
        target.price_per_liter = derived
