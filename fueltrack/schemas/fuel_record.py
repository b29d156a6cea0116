"""Fuel record schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class FuelReceiptResponse(BaseModel):
    """Fuel record as returned to its owner."""

    id: int
    station_name: str | None = None
    station_brand: str | None = None
    fuel_type: str | None = None
    amount: Decimal | None = None
    liters: Decimal | None = None
    price_per_liter: Decimal | None = None
    receipt_image_url: str | None = None
    brand_logo_url: str
    location: str | None = None
    purchase_date: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    # Extraction details
    ocr_processed: bool = False
    ocr_confidence: float | None = None
    raw_ocr_data: str | None = None


class FuelRecordUpdate(BaseModel):
    """Manual correction of a fuel record."""

    station_name: str | None = Field(None, max_length=255)
    station_brand: str | None = Field(None, max_length=100)
    fuel_type: str | None = Field(None, max_length=50)
    amount: Decimal | None = Field(None, gt=0, max_digits=10, decimal_places=2)
    liters: Decimal | None = Field(None, gt=0, max_digits=10, decimal_places=3)
    location: str | None = Field(None, max_length=500)
    purchase_date: datetime | None = None


class FuelRecordPage(BaseModel):
    """One page of a user's fuel records, newest first."""

    items: list[FuelReceiptResponse]
    total: int
    page: int
    size: int
    pages: int


class FuelSummary(BaseModel):
    """Aggregates over a user's fuel records."""

    total_amount: Decimal
    total_liters: Decimal
    record_count: int
    start: datetime | None = None
    end: datetime | None = None
