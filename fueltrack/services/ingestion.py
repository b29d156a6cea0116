"""Receipt ingestion: store the image, extract its data and persist a record.

Storage failures abort the upload because there is nothing to attach a
record to. Extraction failures do not: the record is saved with whatever
is known (at least the image URL) so the user can fill in the rest later.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from fueltrack.models.fuel_record import FuelRecord
from fueltrack.schemas.auth import AuthenticatedUser
from fueltrack.schemas.extraction import ExtractedFuelData
from fueltrack.schemas.fuel_record import FuelReceiptResponse, FuelRecordUpdate
from fueltrack.services import fuel_records
from fueltrack.services.brand_logo import BrandLogoService
from fueltrack.services.errors import (
    ExtractionError,
    InvalidReferenceError,
    RecordNotFoundError,
    StorageError,
    UploadValidationError,
)
from fueltrack.services.storage import RECEIPTS_FOLDER, ObjectStorage
from fueltrack.services.vision import VisionExtractionClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReceiptOverrides:
    """Values typed by the user; each one replaces the extracted value."""

    station_name: str | None = None
    location: str | None = None
    purchase_date: str | None = None  # ISO-8601 local date-time


def validate_receipt_image(content_type: str | None, size_bytes: int, max_bytes: int) -> None:
    """Reject empty, non-image or oversized uploads."""
    if size_bytes <= 0:
        raise UploadValidationError("empty_file", "Empty file received")
    if not content_type or not content_type.startswith("image/"):
        raise UploadValidationError("invalid_file_type", f"Invalid file type: {content_type}")
    if size_bytes > max_bytes:
        raise UploadValidationError("file_too_large", f"File size too large: {size_bytes} bytes")


def parse_override_datetime(value: str) -> datetime:
    """Parse an ISO local date-time, falling back to now."""
    try:
        return datetime.fromisoformat(value.strip()).replace(tzinfo=None)
    except ValueError:
        logger.warning(f"Failed to parse purchase date override: {value}")
        return datetime.now()


def serialize_provenance(extracted: ExtractedFuelData) -> str | None:
    try:
        return extracted.model_dump_json(by_alias=True)
    except ValueError as e:
        logger.warning(f"Failed to serialize extracted data to JSON: {e}")
        return extracted.raw_text


def stored_confidence(extracted_data: str | None) -> float | None:
    """Read the confidence back out of a stored provenance blob."""
    if not extracted_data:
        return None
    try:
        confidence = json.loads(extracted_data).get("confidence")
        return float(confidence) if confidence is not None else None
    except (ValueError, TypeError, AttributeError):
        # Provenance fell back to raw model text
        return None


class ReceiptIngestionService:
    """Creates, updates and deletes fuel records from receipt uploads."""

    def __init__(
        self,
        db: Session,
        storage: ObjectStorage,
        vision: VisionExtractionClient,
        logos: BrandLogoService,
    ) -> None:
        self.db = db
        self.storage = storage
        self.vision = vision
        self.logos = logos

    async def ingest(
        self,
        image_data: bytes,
        filename: str | None,
        content_type: str | None,
        size_bytes: int,
        user: AuthenticatedUser,
        overrides: ReceiptOverrides | None = None,
    ) -> FuelReceiptResponse:
        """Run the full pipeline for one uploaded receipt image.

        Raises:
            StorageError: the image could not be stored; nothing was saved
            PersistenceError: the record could not be saved; the stored
                image is left behind
        """
        overrides = overrides or ReceiptOverrides()
        logger.info(
            f"Processing fuel receipt upload for user {user.id}: "
            f"{size_bytes} bytes, content type {content_type}"
        )

        image_url = await asyncio.to_thread(
            self.storage.put, image_data, filename, content_type, RECEIPTS_FOLDER
        )
        logger.info(f"Image uploaded: {image_url}")

        extracted: ExtractedFuelData | None
        try:
            extracted = await self.vision.extract(image_url)
        except (ExtractionError, StorageError) as e:
            # Keep the image; the user can enter the data manually
            logger.warning(f"Extraction failed, saving record without data for {image_url}: {e}")
            extracted = None

        record = self._draft_record(extracted, user.id, image_url)
        self._apply_overrides(record, overrides)
        if record.purchase_date is None:
            record.purchase_date = datetime.now()

        record = fuel_records.save_record(self.db, record)
        logger.info(
            f"Saved fuel record {record.id} for user {user.id} "
            f"(confidence {extracted.confidence if extracted else None})"
        )
        return self.to_response(record, extracted)

    def _draft_record(
        self, extracted: ExtractedFuelData | None, user_id: int, image_url: str
    ) -> FuelRecord:
        record = FuelRecord(user_id=user_id, receipt_image_url=image_url)
        if extracted is None:
            return record

        record.station_name = extracted.station_name
        record.station_brand = extracted.station_brand
        record.fuel_type = extracted.fuel_type
        record.amount = extracted.total_amount
        record.liters = extracted.liters
        record.price_per_liter = extracted.price_per_liter
        record.location = extracted.location()
        record.purchase_date = extracted.purchase_date_time
        record.extracted_data = serialize_provenance(extracted)
        return record

    @staticmethod
    def _apply_overrides(record: FuelRecord, overrides: ReceiptOverrides) -> None:
        if overrides.station_name is not None:
            record.station_name = overrides.station_name
        if overrides.location is not None:
            record.location = overrides.location
        if overrides.purchase_date is not None:
            record.purchase_date = parse_override_datetime(overrides.purchase_date)

    def get_record(self, record_id: int, user: AuthenticatedUser) -> FuelRecord:
        record = fuel_records.get_user_record(self.db, record_id, user.id)
        if record is None:
            raise RecordNotFoundError(f"Fuel record {record_id} not found")
        return record

    def update_record(
        self, record_id: int, user: AuthenticatedUser, changes: FuelRecordUpdate
    ) -> FuelReceiptResponse:
        """Apply manual corrections; price per liter is re-derived on save."""
        record = self.get_record(record_id, user)
        for field, value in changes.model_dump(exclude_unset=True).items():
            setattr(record, field, value)
        record = fuel_records.save_record(self.db, record)
        logger.info(f"Updated fuel record {record.id}")
        return self.to_response(record)

    def delete_record(self, record_id: int, user: AuthenticatedUser) -> None:
        """Delete an owned record; removing its image is best effort."""
        record = self.get_record(record_id, user)

        if record.receipt_image_url:
            try:
                self.storage.delete(record.receipt_image_url)
            except (StorageError, InvalidReferenceError) as e:
                logger.warning(
                    f"Failed to delete image {record.receipt_image_url}, leaving it orphaned: {e}"
                )

        fuel_records.delete_record(self.db, record)
        logger.info(f"Deleted fuel record {record_id}")

    def to_response(
        self, record: FuelRecord, extracted: ExtractedFuelData | None = None
    ) -> FuelReceiptResponse:
        if extracted is not None:
            ocr_processed = True
            confidence = extracted.confidence
            raw = extracted.raw_text
        else:
            ocr_processed = record.extracted_data is not None
            confidence = stored_confidence(record.extracted_data)
            raw = None

        return FuelReceiptResponse(
            id=record.id,
            station_name=record.station_name,
            station_brand=record.station_brand,
            fuel_type=record.fuel_type,
            amount=record.amount,
            liters=record.liters,
            price_per_liter=record.price_per_liter,
            receipt_image_url=record.receipt_image_url,
            brand_logo_url=self.logos.get_logo_url(record.station_name, record.station_brand),
            location=record.location,
            purchase_date=record.purchase_date,
            created_at=record.created_at,
            updated_at=record.updated_at,
            ocr_processed=ocr_processed,
            ocr_confidence=confidence,
            raw_ocr_data=raw,
        )
