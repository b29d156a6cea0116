"""Fuel record API endpoints."""

import asyncio
import logging
import math
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from fueltrack.api.dependencies import (
    get_current_user,
    get_duplicate_guard,
    get_ingestion_service,
)
from fueltrack.config import Settings, get_settings
from fueltrack.database import get_db
from fueltrack.schemas.auth import AuthenticatedUser
from fueltrack.schemas.fuel_record import (
    FuelReceiptResponse,
    FuelRecordPage,
    FuelRecordUpdate,
    FuelSummary,
)
from fueltrack.services import fuel_records
from fueltrack.services.brand_logo import supported_brands
from fueltrack.services.duplicate_guard import DuplicateUploadGuard, now_millis
from fueltrack.services.errors import FuelTrackError, RecordNotFoundError, UploadValidationError
from fueltrack.services.ingestion import (
    ReceiptIngestionService,
    ReceiptOverrides,
    validate_receipt_image,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/fuel-records", tags=["fuel-records"])


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not_found")


@router.post("/upload-receipt", response_model=FuelReceiptResponse)
async def upload_receipt(
    current_user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    service: Annotated[ReceiptIngestionService, Depends(get_ingestion_service)],
    guard: Annotated[DuplicateUploadGuard, Depends(get_duplicate_guard)],
    settings: Annotated[Settings, Depends(get_settings)],
    receipt_image: Annotated[UploadFile, File()],
    station_name: Annotated[str | None, Form()] = None,
    location: Annotated[str | None, Form()] = None,
    purchase_date: Annotated[str | None, Form()] = None,
):
    """Upload a fuel receipt photo and extract its data."""
    image_data = await receipt_image.read()
    size_bytes = len(image_data)
    logger.info(
        f"Receipt upload request from user {current_user.id}: "
        f"{size_bytes} bytes, content type {receipt_image.content_type}"
    )

    key = guard.acquire(current_user.id, size_bytes, now_millis())
    if key is None:
        logger.warning(
            f"Duplicate upload blocked for user {current_user.id}, file size {size_bytes} bytes"
        )
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="duplicate_upload")

    succeeded = False
    try:
        try:
            validate_receipt_image(receipt_image.content_type, size_bytes, settings.max_upload_bytes)
        except UploadValidationError as e:
            logger.warning(f"Upload rejected for user {current_user.id}: {e}")
            code = (
                status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
                if e.code == "file_too_large"
                else status.HTTP_400_BAD_REQUEST
            )
            raise HTTPException(status_code=code, detail=e.code) from e

        overrides = ReceiptOverrides(
            station_name=station_name, location=location, purchase_date=purchase_date
        )
        try:
            result = await asyncio.wait_for(
                service.ingest(
                    image_data,
                    receipt_image.filename,
                    receipt_image.content_type,
                    size_bytes,
                    current_user,
                    overrides,
                ),
                timeout=settings.ingestion_timeout_seconds,
            )
        except (FuelTrackError, TimeoutError) as e:
            logger.exception(f"Receipt processing failed for user {current_user.id}: {e!r}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="internal_error"
            ) from e

        succeeded = True
        return result
    finally:
        if not succeeded:
            guard.release(key)


@router.get("", response_model=FuelRecordPage)
def list_fuel_records(
    current_user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    service: Annotated[ReceiptIngestionService, Depends(get_ingestion_service)],
    page: int = Query(default=0, ge=0),
    size: int = Query(default=20, ge=1, le=100),
):
    """List the current user's fuel records, newest first."""
    records, total = fuel_records.list_user_records(db, current_user.id, page, size)
    return FuelRecordPage(
        items=[service.to_response(record) for record in records],
        total=total,
        page=page,
        size=size,
        pages=math.ceil(total / size),
    )


@router.get("/summary", response_model=FuelSummary)
def get_fuel_summary(
    current_user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
):
    """Total spend, total liters and record count, optionally within a date range."""
    total_amount, total_liters, count = fuel_records.user_totals(db, current_user.id, start, end)
    return FuelSummary(
        total_amount=total_amount,
        total_liters=total_liters,
        record_count=count,
        start=start,
        end=end,
    )


@router.get("/brands", response_model=list[str])
def list_brands(
    current_user: Annotated[AuthenticatedUser, Depends(get_current_user)],
):
    """Brand keys that have a logo."""
    return supported_brands()


@router.get("/{record_id}", response_model=FuelReceiptResponse)
def get_fuel_record(
    record_id: int,
    current_user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    service: Annotated[ReceiptIngestionService, Depends(get_ingestion_service)],
):
    """Get one of the current user's fuel records."""
    try:
        record = service.get_record(record_id, current_user)
    except RecordNotFoundError as e:
        raise _not_found() from e
    return service.to_response(record)


@router.patch("/{record_id}", response_model=FuelReceiptResponse)
def update_fuel_record(
    record_id: int,
    changes: FuelRecordUpdate,
    current_user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    service: Annotated[ReceiptIngestionService, Depends(get_ingestion_service)],
):
    """Correct or complete a fuel record by hand."""
    try:
        return service.update_record(record_id, current_user, changes)
    except RecordNotFoundError as e:
        raise _not_found() from e


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_fuel_record(
    record_id: int,
    current_user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    service: Annotated[ReceiptIngestionService, Depends(get_ingestion_service)],
):
    """Delete a fuel record and, best effort, its receipt image."""
    try:
        service.delete_record(record_id, current_user)
    except RecordNotFoundError as e:
        raise _not_found() from e
