"""Persistence helpers for fuel records."""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fueltrack.models.fuel_record import FuelRecord
from fueltrack.services.errors import PersistenceError

logger = logging.getLogger(__name__)


def save_record(db: Session, record: FuelRecord) -> FuelRecord:
    """Insert or update a record and commit.

    Raises PersistenceError (after rolling back) if the database refuses.
    """
    try:
        db.add(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to save fuel record for user {record.user_id}: {e}")
        raise PersistenceError("Failed to save fuel record") from e
    db.refresh(record)
    return record


def get_user_record(db: Session, record_id: int, user_id: int) -> FuelRecord | None:
    """Get a record only if it belongs to the user."""
    return (
        db.query(FuelRecord)
        .filter(FuelRecord.id == record_id, FuelRecord.user_id == user_id)
        .first()
    )


def list_user_records(
    db: Session, user_id: int, page: int, size: int
) -> tuple[list[FuelRecord], int]:
    """Return one page of the user's records (newest first) and the total count."""
    query = db.query(FuelRecord).filter(FuelRecord.user_id == user_id)
    total = query.count()
    records = (
        query.order_by(FuelRecord.created_at.desc(), FuelRecord.id.desc())
        .offset(page * size)
        .limit(size)
        .all()
    )
    return records, total


def user_totals(
    db: Session,
    user_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
) -> tuple[Decimal, Decimal, int]:
    """Sum of amount, sum of liters and record count for a user."""
    query = db.query(
        func.sum(FuelRecord.amount),
        func.sum(FuelRecord.liters),
        func.count(FuelRecord.id),
    ).filter(FuelRecord.user_id == user_id)
    if start is not None:
        query = query.filter(FuelRecord.created_at >= start)
    if end is not None:
        query = query.filter(FuelRecord.created_at <= end)

    total_amount, total_liters, count = query.one()
    return (
        Decimal(str(total_amount or 0)),
        Decimal(str(total_liters or 0)),
        count or 0,
    )


def delete_record(db: Session, record: FuelRecord) -> None:
    try:
        db.delete(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to delete fuel record {record.id}: {e}")
        raise PersistenceError("Failed to delete fuel record") from e
