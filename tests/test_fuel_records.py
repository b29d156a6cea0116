"""Tests for the fuel record API endpoints."""

import asyncio
from decimal import Decimal
from unittest.mock import MagicMock

from minio.error import MinioException

from fueltrack.api.dependencies import get_ingestion_service
from fueltrack.config import get_settings
from fueltrack.main import app
from fueltrack.models.fuel_record import FuelRecord

T0 = 1_700_000_000_000
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * (2 * 1024 * 1024)


def _upload(client, headers, data=JPEG, content_type="image/jpeg", **form):
    return client.post(
        "/api/v1/fuel-records/upload-receipt",
        files={"receipt_image": ("receipt.jpg", data, content_type)},
        data=form,
        headers=headers,
    )


def _add_record(db, user_id, **fields):
    record = FuelRecord(user_id=user_id, **fields)
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


class TestUploadReceipt:
    """Tests for POST /api/v1/fuel-records/upload-receipt."""

    def test_upload_extracts_and_saves(self, client, auth_headers, fake_vision, minio_client, db):
        fake_vision.reply_with(
            {"stationName": "BP Petrol", "totalAmount": "45.50", "liters": "5.2", "confidence": 0.9}
        )

        response = _upload(client, auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["station_name"] == "BP Petrol"
        assert Decimal(data["amount"]) == Decimal("45.50")
        assert Decimal(data["liters"]) == Decimal("5.2")
        assert Decimal(data["price_per_liter"]) == Decimal("8.750")
        assert data["brand_logo_url"].endswith("/bp.png")
        assert data["ocr_processed"] is True
        assert data["ocr_confidence"] == 0.9

        minio_client.put_object.assert_called_once()
        record = db.query(FuelRecord).filter(FuelRecord.id == data["id"]).one()
        assert record.user_id == auth_headers.user_id

    def test_upload_with_form_overrides(self, client, auth_headers, fake_vision):
        fake_vision.reply_with({"stationName": "Shell Express"})

        response = _upload(
            client,
            auth_headers,
            station_name="My Shell",
            location="Office",
            purchase_date="2024-03-01T08:15:00",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["station_name"] == "My Shell"
        assert data["location"] == "Office"
        assert data["purchase_date"] == "2024-03-01T08:15:00"

    def test_upload_survives_vision_failure(self, client, auth_headers, fake_vision):
        fake_vision.status_code = 503

        response = _upload(client, auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["receipt_image_url"] is not None
        assert data["station_name"] is None
        assert data["ocr_processed"] is False
        assert data["purchase_date"] is not None

    def test_empty_file_rejected(self, client, auth_headers, minio_client):
        response = _upload(client, auth_headers, data=b"")

        assert response.status_code == 400
        assert response.json()["detail"] == "empty_file"
        minio_client.put_object.assert_not_called()

    def test_non_image_rejected(self, client, auth_headers):
        response = _upload(client, auth_headers, data=b"%PDF-1.4", content_type="application/pdf")

        assert response.status_code == 400
        assert response.json()["detail"] == "invalid_file_type"

    def test_oversized_file_rejected(self, client, auth_headers, settings):
        app.dependency_overrides[get_settings] = lambda: settings.model_copy(
            update={"max_upload_bytes": 1024}
        )

        response = _upload(client, auth_headers)

        assert response.status_code == 413
        assert response.json()["detail"] == "file_too_large"

    def test_duplicate_upload_rejected(self, client, auth_headers, monkeypatch):
        monkeypatch.setattr("fueltrack.api.fuel_records.now_millis", lambda: T0)

        first = _upload(client, auth_headers)
        second = _upload(client, auth_headers)

        assert first.status_code == 200
        assert second.status_code == 429
        assert second.json()["detail"] == "duplicate_upload"

    def test_same_size_allowed_after_window(self, client, auth_headers, monkeypatch):
        clock = iter([T0, T0 + 11_000])
        monkeypatch.setattr("fueltrack.api.fuel_records.now_millis", lambda: next(clock))

        assert _upload(client, auth_headers).status_code == 200
        assert _upload(client, auth_headers).status_code == 200

    def test_different_users_not_duplicates(
        self, client, auth_headers, other_auth_headers, monkeypatch
    ):
        monkeypatch.setattr("fueltrack.api.fuel_records.now_millis", lambda: T0)

        assert _upload(client, auth_headers).status_code == 200
        assert _upload(client, other_auth_headers).status_code == 200

    def test_storage_failure_returns_500_and_releases_guard(
        self, client, auth_headers, minio_client, duplicate_guard, monkeypatch, db
    ):
        monkeypatch.setattr("fueltrack.api.fuel_records.now_millis", lambda: T0)
        minio_client.put_object.side_effect = MinioException("bucket unreachable")

        response = _upload(client, auth_headers)

        assert response.status_code == 500
        assert response.json()["detail"] == "internal_error"
        assert len(duplicate_guard) == 0
        assert db.query(FuelRecord).count() == 0

        # A retry in the same window goes through
        minio_client.put_object.side_effect = None
        assert _upload(client, auth_headers).status_code == 200

    def test_rejected_upload_releases_guard(self, client, auth_headers, duplicate_guard):
        response = _upload(client, auth_headers, data=b"text", content_type="text/plain")

        assert response.status_code == 400
        assert len(duplicate_guard) == 0

    def test_slow_ingestion_times_out(self, client, auth_headers, settings, duplicate_guard):
        async def slow_ingest(*args, **kwargs):
            await asyncio.sleep(5)

        service = MagicMock()
        service.ingest = slow_ingest
        app.dependency_overrides[get_ingestion_service] = lambda: service
        app.dependency_overrides[get_settings] = lambda: settings.model_copy(
            update={"ingestion_timeout_seconds": 0.05}
        )

        response = _upload(client, auth_headers)

        assert response.status_code == 500
        assert response.json()["detail"] == "internal_error"
        assert len(duplicate_guard) == 0

    def test_upload_requires_auth(self, client):
        response = _upload(client, {})

        assert response.status_code == 401


class TestListFuelRecords:
    """Tests for GET /api/v1/fuel-records."""

    def test_list_newest_first(self, client, auth_headers, db):
        for name in ("first", "second", "third"):
            _add_record(db, auth_headers.user_id, station_name=name)

        response = client.get("/api/v1/fuel-records", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert [item["station_name"] for item in data["items"]] == ["third", "second", "first"]
        assert data["total"] == 3
        assert data["pages"] == 1

    def test_pagination(self, client, auth_headers, db):
        for i in range(5):
            _add_record(db, auth_headers.user_id, station_name=f"station {i}")

        response = client.get(
            "/api/v1/fuel-records", params={"page": 1, "size": 2}, headers=auth_headers
        )

        data = response.json()
        assert [item["station_name"] for item in data["items"]] == ["station 2", "station 1"]
        assert data["total"] == 5
        assert data["page"] == 1
        assert data["size"] == 2
        assert data["pages"] == 3

    def test_only_own_records(self, client, auth_headers, other_auth_headers, db):
        _add_record(db, auth_headers.user_id, station_name="mine")
        _add_record(db, other_auth_headers.user_id, station_name="theirs")

        response = client.get("/api/v1/fuel-records", headers=auth_headers)

        assert [item["station_name"] for item in response.json()["items"]] == ["mine"]

    def test_invalid_page_size(self, client, auth_headers):
        assert client.get(
            "/api/v1/fuel-records", params={"size": 0}, headers=auth_headers
        ).status_code == 422
        assert client.get(
            "/api/v1/fuel-records", params={"size": 101}, headers=auth_headers
        ).status_code == 422
        assert client.get(
            "/api/v1/fuel-records", params={"page": -1}, headers=auth_headers
        ).status_code == 422

    def test_empty_list(self, client, auth_headers):
        data = client.get("/api/v1/fuel-records", headers=auth_headers).json()

        assert data["items"] == []
        assert data["total"] == 0
        assert data["pages"] == 0


class TestFuelRecordDetail:
    """Tests for get, update and delete of a single record."""

    def test_get_record(self, client, auth_headers, db):
        record = _add_record(
            db,
            auth_headers.user_id,
            station_name="Indian Oil COCO",
            amount=Decimal("100.00"),
            liters=Decimal("1.000"),
        )

        response = client.get(f"/api/v1/fuel-records/{record.id}", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["price_per_liter"]) == Decimal("100.000")
        assert data["brand_logo_url"].endswith("/indian-oil.png")
        assert data["ocr_processed"] is False

    def test_get_other_users_record(self, client, auth_headers, other_auth_headers, db):
        record = _add_record(db, other_auth_headers.user_id, station_name="theirs")

        response = client.get(f"/api/v1/fuel-records/{record.id}", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "not_found"

    def test_get_missing_record(self, client, auth_headers):
        assert client.get("/api/v1/fuel-records/99999", headers=auth_headers).status_code == 404

    def test_patch_completes_record(self, client, auth_headers, db):
        record = _add_record(db, auth_headers.user_id, amount=Decimal("45.50"))

        response = client.patch(
            f"/api/v1/fuel-records/{record.id}",
            json={"liters": "5.2", "station_name": "Shell Koramangala"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["price_per_liter"]) == Decimal("8.750")
        assert data["brand_logo_url"].endswith("/shell.png")

    def test_patch_rejects_non_positive_amount(self, client, auth_headers, db):
        record = _add_record(db, auth_headers.user_id)

        response = client.patch(
            f"/api/v1/fuel-records/{record.id}", json={"amount": "0"}, headers=auth_headers
        )

        assert response.status_code == 422

    def test_patch_other_users_record(self, client, auth_headers, other_auth_headers, db):
        record = _add_record(db, other_auth_headers.user_id)

        response = client.patch(
            f"/api/v1/fuel-records/{record.id}", json={"location": "x"}, headers=auth_headers
        )

        assert response.status_code == 404

    def test_delete_record_and_image(self, client, auth_headers, minio_client, storage, db):
        record = _add_record(
            db,
            auth_headers.user_id,
            receipt_image_url=storage.url_for("receipts/abc123_receipt.jpg"),
        )

        response = client.delete(f"/api/v1/fuel-records/{record.id}", headers=auth_headers)

        assert response.status_code == 204
        minio_client.remove_object.assert_called_once_with(
            "sweet-potato-receipts", "receipts/abc123_receipt.jpg"
        )
        assert db.query(FuelRecord).count() == 0

    def test_delete_survives_image_delete_failure(
        self, client, auth_headers, minio_client, storage, db
    ):
        record = _add_record(
            db,
            auth_headers.user_id,
            receipt_image_url=storage.url_for("receipts/abc123_receipt.jpg"),
        )
        minio_client.remove_object.side_effect = MinioException("access denied")

        response = client.delete(f"/api/v1/fuel-records/{record.id}", headers=auth_headers)

        assert response.status_code == 204
        assert db.query(FuelRecord).count() == 0

    def test_delete_other_users_record(self, client, auth_headers, other_auth_headers, db):
        record = _add_record(db, other_auth_headers.user_id)

        response = client.delete(f"/api/v1/fuel-records/{record.id}", headers=auth_headers)

        assert response.status_code == 404
        assert db.query(FuelRecord).count() == 1


class TestSummaryAndBrands:
    def test_summary(self, client, auth_headers, other_auth_headers, db):
        _add_record(db, auth_headers.user_id, amount=Decimal("45.50"), liters=Decimal("5.200"))
        _add_record(db, auth_headers.user_id, amount=Decimal("20.00"), liters=Decimal("2.000"))
        _add_record(db, other_auth_headers.user_id, amount=Decimal("99.00"))

        response = client.get("/api/v1/fuel-records/summary", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["total_amount"]) == Decimal("65.50")
        assert Decimal(data["total_liters"]) == Decimal("7.2")
        assert data["record_count"] == 2

    def test_summary_empty(self, client, auth_headers):
        data = client.get("/api/v1/fuel-records/summary", headers=auth_headers).json()

        assert Decimal(data["total_amount"]) == 0
        assert data["record_count"] == 0

    def test_brands(self, client, auth_headers):
        response = client.get("/api/v1/fuel-records/brands", headers=auth_headers)

        assert response.status_code == 200
        brands = response.json()
        assert brands[0] == "shell"
        assert "bp" in brands
        assert brands[-1] == "default"
