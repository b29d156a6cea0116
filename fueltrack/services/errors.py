"""Exceptions raised by the receipt services.

API handlers translate these into HTTP responses with short, stable
``detail`` codes. Diagnostic context stays on the exception for logging
and is never sent to clients.
"""


class FuelTrackError(Exception):
    """Base class for service errors."""


class UploadValidationError(FuelTrackError):
    """Uploaded file failed a boundary check (empty, wrong type, too large)."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code


class StorageError(FuelTrackError):
    """Object store rejected or could not serve a request."""


class ExtractionError(FuelTrackError):
    """Vision extraction could not produce a result."""


class ExternalServiceError(ExtractionError):
    """The vision model endpoint failed or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class InvalidReferenceError(ExtractionError):
    """An image URL does not belong to the configured bucket."""


class PersistenceError(FuelTrackError):
    """The record could not be written to the database."""


class RecordNotFoundError(FuelTrackError):
    """Record is absent or owned by another user."""


class EmailAlreadyRegisteredError(FuelTrackError):
    """Registration with an email that already has an account."""


class InvalidCredentialsError(FuelTrackError):
    """Unknown email or wrong password."""
