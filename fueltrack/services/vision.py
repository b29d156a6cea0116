"""Receipt extraction through a vision-capable chat-completion model."""

import asyncio
import base64
import json
import logging
import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

import httpx
from pydantic import ValidationError

from fueltrack.config import Settings
from fueltrack.schemas.extraction import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    ExtractedFuelData,
    ImageUrlPart,
    TextPart,
)
from fueltrack.services.errors import ExternalServiceError
from fueltrack.services.storage import ObjectStorage

logger = logging.getLogger(__name__)

FUEL_RECEIPT_PROMPT = """Please analyze this fuel receipt image and extract the following information in JSON format:
{
    "stationName": "Name of gas station",
    "stationBrand": "Brand (Shell, BP, Exxon, etc.)",
    "address": "Complete address if visible",
    "city": "City name",
    "state": "State abbreviation",
    "zipCode": "ZIP code",
    "totalAmount": "Total amount paid (number only, no currency symbol)",
    "liters": "Number of liters purchased (floating point number only)",
    "pricePerLiter": "Price per liter (floating point number only)",
    "fuelType": "Type of fuel (Petrol, Diesel, CNG, LPG, etc.)",
    "fuelGrade": "Grade of fuel (Regular, Premium, etc.)",
    "purchaseDateTime": "Date and time of purchase in ISO format",
    "receiptNumber": "Receipt or transaction number",
    "paymentMethod": "Payment method (Credit, Debit, Cash, etc.)",
    "confidence": "Your confidence level in this extraction (0-1)"
}

If any field is not clearly visible or readable, set it to null.
Respond with ONLY the JSON object, no additional text."""

# Tried in order after ISO-8601. Date-only patterns yield midnight.
DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
)

_FENCE_RE = re.compile(r"```(?:json)?\s*")

# (precision, scale) of the fuel_records columns each number lands in
AMOUNT_PRECISION = (10, 2)
VOLUME_PRECISION = (10, 3)


def image_format(image_url: str) -> str:
    """Guess the image subtype from the URL; JPEG unless it says otherwise."""
    lower = image_url.lower()
    for fmt in ("png", "gif", "webp"):
        if f".{fmt}" in lower:
            return fmt
    return "jpeg"


def strip_code_fences(content: str) -> str:
    return _FENCE_RE.sub("", content).strip()


def parse_receipt_datetime(value: str) -> datetime | None:
    """Parse a receipt timestamp, trying ISO-8601 then the fixed fallbacks."""
    value = value.strip()
    try:
        # Receipts carry local wall-clock time; drop any offset
        return datetime.fromisoformat(value).replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    logger.warning(f"Unable to parse date time: {value}")
    return None


def _raw(data: dict[str, Any], field: str) -> Any:
    value = data.get(field)
    if value is None or (isinstance(value, str) and value.strip().lower() in ("", "null")):
        return None
    return value


def _str(data: dict[str, Any], field: str) -> str | None:
    value = _raw(data, field)
    return None if value is None else str(value)


def _decimal(
    data: dict[str, Any], field: str, precision: tuple[int, int]
) -> Decimal | None:
    value = _raw(data, field)
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        logger.warning(f"Invalid number format for field {field}: {value}")
        return None
    if not number.is_finite():
        return None
    digits, scale = precision
    limit = Decimal(10) ** (digits - scale)
    # The database rounds to the column scale, which can carry 99.995 up to 100.00
    if abs(number) >= limit or (
        abs(number.quantize(Decimal(1).scaleb(-scale), ROUND_HALF_UP)) >= limit
    ):
        logger.warning(f"Value for field {field} does not fit NUMERIC({digits},{scale}): {value}")
        return None
    return number


def _float(data: dict[str, Any], field: str) -> float | None:
    value = _raw(data, field)
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid number format for field {field}: {value}")
        return None


def _confidence(data: dict[str, Any]) -> float | None:
    """Model confidence, or None when it is outside [0, 1]."""
    confidence = _float(data, "confidence")
    if confidence is not None and not 0.0 <= confidence <= 1.0:
        logger.warning(f"Discarding out-of-range confidence: {confidence}")
        return None
    return confidence


def parse_extraction(content: str) -> ExtractedFuelData:
    """Turn the model's message text into ``ExtractedFuelData``.

    Individual bad fields become None. If the text is not a JSON object at
    all the result is empty with ``confidence=0`` and the original text kept
    for diagnostics.
    """
    cleaned = strip_code_fences(content)
    try:
        data = json.loads(cleaned)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")

        purchase_raw = _str(data, "purchaseDateTime")
        return ExtractedFuelData(
            station_name=_str(data, "stationName"),
            station_brand=_str(data, "stationBrand"),
            address=_str(data, "address"),
            city=_str(data, "city"),
            state=_str(data, "state"),
            zip_code=_str(data, "zipCode"),
            total_amount=_decimal(data, "totalAmount", AMOUNT_PRECISION),
            liters=_decimal(data, "liters", VOLUME_PRECISION),
            price_per_liter=_decimal(data, "pricePerLiter", VOLUME_PRECISION),
            fuel_type=_str(data, "fuelType"),
            fuel_grade=_str(data, "fuelGrade"),
            purchase_date_time=parse_receipt_datetime(purchase_raw) if purchase_raw else None,
            receipt_number=_str(data, "receiptNumber"),
            payment_method=_str(data, "paymentMethod"),
            confidence=_confidence(data),
            raw_text=cleaned,
        )
    except (ValueError, ValidationError) as e:
        # json.JSONDecodeError is a ValueError
        logger.error(f"Error parsing vision model response: {e}")
        return empty_extraction(content)


def empty_extraction(raw_text: str) -> ExtractedFuelData:
    return ExtractedFuelData(confidence=0.0, raw_text=raw_text)


class VisionExtractionClient:
    """Extracts fuel receipt fields from stored images via the vision model."""

    def __init__(
        self,
        settings: Settings,
        storage: ObjectStorage,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.storage = storage
        self.base_url = settings.vision_api_url.rstrip("/")
        self.api_key = settings.vision_api_key
        self.model = settings.vision_model
        self.max_tokens = settings.vision_max_tokens
        self.timeout = settings.vision_timeout_seconds
        self._transport = transport

    async def _encode_image(self, image_url: str) -> str:
        """Download the stored image and return it as a data URI."""
        key = self.storage.key_from_url(image_url)
        image_data = await asyncio.to_thread(self.storage.get, key)
        encoded = base64.b64encode(image_data).decode("utf-8")
        logger.info(f"Encoded receipt image {key} ({len(image_data)} bytes)")
        return f"data:image/{image_format(image_url)};base64,{encoded}"

    def build_request(self, data_uri: str) -> ChatCompletionRequest:
        return ChatCompletionRequest(
            model=self.model,
            messages=[
                ChatMessage(
                    role="user",
                    content=[TextPart(text=FUEL_RECEIPT_PROMPT), ImageUrlPart(image_url=data_uri)],
                )
            ],
            max_tokens=self.max_tokens,
        )

    async def _complete(self, request: ChatCompletionRequest) -> str:
        """POST the request and return the raw response body."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=request.model_dump(),
                )
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling vision model: {e!r}")
            raise ExternalServiceError(f"Vision model request failed: {e!r}") from e

        if response.is_error:
            logger.error(f"Vision model API error ({response.status_code}): {response.text}")
            raise ExternalServiceError(
                f"Vision model returned {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        return response.text

    async def extract(self, image_url: str) -> ExtractedFuelData:
        """Extract receipt data for an image previously stored in the bucket.

        Raises:
            InvalidReferenceError: the URL is not one of ours
            StorageError: the image could not be downloaded
            ExternalServiceError: the model call failed
        """
        logger.info(f"Extracting fuel receipt data from {image_url}")
        data_uri = await self._encode_image(image_url)
        body = await self._complete(self.build_request(data_uri))

        try:
            completion = ChatCompletionResponse.model_validate_json(body)
        except ValidationError as e:
            logger.error(f"Malformed chat completion from vision model: {e}")
            return empty_extraction(body)

        if not completion.choices or completion.choices[0].message.content is None:
            logger.warning("No choices in vision model response")
            return empty_extraction(body)

        content = completion.choices[0].message.content
        logger.info(f"Raw JSON from vision model: {content}")
        return parse_extraction(content)
