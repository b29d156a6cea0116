"""Vision extraction schemas: the extracted receipt and chat-completion payloads."""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ExtractedFuelData(BaseModel):
    """Structured data read from a fuel receipt. Every field may be missing."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    station_name: str | None = None
    station_brand: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    total_amount: Decimal | None = None
    liters: Decimal | None = None
    price_per_liter: Decimal | None = None
    fuel_type: str | None = None
    fuel_grade: str | None = None
    purchase_date_time: datetime | None = None
    receipt_number: str | None = None
    payment_method: str | None = None
    confidence: float | None = None
    raw_text: str | None = None

    def location(self) -> str | None:
        """Join address, city, state and zip as ``address, city, state zip``."""
        location = ""
        for separator, part in (
            (", ", self.address),
            (", ", self.city),
            (", ", self.state),
            (" ", self.zip_code),
        ):
            if part is None:
                continue
            location = f"{location}{separator}{part}" if location else part
        return location or None


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageUrlPart(BaseModel):
    type: Literal["image_url"] = "image_url"
    image_url: str


ContentPart = Annotated[TextPart | ImageUrlPart, Field(discriminator="type")]


class ChatMessage(BaseModel):
    role: str = "user"
    content: list[ContentPart]


class ChatCompletionRequest(BaseModel):
    """Request body for the chat-completion endpoint."""

    model: str
    messages: list[ChatMessage]
    max_tokens: int


class ChoiceMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str | None = None
    content: str | None = None


class Choice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    message: ChoiceMessage


class ChatCompletionResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    model: str | None = None
    choices: list[Choice] = Field(default_factory=list)
