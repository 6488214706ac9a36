# models/subscription.py
import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from core.errors import InvalidRegistration

# Whitespace around commas is dropped before a location is stored or compared
_COMMA_SPACING = re.compile(r"\s*,\s*")


def normalize_location(raw: str) -> str:
    return _COMMA_SPACING.sub(",", (raw or "").strip())


class Location(BaseModel):
    """(city, region, country) triple; serialized as "City,Region,Country"."""

    model_config = ConfigDict(frozen=True)

    city: str
    region: str
    country: str

    @classmethod
    def parse(cls, raw: str) -> "Location":
        parts = normalize_location(raw).split(",")
        if len(parts) != 3 or not all(parts):
            raise InvalidRegistration(f"location must be 'city, region, country', got {raw!r}")
        return cls(city=parts[0], region=parts[1], country=parts[2])

    @property
    def display_name(self) -> str:
        return self.city

    def __str__(self) -> str:
        return f"{self.city},{self.region},{self.country}"


class TransportKeys(BaseModel):
    """Web Push credentials. Opaque to the service, passed to the delivery channel as-is."""

    model_config = ConfigDict(extra="allow")

    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class Subscription(BaseModel):
    endpoint: str = Field(..., min_length=1)
    keys: TransportKeys
    location: Location
    owner_id: Optional[str] = None
    created_at: datetime
    last_notified: Optional[datetime] = None
    next_notification_time: datetime

    def to_webpush_info(self) -> dict:
        """Subscription info in the shape pywebpush expects."""
        return {"endpoint": self.endpoint, "keys": self.keys.model_dump()}
