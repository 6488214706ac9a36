from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# --- Registration API payloads ---

class PushSubscriptionInfo(BaseModel):
    endpoint: Optional[str] = None
    keys: Optional[Dict[str, Any]] = None

class SubscribeRequest(BaseModel):
    subscription: Optional[PushSubscriptionInfo] = None
    location: Optional[str] = None
    owner_id: Optional[str] = None

class EndpointRequest(BaseModel):
    endpoint: str = Field(..., min_length=1)

# --- Weather provider output ---

class HourlyEntry(BaseModel):
    timestamp: datetime
    temperature: float
    condition_text: str = ""
    condition_icon: str = ""
    cloud_cover_pct: int = 0
    rain_chance_pct: int = 0
    wind_speed: float = 0.0
    wind_direction: str = ""
    uv_index: float = 0.0

class WeatherAlert(BaseModel):
    event: str
    severity: str = ""
    headline: str = ""
    description: str = ""
    instruction: Optional[str] = None
    effective: Optional[datetime] = None
    expires: Optional[datetime] = None

class WeatherReport(BaseModel):
    timezone_id: str
    location_name: Optional[str] = None
    hourly: List[HourlyEntry] = []
    alerts: List[WeatherAlert] = []

# --- Notifications ---

class NotificationKind(str, Enum):
    CURRENT_WEATHER = "current_weather"
    FORECAST = "forecast"
    WEATHER_ALERT = "weather_alert"
    ERROR = "error"

class NotificationPayload(BaseModel):
    title: str
    body: str
    icon: str = ""
    data: Dict[str, Any] = {}

    @property
    def kind(self) -> Optional[str]:
        return self.data.get("kind")
