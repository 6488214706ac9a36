"""
Weather provider.

Provides:
- WeatherApiProvider.fetch(location): forecast for a (city, region, country) triple
- WeatherApiProvider.fetch_by_coords(lat, lon): same, by coordinates

Uses a WeatherAPI.com-compatible HTTP API with the key from settings.WEATHER_API_KEY.
The returned WeatherReport is normalized so the coordinator can rely on:
    timezone_id   IANA timezone of the location (authoritative for local hours)
    hourly        entries timestamped in UTC (from time_epoch), two forecast days
    alerts        active alerts in provider order

Any transport fault, non-2xx response or malformed payload raises ProviderUnavailable.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from core.errors import ProviderUnavailable
from models.schemas import HourlyEntry, WeatherAlert, WeatherReport
from models.subscription import Location

logger = logging.getLogger(__name__)

DEFAULT_WEATHER_API_URL = "https://api.weatherapi.com/v1"


class WeatherProvider(ABC):
    @abstractmethod
    async def fetch(self, location: Location) -> WeatherReport: ...

    async def fetch_by_coords(self, lat: float, lon: float) -> WeatherReport:
        raise ProviderUnavailable("coordinate lookups are not supported by this provider")


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable alert timestamp: %s", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _normalize_hour(hour: Dict[str, Any]) -> HourlyEntry:
    condition = hour.get("condition") or {}
    return HourlyEntry(
        timestamp=datetime.fromtimestamp(int(hour["time_epoch"]), tz=timezone.utc),
        temperature=float(hour["temp_c"]),
        condition_text=condition.get("text") or "",
        condition_icon=condition.get("icon") or "",
        cloud_cover_pct=int(hour.get("cloud") or 0),
        rain_chance_pct=int(hour.get("chance_of_rain") or 0),
        wind_speed=float(hour.get("wind_kph") or 0.0),
        wind_direction=hour.get("wind_dir") or "",
        uv_index=float(hour.get("uv") or 0.0),
    )


def _normalize_alert(alert: Dict[str, Any]) -> WeatherAlert:
    return WeatherAlert(
        event=alert.get("event") or "Weather alert",
        severity=alert.get("severity") or "",
        headline=alert.get("headline") or "",
        description=alert.get("desc") or "",
        instruction=alert.get("instruction") or None,
        effective=_parse_datetime(alert.get("effective")),
        expires=_parse_datetime(alert.get("expires")),
    )


def normalize_forecast_response(data: Dict[str, Any]) -> WeatherReport:
    """
    Convert raw provider JSON into a WeatherReport.
    Any structural surprise (missing keys, wrong nesting, bad values) raises ProviderUnavailable.
    """
    try:
        loc = data["location"]
        tz_id = loc["tz_id"]
        ZoneInfo(tz_id)
        hourly: List[HourlyEntry] = []
        for day in (data.get("forecast") or {}).get("forecastday") or []:
            hourly.extend(_normalize_hour(h) for h in day.get("hour") or [])
        alerts = [_normalize_alert(a) for a in (data.get("alerts") or {}).get("alert") or []]
        return WeatherReport(timezone_id=tz_id, location_name=loc.get("name"), hourly=hourly, alerts=alerts)
    except (AttributeError, KeyError, TypeError, ValueError, ZoneInfoNotFoundError) as e:
        raise ProviderUnavailable(f"malformed weather payload: {e!r}") from e


class WeatherApiProvider(WeatherProvider):
    def __init__(self, api_key: Optional[str], base_url: str = DEFAULT_WEATHER_API_URL,
                 timeout: float = 10.0, days: int = 2, transport: httpx.AsyncBaseTransport | None = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.days = days
        self._transport = transport

    async def fetch(self, location: Location) -> WeatherReport:
        query = f"{location.city},{location.region},{location.country}"
        return await self._forecast(query)

    async def fetch_by_coords(self, lat: float, lon: float) -> WeatherReport:
        return await self._forecast(f"{float(lat)},{float(lon)}")

    async def _forecast(self, query: str) -> WeatherReport:
        if not self.api_key:
            logger.warning("WEATHER_API_KEY not configured; weather is unavailable.")
            raise ProviderUnavailable("WEATHER_API_KEY not configured")

        params = {
            "key": self.api_key,
            "q": query,
            "days": self.days,
            "alerts": "yes",
            "aqi": "no",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(f"{self.base_url}/forecast.json", params=params)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("Weather API returned %s for q=%s", e.response.status_code, query)
            raise ProviderUnavailable(f"weather API returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Weather API error for q=%s: %s", query, e)
            raise ProviderUnavailable(str(e)) from e
        return normalize_forecast_response(data)
