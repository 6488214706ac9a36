"""
Notification composer: pure formatting of weather data into push payloads.

Payload kinds (data["kind"]):
- current_weather: conditions for the current local hour
- forecast: conditions expected for the next local hour
- weather_alert: one per active alert
- error: fallback sent when the weather could not be fetched or is incomplete

The display name is always the first segment of the stored location ("Paris,Ile-de-France,France" -> "Paris").
"""
from datetime import datetime, tzinfo
from typing import Optional

from core.timeutils import as_utc
from models.schemas import HourlyEntry, NotificationKind, NotificationPayload, WeatherAlert

ALERT_ICON = "/icons/alert.png"
ERROR_ICON = "/icons/error.png"


def display_name(location: str) -> str:
    return str(location).split(",")[0]


def hour_label(ts: datetime, tz: tzinfo) -> str:
    """Hour-only label in the subscriber's timezone, e.g. "2 PM"."""
    local = as_utc(ts).astimezone(tz)
    hour12 = local.hour % 12 or 12
    return f"{hour12} {'AM' if local.hour < 12 else 'PM'}"


def _format_instant(value: Optional[datetime], tz: tzinfo) -> str:
    if value is None:
        return "unknown"
    return as_utc(value).astimezone(tz).strftime("%b %d, %Y %I:%M %p %Z")


def _conditions_body(entry: HourlyEntry, prefix: str = "") -> str:
    return (
        f"{prefix}{entry.temperature:g}°C, {entry.condition_text}"
        f"\n☁️ Cloud Cover: {entry.cloud_cover_pct}%"
        f"\n☔ Rain chance: {entry.rain_chance_pct}%"
        f"\n🌬️ Wind: {entry.wind_speed:g} kph {entry.wind_direction}"
        f"\n☀️ UV Index: {entry.uv_index:g}"
    )


def compose_current(location: str, entry: HourlyEntry, tz: tzinfo) -> NotificationPayload:
    label = hour_label(entry.timestamp, tz)
    return NotificationPayload(
        title=f"⏱️ {label} Weather ({display_name(location)})",
        body=_conditions_body(entry),
        icon=entry.condition_icon,
        data={"kind": NotificationKind.CURRENT_WEATHER.value, "location": str(location), "time": label},
    )


def compose_forecast(location: str, entry: HourlyEntry, tz: tzinfo) -> NotificationPayload:
    label = hour_label(entry.timestamp, tz)
    return NotificationPayload(
        title=f"🔮 {label} Forecast ({display_name(location)})",
        body=_conditions_body(entry, prefix="Expected: "),
        icon=entry.condition_icon,
        data={"kind": NotificationKind.FORECAST.value, "location": str(location), "time": label},
    )


def compose_alert(location: str, alert: WeatherAlert, tz: tzinfo) -> NotificationPayload:
    parts = [
        alert.headline,
        f"Severity: {alert.severity}\n"
        f"Effective: {_format_instant(alert.effective, tz)}\n"
        f"Expires: {_format_instant(alert.expires, tz)}",
        alert.description,
    ]
    if alert.instruction:
        parts.append(alert.instruction)
    return NotificationPayload(
        title=f"⚠️ {alert.event} - {display_name(location)}",
        body="\n\n".join(p for p in parts if p),
        icon=ALERT_ICON,
        data={
            "kind": NotificationKind.WEATHER_ALERT.value,
            "location": str(location),
            "event": alert.event,
            "severity": alert.severity,
        },
    )


def compose_failure(location: str) -> NotificationPayload:
    return NotificationPayload(
        title="Weather Update Failed",
        body=f"Couldn't get latest weather for {display_name(location)}",
        icon=ERROR_ICON,
        data={"kind": NotificationKind.ERROR.value, "location": str(location)},
    )
