from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from conftest import TOKYO, hourly_entries, make_alert
from models.schemas import WeatherAlert
from services.notification_composer import (
    compose_alert,
    compose_current,
    compose_failure,
    compose_forecast,
    display_name,
    hour_label,
)

LOCATION = "Tokyo,Tokyo,Japan"


def _entry(hour):
    return next(e for e in hourly_entries(TOKYO, 2024, 5, 1, days=1)
                if e.timestamp.astimezone(ZoneInfo(TOKYO)).hour == hour)


def test_display_name_is_first_segment():
    assert display_name("New York,New York,United States of America") == "New York"


def test_hour_label_renders_in_subscriber_timezone():
    ts = datetime(2024, 5, 1, 5, tzinfo=timezone.utc)
    assert hour_label(ts, ZoneInfo(TOKYO)) == "2 PM"
    assert hour_label(ts, ZoneInfo("UTC")) == "5 AM"
    assert hour_label(datetime(2024, 5, 1, 15, tzinfo=timezone.utc), ZoneInfo(TOKYO)) == "12 AM"
    assert hour_label(datetime(2024, 5, 1, 3, tzinfo=timezone.utc), ZoneInfo(TOKYO)) == "12 PM"


def test_current_weather_payload():
    payload = compose_current(LOCATION, _entry(14), ZoneInfo(TOKYO))
    assert payload.title == "⏱️ 2 PM Weather (Tokyo)"
    assert payload.body.splitlines() == [
        "24°C, Condition 14",
        "☁️ Cloud Cover: 14%",
        "☔ Rain chance: 5%",
        "🌬️ Wind: 12.5 kph NW",
        "☀️ UV Index: 3",
    ]
    assert payload.icon == "//cdn.weather/14.png"
    assert payload.data == {"kind": "current_weather", "location": LOCATION, "time": "2 PM"}


def test_forecast_payload():
    payload = compose_forecast(LOCATION, _entry(15), ZoneInfo(TOKYO))
    assert payload.title == "🔮 3 PM Forecast (Tokyo)"
    assert payload.body.startswith("Expected: 25°C, Condition 15")
    assert payload.data["kind"] == "forecast"
    assert payload.data["time"] == "3 PM"


def test_alert_payload_renders_times_in_timezone():
    payload = compose_alert(LOCATION, make_alert("Typhoon Warning"), ZoneInfo(TOKYO))
    assert payload.title == "⚠️ Typhoon Warning - Tokyo"
    assert payload.icon == "/icons/alert.png"
    assert "Typhoon Warning in effect" in payload.body
    assert "Severity: Severe" in payload.body
    assert "Effective: May 01, 2024 12:00 PM JST" in payload.body
    assert "Expires: May 01, 2024 08:00 PM JST" in payload.body
    assert payload.body.endswith("Stay indoors.")
    assert payload.data == {
        "kind": "weather_alert",
        "location": LOCATION,
        "event": "Typhoon Warning",
        "severity": "Severe",
    }


def test_alert_payload_without_instruction_or_times():
    alert = WeatherAlert(event="Heat Advisory", severity="Moderate", headline="Hot", description="Very hot.")
    payload = compose_alert(LOCATION, alert, ZoneInfo(TOKYO))
    assert "Effective: unknown" in payload.body
    assert payload.body.endswith("Very hot.")


def test_failure_payload():
    payload = compose_failure(LOCATION)
    assert payload.title == "Weather Update Failed"
    assert payload.body == "Couldn't get latest weather for Tokyo"
    assert payload.icon == "/icons/error.png"
    assert payload.data == {"kind": "error", "location": LOCATION}
