import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


# Ensure project root is on sys.path so `services.*`, `core.*` imports work
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))


# Explicitly enable pytest-asyncio plugin for async tests/fixtures
pytest_plugins = ("pytest_asyncio",)


from config.settings import Settings
from core.container import assemble
from core.errors import ProviderUnavailable
from main import create_app
from models.schemas import HourlyEntry, WeatherAlert, WeatherReport
from models.subscription import Location, Subscription, TransportKeys
from services.notification_service import DeliveryChannel, DeliveryResult
from services.subscription_service import InMemorySubscriptionRepository
from tools.weather import WeatherProvider

TOKYO = "Asia/Tokyo"  # UTC+9, no DST: local hours are easy to reason about
TOKYO_LOCATION = "Tokyo,Tokyo,Japan"


class FakeClock:
    """Manually advanced clock; always returns an aware UTC datetime."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set_local(self, tz_id: str, *args) -> None:
        self.now = datetime(*args, tzinfo=ZoneInfo(tz_id)).astimezone(timezone.utc)


def local_instant(tz_id: str, *args) -> datetime:
    return datetime(*args, tzinfo=ZoneInfo(tz_id)).astimezone(timezone.utc)


def hourly_entries(tz_id: str, year: int, month: int, day: int, days: int = 2, skip_hours=()):
    """One entry per local hour starting at local midnight, timestamped in UTC."""
    start = local_instant(tz_id, year, month, day)
    entries = []
    for i in range(24 * days):
        ts = start + timedelta(hours=i)
        local = ts.astimezone(ZoneInfo(tz_id))
        if local.hour in skip_hours:
            continue
        entries.append(HourlyEntry(
            timestamp=ts,
            temperature=10 + local.hour,
            condition_text=f"Condition {local.hour}",
            condition_icon=f"//cdn.weather/{local.hour}.png",
            cloud_cover_pct=local.hour,
            rain_chance_pct=5,
            wind_speed=12.5,
            wind_direction="NW",
            uv_index=3,
        ))
    return entries


def make_alert(event: str, tz_id: str = TOKYO) -> WeatherAlert:
    return WeatherAlert(
        event=event,
        severity="Severe",
        headline=f"{event} in effect",
        description="Strong winds expected.",
        instruction="Stay indoors.",
        effective=local_instant(tz_id, 2024, 5, 1, 12),
        expires=local_instant(tz_id, 2024, 5, 1, 20),
    )


class FakeProvider(WeatherProvider):
    """Returns canned reports per location string; records every call."""

    def __init__(self):
        self.reports = {}
        self.errors = {}
        self.calls = []

    def set_report(self, location: str, report: WeatherReport) -> None:
        self.reports[location] = report

    def fail(self, location: str, exc: Exception | None = None) -> None:
        self.errors[location] = exc or ProviderUnavailable("provider down")

    async def fetch(self, location: Location) -> WeatherReport:
        key = str(location)
        self.calls.append(key)
        if key in self.errors:
            raise self.errors[key]
        return self.reports[key]

    async def fetch_by_coords(self, lat: float, lon: float) -> WeatherReport:
        self.calls.append(f"{lat},{lon}")
        return next(iter(self.reports.values()))


class RecordingChannel(DeliveryChannel):
    """
    Records every send. Results can be scripted per endpoint as a list
    (consumed in order) or a single DeliveryResult used for every send.
    """

    def __init__(self):
        self.sent = []
        self.scripts = {}

    def script(self, endpoint: str, results) -> None:
        self.scripts[endpoint] = results

    async def send(self, sub: Subscription, payload) -> DeliveryResult:
        self.sent.append((sub.endpoint, payload))
        script = self.scripts.get(sub.endpoint)
        if script is None:
            return DeliveryResult.DELIVERED
        if isinstance(script, list):
            result = script.pop(0) if script else DeliveryResult.DELIVERED
        else:
            result = script
        if isinstance(result, Exception):
            raise result
        return result

    def payloads_for(self, endpoint: str):
        return [p for e, p in self.sent if e == endpoint]


def make_subscription(endpoint: str = "https://push.example.com/sub/1", location: str = TOKYO_LOCATION,
                      next_time: datetime | None = None, owner_id: str | None = None,
                      created_at: datetime | None = None) -> Subscription:
    created = created_at or datetime(2024, 5, 1, tzinfo=timezone.utc)
    return Subscription(
        endpoint=endpoint,
        keys=TransportKeys(p256dh="BNc-p256dh-key", auth="auth-secret"),
        location=Location.parse(location),
        owner_id=owner_id,
        created_at=created,
        last_notified=None,
        next_notification_time=next_time or created,
    )


@pytest.fixture
def clock():
    # 13:20 local time in Tokyo
    return FakeClock(local_instant(TOKYO, 2024, 5, 1, 13, 20))


@pytest.fixture
def repo():
    return InMemorySubscriptionRepository()


@pytest.fixture
def provider():
    p = FakeProvider()
    p.set_report(TOKYO_LOCATION, WeatherReport(timezone_id=TOKYO, location_name="Tokyo",
                                               hourly=hourly_entries(TOKYO, 2024, 5, 1)))
    return p


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def services(repo, provider, channel, clock):
    return assemble(repo, provider, channel, clock=clock, scheduler_enabled=False)


@pytest.fixture
def coordinator(services):
    return services.coordinator


@pytest_asyncio.fixture()
async def api_client(services):
    """Async test client for the FastAPI app, wired to in-memory fakes."""
    app = create_app(services=services, settings=Settings(DATABASE_URL="memory"))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
