"""
Delivery coordinator: fetch -> compose -> send -> bookkeeping, per subscription.

Per subscription:
- the provider's timezone id is re-resolved on every delivery (never stored)
- the current and next local hour are picked from the hourly forecast
- current conditions, next-hour forecast, then one payload per active alert are sent in order
- on success last_notified / next_notification_time advance to the next even local hour
- ProviderUnavailable / DataGapError send one fallback "error" payload and leave bookkeeping untouched
- a permanently invalid endpoint deletes the subscription and stops its remaining sends
- transient send failures are logged; the remaining payloads are still attempted

Per cycle, due subscriptions are processed concurrently (bounded by a semaphore), each
inside its own failure boundary. Provider lookups are shared between subscriptions of
the same location within a cycle.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.errors import DataGapError, PermanentEndpointError, ProviderUnavailable, TransientDeliveryError
from core.timeutils import Clock, as_utc, next_even_hour, top_of_hour, utcnow
from models.schemas import HourlyEntry, NotificationPayload, WeatherReport
from models.subscription import Location, Subscription
from services.notification_composer import compose_alert, compose_current, compose_failure, compose_forecast
from services.notification_service import DeliveryChannel, DeliveryResult
from services.subscription_service import SubscriptionRepository
from tools.weather import WeatherProvider

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    FAILED = "failed"      # fallback notification sent, retried next cycle
    PRUNED = "pruned"      # endpoint gone, subscription deleted
    ERRORED = "errored"    # unexpected fault, isolated by the cycle driver


@dataclass
class DeliveryOutcome:
    endpoint: str
    status: DeliveryStatus
    sent: int = 0
    transient_failures: int = 0
    error: Optional[str] = None


@dataclass
class CycleReport:
    total: int = 0
    skipped: int = 0
    delivered: int = 0
    failed: int = 0
    pruned: int = 0
    errored: int = 0

    def record(self, outcome: DeliveryOutcome) -> None:
        if outcome.status is DeliveryStatus.DELIVERED:
            self.delivered += 1
        elif outcome.status is DeliveryStatus.FAILED:
            self.failed += 1
        elif outcome.status is DeliveryStatus.PRUNED:
            self.pruned += 1
        else:
            self.errored += 1


def _closest_entry(entries: List[HourlyEntry], hour: int, target: datetime, tz: tzinfo) -> Optional[HourlyEntry]:
    candidates = [e for e in entries if as_utc(e.timestamp).astimezone(tz).hour == hour]
    if not candidates:
        return None
    # two forecast days contain every local hour twice; keep the one nearest the slot
    return min(candidates, key=lambda e: abs(as_utc(e.timestamp) - target))


def select_hourly_entries(entries: List[HourlyEntry], now: datetime, tz: tzinfo,
                          location: str) -> Tuple[HourlyEntry, HourlyEntry]:
    """
    Pick the entries for the current and the next local hour.
    Entry timestamps are re-projected into tz before matching.
    """
    slot = top_of_hour(now, tz)
    local_hour = slot.astimezone(tz).hour
    next_hour = (local_hour + 1) % 24
    current = _closest_entry(entries, local_hour, slot, tz)
    upcoming = _closest_entry(entries, next_hour, slot + timedelta(hours=1), tz)
    if current is None or upcoming is None:
        raise DataGapError(location, local_hour, next_hour)
    return current, upcoming


def resolve_timezone(report: WeatherReport) -> ZoneInfo:
    try:
        return ZoneInfo(report.timezone_id)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ProviderUnavailable(f"unknown timezone {report.timezone_id!r}") from e


class DeliveryCoordinator:
    def __init__(self, repository: SubscriptionRepository, provider: WeatherProvider,
                 channel: DeliveryChannel, clock: Clock = utcnow, max_concurrency: int = 10,
                 due_window: timedelta = timedelta(hours=1)):
        self.repository = repository
        self.provider = provider
        self.channel = channel
        self.clock = clock
        self.max_concurrency = max(1, max_concurrency)
        self.due_window = due_window

    def is_due(self, sub: Subscription, now: datetime) -> bool:
        return as_utc(sub.next_notification_time) <= now + self.due_window

    async def deliver(self, sub: Subscription) -> DeliveryOutcome:
        """One-off delivery for a single subscription (also used right after registration)."""
        return await self._deliver(sub, cache=None)

    async def run_cycle(self) -> CycleReport:
        """
        One pass over all subscriptions. StorageError from the initial listing
        propagates to the caller; per-subscription faults never do.
        """
        subs = await self.repository.list_all()
        now = self.clock()
        report = CycleReport(total=len(subs))
        due = [s for s in subs if self.is_due(s, now)]
        report.skipped = len(subs) - len(due)
        if not due:
            logger.info("Cycle: no due subscriptions (%s total)", report.total)
            return report

        semaphore = asyncio.Semaphore(self.max_concurrency)
        cache: Dict[str, asyncio.Future] = {}

        async def guarded(sub: Subscription) -> DeliveryOutcome:
            async with semaphore:
                return await self._process_safely(sub, cache)

        outcomes = await asyncio.gather(*(guarded(s) for s in due))
        for outcome in outcomes:
            report.record(outcome)
        logger.info(
            "Cycle done: total=%s skipped=%s delivered=%s failed=%s pruned=%s errored=%s",
            report.total, report.skipped, report.delivered, report.failed, report.pruned, report.errored,
        )
        return report

    async def _process_safely(self, sub: Subscription, cache: Dict[str, asyncio.Future]) -> DeliveryOutcome:
        try:
            return await self._deliver(sub, cache)
        except Exception as e:
            logger.exception("Unhandled error delivering to %s...: %s", sub.endpoint[:30], e)
            return DeliveryOutcome(sub.endpoint, DeliveryStatus.ERRORED, error=str(e))

    async def _deliver(self, sub: Subscription, cache: Optional[Dict[str, asyncio.Future]]) -> DeliveryOutcome:
        location = str(sub.location)
        try:
            report = await self._fetch(sub.location, cache)
            tz = resolve_timezone(report)
            now = self.clock()
            current, upcoming = select_hourly_entries(report.hourly, now, tz, location)
        except (ProviderUnavailable, DataGapError) as e:
            logger.error("Failed to send update for %s: %s", location, e)
            return await self._send_fallback(sub, e)

        payloads = [compose_current(location, current, tz), compose_forecast(location, upcoming, tz)]
        payloads.extend(compose_alert(location, alert, tz) for alert in report.alerts)

        sent = transient = 0
        for payload in payloads:
            try:
                if await self._send(sub, payload):
                    sent += 1
                else:
                    transient += 1
            except PermanentEndpointError:
                await self._prune(sub)
                return DeliveryOutcome(sub.endpoint, DeliveryStatus.PRUNED, sent=sent, transient_failures=transient)

        # weather computation succeeded: bookkeeping advances even if a send failed transiently
        next_time = next_even_hour(now, tz)
        await self.repository.mark_notified(sub.endpoint, now, next_time)
        logger.info("Sent %s/%s notifications for %s to %s..., next at %s",
                    sent, len(payloads), location, sub.endpoint[:30], next_time.isoformat())
        return DeliveryOutcome(sub.endpoint, DeliveryStatus.DELIVERED, sent=sent, transient_failures=transient)

    async def _fetch(self, location: Location, cache: Optional[Dict[str, asyncio.Future]]) -> WeatherReport:
        if cache is None:
            return await self.provider.fetch(location)
        key = str(location)
        future = cache.get(key)
        if future is None:
            future = asyncio.ensure_future(self.provider.fetch(location))
            cache[key] = future
        return await future

    async def _send(self, sub: Subscription, payload: NotificationPayload) -> bool:
        """True when delivered, False on transient failure; raises PermanentEndpointError."""
        try:
            result = await self.channel.send(sub, payload)
        except TransientDeliveryError as e:
            logger.warning("Transient delivery error to %s...: %s", sub.endpoint[:30], e)
            return False
        if result is DeliveryResult.PERMANENTLY_INVALID:
            raise PermanentEndpointError(sub.endpoint)
        if result is DeliveryResult.TRANSIENT_FAILURE:
            logger.warning("Transient failure sending %s to %s...", payload.data.get("kind"), sub.endpoint[:30])
            return False
        return True

    async def _send_fallback(self, sub: Subscription, error: Exception) -> DeliveryOutcome:
        try:
            delivered = await self._send(sub, compose_failure(str(sub.location)))
        except PermanentEndpointError:
            await self._prune(sub)
            return DeliveryOutcome(sub.endpoint, DeliveryStatus.PRUNED, error=str(error))
        return DeliveryOutcome(sub.endpoint, DeliveryStatus.FAILED, sent=int(delivered),
                               transient_failures=int(not delivered), error=str(error))

    async def _prune(self, sub: Subscription) -> None:
        removed = await self.repository.delete_by_endpoint(sub.endpoint)
        logger.info("Pruned dead endpoint %s... (removed=%s)", sub.endpoint[:30], removed)
