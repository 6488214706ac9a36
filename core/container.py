# core/container.py
"""
Service wiring. One Services instance is built per application and stored on
app.state; nothing here is a module-level global.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from config.settings import Settings
from core.db import create_engine, create_session_maker, init_models
from core.timeutils import Clock, utcnow
from services.delivery_coordinator import DeliveryCoordinator
from services.notification_service import ConsoleChannel, DeliveryChannel, WebPushChannel
from services.registration_service import RegistrationService
from services.subscription_db_service import SubscriptionDBService
from services.subscription_service import InMemorySubscriptionRepository, SubscriptionRepository
from tools.weather import WeatherApiProvider, WeatherProvider
from workers.notification_worker import NotificationScheduler

logger = logging.getLogger(__name__)


@dataclass
class Services:
    repository: SubscriptionRepository
    provider: WeatherProvider
    channel: DeliveryChannel
    coordinator: DeliveryCoordinator
    registration: RegistrationService
    scheduler: NotificationScheduler
    scheduler_enabled: bool = True
    engine: Optional[AsyncEngine] = field(default=None)

    async def startup(self) -> None:
        if self.engine is not None:
            await init_models(self.engine)
        if self.scheduler_enabled:
            self.scheduler.start()

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        if self.engine is not None:
            await self.engine.dispose()


def assemble(repository: SubscriptionRepository, provider: WeatherProvider, channel: DeliveryChannel,
             clock: Clock = utcnow, max_concurrency: int = 10, due_window: timedelta = timedelta(hours=1),
             scheduler_enabled: bool = True, engine: Optional[AsyncEngine] = None) -> Services:
    coordinator = DeliveryCoordinator(repository, provider, channel, clock=clock,
                                      max_concurrency=max_concurrency, due_window=due_window)
    return Services(
        repository=repository,
        provider=provider,
        channel=channel,
        coordinator=coordinator,
        registration=RegistrationService(repository, coordinator, clock=clock),
        scheduler=NotificationScheduler(coordinator.run_cycle, clock=clock),
        scheduler_enabled=scheduler_enabled,
        engine=engine,
    )


def build_services(settings: Settings) -> Services:
    engine = None
    if settings.use_memory_store:
        logger.warning("DATABASE_URL=memory: subscriptions are kept in-process and lost on restart.")
        repository: SubscriptionRepository = InMemorySubscriptionRepository()
    else:
        engine = create_engine(settings.DATABASE_URL, echo=settings.DEBUG)
        repository = SubscriptionDBService(create_session_maker(engine))

    if settings.VAPID_PUBLIC_KEY and settings.VAPID_PRIVATE_KEY:
        channel: DeliveryChannel = WebPushChannel(settings.VAPID_PRIVATE_KEY, settings.VAPID_SUBJECT,
                                                  ttl=settings.PUSH_TTL_SECONDS)
    else:
        logger.warning("VAPID keys not configured; notifications go to the console channel.")
        channel = ConsoleChannel()

    provider = WeatherApiProvider(
        settings.WEATHER_API_KEY,
        base_url=settings.WEATHER_API_URL,
        timeout=settings.WEATHER_API_TIMEOUT,
        days=settings.WEATHER_FORECAST_DAYS,
    )
    return assemble(
        repository, provider, channel,
        max_concurrency=settings.DELIVERY_MAX_CONCURRENCY,
        due_window=timedelta(minutes=settings.DELIVERY_DUE_WINDOW_MINUTES),
        scheduler_enabled=settings.SCHEDULER_ENABLED,
        engine=engine,
    )
