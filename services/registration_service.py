"""
Registration flow behind the subscribe / unsubscribe / check routes.

- register: validate, upsert by endpoint (keeps the original created_at), then one
  immediate delivery attempt for this subscription only
- unregister: delete by endpoint
- check: look up by endpoint
"""
import logging
from datetime import timezone
from typing import Optional, Tuple

from pydantic import ValidationError

from core.errors import InvalidRegistration
from core.timeutils import Clock, next_even_hour, utcnow
from models.schemas import SubscribeRequest
from models.subscription import Location, Subscription, TransportKeys
from services.delivery_coordinator import DeliveryCoordinator, DeliveryOutcome
from services.subscription_service import SubscriptionRepository

logger = logging.getLogger(__name__)


class RegistrationService:
    def __init__(self, repository: SubscriptionRepository, coordinator: DeliveryCoordinator,
                 clock: Clock = utcnow):
        self.repository = repository
        self.coordinator = coordinator
        self.clock = clock

    @staticmethod
    def validate(req: SubscribeRequest) -> Tuple[str, TransportKeys, Location]:
        info = req.subscription
        if info is None or not info.endpoint or not info.keys:
            raise InvalidRegistration("Invalid subscription format")
        try:
            keys = TransportKeys(**info.keys)
        except ValidationError as e:
            raise InvalidRegistration("Invalid subscription format: keys need p256dh and auth") from e
        if not req.location:
            raise InvalidRegistration("location is required")
        return info.endpoint, keys, Location.parse(req.location)

    async def register(self, req: SubscribeRequest) -> Tuple[Subscription, Optional[DeliveryOutcome]]:
        endpoint, keys, location = self.validate(req)
        now = self.clock()
        existing = await self.repository.find_by_endpoint(endpoint)

        # Provisional UTC boundary; the immediate delivery below recomputes it in the
        # location's own timezone once the provider has resolved it.
        sub = Subscription(
            endpoint=endpoint,
            keys=keys,
            location=location,
            owner_id=req.owner_id,
            created_at=existing.created_at if existing else now,
            last_notified=None,
            next_notification_time=next_even_hour(now, timezone.utc),
        )
        await self.repository.upsert(sub)
        logger.info("%s subscription %s... for %s",
                    "Replaced" if existing else "Created", endpoint[:30], location)

        outcome = None
        try:
            outcome = await self.coordinator.deliver(sub)
        except Exception as e:
            # the subscription is stored; the next cycle retries delivery
            logger.exception("Immediate delivery failed for %s...: %s", endpoint[:30], e)

        stored = await self.repository.find_by_endpoint(endpoint)
        return stored or sub, outcome

    async def unregister(self, endpoint: str) -> bool:
        removed = await self.repository.delete_by_endpoint(endpoint)
        logger.info("Unsubscribe %s... removed=%s", endpoint[:30], removed)
        return removed

    async def check(self, endpoint: str) -> Optional[Subscription]:
        return await self.repository.find_by_endpoint(endpoint)
