# services/notification_service.py
"""
Delivery channels: send one notification payload to one subscription.

- WebPushChannel: real Web Push via pywebpush (VAPID signed, payload encrypted by pywebpush)
- ConsoleChannel: dev fallback, logs the payload and reports it delivered

Channels never raise for delivery problems; they report a DeliveryResult and the
coordinator decides what to do (prune on PERMANENTLY_INVALID, log on TRANSIENT_FAILURE).
"""
import asyncio
import collections
import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Deque, Dict

from pywebpush import WebPushException, webpush

from models.schemas import NotificationPayload
from models.subscription import Subscription

logger = logging.getLogger(__name__)

# Push services answer 404/410 for unsubscribed or expired endpoints
GONE_STATUS_CODES = (404, 410)

# ConsoleChannel keeps only this many sends for inspection
RECENT_HISTORY = 20


class DeliveryResult(str, Enum):
    DELIVERED = "delivered"
    PERMANENTLY_INVALID = "permanently_invalid"
    TRANSIENT_FAILURE = "transient_failure"


class DeliveryChannel(ABC):
    @abstractmethod
    async def send(self, sub: Subscription, payload: NotificationPayload) -> DeliveryResult: ...


class WebPushChannel(DeliveryChannel):
    def __init__(self, vapid_private_key: str, vapid_subject: str, ttl: int = 3600):
        self.vapid_private_key = vapid_private_key
        self.vapid_subject = vapid_subject
        self.ttl = ttl

    async def send(self, sub: Subscription, payload: NotificationPayload) -> DeliveryResult:
        # pywebpush is blocking (requests); keep it off the event loop
        return await asyncio.to_thread(self._send_blocking, sub, payload)

    def _send_blocking(self, sub: Subscription, payload: NotificationPayload) -> DeliveryResult:
        try:
            webpush(
                subscription_info=sub.to_webpush_info(),
                data=json.dumps(payload.model_dump()),
                vapid_private_key=self.vapid_private_key,
                vapid_claims={"sub": self.vapid_subject},
                ttl=self.ttl,
            )
            return DeliveryResult.DELIVERED
        except WebPushException as e:
            status = e.response.status_code if e.response is not None else None
            logger.error("Failed to send to %s...: %s (status=%s)", sub.endpoint[:30], e, status)
            if status in GONE_STATUS_CODES:
                return DeliveryResult.PERMANENTLY_INVALID
            return DeliveryResult.TRANSIENT_FAILURE
        except Exception as e:
            # network errors from requests, malformed keys, ...
            logger.error("Failed to send to %s...: %s", sub.endpoint[:30], e)
            return DeliveryResult.TRANSIENT_FAILURE


class ConsoleChannel(DeliveryChannel):
    """Log-only channel used when VAPID keys are not configured."""

    def __init__(self):
        self.sent_notifications: Deque[Dict] = collections.deque(maxlen=RECENT_HISTORY)

    async def send(self, sub: Subscription, payload: NotificationPayload) -> DeliveryResult:
        logger.info("[NOTIFY] To %s... (%s): %s | %s",
                    sub.endpoint[:30], payload.kind, payload.title, payload.body.replace("\n", " / "))
        self.sent_notifications.append({"endpoint": sub.endpoint, "payload": payload.model_dump()})
        return DeliveryResult.DELIVERED

    def recent_notifications(self):
        """Return the last 20 notifications."""
        return list(self.sent_notifications)
