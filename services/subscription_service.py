"""
Subscription repository contract and in-memory implementation.

Both implementations are keyed by the push endpoint:
- upsert              -> insert or fully replace by endpoint
- delete_by_endpoint  -> True if a record was removed
- list_all            -> snapshot used once per scheduler cycle
- find_by_location / find_by_owner -> served from maintained indexes

The in-memory store is used for development (DATABASE_URL=memory) and tests.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Set

from models.subscription import Location, Subscription

logger = logging.getLogger(__name__)


class SubscriptionRepository(ABC):
    @abstractmethod
    async def upsert(self, sub: Subscription) -> Subscription: ...

    @abstractmethod
    async def delete_by_endpoint(self, endpoint: str) -> bool: ...

    @abstractmethod
    async def find_by_endpoint(self, endpoint: str) -> Optional[Subscription]: ...

    @abstractmethod
    async def list_all(self) -> List[Subscription]: ...

    @abstractmethod
    async def find_by_location(self, location: Location) -> List[Subscription]: ...

    @abstractmethod
    async def find_by_owner(self, owner_id: str) -> List[Subscription]: ...

    @abstractmethod
    async def mark_notified(self, endpoint: str, last_notified: datetime,
                            next_notification_time: datetime) -> bool:
        """Update delivery bookkeeping; never recreates a deleted subscription."""

    @abstractmethod
    async def count(self) -> int: ...


class InMemorySubscriptionRepository(SubscriptionRepository):
    def __init__(self):
        self.subscriptions: Dict[str, Subscription] = {}
        self._by_location: Dict[str, Set[str]] = {}
        self._by_owner: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()

    async def upsert(self, sub: Subscription) -> Subscription:
        stored = sub.model_copy(deep=True)
        async with self._lock:
            previous = self.subscriptions.get(stored.endpoint)
            if previous is not None:
                self._unindex(previous)
                logger.info("Replacing subscription %s...", stored.endpoint[:30])
            self.subscriptions[stored.endpoint] = stored
            self._index(stored)
        return stored.model_copy(deep=True)

    async def delete_by_endpoint(self, endpoint: str) -> bool:
        async with self._lock:
            sub = self.subscriptions.pop(endpoint, None)
            if sub is None:
                return False
            self._unindex(sub)
            return True

    async def find_by_endpoint(self, endpoint: str) -> Optional[Subscription]:
        sub = self.subscriptions.get(endpoint)
        return sub.model_copy(deep=True) if sub else None

    async def list_all(self) -> List[Subscription]:
        async with self._lock:
            snapshot = list(self.subscriptions.values())
        return [s.model_copy(deep=True) for s in snapshot]

    async def find_by_location(self, location: Location) -> List[Subscription]:
        return self._lookup(self._by_location.get(str(location), set()))

    async def find_by_owner(self, owner_id: str) -> List[Subscription]:
        return self._lookup(self._by_owner.get(owner_id, set()))

    async def mark_notified(self, endpoint: str, last_notified: datetime,
                            next_notification_time: datetime) -> bool:
        async with self._lock:
            sub = self.subscriptions.get(endpoint)
            if sub is None:
                return False
            self.subscriptions[endpoint] = sub.model_copy(update={
                "last_notified": last_notified,
                "next_notification_time": next_notification_time,
            })
            return True

    async def count(self) -> int:
        return len(self.subscriptions)

    # --- index maintenance (caller holds the lock) ---

    def _index(self, sub: Subscription) -> None:
        self._by_location.setdefault(str(sub.location), set()).add(sub.endpoint)
        if sub.owner_id:
            self._by_owner.setdefault(sub.owner_id, set()).add(sub.endpoint)

    def _unindex(self, sub: Subscription) -> None:
        _discard(self._by_location, str(sub.location), sub.endpoint)
        if sub.owner_id:
            _discard(self._by_owner, sub.owner_id, sub.endpoint)

    def _lookup(self, endpoints: Set[str]) -> List[Subscription]:
        return [self.subscriptions[e].model_copy(deep=True)
                for e in sorted(endpoints) if e in self.subscriptions]


def _discard(index: Dict[str, Set[str]], key: str, endpoint: str) -> None:
    members = index.get(key)
    if members is None:
        return
    members.discard(endpoint)
    if not members:
        del index[key]
