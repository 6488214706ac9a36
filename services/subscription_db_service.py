"""
DB-backed subscription repository using async SQLAlchemy.

- upsert              -> SELECT by endpoint, then INSERT or UPDATE in one transaction
- delete_by_endpoint  -> DELETE
- list_all            -> SELECT * (full scan once per cycle)
- find_by_location / find_by_owner -> SELECT on the indexed columns

Every SQLAlchemy fault is rolled back and re-raised as StorageError so callers
never observe a partial write.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.errors import StorageError
from core.timeutils import as_utc
from models.db_models import PushSubscription
from models.subscription import Location, Subscription, TransportKeys
from services.subscription_service import SubscriptionRepository
import logging

logger = logging.getLogger(__name__)


class SubscriptionDBService(SubscriptionRepository):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def upsert(self, sub: Subscription) -> Subscription:
        try:
            await self._upsert_once(sub)
        except IntegrityError:
            # A concurrent registration inserted the same endpoint first; replace it
            logger.info("Concurrent insert for %s..., retrying as update", sub.endpoint[:30])
            try:
                await self._upsert_once(sub)
            except SQLAlchemyError as e:
                logger.error("DB upsert error: %s", e)
                raise StorageError("failed to store subscription") from e
        except SQLAlchemyError as e:
            logger.error("DB upsert error: %s", e)
            raise StorageError("failed to store subscription") from e
        return sub

    async def _upsert_once(self, sub: Subscription) -> None:
        async with self.session_maker() as session:
            try:
                row = await self._get_row(session, sub.endpoint)
                if row is None:
                    row = PushSubscription(endpoint=sub.endpoint)
                    session.add(row)
                row.transport_keys = sub.keys.model_dump()
                row.location = str(sub.location)
                row.owner_id = sub.owner_id
                row.created_at = sub.created_at
                row.last_notified = sub.last_notified
                row.next_notification_time = sub.next_notification_time
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                raise

    async def delete_by_endpoint(self, endpoint: str) -> bool:
        """Hard delete so the row disappears from the table."""
        async with self.session_maker() as session:
            try:
                result = await session.execute(
                    delete(PushSubscription).where(PushSubscription.endpoint == endpoint)
                )
                await session.commit()
                return (result.rowcount or 0) > 0
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("DB delete_by_endpoint error: %s", e)
                raise StorageError("failed to delete subscription") from e

    async def find_by_endpoint(self, endpoint: str) -> Optional[Subscription]:
        async with self.session_maker() as session:
            try:
                row = await self._get_row(session, endpoint)
            except SQLAlchemyError as e:
                logger.error("DB find_by_endpoint error: %s", e)
                raise StorageError("failed to read subscription") from e
            return self._to_model(row) if row else None

    async def list_all(self) -> List[Subscription]:
        return await self._select(select(PushSubscription).order_by(PushSubscription.id))

    async def find_by_location(self, location: Location) -> List[Subscription]:
        return await self._select(
            select(PushSubscription).where(PushSubscription.location == str(location))
        )

    async def find_by_owner(self, owner_id: str) -> List[Subscription]:
        return await self._select(
            select(PushSubscription).where(PushSubscription.owner_id == owner_id)
        )

    async def mark_notified(self, endpoint: str, last_notified: datetime,
                            next_notification_time: datetime) -> bool:
        async with self.session_maker() as session:
            try:
                result = await session.execute(
                    update(PushSubscription)
                    .where(PushSubscription.endpoint == endpoint)
                    .values(last_notified=last_notified,
                            next_notification_time=next_notification_time)
                )
                await session.commit()
                return (result.rowcount or 0) > 0
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("DB mark_notified error: %s", e)
                raise StorageError("failed to update subscription") from e

    async def count(self) -> int:
        async with self.session_maker() as session:
            try:
                result = await session.execute(select(func.count(PushSubscription.id)))
                return int(result.scalar_one())
            except SQLAlchemyError as e:
                logger.error("DB count error: %s", e)
                raise StorageError("failed to count subscriptions") from e

    async def _select(self, stmt) -> List[Subscription]:
        async with self.session_maker() as session:
            try:
                result = await session.execute(stmt)
                rows = result.scalars().all()
            except SQLAlchemyError as e:
                logger.error("DB select error: %s", e)
                raise StorageError("failed to list subscriptions") from e
            return [self._to_model(r) for r in rows]

    @staticmethod
    async def _get_row(session: AsyncSession, endpoint: str) -> Optional[PushSubscription]:
        result = await session.execute(
            select(PushSubscription).where(PushSubscription.endpoint == endpoint)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _to_model(row: PushSubscription) -> Subscription:
        """Convert ORM row to the pydantic Subscription model."""
        return Subscription(
            endpoint=row.endpoint,
            keys=TransportKeys(**(row.transport_keys or {})),
            location=Location.parse(row.location),
            owner_id=row.owner_id,
            created_at=as_utc(row.created_at),
            last_notified=as_utc(row.last_notified) if row.last_notified else None,
            next_notification_time=as_utc(row.next_notification_time),
        )
