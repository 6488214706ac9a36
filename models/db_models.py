"""
SQLAlchemy ORM models.

Purpose:
- Define the push_subscriptions table (one row per push endpoint)
- Use SQLAlchemy async-compatible models
- Tables are created on startup or via create_db_schema.py

Production notes:
- location and owner_id are indexed for targeted fan-out (per city / per user)
- Timestamps are stored as UTC; SQLite drops the tz, services re-attach it on read
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from core.db import Base
from core.timeutils import utcnow

class PushSubscription(Base):
    """
    Represents one Web Push subscription bound to a location.

    Columns:
    - endpoint: push service URL, business key (unique)
    - transport_keys: JSON credential bundle (p256dh, auth), opaque to the service
    - location: normalized "City,Region,Country"
    - owner_id: optional user/device correlation id
    - created_at: first registration
    - last_notified: last successful delivery cycle, NULL if never notified
    - next_notification_time: next even local hour at which the subscription is due
    """
    __tablename__ = "push_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    endpoint = Column(String(1024), unique=True, index=True, nullable=False)
    transport_keys = Column(JSON, nullable=False)
    location = Column(String(255), index=True, nullable=False)
    owner_id = Column(String(100), index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_notified = Column(DateTime(timezone=True), nullable=True)
    next_notification_time = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
