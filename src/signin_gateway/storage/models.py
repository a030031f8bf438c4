"""
Local Storage Models for the Sign-in Gateway
=============================================
Tables kept on the kiosk itself.

Tables:
- pending_checkins: submissions awaiting confirmed delivery to the record API
- cached_assets: static responses, scoped by versioned cache namespace
- sync_intents: registered deferred-retry tags
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import Column, String, Integer, DateTime, Text, LargeBinary, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PendingCheckin(Base):
    """
    Durable queue rows.
    Rows are inserted and deleted, never updated.
    """
    __tablename__ = 'pending_checkins'
    # AUTOINCREMENT: ids strictly increase and are never reused after deletes
    __table_args__ = {'sqlite_autoincrement': True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    payload = Column(Text, nullable=False)  # JSON object, opaque to the queue
    queued_at = Column(DateTime, default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<PendingCheckin(id={self.id})>"


class CachedAsset(Base):
    """A previously fetched response, keyed by (namespace, url)."""
    __tablename__ = 'cached_assets'
    __table_args__ = (UniqueConstraint('namespace', 'url', name='uq_cached_asset'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    namespace = Column(String(100), nullable=False, index=True)
    url = Column(String(2000), nullable=False)
    status = Column(Integer, nullable=False, default=200)
    content_type = Column(String(200), nullable=True)
    body = Column(LargeBinary, nullable=False)
    stored_at = Column(DateTime, default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<CachedAsset(namespace={self.namespace}, url={self.url})>"


class SyncIntent(Base):
    """A registered deferred-retry tag; present means 'flush when signalled'."""
    __tablename__ = 'sync_intents'

    tag = Column(String(100), primary_key=True)
    registered_at = Column(DateTime, default=_utcnow, nullable=False)


@dataclass(frozen=True)
class QueueEntry:
    """One pending submission as handed to the sync engine."""
    id: int
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: PendingCheckin) -> "QueueEntry":
        return cls(id=row.id, payload=json.loads(row.payload))
