"""Registered deferred-retry tags, shared by the gateway and the sync worker."""

import logging
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert

from .models import PendingCheckin, SyncIntent
from .store import LocalStore

logger = logging.getLogger(__name__)


class SyncIntentStore:

    def __init__(self, store: LocalStore):
        self.store = store

    def register(self, tag: str):
        """Register a tag; registering twice, from either process, keeps a single intent."""
        stmt = insert(SyncIntent).values(tag=tag).on_conflict_do_nothing(
            index_elements=[SyncIntent.tag]
        )
        with self.store.get_session() as session:
            result = session.connection().execute(stmt)
            session.commit()
        if result.rowcount:
            logger.debug(f"[SYNC] Registered intent '{tag}'")

    def is_registered(self, tag: str) -> bool:
        with self.store.get_session() as session:
            return session.get(SyncIntent, tag) is not None

    def clear_if_drained(self, tag: str) -> bool:
        """
        Drop the intent only while the check-in queue is empty.

        The emptiness check and the delete are one statement, so a check-in
        queued by the gateway at the same moment keeps its intent.

        Returns:
            True if the intent was removed
        """
        stmt = delete(SyncIntent).where(
            SyncIntent.tag == tag,
            ~select(PendingCheckin.id).exists()
        )
        with self.store.get_session() as session:
            result = session.connection().execute(stmt)
            session.commit()
        return bool(result.rowcount)

    def tags(self) -> List[str]:
        with self.store.get_session() as session:
            return [row.tag for row in session.query(SyncIntent).order_by(SyncIntent.registered_at).all()]
