"""
Durable check-in queue.

Submissions are written here before any delivery attempt, and removed only
by the sync engine after the record API confirms them. The queue is shared
between the foreground gateway and the background sync worker, so every
operation touches a single row in its own transaction and removal of an
already-removed id is not an error.
"""

import json
import logging
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError

from .models import PendingCheckin, QueueEntry
from .store import LocalStore, StorageError

logger = logging.getLogger(__name__)


class QueueWriteError(StorageError):
    """A submission could not be persisted."""


class CheckinQueue:
    """Insertion-ordered store of pending submissions."""

    def __init__(self, store: LocalStore):
        self.store = store

    def enqueue(self, payload: Dict[str, Any]) -> int:
        """
        Persist a submission and return its id.

        Raises:
            StorageUnavailableError: if the store cannot be opened
            QueueWriteError: if the row could not be written
        """
        try:
            encoded = json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise QueueWriteError(f"Payload is not JSON serialisable: {e}") from e

        try:
            with self.store.get_session() as session:
                row = PendingCheckin(payload=encoded)
                session.add(row)
                session.commit()
                entry_id = row.id
        except SQLAlchemyError as e:
            raise QueueWriteError(str(e)) from e

        logger.info(f"[QUEUE] Enqueued entry {entry_id}")
        return entry_id

    def list_all(self) -> List[QueueEntry]:
        """All pending entries in insertion order."""
        with self.store.get_session() as session:
            rows = session.query(PendingCheckin).order_by(PendingCheckin.id).all()
            return [QueueEntry.from_row(row) for row in rows]

    def remove(self, entry_id: int):
        """Delete one entry; an id that is already gone is a no-op."""
        with self.store.get_session() as session:
            deleted = session.query(PendingCheckin).filter_by(id=entry_id).delete()
            session.commit()

        if deleted:
            logger.debug(f"[QUEUE] Removed entry {entry_id}")
        else:
            logger.debug(f"[QUEUE] Entry {entry_id} already removed")

    def count(self) -> int:
        with self.store.get_session() as session:
            return session.query(PendingCheckin).count()
