"""
Sync Engine for the Sign-in Gateway
====================================
Drains the durable check-in queue into the record API.

Flow:
1. Snapshot the queue
2. Submit each entry once, one at a time
3. Delete an entry only after a DELIVERED outcome
4. Leave everything else queued for the next trigger

Triggers:
- Foreground: connectivity restored or kiosk page visible again
- Background: a registered deferred-retry intent is signalled

Delivery is at-least-once. Two overlapping flushes may both submit the
same entry; the record API accepts duplicate check-ins and the second
delete is a no-op.
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Protocol, Dict, Any

import tornado.ioloop

from .backend_client import DeliveryOutcome
from .storage import CheckinQueue, StorageError, SyncIntentStore

logger = logging.getLogger(__name__)

SYNC_TAG = "checkin-sync"


class Submitter(Protocol):
    async def submit(self, payload: Dict[str, Any]) -> DeliveryOutcome: ...


@dataclass
class FlushReport:
    """What one flush did to the queue."""
    attempted: int = 0
    delivered: List[int] = field(default_factory=list)
    retained: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "delivered": list(self.delivered),
            "retained": list(self.retained)
        }


class SyncEngine:
    """
    Delivers queued submissions to the record API.

    Usage:
        engine = SyncEngine(CheckinQueue(store), RecordApiClient(url, token))
        report = await engine.flush()
    """

    def __init__(self, queue: CheckinQueue, client: Submitter):
        self.queue = queue
        self.client = client

    async def flush(self) -> FlushReport:
        """
        Attempt delivery of every entry currently queued.

        Never raises. Storage that cannot be opened counts as an empty queue,
        and a failure on one entry only keeps that entry queued.
        """
        report = FlushReport()

        try:
            entries = self.queue.list_all()
        except StorageError as e:
            logger.warning(f"[SYNC] Queue unavailable, nothing to flush: {e}")
            return report

        if not entries:
            return report

        logger.info(f"[SYNC] Flushing {len(entries)} queued entries")

        for entry in entries:
            report.attempted += 1
            try:
                outcome = await self.client.submit(entry.payload)
            except Exception as e:
                logger.error(f"[SYNC] Entry {entry.id}: submit failed unexpectedly: {e}", exc_info=True)
                report.retained.append(entry.id)
                continue

            if not outcome.delivered:
                logger.info(f"[SYNC] Entry {entry.id} kept ({outcome.status.value}: {outcome.error})")
                report.retained.append(entry.id)
                continue

            try:
                self.queue.remove(entry.id)
            except StorageError as e:
                logger.warning(f"[SYNC] Entry {entry.id} delivered but not removed: {e}")
                report.retained.append(entry.id)
                continue

            report.delivered.append(entry.id)

        logger.info(
            f"[SYNC] Flush complete: {len(report.delivered)} delivered, "
            f"{len(report.retained)} still queued"
        )
        return report


class BackgroundSync:
    """
    Deferred-retry intents.

    Submitting a check-in registers an intent. When the platform signals the
    tag (the sync worker does so once the record API is reachable), the queue
    is flushed whether or not the kiosk page is open. The intent is cleared
    once the queue is empty.
    """

    def __init__(self, engine: SyncEngine, intents: SyncIntentStore):
        self.engine = engine
        self.intents = intents

    def register(self, tag: str = SYNC_TAG):
        self.intents.register(tag)

    def pending_tags(self) -> List[str]:
        try:
            return self.intents.tags()
        except StorageError as e:
            logger.warning(f"[SYNC] Intents unavailable: {e}")
            return []

    async def handle_signal(self, tag: str = SYNC_TAG) -> Optional[FlushReport]:
        """Flush if the tag is registered; returns None when it is not."""
        try:
            if not self.intents.is_registered(tag):
                return None
        except StorageError as e:
            logger.warning(f"[SYNC] Intents unavailable: {e}")
            return None

        logger.info(f"[SYNC] Deferred retry '{tag}' signalled")
        report = await self.engine.flush()

        try:
            if self.intents.clear_if_drained(tag):
                logger.info(f"[SYNC] Queue drained, intent '{tag}' cleared")
        except StorageError as e:
            logger.warning(f"[SYNC] Could not update intent '{tag}': {e}")

        return report


class ConnectivityMonitor:
    """
    Polls the record API and fires a callback when it becomes reachable.

    The first successful check after startup counts as a transition, so a
    kiosk that boots online drains whatever it queued before shutdown.
    """

    def __init__(
        self,
        ping: Callable[[], Awaitable[bool]],
        on_online: Callable[[], Awaitable[Any]],
        interval_seconds: float = 30
    ):
        self.ping = ping
        self.on_online = on_online
        self.interval_seconds = interval_seconds
        self.online: Optional[bool] = None
        self._callback: Optional[tornado.ioloop.PeriodicCallback] = None

    async def check(self) -> bool:
        online = await self.ping()
        was_online = self.online
        self.online = online

        if online and not was_online:
            logger.info("[SYNC] Record API reachable")
            await self.on_online()
        elif not online and was_online is not False:
            logger.warning("[SYNC] Record API unreachable - check-ins will be queued")
        return online

    def start(self):
        self._callback = tornado.ioloop.PeriodicCallback(
            self.check, self.interval_seconds * 1000
        )
        self._callback.start()
        tornado.ioloop.IOLoop.current().add_callback(self.check)

    def stop(self):
        if self._callback:
            self._callback.stop()
            self._callback = None
