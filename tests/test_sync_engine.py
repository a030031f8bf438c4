"""Tests for the sync engine and its triggers."""
from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from signin_gateway.backend_client import DeliveryOutcome, DeliveryStatus
from signin_gateway.storage import CheckinQueue, LocalStore, SyncIntentStore
from signin_gateway.sync_engine import (
    SYNC_TAG, BackgroundSync, ConnectivityMonitor, SyncEngine
)

DELIVERED = DeliveryOutcome(DeliveryStatus.DELIVERED, body={"ok": True})
OFFLINE = DeliveryOutcome(DeliveryStatus.TRANSPORT_FAILED, error="Connection refused")


def by_name(**outcomes):
    return lambda payload: outcomes[payload["firstName"]]


class TestFlush:

    @pytest.mark.asyncio
    async def test_empty_queue_makes_no_calls(self, queue, client):
        report = await SyncEngine(queue, client).flush()
        assert report.attempted == 0
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_delivered_entry_is_removed(self, queue, client):
        queue.enqueue({"firstName": "Ana", "lastName": "Lee", "date": "2024-05-01", "class": "Kids"})
        assert [e.id for e in queue.list_all()] == [1]

        report = await SyncEngine(queue, client).flush()

        assert report.delivered == [1]
        assert queue.list_all() == []

    @pytest.mark.asyncio
    async def test_transport_failure_does_not_block_others(self, queue, make_client):
        client = make_client(by_name(Stuck=OFFLINE, Ana=DELIVERED))
        stuck = queue.enqueue({"firstName": "Stuck"})
        ana = queue.enqueue({"firstName": "Ana"})

        report = await SyncEngine(queue, client).flush()

        assert report.retained == [stuck]
        assert report.delivered == [ana]
        assert [e.id for e in queue.list_all()] == [stuck]

    @pytest.mark.asyncio
    async def test_error_field_keeps_entry(self, queue, make_client):
        rejected = DeliveryOutcome(DeliveryStatus.REJECTED, body={"error": "bad request"}, error="bad request")
        client = make_client(lambda payload: rejected)
        entry_id = queue.enqueue({"firstName": "Ana"})

        report = await SyncEngine(queue, client).flush()

        assert report.retained == [entry_id]
        assert [e.id for e in queue.list_all()] == [entry_id]

    @pytest.mark.asyncio
    async def test_unexpected_client_exception_is_absorbed(self, queue, make_client):
        def explode(payload):
            raise RuntimeError("boom")

        client = make_client(explode)
        entry_id = queue.enqueue({"firstName": "Ana"})

        report = await SyncEngine(queue, client).flush()

        assert report.retained == [entry_id]
        assert queue.count() == 1

    @pytest.mark.asyncio
    async def test_storage_unavailable_is_a_noop(self, tmp_path: Path, client):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        queue = CheckinQueue(LocalStore(blocker / "sub" / "gateway.db"))

        report = await SyncEngine(queue, client).flush()

        assert report.attempted == 0
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_entries_submitted_one_at_a_time(self, queue, client):
        in_flight = 0
        peak = 0
        original = client.submit

        async def tracking_submit(payload):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                return await original(payload)
            finally:
                in_flight -= 1

        client.submit = tracking_submit
        for i in range(3):
            queue.enqueue({"firstName": f"S{i}"})

        await SyncEngine(queue, client).flush()

        assert peak == 1
        assert len(client.calls) == 3

    @pytest.mark.asyncio
    async def test_overlapping_flushes_delete_once(self, db_path: Path, client):
        """Foreground and background flush the same entry concurrently."""
        foreground_store = LocalStore(db_path)
        background_store = LocalStore(db_path)
        CheckinQueue(foreground_store).enqueue({"firstName": "Ana"})

        foreground = SyncEngine(CheckinQueue(foreground_store), client)
        background = SyncEngine(CheckinQueue(background_store), client)

        reports = await asyncio.gather(foreground.flush(), background.flush())

        assert 1 <= len(client.calls) <= 2
        assert all(r.retained == [] for r in reports)
        assert CheckinQueue(foreground_store).list_all() == []

        foreground_store.close()
        background_store.close()


class TestBackgroundSync:

    @pytest.mark.asyncio
    async def test_unregistered_tag_does_nothing(self, store, queue, client):
        queue.enqueue({"firstName": "Ana"})
        background = BackgroundSync(SyncEngine(queue, client), SyncIntentStore(store))

        assert await background.handle_signal(SYNC_TAG) is None
        assert client.calls == []
        assert queue.count() == 1

    @pytest.mark.asyncio
    async def test_signal_flushes_and_clears_intent(self, store, queue, client):
        queue.enqueue({"firstName": "Ana"})
        intents = SyncIntentStore(store)
        background = BackgroundSync(SyncEngine(queue, client), intents)
        background.register()
        background.register()

        report = await background.handle_signal(SYNC_TAG)

        assert report.delivered == [1]
        assert queue.count() == 0
        assert intents.tags() == []

    @pytest.mark.asyncio
    async def test_intent_kept_while_entries_remain(self, store, queue, make_client):
        queue.enqueue({"firstName": "Ana"})
        intents = SyncIntentStore(store)
        background = BackgroundSync(SyncEngine(queue, make_client(lambda p: OFFLINE)), intents)
        background.register()

        report = await background.handle_signal(SYNC_TAG)

        assert report.retained == [1]
        assert intents.is_registered(SYNC_TAG)

    @pytest.mark.asyncio
    async def test_checkin_during_signal_keeps_intent(self, db_path: Path, client):
        """The gateway queues a check-in right after the worker's flush drained the queue."""
        worker_store = LocalStore(db_path)
        gateway_store = LocalStore(db_path)
        worker_queue = CheckinQueue(worker_store)
        worker_queue.enqueue({"firstName": "Ana"})

        engine = SyncEngine(worker_queue, client)
        background = BackgroundSync(engine, SyncIntentStore(worker_store))
        background.register()
        gateway = BackgroundSync(SyncEngine(CheckinQueue(gateway_store), client), SyncIntentStore(gateway_store))
        drain = engine.flush

        async def flush_then_checkin():
            report = await drain()
            gateway.engine.queue.enqueue({"firstName": "Bo"})
            gateway.register()
            return report

        engine.flush = flush_then_checkin
        report = await background.handle_signal(SYNC_TAG)

        assert report.delivered == [1]
        assert worker_queue.count() == 1
        assert background.intents.is_registered(SYNC_TAG)

        worker_store.close()
        gateway_store.close()

    def test_clear_if_drained(self, store, queue):
        intents = SyncIntentStore(store)
        intents.register(SYNC_TAG)
        entry_id = queue.enqueue({"firstName": "Ana"})

        assert intents.clear_if_drained(SYNC_TAG) is False
        assert intents.is_registered(SYNC_TAG)

        queue.remove(entry_id)
        assert intents.clear_if_drained(SYNC_TAG) is True
        assert intents.tags() == []

    def test_register_from_two_stores(self, db_path: Path):
        first = LocalStore(db_path)
        second = LocalStore(db_path)

        SyncIntentStore(first).register(SYNC_TAG)
        SyncIntentStore(second).register(SYNC_TAG)

        assert SyncIntentStore(first).tags() == [SYNC_TAG]
        first.close()
        second.close()


class TestConnectivityMonitor:

    @pytest.mark.asyncio
    async def test_flushes_on_transition_to_online(self):
        states = iter([False, True, True, False, True])
        flushes = []

        async def ping():
            return next(states)

        async def on_online():
            flushes.append(1)

        monitor = ConnectivityMonitor(ping, on_online, interval_seconds=60)
        results = [await monitor.check() for _ in range(5)]

        assert results == [False, True, True, False, True]
        assert len(flushes) == 2

    @pytest.mark.asyncio
    async def test_first_online_check_flushes(self):
        flushes = []

        async def ping():
            return True

        async def on_online():
            flushes.append(1)

        monitor = ConnectivityMonitor(ping, on_online)
        await monitor.check()
        assert flushes == [1]
