"""Shared pytest fixtures."""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List

import pytest

from club_backend.database import DatabaseManager, RecordService
from signin_gateway.backend_client import DeliveryOutcome, DeliveryStatus
from signin_gateway.storage import CheckinQueue, LocalStore


class ScriptedClient:
    """Record API stand-in: decides each outcome from the submitted payload."""

    def __init__(self, decide: Callable[[Dict[str, Any]], DeliveryOutcome] | None = None):
        self.decide = decide or (lambda payload: DeliveryOutcome(DeliveryStatus.DELIVERED, body={"ok": True}))
        self.calls: List[Dict[str, Any]] = []

    async def submit(self, payload: Dict[str, Any]) -> DeliveryOutcome:
        self.calls.append(dict(payload))
        await asyncio.sleep(0)
        return self.decide(payload)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "gateway.db"


@pytest.fixture
def store(db_path: Path) -> LocalStore:
    store = LocalStore(db_path)
    yield store
    store.close()


@pytest.fixture
def queue(store: LocalStore) -> CheckinQueue:
    return CheckinQueue(store)


@pytest.fixture
def make_client():
    return ScriptedClient


@pytest.fixture
def client() -> ScriptedClient:
    return ScriptedClient()


@pytest.fixture
def db_manager(tmp_path: Path) -> DatabaseManager:
    manager = DatabaseManager(tmp_path / "records.db")
    assert manager.initialize()
    yield manager
    manager.close()


@pytest.fixture
def records(db_manager: DatabaseManager) -> RecordService:
    return RecordService(db_manager)
