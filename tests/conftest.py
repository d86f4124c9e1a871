"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator
from pathlib import Path

import logfire
import pytest

from kitchenops.core import db_client
from kitchenops.core.config import settings
from kitchenops.domain.actor import Actor, Role


@pytest.fixture(scope="session", autouse=True)
def configure_test_logfire() -> None:
    """Keep spans local during tests."""
    logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
async def db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AsyncGenerator[Path]:
    """Point the store at a fresh SQLite file with the full schema."""
    db_path = tmp_path / "kitchenops_test.db"
    monkeypatch.setattr(settings, "sqlite_db_path", str(db_path))
    monkeypatch.setattr(settings, "planner_sync_url", None)

    await db_client.init_db()
    yield db_path
    await db_client.close_connection()


@pytest.fixture
def admin() -> Actor:
    return Actor(actor_id="admin-1", role=Role.ADMIN)


@pytest.fixture
def manager() -> Actor:
    return Actor(actor_id="manager-1", role=Role.MANAGER)


@pytest.fixture
def chef() -> Actor:
    return Actor(actor_id="chef-1", role=Role.CHEF)


@pytest.fixture
def other_chef() -> Actor:
    return Actor(actor_id="chef-2", role=Role.CHEF)
