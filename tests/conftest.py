"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import Generator

import pytest

from fakes import FakeDirectory, FakeTransport, RecordingSender
from feedrelay.config import Settings
from feedrelay.db.manager import DatabaseManager
from feedrelay.db.repositories import (
    PatronRepository,
    ProfileRepository,
    SupporterRepository,
    UsageStatsRepository,
)


@pytest.fixture
def temp_db_path() -> Generator[str, None, None]:
    """Create a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield db_path
    # Cleanup
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(db_path + suffix)
        except OSError:
            pass


@pytest.fixture
def db_manager(temp_db_path: str) -> Generator[DatabaseManager, None, None]:
    """Create a DatabaseManager with a temporary database."""
    manager = DatabaseManager(database_url=f"sqlite:///{temp_db_path}")
    manager.init_db()
    yield manager
    manager.close()


@pytest.fixture
def settings(temp_db_path: str) -> Settings:
    """Settings for a test shard with a small article budget."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{temp_db_path}",
        article_rate_limit=5,
        refresh_rate_minutes=10,
        max_feeds=5,
        supporters_enabled=True,
        exit_on_socket_issues=False,
        bot_status="online",
        bot_activity_type="WATCHING",
        bot_activity_name="feeds",
    )


@pytest.fixture
def profiles(db_manager: DatabaseManager) -> ProfileRepository:
    return ProfileRepository(db_manager)


@pytest.fixture
def supporters(db_manager: DatabaseManager) -> SupporterRepository:
    return SupporterRepository(db_manager)


@pytest.fixture
def patrons(db_manager: DatabaseManager) -> PatronRepository:
    return PatronRepository(db_manager)


@pytest.fixture
def stats(db_manager: DatabaseManager) -> UsageStatsRepository:
    return UsageStatsRepository(db_manager)


@pytest.fixture
def transport() -> FakeTransport:
    """Shard with guild g1 (channels c1, c2) and guild g2 (channel c3)."""
    return FakeTransport(shard_id=0, guilds={"g1": ["c1", "c2"], "g2": ["c3"]})


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()
