"""Database package for feedrelay."""

from feedrelay.db.base import Base
from feedrelay.db.manager import ConnectionState, DatabaseManager
from feedrelay.db.models import GeneralStatRow, PatronRow, ProfileRow, SupporterRow
from feedrelay.db.repositories import (
    PatronRepository,
    ProfileRepository,
    SupporterRepository,
    UsageStatsRepository,
)

__all__ = [
    "Base",
    "ConnectionState",
    "DatabaseManager",
    "GeneralStatRow",
    "PatronRepository",
    "PatronRow",
    "ProfileRepository",
    "ProfileRow",
    "SupporterRepository",
    "SupporterRow",
    "UsageStatsRepository",
]
