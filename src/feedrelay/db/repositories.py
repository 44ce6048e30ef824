"""Repositories translating between table rows and immutable records."""

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from feedrelay.db.manager import DatabaseManager
from feedrelay.db.models import GeneralStatRow, PatronRow, ProfileRow, SupporterRow
from feedrelay.records import (
    PatronRecord,
    PatronStatus,
    SupporterRecord,
    TenantProfile,
    UsageStat,
    UsageStatType,
)

logger = logging.getLogger(__name__)


def _aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; stored datetimes are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ProfileRepository:
    """CRUD for guild profiles."""

    def __init__(self, db_manager: DatabaseManager) -> None:
        self._db = db_manager

    @staticmethod
    def _to_record(row: ProfileRow) -> TenantProfile:
        return TenantProfile(
            guild_id=row.guild_id,
            name=row.name,
            alert=tuple(row.alert or ()),
            prefix=row.prefix,
            locale=row.locale,
        )

    def get(self, guild_id: str) -> TenantProfile | None:
        with self._db.get_session() as session:
            row = session.get(ProfileRow, guild_id)
            return self._to_record(row) if row else None

    def get_all(self) -> list[TenantProfile]:
        with self._db.get_session() as session:
            rows = session.scalars(select(ProfileRow).order_by(ProfileRow.guild_id)).all()
            return [self._to_record(row) for row in rows]

    def save(self, profile: TenantProfile) -> TenantProfile:
        with self._db.get_session() as session:
            row = session.get(ProfileRow, profile.guild_id)
            if row is None:
                row = ProfileRow(guild_id=profile.guild_id)
                session.add(row)
            row.name = profile.name
            row.alert = list(profile.alert)
            row.prefix = profile.prefix
            row.locale = profile.locale
        return profile

    def delete(self, guild_id: str) -> bool:
        with self._db.get_session() as session:
            row = session.get(ProfileRow, guild_id)
            if row is None:
                return False
            session.delete(row)
            return True


class SupporterRepository:
    """CRUD for supporter records."""

    def __init__(self, db_manager: DatabaseManager) -> None:
        self._db = db_manager

    @staticmethod
    def _to_record(row: SupporterRow) -> SupporterRecord:
        return SupporterRecord(
            id=row.id,
            patron=row.patron,
            webhook=row.webhook,
            max_guilds=row.max_guilds,
            max_feeds=row.max_feeds,
            guilds=tuple(row.guilds or ()),
            expire_at=_aware(row.expire_at),
            comment=row.comment,
            slow_rate=row.slow_rate,
        )

    def get(self, supporter_id: str) -> SupporterRecord | None:
        with self._db.get_session() as session:
            row = session.get(SupporterRow, supporter_id)
            return self._to_record(row) if row else None

    def get_all(self) -> list[SupporterRecord]:
        with self._db.get_session() as session:
            rows = session.scalars(select(SupporterRow).order_by(SupporterRow.id)).all()
            return [self._to_record(row) for row in rows]

    def get_many_by_guild(self, guild_id: str) -> list[SupporterRecord]:
        """Supporters whose covered guild list contains ``guild_id``."""
        return [s for s in self.get_all() if guild_id in s.guilds]

    def save(self, supporter: SupporterRecord) -> SupporterRecord:
        with self._db.get_session() as session:
            row = session.get(SupporterRow, supporter.id)
            if row is None:
                row = SupporterRow(id=supporter.id)
                session.add(row)
            row.patron = supporter.patron
            row.webhook = supporter.webhook
            row.max_guilds = supporter.max_guilds
            row.max_feeds = supporter.max_feeds
            row.guilds = list(supporter.guilds)
            row.expire_at = supporter.expire_at
            row.comment = supporter.comment
            row.slow_rate = supporter.slow_rate
        return supporter

    def delete(self, supporter_id: str) -> bool:
        with self._db.get_session() as session:
            row = session.get(SupporterRow, supporter_id)
            if row is None:
                return False
            session.delete(row)
            return True


class PatronRepository:
    """CRUD for patron pledge records."""

    def __init__(self, db_manager: DatabaseManager) -> None:
        self._db = db_manager

    @staticmethod
    def _to_record(row: PatronRow) -> PatronRecord:
        return PatronRecord(
            id=row.id,
            status=PatronStatus(row.status),
            pledge=row.pledge,
            pledge_lifetime=row.pledge_lifetime,
            last_charge=_aware(row.last_charge),
            discord=row.discord,
            name=row.name,
            email=row.email,
        )

    def get_all(self) -> list[PatronRecord]:
        with self._db.get_session() as session:
            rows = session.scalars(select(PatronRow).order_by(PatronRow.id)).all()
            return [self._to_record(row) for row in rows]

    def get_many_by_discord(self, discord_id: str) -> list[PatronRecord]:
        with self._db.get_session() as session:
            rows = session.scalars(
                select(PatronRow).where(PatronRow.discord == discord_id).order_by(PatronRow.id)
            ).all()
            return [self._to_record(row) for row in rows]

    def save(self, patron: PatronRecord) -> PatronRecord:
        with self._db.get_session() as session:
            row = session.get(PatronRow, patron.id)
            if row is None:
                row = PatronRow(id=patron.id)
                session.add(row)
            row.status = patron.status.value
            row.pledge = patron.pledge
            row.pledge_lifetime = patron.pledge_lifetime
            row.last_charge = patron.last_charge
            row.discord = patron.discord
            row.name = patron.name
            row.email = patron.email
        return patron


class UsageStatsRepository:
    """Running totals for the process-wide usage counters."""

    def __init__(self, db_manager: DatabaseManager) -> None:
        self._db = db_manager

    def get(self, stat_type: UsageStatType) -> UsageStat | None:
        with self._db.get_session() as session:
            row = session.get(GeneralStatRow, stat_type.value)
            if row is None:
                return None
            return UsageStat(id=stat_type, data=row.data, added_at=_aware(row.created_at))

    def increment(self, stat_type: UsageStatType, amount: int) -> int:
        """
        Add ``amount`` to a stat, creating it on first use.

        Returns:
            The new running total
        """
        with self._db.get_session() as session:
            row = session.get(GeneralStatRow, stat_type.value)
            if row is None:
                row = GeneralStatRow(id=stat_type.value, data=amount)
                session.add(row)
            else:
                row.data = row.data + amount
            total = row.data
        logger.debug(f"Stat {stat_type.value} incremented by {amount} to {total}")
        return total
