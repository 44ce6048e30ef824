"""Tests for the record repositories."""

from datetime import datetime, timedelta, timezone

from feedrelay.db.repositories import (
    PatronRepository,
    ProfileRepository,
    SupporterRepository,
    UsageStatsRepository,
)
from feedrelay.records import (
    PatronRecord,
    PatronStatus,
    SupporterRecord,
    TenantProfile,
    UsageStatType,
)


class TestProfileRepository:
    """Tests for ProfileRepository."""

    def test_save_and_get(self, profiles: ProfileRepository) -> None:
        """Saved profiles come back as equal records."""
        profile = TenantProfile(guild_id="g1", name="Guild", alert=("123", "456"), prefix="!")
        profiles.save(profile)

        assert profiles.get("g1") == profile
        assert profiles.get("missing") is None

    def test_save_overwrites(self, profiles: ProfileRepository) -> None:
        """Saving an existing guild replaces its fields."""
        profiles.save(TenantProfile(guild_id="g1", alert=("123",)))
        profiles.save(TenantProfile(guild_id="g1", alert=()))

        assert profiles.get("g1").alert == ()
        assert len(profiles.get_all()) == 1

    def test_delete(self, profiles: ProfileRepository) -> None:
        profiles.save(TenantProfile(guild_id="g1"))
        assert profiles.delete("g1") is True
        assert profiles.delete("g1") is False
        assert profiles.get_all() == []


class TestSupporterRepository:
    """Tests for SupporterRepository."""

    def test_expiry_is_timezone_aware(self, supporters: SupporterRepository) -> None:
        """Expiry dates survive the round trip as aware UTC datetimes."""
        expire_at = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
        supporters.save(SupporterRecord(id="u1", guilds=("g1",), expire_at=expire_at))

        loaded = supporters.get("u1")
        assert loaded.expire_at == expire_at
        assert loaded.expire_at.tzinfo is not None

    def test_get_many_by_guild(self, supporters: SupporterRepository) -> None:
        """Only supporters covering the guild are returned."""
        supporters.save(SupporterRecord(id="u1", guilds=("g1", "g2")))
        supporters.save(SupporterRecord(id="u2", guilds=("g2",)))
        supporters.save(SupporterRecord(id="u3", guilds=()))

        assert [s.id for s in supporters.get_many_by_guild("g2")] == ["u1", "u2"]
        assert [s.id for s in supporters.get_many_by_guild("g1")] == ["u1"]
        assert supporters.get_many_by_guild("g9") == []

    def test_delete(self, supporters: SupporterRepository) -> None:
        supporters.save(SupporterRecord(id="u1"))
        assert supporters.delete("u1") is True
        assert supporters.get("u1") is None


class TestPatronRepository:
    """Tests for PatronRepository."""

    def test_get_many_by_discord(self, patrons: PatronRepository) -> None:
        """Pledges are looked up by their linked user id."""
        charged = datetime.now(timezone.utc) - timedelta(days=1)
        patrons.save(PatronRecord(id="p1", status=PatronStatus.ACTIVE, pledge=500, discord="u1"))
        patrons.save(
            PatronRecord(id="p2", status=PatronStatus.DECLINED, last_charge=charged, discord="u1")
        )
        patrons.save(PatronRecord(id="p3", status=PatronStatus.ACTIVE, discord="u2"))

        linked = patrons.get_many_by_discord("u1")
        assert [p.id for p in linked] == ["p1", "p2"]
        assert linked[0].status is PatronStatus.ACTIVE
        assert linked[1].last_charge == charged
        assert len(patrons.get_all()) == 3


class TestUsageStatsRepository:
    """Tests for UsageStatsRepository."""

    def test_increment_creates_and_adds(self, stats: UsageStatsRepository) -> None:
        """The first increment creates the aggregate; later ones add to it."""
        assert stats.get(UsageStatType.ARTICLES_SENT) is None

        assert stats.increment(UsageStatType.ARTICLES_SENT, 3) == 3
        assert stats.increment(UsageStatType.ARTICLES_SENT, 4) == 7

        stat = stats.get(UsageStatType.ARTICLES_SENT)
        assert stat.data == 7
        assert stat.added_at is not None
        assert stats.get(UsageStatType.ARTICLES_BLOCKED) is None
