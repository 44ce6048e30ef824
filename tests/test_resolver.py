"""Tests for supporter validity and quota resolution."""

from datetime import datetime, timedelta, timezone

import pytest

from feedrelay.config import Settings
from feedrelay.db.repositories import PatronRepository, SupporterRepository
from feedrelay.quota.resolver import (
    QuotaResolver,
    patron_is_active,
    patron_max_feeds,
    patron_max_guilds,
    patron_webhook,
)
from feedrelay.records import PatronRecord, PatronStatus, SupporterRecord

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def resolver(
    settings: Settings, supporters: SupporterRepository, patrons: PatronRepository
) -> QuotaResolver:
    return QuotaResolver(settings, supporters, patrons, clock=lambda: NOW)


def pledge(cents: int, lifetime: int = 0) -> PatronRecord:
    return PatronRecord(id="p", status=PatronStatus.ACTIVE, pledge=cents, pledge_lifetime=lifetime)


class TestPatronRules:
    """Tests for the pledge -> quota rules."""

    def test_active_patron(self) -> None:
        assert patron_is_active(pledge(500), NOW)

    def test_declined_grace_period(self) -> None:
        """Declined pledges stay active for four days after the last charge."""
        recent = PatronRecord(id="p", status=PatronStatus.DECLINED, last_charge=NOW - timedelta(days=3))
        lapsed = PatronRecord(id="p", status=PatronStatus.DECLINED, last_charge=NOW - timedelta(days=5))
        never_charged = PatronRecord(id="p", status=PatronStatus.DECLINED)

        assert patron_is_active(recent, NOW)
        assert not patron_is_active(lapsed, NOW)
        assert not patron_is_active(never_charged, NOW)

    def test_former_patron_inactive(self) -> None:
        former = PatronRecord(id="p", status=PatronStatus.FORMER, last_charge=NOW)
        assert not patron_is_active(former, NOW)

    @pytest.mark.parametrize(
        "cents,feeds",
        [(2000, 140), (1500, 70), (1000, 70), (500, 35), (250, 15), (100, 5), (0, 5)],
    )
    def test_max_feeds(self, cents: int, feeds: int) -> None:
        assert patron_max_feeds(pledge(cents), default=5) == feeds

    @pytest.mark.parametrize(
        "cents,lifetime,guilds",
        [
            (2000, 0, 15),
            (1000, 0, 4),
            (500, 1500, 3),
            (500, 1000, 2),
            (250, 0, 1),
            (250, 2500, 2),
            (0, 0, 1),
        ],
    )
    def test_max_guilds(self, cents: int, lifetime: int, guilds: int) -> None:
        assert patron_max_guilds(pledge(cents, lifetime)) == guilds

    def test_webhook(self) -> None:
        assert patron_webhook(pledge(100))
        assert not patron_webhook(pledge(99))


class TestSupporterValidity:
    """Tests for QuotaResolver.is_valid and friends."""

    def test_supporter_without_expiry_is_valid(self, resolver: QuotaResolver) -> None:
        assert resolver.is_valid(SupporterRecord(id="u1"))

    def test_supporter_expiry(self, resolver: QuotaResolver) -> None:
        """Non-patron supporters are valid until their expiry passes."""
        future = SupporterRecord(id="u1", expire_at=NOW + timedelta(days=1))
        past = SupporterRecord(id="u2", expire_at=NOW - timedelta(seconds=1))
        assert resolver.is_valid(future)
        assert not resolver.is_valid(past)

    def test_patron_without_pledge_is_invalid(self, resolver: QuotaResolver) -> None:
        """A patron supporter with no active pledge holds no tier."""
        assert not resolver.is_valid(SupporterRecord(id="u1", patron=True))

    def test_patron_with_active_pledge(
        self, resolver: QuotaResolver, patrons: PatronRepository
    ) -> None:
        patrons.save(PatronRecord(id="p1", status=PatronStatus.FORMER, discord="u1"))
        patrons.save(PatronRecord(id="p2", status=PatronStatus.ACTIVE, pledge=500, discord="u1"))

        supporter = SupporterRecord(id="u1", patron=True)
        assert resolver.is_valid(supporter)
        assert resolver.find_active_patron(supporter).id == "p2"

    def test_valid_guilds(self, resolver: QuotaResolver, supporters: SupporterRepository) -> None:
        supporters.save(SupporterRecord(id="u1", guilds=("g1", "g2")))
        supporters.save(SupporterRecord(id="u2", guilds=("g3",), expire_at=NOW - timedelta(days=1)))
        supporters.save(SupporterRecord(id="u3", patron=True, guilds=("g4",)))

        assert resolver.valid_guilds() == {"g1", "g2"}
        assert resolver.has_valid_guild("g1")
        assert not resolver.has_valid_guild("g3")
        assert resolver.valid_supporter_of_guild("g2").id == "u1"
        assert resolver.valid_supporter_of_guild("g4") is None

    def test_tier_disabled(
        self, settings: Settings, supporters: SupporterRepository, patrons: PatronRepository
    ) -> None:
        """With the tier system off nobody is a valid supporter."""
        supporters.save(SupporterRecord(id="u1", guilds=("g1",)))
        disabled = QuotaResolver(
            settings.model_copy(update={"supporters_enabled": False}), supporters, patrons, clock=lambda: NOW
        )

        assert not disabled.tier_enabled()
        assert disabled.valid_supporters() == []
        assert disabled.valid_guilds() == set()
        assert disabled.valid_supporter_of_guild("g1") is None


class TestQuotas:
    """Tests for feed, guild and webhook quotas."""

    def test_max_feeds_override(self, resolver: QuotaResolver) -> None:
        """Overrides only ever raise the default."""
        assert resolver.max_feeds(SupporterRecord(id="u1")) == 5
        assert resolver.max_feeds(SupporterRecord(id="u1", max_feeds=100)) == 100
        assert resolver.max_feeds(SupporterRecord(id="u1", max_feeds=2)) == 5

    def test_max_feeds_patron(self, resolver: QuotaResolver, patrons: PatronRepository) -> None:
        """Patrons use their pledge tier and ignore the record override."""
        patrons.save(PatronRecord(id="p1", status=PatronStatus.ACTIVE, pledge=1000, discord="u1"))
        supporter = SupporterRecord(id="u1", patron=True, max_feeds=500)
        assert resolver.max_feeds(supporter) == 70

    def test_max_guilds(self, resolver: QuotaResolver, patrons: PatronRepository) -> None:
        assert resolver.max_guilds(SupporterRecord(id="u1")) == 1
        assert resolver.max_guilds(SupporterRecord(id="u1", max_guilds=3)) == 3

        patrons.save(PatronRecord(id="p1", status=PatronStatus.ACTIVE, pledge=2000, discord="u2"))
        assert resolver.max_guilds(SupporterRecord(id="u2", patron=True, max_guilds=1)) == 15

    def test_webhook_access(self, resolver: QuotaResolver, patrons: PatronRepository) -> None:
        assert resolver.webhook_access(SupporterRecord(id="u1", webhook=True))
        assert not resolver.webhook_access(SupporterRecord(id="u1"))

        patrons.save(PatronRecord(id="p1", status=PatronStatus.ACTIVE, pledge=100, discord="u2"))
        assert resolver.webhook_access(SupporterRecord(id="u2", patron=True))

    def test_feed_limits_of_guilds(
        self, resolver: QuotaResolver, supporters: SupporterRepository
    ) -> None:
        """Every covered guild maps to its supporter's feed limit; the last supporter wins."""
        supporters.save(SupporterRecord(id="u1", guilds=("g1", "g2"), max_feeds=50))
        supporters.save(SupporterRecord(id="u2", guilds=("g2",), max_feeds=80))
        supporters.save(SupporterRecord(id="u3", guilds=("g3",), expire_at=NOW - timedelta(days=1)))

        assert resolver.feed_limits_of_guilds() == {"g1": 50, "g2": 80}
