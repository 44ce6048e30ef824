"""
Tenant quota resolution.

Turns supporter and patron records into effective limits:
- which supporters (and so which guilds) currently hold a paid tier
- how many feeds and guilds a supporter may use
- whether a supporter may post through webhooks

Patrons resolve their limits from their pledge; other supporters use the
overrides stored on their record.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from feedrelay.config import Settings
from feedrelay.db.repositories import PatronRepository, SupporterRepository
from feedrelay.records import PatronRecord, PatronStatus, SupporterRecord

logger = logging.getLogger(__name__)

# Declined pledges keep their benefits this long after the last charge
DECLINED_GRACE_PERIOD = timedelta(days=4)

# (minimum pledge in cents, max feeds, max guilds), highest first
PLEDGE_TIERS: tuple[tuple[int, int, int], ...] = (
    (2000, 140, 15),
    (1000, 70, 4),
    (500, 35, 3),
    (250, 15, 1),
)
WEBHOOK_MIN_PLEDGE = 100
LIFETIME_BONUS_PLEDGE = 2500
LIFETIME_FIVE_DOLLAR_MIN = 1500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def patron_is_active(patron: PatronRecord, now: datetime) -> bool:
    """Active pledges count, and so do declined ones inside the grace period."""
    if patron.status is PatronStatus.ACTIVE:
        return True
    if patron.status is PatronStatus.DECLINED and patron.last_charge is not None:
        return now - patron.last_charge < DECLINED_GRACE_PERIOD
    return False


def patron_max_feeds(patron: PatronRecord, default: int) -> int:
    for min_pledge, feeds, _ in PLEDGE_TIERS:
        if patron.pledge >= min_pledge:
            return feeds
    return default


def patron_max_guilds(patron: PatronRecord) -> int:
    guilds = 1
    for min_pledge, _, tier_guilds in PLEDGE_TIERS:
        if patron.pledge >= min_pledge:
            guilds = tier_guilds
            # $5 patrons who have not been around long get one less server
            if min_pledge == 500 and patron.pledge_lifetime < LIFETIME_FIVE_DOLLAR_MIN:
                guilds = 2
            break
    if patron.pledge_lifetime >= LIFETIME_BONUS_PLEDGE:
        guilds = max(guilds, 2)
    return guilds


def patron_webhook(patron: PatronRecord) -> bool:
    return patron.pledge >= WEBHOOK_MIN_PLEDGE


class QuotaResolver:
    """
    Resolves supporter validity and per-guild quotas.

    Holds no state of its own; every call reads the current records so a
    lapsed pledge takes effect on the next lookup.
    """

    def __init__(
        self,
        settings: Settings,
        supporters: SupporterRepository,
        patrons: PatronRepository,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            settings: Settings snapshot (tier flag and feed defaults)
            supporters: Supporter record repository
            patrons: Patron record repository
            clock: Returns the current aware UTC time
        """
        self._settings = settings
        self._supporters = supporters
        self._patrons = patrons
        self._clock = clock

    def tier_enabled(self) -> bool:
        """Whether the supporter tier system is switched on."""
        return self._settings.supporters_enabled

    def find_active_patron(self, supporter: SupporterRecord) -> PatronRecord | None:
        now = self._clock()
        for patron in self._patrons.get_many_by_discord(supporter.id):
            if patron_is_active(patron, now):
                return patron
        return None

    def is_valid(self, supporter: SupporterRecord) -> bool:
        """
        Check whether a supporter currently holds a tier.

        Non-patrons are valid until their expiry (if any) passes. Patrons are
        valid only while one of their linked pledges is active.
        """
        if not supporter.patron:
            if supporter.expire_at is None:
                return True
            return self._clock() < supporter.expire_at
        return self.find_active_patron(supporter) is not None

    def valid_supporters(self) -> list[SupporterRecord]:
        if not self.tier_enabled():
            return []
        return [s for s in self._supporters.get_all() if self.is_valid(s)]

    def valid_guilds(self) -> set[str]:
        guilds: set[str] = set()
        for supporter in self.valid_supporters():
            guilds.update(supporter.guilds)
        return guilds

    def valid_supporter_of_guild(self, guild_id: str) -> SupporterRecord | None:
        if not self.tier_enabled():
            return None
        for supporter in self._supporters.get_many_by_guild(guild_id):
            if self.is_valid(supporter):
                return supporter
        return None

    def has_valid_guild(self, guild_id: str) -> bool:
        return guild_id in self.valid_guilds()

    def max_feeds(self, supporter: SupporterRecord) -> int:
        """Patron tier if pledging, else the larger of the override and the default."""
        default = self._settings.max_feeds
        patron = self.find_active_patron(supporter) if supporter.patron else None
        if patron is not None:
            return patron_max_feeds(patron, default)
        if supporter.max_feeds:
            return max(supporter.max_feeds, default)
        return default

    def max_guilds(self, supporter: SupporterRecord) -> int:
        patron = self.find_active_patron(supporter) if supporter.patron else None
        if patron is not None:
            return patron_max_guilds(patron)
        return supporter.max_guilds or 1

    def webhook_access(self, supporter: SupporterRecord) -> bool:
        patron = self.find_active_patron(supporter) if supporter.patron else None
        if patron is not None:
            return patron_webhook(patron)
        return bool(supporter.webhook)

    def feed_limits_of_guilds(self) -> dict[str, int]:
        """
        Map each supported guild to its feed limit.

        A guild covered by several supporters is not deduplicated: the last
        supporter in iteration order wins.

        Returns:
            Guild id -> maximum feed count
        """
        limits: dict[str, int] = {}
        for supporter in self.valid_supporters():
            max_feeds = self.max_feeds(supporter)
            for guild_id in supporter.guilds:
                limits[guild_id] = max_feeds
        return limits
