"""Immutable data records passed between the store and the business rules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class PatronStatus(str, Enum):
    """Pledge status reported by the patron source."""

    ACTIVE = "active_patron"
    DECLINED = "declined_patron"
    FORMER = "former_patron"


class UsageStatType(str, Enum):
    """Identifiers of the persistent usage aggregates."""

    ARTICLES_SENT = "articlesSent"
    ARTICLES_BLOCKED = "articlesBlocked"


@dataclass(frozen=True)
class TenantProfile:
    """Per-guild settings, including the alert subscriber list."""

    guild_id: str
    name: str = ""
    alert: tuple[str, ...] = ()
    prefix: str | None = None
    locale: str | None = None


@dataclass(frozen=True)
class SupporterRecord:
    """
    A subscription owner.

    The quota override fields are only referenced for non-patrons;
    patrons resolve their quotas from their pledge.
    """

    id: str
    """Platform user id of the supporter."""

    patron: bool = False
    webhook: bool | None = None
    max_guilds: int | None = None
    max_feeds: int | None = None
    guilds: tuple[str, ...] = ()
    expire_at: datetime | None = None
    comment: str | None = None
    slow_rate: bool = False


@dataclass(frozen=True)
class PatronRecord:
    """A pledge record from the external patron source."""

    id: str
    status: PatronStatus = PatronStatus.FORMER
    pledge: int = 0
    """Current pledge in cents."""

    pledge_lifetime: int = 0
    """Lifetime pledge total in cents."""

    last_charge: datetime | None = None
    discord: str | None = None
    """Linked supporter (platform user) id."""

    name: str = ""
    email: str | None = None


@dataclass(frozen=True)
class UsageStat:
    """Persistent running total for one usage counter."""

    id: UsageStatType
    data: int = 0
    added_at: datetime | None = None


@dataclass(frozen=True)
class ChannelRef:
    """A resident channel and the guild that owns it."""

    channel_id: str
    guild_id: str
