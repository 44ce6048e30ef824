"""
Per-channel article rate limiting.

Each channel gets a fixed budget of articles per refresh window. Guilds
on a supporter tier get a larger budget. Budgets refill on a per-channel
timer that starts when the limiter is created, so channels do not all
reset at the same moment.

Sent and blocked totals are kept in memory and periodically added to the
persistent usage aggregates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Container, Iterable

from feedrelay.errors import RateLimitedError
from feedrelay.records import ChannelRef, UsageStatType

if TYPE_CHECKING:
    from feedrelay.db.repositories import UsageStatsRepository
    from feedrelay.ipc.messages import Article
    from feedrelay.scheduler import SchedulerService
    from feedrelay.transport.base import ArticleSender

logger = logging.getLogger(__name__)

TIER_MULTIPLIER = 5
RESET_JOB_PREFIX = "limiter-reset:"
FLUSH_JOB_ID = "usage-flush"


@dataclass
class UsageCounters:
    """Sent/blocked totals accumulated since the last flush."""

    sent: int = 0
    blocked: int = 0

    @property
    def is_empty(self) -> bool:
        return self.sent == 0 and self.blocked == 0


class ArticleRateLimiter:
    """Article budget for a single channel."""

    def __init__(self, channel_id: str, base_limit: int, elevated: bool = False) -> None:
        """
        Initialize the limiter with a full budget.

        Args:
            channel_id: Channel this budget belongs to
            base_limit: Articles per window for the standard tier (0 = unlimited)
            elevated: Whether the channel's guild is on a supporter tier
        """
        self.channel_id = channel_id
        self.elevated = elevated
        self.limit = base_limit * TIER_MULTIPLIER if elevated else base_limit
        self.remaining = self.limit

    @property
    def unlimited(self) -> bool:
        return self.limit == 0

    def is_at_limit(self) -> bool:
        if self.unlimited:
            return False
        return self.remaining == 0

    def consume(self) -> None:
        """Spend one article from the budget."""
        if self.remaining > 0:
            self.remaining -= 1

    def reset(self) -> None:
        """Refill the budget."""
        self.remaining = self.limit

    def __repr__(self) -> str:
        return f"ArticleRateLimiter({self.channel_id}, {self.remaining}/{self.limit})"


class LimiterRegistry:
    """
    Channel -> limiter registry plus the shard's usage counters.

    Owned by a single shard coordinator. Reset and flush timers are jobs on
    the coordinator's scheduler; without a scheduler no timers run. Once
    stopped, limiters created for new channels get no reset timer until the
    next ``start``.
    """

    def __init__(
        self,
        base_limit: int,
        refresh_rate_minutes: float,
        scheduler: SchedulerService | None = None,
        stats: UsageStatsRepository | None = None,
        tier_enabled: bool = True,
        flush_interval_seconds: float = 10,
    ) -> None:
        """
        Initialize the registry.

        Args:
            base_limit: Standard-tier articles per window (0 = unlimited)
            refresh_rate_minutes: Window length
            scheduler: Scheduler for reset and flush jobs
            stats: Persistent usage aggregates (None disables flushing)
            tier_enabled: When False every channel gets the elevated budget
            flush_interval_seconds: Seconds between usage flushes
        """
        self.base_limit = base_limit
        self.refresh_rate_minutes = refresh_rate_minutes
        self.tier_enabled = tier_enabled
        self.flush_interval_seconds = flush_interval_seconds
        self.counters = UsageCounters()
        self._scheduler = scheduler
        self._stats = stats
        self._limiters: dict[str, ArticleRateLimiter] = {}
        self._stopped = False

    def __len__(self) -> int:
        return len(self._limiters)

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._limiters

    def create(self, channel_id: str, tier_elevated: bool = False) -> ArticleRateLimiter:
        """
        Create (or replace) the limiter for a channel and start its reset timer.

        Args:
            channel_id: Channel id
            tier_elevated: Whether the channel's guild holds a valid supporter tier

        Returns:
            The new limiter
        """
        elevated = tier_elevated if self.tier_enabled else True
        limiter = ArticleRateLimiter(channel_id, self.base_limit, elevated)
        self._limiters[channel_id] = limiter
        if self._scheduler is not None:
            if limiter.unlimited:
                self._scheduler.remove_job(f"{RESET_JOB_PREFIX}{channel_id}")
            elif not self._stopped:
                self._schedule_reset(channel_id)
        return limiter

    def _schedule_reset(self, channel_id: str) -> None:
        assert self._scheduler is not None
        self._scheduler.add_job(
            f"{RESET_JOB_PREFIX}{channel_id}",
            self._reset_limiter,
            minutes=self.refresh_rate_minutes,
            args=(channel_id,),
        )

    def get(self, channel_id: str) -> ArticleRateLimiter | None:
        return self._limiters.get(channel_id)

    def get_or_create(self, channel_id: str, tier_elevated: bool = False) -> ArticleRateLimiter:
        """Existing limiters keep the tier they were created with."""
        limiter = self._limiters.get(channel_id)
        if limiter is None:
            limiter = self.create(channel_id, tier_elevated)
        return limiter

    def initialize(self, channels: Iterable[ChannelRef], elevated_guilds: Container[str]) -> int:
        """
        Create limiters for every resident channel.

        Args:
            channels: Channels owned by this shard
            elevated_guilds: Guild ids holding a valid supporter tier

        Returns:
            Number of limiters created
        """
        count = 0
        for channel in channels:
            self.create(channel.channel_id, channel.guild_id in elevated_guilds)
            count += 1
        logger.info(
            f"Rate limiters initialized for {count} channels "
            f"({self.base_limit} articles per {self.refresh_rate_minutes}m)"
        )
        return count

    def record_sent(self) -> None:
        self.counters.sent += 1

    def record_blocked(self) -> None:
        self.counters.blocked += 1

    async def enqueue(self, article: Article, sender: ArticleSender, shard_id: int | None = None) -> Any:
        """
        Admit an article for its channel and hand it to the sender.

        The budget and the sent counter are charged before the send and are
        not refunded if the send fails.

        Raises:
            RateLimitedError: If the channel has no budget left this window
        """
        limiter = self.get_or_create(article.channel_id)
        if limiter.is_at_limit():
            self.record_blocked()
            raise RateLimitedError(article.channel_id, limiter.limit)
        limiter.consume()
        self.record_sent()
        return await sender.send(article, shard_id)

    async def _reset_limiter(self, channel_id: str) -> None:
        limiter = self._limiters.get(channel_id)
        if limiter is not None:
            limiter.reset()

    async def flush_usage(self) -> bool:
        """
        Add the pending counters to the persistent aggregates.

        Each counter is zeroed only after its own write succeeds, so a failed
        write leaves its delta for the next flush.

        Returns:
            True if anything was written
        """
        if self._stats is None or self.counters.is_empty:
            return False
        if self.counters.sent:
            sent = self.counters.sent
            self._stats.increment(UsageStatType.ARTICLES_SENT, sent)
            self.counters.sent -= sent
        if self.counters.blocked:
            blocked = self.counters.blocked
            self._stats.increment(UsageStatType.ARTICLES_BLOCKED, blocked)
            self.counters.blocked -= blocked
        return True

    async def _flush_job(self) -> None:
        try:
            await self.flush_usage()
        except Exception as e:
            logger.error(f"Failed to update article stats: {e}")

    def start(self) -> None:
        """Schedule the periodic usage flush and any missing reset timers."""
        self._stopped = False
        if self._scheduler is None:
            return
        for channel_id, limiter in self._limiters.items():
            if not limiter.unlimited and not self._scheduler.has_job(f"{RESET_JOB_PREFIX}{channel_id}"):
                self._schedule_reset(channel_id)
        if self._stats is None:
            return
        self._scheduler.add_job(
            FLUSH_JOB_ID,
            self._flush_job,
            seconds=self.flush_interval_seconds,
        )

    def stop(self) -> None:
        """Cancel every reset timer and the flush job."""
        self._stopped = True
        if self._scheduler is None:
            return
        removed = self._scheduler.remove_jobs(RESET_JOB_PREFIX)
        self._scheduler.remove_job(FLUSH_JOB_ID)
        logger.debug(f"Stopped {removed} limiter reset timers")
