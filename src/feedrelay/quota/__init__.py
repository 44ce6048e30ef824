"""
Quota management for article delivery.

Provides per-channel article budgets with supporter-tier multipliers and
the rules that decide which guilds hold a supporter tier.
"""

from feedrelay.quota.limiter import (
    TIER_MULTIPLIER,
    ArticleRateLimiter,
    LimiterRegistry,
    UsageCounters,
)
from feedrelay.quota.resolver import QuotaResolver

__all__ = [
    "TIER_MULTIPLIER",
    "ArticleRateLimiter",
    "LimiterRegistry",
    "QuotaResolver",
    "UsageCounters",
]
