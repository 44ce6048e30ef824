"""
Maintenance sweeps run while a shard starts.

Each sweep repairs a data set that may have drifted while the shard was
offline.
"""

from typing import Container

from feedrelay.db.repositories import ProfileRepository
from feedrelay.maintenance.prune_alerts import prune_alerts_of_profile, prune_profile_alerts
from feedrelay.transport.base import IdentityDirectory


async def run_maintenance(
    profiles: ProfileRepository,
    directory: IdentityDirectory,
    resident_guilds: Container[str],
) -> None:
    """Run every startup sweep for the guilds resident on this shard."""
    await prune_profile_alerts(profiles, directory, resident_guilds)


__all__ = ["prune_alerts_of_profile", "prune_profile_alerts", "run_maintenance"]
