"""Remove alert subscribers that no longer exist from guild profiles."""

import asyncio
import logging
import re
from dataclasses import replace
from typing import Container

from feedrelay.db.repositories import ProfileRepository
from feedrelay.errors import DELETE_CODES
from feedrelay.records import TenantProfile
from feedrelay.transport.base import IdentityDirectory

logger = logging.getLogger(__name__)

MEMBER_ID = re.compile(r"[0-9]+")


async def prune_alerts_of_profile(
    profile: TenantProfile,
    profiles: ProfileRepository,
    directory: IdentityDirectory,
) -> bool:
    """
    Drop malformed and missing members from one profile's alert list.

    Directory failures other than the "member is gone" codes propagate.

    Returns:
        True if the profile was changed and saved
    """
    guild_id = profile.guild_id
    alert = list(profile.alert)
    updated = False
    # Reverse order so deleting an entry never shifts one we have yet to visit
    for i in range(len(alert) - 1, -1, -1):
        member_id = alert[i]
        if not MEMBER_ID.fullmatch(member_id):
            logger.info(f"Deleting invalid alert user {member_id!r} in guild {guild_id}")
            del alert[i]
            updated = True
            continue
        try:
            await directory.resolve_member(guild_id, member_id)
        except Exception as e:
            if getattr(e, "code", None) not in DELETE_CODES:
                raise
            logger.info(f"Deleting missing alert user {member_id!r} in guild {guild_id}")
            del alert[i]
            updated = True

    if updated:
        profiles.save(replace(profile, alert=tuple(alert)))
    return updated


async def prune_profile_alerts(
    profiles: ProfileRepository,
    directory: IdentityDirectory,
    resident_guilds: Container[str],
) -> int:
    """
    Prune alert lists of every profile whose guild lives on this shard.

    All profiles are swept concurrently. The first unexpected failure is
    raised only once every sweep has finished.

    Returns:
        Number of profiles saved
    """
    tasks = [
        prune_alerts_of_profile(profile, profiles, directory)
        for profile in profiles.get_all()
        if profile.guild_id in resident_guilds
    ]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    errors = [r for r in results if isinstance(r, BaseException)]
    if errors:
        logger.error(f"Alert pruning failed for {len(errors)} of {len(results)} profiles")
        raise errors[0]

    saved = sum(1 for r in results if r)
    if saved:
        logger.info(f"Pruned alert users from {saved} profiles")
    return saved
