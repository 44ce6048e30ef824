"""Shard process lifecycle."""

from feedrelay.shard.coordinator import ShardCoordinator, ShardState

__all__ = ["ShardCoordinator", "ShardState"]
