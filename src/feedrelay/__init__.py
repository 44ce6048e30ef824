"""Shard runtime core for rate-limited feed article delivery."""

__version__ = "0.1.0"
