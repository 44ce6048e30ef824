"""HTTP utilities."""

from feedrelay.http.client import HttpClient

__all__ = ["HttpClient"]
