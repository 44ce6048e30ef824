"""Interfaces to the chat platform and its identity directory."""

from feedrelay.transport.base import ArticleSender, ChatTransport, IdentityDirectory
from feedrelay.transport.directory import HttpIdentityDirectory

__all__ = [
    "ArticleSender",
    "ChatTransport",
    "HttpIdentityDirectory",
    "IdentityDirectory",
]
