"""Abstract interfaces for the collaborators a shard talks to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable

from feedrelay.records import ChannelRef

if TYPE_CHECKING:
    from feedrelay.ipc.messages import Article

EventHandler = Callable[..., Awaitable[None]]


class ArticleSender(ABC):
    """Renders and delivers an article to its channel."""

    @abstractmethod
    async def send(self, article: Article, shard_id: int | None = None) -> Any:
        """
        Deliver an article.

        Args:
            article: Article to deliver
            shard_id: Shard doing the delivery

        Returns:
            Sender-specific outcome (e.g. the posted message)

        Raises:
            Exception: On delivery failure
        """
        ...


class IdentityDirectory(ABC):
    """Looks up guild members in the platform's identity directory."""

    @abstractmethod
    async def resolve_member(self, guild_id: str, member_id: str) -> dict[str, Any]:
        """
        Resolve a guild member.

        Args:
            guild_id: Guild the member should belong to
            member_id: Member (user) id

        Returns:
            Member record from the directory

        Raises:
            DirectoryError: With the platform code for unknown member,
                unknown user or invalid id, among others
        """
        ...


class ChatTransport(ABC):
    """
    The shard's connection to the chat platform.

    Implement this class to plug a platform client into the shard
    coordinator. Only the operations the coordinator needs are exposed.
    """

    @property
    @abstractmethod
    def shard_id(self) -> int:
        """Platform partition this connection serves."""
        ...

    @property
    @abstractmethod
    def user_label(self) -> str:
        """Display name and id of the logged-in bot user."""
        ...

    @abstractmethod
    def guild_ids(self) -> list[str]:
        """Ids of guilds resident on this shard."""
        ...

    @abstractmethod
    def channels(self) -> Iterable[ChannelRef]:
        """Channels resident on this shard with their owning guild."""
        ...

    def channel_ids(self) -> list[str]:
        return [channel.channel_id for channel in self.channels()]

    def channel_guild_id(self, channel_id: str) -> str | None:
        """Guild owning a resident channel, or None if the channel is unknown."""
        for channel in self.channels():
            if channel.channel_id == channel_id:
                return channel.guild_id
        return None

    @abstractmethod
    async def set_presence(
        self,
        status: str,
        activity_type: str | None = None,
        activity_name: str | None = None,
        url: str | None = None,
    ) -> None:
        ...

    @abstractmethod
    async def fetch_user(self, user_id: str) -> Any | None:
        """Fetch a user, or None if it does not exist."""
        ...

    @abstractmethod
    async def send_direct_message(self, user_id: str, content: str) -> None:
        ...

    @abstractmethod
    def can_send(self, channel_id: str) -> bool:
        """Whether the bot may post in a channel."""
        ...

    @abstractmethod
    async def send_channel_message(self, channel_id: str, content: str) -> None:
        ...

    @abstractmethod
    def attach_listeners(self, commands_enabled: bool) -> None:
        """Start handling platform events (commands, reactions, ...)."""
        ...

    @abstractmethod
    def detach_listeners(self) -> None:
        ...

    @abstractmethod
    def set_event_handlers(
        self,
        on_error: EventHandler,
        on_resume: EventHandler,
        on_disconnect: EventHandler,
    ) -> None:
        """Register the coordinator's reactions to socket events."""
        ...
