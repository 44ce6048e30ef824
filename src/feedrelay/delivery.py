"""Article delivery through the per-channel rate limiter."""

import logging
from typing import Any

from feedrelay.errors import RateLimitedError
from feedrelay.ipc.messages import Article
from feedrelay.quota.limiter import LimiterRegistry
from feedrelay.transport.base import ArticleSender

logger = logging.getLogger(__name__)


class DeliveryPipeline:
    """Admits articles against their channel's budget and forwards them to the sender."""

    def __init__(
        self,
        limiters: LimiterRegistry,
        sender: ArticleSender,
        shard_id: int | None = None,
    ) -> None:
        self._limiters = limiters
        self._sender = sender
        self._shard_id = shard_id

    async def deliver(self, article: Article, debug: bool = False) -> Any | None:
        """
        Deliver one article.

        Rate-limited articles are dropped (they only show up in the blocked
        count). Sender failures propagate to the caller.

        Returns:
            The sender's outcome, or None if the article was dropped
        """
        try:
            outcome = await self._limiters.enqueue(article, self._sender, self._shard_id)
        except RateLimitedError as e:
            if debug:
                logger.info(f"Dropped article {article.link or article.title!r}: {e}")
            else:
                logger.debug(f"Dropped article: {e}")
            return None
        if debug:
            logger.info(f"Delivered article {article.link or article.title!r} to channel {article.channel_id}")
        return outcome
