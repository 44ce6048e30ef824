"""
Control messages exchanged between a shard and its parent process.

Every message travels as an envelope ``{"kind": ..., "payload": {...}}``.
Inbound envelopes are parsed into a tagged union keyed on ``kind``;
anything that does not match a known kind is dropped.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class MessageKind(str, Enum):
    """Known control message kinds."""

    # Parent -> shard
    START_INIT = "START_INIT"
    NEW_ARTICLE = "NEW_ARTICLE"
    FINISHED_INIT = "FINISHED_INIT"
    SEND_USER_ALERT = "SEND_USER_ALERT"

    # Shard -> parent
    SHARD_READY = "SHARD_READY"
    INIT_COMPLETE = "INIT_COMPLETE"
    SHARD_STOPPED = "SHARD_STOPPED"
    KILL = "KILL"


class Article(BaseModel):
    """An article routed to a single channel. Rendering fields pass through untouched."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    channel_id: str = Field(..., alias="channel", description="Destination channel id")
    feed_id: str | None = Field(default=None, alias="feed")
    guild_id: str | None = Field(default=None, alias="guild")
    link: str | None = None
    title: str | None = None


# --- Inbound ---


class StartInitPayload(BaseModel):
    set_presence: bool = Field(default=False, alias="setPresence")

    model_config = ConfigDict(populate_by_name=True)


class NewArticlePayload(BaseModel):
    article: Article = Field(..., alias="newArticle")
    debug: bool = False

    model_config = ConfigDict(populate_by_name=True)


class SendUserAlertPayload(BaseModel):
    channel: str
    message: str


class StartInit(BaseModel):
    kind: Literal["START_INIT"]
    payload: StartInitPayload = Field(default_factory=StartInitPayload)


class NewArticle(BaseModel):
    kind: Literal["NEW_ARTICLE"]
    payload: NewArticlePayload


class FinishedInit(BaseModel):
    kind: Literal["FINISHED_INIT"]
    payload: dict[str, Any] = Field(default_factory=dict)


class SendUserAlert(BaseModel):
    kind: Literal["SEND_USER_ALERT"]
    payload: SendUserAlertPayload


InboundMessage = Annotated[
    Union[StartInit, NewArticle, FinishedInit, SendUserAlert],
    Field(discriminator="kind"),
]

_inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


def parse_inbound(raw: Any) -> StartInit | NewArticle | FinishedInit | SendUserAlert | None:
    """
    Parse an inbound envelope.

    Returns:
        The typed message, or None for unknown kinds and malformed envelopes
    """
    try:
        return _inbound_adapter.validate_python(raw)
    except ValidationError as e:
        kind = raw.get("kind") if isinstance(raw, dict) else None
        logger.debug(f"Ignoring control message of kind {kind!r}: {e.error_count()} errors")
        return None


# --- Outbound ---


class ShardReadyPayload(BaseModel):
    guild_ids: list[str]
    channel_ids: list[str]


def envelope(kind: MessageKind, payload: BaseModel | dict[str, Any] | None = None) -> dict[str, Any]:
    """Build an outbound envelope."""
    if isinstance(payload, BaseModel):
        data = payload.model_dump()
    else:
        data = payload or {}
    return {"kind": kind.value, "payload": data}
