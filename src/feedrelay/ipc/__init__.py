"""Inter-process control protocol between shards and their parent."""

from feedrelay.ipc.channel import ControlChannel, LocalControlChannel, PipeControlChannel
from feedrelay.ipc.messages import (
    Article,
    FinishedInit,
    MessageKind,
    NewArticle,
    SendUserAlert,
    ShardReadyPayload,
    StartInit,
    envelope,
    parse_inbound,
)

__all__ = [
    "Article",
    "ControlChannel",
    "FinishedInit",
    "LocalControlChannel",
    "MessageKind",
    "NewArticle",
    "PipeControlChannel",
    "SendUserAlert",
    "ShardReadyPayload",
    "StartInit",
    "envelope",
    "parse_inbound",
]
