"""Tests for control messages and channels."""

import asyncio
from multiprocessing import Pipe

import pytest

from feedrelay.errors import FatalTransportError
from feedrelay.ipc.channel import LocalControlChannel, PipeControlChannel
from feedrelay.ipc.messages import (
    FinishedInit,
    MessageKind,
    NewArticle,
    SendUserAlert,
    ShardReadyPayload,
    StartInit,
    envelope,
    parse_inbound,
)


class TestParseInbound:
    """Tests for parse_inbound()."""

    def test_start_init(self) -> None:
        message = parse_inbound({"kind": "START_INIT", "payload": {"setPresence": True}})
        assert isinstance(message, StartInit)
        assert message.payload.set_presence is True

    def test_start_init_without_payload(self) -> None:
        message = parse_inbound({"kind": "START_INIT"})
        assert isinstance(message, StartInit)
        assert message.payload.set_presence is False

    def test_new_article_keeps_extra_fields(self) -> None:
        """Article fields the shard does not know about pass through."""
        message = parse_inbound(
            {
                "kind": "NEW_ARTICLE",
                "payload": {
                    "newArticle": {"channel": "c1", "title": "Hi", "embeds": [{"color": 1}]},
                    "debug": True,
                },
            }
        )
        assert isinstance(message, NewArticle)
        article = message.payload.article
        assert article.channel_id == "c1"
        assert article.title == "Hi"
        assert article.model_extra == {"embeds": [{"color": 1}]}
        assert message.payload.debug is True

    def test_finished_init_and_alert(self) -> None:
        assert isinstance(parse_inbound({"kind": "FINISHED_INIT", "payload": {}}), FinishedInit)
        alert = parse_inbound({"kind": "SEND_USER_ALERT", "payload": {"channel": "c1", "message": "m"}})
        assert isinstance(alert, SendUserAlert)
        assert alert.payload.channel == "c1"

    @pytest.mark.parametrize(
        "raw",
        [
            {"kind": "SOMETHING_ELSE", "payload": {}},
            {"kind": "SHARD_READY", "payload": {}},
            {"kind": "NEW_ARTICLE", "payload": {}},
            {"payload": {}},
            "not an envelope",
            None,
        ],
    )
    def test_unknown_or_malformed_is_none(self, raw) -> None:
        assert parse_inbound(raw) is None


class TestEnvelope:
    """Tests for envelope()."""

    def test_model_payload(self) -> None:
        data = envelope(MessageKind.SHARD_READY, ShardReadyPayload(guild_ids=["g1"], channel_ids=["c1"]))
        assert data == {"kind": "SHARD_READY", "payload": {"guild_ids": ["g1"], "channel_ids": ["c1"]}}

    def test_empty_payload(self) -> None:
        assert envelope(MessageKind.KILL) == {"kind": "KILL", "payload": {}}


class TestLocalControlChannel:
    """Tests for LocalControlChannel."""

    @pytest.mark.asyncio
    async def test_round_trip_and_close(self) -> None:
        channel = LocalControlChannel()
        channel.push({"kind": "FINISHED_INIT"})
        await channel.send(envelope(MessageKind.INIT_COMPLETE))

        assert await channel.receive() == {"kind": "FINISHED_INIT"}
        assert channel.sent_kinds() == ["INIT_COMPLETE"]

        channel.close()
        assert await channel.receive() is None
        with pytest.raises(FatalTransportError):
            await channel.send(envelope(MessageKind.KILL))


class TestPipeControlChannel:
    """Tests for PipeControlChannel."""

    @pytest.mark.asyncio
    async def test_send_and_receive(self) -> None:
        parent, child = Pipe()
        channel = PipeControlChannel(child)

        parent.send({"kind": "START_INIT", "payload": {}})
        received = await asyncio.wait_for(channel.receive(), timeout=5)
        assert received == {"kind": "START_INIT", "payload": {}}

        await channel.send(envelope(MessageKind.SHARD_STOPPED))
        assert parent.recv() == {"kind": "SHARD_STOPPED", "payload": {}}

        channel.close()
        parent.close()

    @pytest.mark.asyncio
    async def test_parent_close_ends_receive(self) -> None:
        """Closing the parent end makes receive() return None."""
        parent, child = Pipe()
        channel = PipeControlChannel(child)
        parent.close()

        assert await asyncio.wait_for(channel.receive(), timeout=5) is None
        with pytest.raises(FatalTransportError):
            await channel.send(envelope(MessageKind.KILL))
        channel.close()

    @pytest.mark.asyncio
    async def test_close_wakes_pending_receive(self) -> None:
        """Closing the shard end ends a receive() that is already waiting."""
        parent, child = Pipe()
        channel = PipeControlChannel(child)

        pending = asyncio.ensure_future(channel.receive())
        await asyncio.sleep(0)
        assert not pending.done()

        channel.close()

        assert await asyncio.wait_for(pending, timeout=2) is None
        assert await channel.receive() is None
        parent.close()

    @pytest.mark.asyncio
    async def test_close_before_receive(self) -> None:
        parent, child = Pipe()
        channel = PipeControlChannel(child)

        channel.close()

        assert await asyncio.wait_for(channel.receive(), timeout=2) is None
        parent.close()
