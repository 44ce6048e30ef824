"""Control channels carrying envelopes between a shard and its parent."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from multiprocessing.connection import Connection
from typing import Any

from feedrelay.errors import FatalTransportError

logger = logging.getLogger(__name__)


class ControlChannel(ABC):
    """Bidirectional envelope channel."""

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> None:
        """
        Send an envelope to the other side.

        Raises:
            FatalTransportError: If the other side is gone
        """
        ...

    @abstractmethod
    async def receive(self) -> Any | None:
        """
        Wait for the next envelope.

        Returns:
            The raw envelope, or None once the other side has closed
        """
        ...

    @abstractmethod
    def close(self) -> None:
        ...


class PipeControlChannel(ControlChannel):
    """
    Control channel over a ``multiprocessing`` pipe.

    Incoming data is read by an event-loop reader callback, so receiving
    never blocks the loop. Requires a selector loop that supports
    ``add_reader`` (any Unix event loop).
    """

    def __init__(self, connection: Connection) -> None:
        self._conn = connection
        self._queue: asyncio.Queue[Any] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False

    def _ensure_reader(self) -> asyncio.Queue[Any]:
        if self._queue is None:
            self._loop = asyncio.get_running_loop()
            self._queue = asyncio.Queue()
            self._loop.add_reader(self._conn.fileno(), self._on_readable)
        return self._queue

    def _on_readable(self) -> None:
        assert self._queue is not None
        try:
            while self._conn.poll():
                self._queue.put_nowait(self._conn.recv())
        except (EOFError, OSError):
            logger.warning("Control pipe closed by parent")
            self._remove_reader()
            self._closed = True
            self._queue.put_nowait(None)

    def _remove_reader(self) -> None:
        if self._loop is not None and not self._conn.closed:
            self._loop.remove_reader(self._conn.fileno())
        self._loop = None

    async def receive(self) -> Any | None:
        if self._closed and (self._queue is None or self._queue.empty()):
            return None
        return await self._ensure_reader().get()

    async def send(self, message: dict[str, Any]) -> None:
        try:
            self._conn.send(message)
        except (BrokenPipeError, EOFError, OSError) as e:
            raise FatalTransportError(f"Control pipe is gone: {e}") from e

    def close(self) -> None:
        self._remove_reader()
        if not self._closed and self._queue is not None:
            # Wake a receive() that is already waiting
            self._queue.put_nowait(None)
        self._closed = True
        if not self._conn.closed:
            self._conn.close()


class LocalControlChannel(ControlChannel):
    """
    In-process control channel.

    ``inbound`` feeds the shard; everything the shard sends is appended to
    ``sent``. Useful for running a shard inside its parent's event loop.
    """

    def __init__(self) -> None:
        self.inbound: asyncio.Queue[Any] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []
        self._closed = False

    def push(self, message: Any) -> None:
        self.inbound.put_nowait(message)

    async def send(self, message: dict[str, Any]) -> None:
        if self._closed:
            raise FatalTransportError("Local control channel is closed")
        self.sent.append(message)

    async def receive(self) -> Any | None:
        if self._closed and self.inbound.empty():
            return None
        return await self.inbound.get()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self.inbound.put_nowait(None)

    def sent_kinds(self) -> list[str]:
        return [message["kind"] for message in self.sent]
