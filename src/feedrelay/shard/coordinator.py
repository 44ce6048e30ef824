"""
Shard lifecycle and control-message coordination.

A shard process owns one ShardCoordinator. The coordinator moves through
STOPPED -> STARTING -> READY, runs the startup sequence (store, models,
commands, maintenance, rate limiters), and reacts to:
- control messages from the parent process
- socket events from the chat transport
- connection events from the store
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, MutableMapping

from feedrelay.config import Settings, get_settings
from feedrelay.db.manager import ConnectionState, DatabaseManager
from feedrelay.db.repositories import (
    PatronRepository,
    ProfileRepository,
    SupporterRepository,
    UsageStatsRepository,
)
from feedrelay.delivery import DeliveryPipeline
from feedrelay.diagnostics import dump_heap
from feedrelay.errors import FatalTransportError
from feedrelay.ipc.channel import ControlChannel
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
from feedrelay.maintenance import run_maintenance
from feedrelay.quota.limiter import LimiterRegistry
from feedrelay.quota.resolver import QuotaResolver
from feedrelay.scheduler import SchedulerService
from feedrelay.transport.base import ArticleSender, ChatTransport, IdentityDirectory

logger = logging.getLogger(__name__)

STORE_WATCH_JOB_ID = "store-watch"
HEAP_DUMP_JOB_ID = "heap-dump"

CommandSetup = Callable[[bool], Awaitable[None]]


class ShardState(str, Enum):
    """Shard lifecycle states."""

    STOPPED = "STOPPED"
    STARTING = "STARTING"
    READY = "READY"


class ShardLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the shard id."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        return f"SH {self.extra['shard_id']} {msg}", kwargs


class ShardCoordinator:
    """
    Lifecycle state machine and message dispatcher for one shard.

    Owns the shard's limiter registry, store manager and scheduler; nothing
    here is shared between shards.
    """

    def __init__(
        self,
        transport: ChatTransport,
        channel: ControlChannel,
        sender: ArticleSender,
        directory: IdentityDirectory,
        settings: Settings | None = None,
        db_manager: DatabaseManager | None = None,
        scheduler: SchedulerService | None = None,
        command_setup: CommandSetup | None = None,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            transport: Connected chat transport for this shard
            channel: Control channel to the parent process
            sender: Delivers admitted articles
            directory: Identity directory used by maintenance sweeps
            settings: Settings snapshot (defaults to the cached settings)
            db_manager: Store manager (built from settings if omitted)
            scheduler: Scheduler for background jobs
            command_setup: Registers chat commands; called with the enabled flag
        """
        self.settings = settings or get_settings()
        self.transport = transport
        self.channel = channel
        self.directory = directory
        self.shard_id = transport.shard_id
        self.state = ShardState.STOPPED
        self.finished_init = asyncio.Event()
        self.log = ShardLogAdapter(logger, {"shard_id": self.shard_id})

        self.db = db_manager or DatabaseManager(
            database_url=self.settings.database_url,
            max_reconnect_attempts=self.settings.store_max_reconnect_attempts,
        )
        self.scheduler = scheduler or SchedulerService()
        self.profiles = ProfileRepository(self.db)
        self.supporters = SupporterRepository(self.db)
        self.patrons = PatronRepository(self.db)
        self.stats = UsageStatsRepository(self.db)
        self.resolver = QuotaResolver(self.settings, self.supporters, self.patrons)
        self.limiters = LimiterRegistry(
            base_limit=self.settings.article_rate_limit,
            refresh_rate_minutes=self.settings.refresh_rate_minutes,
            scheduler=self.scheduler,
            stats=self.stats,
            tier_enabled=self.resolver.tier_enabled(),
            flush_interval_seconds=self.settings.stats_flush_interval_seconds,
        )
        self.delivery = DeliveryPipeline(self.limiters, sender, self.shard_id)

        self._command_setup = command_setup
        self._tasks: set[asyncio.Task] = set()
        self._store_handlers_registered = False

    # --- Outbound ---

    async def send(self, kind: MessageKind, payload: Any = None) -> None:
        """Send a control message to the parent process."""
        try:
            await self.channel.send(envelope(kind, payload))
        except FatalTransportError as e:
            self.log.error(f"Failed to send {kind.value} to parent: {e}")

    async def kill(self) -> None:
        """Ask the parent to terminate every shard."""
        await self.send(MessageKind.KILL)

    async def announce(self) -> None:
        """
        Report the connected shard to the parent and start listening to socket events.

        Called once the transport has logged in.
        """
        self.scheduler.start()
        self.transport.set_event_handlers(
            on_error=self.on_socket_error,
            on_resume=self.on_socket_resume,
            on_disconnect=self.on_socket_disconnect,
        )
        if self.settings.dev_dump_heap:
            await self._setup_heap_dumps()
        self.log.info(f"Logged in as {self.transport.user_label}")
        await self.send(
            MessageKind.SHARD_READY,
            ShardReadyPayload(
                guild_ids=self.transport.guild_ids(),
                channel_ids=self.transport.channel_ids(),
            ),
        )

    # --- Lifecycle ---

    async def start(self) -> None:
        if self.state in (ShardState.STARTING, ShardState.READY):
            self.log.warning(f"Ignoring start command because of {self.state.value} state")
            return
        self.state = ShardState.STARTING
        try:
            await self._startup()
        except Exception as e:
            # State stays STARTING so a second start cannot race a half-finished one
            self.log.error(f"Shard start failed: {e}", exc_info=True)

    async def _startup(self) -> None:
        settings = self.settings
        commands_enabled = not settings.commands_disabled
        self.scheduler.start()

        if (
            settings.database_required
            or self.resolver.tier_enabled()
            or self.db.state is ConnectionState.DISCONNECTED
        ):
            self._connect_store()
        self.db.init_db()

        if self._command_setup is not None:
            await self._command_setup(commands_enabled)

        self.log.info(f"Database URL detected as {'SQLite' if settings.is_sqlite else 'remote'} store")
        await run_maintenance(self.profiles, self.directory, set(self.transport.guild_ids()))
        self.state = ShardState.READY

        self.limiters.initialize(self.transport.channels(), self.resolver.valid_guilds())
        self.limiters.start()
        if settings.dev_dump_heap and not self.scheduler.has_job(HEAP_DUMP_JOB_ID):
            self._schedule_heap_dumps()
        self.log.info(f"Commands have been {'enabled' if commands_enabled else 'disabled'}.")
        await self.send(MessageKind.INIT_COMPLETE)
        self.transport.attach_listeners(commands_enabled)
        self.finished_init.set()

    def _connect_store(self) -> None:
        self.db.connect()
        if not self._store_handlers_registered:
            self.db.set_on_disconnect(self.on_store_disconnect)
            self.db.set_on_reconnect(self.on_store_reconnect)
            self.db.set_on_fatal(self.on_store_fatal)
            self._store_handlers_registered = True
        if not self.scheduler.has_job(STORE_WATCH_JOB_ID):
            self.scheduler.add_job(
                STORE_WATCH_JOB_ID,
                self.db.check_connection,
                seconds=self.settings.store_watch_interval_seconds,
            )

    async def stop(self) -> None:
        if self.state in (ShardState.STARTING, ShardState.STOPPED):
            self.log.warning(f"Ignoring stop command because of {self.state.value} state")
            return
        self.log.info("Received stop command")
        self.transport.detach_listeners()
        self.limiters.stop()
        self.scheduler.remove_job(HEAP_DUMP_JOB_ID)
        self.state = ShardState.STOPPED
        self.finished_init.clear()
        await self.send(MessageKind.SHARD_STOPPED)

    async def restart(self) -> None:
        if self.state is ShardState.STARTING:
            self.log.warning(f"Ignoring restart command because of {self.state.value} state")
            return
        if self.state is ShardState.READY:
            await self.stop()
        await self.start()

    async def shutdown(self) -> None:
        """Tear everything down before the process exits."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self.limiters.stop()
        try:
            await self.limiters.flush_usage()
        except Exception as e:
            self.log.error(f"Final usage flush failed: {e}")
        await self.scheduler.shutdown()
        self.db.close()
        self.channel.close()
        self.log.info("Shard shut down")

    async def _setup_heap_dumps(self) -> None:
        await self._dump_heap()
        self._schedule_heap_dumps()

    def _schedule_heap_dumps(self) -> None:
        self.scheduler.add_job(
            HEAP_DUMP_JOB_ID,
            self._dump_heap,
            minutes=self.settings.heap_dump_interval_minutes,
        )

    async def _dump_heap(self) -> None:
        try:
            dump_heap(f"s{self.shard_id}", Path(self.settings.heap_dump_dir))
        except OSError as e:
            self.log.error(f"Heap dump failed: {e}")

    # --- Inbound ---

    async def run(self) -> None:
        """Receive loop: dispatch every control message until the parent closes the channel."""
        while True:
            raw = await self.channel.receive()
            if raw is None:
                break
            self._spawn(self.handle_message(raw))
        self.log.info("Control channel closed")
        await self.drain()

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for every in-flight message handler."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def handle_message(self, raw: Any) -> None:
        message = parse_inbound(raw)
        if message is None:
            return
        try:
            if isinstance(message, StartInit):
                await self._on_start_init(message.payload.set_presence)
            elif isinstance(message, NewArticle):
                await self.on_new_article(message.payload.article, message.payload.debug)
            elif isinstance(message, FinishedInit):
                pass
            elif isinstance(message, SendUserAlert):
                channel_id = message.payload.channel
                try:
                    await self.send_user_alert(channel_id, message.payload.message)
                except Exception as e:
                    self.log.warning(f"Failed to send inter-process alert to channel {channel_id}: {e}")
        except Exception as e:
            self.log.error(f"Failed to handle {message.kind} message: {e}", exc_info=True)

    async def _on_start_init(self, set_presence: bool) -> None:
        if set_presence:
            settings = self.settings
            try:
                await self.transport.set_presence(
                    settings.bot_status,
                    activity_type=settings.bot_activity_type,
                    activity_name=settings.bot_activity_name,
                    url=settings.bot_stream_activity_url or None,
                )
            except Exception as e:
                self.log.warning(f"Failed to set presence: {e}")
        await self.start()

    async def on_new_article(self, article: Article, debug: bool = False) -> None:
        try:
            await self.delivery.deliver(article, debug)
        except Exception as e:
            self.log.error(f"Delivery pipeline error for channel {article.channel_id}: {e}")

    async def send_channel_message(self, channel_id: str, message: str) -> None:
        if self.transport.channel_guild_id(channel_id) is None:
            return
        if not self.transport.can_send(channel_id):
            self.log.warning(f"Missing permission to send message to channel {channel_id}")
            return
        await self.transport.send_channel_message(channel_id, message)

    async def send_user_alert(self, channel_id: str, message: str) -> None:
        """
        Direct-message a guild's alert subscribers.

        Falls back to posting in the channel when the guild has no profile or
        the subscribers cannot be reached.
        """
        guild_id = self.transport.channel_guild_id(channel_id)
        if guild_id is None:
            return
        alert_message = f"**ALERT**\n\n{message}"
        try:
            profile = self.profiles.get(guild_id)
            if profile is None:
                await self.send_channel_message(channel_id, alert_message)
                return
            for user_id in profile.alert:
                user = await self.transport.fetch_user(user_id)
                if user is not None:
                    await self.transport.send_direct_message(user_id, alert_message)
        except Exception as e:
            self.log.warning(f"Failed to send user alert to channel {channel_id}: {e}")
            await self.send_channel_message(channel_id, alert_message)

    # --- Transport and store events ---

    async def on_socket_error(self, error: BaseException | None = None) -> None:
        self.log.warning(f"Websocket error: {error}")
        await self._exit_or_stop()

    async def on_socket_resume(self) -> None:
        self.log.info("Websocket resumed")
        await self.start()

    async def on_socket_disconnect(self) -> None:
        self.log.warning("Websocket disconnected")
        await self._exit_or_stop()

    async def _exit_or_stop(self) -> None:
        if self.settings.exit_on_socket_issues:
            self.log.info("Stopping all processes due to exit_on_socket_issues")
            await self.kill()
        else:
            await self.stop()

    async def on_store_disconnect(self) -> None:
        self.log.error("Store disconnected")
        await self.stop()

    async def on_store_reconnect(self) -> None:
        self.log.info("Store reconnected")
        await self.restart()

    async def on_store_fatal(self, error: BaseException | None = None) -> None:
        self.log.critical(f"Store connection error: {error}")
        await self.kill()
