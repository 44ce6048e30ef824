"""Entry point for a shard process."""

import asyncio
import logging
import signal
from multiprocessing.connection import Connection

import httpx

from feedrelay.config import Settings, get_settings
from feedrelay.ipc.channel import PipeControlChannel
from feedrelay.shard.coordinator import CommandSetup, ShardCoordinator
from feedrelay.transport.base import ArticleSender, ChatTransport, IdentityDirectory
from feedrelay.transport.directory import HttpIdentityDirectory

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_directory(settings: Settings) -> HttpIdentityDirectory:
    """Identity directory client configured from settings."""
    return HttpIdentityDirectory(
        base_url=settings.directory_base_url,
        token=settings.directory_token,
        timeout=httpx.Timeout(
            connect=settings.http_timeout_connect,
            read=settings.http_timeout_read,
            write=settings.http_timeout_connect,
            pool=settings.http_timeout_connect,
        ),
        max_retries=settings.http_max_retries,
    )


async def serve(coordinator: ShardCoordinator) -> None:
    """
    Run a shard until its parent closes the control channel or a signal arrives.

    The shard waits for the parent's START_INIT before starting; this only
    announces it and runs the receive loop.
    """
    loop = asyncio.get_running_loop()

    def request_exit(signum: int) -> None:
        logger.info(f"Received signal {signum}")
        coordinator.channel.close()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, request_exit, signum)
        except (NotImplementedError, RuntimeError):
            # Not available on Windows or outside the main thread
            pass

    try:
        await coordinator.announce()
        await coordinator.run()
    finally:
        await coordinator.shutdown()


def run_shard(
    transport: ChatTransport,
    connection: Connection,
    sender: ArticleSender,
    directory: IdentityDirectory | None = None,
    settings: Settings | None = None,
    command_setup: CommandSetup | None = None,
) -> None:
    """
    Process target for one shard.

    Args:
        transport: Logged-in chat transport for this shard
        connection: Child end of the pipe to the parent process
        sender: Article sender
        directory: Identity directory (HTTP directory from settings if omitted)
        settings: Settings snapshot
        command_setup: Chat command registration hook
    """
    settings = settings or get_settings()
    configure_logging(settings)

    async def _main() -> None:
        http_directory = build_directory(settings) if directory is None else None
        coordinator = ShardCoordinator(
            transport=transport,
            channel=PipeControlChannel(connection),
            sender=sender,
            directory=directory or http_directory,
            settings=settings,
            command_setup=command_setup,
        )
        try:
            await serve(coordinator)
        finally:
            if http_directory is not None:
                await http_directory.close()

    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        logger.info("Shard interrupted")
