"""Database connection manager with SQLite WAL mode support and connection monitoring."""

import inspect
import logging
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Generator

from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker

from feedrelay.db.base import Base
from feedrelay.errors import FatalTransportError, TransientIOError

logger = logging.getLogger(__name__)

StoreHandler = Callable[..., Awaitable[None] | None]


class ConnectionState(str, Enum):
    """Store connection states as seen by the monitor."""

    NOT_CONNECTED = "not_connected"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


class DatabaseManager:
    """Manages database connections and sessions with SQLite optimizations."""

    def __init__(
        self,
        database_url: str = "sqlite:///data/feedrelay.db",
        echo: bool = False,
        max_reconnect_attempts: int = 10,
    ) -> None:
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL
            echo: Enable SQL echo logging
            max_reconnect_attempts: Consecutive failed checks before the loss is fatal
        """
        self._database_url = database_url
        self._echo = echo
        self._max_reconnect_attempts = max_reconnect_attempts
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

        self._state = ConnectionState.NOT_CONNECTED
        self._failures = 0
        self._disconnect_pending = False

        # Callbacks
        self._on_disconnect: StoreHandler | None = None
        self._on_reconnect: StoreHandler | None = None
        self._on_fatal: StoreHandler | None = None

    @property
    def database_url(self) -> str:
        return self._database_url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    def _create_engine(self) -> Engine:
        """Create a new SQLAlchemy engine with SQLite optimizations."""
        # Ensure data directory exists for SQLite
        if self._database_url.startswith("sqlite:///"):
            db_path = self._database_url.replace("sqlite:///", "")
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(
            self._database_url,
            echo=self._echo,
            pool_pre_ping=True,  # Enable connection health checks
        )

        # Configure SQLite pragmas for performance
        if self._database_url.startswith("sqlite"):
            self._configure_sqlite_pragmas(engine)

        @event.listens_for(engine, "handle_error")
        def on_engine_error(context) -> None:  # type: ignore
            if context.is_disconnect and self._state is ConnectionState.CONNECTED:
                logger.error("Database connection dropped")
                self._state = ConnectionState.DISCONNECTED
                self._disconnect_pending = True

        return engine

    def _configure_sqlite_pragmas(self, engine: Engine) -> None:
        """Configure SQLite-specific pragmas for performance."""

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record) -> None:  # type: ignore
            cursor = dbapi_connection.cursor()
            # Enable WAL mode for better concurrency
            cursor.execute("PRAGMA journal_mode=WAL")
            # Faster synchronous mode (still safe with WAL)
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

        logger.info("SQLite pragmas configured")

    @property
    def session_factory(self) -> sessionmaker[Session]:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Get a database session with automatic cleanup.

        Yields:
            SQLAlchemy Session instance

        Usage:
            with db_manager.get_session() as session:
                session.get(ProfileRow, guild_id)
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_db(self) -> None:
        """Create all tables if they don't exist."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created/verified")

    def health_check(self) -> bool:
        """
        Check if the database connection is healthy.

        Returns:
            True if connection is healthy, False otherwise
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def connect(self) -> None:
        """
        Verify connectivity and start tracking the connection state.

        Raises:
            TransientIOError: If the database cannot be reached
        """
        if not self.health_check():
            raise TransientIOError(f"Could not connect to database {self._safe_url}")
        self._state = ConnectionState.CONNECTED
        self._failures = 0
        logger.info(f"Connected to database {self._safe_url}")

    @property
    def _safe_url(self) -> str:
        return self.engine.url.render_as_string(hide_password=True)

    def set_on_disconnect(self, callback: StoreHandler) -> None:
        """Set callback for a dropped connection."""
        self._on_disconnect = callback

    def set_on_reconnect(self, callback: StoreHandler) -> None:
        """Set callback for a restored connection."""
        self._on_reconnect = callback

    def set_on_fatal(self, callback: StoreHandler) -> None:
        """Set callback for an unrecoverable connection loss."""
        self._on_fatal = callback

    async def _notify(self, callback: StoreHandler | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error in store event callback: {e}")

    async def check_connection(self) -> bool:
        """
        Probe the database and fire state-transition callbacks.

        Returns:
            True if the database answered the probe
        """
        if self._state in (ConnectionState.NOT_CONNECTED, ConnectionState.FAILED):
            return self._state is not ConnectionState.FAILED and self.health_check()

        if self._disconnect_pending:
            self._disconnect_pending = False
            await self._notify(self._on_disconnect)

        if self.health_check():
            self._failures = 0
            if self._state is ConnectionState.DISCONNECTED:
                self._state = ConnectionState.CONNECTED
                logger.info("Database reconnected")
                await self._notify(self._on_reconnect)
            return True

        self._failures += 1
        if self._state is ConnectionState.CONNECTED:
            self._state = ConnectionState.DISCONNECTED
            logger.error("Database disconnected")
            await self._notify(self._on_disconnect)

        if self._failures >= self._max_reconnect_attempts:
            self._state = ConnectionState.FAILED
            logger.critical(f"Database unreachable after {self._failures} attempts")
            await self._notify(
                self._on_fatal,
                FatalTransportError(f"Lost database connection to {self._safe_url}"),
            )
        return False

    def close(self) -> None:
        """Close the database engine and release resources."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._state = ConnectionState.NOT_CONNECTED
            logger.info("Database connection closed")
