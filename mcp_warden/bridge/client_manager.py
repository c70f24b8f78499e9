"""Backend MCP server connection management.

:class:`ConnectionManager` owns the registry of live backend connections.
Each connection's transport and session belong to a single owner task that
enters and exits them; the manager only ever talks to that task through
two events (ready, stop).
"""

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncContextManager, Callable, Dict, Iterator, List, Optional

from mcp import ClientSession

from mcp_warden.bridge.transports import TRANSPORT_KINDS, open_backend_session
from mcp_warden.config.schema import BackendConfig
from mcp_warden.constants import CLOSE_TIMEOUT, MCP_INIT_TIMEOUT
from mcp_warden.errors import (
    AlreadyConnectedError,
    BackendServerError,
    CloseAllError,
    HandshakeError,
    UnknownBackendError,
    UnsupportedTransportError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

#: ``connector(backend_id, definition)`` returns an async context manager
#: yielding an *uninitialized* client session.
Connector = Callable[[str, BackendConfig], AsyncContextManager[ClientSession]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class RegistryLock:
    """Reader/writer lock: many concurrent readers or one writer.

    Held only around dictionary access, never across an ``await``.  All
    callers run on the one event-loop thread, so a waiter never actually
    blocks; a caller on another thread would block that loop while waiting.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextlib.contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextlib.contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass(eq=False)
class BackendConnection:
    """One backend's transport + session, driven by its owner task."""

    backend_id: str
    definition: BackendConfig
    state: ConnectionState = ConnectionState.DISCONNECTED
    session: Optional[ClientSession] = None
    error: Optional[BaseException] = None
    _ready: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    _stop: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    _task: Optional["asyncio.Task[None]"] = field(default=None, repr=False)
    _close_error: Optional[BaseException] = field(default=None, repr=False)

    @property
    def display_name(self) -> str:
        return self.definition.display_name or self.backend_id

    @property
    def fetch_timeout(self) -> Optional[float]:
        return self.definition.timeouts.cap_fetch

    def require_session(self) -> ClientSession:
        """Return the live session or raise :class:`UpstreamUnavailableError`."""
        session = self.session
        if session is None or self.state is not ConnectionState.CONNECTED:
            raise UpstreamUnavailableError(self.backend_id)
        return session

    async def _own(self, connector: Connector, init_timeout: float) -> None:
        """Owner task: enter transport + session, handshake, park, exit."""
        try:
            async with connector(self.backend_id, self.definition) as session:
                logger.info(
                    "[%s] Initializing MCP connection (timeout: %ss)...",
                    self.backend_id,
                    init_timeout,
                )
                await asyncio.wait_for(session.initialize(), timeout=init_timeout)
                self.session = session
                self.state = ConnectionState.CONNECTED
                self._ready.set()
                await self._stop.wait()
        except Exception as exc:
            if self._ready.is_set():
                self._close_error = exc
            else:
                self.error = exc
                self.state = ConnectionState.FAILED
        finally:
            self.session = None
            if self.state is ConnectionState.CONNECTED:
                self.state = ConnectionState.DISCONNECTED
            self._ready.set()

    async def open(self, connector: Connector, init_timeout: float) -> None:
        """Start the owner task and wait for the handshake to finish.

        Raises :class:`HandshakeError` if the transport or ``initialize``
        fails.
        """
        self.state = ConnectionState.CONNECTING
        self._task = asyncio.create_task(
            self._own(connector, init_timeout), name=f"backend_{self.backend_id}"
        )
        try:
            await self._ready.wait()
        except asyncio.CancelledError:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            raise
        if self.state is not ConnectionState.CONNECTED:
            await asyncio.gather(self._task, return_exceptions=True)
            cause = self.error or RuntimeError("owner task ended before the handshake completed")
            raise HandshakeError(self.backend_id, cause)

    async def close(self, timeout: float = CLOSE_TIMEOUT) -> None:
        """Ask the owner task to exit and wait for it.

        Re-raises whatever the transport raised while shutting down.
        """
        task = self._task
        if task is None:
            self.state = ConnectionState.DISCONNECTED
            return
        self._stop.set()
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            self.state = ConnectionState.DISCONNECTED
            raise BackendServerError(f"close timed out after {timeout}s", svr_name=self.backend_id)
        self.state = ConnectionState.DISCONNECTED
        if self._close_error is not None:
            raise self._close_error


def _log_backend_fail(backend_id: str, kind: str, exc: BaseException) -> None:
    """Log a failed connect with a hint for the common stdio mistake."""
    cause = getattr(exc, "orig_exc", None) or exc
    logger.error(
        "[%s] (%s) connect/initialize failed: %s: %s",
        backend_id,
        kind,
        type(cause).__name__,
        cause,
    )
    if kind == "stdio" and isinstance(cause, FileNotFoundError):
        logger.error("[%s] Check that the configured command exists and is on PATH.", backend_id)


class ConnectionManager:
    """Registry of live backend connections keyed by backend id.

    Parameters
    ----------
    connector:
        Factory for uninitialized sessions.  Defaults to
        :func:`~mcp_warden.bridge.transports.open_backend_session`.
    init_timeout:
        Handshake bound used when a backend does not set ``timeouts.init``.
    close_timeout:
        How long :meth:`close_all` waits for each backend to shut down.
    """

    def __init__(
        self,
        connector: Optional[Connector] = None,
        init_timeout: float = MCP_INIT_TIMEOUT,
        close_timeout: float = CLOSE_TIMEOUT,
    ) -> None:
        self._connector: Connector = connector or open_backend_session
        self._init_timeout = init_timeout
        self._close_timeout = close_timeout
        self._connections: Dict[str, BackendConnection] = {}
        self._lock = RegistryLock()

    async def connect(self, backend_id: str, definition: BackendConfig) -> BackendConnection:
        """Build the transport, run the handshake and register the connection.

        Raises:
            UnsupportedTransportError: unknown transport kind.
            AlreadyConnectedError: *backend_id* is already registered; the
                existing connection is left untouched.
            HandshakeError: transport or ``initialize`` failed.  The id is
                released so a later ``connect`` may succeed.
        """
        kind = getattr(definition.transport, "kind", None)
        if kind not in TRANSPORT_KINDS:
            raise UnsupportedTransportError(backend_id, kind)

        conn = BackendConnection(backend_id=backend_id, definition=definition)
        with self._lock.write():
            if backend_id in self._connections:
                raise AlreadyConnectedError(backend_id)
            conn.state = ConnectionState.CONNECTING
            self._connections[backend_id] = conn

        logger.info("[%s] Attempting connection, transport: %s...", backend_id, kind)
        init_timeout = definition.timeouts.init or self._init_timeout
        try:
            await conn.open(self._connector, init_timeout)
        except BaseException as exc:
            with self._lock.write():
                if self._connections.get(backend_id) is conn:
                    del self._connections[backend_id]
            if isinstance(exc, Exception):
                _log_backend_fail(backend_id, kind, exc)
            raise

        logger.info("MCP connection initialized for server '%s' (%s).", backend_id, kind)
        return conn

    def get(self, backend_id: str) -> BackendConnection:
        """Return the registered connection or raise :class:`UnknownBackendError`."""
        with self._lock.read():
            conn = self._connections.get(backend_id)
        if conn is None:
            raise UnknownBackendError(backend_id)
        return conn

    def list(self) -> List[BackendConnection]:
        """Snapshot of all registered connections in registration order."""
        with self._lock.read():
            return list(self._connections.values())

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._connections)

    def __contains__(self, backend_id: object) -> bool:
        with self._lock.read():
            return backend_id in self._connections

    async def close_all(self) -> None:
        """Close every connection, then raise :class:`CloseAllError` if any failed.

        The registry is emptied first so later ``connect`` calls succeed
        regardless of close failures.
        """
        with self._lock.write():
            connections = list(self._connections.values())
            self._connections.clear()

        if not connections:
            return
        logger.info("Closing %d backend connection(s)...", len(connections))
        results = await asyncio.gather(
            *(conn.close(self._close_timeout) for conn in connections),
            return_exceptions=True,
        )
        errors: Dict[str, BaseException] = {}
        for conn, result in zip(connections, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "[%s] Error while closing: %s: %s",
                    conn.backend_id,
                    type(result).__name__,
                    result,
                )
                errors[conn.backend_id] = result
        if errors:
            raise CloseAllError(errors)
        logger.info("All backend connections closed.")
