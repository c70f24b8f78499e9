"""Runtime assembly - startup and shutdown sequences.

:class:`GatewayRuntime` turns a validated configuration into live backend
connections plus the dispatchers that serve them: one :class:`Hub` and,
when ``exposePerServer`` is set, one :class:`IsolatedProxy` per backend.
"""

import asyncio
import logging
from typing import Dict, Optional

from mcp_warden.bridge.client_manager import ConnectionManager, Connector
from mcp_warden.bridge.hub import Hub
from mcp_warden.bridge.isolated import IsolatedProxy
from mcp_warden.config.schema import WardenConfig
from mcp_warden.errors import BackendServerError, CloseAllError, ConfigurationError
from mcp_warden.policy.engine import PolicyEngine

logger = logging.getLogger(__name__)


class GatewayRuntime:
    """Owns the connection manager and policy engine for one serving process."""

    def __init__(
        self,
        config: WardenConfig,
        profile_id: Optional[str] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self.config = config
        self.profile_id = profile_id or config.default_profile
        if self.profile_id not in config.profiles:
            raise ConfigurationError(f"Profile '{self.profile_id}' is not defined.")
        self.policy = PolicyEngine.from_config(config)
        self.manager = ConnectionManager(connector=connector)
        self.hub: Optional[Hub] = None
        self.proxies: Dict[str, IsolatedProxy] = {}

    async def start(self) -> None:
        """Connect every configured backend concurrently, then build dispatchers.

        Raises:
            BackendServerError: one or more backends failed to connect.  All
                connections that did open are closed first.
        """
        servers = self.config.servers
        logger.info(
            "Starting %d backend connection(s) under profile '%s'...",
            len(servers),
            self.profile_id,
        )
        try:
            results = await asyncio.gather(
                *(
                    self.manager.connect(backend_id, definition)
                    for backend_id, definition in servers.items()
                ),
                return_exceptions=True,
            )
        except BaseException:
            await self._close_after_failure()
            raise

        failures = {
            backend_id: result
            for backend_id, result in zip(servers, results)
            if isinstance(result, BaseException)
        }
        if failures:
            await self._close_after_failure()
            details = "; ".join(f"{name}: {exc}" for name, exc in failures.items())
            raise BackendServerError(f"{len(failures)} backend(s) failed to start: {details}")

        self._build_dispatchers()
        logger.info("All %d backend(s) connected.", len(servers))

    def _build_dispatchers(self) -> None:
        if self.config.hub.enabled:
            self.hub = Hub(
                self.manager,
                self.policy,
                self.profile_id,
                prefix_enabled=self.config.hub.prefix_server_ids,
            )
        if self.config.expose_per_server:
            self.proxies = {
                conn.backend_id: IsolatedProxy(conn, self.policy, self.profile_id)
                for conn in self.manager.list()
            }

    async def _close_after_failure(self) -> None:
        try:
            await self.manager.close_all()
        except CloseAllError as exc:
            logger.warning("Cleanup after failed startup: %s", exc)

    async def stop(self) -> None:
        """Close every backend connection; close errors are logged, not raised."""
        self.hub = None
        self.proxies = {}
        try:
            await self.manager.close_all()
        except CloseAllError as exc:
            logger.error("%s", exc)

    def reload_profiles(self, config: WardenConfig) -> None:
        """Swap in the profiles of a freshly loaded configuration."""
        if self.profile_id not in config.profiles:
            raise ConfigurationError(f"Profile '{self.profile_id}' is not defined.")
        self.policy.reload(config.profiles)

    async def __aenter__(self) -> "GatewayRuntime":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
