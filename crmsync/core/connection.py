"""
CRM Sync — Connection Manager.

Owns the single Socket.IO connection of an authenticated session. Retries are
delegated to python-socketio's own reconnection logic; this module only
configures it, tracks state, and makes sure that every listener is released
before a connection is dropped or replaced.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import socketio
from socketio import exceptions as sio_exceptions

from crmsync.core.subscriptions import SubscriptionRegistry

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionManager:
    """One logical real-time session, keyed by the bearer token."""

    def __init__(
        self,
        url: str,
        registry: SubscriptionRegistry | None = None,
        reconnection_attempts: int = 5,
        reconnection_delay_ms: int = 1000,
    ) -> None:
        self._url = url
        self.registry = registry or SubscriptionRegistry()
        self._reconnection_attempts = reconnection_attempts
        self._reconnection_delay = reconnection_delay_ms / 1000
        self._client: socketio.AsyncClient | None = None
        self._token: str | None = None
        self.state = ConnectionState.DISCONNECTED
        self.retry_count = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def token(self) -> str | None:
        return self._token

    async def update_auth(self, token: str | None, authenticated: bool) -> None:
        """Reconcile the connection with the current auth state.

        - not authenticated / no token -> tear down
        - new token -> tear down the old connection, open a new one
        - same token with a live client -> nothing to do
        """
        if not authenticated or not token:
            await self.close()
            self._token = None
            return

        if token == self._token and self._client is not None:
            return

        if self._client is not None:
            logger.info("Token changed, replacing real-time connection")
            await self.close()

        self._token = token
        await self._open(token)

    async def _open(self, token: str) -> None:
        client = socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=self._reconnection_attempts,
            reconnection_delay=self._reconnection_delay,
            reconnection_delay_max=self._reconnection_delay,
            randomization_factor=0,
            logger=False,
        )
        client.on("connect", self._on_connect)
        client.on("disconnect", self._on_disconnect)
        client.on("connect_error", self._on_connect_error)
        client.on("*", self._on_event)

        self._client = client
        self.state = ConnectionState.CONNECTING
        self.retry_count = 0

        try:
            await client.connect(self._url, auth={"token": token}, retry=True)
        except sio_exceptions.ConnectionError as exc:
            logger.error("Socket connection error: %s", exc)
            if self._client is client:
                self.state = ConnectionState.DISCONNECTED

    async def close(self) -> None:
        """Release every listener, disconnect, drop the client handle."""
        self.registry.release_all()

        client = self._client
        self._client = None
        self.state = ConnectionState.DISCONNECTED
        if client is None:
            return

        try:
            await client.disconnect()
        except Exception as exc:
            logger.warning("Error while disconnecting socket: %s", exc)
        logger.info("Real-time connection closed")

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    async def _on_connect(self) -> None:
        self.state = ConnectionState.CONNECTED
        self.retry_count = 0
        logger.info("Socket connected to %s", self._url)

    async def _on_disconnect(self, reason: Any = None) -> None:
        if self._client is None:
            return
        self.state = ConnectionState.DISCONNECTED
        logger.info("Socket disconnected (%s)", reason)

    async def _on_connect_error(self, data: Any = None) -> None:
        self.retry_count += 1
        logger.error(
            "Socket connection error (attempt %d/%d): %s",
            self.retry_count, self._reconnection_attempts, data,
        )

    async def _on_event(self, event: str, *args: Any) -> None:
        await self.registry.dispatch(event, *args)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def emit(self, event: str, data: Any = None) -> bool:
        """Send an event; a no-op while there is no live connection."""
        if self._client is None or not self.is_connected:
            logger.debug("Not connected, dropping outbound '%s'", event)
            return False
        try:
            await self._client.emit(event, data)
        except sio_exceptions.SocketIOError as exc:
            logger.warning("Failed to emit '%s': %s", event, exc)
            return False
        return True

    async def join_page(self, page_id: str) -> bool:
        return await self.emit("join-page", page_id)

    async def leave_page(self, page_id: str) -> bool:
        return await self.emit("leave-page", page_id)
