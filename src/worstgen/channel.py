"""
Worst Generation - Duplex event channel to the relay.

The relay speaks the Socket.IO event protocol. Higher layers only see the
abstract Channel: named events in, named events out, plus the connection
signals connect, connect-error and disconnect.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import socketio
from socketio import exceptions as sio_exceptions

from .constants import (
    CONNECT_TIMEOUT,
    EVENT_CONNECT,
    EVENT_CONNECT_ERROR,
    EVENT_DISCONNECT,
)
from .errors import ErrorCode, NetworkError

logger = logging.getLogger(__name__)

# Channel event name -> Socket.IO reserved event name
_RESERVED_EVENTS = {
    EVENT_CONNECT: "connect",
    EVENT_CONNECT_ERROR: "connect_error",
    EVENT_DISCONNECT: "disconnect",
}


class Channel(ABC):
    """Abstract duplex event channel."""

    def __init__(self):
        self.event_callbacks: Dict[str, List[Callable]] = {}

    def on(self, event: str, callback: Callable) -> None:
        """Register a callback for a channel event (sync or async)."""
        self.event_callbacks.setdefault(event, []).append(callback)

    def off(self, event: str, callback: Callable) -> None:
        """Remove a callback registered with on(); unknown callbacks are ignored."""
        callbacks = self.event_callbacks.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    async def dispatch(self, event: str, data: Any = None) -> None:
        """Deliver an inbound event to every registered callback, in order."""
        for callback in list(self.event_callbacks.get(event, [])):
            try:
                if inspect.iscoroutinefunction(callback):
                    await callback(data)
                else:
                    callback(data)
            except Exception as e:
                logger.error(f"Error in {event} callback: {e}", exc_info=True)

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether the channel is currently open."""

    @abstractmethod
    async def connect(self, url: str) -> None:
        """Open the channel. Raises NetworkError if the relay is unreachable."""

    @abstractmethod
    async def emit(self, event: str, data: Dict[str, Any]) -> None:
        """Send an event to the relay."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the channel."""


class SocketIOChannel(Channel):
    """Channel backed by python-socketio's AsyncClient."""

    def __init__(self, client: Optional[socketio.AsyncClient] = None, wait_timeout: int = CONNECT_TIMEOUT):
        super().__init__()
        self.sio = client or socketio.AsyncClient(reconnection=False)
        self.wait_timeout = wait_timeout
        self._forwarded: set = set()

    @property
    def connected(self) -> bool:
        return bool(self.sio.connected)

    def on(self, event: str, callback: Callable) -> None:
        super().on(event, callback)
        if event in self._forwarded:
            return
        self._forwarded.add(event)
        wire_event = _RESERVED_EVENTS.get(event, event)

        async def forward(*args):
            # connect carries no data; disconnect may carry a reason
            data = args[0] if args else None
            await self.dispatch(event, data)

        self.sio.on(wire_event, forward)

    async def connect(self, url: str) -> None:
        try:
            await self.sio.connect(url, wait_timeout=self.wait_timeout)
        except sio_exceptions.ConnectionError as e:
            logger.error(f"Connection to {url} failed: {e}")
            raise NetworkError(
                ErrorCode.E201_CONNECTION_FAILED,
                f"Failed to connect to {url}: {e}",
                {"url": url},
            ) from e
        logger.info(f"Connected to {url}")

    async def emit(self, event: str, data: Dict[str, Any]) -> None:
        if not self.connected:
            raise NetworkError(ErrorCode.E204_SEND_FAILED, f"Cannot send {event}: not connected")
        try:
            await self.sio.emit(event, data)
        except sio_exceptions.BadNamespaceError as e:
            raise NetworkError(ErrorCode.E204_SEND_FAILED, f"Cannot send {event}: {e}") from e

    async def disconnect(self) -> None:
        if self.sio.connected:
            await self.sio.disconnect()
            logger.info("Disconnected from relay")
