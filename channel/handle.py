"""Channel handle: the one socket.io connection shared by every component.

Wraps ``socketio.AsyncClient`` behind a small named-event API (connect,
emit, on/off) with subscription tokens.  All access happens on the asyncio
loop, so no locking is needed.  The module-level singleton is created on
first use and torn down on process exit (see ``close_channel``).

Inbound events reach subscribers through a single catch-all handler; the
channel also dispatches ``connect``/``disconnect`` pseudo-events so callers
can reflect "not connected" state.
"""

import inspect
import itertools
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import socketio

from channel import protocol
from config import settings

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


@dataclass(frozen=True)
class Subscription:
    """Token returned by :meth:`Channel.on`; pass to :meth:`Channel.off`."""

    event: str
    handler: Handler
    token: int


class Channel:
    """Bidirectional named-event channel to the remote service."""

    def __init__(
        self,
        url: str | None = None,
        client: socketio.AsyncClient | None = None,
        transports: list[str] | None = None,
    ) -> None:
        self.url = url or settings.ROBOT_SERVER_URL
        self._transports = transports or list(settings.SOCKET_TRANSPORTS)
        self._sio = client if client is not None else socketio.AsyncClient(reconnection=True, logger=False)
        self._subs: dict[str, list[Subscription]] = {}
        self._tokens = itertools.count(1)
        self._sio.on("connect", self._on_connect)
        self._sio.on("disconnect", self._on_disconnect)
        self._sio.on("*", self._on_any)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        return bool(self._sio.connected)

    async def connect(self) -> bool:
        """Open the connection (once). Returns False if the server is unreachable."""
        if self.connected:
            return True
        try:
            await self._sio.connect(
                self.url,
                transports=self._transports,
                wait_timeout=settings.SOCKET_CONNECT_TIMEOUT_SEC,
            )
        except socketio.exceptions.ConnectionError as e:
            logger.warning("Could not connect to %s: %s", self.url, e)
            return False
        return True

    async def disconnect(self) -> None:
        if self.connected:
            await self._sio.disconnect()

    async def _on_connect(self) -> None:
        logger.info("Connected to %s", self.url)
        await self._dispatch(protocol.CONNECT, None)

    async def _on_disconnect(self, *args: Any) -> None:
        logger.warning("Disconnected from %s", self.url)
        await self._dispatch(protocol.DISCONNECT, args[0] if args else None)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def emit(self, event: str, payload: Any = None) -> bool:
        """Send ``event`` with ``payload``.

        Returns False without sending when the channel is not connected; the
        caller decides what "not connected" looks like to the user.
        """
        if not self.connected:
            logger.warning("Not connected; dropped %r", event)
            return False
        try:
            await self._sio.emit(event, payload)
        except socketio.exceptions.SocketIOError as e:
            logger.warning("Emit %r failed: %s", event, e)
            return False
        logger.debug("Emitted %r", event)
        return True

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on(self, event: str, handler: Handler) -> Subscription:
        """Subscribe ``handler(payload)`` (sync or async) to ``event``."""
        sub = Subscription(event=event, handler=handler, token=next(self._tokens))
        self._subs.setdefault(event, []).append(sub)
        return sub

    def off(self, sub: Subscription) -> None:
        """Release a subscription. Releasing twice is harmless."""
        subs = self._subs.get(sub.event)
        if subs and sub in subs:
            subs.remove(sub)
            if not subs:
                del self._subs[sub.event]

    @contextmanager
    def subscribed(self, handlers: dict[str, Handler]) -> Iterator[list[Subscription]]:
        """Subscribe several handlers for the duration of a ``with`` block."""
        subs = [self.on(event, handler) for event, handler in handlers.items()]
        try:
            yield subs
        finally:
            for sub in subs:
                self.off(sub)

    def subscriber_count(self, event: str) -> int:
        return len(self._subs.get(event, ()))

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def _on_any(self, event: str, *args: Any) -> None:
        await self._dispatch(event, args[0] if args else None)

    async def _dispatch(self, event: str, payload: Any) -> None:
        """Deliver ``payload`` to every subscriber of ``event``; contain handler errors."""
        subs = list(self._subs.get(event, ()))
        if not subs:
            logger.debug("No subscriber for %r", event)
            return
        for sub in subs:
            try:
                result = sub.handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Handler for %r failed", event)


# Module-level singleton
_channel: Channel | None = None


def get_channel() -> Channel:
    """The process-wide channel (created on first call, not yet connected)."""
    global _channel
    if _channel is None:
        _channel = Channel()
    return _channel


async def close_channel() -> None:
    """Disconnect and forget the singleton (process exit)."""
    global _channel
    if _channel is not None:
        await _channel.disconnect()
        _channel = None
