"""Asynchronous session for hackchatpy.

Provides an asyncio interface for joining a hack.chat channel, sending
messages and consuming chat events using aiohttp websockets.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from .exceptions import ConnectionError, HackChatError, MessageError, ProtocolError
from .handlers import (
    ErrorHandlerFunc,
    EventHandlers,
    HandlerFunc,
    SocketErrorHandlerFunc,
)
from .models import EventType
from .protocol import ProtocolHandler
from .session import DEFAULT_URL, KEEPALIVE_INTERVAL

logger = logging.getLogger(__name__)

_STREAM_END_TYPES = (
    aiohttp.WSMsgType.CLOSE,
    aiohttp.WSMsgType.CLOSING,
    aiohttp.WSMsgType.CLOSED,
)


class AsyncSession:
    """Asynchronous session for a hack.chat channel."""

    def __init__(
        self,
        nickname: str,
        channel: str,
        url: str = DEFAULT_URL,
        user_agent: str = "hackchatpy/0.1.0",
    ) -> None:
        """Initialize a new async chat session.

        Args:
            nickname: Nickname to join with, also used to skip our own echoes
            channel: Channel to join
            url: WebSocket URL for the chat server, ChatEnvironment.PRODUCTION
                 by default
            user_agent: User agent string to use for connection
        """
        self._nickname = nickname
        self._channel = channel
        self.url = url
        self.user_agent = user_agent

        # Internal state
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._session: aiohttp.ClientSession | None = None
        self._connected = False
        self._stream_ended = False
        self._send_lock = asyncio.Lock()
        self._recv_lock = asyncio.Lock()

        # Keepalive state
        self._keepalive_interval = KEEPALIVE_INTERVAL
        self._keepalive_task: asyncio.Task[None] | None = None

        # Protocol and event handling
        self.protocol = ProtocolHandler()
        self.handlers = EventHandlers()

    @classmethod
    async def connect(cls, nickname: str, channel: str, **kwargs: Any) -> "AsyncSession":
        """Create a session and open it in one step."""
        session = cls(nickname, channel, **kwargs)
        await session.open()
        return session

    @property
    def nickname(self) -> str:
        """Nickname this session joined with."""
        return self._nickname

    @property
    def channel(self) -> str:
        """Channel this session joined."""
        return self._channel

    def set_url(self, url: str) -> None:
        """Set the websocket URL."""
        if self._connected:
            raise HackChatError("Cannot change URL while connected")
        self.url = url

    def set_user_agent(self, user_agent: str) -> None:
        """Set the user agent string."""
        self.user_agent = user_agent

    def set_keepalive_interval(self, interval: float) -> None:
        """Set the default period between keepalive pings, in seconds."""
        if interval <= 0:
            raise ValueError("Keepalive interval must be positive")
        self._keepalive_interval = interval

    async def open(self) -> None:
        """Open a connection and join the channel.

        Raises:
            ConnectionError: If the connection or the join handshake fails
        """
        if self._connected:
            logger.warning("Already connected")
            return

        try:
            self._session = aiohttp.ClientSession()

            headers = {"User-Agent": self.user_agent}

            logger.info(f"Connecting to {self.url}")
            # Pings must reach next_event() so the pong goes through our lock
            self._ws = await self._session.ws_connect(
                self.url, headers=headers, autoping=False
            )

            join_msg = self.protocol.format_join(self._nickname, self._channel)
            async with self._send_lock:
                await self._ws.send_str(join_msg)

            self._connected = True
            self._stream_ended = False
            logger.info(f"Joined ?{self._channel} as {self._nickname}")

        except Exception as e:
            logger.error(f"Failed to connect: {e}")
            await self._cleanup()
            raise ConnectionError(f"Failed to connect: {e}") from e

    async def close(self) -> None:
        """Stop the keepalive and close the connection."""
        if not self._connected:
            return

        logger.info("Closing connection")
        await self.stop_keepalive()
        self._connected = False
        self._stream_ended = True

        try:
            if self._ws and not self._ws.closed:
                await self._ws.close()
        except Exception as e:
            logger.error(f"Error closing websocket: {e}")

        await self._cleanup()
        logger.info("Connection closed")

    def is_connected(self) -> bool:
        """Check if the session is connected."""
        return self._connected and self._ws is not None and not self._ws.closed

    # Message sending methods
    async def send_message(self, text: str) -> None:
        """Send a chat message to the channel."""
        await self._send(self.protocol.format_chat(text), "message")

    async def request_stats(self) -> None:
        """Ask the server for its stats; the reply arrives as an Info event."""
        await self._send(self.protocol.format_stats(), "stats request")

    async def send_ping(self) -> None:
        """Send a keepalive ping packet."""
        await self._send(self.protocol.format_ping(), "ping")

    async def _send(self, payload: str, description: str) -> None:
        ws = self._ws
        if not self._connected or ws is None:
            raise ConnectionError("Not connected")

        try:
            async with self._send_lock:
                await ws.send_str(payload)
            logger.debug(f"Sent {description}: {payload}")
        except Exception as e:
            logger.error(f"Failed to send {description}: {e}")
            raise MessageError(f"Failed to send {description}: {e}") from e

    # Keepalive
    def start_keepalive(self, interval: float | None = None) -> bool:
        """Start a background task that pings every ``interval`` seconds.

        Must be called from a running event loop. Returns False if a keepalive
        task is already running for this session.
        """
        if not self._connected:
            raise ConnectionError("Not connected")

        if self._keepalive_task and not self._keepalive_task.done():
            logger.warning("Keepalive already running")
            return False

        period = self._keepalive_interval if interval is None else interval
        if period <= 0:
            raise ValueError("Keepalive interval must be positive")

        self._keepalive_task = asyncio.create_task(self._keepalive_loop(period))
        logger.debug(f"Keepalive started with {period}s interval")
        return True

    async def stop_keepalive(self) -> None:
        """Cancel the keepalive task and wait for it to finish."""
        task = self._keepalive_task
        self._keepalive_task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def is_keepalive_running(self) -> bool:
        """Check if the keepalive task is alive."""
        return self._keepalive_task is not None and not self._keepalive_task.done()

    async def _keepalive_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.send_ping()
            except ConnectionError:
                logger.debug("Keepalive stopping, session is closed")
                break
            except MessageError as e:
                await self.handlers.dispatch_socket_error_async(e, self)

    # Event stream
    async def next_event(self) -> EventType | None:
        """Wait for the next chat event.

        Same semantics as ``Session.next_event``: pings are answered, own
        echoes and unknown packets are skipped, bad frames are reported, and
        None marks the end of the stream, after which the session is
        disconnected if the server went away.
        """
        if self._stream_ended:
            return None

        ws = self._ws
        if ws is None:
            raise ConnectionError("Not connected")

        while True:
            try:
                async with self._recv_lock:
                    msg = await ws.receive()
            except (aiohttp.ClientError, OSError) as e:
                if not self._connected or ws.closed:
                    return await self._end_stream(transport_closed=self._connected)
                logger.error(f"Failed to receive frame: {e}")
                await self.handlers.dispatch_socket_error_async(e, self)
                continue

            if msg.type == aiohttp.WSMsgType.PING:
                await self._pong(ws, msg.data)
                continue

            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    event = self.protocol.parse_message(msg.data, self._nickname)
                except ProtocolError as e:
                    logger.error(f"Failed to parse message: {e}")
                    await self.handlers.dispatch_error_async(
                        f"Failed to parse message: {e}", self
                    )
                    continue

                if event is not None:
                    return event
                continue

            if msg.type == aiohttp.WSMsgType.ERROR and not ws.closed:
                error = ws.exception()
                logger.error(f"WebSocket error: {error}")
                if isinstance(error, Exception):
                    await self.handlers.dispatch_socket_error_async(error, self)
                continue

            if msg.type in _STREAM_END_TYPES or msg.type == aiohttp.WSMsgType.ERROR:
                logger.info("Server closed connection")
            else:
                logger.warning(f"Unhandled message type {msg.type}, ending stream")
            return await self._end_stream(transport_closed=True)

    def __aiter__(self) -> AsyncIterator[EventType]:
        return self._iter_events()

    async def _iter_events(self) -> AsyncIterator[EventType]:
        while True:
            event = await self.next_event()
            if event is None:
                return
            yield event

    async def run(self) -> None:
        """Consume events until the stream ends, dispatching them to handlers."""
        async for event in self:
            await self.handlers.dispatch_event_async(event, self)

    async def _pong(self, ws: aiohttp.ClientWebSocketResponse, payload: bytes) -> None:
        try:
            async with self._send_lock:
                await ws.pong(payload)
            logger.debug("Answered ping")
        except Exception as e:
            logger.error(f"Failed to send pong: {e}")
            await self.handlers.dispatch_socket_error_async(e, self)

    async def _end_stream(self, transport_closed: bool = False) -> None:
        """Mark the stream finished, disconnecting if the transport went away."""
        self._stream_ended = True
        if transport_closed and self._connected:
            self._connected = False
            await self.stop_keepalive()
            try:
                if self._ws and not self._ws.closed:
                    await self._ws.close()
            except Exception as e:
                logger.debug(f"Error closing websocket: {e}")
            await self._cleanup()
            logger.info("Disconnected")
        return None

    # Event handler registration methods
    def add_message_handler(self, handler: HandlerFunc) -> HandlerFunc:
        """Add a handler for chat messages."""
        return self.handlers.add_message_handler(handler)

    def add_join_handler(self, handler: HandlerFunc) -> HandlerFunc:
        """Add a handler for users joining the channel."""
        return self.handlers.add_join_handler(handler)

    def add_leave_handler(self, handler: HandlerFunc) -> HandlerFunc:
        """Add a handler for users leaving the channel."""
        return self.handlers.add_leave_handler(handler)

    def add_info_handler(self, handler: HandlerFunc) -> HandlerFunc:
        """Add a handler for server notices."""
        return self.handlers.add_info_handler(handler)

    def add_error_handler(self, handler: ErrorHandlerFunc) -> ErrorHandlerFunc:
        """Add a handler for frames that could not be decoded."""
        return self.handlers.add_error_handler(handler)

    def add_socket_error_handler(
        self, handler: SocketErrorHandlerFunc
    ) -> SocketErrorHandlerFunc:
        """Add a handler for websocket errors."""
        return self.handlers.add_socket_error_handler(handler)

    def add_generic_handler(self, handler: HandlerFunc) -> HandlerFunc:
        """Add a handler that receives all events."""
        return self.handlers.add_generic_handler(handler)

    # Context manager support
    async def __aenter__(self) -> "AsyncSession":
        """Enter the async context manager by opening the connection."""
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit the async context manager by closing the connection."""
        await self.close()

    async def _cleanup(self) -> None:
        """Clean up connection state."""
        self._connected = False

        if self._session and not self._session.closed:
            await self._session.close()

        self._ws = None
        self._session = None
