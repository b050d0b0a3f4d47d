"""Synchronous session for hackchatpy.

Provides a blocking interface for joining a hack.chat channel, sending
messages and pulling chat events from the websocket.
"""

import logging
import threading
from collections.abc import Iterator
from typing import Any

import websocket  # websocket-client package
from websocket import ABNF

from .exceptions import ConnectionError, HackChatError, MessageError, ProtocolError
from .handlers import (
    ErrorHandlerFunc,
    EventHandlers,
    HandlerFunc,
    SocketErrorHandlerFunc,
)
from .models import EventType
from .protocol import ProtocolHandler

logger = logging.getLogger(__name__)

DEFAULT_URL = "wss://hack.chat/chat-ws"
KEEPALIVE_INTERVAL = 60.0  # seconds


class Session:
    """Synchronous session for a hack.chat channel.

    The session owns one websocket. Writes from the caller, from pong replies
    and from the keepalive thread are serialized by a send lock; reads are
    guarded by a separate receive lock so the two sides never block each other.
    """

    def __init__(
        self,
        nickname: str,
        channel: str,
        url: str = DEFAULT_URL,
        user_agent: str = "hackchatpy/0.1.0",
    ) -> None:
        """Initialize a new chat session.

        Args:
            nickname: Nickname to join with, also used to skip our own echoes
            channel: Channel to join (the part after ``?`` in a hack.chat URL)
            url: WebSocket URL for the chat server, ChatEnvironment.PRODUCTION
                 by default
            user_agent: User agent string to use for connection
        """
        self._nickname = nickname
        self._channel = channel
        self.url = url
        self.user_agent = user_agent

        # Internal state
        self._ws: websocket.WebSocket | None = None
        self._connected = False
        self._stream_ended = False
        self._send_lock = threading.Lock()
        self._recv_lock = threading.Lock()

        # Keepalive state
        self._keepalive_interval = KEEPALIVE_INTERVAL
        self._keepalive_thread: threading.Thread | None = None
        self._keepalive_stop = threading.Event()

        # Protocol and event handling
        self.protocol = ProtocolHandler()
        self.handlers = EventHandlers()

    @classmethod
    def connect(cls, nickname: str, channel: str, **kwargs: Any) -> "Session":
        """Create a session and open it in one step.

        Raises:
            ConnectionError: If the connection or the join handshake fails

        Example:
            >>> chat = Session.connect("WikiBot", "programming")
        """
        session = cls(nickname, channel, **kwargs)
        session.open()
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
        """Set the websocket URL for the chat server.

        Raises:
            HackChatError: If called while already connected to a chat server
        """
        if self._connected:
            raise HackChatError("Cannot change URL while connected")
        self.url = url

    def set_user_agent(self, user_agent: str) -> None:
        """Set the user agent string for websocket connections."""
        self.user_agent = user_agent

    def set_keepalive_interval(self, interval: float) -> None:
        """Set the default period between keepalive pings, in seconds."""
        if interval <= 0:
            raise ValueError("Keepalive interval must be positive")
        self._keepalive_interval = interval

    def open(self) -> None:
        """Open a connection and join the channel.

        The join packet is always the first frame written on the new socket.
        There is no retry; a failure leaves the session closed.

        Raises:
            ConnectionError: If the connection or the join handshake fails

        Example:
            >>> session = Session("TestBot", "botDev")
            >>> session.open()
        """
        if self._connected:
            logger.warning("Already connected")
            return

        try:
            self._ws = websocket.WebSocket()

            headers = {"User-Agent": self.user_agent}

            logger.info(f"Connecting to {self.url}")
            self._ws.connect(self.url, header=headers)  # type: ignore[no-untyped-call]

            join_msg = self.protocol.format_join(self._nickname, self._channel)
            with self._send_lock:
                self._ws.send(join_msg)

            self._connected = True
            self._stream_ended = False
            logger.info(f"Joined ?{self._channel} as {self._nickname}")

        except Exception as e:
            logger.error(f"Failed to connect: {e}")
            self._release_socket()
            raise ConnectionError(f"Failed to connect: {e}") from e

    def close(self) -> None:
        """Stop the keepalive and close the connection.

        Safe to call from another thread while ``next_event`` is blocked; the
        blocked call then returns None.
        """
        if not self._connected:
            return

        logger.info("Closing connection")
        self.stop_keepalive()
        self._connected = False
        self._stream_ended = True
        self._release_socket()
        logger.info("Connection closed")

    def is_connected(self) -> bool:
        """Check if the session is connected."""
        return self._connected and self._ws is not None

    # Message sending methods
    def send_message(self, text: str) -> None:
        """Send a chat message to the channel.

        Raises:
            ConnectionError: If not connected to the chat server
            MessageError: If the frame fails to send; the session stays usable

        Example:
            >>> session.send_message("Hello there people")
        """
        self._send(self.protocol.format_chat(text), "message")

    def request_stats(self) -> None:
        """Ask the server for its stats.

        The reply arrives later on the event stream as an ``Info`` event.

        Raises:
            ConnectionError: If not connected to the chat server
            MessageError: If the frame fails to send
        """
        self._send(self.protocol.format_stats(), "stats request")

    def send_ping(self) -> None:
        """Send a keepalive ping packet.

        Raises:
            ConnectionError: If not connected to the chat server
            MessageError: If the frame fails to send
        """
        self._send(self.protocol.format_ping(), "ping")

    def _send(self, payload: str, description: str) -> None:
        """Write one text frame under the send lock."""
        ws = self._ws
        if not self._connected or ws is None:
            raise ConnectionError("Not connected")

        try:
            with self._send_lock:
                ws.send(payload)
            logger.debug(f"Sent {description}: {payload}")
        except Exception as e:
            logger.error(f"Failed to send {description}: {e}")
            raise MessageError(f"Failed to send {description}: {e}") from e

    # Keepalive
    def start_keepalive(self, interval: float | None = None) -> bool:
        """Start sending a ping every ``interval`` seconds in the background.

        Returns:
            True if a keepalive thread was started, False if one is already
            running for this session.

        Raises:
            ConnectionError: If not connected to the chat server
        """
        if not self._connected:
            raise ConnectionError("Not connected")

        if self._keepalive_thread and self._keepalive_thread.is_alive():
            logger.warning("Keepalive already running")
            return False

        period = self._keepalive_interval if interval is None else interval
        if period <= 0:
            raise ValueError("Keepalive interval must be positive")

        self._keepalive_stop = threading.Event()
        self._keepalive_thread = threading.Thread(
            target=self._keepalive_loop,
            args=(period, self._keepalive_stop),
            name=f"hackchat-keepalive-{self._nickname}",
            daemon=True,
        )
        self._keepalive_thread.start()
        logger.debug(f"Keepalive started with {period}s interval")
        return True

    def stop_keepalive(self, timeout: float = 5.0) -> None:
        """Stop the keepalive thread and wait for it to finish."""
        self._keepalive_stop.set()
        thread = self._keepalive_thread
        if (
            thread
            and thread.is_alive()
            and thread is not threading.current_thread()
        ):
            thread.join(timeout=timeout)
        self._keepalive_thread = None

    def is_keepalive_running(self) -> bool:
        """Check if the keepalive thread is alive."""
        return self._keepalive_thread is not None and self._keepalive_thread.is_alive()

    def _keepalive_loop(self, interval: float, stop: threading.Event) -> None:
        """Ping once per interval until ``stop`` is set."""
        while not stop.wait(interval):
            try:
                self.send_ping()
            except ConnectionError:
                logger.debug("Keepalive stopping, session is closed")
                break
            except MessageError as e:
                self.handlers.dispatch_socket_error(e, self)
        logger.debug("Keepalive loop ended")

    # Event stream
    def next_event(self) -> EventType | None:
        """Block until the next chat event arrives.

        Frames that carry no event for the caller are consumed internally:
        pings are answered with a pong, our own chat echoes and unknown
        packets are skipped, and frames that fail to decode or receive are
        reported to the error handlers. The stream ends (returns None) when
        the server closes the connection or sends a frame type this client
        does not handle, at which point the session is disconnected; every
        later call returns None as well.

        Raises:
            ConnectionError: If the session was never opened
        """
        if self._stream_ended:
            return None

        ws = self._ws
        if ws is None:
            raise ConnectionError("Not connected")

        fragments: list[bytes] = []
        while True:
            try:
                with self._recv_lock:
                    frame = ws.recv_frame()
            except websocket.WebSocketConnectionClosedException:
                logger.info("Server closed connection")
                return self._end_stream(transport_closed=True)
            except (websocket.WebSocketException, OSError) as e:
                if not self._connected:
                    # Socket was closed locally while we were blocked on it
                    return self._end_stream()
                logger.error(f"Failed to receive frame: {e}")
                self.handlers.dispatch_socket_error(e, self)
                fragments.clear()
                continue

            if frame.opcode == ABNF.OPCODE_PING:
                self._pong(ws, frame.data)
                continue

            if frame.opcode in (ABNF.OPCODE_TEXT, ABNF.OPCODE_CONT):
                fragments.append(frame.data)
                if not frame.fin:
                    continue
                raw = b"".join(fragments)
                fragments.clear()

                try:
                    event = self.protocol.parse_message(raw, self._nickname)
                except ProtocolError as e:
                    logger.error(f"Failed to parse message: {e}")
                    self.handlers.dispatch_error(f"Failed to parse message: {e}", self)
                    continue

                if event is not None:
                    return event
                continue

            if frame.opcode == ABNF.OPCODE_CLOSE:
                logger.info("Received close frame")
            else:
                logger.warning(f"Unhandled frame opcode {frame.opcode}, ending stream")
            self._send_close(ws)
            return self._end_stream(transport_closed=True)

    def __iter__(self) -> Iterator[EventType]:
        """Yield events until the stream ends.

        Example:
            >>> for event in session:
            ...     if isinstance(event, JoinRoom):
            ...         session.send_message(f"Welcome to the chat {event.nick}!")
        """
        while True:
            event = self.next_event()
            if event is None:
                return
            yield event

    def run(self) -> None:
        """Pull events until the stream ends, dispatching them to handlers."""
        for event in self:
            self.handlers.dispatch_event(event, self)

    def _pong(self, ws: websocket.WebSocket, payload: bytes) -> None:
        try:
            with self._send_lock:
                ws.pong(payload)
            logger.debug("Answered ping")
        except Exception as e:
            logger.error(f"Failed to send pong: {e}")
            self.handlers.dispatch_socket_error(e, self)

    def _send_close(self, ws: websocket.WebSocket) -> None:
        try:
            with self._send_lock:
                ws.send_close()
        except Exception as e:
            logger.debug(f"Could not send close frame: {e}")

    def _end_stream(self, transport_closed: bool = False) -> None:
        """Mark the stream finished.

        When the transport went away (peer close, closed socket, unhandled
        frame) the session is disconnected too: the keepalive stops and the
        socket is dropped, so ``open()`` can be called again.
        """
        self._stream_ended = True
        if transport_closed and self._connected:
            self._connected = False
            self.stop_keepalive()
            ws = self._ws
            self._ws = None
            if ws is not None:
                try:
                    ws.shutdown()
                except Exception as e:
                    logger.debug(f"Error shutting down websocket: {e}")
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
    def __enter__(self) -> "Session":
        """Enter the context manager by opening the connection."""
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit the context manager by closing the connection."""
        self.close()

    def _release_socket(self) -> None:
        """Close and drop the websocket, if any.

        ``ws.close()`` waits for the peer's close frame by reading the socket,
        so it is only used when no other thread is blocked in ``next_event``.
        Otherwise the close frame is sent without waiting and the socket is
        shut down, which wakes the reader.
        """
        ws = self._ws
        self._ws = None
        if ws is None:
            return
        try:
            if self._recv_lock.acquire(blocking=False):
                try:
                    ws.close()
                finally:
                    self._recv_lock.release()
            else:
                self._send_close(ws)
                ws.shutdown()
        except Exception as e:
            logger.error(f"Error closing websocket: {e}")
