"""hackchatpy: Python WebSocket client library for hack.chat.

Join a hack.chat channel under a nickname, send messages, keep the connection
alive and consume incoming chat activity as typed events.

Features:
- Synchronous and asynchronous session support
- Pull-based event stream, plus optional callback dispatch
- Type-safe packets and events with Pydantic models
- Background keepalive that can be stopped cleanly

Example:
    Basic synchronous usage:

    >>> from hackchatpy import Session, Message
    >>> chat = Session.connect("TestBot", "botDev")
    >>> chat.start_keepalive()
    >>> for event in chat:
    ...     if isinstance(event, Message):
    ...         print(f"<{event.nick}> {event.text}")

    Asynchronous usage:

    >>> import asyncio
    >>> from hackchatpy import AsyncSession, JoinRoom
    >>>
    >>> async def main():
    ...     async with AsyncSession("GreetingBot", "botDev") as chat:
    ...         chat.start_keepalive()
    ...         async for event in chat:
    ...             if isinstance(event, JoinRoom):
    ...                 await chat.send_message(f"Welcome to the chat {event.nick}!")
    >>>
    >>> asyncio.run(main())
"""

from .async_session import AsyncSession
from .exceptions import ConnectionError, HackChatError, MessageError, ProtocolError
from .models import (
    ChatPacket,
    EventType,
    IncomingChat,
    IncomingInfo,
    Info,
    JoinPacket,
    JoinRoom,
    LeaveRoom,
    Message,
    OnlineAdd,
    OnlineRemove,
    PingPacket,
    StatsPacket,
    UnknownPacket,
)
from .protocol import ProtocolHandler
from .session import DEFAULT_URL, KEEPALIVE_INTERVAL, Session


class ChatEnvironment:
    """WebSocket URLs for hack.chat."""

    # The public hack.chat server
    PRODUCTION = DEFAULT_URL


__version__ = "0.1.0"

__all__ = [
    # Sessions
    "Session",
    "AsyncSession",
    "KEEPALIVE_INTERVAL",
    # Environment constants
    "ChatEnvironment",
    # Protocol
    "ProtocolHandler",
    "JoinPacket",
    "ChatPacket",
    "PingPacket",
    "StatsPacket",
    "IncomingChat",
    "IncomingInfo",
    "OnlineAdd",
    "OnlineRemove",
    "UnknownPacket",
    # Events
    "EventType",
    "Message",
    "JoinRoom",
    "LeaveRoom",
    "Info",
    # Exceptions
    "HackChatError",
    "ConnectionError",
    "MessageError",
    "ProtocolError",
]
