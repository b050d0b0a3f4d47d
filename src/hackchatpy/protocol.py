"""Protocol handling for hackchatpy.

Formats outgoing packets and decodes incoming websocket frames according to
the hack.chat JSON protocol, where every frame is an object carrying a
``cmd`` field.
"""

import json
import logging

from pydantic import ValidationError

from .exceptions import ProtocolError
from .models import (
    ChatPacket,
    EventType,
    IncomingChat,
    IncomingInfo,
    InboundPacket,
    InboundType,
    Info,
    JoinPacket,
    JoinRoom,
    LeaveRoom,
    Message,
    OnlineAdd,
    OnlineRemove,
    OutboundPacket,
    PingPacket,
    StatsPacket,
    UnknownPacket,
)

logger = logging.getLogger(__name__)


class ProtocolHandler:
    """Handles chat protocol encoding, decoding and classification."""

    def __init__(self) -> None:
        """Initialize ProtocolHandler with the inbound packet registry."""
        self.packet_types: dict[str, type[InboundPacket]] = {
            "chat": IncomingChat,
            "info": IncomingInfo,
            "onlineAdd": OnlineAdd,
            "onlineRemove": OnlineRemove,
        }

    def encode(self, packet: OutboundPacket) -> str:
        """Serialize an outbound packet to wire text.

        Example:
            >>> handler.encode(ChatPacket(text="hi"))
            '{"cmd": "chat", "text": "hi"}'
        """
        return json.dumps(packet.model_dump(), ensure_ascii=False)

    def format_join(self, nick: str, channel: str) -> str:
        """Format the join handshake for a nickname and channel.

        Example:
            >>> handler.format_join("Bot", "botDev")
            '{"cmd": "join", "nick": "Bot", "channel": "botDev"}'
        """
        return self.encode(JoinPacket(nick=nick, channel=channel))

    def format_chat(self, text: str) -> str:
        """Format an outgoing chat message."""
        return self.encode(ChatPacket(text=text))

    def format_ping(self) -> str:
        """Format a keepalive ping."""
        return self.encode(PingPacket())

    def format_stats(self) -> str:
        """Format a stats request."""
        return self.encode(StatsPacket())

    def decode(self, raw_message: str | bytes) -> InboundType:
        """Decode a raw text frame into a typed inbound packet.

        The payload is parsed once; the ``cmd`` field selects the model that
        validates the parsed mapping. Unrecognized commands are returned as
        ``UnknownPacket`` rather than treated as errors.

        Raises:
            ProtocolError: If the frame is not a JSON object, has no string
                ``cmd``, or a known packet is missing or mistyping a field.
        """
        try:
            data = json.loads(raw_message)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(f"Invalid JSON: {e}", details=repr(raw_message)) from e

        if not isinstance(data, dict):
            raise ProtocolError(
                f"Expected a JSON object, got {type(data).__name__}",
                details=repr(raw_message),
            )

        cmd = data.get("cmd")
        if not isinstance(cmd, str):
            raise ProtocolError("Packet missing cmd field", details=repr(raw_message))

        packet_type = self.packet_types.get(cmd)
        if packet_type is None:
            return UnknownPacket(cmd=cmd, data=data)

        try:
            return packet_type.model_validate(data)  # type: ignore[return-value]
        except ValidationError as e:
            raise ProtocolError(f"Malformed {cmd} packet: {e}", details=repr(data)) from e

    def to_event(self, packet: InboundType, own_nick: str) -> EventType | None:
        """Classify an inbound packet into a domain event.

        Returns None for packets that produce no caller-visible event: chat
        echoed back from ``own_nick`` and unknown commands.
        """
        if isinstance(packet, IncomingChat):
            if packet.nick == own_nick:
                logger.debug("Skipping own chat echo")
                return None
            return Message(nick=packet.nick, text=packet.text, tripcode=packet.trip)
        elif isinstance(packet, IncomingInfo):
            return Info(text=packet.text)
        elif isinstance(packet, OnlineAdd):
            return JoinRoom(nick=packet.nick)
        elif isinstance(packet, OnlineRemove):
            return LeaveRoom(nick=packet.nick)

        logger.warning(f"Unsupported packet type: {packet.cmd}")
        return None

    def parse_message(
        self, raw_message: str | bytes, own_nick: str
    ) -> EventType | None:
        """Decode a raw frame and classify it in one step."""
        return self.to_event(self.decode(raw_message), own_nick)

