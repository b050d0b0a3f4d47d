"""Data models for hackchatpy.

Defines Pydantic models for the packets exchanged with hack.chat and for the
domain events handed to callers. All models are immutable.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OutboundPacket(BaseModel):
    """Base class for packets sent to the server."""

    model_config = ConfigDict(frozen=True)


class JoinPacket(OutboundPacket):
    """Join handshake, always the first frame of a session."""

    cmd: Literal["join"] = "join"
    nick: str = Field(description="Nickname to join with")
    channel: str = Field(description="Channel to join")


class ChatPacket(OutboundPacket):
    """A chat message for the current channel."""

    cmd: Literal["chat"] = "chat"
    text: str = Field(description="Message content")


class PingPacket(OutboundPacket):
    """Application level keepalive."""

    cmd: Literal["ping"] = "ping"


class StatsPacket(OutboundPacket):
    """Request for server stats, answered with an info packet."""

    cmd: Literal["stats"] = "stats"


class InboundPacket(BaseModel):
    """Base class for packets received from the server."""

    model_config = ConfigDict(frozen=True, strict=True, extra="ignore")


class IncomingChat(InboundPacket):
    """A chat message broadcast to the channel."""

    cmd: Literal["chat"] = "chat"
    nick: str = Field(description="Sender's nickname")
    text: str = Field(description="Message content")
    trip: str = Field(default="", description="Sender's tripcode, empty if none")

    @field_validator("trip", mode="before")
    @classmethod
    def _missing_trip(cls, value: Any) -> Any:
        return "" if value is None else value


class IncomingInfo(InboundPacket):
    """Server notice, such as a stats reply."""

    cmd: Literal["info"] = "info"
    text: str = Field(description="Notice content")


class OnlineAdd(InboundPacket):
    """A user joined the channel."""

    cmd: Literal["onlineAdd"] = "onlineAdd"
    nick: str = Field(description="Nickname of the user who joined")


class OnlineRemove(InboundPacket):
    """A user left the channel."""

    cmd: Literal["onlineRemove"] = "onlineRemove"
    nick: str = Field(description="Nickname of the user who left")


class UnknownPacket(InboundPacket):
    """A well-formed packet with a cmd this client does not handle."""

    cmd: str = Field(description="Unrecognized command name")
    data: dict[str, Any] = Field(default_factory=dict, description="Raw payload")


class Message(BaseModel):
    """A chat message from another user."""

    model_config = ConfigDict(frozen=True)

    nick: str = Field(description="Sender's nickname")
    text: str = Field(description="Message content")
    tripcode: str = Field(default="", description="Sender's tripcode")

    def has_tripcode(self) -> bool:
        """Check if the sender identified with a tripcode."""
        return bool(self.tripcode)


class JoinRoom(BaseModel):
    """Someone joined the channel."""

    model_config = ConfigDict(frozen=True)

    nick: str = Field(description="Nickname of the user who joined")


class LeaveRoom(BaseModel):
    """Someone left the channel."""

    model_config = ConfigDict(frozen=True)

    nick: str = Field(description="Nickname of the user who left")


class Info(BaseModel):
    """A notice from the channel itself, e.g. a stats reply or a ban."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Notice content")


OutboundType = JoinPacket | ChatPacket | PingPacket | StatsPacket

InboundType = IncomingChat | IncomingInfo | OnlineAdd | OnlineRemove | UnknownPacket

# Type alias for all event types
EventType = Message | JoinRoom | LeaveRoom | Info
