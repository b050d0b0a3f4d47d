"""
Tests for hackchatpy protocol handling.
"""

import json

import pytest
from hackchatpy.exceptions import ProtocolError
from hackchatpy.models import (
    ChatPacket,
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
from hackchatpy.protocol import ProtocolHandler


class TestEncoding:
    """Test outbound packet formatting."""

    def setup_method(self):
        """Set up test fixtures."""
        self.handler = ProtocolHandler()

    def test_format_join(self):
        """Test join handshake formatting."""
        data = json.loads(self.handler.format_join("Bot", "botDev"))
        assert data == {"cmd": "join", "nick": "Bot", "channel": "botDev"}

    def test_format_chat(self):
        """Test chat formatting."""
        data = json.loads(self.handler.format_chat("Hello, world!"))
        assert data == {"cmd": "chat", "text": "Hello, world!"}

    def test_format_ping(self):
        """Test ping formatting carries only the cmd."""
        assert json.loads(self.handler.format_ping()) == {"cmd": "ping"}

    def test_format_stats(self):
        """Test stats request formatting carries only the cmd."""
        assert json.loads(self.handler.format_stats()) == {"cmd": "stats"}

    def test_cmd_comes_first(self):
        """Test that the discriminator leads the encoded object."""
        encoded = self.handler.encode(JoinPacket(nick="Bot", channel="botDev"))
        assert encoded.startswith('{"cmd": "join"')

    def test_encode_non_ascii(self):
        """Test that non-ASCII text is kept as UTF-8, not escaped."""
        encoded = self.handler.encode(ChatPacket(text="héllo 🌍"))

        assert "héllo 🌍" in encoded
        assert json.loads(encoded)["text"] == "héllo 🌍"

    def test_encode_every_outbound_packet(self):
        """Test that each outbound packet encodes to an object with a cmd."""
        packets = [
            JoinPacket(nick="Bot", channel="botDev"),
            ChatPacket(text=""),
            PingPacket(),
            StatsPacket(),
        ]
        for packet in packets:
            assert json.loads(self.handler.encode(packet))["cmd"] == packet.cmd

    def test_chat_echo_round_trip(self):
        """Test an outbound chat decodes back with the same text."""
        echoed = json.loads(self.handler.format_chat("test echo"))
        echoed["nick"] = "Bot"

        packet = self.handler.decode(json.dumps(echoed))

        assert isinstance(packet, IncomingChat)
        assert packet.text == "test echo"
        assert packet.nick == "Bot"


class TestDecoding:
    """Test inbound frame decoding."""

    def setup_method(self):
        """Set up test fixtures."""
        self.handler = ProtocolHandler()

    def test_decode_chat_with_trip(self):
        """Test decoding chat with a tripcode."""
        packet = self.handler.decode(
            '{"cmd":"chat","nick":"Dan","text":"hi","trip":"abc123"}'
        )

        assert packet == IncomingChat(nick="Dan", text="hi", trip="abc123")

    def test_decode_chat_without_trip(self):
        """Test that a missing or null trip defaults to empty string."""
        missing = self.handler.decode('{"cmd":"chat","nick":"Dan","text":"hi"}')
        null = self.handler.decode('{"cmd":"chat","nick":"Dan","text":"hi","trip":null}')

        assert missing.trip == ""
        assert null.trip == ""

    def test_decode_info(self):
        """Test that info decodes to an info packet."""
        info = self.handler.decode('{"cmd":"info","text":"stats"}')

        assert info == IncomingInfo(text="stats")

    def test_warn_is_unknown(self):
        """Test that warn is not treated as an info notice."""
        packet = self.handler.decode('{"cmd":"warn","text":"slow down"}')

        assert isinstance(packet, UnknownPacket)
        assert packet.cmd == "warn"
        assert self.handler.to_event(packet, "Bot") is None

    def test_decode_online_changes(self):
        """Test decoding onlineAdd and onlineRemove."""
        assert self.handler.decode('{"cmd":"onlineAdd","nick":"Dan"}') == OnlineAdd(
            nick="Dan"
        )
        assert self.handler.decode(
            '{"cmd":"onlineRemove","nick":"Dan"}'
        ) == OnlineRemove(nick="Dan")

    def test_decode_bytes(self):
        """Test that UTF-8 bytes decode like text."""
        packet = self.handler.decode('{"cmd":"info","text":"héllo"}'.encode())
        assert packet.text == "héllo"

    def test_extra_fields_ignored(self):
        """Test that unknown fields on known packets are ignored."""
        packet = self.handler.decode(
            '{"cmd":"chat","nick":"Dan","text":"hi","time":1700000000,"mod":false}'
        )
        assert packet == IncomingChat(nick="Dan", text="hi")

    def test_decode_unknown_cmd(self):
        """Test that unknown commands are not errors."""
        packet = self.handler.decode('{"cmd":"onlineSet","nicks":["a","b"]}')

        assert isinstance(packet, UnknownPacket)
        assert packet.cmd == "onlineSet"
        assert packet.data["nicks"] == ["a", "b"]

    def test_decode_invalid_json(self):
        """Test decoding invalid JSON."""
        with pytest.raises(ProtocolError):
            self.handler.decode("invalid json {")

    def test_decode_invalid_utf8(self):
        """Test decoding bytes that are not UTF-8."""
        with pytest.raises(ProtocolError):
            self.handler.decode(b'{"cmd":"info","text":"\xff\xfe"}')

    def test_decode_non_object(self):
        """Test that JSON arrays and scalars are rejected."""
        for raw in ("[]", "42", '"chat"', "null"):
            with pytest.raises(ProtocolError):
                self.handler.decode(raw)

    def test_decode_missing_cmd(self):
        """Test that a payload without cmd is rejected."""
        with pytest.raises(ProtocolError) as exc_info:
            self.handler.decode('{"nick":"Dan"}')

        assert "cmd" in str(exc_info.value)

    def test_decode_non_string_cmd(self):
        """Test that a numeric cmd is rejected."""
        with pytest.raises(ProtocolError):
            self.handler.decode('{"cmd":7}')

    def test_decode_missing_required_field(self):
        """Test that a known packet missing a field is rejected."""
        with pytest.raises(ProtocolError) as exc_info:
            self.handler.decode('{"cmd":"chat","text":"hi"}')

        assert "Malformed chat packet" in str(exc_info.value)

    def test_decode_mistyped_field(self):
        """Test that a known packet with a wrong field type is rejected."""
        with pytest.raises(ProtocolError):
            self.handler.decode('{"cmd":"onlineAdd","nick":123}')


class TestClassification:
    """Test mapping inbound packets to events."""

    def setup_method(self):
        """Set up test fixtures."""
        self.handler = ProtocolHandler()

    def test_chat_from_other_user(self):
        """Test that chat from others becomes a Message."""
        event = self.handler.parse_message(
            '{"cmd":"chat","nick":"Dan","text":"hi","trip":"abc123"}', "Bot"
        )
        assert event == Message(nick="Dan", text="hi", tripcode="abc123")

    def test_chat_from_self_is_dropped(self):
        """Test that our own echoed chat produces no event."""
        event = self.handler.parse_message('{"cmd":"chat","nick":"Bot","text":"hi"}', "Bot")
        assert event is None

    def test_nick_match_is_exact(self):
        """Test that only an exact nickname match is treated as self."""
        event = self.handler.parse_message('{"cmd":"chat","nick":"bot","text":"hi"}', "Bot")
        assert event == Message(nick="bot", text="hi", tripcode="")

    def test_info(self):
        """Test that info becomes an Info event."""
        event = self.handler.to_event(IncomingInfo(text="stats"), "Bot")
        assert event == Info(text="stats")

    def test_join_and_leave(self):
        """Test that online changes become join and leave events."""
        assert self.handler.to_event(OnlineAdd(nick="Dan"), "Bot") == JoinRoom(nick="Dan")
        assert self.handler.to_event(OnlineRemove(nick="Dan"), "Bot") == LeaveRoom(
            nick="Dan"
        )

    def test_unknown_has_no_event(self):
        """Test that unknown packets produce no event."""
        assert self.handler.to_event(UnknownPacket(cmd="captcha"), "Bot") is None
