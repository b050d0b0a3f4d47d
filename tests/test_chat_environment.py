"""Tests for ChatEnvironment constants."""

from hackchatpy import AsyncSession, ChatEnvironment, Session


class TestChatEnvironment:
    """Test ChatEnvironment constants and integration."""

    def test_production_url(self):
        """Test that ChatEnvironment points at the public server."""
        assert ChatEnvironment.PRODUCTION == "wss://hack.chat/chat-ws"
        assert ChatEnvironment.PRODUCTION.startswith("wss://")

    def test_default_session_urls(self):
        """Test that sessions default to the production server."""
        sync_session = Session("Bot", "botDev")
        async_session = AsyncSession("Bot", "botDev")

        assert sync_session.url == ChatEnvironment.PRODUCTION
        assert async_session.url == ChatEnvironment.PRODUCTION
