#!/usr/bin/env python3
"""
Simple synchronous hackchatpy example.

Joins ?botDev, keeps the connection alive and prints every message.
"""

import logging
import sys

from hackchatpy import ConnectionError, JoinRoom, Message, Session

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def main():
    """Main function demonstrating synchronous chat usage."""
    nick = sys.argv[1] if len(sys.argv) > 1 else "PyBot"

    try:
        chat = Session.connect(nick, "botDev")
    except ConnectionError as e:
        print(f"Could not join: {e}")
        return

    chat.start_keepalive()

    try:
        for event in chat:
            if isinstance(event, Message):
                print(f"<{event.nick}> {event.text}")
            elif isinstance(event, JoinRoom):
                chat.send_message(f"Welcome to the chat {event.nick}!")
    except KeyboardInterrupt:
        print("\nGracefully shutting down...")
    finally:
        chat.close()
        print("Disconnected.")


if __name__ == "__main__":
    main()
