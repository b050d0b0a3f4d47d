#!/usr/bin/env python3
"""
Simple asynchronous hackchatpy example.

Registers handlers and lets ``AsyncSession.run()`` drive them.
"""

import asyncio
import logging

from hackchatpy import AsyncSession

logging.basicConfig(level=logging.INFO)


async def main():
    """Main function demonstrating async chat usage."""
    session = AsyncSession("AsyncPyBot", "botDev")

    @session.add_message_handler
    async def on_message(message, session):
        print(f"<{message.nick}> {message.text}")
        if message.text == "!stats":
            await session.request_stats()

    @session.add_info_handler
    def on_info(info, session):
        print(f"* {info.text}")

    @session.add_error_handler
    def on_error(error, session):
        print(f"Error: {error}")

    async with session:
        session.start_keepalive()
        await session.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nGracefully shutting down...")
