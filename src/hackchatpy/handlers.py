"""Event handler management for hackchatpy.

Sessions expose events as a pull stream; this module lets callers register
callbacks instead and have ``Session.run()`` dispatch to them. It is also where
recovered stream problems (bad frames, receive glitches) are reported.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .models import EventType, Info, JoinRoom, LeaveRoom, Message

logger = logging.getLogger(__name__)

# Type hints for handlers - can be either sync or async
HandlerFunc = (
    Callable[[EventType, Any], None]  # Sync: (event, session) -> None
    | Callable[
        [EventType, Any], Awaitable[None]
    ]  # Async: (event, session) -> Awaitable[None]
)

ErrorHandlerFunc = (
    Callable[[str, Any], None]  # Sync: (error_message, session) -> None
    | Callable[[str, Any], Awaitable[None]]
)

SocketErrorHandlerFunc = (
    Callable[[Exception, Any], None]  # Sync: (exception, session) -> None
    | Callable[[Exception, Any], Awaitable[None]]
)


class EventHandlers:
    """Manages event handler registration and dispatch."""

    def __init__(self) -> None:
        """Initialize EventHandlers with empty handler lists."""
        self.message_handlers: list[HandlerFunc] = []
        self.join_handlers: list[HandlerFunc] = []
        self.leave_handlers: list[HandlerFunc] = []
        self.info_handlers: list[HandlerFunc] = []

        # Error handlers
        self.error_handlers: list[ErrorHandlerFunc] = []
        self.socket_error_handlers: list[SocketErrorHandlerFunc] = []

        # Generic event handlers (called for all events)
        self.generic_handlers: list[HandlerFunc] = []

    # Handler registration methods
    def add_message_handler(self, handler: HandlerFunc) -> HandlerFunc:
        """Add a handler for chat messages."""
        self.message_handlers.append(handler)
        return handler

    def add_join_handler(self, handler: HandlerFunc) -> HandlerFunc:
        """Add a handler for users joining the channel."""
        self.join_handlers.append(handler)
        return handler

    def add_leave_handler(self, handler: HandlerFunc) -> HandlerFunc:
        """Add a handler for users leaving the channel."""
        self.leave_handlers.append(handler)
        return handler

    def add_info_handler(self, handler: HandlerFunc) -> HandlerFunc:
        """Add a handler for server notices."""
        self.info_handlers.append(handler)
        return handler

    def add_error_handler(self, handler: ErrorHandlerFunc) -> ErrorHandlerFunc:
        """Add a handler for frames that could not be decoded."""
        self.error_handlers.append(handler)
        return handler

    def add_socket_error_handler(
        self, handler: SocketErrorHandlerFunc
    ) -> SocketErrorHandlerFunc:
        """Add a handler for websocket and handler errors."""
        self.socket_error_handlers.append(handler)
        return handler

    def add_generic_handler(self, handler: HandlerFunc) -> HandlerFunc:
        """Add a handler that receives all events."""
        self.generic_handlers.append(handler)
        return handler

    # Handler removal methods
    def remove_message_handler(self, handler: HandlerFunc) -> bool:
        """Remove a message handler. Returns True if found and removed."""
        return self._remove(self.message_handlers, handler)

    def remove_join_handler(self, handler: HandlerFunc) -> bool:
        """Remove a join handler. Returns True if found and removed."""
        return self._remove(self.join_handlers, handler)

    def remove_leave_handler(self, handler: HandlerFunc) -> bool:
        """Remove a leave handler. Returns True if found and removed."""
        return self._remove(self.leave_handlers, handler)

    def remove_info_handler(self, handler: HandlerFunc) -> bool:
        """Remove a server notice handler. Returns True if found and removed."""
        return self._remove(self.info_handlers, handler)

    def remove_error_handler(self, handler: ErrorHandlerFunc) -> bool:
        """Remove an error handler. Returns True if found and removed."""
        return self._remove(self.error_handlers, handler)

    def remove_socket_error_handler(self, handler: SocketErrorHandlerFunc) -> bool:
        """Remove a socket error handler. Returns True if found and removed."""
        return self._remove(self.socket_error_handlers, handler)

    def remove_generic_handler(self, handler: HandlerFunc) -> bool:
        """Remove a generic handler. Returns True if found and removed."""
        return self._remove(self.generic_handlers, handler)

    @staticmethod
    def _remove(handlers: list[Any], handler: Any) -> bool:
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    def clear_handlers(self) -> None:
        """Remove all registered handlers."""
        self.message_handlers.clear()
        self.join_handlers.clear()
        self.leave_handlers.clear()
        self.info_handlers.clear()
        self.error_handlers.clear()
        self.socket_error_handlers.clear()
        self.generic_handlers.clear()

    def handlers_for(self, event: EventType) -> list[HandlerFunc]:
        """Return the handlers an event is dispatched to, generic ones first."""
        if isinstance(event, Message):
            specific = self.message_handlers
        elif isinstance(event, JoinRoom):
            specific = self.join_handlers
        elif isinstance(event, LeaveRoom):
            specific = self.leave_handlers
        elif isinstance(event, Info):
            specific = self.info_handlers
        else:
            specific = []
        return [*self.generic_handlers, *specific]

    # Event dispatching
    def dispatch_event(self, event: EventType, session: Any) -> None:
        """Dispatch an event to the appropriate handlers."""
        self._call_handlers(self.handlers_for(event), event, session)

    async def dispatch_event_async(self, event: EventType, session: Any) -> None:
        """Dispatch an event, awaiting coroutine handlers in order."""
        for handler in self.handlers_for(event):
            try:
                result = handler(event, session)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in event handler {handler}: {e}", exc_info=True)
                await self.dispatch_socket_error_async(e, session)

    def dispatch_error(self, error_message: str, session: Any) -> None:
        """Dispatch an error to error handlers."""
        self._call_reporters(self.error_handlers, error_message, session)

    def dispatch_socket_error(self, exception: Exception, session: Any) -> None:
        """Dispatch a socket error to socket error handlers."""
        self._call_reporters(self.socket_error_handlers, exception, session)

    async def dispatch_error_async(self, error_message: str, session: Any) -> None:
        """Dispatch an error to error handlers, awaiting coroutine handlers."""
        await self._call_reporters_async(self.error_handlers, error_message, session)

    async def dispatch_socket_error_async(
        self, exception: Exception, session: Any
    ) -> None:
        """Dispatch a socket error, awaiting coroutine handlers."""
        await self._call_reporters_async(
            self.socket_error_handlers, exception, session
        )

    def _call_handlers(
        self, handlers: list[HandlerFunc], event: EventType, session: Any
    ) -> None:
        """Safely call a list of event handlers."""
        for handler in handlers:
            try:
                if inspect.iscoroutinefunction(handler):
                    self._schedule(handler(event, session), handler, session)
                else:
                    handler(event, session)
            except Exception as e:
                logger.error(f"Error in event handler {handler}: {e}", exc_info=True)
                self.dispatch_socket_error(e, session)

    def _schedule(self, coro: Any, handler: Any, session: Any) -> None:
        """Run a coroutine handler on the running loop, if there is one."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(
                f"Async handler {handler} returned coroutine but no event loop available"
            )
            coro.close()
            return

        task: asyncio.Task[None] = loop.create_task(coro)

        def make_callback(h: Any, s: Any) -> Callable[[asyncio.Task[None]], None]:
            return lambda t: self._handle_async_handler_error(t, h, s)

        task.add_done_callback(make_callback(handler, session))

    def _handle_async_handler_error(
        self, task: asyncio.Task[None], handler: Any, session: Any
    ) -> None:
        """Handle errors from async handler tasks."""
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, Exception):
            logger.error(f"Error in async event handler {handler}: {exc}")
            self.dispatch_socket_error(exc, session)

    def _call_reporters(self, handlers: list[Any], payload: Any, session: Any) -> None:
        """Safely call error or socket error handlers.

        A failing reporter is logged and skipped; it is never re-reported.
        """
        for handler in handlers:
            try:
                if inspect.iscoroutinefunction(handler):
                    coro = handler(payload, session)
                    try:
                        asyncio.get_running_loop().create_task(coro)
                    except RuntimeError:
                        logger.error(
                            f"Async error handler {handler} called outside event loop context"
                        )
                        coro.close()
                else:
                    handler(payload, session)
            except Exception as e:
                logger.error(f"Error in error handler {handler}: {e}", exc_info=True)

    async def _call_reporters_async(
        self, handlers: list[Any], payload: Any, session: Any
    ) -> None:
        for handler in handlers:
            try:
                result = handler(payload, session)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in error handler {handler}: {e}", exc_info=True)
