"""
Message bus for in-process events.

Services publish typed events (configuration changes, update progress, voice
commands, routed agent messages) and any number of sync or async handlers
receive them. Subscribe to ``"*"`` to receive every event.
"""

from typing import Dict, List, Callable, Any, Optional, Set
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

WILDCARD = "*"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Event:
    """Base event class."""
    source: str
    timestamp: datetime = field(default_factory=_now, kw_only=True)


@dataclass
class ConfigChanged(Event):
    sections: List[str]


@dataclass
class UpdateStatusChanged(Event):
    state: str
    progress: int
    message: str
    error: Optional[str] = None


@dataclass
class VoiceCommandReceived(Event):
    command_id: str
    transcript: str
    intent: Optional[str] = None


@dataclass
class VoiceResponseReady(Event):
    command_id: str
    response_id: str
    text: str


@dataclass
class AgentMessageRouted(Event):
    message_id: str
    from_agent: str
    to_agent: Optional[str]
    message_type: str
    project_id: str


class MessageBus:
    """Simple message bus for pub/sub communication."""

    def __init__(self):
        self._subscribers: Dict[Any, List[Callable]] = {}
        self._async_subscribers: Dict[Any, List[Callable]] = {}
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, event_type: Any, handler: Callable) -> Callable[[], None]:
        """
        Subscribe a handler to an event class (or ``"*"`` for every event).

        Returns:
            A callable that removes the subscription
        """
        if inspect.iscoroutinefunction(handler):
            self._async_subscribers.setdefault(event_type, []).append(handler)
        else:
            self._subscribers.setdefault(event_type, []).append(handler)

        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: Any, handler: Callable) -> None:
        """Unsubscribe a handler from an event type."""
        if event_type in self._subscribers:
            self._subscribers[event_type] = [
                h for h in self._subscribers[event_type] if h != handler
            ]
        if event_type in self._async_subscribers:
            self._async_subscribers[event_type] = [
                h for h in self._async_subscribers[event_type] if h != handler
            ]

    def _handlers(self, table: Dict[Any, List[Callable]], event: Any) -> List[Callable]:
        return list(table.get(type(event), [])) + list(table.get(WILDCARD, []))

    def _call_sync_handlers(self, event: Any) -> None:
        for handler in self._handlers(self._subscribers, event):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {type(event).__name__}: {e}")

    async def publish(self, event: Any) -> None:
        """Publish an event to all subscribers."""
        self._call_sync_handlers(event)

        handlers = self._handlers(self._async_subscribers, event)
        if not handlers:
            return

        results = await asyncio.gather(
            *(handler(event) for handler in handlers), return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Error in async event handler for {type(event).__name__}: {result}")

    def publish_sync(self, event: Any) -> None:
        """
        Synchronous publish for non-async contexts.

        Async handlers are scheduled on the running loop when there is one and
        skipped otherwise.
        """
        self._call_sync_handlers(event)

        handlers = self._handlers(self._async_subscribers, event)
        if not handlers:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop, skipped {len(handlers)} async handlers")
            return
        for handler in handlers:
            task = loop.create_task(handler(event))
            self._pending.add(task)
            task.add_done_callback(lambda done, name=type(event).__name__: self._handler_finished(done, name))

    def _handler_finished(self, task: asyncio.Task, event_name: str) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Error in async event handler for {event_name}: {task.exception()}")

    def clear(self) -> None:
        self._subscribers.clear()
        self._async_subscribers.clear()


_message_bus: Optional[MessageBus] = None


def get_message_bus() -> MessageBus:
    """Get the global message bus."""
    global _message_bus
    if _message_bus is None:
        _message_bus = MessageBus()
    return _message_bus
