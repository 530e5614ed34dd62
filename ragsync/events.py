"""
Events - Typed vault change events and a small in-process bus.

The watcher publishes DocumentChange events; the change listener
subscribes to them without knowing where they come from.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set

from .errors import log_task_exception


logger = logging.getLogger(__name__)


class ChangeType(Enum):
    """Type of vault change."""
    CREATED = "created"
    MODIFIED = "modified"
    RENAMED = "renamed"
    DELETED = "deleted"


@dataclass(frozen=True)
class DocumentChange:
    """A change to one document."""
    identifier: str
    change_type: ChangeType
    old_identifier: Optional[str] = None  # For RENAMED events


Handler = Callable[[DocumentChange], Awaitable[None]]


class EventBus:
    """
    Delivers change events to async handlers on the event loop.

    Handlers for one event run in subscription order; a failing handler is
    logged and does not stop the others.
    """

    def __init__(self):
        self._handlers: Dict[ChangeType, List[Handler]] = {t: [] for t in ChangeType}
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, change_type: ChangeType, handler: Handler) -> None:
        self._handlers[change_type].append(handler)

    def unsubscribe(self, change_type: ChangeType, handler: Handler) -> None:
        if handler in self._handlers[change_type]:
            self._handlers[change_type].remove(handler)

    async def dispatch(self, change: DocumentChange) -> None:
        """Run every handler for a change and wait for them."""
        for handler in list(self._handlers[change.change_type]):
            try:
                await handler(change)
            except Exception as e:
                logger.error(f"Change handler error for {change.identifier}: {e!r}")

    def publish(self, change: DocumentChange) -> asyncio.Task:
        """Schedule delivery of a change; must be called on the loop thread."""
        task = asyncio.get_running_loop().create_task(self.dispatch(change))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(log_task_exception)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending_deliveries(self) -> int:
        return len(self._tasks)
