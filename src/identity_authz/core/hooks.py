"""
Identity Hooks

Extension points around identity insertion:
- identity.insert: runs before the record is written; handlers may modify
  the event's identity/meta and a raising handler aborts the insert
- identity.postInsert: runs after the write; fire-and-forget, failures are
  logged and do not affect the caller
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..data.models.identity import Identity, Meta

logger = logging.getLogger(__name__)

PRE_INSERT = "identity.insert"
POST_INSERT = "identity.postInsert"


@dataclass
class InsertEvent:
    """Payload handed to insert hooks"""
    actor: Any
    identity: Identity
    meta: Meta
    # data passed from pre-insert handlers to post-insert handlers, not stored
    post_insert: Dict[str, Any] = field(default_factory=dict)


Hook = Callable[[InsertEvent], Awaitable[None]]


class HookRegistry:
    """Ordered hook handlers per event name"""

    def __init__(self):
        self._hooks: Dict[str, List[Hook]] = {PRE_INSERT: [], POST_INSERT: []}

    def register(self, event: str, handler: Hook) -> None:
        """Register a handler for an event"""
        if event not in self._hooks:
            raise ValueError(f"Unknown hook event: {event}")
        self._hooks[event].append(handler)
        logger.debug(f"Registered {event} hook: {getattr(handler, '__name__', handler)}")

    async def run_pre_insert(self, event: InsertEvent) -> None:
        """Run pre-insert handlers in order; the first exception aborts the insert"""
        for handler in self._hooks[PRE_INSERT]:
            await handler(event)

    async def run_post_insert(self, event: InsertEvent) -> Optional[List[Exception]]:
        """
        Run post-insert handlers.

        Returns:
            Exceptions raised by handlers (already logged), or None if all succeeded
        """
        failures = []
        for handler in self._hooks[POST_INSERT]:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    f"Post-insert hook {getattr(handler, '__name__', handler)} failed for {event.identity.id}: {e}",
                    exc_info=True
                )
                failures.append(e)
        return failures or None
