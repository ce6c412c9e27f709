"""
Publish/subscribe fan-out of file change events to live viewers.

Each subscriber gets its own bounded queue, so events reach it in publish
order and a slow viewer can only lose its own events, never stall the
publisher or other viewers. There is no replay: a new subscriber only sees
events published after it subscribed.
"""

from dataclasses import dataclass, field
from typing import Any
import asyncio
import logging
import uuid

from lanshare.models import FileRecord

logger = logging.getLogger("lanshare.broadcast")


@dataclass(frozen=True)
class FilesAdded:
    records: tuple[FileRecord, ...]

    def to_message(self) -> dict[str, Any]:
        return {"event": "fileUploaded", "data": [record.to_json() for record in self.records]}


@dataclass(frozen=True)
class FileRemoved:
    stored_name: str

    def to_message(self) -> dict[str, Any]:
        return {"event": "fileDeleted", "data": self.stored_name}


Event = FilesAdded | FileRemoved


@dataclass(eq=False)
class Subscription:
    queue: asyncio.Queue
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    async def next_event(self) -> Event:
        return await self.queue.get()

    def pending(self) -> int:
        return self.queue.qsize()


class BroadcastChannel:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: dict[str, Subscription] = {}

    def subscribe(self) -> Subscription:
        subscription = Subscription(queue=asyncio.Queue(maxsize=self.queue_size))
        self._subscribers[subscription.id] = subscription
        logger.info("Observer %s subscribed (%d total)", subscription.id, len(self._subscribers))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if self._subscribers.pop(subscription.id, None) is not None:
            logger.info(
                "Observer %s unsubscribed (%d total)", subscription.id, len(self._subscribers)
            )

    def publish(self, event: Event) -> int:
        """Queue ``event`` for every subscriber; returns how many accepted it."""
        delivered = 0
        for subscription in list(self._subscribers.values()):
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "Dropping %s for slow observer %s", type(event).__name__, subscription.id
                )
            except Exception:
                logger.exception("Failed to deliver %s to observer %s", type(event).__name__, subscription.id)
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
