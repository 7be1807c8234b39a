"""Event system for Server-Sent Events (SSE)."""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4


@dataclass
class Event:
    """A deployment lifecycle event."""

    event_type: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_sse(self) -> dict[str, str]:
        """Convert to an SSE message for EventSourceResponse."""
        data_json = json.dumps({**self.data, "timestamp": self.timestamp.isoformat()})
        return {"event": self.event_type, "data": data_json}


class DeploymentEventBus:
    """Broadcasts deployment events to every subscriber."""

    def __init__(self, max_queue_size: int = 256):
        self._subscribers: dict[str, asyncio.Queue[Event]] = {}
        self._max_queue_size = max_queue_size

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> tuple[str, asyncio.Queue[Event]]:
        """Register a new subscriber. Returns its id and queue."""
        subscriber_id = uuid4().hex
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers[subscriber_id] = queue
        return subscriber_id, queue

    def unsubscribe(self, subscriber_id: str) -> None:
        self._subscribers.pop(subscriber_id, None)

    def publish(self, event_type: str, **data: Any) -> Event:
        """Deliver an event to all subscribers.

        Never blocks: a subscriber whose queue is full loses its oldest event.
        """
        event = Event(event_type=event_type, data=data)
        for queue in self._subscribers.values():
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)
        return event

    def publish_status_changed(self, deployment_id: str, status: str) -> Event:
        return self.publish(
            "status_changed", deployment_id=deployment_id, status=status
        )

    def publish_deployment_completed(
        self, deployment_id: str, duration_ms: int
    ) -> Event:
        return self.publish(
            "deployment_completed",
            deployment_id=deployment_id,
            duration_ms=duration_ms,
        )

    def publish_deployment_failed(
        self, deployment_id: str, error: str, duration_ms: int
    ) -> Event:
        return self.publish(
            "deployment_failed",
            deployment_id=deployment_id,
            error=error,
            duration_ms=duration_ms,
        )


# Singleton instance
_event_bus: DeploymentEventBus | None = None


def get_event_bus() -> DeploymentEventBus:
    """Get the event bus singleton."""
    global _event_bus
    if _event_bus is None:
        _event_bus = DeploymentEventBus()
    return _event_bus
