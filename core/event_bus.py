"""In-process pub/sub for in-app banner events."""

from __future__ import annotations

import asyncio
from collections import defaultdict

# Per-subscriber backlog; a stalled SSE client loses its oldest events first
DEFAULT_BACKLOG = 100


class EventBus:
    """Fan-out of dict events to per-channel asyncio queues.

    Every subscriber of a channel gets its own copy of each event. Queues
    are bounded: publishing never blocks on a slow reader.
    """

    def __init__(self, backlog: int = DEFAULT_BACKLOG) -> None:
        self.backlog = backlog
        self._subscribers: dict[str, list[asyncio.Queue]] = defaultdict(list)

    def subscribe(self, channel: str) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=self.backlog)
        self._subscribers[channel].append(q)
        return q

    def unsubscribe(self, channel: str, q: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(channel, [])
        if q in subscribers:
            subscribers.remove(q)

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))

    async def publish(self, channel: str, event: dict) -> int:
        """Deliver *event* to every current subscriber; return how many got it."""
        subscribers = list(self._subscribers.get(channel, []))
        for q in subscribers:
            if q.full():
                q.get_nowait()
            q.put_nowait(event)
        return len(subscribers)
