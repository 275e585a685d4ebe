"""In-process publish/subscribe bus for generation progress.

One instance is created per application (see ``main.lifespan``) and handed by
reference to the queue, the services and the stream endpoint. Subscribers get
their own bounded ``asyncio.Queue``; a slow subscriber drops its oldest events
rather than blocking publishers.
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from flashgen.core.logging import get_logger

logger = get_logger(__name__)


class GenerationEvents:
    def __init__(self, *, max_pending: int = 100) -> None:
        self.max_pending = max(1, int(max_pending))
        self.active: dict[uuid.UUID, set[asyncio.Queue[dict[str, Any]]]] = {}

    def subscribe(self, generation_id: uuid.UUID) -> asyncio.Queue[dict[str, Any]]:
        q: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self.max_pending)
        self.active.setdefault(generation_id, set()).add(q)
        logger.debug(f"Subscribed to generation {generation_id}")
        return q

    def unsubscribe(
        self, generation_id: uuid.UUID, q: asyncio.Queue[dict[str, Any]]
    ) -> None:
        subs = self.active.get(generation_id)
        if subs and q in subs:
            subs.remove(q)
            if not subs:
                del self.active[generation_id]
        logger.debug(f"Unsubscribed from generation {generation_id}")

    @contextmanager
    def subscription(
        self, generation_id: uuid.UUID
    ) -> Iterator[asyncio.Queue[dict[str, Any]]]:
        q = self.subscribe(generation_id)
        try:
            yield q
        finally:
            self.unsubscribe(generation_id, q)

    def publish(self, generation_id: uuid.UUID, event: dict[str, Any]) -> int:
        """Deliver ``event`` to every subscriber of ``generation_id``.

        Returns the number of subscribers reached.
        """
        subs = list(self.active.get(generation_id, set()))
        for q in subs:
            if q.full():
                try:
                    q.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            q.put_nowait(event)
        return len(subs)

    def subscriber_count(self, generation_id: uuid.UUID) -> int:
        return len(self.active.get(generation_id, set()))


__all__ = ["GenerationEvents"]
