"""Post-commit booking events for open owner dashboards.

Publishing never blocks and never participates in the admission transaction:
subscribers that fall behind lose events rather than slowing bookings down.
"""
import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from app.models.appointment import Appointment

logger = logging.getLogger(__name__)

QUEUE_SIZE = 100


class BookingEvents:
    def __init__(self) -> None:
        self._subscribers: dict[int, set[asyncio.Queue]] = defaultdict(set)

    @asynccontextmanager
    async def subscribe(self, business_id: int) -> AsyncIterator[asyncio.Queue]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)
        self._subscribers[business_id].add(queue)
        try:
            yield queue
        finally:
            self._subscribers[business_id].discard(queue)
            if not self._subscribers[business_id]:
                del self._subscribers[business_id]

    def publish(self, business_id: int, event: dict[str, Any]) -> int:
        """Fan ``event`` out to current subscribers; returns how many received it."""
        delivered = 0
        for queue in list(self._subscribers.get(business_id, ())):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Dropping booking event for slow subscriber (business=%s)", business_id)
        return delivered


def appointment_event(kind: str, appointment: Appointment) -> dict[str, Any]:
    return {
        "type": kind,
        "appointment_id": appointment.id,
        "date": appointment.date.isoformat(),
        "start_time": appointment.start_time,
        "end_time": appointment.end_time,
        "status": appointment.status,
    }
