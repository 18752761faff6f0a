"""
Ticket number allocation.

Numbers come from a per-day counter document updated with ``$inc``, so two
callers never read the same value. The counter is reconciled against the
entries themselves whenever an insert collides on the
``(service_date, queue_number)`` unique index.
"""

import logging
from datetime import date
from typing import Optional

from pymongo import ReturnDocument

from .. import clock
from ..database import Database, COUNTERS, ENTRIES, storage_guard

logger = logging.getLogger(__name__)


class TicketService:
    """Queue number allocator."""

    @classmethod
    async def allocate_next(cls, day: Optional[date] = None) -> int:
        """Reserve the next queue number for ``day`` (default: today)."""
        counters = Database.get_collection(COUNTERS)
        key = clock.day_key(day)

        async with storage_guard("ticket allocation"):
            counter = await counters.find_one_and_update(
                {"_id": key},
                {"$inc": {"seq": 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER
            )

        number = counter["seq"]
        logger.debug("Allocated queue number %s for %s", number, key)
        return number

    @classmethod
    async def highest_number(cls, day: Optional[date] = None) -> int:
        """Highest queue number already stored for ``day``, or 0."""
        entries = Database.get_collection(ENTRIES)

        async with storage_guard("highest queue number lookup"):
            latest = await entries.find_one(
                {"service_date": clock.day_key(day)},
                sort=[("queue_number", -1)]
            )

        return latest["queue_number"] if latest else 0

    @classmethod
    async def resync(cls, day: Optional[date] = None) -> int:
        """Raise the day's counter to the highest stored number."""
        counters = Database.get_collection(COUNTERS)
        key = clock.day_key(day)
        highest = await cls.highest_number(day)

        async with storage_guard("ticket counter resync"):
            counter = await counters.find_one_and_update(
                {"_id": key},
                {"$max": {"seq": highest}},
                upsert=True,
                return_document=ReturnDocument.AFTER
            )

        logger.warning("Queue counter for %s resynced to %s", key, counter["seq"])
        return counter["seq"]
