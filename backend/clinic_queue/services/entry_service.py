"""
Queue entry (ticket) store.
"""

import logging
from datetime import date
from typing import Optional, List

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from .. import clock
from ..config import get_settings
from ..database import Database, ENTRIES, storage_guard
from ..errors import NotFound, InvalidStatusTransition, StorageUnavailable
from ..models.queue import (
    QueueEntry,
    QueueEntryCreate,
    QueueEntryUpdate,
    EntryStatus,
    allowed_sources
)
from .ticket_service import TicketService

settings = get_settings()
logger = logging.getLogger(__name__)


def _object_id(entry_id: str) -> ObjectId:
    if not ObjectId.is_valid(entry_id):
        raise NotFound("Queue entry not found")
    return ObjectId(entry_id)


def _to_entry(doc: dict) -> QueueEntry:
    doc["_id"] = str(doc["_id"])
    return QueueEntry(**doc)


class EntryService:
    """Ticket CRUD and forward-only status transitions."""

    @classmethod
    async def create_entry(
        cls,
        entry_data: QueueEntryCreate,
        created_by: Optional[str] = None
    ) -> QueueEntry:
        """Issue a ticket with the next queue number of the day."""
        entries = Database.get_collection(ENTRIES)
        day = clock.local_today()

        for _ in range(settings.TICKET_ALLOCATION_RETRIES):
            number = await TicketService.allocate_next(day)
            now = clock.utcnow()
            entry_doc = {
                "queue_number": number,
                "service_date": clock.day_key(day),
                "patient_name": entry_data.patient_name,
                "status": EntryStatus.WAITING.value,
                "priority": entry_data.priority.value,
                "notes": entry_data.notes,
                "started_at": None,
                "completed_at": None,
                "handled_by": None,
                "handled_by_name": None,
                "created_by": created_by,
                "created_at": now,
                "updated_at": now
            }

            try:
                async with storage_guard("queue entry insert"):
                    result = await entries.insert_one(entry_doc)
            except DuplicateKeyError:
                # Counter behind the stored numbers; catch it up and retry
                await TicketService.resync(day)
                continue

            entry_doc["_id"] = result.inserted_id
            logger.info("Issued queue number %s for %s", number, entry_doc["service_date"])
            return _to_entry(entry_doc)

        logger.error("Queue number allocation kept colliding for %s", day)
        raise StorageUnavailable("Could not allocate a queue number, please retry")

    @classmethod
    async def get_entry(cls, entry_id: str) -> QueueEntry:
        """Get entry by ID."""
        entries = Database.get_collection(ENTRIES)

        async with storage_guard("queue entry lookup"):
            entry = await entries.find_one({"_id": _object_id(entry_id)})

        if not entry:
            raise NotFound("Queue entry not found")
        return _to_entry(entry)

    @classmethod
    async def get_entry_by_number(cls, queue_number: int, day: Optional[date] = None) -> QueueEntry:
        """Get entry by queue number for a given day (default today)."""
        entries = Database.get_collection(ENTRIES)

        async with storage_guard("queue entry lookup"):
            entry = await entries.find_one({
                "service_date": clock.day_key(day),
                "queue_number": queue_number
            })

        if not entry:
            raise NotFound(f"Queue number {queue_number} not found")
        return _to_entry(entry)

    @classmethod
    async def list_entries(
        cls,
        status: Optional[EntryStatus] = None,
        handled_by: Optional[str] = None,
        day: Optional[date] = None
    ) -> List[QueueEntry]:
        """List a day's entries in queue order."""
        entries = Database.get_collection(ENTRIES)

        filter_query = {"service_date": clock.day_key(day)}
        if status:
            filter_query["status"] = status.value
        if handled_by:
            filter_query["handled_by"] = handled_by

        result = []
        async with storage_guard("queue entry listing"):
            cursor = entries.find(filter_query).sort("queue_number", 1)
            async for entry in cursor:
                result.append(_to_entry(entry))

        return result

    @classmethod
    async def get_next_waiting(cls, day: Optional[date] = None) -> Optional[QueueEntry]:
        """Lowest-numbered waiting entry, if any."""
        entries = Database.get_collection(ENTRIES)

        async with storage_guard("next waiting lookup"):
            entry = await entries.find_one(
                {"service_date": clock.day_key(day), "status": EntryStatus.WAITING.value},
                sort=[("queue_number", 1)]
            )

        return _to_entry(entry) if entry else None

    @classmethod
    async def update_entry(cls, entry_id: str, updates: QueueEntryUpdate) -> QueueEntry:
        """Update editable ticket details."""
        entries = Database.get_collection(ENTRIES)

        update_data = {k: v for k, v in updates.model_dump(mode="json").items() if v is not None}
        if not update_data:
            return await cls.get_entry(entry_id)

        update_data["updated_at"] = clock.utcnow()

        async with storage_guard("queue entry update"):
            result = await entries.find_one_and_update(
                {"_id": _object_id(entry_id)},
                {"$set": update_data},
                return_document=ReturnDocument.AFTER
            )

        if not result:
            raise NotFound("Queue entry not found")
        return _to_entry(result)

    @classmethod
    async def transition(
        cls,
        entry_id: str,
        status: EntryStatus,
        handled_by: Optional[str] = None,
        handled_by_name: Optional[str] = None,
        notes: Optional[str] = None
    ) -> QueueEntry:
        """Move an entry forward; the status check and write are one update."""
        entries = Database.get_collection(ENTRIES)
        oid = _object_id(entry_id)
        now = clock.utcnow()

        update_data = {"status": status.value, "updated_at": now}
        if status == EntryStatus.IN_PROGRESS:
            update_data["started_at"] = now
        elif status == EntryStatus.COMPLETED:
            update_data["completed_at"] = now
        if handled_by:
            update_data["handled_by"] = handled_by
            update_data["handled_by_name"] = handled_by_name
        if notes:
            update_data["notes"] = notes

        sources = [s.value for s in allowed_sources(status)]

        async with storage_guard("queue entry transition"):
            result = await entries.find_one_and_update(
                {"_id": oid, "status": {"$in": sources}},
                {"$set": update_data},
                return_document=ReturnDocument.AFTER
            )
            if not result:
                current = await entries.find_one({"_id": oid}, {"status": 1})

        if not result:
            if not current:
                raise NotFound("Queue entry not found")
            logger.warning(
                "Rejected transition of entry %s from %s to %s",
                entry_id, current["status"], status.value
            )
            raise InvalidStatusTransition(current["status"], status.value)

        return _to_entry(result)

    @classmethod
    async def call_next(
        cls,
        handled_by: str,
        handled_by_name: Optional[str] = None
    ) -> Optional[QueueEntry]:
        """Take today's lowest waiting number and mark it in progress."""
        entries = Database.get_collection(ENTRIES)
        now = clock.utcnow()

        async with storage_guard("call next"):
            result = await entries.find_one_and_update(
                {"service_date": clock.day_key(), "status": EntryStatus.WAITING.value},
                {
                    "$set": {
                        "status": EntryStatus.IN_PROGRESS.value,
                        "started_at": now,
                        "handled_by": handled_by,
                        "handled_by_name": handled_by_name,
                        "updated_at": now
                    }
                },
                sort=[("queue_number", 1)],
                return_document=ReturnDocument.AFTER
            )

        if result:
            logger.info("Called queue number %s", result["queue_number"])
            return _to_entry(result)
        return None

    @classmethod
    async def delete_entry(cls, entry_id: str) -> None:
        """Delete a ticket."""
        entries = Database.get_collection(ENTRIES)

        async with storage_guard("queue entry delete"):
            result = await entries.delete_one({"_id": _object_id(entry_id)})

        if result.deleted_count == 0:
            raise NotFound("Queue entry not found")
