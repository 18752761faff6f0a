import asyncio
from datetime import date

import pytest

from clinic_queue.database import ENTRIES
from clinic_queue.errors import InvalidStatusTransition, NotFound
from clinic_queue.models.queue import EntryPriority, EntryStatus, QueueEntryCreate, QueueEntryUpdate
from clinic_queue.services.entry_service import EntryService
from clinic_queue.services.ticket_service import TicketService


async def issue(name=None, priority=EntryPriority.NORMAL):
    return await EntryService.create_entry(QueueEntryCreate(patient_name=name, priority=priority), "staff-1")


async def test_first_ticket_of_the_day_is_one(db, frozen_clock):
    entry = await issue("Somchai")
    assert entry.queue_number == 1
    assert entry.service_date == "2024-01-10"
    assert entry.status == EntryStatus.WAITING
    assert entry.created_by == "staff-1"


async def test_numbers_increase_within_a_day(db, frozen_clock):
    numbers = [(await issue()).queue_number for _ in range(4)]
    assert numbers == [1, 2, 3, 4]


async def test_numbering_restarts_next_day(db, frozen_clock):
    await issue()
    await issue()
    frozen_clock.tick(days=1)
    entry = await issue()
    assert entry.queue_number == 1
    assert entry.service_date == "2024-01-11"


async def test_concurrent_tickets_are_distinct_and_contiguous(db, frozen_clock):
    entries = await asyncio.gather(*(issue(f"p{i}") for i in range(20)))
    numbers = sorted(e.queue_number for e in entries)
    assert numbers == list(range(1, 21))


async def test_allocation_catches_up_with_existing_entries(db, frozen_clock):
    # Entries written without going through the counter
    for number in (1, 2, 3):
        await db[ENTRIES].insert_one({
            "queue_number": number,
            "service_date": "2024-01-10",
            "status": "waiting",
            "priority": "normal",
            "created_at": frozen_clock.now
        })

    entry = await issue()
    assert entry.queue_number == 4
    assert await TicketService.highest_number(date(2024, 1, 10)) == 4


async def test_priority_is_stored_but_does_not_reorder(db, frozen_clock):
    await issue("normal")
    await issue("emergency", EntryPriority.EMERGENCY)

    nxt = await EntryService.get_next_waiting()
    assert nxt.queue_number == 1
    listed = await EntryService.list_entries()
    assert [e.priority for e in listed] == [EntryPriority.NORMAL, EntryPriority.EMERGENCY]


async def test_forward_transitions(db, frozen_clock):
    entry = await issue()

    started = await EntryService.transition(entry.id, EntryStatus.IN_PROGRESS, "doc-1", "Dr. One")
    assert started.status == EntryStatus.IN_PROGRESS
    assert started.started_at == frozen_clock.now
    assert started.handled_by == "doc-1"
    assert started.handled_by_name == "Dr. One"

    frozen_clock.tick(minutes=5)
    done = await EntryService.transition(entry.id, EntryStatus.COMPLETED)
    assert done.status == EntryStatus.COMPLETED
    assert done.completed_at == frozen_clock.now
    assert done.handled_by == "doc-1"


@pytest.mark.parametrize("path", [
    [EntryStatus.COMPLETED],
    [EntryStatus.WAITING],
    [EntryStatus.IN_PROGRESS, EntryStatus.WAITING],
    [EntryStatus.IN_PROGRESS, EntryStatus.IN_PROGRESS],
    [EntryStatus.CANCELLED, EntryStatus.IN_PROGRESS],
    [EntryStatus.IN_PROGRESS, EntryStatus.COMPLETED, EntryStatus.CANCELLED],
])
async def test_backward_or_skipping_transitions_are_rejected(db, frozen_clock, path):
    entry = await issue()
    *allowed, rejected = path
    for status in allowed:
        await EntryService.transition(entry.id, status)

    with pytest.raises(InvalidStatusTransition):
        await EntryService.transition(entry.id, rejected)


async def test_cancel_from_waiting_and_in_progress(db, frozen_clock):
    first = await issue()
    second = await issue()
    await EntryService.transition(second.id, EntryStatus.IN_PROGRESS)

    assert (await EntryService.transition(first.id, EntryStatus.CANCELLED)).status == EntryStatus.CANCELLED
    assert (await EntryService.transition(second.id, EntryStatus.CANCELLED)).status == EntryStatus.CANCELLED


async def test_unknown_or_malformed_ids_are_not_found(db, frozen_clock):
    with pytest.raises(NotFound):
        await EntryService.get_entry("not-an-id")
    with pytest.raises(NotFound):
        await EntryService.transition("65a000000000000000000000", EntryStatus.IN_PROGRESS)
    with pytest.raises(NotFound):
        await EntryService.get_entry_by_number(99)


async def test_call_next_takes_lowest_waiting(db, frozen_clock):
    for _ in range(3):
        await issue()

    first = await EntryService.call_next("doc-1", "Dr. One")
    second = await EntryService.call_next("doc-2", "Dr. Two")
    assert (first.queue_number, second.queue_number) == (1, 2)
    assert first.status == EntryStatus.IN_PROGRESS

    mine = await EntryService.list_entries(handled_by="doc-2")
    assert [e.queue_number for e in mine] == [2]

    waiting = await EntryService.list_entries(status=EntryStatus.WAITING)
    assert [e.queue_number for e in waiting] == [3]


async def test_call_next_on_empty_queue(db, frozen_clock):
    assert await EntryService.call_next("doc-1") is None


async def test_update_and_delete(db, frozen_clock):
    entry = await issue("Typo")
    updated = await EntryService.update_entry(
        entry.id, QueueEntryUpdate(patient_name="Fixed", priority=EntryPriority.URGENT)
    )
    assert updated.patient_name == "Fixed"
    assert updated.priority == EntryPriority.URGENT
    assert updated.queue_number == entry.queue_number

    by_number = await EntryService.get_entry_by_number(entry.queue_number)
    assert by_number.id == entry.id

    await EntryService.delete_entry(entry.id)
    with pytest.raises(NotFound):
        await EntryService.get_entry(entry.id)
    with pytest.raises(NotFound):
        await EntryService.delete_entry(entry.id)
