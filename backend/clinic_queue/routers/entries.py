"""
Queue entry (ticket) API routes.
"""

from typing import Optional
from fastapi import APIRouter, status, Depends, Query

from .. import clock
from ..errors import NotFound
from ..models.queue import (
    QueueEntry,
    QueueEntryCreate,
    QueueEntryUpdate,
    EntryStatus,
    EntryStatusUpdate,
    EntryList
)
from ..models.user import User
from ..services.entry_service import EntryService
from .dependencies import get_current_user

router = APIRouter(prefix="/queue/entries", tags=["Queue Entries"])


@router.post("", response_model=QueueEntry, response_model_by_alias=False, status_code=status.HTTP_201_CREATED)
async def create_entry(
    entry_data: QueueEntryCreate,
    current_user: User = Depends(get_current_user)
):
    """Issue a ticket with the next queue number of the day."""
    return await EntryService.create_entry(entry_data, current_user.id)


@router.get("", response_model=EntryList, response_model_by_alias=False)
async def list_entries(
    entry_status: Optional[EntryStatus] = Query(None, alias="status"),
    handled_by: Optional[str] = Query(None, alias="handledBy"),
    date: Optional[str] = Query(None, description="Local day, YYYY-MM-DD (default today)"),
    current_user: User = Depends(get_current_user)
):
    """List a day's tickets in queue order."""
    day = clock.parse_day(date) if date else clock.local_today()
    entries = await EntryService.list_entries(entry_status, handled_by, day)
    return EntryList(service_date=day.isoformat(), entries=entries, total=len(entries))


@router.get("/next", response_model=Optional[QueueEntry], response_model_by_alias=False)
async def get_next_waiting(current_user: User = Depends(get_current_user)):
    """Lowest-numbered waiting ticket today, or null."""
    return await EntryService.get_next_waiting()


@router.post("/call", response_model=QueueEntry, response_model_by_alias=False)
async def call_next(current_user: User = Depends(get_current_user)):
    """Mark the next waiting ticket in progress, handled by the caller."""
    entry = await EntryService.call_next(current_user.id, current_user.full_name)

    if not entry:
        raise NotFound("No patients waiting in queue")

    return entry


@router.get("/number/{queue_number}", response_model=QueueEntry, response_model_by_alias=False)
async def get_entry_by_number(
    queue_number: int,
    date: Optional[str] = Query(None, description="Local day, YYYY-MM-DD (default today)"),
    current_user: User = Depends(get_current_user)
):
    """Get ticket by queue number."""
    day = clock.parse_day(date) if date else None
    return await EntryService.get_entry_by_number(queue_number, day)


@router.get("/{entry_id}", response_model=QueueEntry, response_model_by_alias=False)
async def get_entry(
    entry_id: str,
    current_user: User = Depends(get_current_user)
):
    """Get ticket by ID."""
    return await EntryService.get_entry(entry_id)


@router.patch("/{entry_id}", response_model=QueueEntry, response_model_by_alias=False)
async def update_entry(
    entry_id: str,
    updates: QueueEntryUpdate,
    current_user: User = Depends(get_current_user)
):
    """Edit ticket details."""
    return await EntryService.update_entry(entry_id, updates)


@router.put("/{entry_id}/status", response_model=QueueEntry, response_model_by_alias=False)
async def update_entry_status(
    entry_id: str,
    request: EntryStatusUpdate,
    current_user: User = Depends(get_current_user)
):
    """Move a ticket forward; the caller is recorded as its handler."""
    return await EntryService.transition(
        entry_id,
        request.status,
        handled_by=current_user.id,
        handled_by_name=current_user.full_name,
        notes=request.notes
    )


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entry(
    entry_id: str,
    current_user: User = Depends(get_current_user)
):
    """Delete a ticket."""
    await EntryService.delete_entry(entry_id)
