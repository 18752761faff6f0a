"""
Queue entry (ticket) models.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum


class EntryStatus(str, Enum):
    """Ticket status states."""
    WAITING = "waiting"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EntryPriority(str, Enum):
    """Stored with the ticket; queue order is always by number."""
    NORMAL = "normal"
    URGENT = "urgent"
    EMERGENCY = "emergency"


# Forward-only status graph
ALLOWED_TRANSITIONS = {
    EntryStatus.WAITING: (EntryStatus.IN_PROGRESS, EntryStatus.CANCELLED),
    EntryStatus.IN_PROGRESS: (EntryStatus.COMPLETED, EntryStatus.CANCELLED),
    EntryStatus.COMPLETED: (),
    EntryStatus.CANCELLED: (),
}


def allowed_sources(target: EntryStatus) -> List[EntryStatus]:
    """Statuses from which ``target`` may be reached."""
    return [src for src, targets in ALLOWED_TRANSITIONS.items() if target in targets]


class QueueEntryCreate(BaseModel):
    """Create a new ticket."""
    patient_name: Optional[str] = Field(default=None, max_length=200)
    priority: EntryPriority = EntryPriority.NORMAL
    notes: Optional[str] = None


class QueueEntryUpdate(BaseModel):
    """Editable ticket details."""
    patient_name: Optional[str] = Field(default=None, max_length=200)
    priority: Optional[EntryPriority] = None
    notes: Optional[str] = None


class QueueEntry(BaseModel):
    """Queue entry response model."""
    id: str = Field(..., alias="_id")
    queue_number: int = Field(..., ge=1)
    service_date: str = Field(..., description="Local day the number belongs to (YYYY-MM-DD)")
    patient_name: Optional[str] = None
    status: EntryStatus = EntryStatus.WAITING
    priority: EntryPriority = EntryPriority.NORMAL
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    handled_by: Optional[str] = None  # Staff user ID
    handled_by_name: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True


class EntryStatusUpdate(BaseModel):
    """Move a ticket forward."""
    status: EntryStatus
    notes: Optional[str] = None


class EntryList(BaseModel):
    """Tickets of one day."""
    service_date: str
    entries: List[QueueEntry] = []
    total: int = 0
