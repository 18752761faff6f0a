"""Pydantic models for the clinic queue."""

from .user import User, UserLogin, UserRef, UserRole, Token, TokenData
from .queue import (
    QueueEntry,
    QueueEntryCreate,
    QueueEntryUpdate,
    EntryStatus,
    EntryPriority,
    EntryStatusUpdate,
    EntryList
)
from .session import (
    Doctor,
    QueueSession,
    SessionStatus,
    SessionStartRequest,
    SessionAdvanceRequest,
    SessionDoctorsRequest
)
from .history import (
    HistoryRecord,
    HistoryPage,
    HistoryFilter,
    HistoryStatus,
    HistoryAnalytics,
    Pagination,
    SessionStopRequest
)

__all__ = [
    # User
    "User", "UserLogin", "UserRef", "UserRole", "Token", "TokenData",
    # Entries
    "QueueEntry", "QueueEntryCreate", "QueueEntryUpdate", "EntryStatus",
    "EntryPriority", "EntryStatusUpdate", "EntryList",
    # Session
    "Doctor", "QueueSession", "SessionStatus", "SessionStartRequest",
    "SessionAdvanceRequest", "SessionDoctorsRequest",
    # History
    "HistoryRecord", "HistoryPage", "HistoryFilter", "HistoryStatus",
    "HistoryAnalytics", "Pagination", "SessionStopRequest"
]
