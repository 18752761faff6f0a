"""Services package for the clinic queue."""

from .auth_service import AuthService
from .ticket_service import TicketService
from .entry_service import EntryService
from .history_service import HistoryService
from .session_service import SessionService

__all__ = [
    "AuthService",
    "TicketService",
    "EntryService",
    "HistoryService",
    "SessionService"
]
