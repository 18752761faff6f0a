"""Routers package for the clinic queue API."""

from .auth import router as auth_router
from .entries import router as entries_router
from .session import router as session_router
from .history import router as history_router

__all__ = [
    "auth_router",
    "entries_router",
    "session_router",
    "history_router"
]
