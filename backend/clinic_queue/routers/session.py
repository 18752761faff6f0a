"""
Queue session API routes.
"""

from typing import Optional
from fastapi import APIRouter, Depends

from ..errors import ValidationError
from ..models.history import HistoryRecord, SessionStopRequest
from ..models.session import (
    QueueSession,
    SessionStatus,
    SessionStartRequest,
    SessionAdvanceRequest,
    SessionDoctorsRequest
)
from ..models.user import User
from ..services.auth_service import AuthService
from ..services.session_service import SessionService
from .dependencies import get_current_user

router = APIRouter(prefix="/queue/session", tags=["Queue Session"])


async def _display_name(user_id: str, given: Optional[str], current_user: User) -> Optional[str]:
    """Name recorded next to ``user_id``; looked up when it is not the caller."""
    if given:
        return given
    if user_id == current_user.id:
        return current_user.full_name
    user = await AuthService.get_user_by_id(user_id)
    return user.get("full_name") if user else None


@router.get("/status", response_model=SessionStatus)
async def get_status(current_user: User = Depends(get_current_user)):
    """Running session, if any, and the doctor currently being served."""
    return await SessionService.get_status()


@router.post("/start", response_model=QueueSession)
async def start_session(
    request: SessionStartRequest,
    current_user: User = Depends(get_current_user)
):
    """Start the queue. Only one session may run at a time."""
    runner_id = request.runner_id or current_user.id
    runner_name = await _display_name(runner_id, request.runner_name, current_user)
    if not runner_name:
        raise ValidationError(f"Unknown runner '{runner_id}'; runner_name is required")

    return await SessionService.start(
        runner_id=runner_id,
        runner_name=runner_name,
        doctors=request.doctors
    )


@router.post("/advance", response_model=QueueSession)
async def advance_session(
    request: SessionAdvanceRequest,
    current_user: User = Depends(get_current_user)
):
    """Move to the next position in the queue."""
    return await SessionService.advance(request.session_id)


@router.post("/doctors", response_model=QueueSession)
async def update_doctors(
    request: SessionDoctorsRequest,
    current_user: User = Depends(get_current_user)
):
    """Replace the doctor roster of the running session."""
    return await SessionService.update_doctors(request.session_id, request.doctors)


@router.post("/stop", response_model=HistoryRecord, response_model_by_alias=False)
async def stop_session(
    request: SessionStopRequest,
    current_user: User = Depends(get_current_user)
):
    """Stop the queue and archive the session."""
    stopped_by = request.stopped_by or current_user.id
    stopped_by_name = await _display_name(stopped_by, request.stopped_by_name, current_user)

    return await SessionService.stop(
        request.session_id,
        stopped_by=stopped_by,
        stopped_by_name=stopped_by_name,
        status=request.status
    )


@router.get("/{session_id}", response_model=QueueSession)
async def get_session(
    session_id: str,
    current_user: User = Depends(get_current_user)
):
    """Get the running session by id."""
    return await SessionService.get_session(session_id)
