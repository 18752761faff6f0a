"""
Queue session models.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class Doctor(BaseModel):
    """Doctor snapshot taken when the roster is configured."""
    id: str
    name: str
    username: Optional[str] = None
    rank: Optional[str] = None


class QueueSession(BaseModel):
    """The running queue session."""
    session_id: str
    is_running: bool = True
    current_queue_index: int = Field(default=0, ge=0)
    doctors: List[Doctor] = []
    start_time: datetime
    elapsed_time: int = Field(default=0, ge=0, description="Accumulated milliseconds")
    runner_id: str
    runner_name: str
    last_updated: datetime


class SessionStatus(BaseModel):
    """Dashboard view of the queue resource."""
    is_running: bool = False
    current_queue_index: int = 0
    doctors: List[Doctor] = []
    current_doctor: Optional[Doctor] = None
    session: Optional[QueueSession] = None


class SessionStartRequest(BaseModel):
    """Start a session; the runner defaults to the caller."""
    runner_id: Optional[str] = None
    runner_name: Optional[str] = None
    doctors: List[Doctor] = []


class SessionAdvanceRequest(BaseModel):
    session_id: str


class SessionDoctorsRequest(BaseModel):
    session_id: str
    doctors: List[Doctor]
