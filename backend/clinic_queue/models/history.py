"""
Queue history (archived session) models.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

from .session import Doctor
from .user import UserRef


class HistoryStatus(str, Enum):
    """How an archived session ended."""
    COMPLETED = "completed"
    STOPPED = "stopped"
    CANCELLED = "cancelled"


class SessionStopRequest(BaseModel):
    """Stop a session; the stopper defaults to the caller."""
    session_id: str
    stopped_by: Optional[str] = None
    stopped_by_name: Optional[str] = None
    status: Optional[HistoryStatus] = None


class HistoryRecord(BaseModel):
    """Immutable snapshot of a finished session."""
    id: str = Field(..., alias="_id")
    session_id: str
    runner_id: str
    runner_name: str
    runner: Optional[UserRef] = None  # resolved at read time
    doctors: List[Doctor] = []
    current_queue_index: int = 0
    start_time: datetime
    end_time: datetime
    elapsed_time: int = Field(default=0, description="Milliseconds")
    total_doctors: int = 0
    completed_doctors: int = 0
    status: HistoryStatus = HistoryStatus.COMPLETED
    stopped_by: Optional[str] = None
    stopped_by_name: Optional[str] = None
    stopped_by_user: Optional[UserRef] = None  # resolved at read time
    metadata: Dict[str, Any] = {}
    created_at: datetime

    class Config:
        populate_by_name = True


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class HistoryPage(BaseModel):
    """One page of history records."""
    data: List[HistoryRecord] = []
    pagination: Pagination


class HistoryFilter(BaseModel):
    """Conjunctive history filters; all optional."""
    runner_id: Optional[str] = None
    status: Optional[HistoryStatus] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class CountBucket(BaseModel):
    key: Optional[str] = None
    count: int = 0


class RunnerCount(BaseModel):
    runner_id: Optional[str] = None
    name: Optional[str] = None
    count: int = 0


class HistoryAverages(BaseModel):
    avg_elapsed_time: float = 0
    avg_doctors: float = 0
    avg_completed: float = 0
    total_elapsed_time: int = 0
    total_doctors: int = 0
    total_completed: int = 0


class DailyCount(BaseModel):
    date: str
    count: int = 0


class HistoryAnalytics(BaseModel):
    """Aggregate statistics over archived sessions."""
    period: str
    total_sessions: int = 0
    averages: HistoryAverages = HistoryAverages()
    by_status: List[CountBucket] = []
    top_runners: List[RunnerCount] = []
    daily: List[DailyCount] = []
    longest: Optional[HistoryRecord] = None
    shortest: Optional[HistoryRecord] = None
