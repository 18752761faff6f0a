"""
Queue history API routes.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from ..models.history import HistoryAnalytics, HistoryFilter, HistoryPage, HistoryRecord, HistoryStatus
from ..models.user import User
from ..services.history_service import HistoryService
from .dependencies import get_current_user

router = APIRouter(prefix="/queue/history", tags=["Queue History"])


@router.get("", response_model=HistoryPage, response_model_by_alias=False)
async def list_history(
    runner_id: Optional[str] = Query(None, alias="runnerId"),
    history_status: Optional[HistoryStatus] = Query(None, alias="status"),
    start_date: Optional[str] = Query(None, alias="startDate", description="YYYY-MM-DD, inclusive"),
    end_date: Optional[str] = Query(None, alias="endDate", description="YYYY-MM-DD, inclusive"),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    sort: Optional[str] = Query(None, description="Field name, '-' prefix for descending"),
    current_user: User = Depends(get_current_user)
):
    """Archived sessions, most recent first."""
    filters = HistoryFilter(
        runner_id=runner_id,
        status=history_status,
        start_date=start_date,
        end_date=end_date
    )
    return await HistoryService.query(filters, page=page, limit=limit, sort=sort)


@router.get("/analytics", response_model=HistoryAnalytics, response_model_by_alias=False)
async def get_analytics(
    period: str = Query("30d", description="7d, 30d, 90d, 1y or all"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    current_user: User = Depends(get_current_user)
):
    """Aggregate statistics over archived sessions."""
    return await HistoryService.analytics(period, start_date, end_date)


@router.get("/{session_id}", response_model=HistoryRecord, response_model_by_alias=False)
async def get_history_record(
    session_id: str,
    current_user: User = Depends(get_current_user)
):
    """Get one archived session."""
    return await HistoryService.get_record(session_id)
