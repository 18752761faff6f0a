"""
Queue history archive and retrieval.

History records are written once, when a session stops, and never updated.
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Tuple

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from .. import clock
from ..config import get_settings
from ..database import Database, HISTORY, USERS, storage_guard
from ..errors import NotFound, ValidationError
from ..models.history import (
    HistoryRecord,
    HistoryPage,
    HistoryFilter,
    HistoryStatus,
    HistoryAnalytics,
    HistoryAverages,
    CountBucket,
    RunnerCount,
    DailyCount,
    Pagination
)
from ..models.user import UserRef

settings = get_settings()
logger = logging.getLogger(__name__)

DEFAULT_SORT = "-start_time"

# Accepted sort keys, camelCase spellings included
SORT_FIELDS = {
    "start_time": "start_time",
    "startTime": "start_time",
    "end_time": "end_time",
    "endTime": "end_time",
    "elapsed_time": "elapsed_time",
    "elapsedTime": "elapsed_time",
    "duration": "elapsed_time",
    "runner_name": "runner_name",
    "runnerName": "runner_name",
    "status": "status",
    "total_doctors": "total_doctors",
    "totalDoctors": "total_doctors",
    "completed_doctors": "completed_doctors",
    "completedDoctors": "completed_doctors",
    "created_at": "created_at",
    "createdAt": "created_at",
}

PERIODS = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
    "all": None,
}

DAILY_TREND_DAYS = 30


def parse_sort(sort: Optional[str]) -> List[Tuple[str, int]]:
    """``field`` sorts ascending, ``-field`` descending."""
    sort = (sort or DEFAULT_SORT).strip()
    direction = -1 if sort.startswith("-") else 1
    key = sort.lstrip("-+")
    if key not in SORT_FIELDS:
        raise ValidationError(f"Cannot sort history by '{key}'")
    return [(SORT_FIELDS[key], direction), ("_id", direction)]


def build_query(filters: HistoryFilter) -> dict:
    """Translate optional filters into a conjunctive Mongo query."""
    query = {}

    if filters.runner_id:
        query["runner_id"] = filters.runner_id

    if filters.status:
        query["status"] = filters.status.value

    start_day = clock.parse_day(filters.start_date, "startDate") if filters.start_date else None
    end_day = clock.parse_day(filters.end_date, "endDate") if filters.end_date else None

    if start_day and end_day and start_day > end_day:
        raise ValidationError("startDate must not be after endDate")

    if start_day or end_day:
        query["start_time"] = {}
        if start_day:
            query["start_time"]["$gte"] = clock.start_of_day(start_day)
        if end_day:
            query["start_time"]["$lte"] = clock.end_of_day(end_day)

    return query


def default_status(session: dict) -> HistoryStatus:
    """A session that got through its whole roster counts as completed."""
    doctors = session.get("doctors") or []
    if doctors and session.get("current_queue_index", 0) >= len(doctors):
        return HistoryStatus.COMPLETED
    return HistoryStatus.STOPPED


def _to_record(doc: dict, users: Optional[Dict[str, UserRef]] = None) -> HistoryRecord:
    doc["_id"] = str(doc["_id"])
    if users is not None:
        doc["runner"] = users.get(doc.get("runner_id"))
        doc["stopped_by_user"] = users.get(doc.get("stopped_by"))
    return HistoryRecord(**doc)


class HistoryService:
    """Append-only session archive."""

    @classmethod
    async def archive(
        cls,
        session: dict,
        stopped_by: Optional[str],
        stopped_by_name: Optional[str],
        end_time: datetime,
        status: Optional[HistoryStatus] = None
    ) -> Tuple[HistoryRecord, bool]:
        """Write the snapshot of a stopping session.

        Returns the record and whether it was created by this call. A record
        that already exists for the session id is returned unchanged.
        """
        history = Database.get_collection(HISTORY)

        doctors = session.get("doctors") or []
        index = session.get("current_queue_index", 0)
        completed = min(index, len(doctors))
        elapsed = session.get("elapsed_time", 0)

        metadata = {}
        if completed:
            metadata["average_time_per_doctor"] = elapsed // completed

        record_doc = {
            "session_id": session["session_id"],
            "runner_id": session["runner_id"],
            "runner_name": session["runner_name"],
            "doctors": doctors,
            "current_queue_index": index,
            "start_time": session["start_time"],
            "end_time": end_time,
            "elapsed_time": elapsed,
            "total_doctors": len(doctors),
            "completed_doctors": completed,
            "status": (status or default_status(session)).value,
            "stopped_by": stopped_by,
            "stopped_by_name": stopped_by_name,
            "metadata": metadata,
            "created_at": clock.utcnow()
        }

        try:
            async with storage_guard("history archive"):
                result = await history.insert_one(record_doc)
        except DuplicateKeyError:
            logger.info("Session %s already archived", session["session_id"])
            return await cls.get_record(session["session_id"], resolve=False), False

        record_doc["_id"] = result.inserted_id
        logger.info(
            "Archived session %s (%s, %d ms)",
            record_doc["session_id"], record_doc["status"], elapsed
        )
        return _to_record(record_doc), True

    @classmethod
    async def exists(cls, session_id: str) -> bool:
        history = Database.get_collection(HISTORY)

        async with storage_guard("history lookup"):
            doc = await history.find_one({"session_id": session_id}, {"_id": 1})

        return doc is not None

    @classmethod
    async def get_record(cls, session_id: str, resolve: bool = True) -> HistoryRecord:
        """Get an archived session by its session id."""
        history = Database.get_collection(HISTORY)

        async with storage_guard("history lookup"):
            doc = await history.find_one({"session_id": session_id})

        if not doc:
            raise NotFound("History record not found")

        users = await cls._resolve_users([doc]) if resolve else None
        return _to_record(doc, users)

    @classmethod
    async def query(
        cls,
        filters: HistoryFilter,
        page: int = 1,
        limit: Optional[int] = None,
        sort: Optional[str] = None
    ) -> HistoryPage:
        """Filtered, paginated history, most recent first by default."""
        history = Database.get_collection(HISTORY)

        page = max(1, page)
        limit = min(settings.HISTORY_MAX_PAGE_SIZE, max(1, limit or settings.HISTORY_PAGE_SIZE))
        query = build_query(filters)
        sort_spec = parse_sort(sort)

        async with storage_guard("history query"):
            cursor = history.find(query).sort(sort_spec).skip((page - 1) * limit).limit(limit)
            docs, total = await asyncio.gather(
                cursor.to_list(length=limit),
                history.count_documents(query)
            )

        users = await cls._resolve_users(docs)

        return HistoryPage(
            data=[_to_record(doc, users) for doc in docs],
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                pages=math.ceil(total / limit)
            )
        )

    @classmethod
    async def _resolve_users(cls, docs: List[dict]) -> Dict[str, UserRef]:
        """Map referenced user ids to display projections.

        Unknown ids are simply absent from the result.
        """
        ids = set()
        for doc in docs:
            for field in ("runner_id", "stopped_by"):
                value = doc.get(field)
                if value and ObjectId.is_valid(value):
                    ids.add(ObjectId(value))

        if not ids:
            return {}

        users = Database.get_collection(USERS)
        resolved = {}
        async with storage_guard("history user lookup"):
            cursor = users.find({"_id": {"$in": list(ids)}}, {"full_name": 1, "username": 1})
            async for user in cursor:
                user_id = str(user["_id"])
                resolved[user_id] = UserRef(
                    id=user_id,
                    name=user.get("full_name", ""),
                    username=user.get("username")
                )

        return resolved

    @classmethod
    async def analytics(
        cls,
        period: str = "30d",
        start_date: Optional[str] = None,
        end_date: Optional[str] = None
    ) -> HistoryAnalytics:
        """Aggregate statistics over archived sessions."""
        history = Database.get_collection(HISTORY)

        if start_date and end_date:
            query = build_query(HistoryFilter(start_date=start_date, end_date=end_date))
            period = "custom"
        else:
            if period not in PERIODS:
                raise ValidationError(f"Unknown period '{period}'")
            window = PERIODS[period]
            query = {"start_time": {"$gte": clock.utcnow() - window}} if window else {}

        async with storage_guard("history analytics"):
            total = await history.count_documents(query)

            by_status = await history.aggregate([
                {"$match": query},
                {"$group": {"_id": "$status", "count": {"$sum": 1}}},
                {"$sort": {"count": -1}}
            ]).to_list(length=None)

            top_runners = await history.aggregate([
                {"$match": query},
                {"$group": {
                    "_id": "$runner_id",
                    "count": {"$sum": 1},
                    "name": {"$first": "$runner_name"}
                }},
                {"$sort": {"count": -1}},
                {"$limit": 10}
            ]).to_list(length=None)

            averages = await history.aggregate([
                {"$match": query},
                {"$group": {
                    "_id": None,
                    "avg_elapsed_time": {"$avg": "$elapsed_time"},
                    "avg_doctors": {"$avg": "$total_doctors"},
                    "avg_completed": {"$avg": "$completed_doctors"},
                    "total_elapsed_time": {"$sum": "$elapsed_time"},
                    "total_doctors": {"$sum": "$total_doctors"},
                    "total_completed": {"$sum": "$completed_doctors"}
                }}
            ]).to_list(length=None)

            longest = await history.find_one(query, sort=[("elapsed_time", -1)])
            shortest = await history.find_one(query, sort=[("elapsed_time", 1)])

        daily = await cls._daily_counts(query)

        stats = averages[0] if averages else {}
        stats.pop("_id", None)

        ranked = [doc for doc in (longest, shortest) if doc]
        users = await cls._resolve_users(ranked)

        return HistoryAnalytics(
            period=period,
            total_sessions=total,
            averages=HistoryAverages(**{k: v or 0 for k, v in stats.items()}),
            by_status=[CountBucket(key=b["_id"], count=b["count"]) for b in by_status],
            top_runners=[
                RunnerCount(runner_id=r["_id"], name=r.get("name"), count=r["count"])
                for r in top_runners
            ],
            daily=daily,
            longest=_to_record(longest, users) if longest else None,
            shortest=_to_record(shortest, users) if shortest else None
        )

    @classmethod
    async def _daily_counts(cls, query: dict) -> List[DailyCount]:
        """Session counts for each of the last local days, oldest first."""
        history = Database.get_collection(HISTORY)
        today = clock.local_today()
        bounds = query.get("start_time", {})

        days = []
        for offset in range(DAILY_TREND_DAYS - 1, -1, -1):
            day = today - timedelta(days=offset)
            start, end = clock.day_bounds(day)
            start = max(start, bounds.get("$gte", start))
            end = min(end, bounds.get("$lte", end))

            count = 0
            if start <= end:
                async with storage_guard("history daily trend"):
                    count = await history.count_documents(
                        {**query, "start_time": {"$gte": start, "$lte": end}}
                    )
            days.append(DailyCount(date=day.isoformat(), count=count))

        return days
