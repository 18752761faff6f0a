"""
Queue session state machine.

The running queue is one shell document in ``queue_sessions``. Every
transition is a single conditional update on that document, so two server
instances can never both believe they own a running session.
"""

import logging
import uuid
from typing import Optional, List

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from .. import clock
from ..database import Database, SESSIONS, storage_guard
from ..errors import (
    ArchiveFailed,
    NotFound,
    SessionAlreadyRunning,
    SessionNotRunning,
    StorageUnavailable
)
from ..models.history import HistoryRecord, HistoryStatus
from ..models.session import Doctor, QueueSession, SessionStatus
from .history_service import HistoryService

logger = logging.getLogger(__name__)

SHELL_ID = "active"


def _idle_fields() -> dict:
    return {
        "session_id": None,
        "is_running": False,
        "current_queue_index": 0,
        "doctors": [],
        "start_time": None,
        "elapsed_time": 0,
        "runner_id": None,
        "runner_name": None,
        "last_updated": clock.utcnow()
    }


def _to_session(doc: dict) -> QueueSession:
    return QueueSession(**{k: v for k, v in doc.items() if k != "_id"})


def _dump_doctors(doctors: List[Doctor]) -> List[dict]:
    return [d.model_dump() for d in doctors]


class SessionService:
    """Start, advance and stop the single queue session."""

    @classmethod
    async def _ensure_shell(cls):
        """Create the idle shell document on first use."""
        sessions = Database.get_collection(SESSIONS)
        try:
            async with storage_guard("session shell setup"):
                await sessions.update_one(
                    {"_id": SHELL_ID},
                    {"$setOnInsert": _idle_fields()},
                    upsert=True
                )
        except DuplicateKeyError:
            # Another request created it first
            pass

    @classmethod
    async def _running(cls, session_id: str) -> Optional[dict]:
        sessions = Database.get_collection(SESSIONS)
        async with storage_guard("session lookup"):
            return await sessions.find_one(
                {"_id": SHELL_ID, "session_id": session_id, "is_running": True}
            )

    @classmethod
    async def _not_running(cls, session_id: str) -> Exception:
        """Error for a session id that did not match the running session."""
        if await HistoryService.exists(session_id):
            return SessionNotRunning(f"Queue session {session_id} is not running")
        return NotFound(f"Queue session {session_id} not found")

    @classmethod
    async def _update_running(cls, session_id: str, update: dict, operation: str) -> QueueSession:
        """Apply ``update`` only while ``session_id`` is the running session."""
        sessions = Database.get_collection(SESSIONS)
        update.setdefault("$set", {})["last_updated"] = clock.utcnow()

        async with storage_guard(operation):
            result = await sessions.find_one_and_update(
                {"_id": SHELL_ID, "session_id": session_id, "is_running": True},
                update,
                return_document=ReturnDocument.AFTER
            )

        if not result:
            raise await cls._not_running(session_id)
        return _to_session(result)

    @classmethod
    async def get_status(cls) -> SessionStatus:
        """Current state of the queue resource."""
        sessions = Database.get_collection(SESSIONS)

        async with storage_guard("session status"):
            doc = await sessions.find_one({"_id": SHELL_ID, "is_running": True})

        if not doc:
            return SessionStatus()

        session = _to_session(doc)
        index = session.current_queue_index
        current = session.doctors[index] if index < len(session.doctors) else None

        return SessionStatus(
            is_running=True,
            current_queue_index=index,
            doctors=session.doctors,
            current_doctor=current,
            session=session
        )

    @classmethod
    async def get_session(cls, session_id: str) -> QueueSession:
        doc = await cls._running(session_id)
        if not doc:
            raise await cls._not_running(session_id)
        return _to_session(doc)

    @classmethod
    async def start(
        cls,
        runner_id: str,
        runner_name: str,
        doctors: List[Doctor]
    ) -> QueueSession:
        """Claim the queue. Fails if any session is running, whoever owns it."""
        sessions = Database.get_collection(SESSIONS)
        await cls._ensure_shell()

        now = clock.utcnow()
        session_id = uuid.uuid4().hex

        async with storage_guard("session start"):
            result = await sessions.find_one_and_update(
                {"_id": SHELL_ID, "is_running": False},
                {
                    "$set": {
                        "session_id": session_id,
                        "is_running": True,
                        "current_queue_index": 0,
                        "doctors": _dump_doctors(doctors),
                        "start_time": now,
                        "elapsed_time": 0,
                        "runner_id": runner_id,
                        "runner_name": runner_name,
                        "last_updated": now
                    }
                },
                return_document=ReturnDocument.AFTER
            )

        if not result:
            logger.warning("Runner %s tried to start while a session is running", runner_id)
            raise SessionAlreadyRunning()

        logger.info(
            "Session %s started by %s with %d doctor(s)",
            session_id, runner_name, len(doctors)
        )
        return _to_session(result)

    @classmethod
    async def advance(cls, session_id: str) -> QueueSession:
        """Move the position pointer forward by one."""
        session = await cls._update_running(
            session_id,
            {"$inc": {"current_queue_index": 1}},
            "session advance"
        )
        logger.info("Session %s advanced to index %d", session_id, session.current_queue_index)
        return session

    @classmethod
    async def update_doctors(cls, session_id: str, doctors: List[Doctor]) -> QueueSession:
        """Replace the doctor roster of the running session."""
        session = await cls._update_running(
            session_id,
            {"$set": {"doctors": _dump_doctors(doctors)}},
            "session roster update"
        )
        logger.info("Session %s roster replaced (%d doctor(s))", session_id, len(doctors))
        return session

    @classmethod
    async def stop(
        cls,
        session_id: str,
        stopped_by: Optional[str] = None,
        stopped_by_name: Optional[str] = None,
        status: Optional[HistoryStatus] = None
    ) -> HistoryRecord:
        """Archive the running session, then return the shell to idle.

        If archiving fails the session keeps running. If clearing fails after
        the archive, a retry finds the existing record and finishes the stop.
        """
        sessions = Database.get_collection(SESSIONS)

        doc = await cls._running(session_id)
        if not doc:
            raise await cls._not_running(session_id)

        end_time = clock.utcnow()
        doc["elapsed_time"] = doc.get("elapsed_time", 0) + clock.elapsed_ms(doc["start_time"], end_time)

        try:
            record, created = await HistoryService.archive(
                doc, stopped_by, stopped_by_name, end_time, status
            )
        except StorageUnavailable as exc:
            logger.error("Archiving session %s failed; session left running", session_id)
            raise ArchiveFailed() from exc

        async with storage_guard("session stop"):
            result = await sessions.update_one(
                {"_id": SHELL_ID, "session_id": session_id, "is_running": True},
                {"$set": _idle_fields()}
            )

        if result.modified_count == 0:
            # A concurrent stop cleared the shell first
            raise SessionNotRunning(f"Queue session {session_id} is not running")

        if not created:
            logger.info("Session %s stop completed from an earlier archive", session_id)
        logger.info("Session %s stopped by %s", session_id, stopped_by_name or stopped_by)
        return record
