"""Voice interview session state.

Sessions live in a `SessionStore`; two backends exist, an in-process map and
the SQL database, chosen by SESSION_BACKEND. Each mutation runs against a
copy and is stored only when it succeeds, one session id at a time.
"""
import asyncio
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from errors import ConflictError, NotFoundError
from models import InterviewSessionRecord
from schemas import InterviewSession, SessionStatus, VoiceAnswer, VoiceQuestion, utcnow

DEFAULT_TTL_HOURS = 24

Mutator = Callable[[InterviewSession], None]


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _is_expired(session: InterviewSession, now: datetime) -> bool:
    return session.expires_at is not None and _naive_utc(session.expires_at) <= _naive_utc(now)


class SessionStore(ABC):
    def __init__(self, ttl: timedelta):
        self.ttl = ttl

    def _touch(self, session: InterviewSession) -> None:
        session.updated_at = utcnow()
        session.expires_at = session.updated_at + self.ttl

    @abstractmethod
    async def create(self, session: InterviewSession) -> InterviewSession: ...

    @abstractmethod
    async def get(self, session_id: str) -> Optional[InterviewSession]: ...

    @abstractmethod
    async def update(self, session_id: str, mutate: Mutator) -> InterviewSession: ...

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[InterviewSession]: ...

    @abstractmethod
    async def purge_expired(self) -> int: ...


class MemorySessionStore(SessionStore):
    """Single-process, non-durable store."""

    def __init__(self, ttl: timedelta = timedelta(hours=DEFAULT_TTL_HOURS)):
        super().__init__(ttl)
        self._sessions: dict[str, InterviewSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, session_id: str) -> asyncio.Lock:
        if session_id not in self._locks:
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    async def create(self, session: InterviewSession) -> InterviewSession:
        self._touch(session)
        self._sessions[session.session_id] = session.model_copy(deep=True)
        return session

    async def get(self, session_id: str) -> Optional[InterviewSession]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if _is_expired(session, utcnow()):
            self._sessions.pop(session_id, None)
            self._locks.pop(session_id, None)
            return None
        return session.model_copy(deep=True)

    async def update(self, session_id: str, mutate: Mutator) -> InterviewSession:
        async with self._lock(session_id):
            session = await self.get(session_id)
            if session is None:
                raise NotFoundError("Interview session not found or expired")
            mutate(session)
            self._touch(session)
            self._sessions[session_id] = session.model_copy(deep=True)
            return session

    async def list_for_user(self, user_id: str) -> list[InterviewSession]:
        now = utcnow()
        return [
            s.model_copy(deep=True)
            for s in self._sessions.values()
            if s.user_id == user_id and not _is_expired(s, now)
        ]

    async def purge_expired(self) -> int:
        now = utcnow()
        expired = [sid for sid, s in self._sessions.items() if _is_expired(s, now)]
        for sid in expired:
            self._sessions.pop(sid, None)
            self._locks.pop(sid, None)
        return len(expired)


class DatabaseSessionStore(SessionStore):
    """Durable store shared by every process using the same database."""

    def __init__(self, session_factory: async_sessionmaker, ttl: timedelta = timedelta(hours=DEFAULT_TTL_HOURS)):
        super().__init__(ttl)
        self.session_factory = session_factory
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, session_id: str) -> asyncio.Lock:
        if session_id not in self._locks:
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    @staticmethod
    def _apply(record: InterviewSessionRecord, session: InterviewSession) -> None:
        record.user_id = session.user_id
        record.plan_id = session.plan_id
        record.status = session.status.value
        record.data = session.model_dump(mode="json")
        record.expires_at = _naive_utc(session.expires_at)

    async def create(self, session: InterviewSession) -> InterviewSession:
        self._touch(session)
        async with self.session_factory() as db:
            record = InterviewSessionRecord(session_id=session.session_id)
            self._apply(record, session)
            db.add(record)
            await db.commit()
        return session

    async def get(self, session_id: str) -> Optional[InterviewSession]:
        async with self.session_factory() as db:
            record = await db.get(InterviewSessionRecord, session_id)
            if record is None:
                return None
            if record.expires_at <= _naive_utc(utcnow()):
                await db.delete(record)
                await db.commit()
                return None
            return InterviewSession.model_validate(record.data)

    async def update(self, session_id: str, mutate: Mutator) -> InterviewSession:
        async with self._lock(session_id):
            async with self.session_factory() as db:
                async with db.begin():
                    record = await db.get(InterviewSessionRecord, session_id, with_for_update=True)
                    if record is None or record.expires_at <= _naive_utc(utcnow()):
                        raise NotFoundError("Interview session not found or expired")
                    session = InterviewSession.model_validate(record.data)
                    mutate(session)
                    self._touch(session)
                    self._apply(record, session)
            return session

    async def list_for_user(self, user_id: str) -> list[InterviewSession]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(InterviewSessionRecord).where(
                    InterviewSessionRecord.user_id == user_id,
                    InterviewSessionRecord.expires_at > _naive_utc(utcnow()),
                )
            )
            return [InterviewSession.model_validate(r.data) for r in result.scalars().all()]

    async def purge_expired(self) -> int:
        async with self.session_factory() as db:
            result = await db.execute(
                delete(InterviewSessionRecord).where(InterviewSessionRecord.expires_at <= _naive_utc(utcnow()))
            )
            await db.commit()
            return result.rowcount or 0


# ── State machine ────────────────────────────────────────

def _require_active(session: InterviewSession) -> None:
    if session.status != SessionStatus.ACTIVE:
        raise ConflictError(f"Interview session is already {session.status.value}")


def _transition(target: SessionStatus) -> Mutator:
    def mutate(session: InterviewSession) -> None:
        if session.status == target:
            return
        _require_active(session)
        session.status = target

    return mutate


class SessionManager:
    def __init__(self, store: SessionStore):
        self.store = store

    async def create_session(
        self,
        user_id: str,
        plan_id: str,
        questions: list[VoiceQuestion],
        job_role: str = "",
        resume_context: str = "",
    ) -> InterviewSession:
        session = InterviewSession(
            session_id=str(uuid.uuid4()),
            user_id=user_id,
            plan_id=plan_id,
            questions=questions,
            job_role=job_role,
            resume_context=resume_context,
        )
        await self.store.create(session)
        print(f"[SESSION] Created {session.session_id} for plan {plan_id} ({len(questions)} questions)")
        return session

    async def get_session(self, session_id: str) -> InterviewSession:
        session = await self.store.get(session_id)
        if session is None:
            raise NotFoundError("Interview session not found or expired")
        return session

    async def add_answer(self, session_id: str, answer: VoiceAnswer) -> InterviewSession:
        def mutate(session: InterviewSession) -> None:
            _require_active(session)
            session.answers = [a for a in session.answers if a.question_id != answer.question_id]
            session.answers.append(answer)

        return await self.store.update(session_id, mutate)

    async def get_current_question(self, session_id: str) -> Optional[VoiceQuestion]:
        return (await self.get_session(session_id)).current_question()

    async def next_question(self, session_id: str) -> Optional[VoiceQuestion]:
        """Advance the cursor; None once every question has been issued."""

        def mutate(session: InterviewSession) -> None:
            _require_active(session)
            if session.current_question_index < len(session.questions):
                session.current_question_index += 1

        session = await self.store.update(session_id, mutate)
        return session.current_question()

    async def complete_session(self, session_id: str) -> InterviewSession:
        session = await self.store.update(session_id, _transition(SessionStatus.COMPLETED))
        print(f"[SESSION] Completed {session_id} with {len(session.answers)} answers")
        return session

    async def cancel_session(self, session_id: str) -> InterviewSession:
        session = await self.store.update(session_id, _transition(SessionStatus.CANCELLED))
        print(f"[SESSION] Cancelled {session_id} with {len(session.answers)} answers")
        return session

    async def get_user_active_sessions(self, user_id: str) -> list[InterviewSession]:
        sessions = await self.store.list_for_user(user_id)
        return [s for s in sessions if s.status == SessionStatus.ACTIVE]

    async def cleanup_expired(self) -> int:
        removed = await self.store.purge_expired()
        if removed:
            print(f"[SESSION] Purged {removed} expired sessions")
        return removed


def build_session_store(backend: str, session_factory: async_sessionmaker, ttl_hours: int) -> SessionStore:
    ttl = timedelta(hours=ttl_hours)
    if backend == "database":
        return DatabaseSessionStore(session_factory, ttl)
    return MemorySessionStore(ttl)
