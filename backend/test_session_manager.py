import asyncio
from datetime import timedelta

import pytest

from errors import ConflictError, NotFoundError
from schemas import SessionStatus, VoiceAnswer, VoiceQuestion
from session_manager import DatabaseSessionStore, MemorySessionStore, SessionManager, build_session_store

QUESTIONS = [VoiceQuestion(id=f"voice-{i}", text=f"Question {i}?", topic=f"t{i}") for i in range(1, 4)]


@pytest.fixture(params=["memory", "database"])
def make_store(request, session_factory):
    def factory(ttl=timedelta(hours=24)):
        if request.param == "database":
            return DatabaseSessionStore(session_factory, ttl)
        return MemorySessionStore(ttl)

    return factory


def answer(question_id: str, transcript: str = "An answer") -> VoiceAnswer:
    return VoiceAnswer(question_id=question_id, question_text="Q", transcript=transcript)


def test_cursor_walks_every_question(make_store):
    async def scenario():
        manager = SessionManager(make_store())
        session = await manager.create_session("user-1", "plan-1", QUESTIONS, job_role="Engineer")
        first = await manager.get_current_question(session.session_id)
        second = await manager.next_question(session.session_id)
        third = await manager.next_question(session.session_id)
        past_end = await manager.next_question(session.session_id)
        still_past_end = await manager.next_question(session.session_id)
        return first, second, third, past_end, still_past_end

    first, second, third, past_end, still_past_end = asyncio.run(scenario())
    assert [first.id, second.id, third.id] == ["voice-1", "voice-2", "voice-3"]
    assert past_end is None
    assert still_past_end is None


def test_answers_replace_by_question_id(make_store):
    async def scenario():
        manager = SessionManager(make_store())
        session = await manager.create_session("user-1", "plan-1", QUESTIONS)
        await manager.add_answer(session.session_id, answer("voice-1", "first try"))
        await manager.add_answer(session.session_id, answer("voice-2"))
        await manager.add_answer(session.session_id, answer("voice-1", "second try"))
        return await manager.get_session(session.session_id)

    session = asyncio.run(scenario())
    assert [a.question_id for a in session.answers] == ["voice-2", "voice-1"]
    assert session.answers[-1].transcript == "second try"


def test_terminal_sessions_reject_changes(make_store):
    async def scenario():
        manager = SessionManager(make_store())
        session = await manager.create_session("user-1", "plan-1", QUESTIONS)
        completed = await manager.complete_session(session.session_id)
        again = await manager.complete_session(session.session_id)
        with pytest.raises(ConflictError):
            await manager.add_answer(session.session_id, answer("voice-1"))
        with pytest.raises(ConflictError):
            await manager.next_question(session.session_id)
        with pytest.raises(ConflictError):
            await manager.cancel_session(session.session_id)
        return completed, again

    completed, again = asyncio.run(scenario())
    assert completed.status == SessionStatus.COMPLETED
    assert again.status == SessionStatus.COMPLETED


def test_cancelled_session_cannot_complete(make_store):
    async def scenario():
        manager = SessionManager(make_store())
        session = await manager.create_session("user-1", "plan-1", QUESTIONS)
        await manager.cancel_session(session.session_id)
        with pytest.raises(ConflictError):
            await manager.complete_session(session.session_id)
        return await manager.get_session(session.session_id)

    assert asyncio.run(scenario()).status == SessionStatus.CANCELLED


def test_expired_session_is_not_found(make_store):
    async def scenario():
        manager = SessionManager(make_store(ttl=timedelta(seconds=-1)))
        session = await manager.create_session("user-1", "plan-1", QUESTIONS)
        with pytest.raises(NotFoundError):
            await manager.get_session(session.session_id)
        with pytest.raises(NotFoundError):
            await manager.add_answer(session.session_id, answer("voice-1"))

    asyncio.run(scenario())


def test_cleanup_purges_only_expired(make_store):
    async def scenario():
        store = make_store()
        manager = SessionManager(store)
        kept = await manager.create_session("user-1", "plan-1", QUESTIONS)
        store.ttl = timedelta(seconds=-1)
        await manager.create_session("user-1", "plan-1", QUESTIONS)
        removed = await manager.cleanup_expired()
        removed_again = await manager.cleanup_expired()
        store.ttl = timedelta(hours=24)
        active = await manager.get_user_active_sessions("user-1")
        return removed, removed_again, [s.session_id for s in active], kept.session_id

    removed, removed_again, active_ids, kept_id = asyncio.run(scenario())
    assert removed == 1
    assert removed_again == 0
    assert active_ids == [kept_id]


def test_active_sessions_exclude_completed(make_store):
    async def scenario():
        manager = SessionManager(make_store())
        done = await manager.create_session("user-1", "plan-1", QUESTIONS)
        open_session = await manager.create_session("user-1", "plan-1", QUESTIONS)
        await manager.create_session("user-2", "plan-2", QUESTIONS)
        await manager.complete_session(done.session_id)
        active = await manager.get_user_active_sessions("user-1")
        return [s.session_id for s in active], open_session.session_id

    active_ids, open_id = asyncio.run(scenario())
    assert active_ids == [open_id]


def test_concurrent_answers_are_all_kept(make_store):
    async def scenario():
        manager = SessionManager(make_store())
        session = await manager.create_session("user-1", "plan-1", QUESTIONS)
        await asyncio.gather(*(manager.add_answer(session.session_id, answer(q.id)) for q in QUESTIONS))
        return await manager.get_session(session.session_id)

    session = asyncio.run(scenario())
    assert sorted(a.question_id for a in session.answers) == ["voice-1", "voice-2", "voice-3"]


def test_build_session_store_backends(session_factory):
    assert isinstance(build_session_store("database", session_factory, 1), DatabaseSessionStore)
    assert isinstance(build_session_store("memory", session_factory, 1), MemorySessionStore)
