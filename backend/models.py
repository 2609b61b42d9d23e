from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.orm import DeclarativeBase
import datetime
import uuid


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class AssessmentPlanRecord(Base):
    __tablename__ = "assessment_plans"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="DRAFT")  # DRAFT, COMPLETED
    resume_text = Column(Text, nullable=False)
    resume_url = Column(String, nullable=True)
    id_card_url = Column(String, nullable=True)
    role_category = Column(String, nullable=True)
    primary_skill = Column(String, nullable=True)
    components = Column(JSON, nullable=False)  # list of VOICE / MCQ / CODE
    question_counts = Column(JSON, nullable=False)  # {"voice": n, "mcq": n, "code": n}
    difficulty = Column(String, nullable=False)  # entry, mid, senior, executive
    estimated_duration = Column(Integer, nullable=False)  # minutes
    interview_plan = Column(JSON, nullable=False)  # InterviewPlanDocument
    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, default=_now, onupdate=_now)


class InterviewSessionRecord(Base):
    __tablename__ = "interview_sessions"

    session_id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    plan_id = Column(String, nullable=False)
    status = Column(String, nullable=False, default="active")  # active, completed, cancelled
    data = Column(JSON, nullable=False)  # InterviewSession
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, default=_now, onupdate=_now)
