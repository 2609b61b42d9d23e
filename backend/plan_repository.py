from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from errors import NotFoundError
from models import AssessmentPlanRecord
from schemas import (
    AssessmentPlan,
    Component,
    ExperienceLevel,
    InterviewPlanDocument,
    PlanStatus,
    QuestionCounts,
)


class StoredPlan(BaseModel):
    id: str
    user_id: str
    status: PlanStatus
    resume_text: str
    resume_url: Optional[str] = None
    id_card_url: Optional[str] = None
    role_category: Optional[str] = None
    primary_skill: Optional[str] = None
    components: list[Component]
    question_counts: QuestionCounts
    difficulty: ExperienceLevel
    estimated_duration: int
    document: InterviewPlanDocument
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: AssessmentPlanRecord) -> "StoredPlan":
        return cls(
            id=record.id,
            user_id=record.user_id,
            status=record.status,
            resume_text=record.resume_text,
            resume_url=record.resume_url,
            id_card_url=record.id_card_url,
            role_category=record.role_category,
            primary_skill=record.primary_skill,
            components=record.components,
            question_counts=record.question_counts,
            difficulty=record.difficulty,
            estimated_duration=record.estimated_duration,
            document=InterviewPlanDocument.model_validate(record.interview_plan or {}),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class PlanRepository:
    """Durable assessment plans. The interview plan document is always written whole."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def create_plan(
        self,
        user_id: str,
        resume_text: str,
        plan: AssessmentPlan,
        document: InterviewPlanDocument,
        role_category: Optional[str] = None,
        primary_skill: Optional[str] = None,
    ) -> StoredPlan:
        async with self.session_factory() as db:
            record = AssessmentPlanRecord(
                user_id=user_id,
                status=PlanStatus.DRAFT.value,
                resume_text=resume_text,
                resume_url=document.resume_url,
                id_card_url=document.id_card_url,
                role_category=role_category,
                primary_skill=primary_skill,
                components=[c.value for c in plan.components],
                question_counts=plan.question_counts.model_dump(),
                difficulty=plan.difficulty.value,
                estimated_duration=plan.estimated_duration,
                interview_plan=document.model_dump(mode="json"),
            )
            db.add(record)
            await db.commit()
            await db.refresh(record)
            print(f"[PLAN] Created DRAFT plan {record.id} for user {user_id}")
            return StoredPlan.from_record(record)

    async def get_plan(self, plan_id: str) -> Optional[StoredPlan]:
        async with self.session_factory() as db:
            record = await db.get(AssessmentPlanRecord, plan_id)
            return StoredPlan.from_record(record) if record else None

    async def _latest(self, user_id: str, status: Optional[PlanStatus]) -> Optional[StoredPlan]:
        query = select(AssessmentPlanRecord).where(AssessmentPlanRecord.user_id == user_id)
        if status is not None:
            query = query.where(AssessmentPlanRecord.status == status.value)
        query = query.order_by(AssessmentPlanRecord.created_at.desc()).limit(1)
        async with self.session_factory() as db:
            result = await db.execute(query)
            record = result.scalars().first()
            return StoredPlan.from_record(record) if record else None

    async def get_current_draft(self, user_id: str) -> Optional[StoredPlan]:
        return await self._latest(user_id, PlanStatus.DRAFT)

    async def get_latest(self, user_id: str) -> Optional[StoredPlan]:
        return await self._latest(user_id, None)

    async def update_document(
        self,
        plan_id: str,
        mutate: Callable[[InterviewPlanDocument], None],
        status: Optional[PlanStatus] = None,
    ) -> StoredPlan:
        """Read the plan document, apply `mutate` and write the whole document back."""
        async with self.session_factory() as db:
            async with db.begin():
                record = await db.get(AssessmentPlanRecord, plan_id)
                if record is None:
                    raise NotFoundError("Assessment plan not found")
                document = InterviewPlanDocument.model_validate(record.interview_plan or {})
                mutate(document)
                record.interview_plan = document.model_dump(mode="json")
                if status is not None:
                    record.status = status.value
            await db.refresh(record)
            return StoredPlan.from_record(record)
