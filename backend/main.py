from fastapi import FastAPI, UploadFile, File, Depends, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from typing import Optional

from config import load_settings

settings = load_settings()

from database import init_db, get_db, async_session
from errors import AppError
from assessment_service import AssessmentService, build_assessment_service
from cleanup import CleanupService

app = FastAPI(title="SkillScope Assessment API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")


@app.on_event("startup")
async def startup():
    await init_db()
    service, cache = build_assessment_service(settings, async_session)
    app.state.service = service
    app.state.cleanup = CleanupService(
        cache,
        service.sessions,
        settings.resume_cache_max_age_days,
        settings.cleanup_interval_minutes,
    )
    app.state.cleanup.start()


@app.on_event("shutdown")
async def shutdown():
    cleanup = getattr(app.state, "cleanup", None)
    if cleanup is not None:
        await cleanup.stop()


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        print(f"[ERROR] {request.method} {request.url.path}: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def get_service(request: Request) -> AssessmentService:
    return request.app.state.service


async def current_user(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise AppError("Authentication required", 401, "UNAUTHORIZED")
    return x_user_id.strip()


# ── Health ───────────────────────────────────────────────

@app.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return {"status": "ok"}


# ── Assessment Plan ──────────────────────────────────────

@app.post("/api/assessments/start")
async def start_assessment(
    resume: UploadFile = File(...),
    id_card: Optional[UploadFile] = File(None),
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    resume_bytes = await resume.read()
    id_card_upload = None
    if id_card is not None:
        id_card_upload = (await id_card.read(), id_card.filename or "id-card")
    plan = await service.start_assessment(
        user_id,
        resume_bytes,
        resume.filename or "resume.pdf",
        resume.content_type or "",
        id_card_upload,
    )
    return {"success": True, "plan": plan}


@app.get("/api/assessments/{plan_id}")
async def get_assessment_plan(
    plan_id: str,
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    return {"success": True, "plan": await service.get_plan(plan_id, user_id)}


# ── Voice Interview ──────────────────────────────────────

class VoiceAnswerRequest(BaseModel):
    session_id: str
    question_id: str
    transcript: str


class VoiceSessionRequest(BaseModel):
    session_id: str


class StopInterviewRequest(BaseModel):
    session_id: str
    reason: str = "completed"


class VoiceAnswerItem(BaseModel):
    question_id: str
    transcript: str


class VoiceSubmitRequest(BaseModel):
    session_id: str
    answers: list[VoiceAnswerItem] = []


@app.post("/api/interviews/voice/start")
async def start_voice_interview(
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    return {"success": True, **(await service.start_voice_interview(user_id))}


@app.post("/api/interviews/voice/answer")
async def record_voice_answer(
    body: VoiceAnswerRequest,
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    result = await service.record_voice_answer(user_id, body.session_id, body.question_id, body.transcript)
    return {"success": True, **result}


@app.post("/api/interviews/voice/next-question")
async def next_voice_question(
    body: VoiceSessionRequest,
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    return {"success": True, **(await service.next_question(user_id, body.session_id))}


@app.post("/api/interviews/voice/stop")
async def stop_voice_interview(
    body: StopInterviewRequest,
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    return {"success": True, **(await service.stop_interview(user_id, body.session_id, body.reason))}


@app.post("/api/interviews/voice/submit")
async def submit_voice_interview(
    body: VoiceSubmitRequest,
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    result = await service.submit_voice_interview(
        user_id, body.session_id, [a.model_dump() for a in body.answers]
    )
    return {"success": True, **result}


# ── MCQ ──────────────────────────────────────────────────

class MCQAnswerItem(BaseModel):
    question_id: str
    selected_index: int = Field(ge=0, le=3)


class MCQSubmitRequest(BaseModel):
    answers: list[MCQAnswerItem]


@app.get("/api/interviews/mcq")
async def get_mcq_questions(
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    return {"success": True, **(await service.get_mcq_questions(user_id))}


@app.post("/api/interviews/mcq/submit")
async def submit_mcq_answers(
    body: MCQSubmitRequest,
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    result = await service.submit_mcq_answers(user_id, [a.model_dump() for a in body.answers])
    return {"success": True, **result}


@app.post("/api/interviews/mcq/evaluate")
async def evaluate_mcq_answer(
    body: MCQAnswerItem,
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    evaluation = await service.evaluate_mcq_answer(user_id, body.question_id, body.selected_index)
    return {"success": True, "evaluation": evaluation.model_dump()}


# ── Coding ───────────────────────────────────────────────

class CodeSubmitRequest(BaseModel):
    challenge_id: str
    code: str
    language: Optional[str] = None


@app.get("/api/interviews/coding")
async def get_coding_challenges(
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    return {"success": True, **(await service.get_coding_challenges(user_id))}


@app.post("/api/interviews/coding/submit")
async def submit_code(
    body: CodeSubmitRequest,
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    result = await service.submit_code(user_id, body.challenge_id, body.code, body.language)
    return {"success": True, **result}


# ── Evaluation ───────────────────────────────────────────

@app.get("/api/interviews/evaluation")
async def get_evaluation(
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    evaluation = await service.get_evaluation(user_id)
    return {"success": True, "evaluation": evaluation.model_dump(mode="json")}


@app.post("/api/interviews/evaluation/rerun")
async def rerun_evaluation(
    user_id: str = Depends(current_user),
    service: AssessmentService = Depends(get_service),
):
    evaluation = await service.get_evaluation(user_id, force=True)
    return {"success": True, "evaluation": evaluation.model_dump(mode="json")}
