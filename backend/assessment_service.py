"""Assessment workflow across independently callable endpoints.

Every step loads the plan record, does its work and writes the whole
interview plan document back, so any step can be re-queried or resumed.
"""
import os
import shutil
import tempfile
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from assessment_planner import plan_assessment
from code_generator import CODE_MAX_TOKENS, CODE_TEMPERATURE, CodeChallengeGenerator
from component_evaluator import (
    EVALUATION_MAX_TOKENS,
    EVALUATION_TEMPERATURE,
    calculate_mcq_score,
    evaluate_code_answer,
    evaluate_mcq_answer,
    evaluate_voice_answer,
)
from config import ModelConfig, Settings
from errors import AppError, ForbiddenError, NotFoundError, ValidationError
from interview_evaluator import InterviewEvaluator
from live_voice import LiveVoiceTokenProvider
from llm_client import LLMClient
from mcq_generator import MCQ_MAX_TOKENS, MCQ_TEMPERATURE, MCQGenerator
from multi_llm_arbiter import MultiLLMArbiter
from plan_repository import PlanRepository, StoredPlan
from profile_classifier import CLASSIFIER_MAX_TOKENS, CLASSIFIER_TEMPERATURE, ProfileClassifier
from question_generator import (
    VOICE_MAX_TOKENS,
    VOICE_TEMPERATURE,
    VoiceQuestionGenerator,
    build_resume_summary,
    primary_skill,
)
from resume_analyzer import ANALYSIS_MAX_TOKENS, ANALYSIS_TEMPERATURE, ResumeAnalyzer
from resume_cache import ResumeCache
from resume_parser import parse_resume_file
from schemas import (
    CodeAnswer,
    Component,
    ComponentScores,
    EvaluationInput,
    InterviewEvaluation,
    InterviewPlanDocument,
    InterviewSession,
    InterviewTranscript,
    MCQAnswer,
    MCQEvaluation,
    MCQQuestion,
    PlanStatus,
    TranscriptCodeItem,
    TranscriptMCQItem,
    TranscriptVoiceItem,
    VoiceAnswer,
)
from score_aggregator import round_score
from session_manager import SessionManager, build_session_store
from storage import LocalStorage

CODE_PASS_SCORE = 60

ResumeParser = Callable[[str, str, str], Awaitable[str]]


def _mean_score(values: list[Optional[int]]) -> Optional[int]:
    scores = [v for v in values if v is not None]
    if not scores:
        return None
    return round_score(sum(scores) / len(scores))


def plan_view(plan: StoredPlan) -> dict:
    """Client-safe view of a plan: no answer keys, no evaluation criteria."""
    doc = plan.document
    classification = doc.classification
    return {
        "id": plan.id,
        "status": plan.status.value,
        "components": [c.value for c in plan.components],
        "question_counts": plan.question_counts.model_dump(),
        "difficulty": plan.difficulty.value,
        "estimated_duration": plan.estimated_duration,
        "rationale": doc.rationale,
        "role_category": classification.role_category.value if classification else plan.role_category,
        "years_experience": classification.years_experience if classification else None,
        "primary_skill": plan.primary_skill,
        "resume_url": plan.resume_url,
        "voice_questions": [q.client_view() for q in doc.voice_questions],
        "mcq_ready": doc.mcq_questions is not None,
        "coding_ready": doc.coding_challenges is not None,
        "voice_answers": len(doc.voice_answers),
        "mcq_answers": len(doc.mcq_answers),
        "code_answers": len(doc.code_answers),
        "evaluation": doc.evaluation.model_dump(mode="json") if doc.evaluation else None,
        "created_at": plan.created_at.isoformat() if plan.created_at else None,
    }


def build_transcript(plan: StoredPlan) -> InterviewTranscript:
    doc = plan.document
    analysis = doc.analysis
    classification = doc.classification

    mcq_by_id = {q.id: q for q in doc.mcq_questions or []}
    mcq_items = []
    for answer in doc.mcq_answers:
        question = mcq_by_id.get(answer.question_id)
        if question is None:
            continue
        selected = question.options[answer.selected_index] if 0 <= answer.selected_index < len(question.options) else "none"
        mcq_items.append(
            TranscriptMCQItem(
                question=question.question_text,
                selected_answer=selected,
                correct_answer=question.options[question.correct_answer_index],
                is_correct=answer.is_correct,
            )
        )

    challenges_by_id = {c.id: c for c in doc.coding_challenges or []}
    code_items = [
        TranscriptCodeItem(
            question=challenges_by_id[a.challenge_id].question_text,
            language=a.language,
            code=a.code,
            score=a.score,
        )
        for a in doc.code_answers
        if a.challenge_id in challenges_by_id
    ]

    return InterviewTranscript(
        candidate_name=analysis.candidate_profile.name if analysis else "",
        current_role=analysis.candidate_profile.current_role if analysis else "",
        role_category=classification.role_category.value if classification else (plan.role_category or ""),
        years_experience=classification.years_experience if classification else 0.0,
        key_skills=classification.key_skills if classification else [],
        voice=[TranscriptVoiceItem(question=a.question_text, answer=a.transcript) for a in doc.voice_answers],
        mcq=mcq_items,
        code=code_items,
    )


def component_scores_for(plan: StoredPlan) -> ComponentScores:
    doc = plan.document
    mcq_score = None
    if doc.mcq_answers:
        mcq_score = calculate_mcq_score(doc.mcq_answers, len(doc.mcq_questions or doc.mcq_answers))
    return ComponentScores(
        voice=_mean_score([a.score for a in doc.voice_answers]),
        mcq=mcq_score,
        code=_mean_score([a.score for a in doc.code_answers]),
    )


class AssessmentService:
    def __init__(
        self,
        plans: PlanRepository,
        sessions: SessionManager,
        analyzer: ResumeAnalyzer,
        classifier: ProfileClassifier,
        voice_generator: VoiceQuestionGenerator,
        mcq_generator: MCQGenerator,
        code_generator: CodeChallengeGenerator,
        evaluator: InterviewEvaluator,
        storage: LocalStorage,
        llm,
        answer_model: ModelConfig,
        live_voice: Optional[LiveVoiceTokenProvider] = None,
        resume_parser: ResumeParser = parse_resume_file,
    ):
        self.plans = plans
        self.sessions = sessions
        self.analyzer = analyzer
        self.classifier = classifier
        self.voice_generator = voice_generator
        self.mcq_generator = mcq_generator
        self.code_generator = code_generator
        self.evaluator = evaluator
        self.storage = storage
        self.llm = llm
        self.answer_model = answer_model
        self.live_voice = live_voice
        self.resume_parser = resume_parser

    # ── Plans ────────────────────────────────────────────

    async def _owned_plan(self, plan_id: str, user_id: str) -> StoredPlan:
        plan = await self.plans.get_plan(plan_id)
        if plan is None:
            raise NotFoundError("Assessment plan not found")
        if plan.user_id != user_id:
            raise ForbiddenError("You do not have access to this assessment plan")
        return plan

    async def _current_plan(self, user_id: str) -> StoredPlan:
        plan = await self.plans.get_current_draft(user_id)
        if plan is None:
            raise NotFoundError("No active assessment plan found. Please upload your resume first.")
        return plan

    async def get_plan(self, plan_id: str, user_id: str) -> dict:
        return plan_view(await self._owned_plan(plan_id, user_id))

    async def start_assessment(
        self,
        user_id: str,
        resume_bytes: bytes,
        resume_filename: str,
        resume_mime: str,
        id_card: Optional[tuple[bytes, str]] = None,
    ) -> dict:
        if not resume_bytes:
            raise ValidationError("Resume file is required")

        temp_dir = tempfile.mkdtemp(prefix="assessment-")
        try:
            print(f"[STEP 1] Parsing resume for user {user_id}")
            temp_path = os.path.join(temp_dir, os.path.basename(resume_filename or "resume"))
            with open(temp_path, "wb") as fh:
                fh.write(resume_bytes)
            resume_text = await self.resume_parser(temp_path, resume_mime, resume_filename)

            print("[STEP 2] Analyzing resume")
            analysis = await self.analyzer.analyze_resume_deep(resume_text)

            print("[STEP 3] Classifying profile")
            classification = await self.classifier.classify_profile(analysis)

            print("[STEP 4] Planning assessment")
            plan = plan_assessment(classification)

            print(f"[STEP 5] Generating {plan.question_counts.voice} voice questions")
            voice_questions = await self.voice_generator.generate_questions(
                analysis, classification, plan.question_counts.voice
            )

            print("[STEP 6] Storing uploaded files")
            try:
                resume_upload = await self.storage.upload_file(resume_bytes, resume_filename, "resumes")
                id_card_url = None
                if id_card is not None:
                    id_card_bytes, id_card_name = id_card
                    id_card_url = (await self.storage.upload_file(id_card_bytes, id_card_name, "id-cards")).url
            except OSError as e:
                raise AppError("Could not store uploaded files", 500, "STORAGE_ERROR") from e

            print("[STEP 7] Saving assessment plan")
            document = InterviewPlanDocument(
                analysis=analysis,
                classification=classification,
                rationale=plan.rationale,
                resume_url=resume_upload.url,
                id_card_url=id_card_url,
                voice_questions=voice_questions,
            )
            stored = await self.plans.create_plan(
                user_id=user_id,
                resume_text=resume_text,
                plan=plan,
                document=document,
                role_category=classification.role_category.value,
                primary_skill=primary_skill(analysis, classification),
            )
        finally:
            try:
                shutil.rmtree(temp_dir)
            except OSError as e:
                print(f"[STEP] Temp cleanup failed for {temp_dir}: {e}")

        return plan_view(stored)

    # ── Voice interview ──────────────────────────────────

    async def _owned_session(self, session_id: str, user_id: str) -> InterviewSession:
        session = await self.sessions.get_session(session_id)
        if session.user_id != user_id:
            raise ForbiddenError("You do not have access to this interview session")
        return session

    async def start_voice_interview(self, user_id: str) -> dict:
        plan = await self._current_plan(user_id)
        doc = plan.document
        if not doc.voice_questions:
            raise ValidationError("Assessment plan has no voice questions")

        active = [s for s in await self.sessions.get_user_active_sessions(user_id) if s.plan_id == plan.id]
        if active:
            session = max(active, key=lambda s: s.updated_at)
            print(f"[VOICE] Resuming session {session.session_id} for plan {plan.id}")
        else:
            session = await self.sessions.create_session(
                user_id=user_id,
                plan_id=plan.id,
                questions=doc.voice_questions,
                job_role=doc.analysis.candidate_profile.current_role if doc.analysis else "",
                resume_context=build_resume_summary(doc.analysis) if doc.analysis else "",
            )
        live_token = await self.live_voice.get_token() if self.live_voice else None
        current = await self.sessions.get_current_question(session.session_id)
        return {
            "session_id": session.session_id,
            "plan_id": plan.id,
            "total_questions": len(session.questions),
            "current_question": current.client_view() if current else None,
            "questions": [q.client_view() for q in session.questions],
            "live_token": live_token,
        }

    async def record_voice_answer(self, user_id: str, session_id: str, question_id: str, transcript: str) -> dict:
        session = await self._owned_session(session_id, user_id)
        question = next((q for q in session.questions if q.id == question_id), None)
        if question is None:
            raise ValidationError(f"Unknown question id: {question_id}")
        session = await self.sessions.add_answer(
            session_id,
            VoiceAnswer(question_id=question.id, question_text=question.text, transcript=transcript.strip()),
        )
        return {"answers_recorded": len(session.answers), "total_questions": len(session.questions)}

    async def next_question(self, user_id: str, session_id: str) -> dict:
        await self._owned_session(session_id, user_id)
        question = await self.sessions.next_question(session_id)
        session = await self.sessions.get_session(session_id)
        return {
            "question": question.client_view() if question else None,
            "question_number": session.current_question_index + 1 if question else None,
            "total_questions": len(session.questions),
            "is_complete": question is None,
        }

    async def _flush_session(self, session: InterviewSession) -> StoredPlan:
        plan = await self.plans.get_plan(session.plan_id)
        if plan is None:
            raise NotFoundError("Assessment plan not found")
        already_scored = {
            a.question_id: a
            for a in plan.document.voice_answers
            if a.score is not None
        }

        scored: list[VoiceAnswer] = []
        for answer in session.answers:
            previous = already_scored.get(answer.question_id)
            if previous is not None and previous.transcript == answer.transcript:
                scored.append(previous)
                continue
            evaluation = await evaluate_voice_answer(self.llm, self.answer_model, answer.question_text, answer.transcript)
            scored.append(
                answer.model_copy(
                    update={"score": evaluation.score, "quality": evaluation.quality, "feedback": evaluation.feedback}
                )
            )

        def merge(doc: InterviewPlanDocument) -> None:
            by_id = {a.question_id: a for a in doc.voice_answers}
            for answer in scored:
                by_id[answer.question_id] = answer
            doc.voice_answers = list(by_id.values())

        stored = await self.plans.update_document(plan.id, merge)
        print(f"[VOICE] Flushed {len(scored)} answers from session {session.session_id} into plan {plan.id}")
        return stored

    async def stop_interview(self, user_id: str, session_id: str, reason: str = "completed") -> dict:
        await self._owned_session(session_id, user_id)
        if reason == "completed":
            session = await self.sessions.complete_session(session_id)
        else:
            session = await self.sessions.cancel_session(session_id)
        await self._flush_session(session)
        return {
            "session_id": session_id,
            "status": session.status.value,
            "answers_recorded": len(session.answers),
            "total_questions": len(session.questions),
        }

    async def submit_voice_interview(
        self, user_id: str, session_id: str, answers: Optional[list[dict]] = None
    ) -> dict:
        for item in answers or []:
            await self.record_voice_answer(user_id, session_id, item["question_id"], item["transcript"])
        return await self.stop_interview(user_id, session_id, "completed")

    # ── MCQ ──────────────────────────────────────────────

    async def get_mcq_questions(self, user_id: str) -> dict:
        plan = await self._current_plan(user_id)
        if Component.MCQ not in plan.components:
            raise ValidationError("Multiple choice questions are not part of this assessment")
        questions = plan.document.mcq_questions
        if questions is None:
            classification = plan.document.classification
            if classification is None:
                raise ValidationError("Assessment plan has no classification")
            generated = await self.mcq_generator.generate_questions(classification, plan.question_counts.mcq)

            def store(doc: InterviewPlanDocument) -> None:
                if doc.mcq_questions is None:
                    doc.mcq_questions = generated

            plan = await self.plans.update_document(plan.id, store)
            questions = plan.document.mcq_questions
        return {
            "plan_id": plan.id,
            "total_questions": len(questions),
            "questions": [q.client_view() for q in questions],
        }

    @staticmethod
    def _mcq_question(plan: StoredPlan, question_id: str) -> MCQQuestion:
        for question in plan.document.mcq_questions or []:
            if question.id == question_id:
                return question
        raise ValidationError(f"Unknown question id: {question_id}")

    async def evaluate_mcq_answer(self, user_id: str, question_id: str, selected_index: int) -> MCQEvaluation:
        plan = await self._current_plan(user_id)
        return evaluate_mcq_answer(self._mcq_question(plan, question_id), selected_index)

    async def submit_mcq_answers(self, user_id: str, answers: list[dict]) -> dict:
        plan = await self._current_plan(user_id)
        if not plan.document.mcq_questions:
            raise ValidationError("Multiple choice questions have not been generated yet")

        recorded: list[MCQAnswer] = []
        for item in answers:
            question = self._mcq_question(plan, item["question_id"])
            evaluation = evaluate_mcq_answer(question, int(item["selected_index"]))
            recorded.append(
                MCQAnswer(question_id=question.id, selected_index=evaluation.selected_index, is_correct=evaluation.is_correct)
            )

        def merge(doc: InterviewPlanDocument) -> None:
            by_id = {a.question_id: a for a in doc.mcq_answers}
            for answer in recorded:
                by_id[answer.question_id] = answer
            doc.mcq_answers = list(by_id.values())

        plan = await self.plans.update_document(plan.id, merge)
        doc = plan.document
        correct = sum(1 for a in doc.mcq_answers if a.is_correct)
        score = calculate_mcq_score(doc.mcq_answers, len(doc.mcq_questions))
        print(f"[MCQ] Plan {plan.id}: {correct}/{len(doc.mcq_questions)} correct")
        return {
            "correct_answers": correct,
            "answered": len(doc.mcq_answers),
            "total_questions": len(doc.mcq_questions),
            "score": score,
        }

    # ── Coding ───────────────────────────────────────────

    async def get_coding_challenges(self, user_id: str) -> dict:
        plan = await self._current_plan(user_id)
        if Component.CODE not in plan.components:
            raise ValidationError("Coding challenges are not part of this assessment")
        challenges = plan.document.coding_challenges
        if challenges is None:
            classification = plan.document.classification
            if classification is None:
                raise ValidationError("Assessment plan has no classification")
            generated = await self.code_generator.generate_challenges(classification, plan.question_counts.code)

            def store(doc: InterviewPlanDocument) -> None:
                if doc.coding_challenges is None:
                    doc.coding_challenges = generated

            plan = await self.plans.update_document(plan.id, store)
            challenges = plan.document.coding_challenges
        return {
            "plan_id": plan.id,
            "total_challenges": len(challenges),
            "challenges": [c.client_view() for c in challenges],
        }

    async def submit_code(self, user_id: str, challenge_id: str, code: str, language: Optional[str] = None) -> dict:
        plan = await self._current_plan(user_id)
        challenge = next((c for c in plan.document.coding_challenges or [] if c.id == challenge_id), None)
        if challenge is None:
            raise ValidationError(f"Unknown challenge id: {challenge_id}")
        language = language or challenge.language

        evaluation = await evaluate_code_answer(self.llm, self.answer_model, challenge, code, language)
        answer = CodeAnswer(
            challenge_id=challenge.id,
            language=language,
            code=code,
            score=evaluation.score,
            passed=evaluation.score >= CODE_PASS_SCORE,
            dimensions=evaluation.dimensions,
            feedback=evaluation.feedback,
            strengths=evaluation.strengths,
            improvements=evaluation.improvements,
        )

        def merge(doc: InterviewPlanDocument) -> None:
            doc.code_answers = [a for a in doc.code_answers if a.challenge_id != answer.challenge_id] + [answer]

        await self.plans.update_document(plan.id, merge)
        print(f"[CODE] Plan {plan.id} challenge {challenge.id}: {evaluation.score}")
        return {
            "challenge_id": challenge.id,
            "score": answer.score,
            "passed": answer.passed,
            "feedback": answer.feedback,
            "strengths": answer.strengths,
            "improvements": answer.improvements,
        }

    # ── Evaluation ───────────────────────────────────────

    async def get_evaluation(self, user_id: str, force: bool = False) -> InterviewEvaluation:
        plan = await self.plans.get_latest(user_id)
        if plan is None:
            raise NotFoundError("No assessment plan found")
        if plan.document.evaluation is not None and not force:
            return plan.document.evaluation

        doc = plan.document
        if not (doc.voice_answers or doc.mcq_answers or doc.code_answers):
            raise ValidationError("No assessment answers have been recorded yet")

        data = EvaluationInput(
            transcript=build_transcript(plan),
            component_scores=component_scores_for(plan),
            mcq_answers=doc.mcq_answers,
        )
        print(f"[EVAL] Evaluating plan {plan.id} (force={force})")
        if force:
            evaluation = await self.evaluator.re_evaluate_interview(data)
        else:
            evaluation = await self.evaluator.evaluate_interview(data)

        def store(document: InterviewPlanDocument) -> None:
            document.evaluation = evaluation

        await self.plans.update_document(plan.id, store, status=PlanStatus.COMPLETED)
        print(
            f"[EVAL] Plan {plan.id}: {evaluation.overall_score} {evaluation.recommendation.value} "
            f"via {evaluation.scoring_source}"
        )
        return evaluation


def build_assessment_service(settings: Settings, session_factory: async_sessionmaker) -> tuple[AssessmentService, ResumeCache]:
    llm = LLMClient(settings)
    cache = ResumeCache(settings.resume_cache_dir)
    sessions = SessionManager(build_session_store(settings.session_backend, session_factory, settings.session_ttl_hours))
    providers = settings.configured_evaluation_providers()
    if not providers:
        print("[EVAL] No evaluation provider has credentials, multi-LLM evaluation will fall back to score aggregation")
    arbiter = MultiLLMArbiter(llm, settings)
    service = AssessmentService(
        plans=PlanRepository(session_factory),
        sessions=sessions,
        analyzer=ResumeAnalyzer(
            llm, cache, settings.primary_model(ANALYSIS_TEMPERATURE, ANALYSIS_MAX_TOKENS), settings.max_prompt_chars
        ),
        classifier=ProfileClassifier(llm, settings.primary_model(CLASSIFIER_TEMPERATURE, CLASSIFIER_MAX_TOKENS)),
        voice_generator=VoiceQuestionGenerator(llm, settings.primary_model(VOICE_TEMPERATURE, VOICE_MAX_TOKENS)),
        mcq_generator=MCQGenerator(llm, settings.primary_model(MCQ_TEMPERATURE, MCQ_MAX_TOKENS)),
        code_generator=CodeChallengeGenerator(llm, settings.primary_model(CODE_TEMPERATURE, CODE_MAX_TOKENS)),
        evaluator=InterviewEvaluator(arbiter, providers, settings.enable_multi_llm),
        storage=LocalStorage(settings.upload_dir, settings.public_base_url),
        llm=llm,
        answer_model=settings.primary_model(EVALUATION_TEMPERATURE, EVALUATION_MAX_TOKENS),
        live_voice=LiveVoiceTokenProvider(settings),
    )
    return service, cache
