import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, BeforeValidator, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Coercion helpers for LLM-produced payloads ───────────

def _coerce_str(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v).strip() for v in value if str(v).strip())
    return str(value).strip()


def _coerce_str_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    out: list[str] = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("name") or item.get("text") or ""
        text = str(item).strip()
        if text:
            out.append(text)
    return out


def _coerce_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in {"true", "yes", "1", "y"}


def _dict_items(value) -> list:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


Text = Annotated[str, BeforeValidator(_coerce_str)]
StrList = Annotated[list[str], BeforeValidator(_coerce_str_list)]
Flag = Annotated[bool, BeforeValidator(_coerce_bool)]


# ── Enumerations ─────────────────────────────────────────

class RoleCategory(str, Enum):
    SOFTWARE_DEV = "software_dev"
    QA_MANUAL = "qa_manual"
    QA_AUTOMATION_SDET = "qa_automation_sdet"
    DATA_ML = "data_ml"
    DEVOPS_SRE = "devops_sre"
    ANALYTICS_BI = "analytics_bi"
    PRODUCT_MANAGER = "product_manager"
    BUSINESS_ANALYST = "business_analyst"
    SUPPORT_INFRA = "support_infra"
    NON_TECH = "non_tech"
    MIXED_UNCLEAR = "mixed_unclear"


class EvidenceStrength(str, Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"


class Component(str, Enum):
    VOICE = "VOICE"
    MCQ = "MCQ"
    CODE = "CODE"


class ExperienceLevel(str, Enum):
    ENTRY = "entry"
    MID = "mid"
    SENIOR = "senior"
    EXECUTIVE = "executive"


class Difficulty(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class TaskStyle(str, Enum):
    IMPLEMENT_FUNCTION = "implement_function"
    DEBUG_CODE = "debug_code"
    CODE_REVIEW = "code_review"


class PlanStatus(str, Enum):
    DRAFT = "DRAFT"
    COMPLETED = "COMPLETED"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Recommendation(str, Enum):
    STRONG_HIRE = "strong_hire"
    HIRE = "hire"
    MAYBE = "maybe"
    NO_HIRE = "no_hire"


class SkillLevel(str, Enum):
    EXPERT = "EXPERT"
    SENIOR = "SENIOR"
    INTERMEDIATE = "INTERMEDIATE"
    JUNIOR = "JUNIOR"
    BEGINNER = "BEGINNER"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ArbitrationMethod(str, Enum):
    CONSENSUS = "consensus"
    WEIGHTED_AVERAGE = "weighted_average"
    ARBITER_SELECTION = "arbiter_selection"


# ── Resume analysis ──────────────────────────────────────

class CandidateProfile(BaseModel):
    name: Text = ""
    current_role: Text = ""
    total_experience: Text = ""
    job_category: Text = ""


class WorkExperience(BaseModel):
    company: Text = ""
    role: Text = ""
    duration: Text = ""
    responsibilities: StrList = []


class CoreSkills(BaseModel):
    technical: StrList = []
    business: StrList = []
    soft: StrList = []


class Education(BaseModel):
    degree: Text = ""
    institution: Text = ""
    year: Text = ""


class InterviewFocus(BaseModel):
    primary_areas: StrList = []
    suggested_question_topics: StrList = []
    experience_level: Text = ""


class ExtractedEntities(BaseModel):
    companies: StrList = []
    clients: StrList = []
    projects: StrList = []
    technologies: StrList = []
    domains: StrList = []
    certifications: StrList = []


class ResumeAnalysis(BaseModel):
    candidate_profile: CandidateProfile
    professional_summary: Text = ""
    work_experience: Annotated[list[WorkExperience], BeforeValidator(_dict_items)] = []
    core_skills: CoreSkills = Field(default_factory=CoreSkills)
    education: Annotated[list[Education], BeforeValidator(_dict_items)] = []
    key_achievements: StrList = []
    interview_focus: InterviewFocus = Field(default_factory=InterviewFocus)
    extracted_entities: ExtractedEntities


class ProfileClassification(BaseModel):
    role_category: RoleCategory
    years_experience: float = 0.0
    coding_expected: Flag = False
    recent_coding: Flag = False
    evidence_strength: EvidenceStrength = EvidenceStrength.WEAK
    primary_languages: StrList = []
    primary_frameworks: StrList = []
    key_skills: StrList = []
    rationale: Text = ""

    @field_validator("role_category", mode="before")
    @classmethod
    def _normalize_category(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("years_experience", mode="before")
    @classmethod
    def _parse_years(cls, value):
        if value is None:
            return 0.0
        if isinstance(value, str):
            match = re.search(r"\d+(?:\.\d+)?", value)
            value = match.group() if match else 0.0
        try:
            return max(0.0, float(value))
        except (TypeError, ValueError):
            return 0.0

    @field_validator("evidence_strength", mode="before")
    @classmethod
    def _parse_evidence(cls, value):
        text = str(value or "").strip().lower()
        if text in {e.value for e in EvidenceStrength}:
            return text
        return EvidenceStrength.WEAK.value


# ── Planning ─────────────────────────────────────────────

class QuestionCounts(BaseModel):
    voice: int = 0
    mcq: int = 0
    code: int = 0


class AssessmentPlan(BaseModel):
    components: list[Component]
    question_counts: QuestionCounts
    difficulty: ExperienceLevel
    estimated_duration: int
    rationale: str


# ── Generated items ──────────────────────────────────────

class VoiceQuestion(BaseModel):
    id: str
    text: str
    topic: str = ""
    is_follow_up: bool = False
    is_fallback: bool = False

    def client_view(self) -> dict:
        return self.model_dump(mode="json", exclude={"is_fallback"})


class MCQQuestion(BaseModel):
    id: str
    question_text: str
    options: list[str]
    correct_answer_index: int
    explanation: str = ""
    topic: str = ""
    difficulty: Difficulty = Difficulty.MEDIUM
    is_fallback: bool = False

    def client_view(self) -> dict:
        return self.model_dump(
            mode="json",
            exclude={"correct_answer_index", "explanation", "is_fallback"},
        )


class CodingChallenge(BaseModel):
    id: str
    question_text: str
    language: str
    difficulty: Difficulty = Difficulty.MEDIUM
    task_style: TaskStyle = TaskStyle.IMPLEMENT_FUNCTION
    starter_code: str = ""
    examples: list[str] = []
    evaluation_criteria: list[str] = []
    time_limit_minutes: int = 20
    is_fallback: bool = False

    @property
    def title(self) -> str:
        first_line = self.question_text.strip().split("\n", 1)[0]
        return first_line[:100]

    def client_view(self) -> dict:
        data = self.model_dump(mode="json", exclude={"evaluation_criteria", "is_fallback"})
        data["title"] = self.title
        return data


# ── Answers and per-answer evaluations ───────────────────

class CodeDimensions(BaseModel):
    correctness: float = 5.0
    problem_solving: float = 5.0
    code_quality: float = 5.0
    completeness: float = 5.0


class MCQEvaluation(BaseModel):
    question_id: str
    selected_index: int
    correct_index: int
    is_correct: bool
    score: int
    feedback: str


class CodeEvaluation(BaseModel):
    score: int
    dimensions: CodeDimensions
    feedback: str
    strengths: list[str] = []
    improvements: list[str] = []
    is_default: bool = False


class VoiceEvaluation(BaseModel):
    score: int
    quality: str
    feedback: str
    strengths: list[str] = []
    improvements: list[str] = []
    is_default: bool = False


class VoiceAnswer(BaseModel):
    question_id: str
    question_text: str
    transcript: str
    answered_at: datetime = Field(default_factory=utcnow)
    score: Optional[int] = None
    quality: Optional[str] = None
    feedback: Optional[str] = None


class MCQAnswer(BaseModel):
    question_id: str
    selected_index: int
    is_correct: bool
    answered_at: datetime = Field(default_factory=utcnow)


class CodeAnswer(BaseModel):
    challenge_id: str
    language: str
    code: str
    score: int
    passed: bool
    dimensions: CodeDimensions
    feedback: str
    strengths: list[str] = []
    improvements: list[str] = []
    submitted_at: datetime = Field(default_factory=utcnow)


# ── Evaluation ───────────────────────────────────────────

class TranscriptVoiceItem(BaseModel):
    question: str
    answer: str


class TranscriptMCQItem(BaseModel):
    question: str
    selected_answer: str
    correct_answer: str
    is_correct: bool


class TranscriptCodeItem(BaseModel):
    question: str
    language: str
    code: str
    score: Optional[int] = None


class InterviewTranscript(BaseModel):
    candidate_name: str = ""
    current_role: str = ""
    role_category: str = ""
    years_experience: float = 0.0
    key_skills: list[str] = []
    voice: list[TranscriptVoiceItem] = []
    mcq: list[TranscriptMCQItem] = []
    code: list[TranscriptCodeItem] = []

    def has_content(self) -> bool:
        return bool(self.voice or self.mcq or self.code)


class CategoryScores(BaseModel):
    technical_accuracy: int = 0
    communication_clarity: int = 0
    problem_solving: int = 0
    experience_alignment: int = 0


class ComponentScores(BaseModel):
    voice: Optional[int] = None
    mcq: Optional[int] = None
    code: Optional[int] = None

    def present(self) -> dict[str, int]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


class LLMEvaluationResult(BaseModel):
    provider: str
    model: str
    score: int
    category_scores: CategoryScores
    strengths: list[str] = []
    improvements: list[str] = []
    summary: str = ""
    recommendation: Recommendation
    confidence: float
    raw_content: str = ""
    latency_ms: int = 0


class ArbitratedResult(BaseModel):
    selected_index: int
    selected_provider: str
    rationale: str
    final_score: int
    final_category_scores: CategoryScores
    final_strengths: list[str]
    final_improvements: list[str]
    final_summary: str
    final_recommendation: Recommendation
    confidence_level: ConfidenceLevel
    evaluation_agreement: str
    arbitration_method: ArbitrationMethod
    arbiter_skipped: bool = False
    provider_results: list[LLMEvaluationResult] = []
    arbiter_provider: Optional[str] = None
    arbiter_model: Optional[str] = None
    arbiter_latency_ms: Optional[int] = None


class EvaluationInput(BaseModel):
    transcript: InterviewTranscript
    component_scores: ComponentScores = Field(default_factory=ComponentScores)
    mcq_answers: list[MCQAnswer] = []


class InterviewEvaluation(BaseModel):
    overall_score: int
    skill_level: SkillLevel
    category_scores: CategoryScores
    component_scores: ComponentScores
    strengths: list[str]
    improvements: list[str]
    recommendation: Recommendation
    rationale: str
    summary: str = ""
    multi_llm_enabled: bool = False
    providers_used: list[str] = []
    provider_results: list[LLMEvaluationResult] = []
    selected_index: Optional[int] = None
    selected_provider: Optional[str] = None
    arbiter_provider: Optional[str] = None
    arbiter_model: Optional[str] = None
    arbiter_latency_ms: Optional[int] = None
    arbitration_method: Optional[ArbitrationMethod] = None
    confidence_level: Optional[ConfidenceLevel] = None
    evaluation_agreement: Optional[str] = None
    arbiter_skipped: bool = False
    scoring_source: str = "score_aggregation"
    fallback_reason: Optional[str] = None
    evaluated_at: datetime = Field(default_factory=utcnow)


# ── Durable plan document and session state ──────────────

class InterviewPlanDocument(BaseModel):
    """Everything accumulated for one assessment attempt.

    Every stage reads the whole document, adds its own fields and writes the
    whole document back; nothing already recorded is removed.
    """

    version: int = 1
    analysis: Optional[ResumeAnalysis] = None
    classification: Optional[ProfileClassification] = None
    rationale: str = ""
    resume_url: Optional[str] = None
    id_card_url: Optional[str] = None
    voice_questions: list[VoiceQuestion] = []
    mcq_questions: Optional[list[MCQQuestion]] = None
    coding_challenges: Optional[list[CodingChallenge]] = None
    voice_answers: list[VoiceAnswer] = []
    mcq_answers: list[MCQAnswer] = []
    code_answers: list[CodeAnswer] = []
    evaluation: Optional[InterviewEvaluation] = None


class InterviewSession(BaseModel):
    session_id: str
    user_id: str
    plan_id: str
    status: SessionStatus = SessionStatus.ACTIVE
    questions: list[VoiceQuestion] = []
    answers: list[VoiceAnswer] = []
    current_question_index: int = 0
    job_role: str = ""
    resume_context: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    def current_question(self) -> Optional[VoiceQuestion]:
        if 0 <= self.current_question_index < len(self.questions):
            return self.questions[self.current_question_index]
        return None
