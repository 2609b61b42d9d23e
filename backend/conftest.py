import asyncio
import json

import pytest
from sqlalchemy.pool import NullPool

import prompts
from config import ModelConfig, Settings
from database import create_session_factory, init_db
from errors import ProviderError
from schemas import ProfileClassification, ResumeAnalysis

SAMPLE_ANALYSIS = {
    "candidate_profile": {
        "name": "Jordan Lee",
        "current_role": "Senior Software Engineer",
        "total_experience": "6 years",
        "job_category": "Software Engineering",
    },
    "professional_summary": "Backend-leaning engineer building payment APIs in Python and TypeScript.",
    "work_experience": [
        {
            "company": "PayFlow",
            "role": "Senior Software Engineer",
            "duration": "2021-present",
            "responsibilities": ["Designed the settlement service", "Led migration to Kubernetes"],
        },
        {
            "company": "ShopCart",
            "role": "Software Engineer",
            "duration": "2018-2021",
            "responsibilities": ["Built checkout APIs"],
        },
    ],
    "core_skills": {
        "technical": ["Python", "FastAPI", "PostgreSQL", "TypeScript", "React"],
        "business": ["Payments"],
        "soft": ["Mentoring"],
    },
    "education": [{"degree": "BSc Computer Science", "institution": "State University", "year": "2018"}],
    "key_achievements": ["Cut settlement latency by 40%"],
    "interview_focus": {
        "primary_areas": ["API design", "distributed systems"],
        "suggested_question_topics": ["idempotency", "database migrations"],
        "experience_level": "senior",
    },
    "extracted_entities": {
        "companies": ["PayFlow", "ShopCart"],
        "clients": [],
        "projects": ["Settlement service"],
        "technologies": ["Python", "FastAPI", "PostgreSQL", "Kubernetes"],
        "domains": ["fintech"],
        "certifications": [],
    },
}

SAMPLE_CLASSIFICATION = {
    "role_category": "software_dev",
    "coding_expected": True,
    "years_experience": 6,
    "recent_coding": True,
    "evidence_strength": "strong",
    "primary_languages": ["Python", "TypeScript"],
    "primary_frameworks": ["FastAPI", "React"],
    "key_skills": ["API design", "PostgreSQL", "distributed systems"],
    "rationale": "Writes production backend code daily.",
}

SAMPLE_RESUME_TEXT = (
    "Jordan Lee - Senior Software Engineer\n"
    "Six years building payment APIs with Python, FastAPI, PostgreSQL and TypeScript.\n"
    "PayFlow 2021-present: designed the settlement service. ShopCart 2018-2021: checkout APIs.\n"
)


class FakeLLMClient:
    """Stands in for LLMClient. `responder(messages, model_config)` returns text or raises."""

    def __init__(self, responder=None):
        self.responder = responder or (lambda messages, model_config: "")
        self.calls: list[tuple[list[dict], ModelConfig]] = []

    async def call(self, messages, model_config):
        self.calls.append((messages, model_config))
        result = self.responder(messages, model_config)
        if isinstance(result, Exception):
            raise result
        return result

    def calls_with_system(self, system_prompt: str) -> list:
        return [c for c in self.calls if c[0][0]["content"] == system_prompt]


def failing(messages, model_config):
    return ProviderError(model_config.provider, "connection reset")


def mcq_items(count: int) -> list[dict]:
    return [
        {
            "question_text": f"Which statement about topic {i} is true?",
            "options": [f"Option A{i}", f"Option B{i}", f"Option C{i}", f"Option D{i}"],
            "correct_answer_index": i % 4,
            "explanation": "Because.",
            "topic": "algorithms",
        }
        for i in range(count)
    ]


def code_items(count: int) -> list[dict]:
    return [
        {
            "question_text": f"Challenge {i}\nImplement something useful number {i}.",
            "starter_code": "def solve():\n    pass\n",
            "examples": ["[1,2] -> 3"],
            "evaluation_criteria": ["Handles empty input"],
            "time_limit_minutes": 20,
        }
        for i in range(count)
    ]


def provider_evaluation(score: int, confidence: float, recommendation: str = "hire") -> str:
    return json.dumps(
        {
            "score": score,
            "category_scores": {
                "technical_accuracy": score,
                "communication_clarity": score,
                "problem_solving": score,
                "experience_alignment": score,
            },
            "strengths": ["Clear API design reasoning"],
            "improvements": ["Deeper testing strategy"],
            "summary": f"Scored {score}.",
            "recommendation": recommendation,
            "confidence": confidence,
        }
    )


def pipeline_responder(voice_counter=None):
    """Answers every prompt the assessment pipeline sends, keyed by system prompt."""
    counter = voice_counter if voice_counter is not None else {"n": 0}

    def respond(messages, model_config):
        system = messages[0]["content"]
        if system == prompts.RESUME_ANALYSIS_SYSTEM:
            return "```json\n" + json.dumps(SAMPLE_ANALYSIS) + "\n```"
        if system == prompts.PROFILE_CLASSIFIER_SYSTEM:
            return json.dumps(SAMPLE_CLASSIFICATION)
        if system == prompts.VOICE_QUESTION_SYSTEM:
            counter["n"] += 1
            return json.dumps({"text": f"Question number {counter['n']} about your work?", "topic": f"topic-{counter['n']}"})
        if system == prompts.MCQ_SYSTEM:
            return json.dumps(mcq_items(20))
        if system == prompts.CODE_SYSTEM:
            return json.dumps(code_items(3))
        if system == prompts.CODE_EVALUATION_SYSTEM:
            return json.dumps({"correctness": 8, "problem_solving": 7, "code_quality": 7, "completeness": 9})
        if system == prompts.VOICE_EVALUATION_SYSTEM:
            return json.dumps({"score": 72, "quality": "good", "feedback": "Solid answer."})
        if system == prompts.INTERVIEW_EVALUATION_SYSTEM:
            return provider_evaluation(78 if model_config.provider == "gemini" else 74, 0.8)
        if system == prompts.ARBITER_SYSTEM:
            return json.dumps(
                {
                    "selected_evaluation_index": 0,
                    "rationale": "Evaluation 0 cites more evidence.",
                    "final_score": 77,
                    "final_recommendation": "hire",
                    "confidence_level": "high",
                    "evaluation_agreement": "Both evaluators were within 4 points.",
                }
            )
        return ProviderError(model_config.provider, "unexpected prompt")

    return respond


@pytest.fixture
def fake_model():
    return ModelConfig(provider="gemini", model="fake-model", temperature=0.2, max_tokens=500)


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        gemini_api_key="test-gemini",
        openai_api_key="test-openai",
        resume_cache_dir=str(tmp_path / "cache"),
        upload_dir=str(tmp_path / "uploads"),
    )


@pytest.fixture
def sample_analysis():
    return ResumeAnalysis.model_validate(SAMPLE_ANALYSIS)


@pytest.fixture
def software_classification():
    return ProfileClassification.model_validate(SAMPLE_CLASSIFICATION)


@pytest.fixture
def session_factory(tmp_path):
    db_engine, factory = create_session_factory(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool
    )
    asyncio.run(init_db(db_engine))
    return factory
