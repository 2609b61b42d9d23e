from pydantic import ValidationError as SchemaError

from config import ModelConfig
from errors import AnalysisError, ProviderError
from llm_client import system_user_messages
from prompts import RESUME_ANALYSIS_SCHEMA, RESUME_ANALYSIS_SYSTEM
from resume_cache import ResumeCache, resume_hash
from schemas import ResumeAnalysis
from security import MAX_PROMPT_CHARS, safe_json_parse, sanitize_prompt

ANALYSIS_TEMPERATURE = 0.2
ANALYSIS_MAX_TOKENS = 3000


def build_resume_analysis_prompt(resume_text: str) -> str:
    return f"""Analyze this resume and produce a structured analysis.

RESUME:
{resume_text}

Produce a JSON response with EXACTLY this structure:
{RESUME_ANALYSIS_SCHEMA}

Keep lists short and factual. Use empty strings or empty lists when the resume is silent."""


class ResumeAnalyzer:
    def __init__(self, llm, cache: ResumeCache, model: ModelConfig, max_prompt_chars: int = MAX_PROMPT_CHARS):
        self.llm = llm
        self.cache = cache
        self.model = model
        self.max_prompt_chars = max_prompt_chars

    async def analyze_resume_deep(self, resume_text: str) -> ResumeAnalysis:
        key = resume_hash(resume_text)

        cached = await self.cache.get(key)
        if cached is not None:
            try:
                analysis = ResumeAnalysis.model_validate(cached)
                print(f"[RESUME] Returning cached analysis {key[:12]}")
                return analysis
            except SchemaError:
                print(f"[RESUME] Cached analysis {key[:12]} no longer valid, re-analyzing")

        print(f"[RESUME] Cache miss {key[:12]}, analyzing ({len(resume_text)} chars)")
        prompt = build_resume_analysis_prompt(sanitize_prompt(resume_text, self.max_prompt_chars))
        try:
            raw = await self.llm.call(system_user_messages(RESUME_ANALYSIS_SYSTEM, prompt), self.model)
        except ProviderError as e:
            raise AnalysisError("Resume analysis is unavailable, please retry later") from e

        data = safe_json_parse(raw)
        if not isinstance(data, dict):
            raise AnalysisError("Resume analysis returned unreadable output")
        for required in ("candidate_profile", "extracted_entities"):
            if not isinstance(data.get(required), dict):
                raise AnalysisError(f"Resume analysis is missing {required}")
        try:
            analysis = ResumeAnalysis.model_validate(data)
        except SchemaError as e:
            raise AnalysisError("Resume analysis returned malformed output") from e

        if await self.cache.set(key, analysis.model_dump(mode="json")):
            print(f"[RESUME] Cached analysis {key[:12]}")
        return analysis
