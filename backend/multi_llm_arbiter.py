"""Multi-provider interview evaluation and arbitration.

Every requested provider evaluates the same transcript concurrently. Survivors
are reconciled either by a third "arbiter" LLM call that selects and
synthesizes a verdict (the default), or by a confidence-weighted average.
"""
import asyncio
import re
import time
import traceback
from enum import Enum
from typing import Optional

from config import ModelConfig, Settings
from errors import AllProvidersFailedError, ProviderError
from llm_client import system_user_messages
from prompts import ARBITER_SYSTEM, INTERVIEW_EVALUATION_SYSTEM
from schemas import (
    ArbitratedResult,
    ArbitrationMethod,
    CategoryScores,
    ConfidenceLevel,
    InterviewTranscript,
    LLMEvaluationResult,
    Recommendation,
)
from score_aggregator import clamp_float, clamp_score, normalize_string_list, parse_index, round_score
from security import safe_json_parse, sanitize_prompt

EVALUATION_TEMPERATURE = 0.3
EVALUATION_MAX_TOKENS = 2000
ARBITER_TEMPERATURE = 0.3
ARBITER_MAX_TOKENS = 2000
MAX_MERGED_ITEMS = 5
DEFAULT_CONFIDENCE = 0.7
CATEGORY_FIELDS = ("technical_accuracy", "communication_clarity", "problem_solving", "experience_alignment")
NEGATIVE_TOKENS = {"no", "not", "dont", "reject", "rejected", "decline"}


class ArbitrationState(str, Enum):
    PENDING = "PENDING"
    EVALUATING = "EVALUATING"
    ARBITRATING = "ARBITRATING"
    ARBITRATED = "ARBITRATED"
    FAILED = "FAILED"


# ── Normalisation ────────────────────────────────────────

def _dedupe_preserve_order(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        normalized = item.strip()
        if not normalized:
            continue
        key = normalized.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(normalized)
    return out


def _weighted_average(values: list[tuple[float, float]], default: float) -> float:
    if not values:
        return default
    weighted_sum = 0.0
    total_weight = 0.0
    for value, weight in values:
        w = max(0.0, float(weight))
        weighted_sum += float(value) * w
        total_weight += w
    if total_weight <= 0:
        return sum(float(v) for v, _ in values) / len(values)
    return weighted_sum / total_weight


def coerce_recommendation(value) -> Recommendation:
    text = re.sub(r"[^a-z0-9]+", "_", str(value or "").strip().lower().replace("'", "")).strip("_")
    if text in {r.value for r in Recommendation}:
        return Recommendation(text)
    tokens = set(text.split("_"))
    if tokens & NEGATIVE_TOKENS:
        return Recommendation.NO_HIRE
    if "strong" in tokens or "strongly" in tokens:
        return Recommendation.STRONG_HIRE
    if "maybe" in tokens:
        return Recommendation.MAYBE
    if "hire" in tokens or "yes" in tokens:
        return Recommendation.HIRE
    return Recommendation.MAYBE


def coerce_confidence_level(value) -> ConfidenceLevel:
    text = str(value or "").strip().lower()
    if text in {c.value for c in ConfidenceLevel}:
        return ConfidenceLevel(text)
    return ConfidenceLevel.MEDIUM


def normalize_category_scores(raw, overall: Optional[float] = None) -> CategoryScores:
    """Clamp category scores to 0-100.

    Values reported on a 0-10 scale (every category <= 10 while the overall
    score is above 10) are multiplied by 10. Missing categories default to 50.
    """
    if not isinstance(raw, dict):
        raw = {}
    supplied = {
        name: clamp_float(raw[name], 0.0, 100.0, 50.0)
        for name in CATEGORY_FIELDS
        if raw.get(name) is not None
    }
    ten_point_scale = supplied and all(v <= 10 for v in supplied.values()) and (overall is None or overall > 10)
    if ten_point_scale:
        supplied = {name: value * 10 for name, value in supplied.items()}
    return CategoryScores(**{name: clamp_score(supplied.get(name, 50.0)) for name in CATEGORY_FIELDS})


def parse_provider_evaluation(raw: str, provider: str, model: str, latency_ms: int) -> LLMEvaluationResult:
    data = safe_json_parse(raw)
    if not isinstance(data, dict):
        raise ProviderError(provider, "evaluation response was not valid JSON")
    if data.get("score") is None:
        raise ProviderError(provider, "evaluation response has no score")

    score = clamp_score(data.get("score"))
    return LLMEvaluationResult(
        provider=provider,
        model=model,
        score=score,
        category_scores=normalize_category_scores(data.get("category_scores"), score),
        strengths=normalize_string_list(data.get("strengths")),
        improvements=normalize_string_list(data.get("improvements") or data.get("areas_for_improvement")),
        summary=str(data.get("summary") or "").strip(),
        recommendation=coerce_recommendation(data.get("recommendation")),
        confidence=clamp_float(data.get("confidence"), 0.0, 1.0, DEFAULT_CONFIDENCE),
        raw_content=raw,
        latency_ms=latency_ms,
    )


# ── Prompts ──────────────────────────────────────────────

def build_transcript_text(transcript: InterviewTranscript) -> str:
    lines = [
        "CANDIDATE PROFILE",
        f"Name: {transcript.candidate_name or 'n/a'}",
        f"Current role: {transcript.current_role or 'n/a'}",
        f"Role category: {transcript.role_category or 'n/a'}",
        f"Years of experience: {transcript.years_experience:g}",
        f"Key skills: {', '.join(transcript.key_skills) or 'n/a'}",
    ]
    if transcript.voice:
        lines.append("\nVOICE INTERVIEW")
        for i, item in enumerate(transcript.voice, 1):
            lines.append(f"Q{i}: {item.question}")
            lines.append(f"A{i}: {sanitize_prompt(item.answer, 4000) or '(no answer)'}")
    if transcript.mcq:
        correct = sum(1 for item in transcript.mcq if item.is_correct)
        lines.append(f"\nMULTIPLE CHOICE ({correct}/{len(transcript.mcq)} correct)")
        for item in transcript.mcq:
            mark = "✓" if item.is_correct else "✗"
            lines.append(f"{mark} {item.question} | selected: {item.selected_answer} | correct: {item.correct_answer}")
    if transcript.code:
        lines.append("\nCODING CHALLENGES")
        for i, item in enumerate(transcript.code, 1):
            score = f" (reviewer score {item.score}/100)" if item.score is not None else ""
            lines.append(f"Challenge {i}{score}: {item.question}")
            lines.append(f"Submission ({item.language}):\n{sanitize_prompt(item.code, 8000)}")
    return "\n".join(lines)


def build_arbiter_prompt(results: list[LLMEvaluationResult], transcript_text: str) -> str:
    blocks = []
    for i, result in enumerate(results):
        blocks.append(
            f"EVALUATION {i} (provider: {result.provider}, model: {result.model}):\n"
            f"{sanitize_prompt(result.raw_content, 12000)}"
        )
    return (
        "\n\n".join(blocks)
        + f"\n\nSelect the most accurate evaluation by index (0 to {len(results) - 1}).\n\n"
        + f"TRANSCRIPT:\n{transcript_text}"
    )


# ── Arbiter ──────────────────────────────────────────────

class MultiLLMArbiter:
    def __init__(
        self,
        llm,
        settings: Settings,
        policy: Optional[str] = None,
        arbiter_model: Optional[ModelConfig] = None,
    ):
        self.llm = llm
        self.settings = settings
        self.policy = policy or settings.arbitration_policy
        self.arbiter_model = arbiter_model or settings.provider_model(
            settings.arbiter_provider, ARBITER_TEMPERATURE, ARBITER_MAX_TOKENS
        )

    async def _evaluate_with_provider(self, provider: str, transcript_text: str) -> LLMEvaluationResult:
        model = self.settings.provider_model(provider, EVALUATION_TEMPERATURE, EVALUATION_MAX_TOKENS)
        started = time.monotonic()
        raw = await self.llm.call(
            system_user_messages(INTERVIEW_EVALUATION_SYSTEM, f"Evaluate this candidate.\n\n{transcript_text}"),
            model,
        )
        latency_ms = int((time.monotonic() - started) * 1000)
        return parse_provider_evaluation(raw, provider, model.model, latency_ms)

    async def evaluate(self, transcript: InterviewTranscript, providers: list[str]) -> ArbitratedResult:
        state = ArbitrationState.PENDING
        providers = list(dict.fromkeys(providers))
        if not providers:
            print(f"[ARBITER] {state.value} -> {ArbitrationState.FAILED.value}: no providers requested")
            raise AllProvidersFailedError({})

        transcript_text = build_transcript_text(transcript)
        state = ArbitrationState.EVALUATING
        print(f"[ARBITER] {state.value}: {providers}")
        outcomes = await asyncio.gather(
            *(self._evaluate_with_provider(p, transcript_text) for p in providers),
            return_exceptions=True,
        )

        results: list[LLMEvaluationResult] = []
        failures: dict[str, str] = {}
        for provider, outcome in zip(providers, outcomes):
            if isinstance(outcome, LLMEvaluationResult):
                results.append(outcome)
                print(f"[ARBITER] {provider} scored {outcome.score} (confidence {outcome.confidence:.2f})")
            elif isinstance(outcome, Exception):
                failures[provider] = str(outcome)
                print(f"[ARBITER] {provider} failed: {outcome}")
            else:
                raise outcome

        if not results:
            print(f"[ARBITER] {ArbitrationState.FAILED.value}: all providers failed")
            raise AllProvidersFailedError(failures)

        if len(results) == 1:
            arbitrated = self.pass_through(results[0])
        else:
            state = ArbitrationState.ARBITRATING
            print(f"[ARBITER] {state.value}: {len(results)} results, policy={self.policy}")
            if self.policy == ArbitrationMethod.WEIGHTED_AVERAGE.value:
                arbitrated = self.weighted_average(results)
            else:
                arbitrated = await self.arbiter_selection(results, transcript_text)

        state = ArbitrationState.ARBITRATED
        print(
            f"[ARBITER] {state.value}: score={arbitrated.final_score} "
            f"method={arbitrated.arbitration_method.value} confidence={arbitrated.confidence_level.value}"
        )
        return arbitrated

    @staticmethod
    def pass_through(result: LLMEvaluationResult) -> ArbitratedResult:
        return ArbitratedResult(
            selected_index=0,
            selected_provider=result.provider,
            rationale="Single evaluation available; arbitration not required.",
            final_score=result.score,
            final_category_scores=result.category_scores,
            final_strengths=result.strengths,
            final_improvements=result.improvements,
            final_summary=result.summary,
            final_recommendation=result.recommendation,
            confidence_level=ConfidenceLevel.MEDIUM,
            evaluation_agreement="N/A - single evaluation",
            arbitration_method=ArbitrationMethod.CONSENSUS,
            arbiter_skipped=True,
            provider_results=[result],
        )

    @staticmethod
    def weighted_average(results: list[LLMEvaluationResult]) -> ArbitratedResult:
        final_score = round_score(_weighted_average([(r.score, r.confidence) for r in results], 50.0))
        categories = CategoryScores(
            **{
                name: round_score(
                    _weighted_average([(getattr(r.category_scores, name), r.confidence) for r in results], 50.0)
                )
                for name in CATEGORY_FIELDS
            }
        )
        most_confident_index = max(range(len(results)), key=lambda i: results[i].confidence)
        most_confident = results[most_confident_index]
        strengths = _dedupe_preserve_order([s for r in results for s in r.strengths])[:MAX_MERGED_ITEMS]
        improvements = _dedupe_preserve_order([s for r in results for s in r.improvements])[:MAX_MERGED_ITEMS]

        scores = [r.score for r in results]
        spread = max(scores) - min(scores)
        if spread <= 10:
            confidence = ConfidenceLevel.HIGH
        elif spread <= 20:
            confidence = ConfidenceLevel.MEDIUM
        else:
            confidence = ConfidenceLevel.LOW

        return ArbitratedResult(
            selected_index=most_confident_index,
            selected_provider=most_confident.provider,
            rationale="Confidence-weighted average of all provider evaluations.",
            final_score=final_score,
            final_category_scores=categories,
            final_strengths=strengths,
            final_improvements=improvements,
            final_summary=most_confident.summary,
            final_recommendation=most_confident.recommendation,
            confidence_level=confidence,
            evaluation_agreement=f"Scores ranged from {min(scores)} to {max(scores)} across {len(results)} providers.",
            arbitration_method=ArbitrationMethod.WEIGHTED_AVERAGE,
            provider_results=results,
        )

    @staticmethod
    def arbiter_fallback(results: list[LLMEvaluationResult], reason: str) -> ArbitratedResult:
        first = results[0]
        return ArbitratedResult(
            selected_index=0,
            selected_provider=first.provider,
            rationale=f"Arbiter failed - using first evaluation as fallback ({reason})",
            final_score=first.score,
            final_category_scores=first.category_scores,
            final_strengths=first.strengths,
            final_improvements=first.improvements,
            final_summary=first.summary,
            final_recommendation=first.recommendation,
            confidence_level=ConfidenceLevel.LOW,
            evaluation_agreement="Unknown - arbitration failed",
            arbitration_method=ArbitrationMethod.CONSENSUS,
            arbiter_skipped=True,
            provider_results=results,
        )

    async def arbiter_selection(self, results: list[LLMEvaluationResult], transcript_text: str) -> ArbitratedResult:
        started = time.monotonic()
        try:
            raw = await self.llm.call(
                system_user_messages(ARBITER_SYSTEM, build_arbiter_prompt(results, transcript_text)),
                self.arbiter_model,
            )
        except ProviderError as e:
            print(f"[ARBITER] Arbiter call failed, falling back to first evaluation: {e}")
            return self.arbiter_fallback(results, "arbiter call failed")
        latency_ms = int((time.monotonic() - started) * 1000)

        data = safe_json_parse(raw)
        if not isinstance(data, dict):
            print("[ARBITER] Arbiter output unreadable, falling back to first evaluation")
            return self.arbiter_fallback(results, "unreadable arbiter output")

        raw_index = data.get("selected_evaluation_index")
        index = parse_index(raw_index, len(results))
        if index is None:
            print(f"[ARBITER] Invalid selection index {raw_index!r}, falling back to first evaluation")
            return self.arbiter_fallback(results, "missing or invalid selection index")

        try:
            selected = results[index]
            final_score = (
                clamp_score(data.get("final_score"), default=selected.score)
                if data.get("final_score") is not None
                else selected.score
            )
            categories_raw = data.get("final_category_scores")
            final_categories = (
                normalize_category_scores(categories_raw, final_score)
                if isinstance(categories_raw, dict)
                else selected.category_scores
            )
            strengths = normalize_string_list(data.get("final_strengths")) or selected.strengths
            improvements = normalize_string_list(data.get("final_improvements")) or selected.improvements
            recommendation = (
                coerce_recommendation(data.get("final_recommendation"))
                if data.get("final_recommendation")
                else selected.recommendation
            )
            return ArbitratedResult(
                selected_index=index,
                selected_provider=selected.provider,
                rationale=str(data.get("rationale") or "Arbiter selected the most accurate evaluation.").strip(),
                final_score=final_score,
                final_category_scores=final_categories,
                final_strengths=strengths,
                final_improvements=improvements,
                final_summary=str(data.get("final_summary") or selected.summary).strip(),
                final_recommendation=recommendation,
                confidence_level=coerce_confidence_level(data.get("confidence_level")),
                evaluation_agreement=str(data.get("evaluation_agreement") or "Not stated").strip(),
                arbitration_method=ArbitrationMethod.ARBITER_SELECTION,
                provider_results=results,
                arbiter_provider=self.arbiter_model.provider,
                arbiter_model=self.arbiter_model.model,
                arbiter_latency_ms=latency_ms,
            )
        except (TypeError, ValueError) as e:
            traceback.print_exc()
            print(f"[ARBITER] Could not build arbitrated result: {e}")
            return self.arbiter_fallback(results, "malformed arbiter output")
