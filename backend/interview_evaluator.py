import traceback
from typing import Optional

from component_evaluator import calculate_mcq_score
from errors import ValidationError
from multi_llm_arbiter import MultiLLMArbiter
from schemas import (
    ArbitratedResult,
    CategoryScores,
    ComponentScores,
    EvaluationInput,
    InterviewEvaluation,
)
from score_aggregator import aggregate_scores, round_score, skill_level_for

DEFAULT_CATEGORY_SCORE = 70


def _mean(values: list[int]) -> Optional[int]:
    if not values:
        return None
    return round_score(sum(values) / len(values))


def fallback_category_scores(scores: ComponentScores, overall: int) -> CategoryScores:
    technical = _mean([s for s in (scores.mcq, scores.code) if s is not None])
    problem_solving = scores.code if scores.code is not None else scores.mcq
    return CategoryScores(
        technical_accuracy=technical if technical is not None else DEFAULT_CATEGORY_SCORE,
        communication_clarity=scores.voice if scores.voice is not None else DEFAULT_CATEGORY_SCORE,
        problem_solving=problem_solving if problem_solving is not None else DEFAULT_CATEGORY_SCORE,
        experience_alignment=overall,
    )


class InterviewEvaluator:
    """Final verdict for an assessment attempt.

    The multi-LLM path is preferred; score aggregation is the backstop and
    needs no external calls.
    """

    def __init__(self, arbiter: Optional[MultiLLMArbiter], providers: list[str], enable_multi_llm: bool = True):
        self.arbiter = arbiter
        self.providers = providers
        self.enable_multi_llm = enable_multi_llm

    async def evaluate_interview(self, data: EvaluationInput, use_multi_llm: Optional[bool] = None) -> InterviewEvaluation:
        scores = data.component_scores.model_copy()
        if scores.mcq is None and data.mcq_answers:
            scores.mcq = calculate_mcq_score(data.mcq_answers)

        multi_llm = self.enable_multi_llm if use_multi_llm is None else use_multi_llm
        if not multi_llm:
            fallback_reason = "multi-LLM evaluation disabled"
        elif self.arbiter is None or not self.providers:
            fallback_reason = "no evaluation providers configured"
        elif not data.transcript.has_content():
            fallback_reason = "no transcript data to evaluate"
        else:
            try:
                arbitrated = await self.arbiter.evaluate(data.transcript, self.providers)
                return self._from_arbitrated(arbitrated, scores)
            except Exception as e:
                traceback.print_exc()
                print(f"[EVAL] Multi-LLM evaluation failed, using score aggregation: {e}")
                fallback_reason = f"multi-LLM evaluation failed: {e.__class__.__name__}"

        return self._from_aggregation(scores, fallback_reason, multi_llm)

    async def re_evaluate_interview(self, data: EvaluationInput) -> InterviewEvaluation:
        return await self.evaluate_interview(data, use_multi_llm=True)

    @staticmethod
    def _from_arbitrated(arbitrated: ArbitratedResult, scores: ComponentScores) -> InterviewEvaluation:
        overall = arbitrated.final_score
        return InterviewEvaluation(
            overall_score=overall,
            skill_level=skill_level_for(overall),
            category_scores=arbitrated.final_category_scores,
            component_scores=scores,
            strengths=arbitrated.final_strengths,
            improvements=arbitrated.final_improvements,
            recommendation=arbitrated.final_recommendation,
            rationale=arbitrated.rationale,
            summary=arbitrated.final_summary,
            multi_llm_enabled=True,
            providers_used=[r.provider for r in arbitrated.provider_results],
            provider_results=arbitrated.provider_results,
            selected_index=arbitrated.selected_index,
            selected_provider=arbitrated.selected_provider,
            arbiter_provider=arbitrated.arbiter_provider,
            arbiter_model=arbitrated.arbiter_model,
            arbiter_latency_ms=arbitrated.arbiter_latency_ms,
            arbitration_method=arbitrated.arbitration_method,
            confidence_level=arbitrated.confidence_level,
            evaluation_agreement=arbitrated.evaluation_agreement,
            arbiter_skipped=arbitrated.arbiter_skipped,
            scoring_source="multi_llm",
        )

    @staticmethod
    def _from_aggregation(scores: ComponentScores, fallback_reason: str, multi_llm: bool) -> InterviewEvaluation:
        present = scores.present()
        if not present:
            raise ValidationError("No assessment answers have been recorded yet")

        aggregated = aggregate_scores(present)
        overall = aggregated["overall_score"]
        weights = ", ".join(f"{name} {weight:g}" for name, weight in aggregated["weights"].items())
        print(f"[EVAL] Score aggregation: {present} -> {overall} ({aggregated['skill_level'].value})")
        return InterviewEvaluation(
            overall_score=overall,
            skill_level=aggregated["skill_level"],
            category_scores=fallback_category_scores(scores, overall),
            component_scores=scores,
            strengths=aggregated["strengths"],
            improvements=aggregated["improvements"],
            recommendation=aggregated["recommendation"],
            rationale=(
                f"Overall score {overall} from weighted component scores ({weights}); "
                f"skill level {aggregated['skill_level'].value}."
            ),
            summary=f"Candidate assessed at {aggregated['skill_level'].value.lower()} level with an overall score of {overall}.",
            multi_llm_enabled=multi_llm,
            scoring_source="score_aggregation",
            fallback_reason=fallback_reason,
        )
