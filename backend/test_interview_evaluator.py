import asyncio

import pytest

from conftest import FakeLLMClient, failing, pipeline_responder
from errors import ValidationError
from interview_evaluator import InterviewEvaluator, fallback_category_scores
from multi_llm_arbiter import MultiLLMArbiter
from schemas import (
    ArbitrationMethod,
    CategoryScores,
    ComponentScores,
    EvaluationInput,
    InterviewTranscript,
    MCQAnswer,
    Recommendation,
    SkillLevel,
    TranscriptVoiceItem,
)
from score_aggregator import aggregate_scores, component_weights, recommendation_for, skill_level_for

TRANSCRIPT = InterviewTranscript(
    candidate_name="Jordan Lee",
    role_category="software_dev",
    years_experience=6,
    voice=[TranscriptVoiceItem(question="How do you design idempotent APIs?", answer="With request keys.")],
)


def make_evaluator(llm, settings, enable_multi_llm=True, providers=("gemini", "openai")):
    return InterviewEvaluator(MultiLLMArbiter(llm, settings), list(providers), enable_multi_llm)


# ── Score aggregation ────────────────────────────────────

@pytest.mark.parametrize(
    "components, weights",
    [
        ({"voice", "mcq", "code"}, {"voice": 0.3, "mcq": 0.35, "code": 0.35}),
        ({"voice", "mcq"}, {"voice": 0.4, "mcq": 0.6}),
        ({"voice", "code"}, {"voice": 0.4, "code": 0.6}),
        ({"mcq", "code"}, {"mcq": 0.5, "code": 0.5}),
        ({"voice"}, {"voice": 1.0}),
        ({"code"}, {"code": 1.0}),
    ],
)
def test_component_weights(components, weights):
    assert component_weights(components) == weights
    assert sum(component_weights(components).values()) == pytest.approx(1.0)


def test_weighted_overall_score():
    result = aggregate_scores({"voice": 80, "mcq": 70, "code": 90})
    assert result["overall_score"] == 80
    assert result["skill_level"] == SkillLevel.SENIOR
    assert result["recommendation"] == Recommendation.HIRE


@pytest.mark.parametrize(
    "score, level",
    [(100, SkillLevel.EXPERT), (85, SkillLevel.EXPERT), (84, SkillLevel.SENIOR), (75, SkillLevel.SENIOR),
     (74, SkillLevel.INTERMEDIATE), (65, SkillLevel.INTERMEDIATE), (64, SkillLevel.JUNIOR), (50, SkillLevel.JUNIOR),
     (49, SkillLevel.BEGINNER), (0, SkillLevel.BEGINNER)],
)
def test_skill_level_thresholds(score, level):
    assert skill_level_for(score) == level


def test_recommendation_table():
    assert recommendation_for(SkillLevel.EXPERT) == Recommendation.STRONG_HIRE
    assert recommendation_for(SkillLevel.SENIOR) == Recommendation.HIRE
    assert recommendation_for(SkillLevel.INTERMEDIATE) == Recommendation.HIRE
    assert recommendation_for(SkillLevel.JUNIOR) == Recommendation.MAYBE
    assert recommendation_for(SkillLevel.BEGINNER) == Recommendation.NO_HIRE


def test_strengths_and_improvements_never_empty():
    middling = aggregate_scores({"voice": 70, "mcq": 72})
    assert middling["strengths"] == ["Adequate technical knowledge"]
    assert middling["improvements"] == ["Further enhance communication"]
    mixed = aggregate_scores({"voice": 90, "code": 40})
    assert mixed["strengths"] == ["Strong communication skills"]
    assert mixed["improvements"] == ["Practical coding skills"]


def test_fallback_category_scores():
    scores = fallback_category_scores(ComponentScores(voice=60, mcq=80, code=71), 70)
    assert scores == CategoryScores(
        technical_accuracy=76, communication_clarity=60, problem_solving=71, experience_alignment=70
    )
    voice_only = fallback_category_scores(ComponentScores(voice=55), 55)
    assert voice_only == CategoryScores(
        technical_accuracy=70, communication_clarity=55, problem_solving=70, experience_alignment=55
    )


# ── Evaluation paths ─────────────────────────────────────

def test_disabled_multi_llm_makes_no_calls(test_settings):
    llm = FakeLLMClient(pipeline_responder())
    evaluator = make_evaluator(llm, test_settings, enable_multi_llm=False)
    data = EvaluationInput(transcript=TRANSCRIPT, component_scores=ComponentScores(voice=80, mcq=90))

    evaluation = asyncio.run(evaluator.evaluate_interview(data))

    assert llm.calls == []
    assert evaluation.overall_score == 86
    assert evaluation.skill_level == SkillLevel.EXPERT
    assert evaluation.recommendation == Recommendation.STRONG_HIRE
    assert evaluation.scoring_source == "score_aggregation"
    assert evaluation.fallback_reason == "multi-LLM evaluation disabled"
    assert not evaluation.multi_llm_enabled


def test_multi_llm_path_uses_arbiter(test_settings):
    llm = FakeLLMClient(pipeline_responder())
    evaluator = make_evaluator(llm, test_settings)
    data = EvaluationInput(transcript=TRANSCRIPT, component_scores=ComponentScores(voice=70, mcq=80, code=75))

    evaluation = asyncio.run(evaluator.evaluate_interview(data))

    assert evaluation.overall_score == 77
    assert evaluation.skill_level == SkillLevel.SENIOR
    assert evaluation.recommendation == Recommendation.HIRE
    assert evaluation.arbitration_method == ArbitrationMethod.ARBITER_SELECTION
    assert evaluation.providers_used == ["gemini", "openai"]
    assert evaluation.scoring_source == "multi_llm"
    assert evaluation.component_scores == ComponentScores(voice=70, mcq=80, code=75)


def test_all_providers_failing_falls_back_to_aggregation(test_settings):
    llm = FakeLLMClient(failing)
    evaluator = make_evaluator(llm, test_settings)
    data = EvaluationInput(transcript=TRANSCRIPT, component_scores=ComponentScores(voice=60, code=50))

    evaluation = asyncio.run(evaluator.evaluate_interview(data))

    assert evaluation.overall_score == 54
    assert evaluation.skill_level == SkillLevel.JUNIOR
    assert evaluation.recommendation == Recommendation.MAYBE
    assert evaluation.scoring_source == "score_aggregation"
    assert evaluation.fallback_reason == "multi-LLM evaluation failed: AllProvidersFailedError"


def test_empty_transcript_skips_providers(test_settings):
    llm = FakeLLMClient(pipeline_responder())
    evaluator = make_evaluator(llm, test_settings)
    data = EvaluationInput(transcript=InterviewTranscript(), component_scores=ComponentScores(voice=70))
    evaluation = asyncio.run(evaluator.evaluate_interview(data))
    assert llm.calls == []
    assert evaluation.fallback_reason == "no transcript data to evaluate"


def test_mcq_score_derived_from_answers(test_settings):
    answers = [MCQAnswer(question_id=f"mcq-{i}", selected_index=0, is_correct=i % 2 == 0) for i in range(10)]
    evaluator = make_evaluator(FakeLLMClient(), test_settings, enable_multi_llm=False)
    data = EvaluationInput(transcript=TRANSCRIPT, mcq_answers=answers)
    evaluation = asyncio.run(evaluator.evaluate_interview(data))
    assert evaluation.component_scores.mcq == 50
    assert evaluation.overall_score == 50


def test_nothing_to_evaluate_is_a_validation_error(test_settings):
    evaluator = make_evaluator(FakeLLMClient(), test_settings, enable_multi_llm=False)
    with pytest.raises(ValidationError):
        asyncio.run(evaluator.evaluate_interview(EvaluationInput(transcript=InterviewTranscript())))


def test_re_evaluation_forces_multi_llm(test_settings):
    llm = FakeLLMClient(pipeline_responder())
    evaluator = make_evaluator(llm, test_settings, enable_multi_llm=False)
    data = EvaluationInput(transcript=TRANSCRIPT, component_scores=ComponentScores(voice=70))
    evaluation = asyncio.run(evaluator.re_evaluate_interview(data))
    assert evaluation.scoring_source == "multi_llm"
    assert evaluation.multi_llm_enabled
