from config import ModelConfig
from errors import ProviderError
from llm_client import system_user_messages
from prompts import CODE_EVALUATION_SYSTEM, VOICE_EVALUATION_SYSTEM
from schemas import (
    CodeDimensions,
    CodeEvaluation,
    CodingChallenge,
    MCQAnswer,
    MCQEvaluation,
    MCQQuestion,
    VoiceEvaluation,
)
from score_aggregator import clamp_float, clamp_score, normalize_string_list, round_score
from security import safe_json_parse, sanitize_prompt

EVALUATION_TEMPERATURE = 0.3
EVALUATION_MAX_TOKENS = 1000
CODE_WEIGHTS = {"correctness": 0.4, "problem_solving": 0.3, "code_quality": 0.2, "completeness": 0.1}
VOICE_QUALITY_LABELS = ("excellent", "good", "fair", "poor")
MAX_SUBMISSION_CHARS = 20000


def default_code_evaluation() -> CodeEvaluation:
    return CodeEvaluation(
        score=calculate_code_score(CodeDimensions()),
        dimensions=CodeDimensions(),
        feedback="Code submission received and reviewed.",
        strengths=["Submitted code"],
        improvements=["Consider edge cases", "Improve code documentation"],
        is_default=True,
    )


def default_voice_evaluation() -> VoiceEvaluation:
    return VoiceEvaluation(
        score=50,
        quality="fair",
        feedback="Answer received and reviewed.",
        strengths=["Provided an answer"],
        improvements=["Provide more specific details", "Elaborate on technical concepts"],
        is_default=True,
    )


def voice_quality_for(score: int) -> str:
    if score >= 85:
        return "excellent"
    if score >= 70:
        return "good"
    if score >= 50:
        return "fair"
    return "poor"


# ── MCQ ──────────────────────────────────────────────────

def evaluate_mcq_answer(question: MCQQuestion, selected_index: int) -> MCQEvaluation:
    is_correct = selected_index == question.correct_answer_index
    correct_text = question.options[question.correct_answer_index]
    if is_correct:
        feedback = f"Correct! {correct_text} is the right answer."
    else:
        if 0 <= selected_index < len(question.options):
            selected_text = question.options[selected_index]
        else:
            selected_text = "no valid option"
        feedback = f"Incorrect. You selected: {selected_text}. The correct answer is: {correct_text}."
    return MCQEvaluation(
        question_id=question.id,
        selected_index=selected_index,
        correct_index=question.correct_answer_index,
        is_correct=is_correct,
        score=100 if is_correct else 0,
        feedback=feedback,
    )


def calculate_mcq_score(answers: list[MCQAnswer], total_questions: int | None = None) -> int:
    total = total_questions if total_questions else len(answers)
    if total <= 0:
        return 0
    correct = sum(1 for a in answers if a.is_correct)
    return round_score(correct / total * 100)


# ── Code ─────────────────────────────────────────────────

def calculate_code_score(dimensions: CodeDimensions) -> int:
    weighted = sum(getattr(dimensions, name) * weight for name, weight in CODE_WEIGHTS.items())
    return clamp_score(weighted / 10 * 100)


def _build_code_prompt(challenge: CodingChallenge, code: str, language: str) -> str:
    criteria = "\n".join(f"- {c}" for c in challenge.evaluation_criteria) or "- Correctness"
    return f"""CHALLENGE ({challenge.difficulty.value}, {challenge.task_style.value}):
{challenge.question_text}

EVALUATION CRITERIA:
{criteria}

SUBMISSION ({language}):
{sanitize_prompt(code, MAX_SUBMISSION_CHARS)}"""


async def evaluate_code_answer(
    llm, model: ModelConfig, challenge: CodingChallenge, code: str, language: str
) -> CodeEvaluation:
    if not code or not code.strip():
        print(f"[CODE] Empty submission for {challenge.id}, using default evaluation")
        return default_code_evaluation()
    try:
        raw = await llm.call(
            system_user_messages(CODE_EVALUATION_SYSTEM, _build_code_prompt(challenge, code, language)),
            model,
        )
    except ProviderError as e:
        print(f"[CODE] Evaluation failed for {challenge.id}: {e}")
        return default_code_evaluation()

    data = safe_json_parse(raw)
    if not isinstance(data, dict):
        print(f"[CODE] Evaluation for {challenge.id} unreadable, using default")
        return default_code_evaluation()

    dimensions = CodeDimensions(
        correctness=clamp_float(data.get("correctness"), 0.0, 10.0, 5.0),
        problem_solving=clamp_float(data.get("problem_solving"), 0.0, 10.0, 5.0),
        code_quality=clamp_float(data.get("code_quality"), 0.0, 10.0, 5.0),
        completeness=clamp_float(data.get("completeness"), 0.0, 10.0, 5.0),
    )
    return CodeEvaluation(
        score=calculate_code_score(dimensions),
        dimensions=dimensions,
        feedback=str(data.get("feedback") or "Code submission received and reviewed.").strip(),
        strengths=normalize_string_list(data.get("strengths"), max_items=6),
        improvements=normalize_string_list(data.get("improvements"), max_items=6),
    )


# ── Voice ────────────────────────────────────────────────

async def evaluate_voice_answer(llm, model: ModelConfig, question: str, transcript: str) -> VoiceEvaluation:
    if not transcript or not transcript.strip():
        return default_voice_evaluation()
    prompt = f"""QUESTION:
{question}

CANDIDATE ANSWER (transcript):
{sanitize_prompt(transcript, MAX_SUBMISSION_CHARS)}"""
    try:
        raw = await llm.call(system_user_messages(VOICE_EVALUATION_SYSTEM, prompt), model)
    except ProviderError as e:
        print(f"[VOICE] Answer evaluation failed: {e}")
        return default_voice_evaluation()

    data = safe_json_parse(raw)
    if not isinstance(data, dict) or data.get("score") is None:
        print("[VOICE] Answer evaluation unreadable, using default")
        return default_voice_evaluation()

    score = clamp_score(data.get("score"))
    quality = str(data.get("quality") or "").strip().lower()
    if quality not in VOICE_QUALITY_LABELS:
        quality = voice_quality_for(score)
    return VoiceEvaluation(
        score=score,
        quality=quality,
        feedback=str(data.get("feedback") or "Answer received and reviewed.").strip(),
        strengths=normalize_string_list(data.get("strengths"), max_items=6),
        improvements=normalize_string_list(data.get("improvements"), max_items=6),
    )
