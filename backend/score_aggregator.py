import math
from typing import Optional

from schemas import Recommendation, SkillLevel

COMPONENT_WEIGHTS = {
    frozenset({"voice", "mcq", "code"}): {"voice": 0.3, "mcq": 0.35, "code": 0.35},
    frozenset({"voice", "mcq"}): {"voice": 0.4, "mcq": 0.6},
    frozenset({"voice", "code"}): {"voice": 0.4, "code": 0.6},
    frozenset({"mcq", "code"}): {"mcq": 0.5, "code": 0.5},
}

SKILL_LEVEL_THRESHOLDS = [
    (85, SkillLevel.EXPERT),
    (75, SkillLevel.SENIOR),
    (65, SkillLevel.INTERMEDIATE),
    (50, SkillLevel.JUNIOR),
]

RECOMMENDATION_BY_LEVEL = {
    SkillLevel.EXPERT: Recommendation.STRONG_HIRE,
    SkillLevel.SENIOR: Recommendation.HIRE,
    SkillLevel.INTERMEDIATE: Recommendation.HIRE,
    SkillLevel.JUNIOR: Recommendation.MAYBE,
    SkillLevel.BEGINNER: Recommendation.NO_HIRE,
}

COMPONENT_LABELS = {"voice": "communication", "mcq": "technical knowledge", "code": "coding"}
STRENGTH_BY_COMPONENT = {
    "voice": "Strong communication skills",
    "mcq": "Strong technical knowledge",
    "code": "Strong coding abilities",
}
IMPROVEMENT_BY_COMPONENT = {
    "voice": "Communication and articulation",
    "mcq": "Theoretical knowledge",
    "code": "Practical coding skills",
}
STRENGTH_THRESHOLD = 80
IMPROVEMENT_THRESHOLD = 65


def round_score(value: float) -> int:
    """Half-up rounding, so 76.5 becomes 77 rather than banker's 76."""
    return int(math.floor(value + 0.5))


def clamp_score(value, minimum: int = 0, maximum: int = 100, default: int = 50) -> int:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(numeric):
        return default
    return max(minimum, min(maximum, round_score(numeric)))


def clamp_float(value, minimum: float, maximum: float, default: float) -> float:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        numeric = default
    if math.isnan(numeric):
        numeric = default
    return max(minimum, min(maximum, numeric))


def normalize_string_list(value, max_items: int = 8, max_len: int = 300) -> list[str]:
    if not isinstance(value, list):
        return []
    out: list[str] = []
    seen: set[str] = set()
    for item in value:
        text = str(item).strip()
        if not text:
            continue
        lowered = text.lower()
        if lowered in seen:
            continue
        seen.add(lowered)
        out.append(text[:max_len])
        if len(out) >= max_items:
            break
    return out


def parse_index(value, size: int) -> Optional[int]:
    """Read a list index from LLM output: 2, 2.0 and "2" all count."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    elif isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or not 0 <= value < size:
        return None
    return value


def component_weights(components: set[str]) -> dict[str, float]:
    if not components:
        raise ValueError("No component scores to aggregate")
    if len(components) == 1:
        return {next(iter(components)): 1.0}
    return COMPONENT_WEIGHTS[frozenset(components)]


def skill_level_for(score: float) -> SkillLevel:
    for threshold, level in SKILL_LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return SkillLevel.BEGINNER


def recommendation_for(level: SkillLevel) -> Recommendation:
    return RECOMMENDATION_BY_LEVEL[level]


def aggregate_scores(scores: dict[str, float]) -> dict:
    """Combine per-component scores (0-100) into an overall verdict.

    `scores` holds any non-empty subset of voice/mcq/code.
    """
    weights = component_weights(set(scores))
    overall = round_score(sum(scores[name] * weight for name, weight in weights.items()))
    level = skill_level_for(overall)

    strengths = [STRENGTH_BY_COMPONENT[name] for name, score in scores.items() if score >= STRENGTH_THRESHOLD]
    if not strengths:
        best = max(scores, key=scores.get)
        strengths = [f"Adequate {COMPONENT_LABELS[best]}"]

    improvements = [IMPROVEMENT_BY_COMPONENT[name] for name, score in scores.items() if score < IMPROVEMENT_THRESHOLD]
    if not improvements:
        weakest = min(scores, key=scores.get)
        improvements = [f"Further enhance {COMPONENT_LABELS[weakest]}"]

    return {
        "overall_score": overall,
        "skill_level": level,
        "recommendation": recommendation_for(level),
        "weights": weights,
        "strengths": strengths,
        "improvements": improvements,
    }
