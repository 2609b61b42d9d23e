"""Deterministic assessment planning from a profile classification.

No I/O happens here. Every generator that needs a difficulty bucket derives it
from `experience_level` so the thresholds live in one place.
"""
import math

from schemas import (
    AssessmentPlan,
    Component,
    Difficulty,
    ExperienceLevel,
    ProfileClassification,
    QuestionCounts,
    RoleCategory,
    TaskStyle,
)

MCQ_CATEGORIES = {
    RoleCategory.SOFTWARE_DEV,
    RoleCategory.QA_MANUAL,
    RoleCategory.QA_AUTOMATION_SDET,
    RoleCategory.DATA_ML,
    RoleCategory.DEVOPS_SRE,
    RoleCategory.ANALYTICS_BI,
    RoleCategory.PRODUCT_MANAGER,
    RoleCategory.BUSINESS_ANALYST,
}
CODE_CATEGORIES = {
    RoleCategory.SOFTWARE_DEV,
    RoleCategory.QA_AUTOMATION_SDET,
    RoleCategory.DATA_ML,
}
MIN_CODING_YEARS = 0.5

VOICE_COUNTS = {
    ExperienceLevel.ENTRY: 8,
    ExperienceLevel.MID: 10,
    ExperienceLevel.SENIOR: 12,
    ExperienceLevel.EXECUTIVE: 12,
}
MCQ_COUNT = 20
VOICE_MINUTES_PER_QUESTION = 2
MCQ_MINUTES_PER_QUESTION = 1
CODE_MINUTES_PER_CHALLENGE = 20
DURATION_BUFFER = 1.1


def experience_level(years: float) -> ExperienceLevel:
    if years < 2:
        return ExperienceLevel.ENTRY
    if years < 5:
        return ExperienceLevel.MID
    if years < 10:
        return ExperienceLevel.SENIOR
    return ExperienceLevel.EXECUTIVE


def difficulty_for_years(years: float) -> Difficulty:
    level = experience_level(years)
    if level == ExperienceLevel.ENTRY:
        return Difficulty.EASY
    if level == ExperienceLevel.MID:
        return Difficulty.MEDIUM
    return Difficulty.HARD


def task_style_for_years(years: float) -> TaskStyle:
    level = experience_level(years)
    if level == ExperienceLevel.ENTRY:
        return TaskStyle.IMPLEMENT_FUNCTION
    if level == ExperienceLevel.MID:
        return TaskStyle.DEBUG_CODE
    return TaskStyle.CODE_REVIEW


def _coding_exclusion_reasons(classification: ProfileClassification) -> list[str]:
    reasons = []
    if not classification.coding_expected:
        reasons.append("no coding expected in this role")
    if not classification.recent_coding:
        reasons.append("no recent coding activity detected")
    if classification.years_experience < MIN_CODING_YEARS:
        reasons.append("insufficient experience (<6 months)")
    return reasons


def should_include_code(classification: ProfileClassification) -> tuple[bool, list[str]]:
    category = classification.role_category
    if category == RoleCategory.DEVOPS_SRE:
        reasons = []
        if not classification.primary_languages:
            reasons.append("no primary programming language listed for a devops_sre profile")
        reasons.extend(_coding_exclusion_reasons(classification))
        return not reasons, reasons
    if category not in CODE_CATEGORIES:
        return False, [f"coding challenges are not part of the {category.value} assessment"]
    reasons = _coding_exclusion_reasons(classification)
    return not reasons, reasons


def estimate_duration(counts: QuestionCounts) -> int:
    minutes = (
        counts.voice * VOICE_MINUTES_PER_QUESTION
        + counts.mcq * MCQ_MINUTES_PER_QUESTION
        + counts.code * CODE_MINUTES_PER_CHALLENGE
    )
    # round before ceil so float noise (140 * 1.1 = 154.00000000000003) doesn't add a minute
    return math.ceil(round(minutes * DURATION_BUFFER, 6))


def _format_years(years: float) -> str:
    return f"{years:g}"


def plan_assessment(classification: ProfileClassification) -> AssessmentPlan:
    category = classification.role_category
    years = classification.years_experience
    level = experience_level(years)

    components = [Component.VOICE]
    include_mcq = category in MCQ_CATEGORIES
    if include_mcq:
        components.append(Component.MCQ)
    include_code, code_reasons = should_include_code(classification)
    if include_code:
        components.append(Component.CODE)

    counts = QuestionCounts(
        voice=VOICE_COUNTS[level],
        mcq=MCQ_COUNT if include_mcq else 0,
        code=(2 if level == ExperienceLevel.ENTRY else 3) if include_code else 0,
    )

    lines = [
        f"Role classified as {category.value} with {_format_years(years)} years of experience ({level.value} level).",
        f"Assessment includes: {', '.join(c.value for c in components)}.",
        f"Voice interview: {counts.voice} questions.",
    ]
    if include_mcq:
        lines.append(f"MCQ test: {counts.mcq} questions.")
    else:
        lines.append(f"MCQ test excluded: multiple choice is not part of the {category.value} assessment.")
    if include_code:
        lines.append(f"Coding challenge: {counts.code} problems.")
    else:
        lines.append(f"Coding challenge excluded: {'; '.join(code_reasons)}.")

    plan = AssessmentPlan(
        components=components,
        question_counts=counts,
        difficulty=level,
        estimated_duration=estimate_duration(counts),
        rationale=" ".join(lines),
    )
    print(
        f"[PLAN] {category.value}: {[c.value for c in components]} "
        f"counts={counts.model_dump()} ~{plan.estimated_duration}min"
    )
    return plan
