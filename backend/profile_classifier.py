from pydantic import ValidationError as SchemaError

from config import ModelConfig
from errors import ClassificationError, ProviderError
from llm_client import system_user_messages
from prompts import PROFILE_CLASSIFIER_SYSTEM
from schemas import ProfileClassification, ResumeAnalysis, RoleCategory
from security import safe_json_parse, sanitize_prompt

CLASSIFIER_TEMPERATURE = 0.2
CLASSIFIER_MAX_TOKENS = 800


def build_classification_prompt(analysis: ResumeAnalysis) -> str:
    profile = analysis.candidate_profile
    experience_lines = [
        f"- {exp.role} at {exp.company} ({exp.duration})"
        for exp in analysis.work_experience
    ]
    entities = analysis.extracted_entities
    return f"""Classify this candidate.

Name: {profile.name}
Current role: {profile.current_role}
Total experience: {profile.total_experience}
Job category: {profile.job_category}

Summary:
{analysis.professional_summary}

Work experience:
{chr(10).join(experience_lines) or "- none listed"}

Technical skills: {", ".join(analysis.core_skills.technical) or "none listed"}
Technologies: {", ".join(entities.technologies) or "none listed"}
Projects: {", ".join(entities.projects[:5]) or "none listed"}"""


class ProfileClassifier:
    def __init__(self, llm, model: ModelConfig):
        self.llm = llm
        self.model = model

    async def classify_profile(self, analysis: ResumeAnalysis) -> ProfileClassification:
        prompt = sanitize_prompt(build_classification_prompt(analysis))
        try:
            raw = await self.llm.call(system_user_messages(PROFILE_CLASSIFIER_SYSTEM, prompt), self.model)
        except ProviderError as e:
            raise ClassificationError("Profile classification is unavailable, please retry later") from e

        data = safe_json_parse(raw)
        if not isinstance(data, dict) or not data.get("role_category"):
            raise ClassificationError("Profile classification returned no role category")

        category = str(data["role_category"]).strip().lower()
        if category not in {c.value for c in RoleCategory}:
            raise ClassificationError(
                f"Profile classification returned an unknown role category: {category}",
                details={"role_category": category},
            )
        try:
            classification = ProfileClassification.model_validate(data)
        except SchemaError as e:
            raise ClassificationError("Profile classification returned malformed output") from e

        print(
            f"[PLAN] Classified as {classification.role_category.value} "
            f"({classification.years_experience}y, coding={classification.coding_expected}, "
            f"recent={classification.recent_coding}, evidence={classification.evidence_strength.value})"
        )
        return classification
