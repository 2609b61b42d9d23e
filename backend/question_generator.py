from typing import Optional

from config import ModelConfig
from errors import ProviderError
from llm_client import system_user_messages
from assessment_planner import experience_level
from prompts import VOICE_QUESTION_SYSTEM
from schemas import ProfileClassification, ResumeAnalysis, VoiceAnswer, VoiceQuestion
from security import safe_json_parse, sanitize_prompt

VOICE_TEMPERATURE = 0.7
VOICE_MAX_TOKENS = 500

GENERIC_QUESTIONS = [
    ("project delivery", "Walk me through the most challenging project you delivered. What was your role and what made it hard?"),
    ("teamwork", "Tell me about a time you disagreed with a teammate on a technical decision. How was it resolved?"),
    ("learning", "Describe a technology or skill you had to learn quickly. How did you approach it?"),
    ("retrospective", "Which decision from a past project would you make differently today, and why?"),
    ("problem solving", "Tell me about a difficult problem you diagnosed. How did you narrow down the cause?"),
    ("ownership", "Describe a time you took ownership of something outside your formal responsibilities."),
]


def primary_skill(analysis: ResumeAnalysis, classification: ProfileClassification) -> str:
    for pool in (classification.key_skills, classification.primary_frameworks, classification.primary_languages):
        if pool:
            return pool[0]
    return analysis.candidate_profile.current_role or "your field"


def build_resume_summary(analysis: ResumeAnalysis) -> str:
    profile = analysis.candidate_profile
    parts = [f"{profile.name or 'Candidate'}, {profile.current_role or 'role not stated'}, {profile.total_experience or 'experience not stated'}"]
    if analysis.professional_summary:
        parts.append(analysis.professional_summary)
    for exp in analysis.work_experience[:2]:
        parts.append(f"{exp.role} at {exp.company} ({exp.duration})")
    if analysis.core_skills.technical:
        parts.append("Skills: " + ", ".join(analysis.core_skills.technical[:10]))
    return "\n".join(parts)


def _topic_pool(analysis: ResumeAnalysis, classification: ProfileClassification) -> list[str]:
    pool = (
        classification.key_skills
        + classification.primary_frameworks
        + classification.primary_languages
        + analysis.extracted_entities.technologies
        + analysis.interview_focus.suggested_question_topics
    )
    out: list[str] = []
    seen: set[str] = set()
    for topic in pool:
        key = topic.strip().lower()
        if key and key not in seen:
            seen.add(key)
            out.append(topic.strip())
    return out


def fallback_voice_question(
    analysis: ResumeAnalysis,
    classification: ProfileClassification,
    previous: list[VoiceQuestion],
    index: int,
) -> VoiceQuestion:
    used = {q.topic.strip().lower() for q in previous if q.topic}
    used |= {q.text.strip().lower() for q in previous}

    if not previous:
        topic = primary_skill(analysis, classification)
        if topic.lower() not in used:
            return VoiceQuestion(
                id=f"voice-{index + 1}",
                text=f"Tell me about your experience with {topic}.",
                topic=topic,
                is_fallback=True,
            )

    for topic in _topic_pool(analysis, classification):
        if topic.lower() not in used:
            return VoiceQuestion(
                id=f"voice-{index + 1}",
                text=f"Tell me about your experience with {topic}.",
                topic=topic,
                is_fallback=True,
            )
    for topic, text in GENERIC_QUESTIONS:
        if topic not in used and text.lower() not in used:
            return VoiceQuestion(id=f"voice-{index + 1}", text=text, topic=topic, is_fallback=True)

    topic, text = GENERIC_QUESTIONS[index % len(GENERIC_QUESTIONS)]
    return VoiceQuestion(id=f"voice-{index + 1}", text=text, topic=topic, is_fallback=True)


class VoiceQuestionGenerator:
    """Builds the voice interview one question at a time."""

    def __init__(self, llm, model: ModelConfig):
        self.llm = llm
        self.model = model

    def _build_prompt(
        self,
        analysis: ResumeAnalysis,
        classification: ProfileClassification,
        previous: list[VoiceQuestion],
        answers: list[VoiceAnswer],
        total: int,
    ) -> str:
        entities = analysis.extracted_entities
        answers_by_id = {a.question_id: a for a in answers}
        previous_lines = []
        for q in previous:
            line = f"- [{q.topic or 'general'}] {q.text}"
            answer = answers_by_id.get(q.id)
            if answer:
                line += f"\n  Answer: {answer.transcript[:200]}"
                if answer.score is not None:
                    line += f" (score {answer.score}/100)"
            previous_lines.append(line)

        return f"""CANDIDATE
{sanitize_prompt(build_resume_summary(analysis), 4000)}

Companies: {", ".join(entities.companies[:6]) or "n/a"}
Technologies: {", ".join(entities.technologies[:10]) or "n/a"}
Projects: {", ".join(entities.projects[:5]) or "n/a"}
Primary skill: {primary_skill(analysis, classification)}
Role category: {classification.role_category.value}
Years of experience: {classification.years_experience:g} ({experience_level(classification.years_experience).value} level)

Questions asked so far: {len(previous)} of {total}
{chr(10).join(previous_lines) or "- none yet"}

Generate question {len(previous) + 1} of {total}."""

    async def generate_next_question(
        self,
        analysis: ResumeAnalysis,
        classification: ProfileClassification,
        previous: list[VoiceQuestion],
        total: int,
        answers: Optional[list[VoiceAnswer]] = None,
    ) -> VoiceQuestion:
        index = len(previous)
        prompt = self._build_prompt(analysis, classification, previous, answers or [], total)
        try:
            raw = await self.llm.call(system_user_messages(VOICE_QUESTION_SYSTEM, prompt), self.model)
        except ProviderError as e:
            print(f"[VOICE] Question {index + 1} generation failed, using fallback: {e}")
            return fallback_voice_question(analysis, classification, previous, index)

        data = safe_json_parse(raw)
        text = str(data.get("text") or data.get("question") or "").strip() if isinstance(data, dict) else ""
        if not text:
            print(f"[VOICE] Question {index + 1} unreadable, using fallback")
            return fallback_voice_question(analysis, classification, previous, index)
        if text.lower() in {q.text.strip().lower() for q in previous}:
            print(f"[VOICE] Question {index + 1} repeats an earlier one, using fallback")
            return fallback_voice_question(analysis, classification, previous, index)

        return VoiceQuestion(
            id=f"voice-{index + 1}",
            text=text,
            topic=str(data.get("topic") or "").strip()[:80],
            is_follow_up=data.get("is_follow_up") is True,
        )

    async def generate_questions(
        self,
        analysis: ResumeAnalysis,
        classification: ProfileClassification,
        count: int,
    ) -> list[VoiceQuestion]:
        questions: list[VoiceQuestion] = []
        for _ in range(count):
            questions.append(await self.generate_next_question(analysis, classification, questions, count))
        fallbacks = sum(1 for q in questions if q.is_fallback)
        print(f"[VOICE] Generated {len(questions)} questions ({fallbacks} fallback)")
        return questions
