from config import ModelConfig
from errors import ProviderError
from assessment_planner import difficulty_for_years
from llm_client import system_user_messages
from prompts import MCQ_SYSTEM
from schemas import Difficulty, MCQQuestion, ProfileClassification, RoleCategory
from score_aggregator import parse_index
from security import safe_json_parse

MCQ_TEMPERATURE = 0.7
MCQ_MAX_TOKENS = 4000
MAX_TOPICS = 8
OPTIONS_PER_QUESTION = 4

ROLE_TOPICS = {
    RoleCategory.SOFTWARE_DEV: ["algorithms", "data structures", "software design patterns", "web development"],
    RoleCategory.QA_MANUAL: ["testing methodologies", "test planning", "bug tracking", "QA best practices"],
    RoleCategory.QA_AUTOMATION_SDET: ["test automation", "selenium", "API testing", "CI/CD pipelines"],
    RoleCategory.DATA_ML: ["machine learning", "data analysis", "SQL", "statistics", "data visualization"],
    RoleCategory.DEVOPS_SRE: ["containerization", "kubernetes", "CI/CD", "monitoring", "cloud platforms"],
    RoleCategory.ANALYTICS_BI: ["SQL", "data modeling", "business intelligence tools", "reporting"],
    RoleCategory.PRODUCT_MANAGER: ["product strategy", "agile methodologies", "user research", "roadmap planning"],
    RoleCategory.BUSINESS_ANALYST: ["requirements gathering", "process analysis", "data analysis", "documentation"],
    RoleCategory.SUPPORT_INFRA: ["troubleshooting", "system administration", "networking", "customer support"],
    RoleCategory.NON_TECH: ["communication", "project management", "stakeholder management"],
    RoleCategory.MIXED_UNCLEAR: ["problem solving", "teamwork", "analytical thinking"],
}

# (question template, options, correct index)
FALLBACK_TEMPLATES = [
    (
        "Which practice most improves the long-term maintainability of work involving {topic}?",
        [
            "Keeping units small and well named, backed by automated checks",
            "Copying working pieces between projects without review",
            "Skipping documentation to save time",
            "Optimising everything before it is needed",
        ],
        0,
    ),
    (
        "A production issue related to {topic} is reported. What is the best first step?",
        [
            "Rewrite the affected component from scratch",
            "Reproduce the issue and gather logs or other evidence",
            "Roll back every recent change across all systems",
            "Wait until more users report the problem",
        ],
        1,
    ),
    (
        "What is the most reliable way to validate a change involving {topic} before release?",
        [
            "Ask a colleague whether it looks fine",
            "Release it and watch for complaints",
            "Run automated tests and a review against clear acceptance criteria",
            "Check only the happy path by hand",
        ],
        2,
    ),
    (
        "Requirements for a {topic} task are unclear. Which approach is best?",
        [
            "Start building and adjust later without telling anyone",
            "Pick whichever interpretation is quickest to build",
            "Escalate immediately without any analysis",
            "Clarify expectations with stakeholders and confirm acceptance criteria",
        ],
        3,
    ),
    (
        "What is the main benefit of keeping {topic} artifacts under version control?",
        [
            "Traceable history and safe rollback of changes",
            "Faster execution at runtime",
            "Automatic elimination of defects",
            "No further need for peer review",
        ],
        0,
    ),
]


def mcq_topics(classification: ProfileClassification) -> list[str]:
    pool = (
        classification.key_skills[:3]
        + classification.primary_languages[:2]
        + classification.primary_frameworks[:2]
        + ROLE_TOPICS.get(classification.role_category, [])
    )
    topics: list[str] = []
    seen: set[str] = set()
    for topic in pool:
        key = topic.strip().lower()
        if key and key not in seen:
            seen.add(key)
            topics.append(topic.strip())
    return topics[:MAX_TOPICS]


def _parse_question(item, difficulty: Difficulty) -> MCQQuestion | None:
    if not isinstance(item, dict):
        return None
    text = str(item.get("question_text") or item.get("question") or "").strip()
    options = item.get("options")
    if not text or not isinstance(options, list) or len(options) != OPTIONS_PER_QUESTION:
        return None
    options = [str(o).strip() for o in options]
    if not all(options) or len({o.lower() for o in options}) != OPTIONS_PER_QUESTION:
        return None
    index = parse_index(item.get("correct_answer_index"), OPTIONS_PER_QUESTION)
    if index is None:
        return None
    return MCQQuestion(
        id="",
        question_text=text,
        options=options,
        correct_answer_index=index,
        explanation=str(item.get("explanation") or "").strip(),
        topic=str(item.get("topic") or "").strip(),
        difficulty=difficulty,
    )


def fallback_mcq_questions(
    topics: list[str], count: int, difficulty: Difficulty, existing_texts: set[str]
) -> list[MCQQuestion]:
    topics = topics or ["problem solving"]
    out: list[MCQQuestion] = []
    combos = [
        (FALLBACK_TEMPLATES[t], topics[(r + t) % len(topics)])
        for r in range(len(topics))
        for t in range(len(FALLBACK_TEMPLATES))
    ]
    i = 0
    while len(out) < count:
        (text_template, options, correct), topic = combos[i % len(combos)]
        text = text_template.format(topic=topic)
        i += 1
        if text.lower() in existing_texts and i <= len(combos):
            continue
        existing_texts.add(text.lower())
        out.append(
            MCQQuestion(
                id="",
                question_text=text,
                options=list(options),
                correct_answer_index=correct,
                explanation="Fallback question generated from a fixed template.",
                topic=topic,
                difficulty=difficulty,
                is_fallback=True,
            )
        )
    return out


def build_mcq_prompt(classification: ProfileClassification, topics: list[str], count: int, difficulty: Difficulty) -> str:
    return f"""Create {count} multiple choice questions for a {classification.role_category.value} candidate
with {classification.years_experience:g} years of experience.

Difficulty: {difficulty.value}
Topics (spread questions across them): {", ".join(topics)}

Each item must have EXACTLY this structure:
{{
  "question_text": "the question",
  "options": ["A", "B", "C", "D"],
  "correct_answer_index": 0-3,
  "explanation": "why the correct option is right",
  "topic": "one of the topics"
}}

Return a JSON array of {count} items."""


class MCQGenerator:
    def __init__(self, llm, model: ModelConfig):
        self.llm = llm
        self.model = model

    async def generate_questions(self, classification: ProfileClassification, count: int) -> list[MCQQuestion]:
        if count <= 0:
            return []
        difficulty = difficulty_for_years(classification.years_experience)
        topics = mcq_topics(classification)

        questions: list[MCQQuestion] = []
        try:
            raw = await self.llm.call(
                system_user_messages(MCQ_SYSTEM, build_mcq_prompt(classification, topics, count, difficulty)),
                self.model,
            )
            data = safe_json_parse(raw)
            if isinstance(data, dict):
                data = data.get("questions")
            if isinstance(data, list):
                seen: set[str] = set()
                for item in data:
                    question = _parse_question(item, difficulty)
                    if question and question.question_text.lower() not in seen:
                        seen.add(question.question_text.lower())
                        questions.append(question)
            else:
                print("[MCQ] Generation returned unreadable output")
        except ProviderError as e:
            print(f"[MCQ] Generation failed: {e}")

        questions = questions[:count]
        shortfall = count - len(questions)
        if shortfall > 0:
            print(f"[MCQ] Topping up {shortfall} of {count} questions from templates")
            existing = {q.question_text.lower() for q in questions}
            questions.extend(fallback_mcq_questions(topics, shortfall, difficulty, existing))

        for i, question in enumerate(questions):
            question.id = f"mcq-{i + 1}"
        return questions
