from config import ModelConfig
from errors import ProviderError
from assessment_planner import difficulty_for_years, task_style_for_years
from llm_client import system_user_messages
from prompts import CODE_SYSTEM
from schemas import CodingChallenge, Difficulty, ProfileClassification, RoleCategory, TaskStyle
from security import safe_json_parse

CODE_TEMPERATURE = 0.7
CODE_MAX_TOKENS = 4000
DEFAULT_TIME_LIMIT_MINUTES = 20
DEFAULT_EVALUATION_CRITERIA = ["Correctness", "Code quality", "Problem solving", "Completeness"]

ROLE_DEFAULT_LANGUAGE = {
    RoleCategory.SOFTWARE_DEV: "JavaScript",
    RoleCategory.QA_AUTOMATION_SDET: "Python",
    RoleCategory.DATA_ML: "Python",
    RoleCategory.DEVOPS_SRE: "Python",
}

TASK_STYLE_PROMPTS = {
    TaskStyle.IMPLEMENT_FUNCTION: "Implement a function from a clear specification with examples.",
    TaskStyle.DEBUG_CODE: "Give buggy code and ask the candidate to find and fix the defects.",
    TaskStyle.CODE_REVIEW: "Give a realistic piece of code to review and refactor, explaining trade-offs.",
}

FALLBACK_CHALLENGES = {
    TaskStyle.IMPLEMENT_FUNCTION: [
        "First non-repeating character\n"
        "Write a function that takes a string and returns the first character that appears exactly once. "
        "Return an empty value when every character repeats.",
        "Merge overlapping intervals\n"
        "Write a function that takes a list of [start, end] intervals and returns the merged list, "
        "sorted by start, where overlapping or touching intervals are combined.",
        "Group anagrams\n"
        "Write a function that takes a list of words and groups together the words that are anagrams of each other. "
        "The order of groups does not matter.",
    ],
    TaskStyle.DEBUG_CODE: [
        "Fix the pagination helper\n"
        "A helper returns page N (1-based) of a list for a given page size, but it skips the first item of every "
        "page after the first. Explain the defect, write a corrected version and cover the empty list, "
        "the last partial page and an out-of-range page.",
        "Fix the sliding-window rate limiter\n"
        "A rate limiter allowing N requests per window lets extra requests through when they arrive exactly on "
        "the window boundary. Find the off-by-one error and write a corrected implementation.",
        "Fix the cache expiry check\n"
        "An in-memory cache returns entries after their time-to-live has passed because it compares creation "
        "time instead of expiry time. Correct the implementation and show how you would test it.",
    ],
    TaskStyle.CODE_REVIEW: [
        "Review and refactor an order-processing function\n"
        "A single function validates an order, applies discounts, charges payment and sends a confirmation email "
        "inside nested conditionals. List the problems you see, then refactor it into testable units.",
        "Design a retry helper\n"
        "Implement a reusable retry helper with exponential backoff and jitter for calls to an unreliable service. "
        "Explain which failures must not be retried and why.",
        "Deduplicate concurrent jobs\n"
        "Several workers may pick up the same job id at the same time. Write code that guarantees each job is "
        "processed once, and review the weaknesses of your approach.",
    ],
}


def challenge_language(classification: ProfileClassification) -> str:
    if classification.primary_languages:
        return classification.primary_languages[0]
    return ROLE_DEFAULT_LANGUAGE.get(classification.role_category, "JavaScript")


def _comment_prefix(language: str) -> str:
    lowered = language.lower()
    if lowered in {"python", "ruby", "bash", "shell", "r", "perl"}:
        return "#"
    if lowered in {"sql", "plsql", "t-sql"}:
        return "--"
    return "//"


def fallback_challenges(
    count: int, language: str, difficulty: Difficulty, style: TaskStyle, existing_texts: set[str]
) -> list[CodingChallenge]:
    bank = FALLBACK_CHALLENGES[style]
    out: list[CodingChallenge] = []
    i = 0
    while len(out) < count:
        text = bank[i % len(bank)]
        i += 1
        if text.lower() in existing_texts and i <= len(bank):
            continue
        existing_texts.add(text.lower())
        out.append(
            CodingChallenge(
                id="",
                question_text=text,
                language=language,
                difficulty=difficulty,
                task_style=style,
                starter_code=f"{_comment_prefix(language)} Write your solution in {language}\n",
                evaluation_criteria=list(DEFAULT_EVALUATION_CRITERIA),
                time_limit_minutes=DEFAULT_TIME_LIMIT_MINUTES,
                is_fallback=True,
            )
        )
    return out


def _parse_challenge(item, language: str, difficulty: Difficulty, style: TaskStyle) -> CodingChallenge | None:
    if not isinstance(item, dict):
        return None
    text = str(item.get("question_text") or item.get("problem") or "").strip()
    if not text:
        title = str(item.get("title") or "").strip()
        description = str(item.get("description") or "").strip()
        text = f"{title}\n{description}".strip() if description else ""
    if not text:
        return None
    criteria = item.get("evaluation_criteria")
    if not isinstance(criteria, list) or not criteria:
        criteria = list(DEFAULT_EVALUATION_CRITERIA)
    examples = item.get("examples")
    if not isinstance(examples, list):
        examples = []
    try:
        time_limit = int(item.get("time_limit_minutes") or DEFAULT_TIME_LIMIT_MINUTES)
    except (TypeError, ValueError):
        time_limit = DEFAULT_TIME_LIMIT_MINUTES
    return CodingChallenge(
        id="",
        question_text=text,
        language=language,
        difficulty=difficulty,
        task_style=style,
        starter_code=str(item.get("starter_code") or ""),
        examples=[str(e) for e in examples if str(e).strip()],
        evaluation_criteria=[str(c) for c in criteria if str(c).strip()],
        time_limit_minutes=max(5, min(60, time_limit)),
    )


def build_code_prompt(
    classification: ProfileClassification, count: int, language: str, difficulty: Difficulty, style: TaskStyle
) -> str:
    skills = ", ".join(classification.key_skills[:5] + classification.primary_frameworks[:3]) or "general programming"
    return f"""Create {count} coding challenges in {language} for a {classification.role_category.value} candidate
with {classification.years_experience:g} years of experience.

Difficulty: {difficulty.value}
Task style: {style.value} - {TASK_STYLE_PROMPTS[style]}
Relevant skills: {skills}

Each item must have EXACTLY this structure:
{{
  "question_text": "a one-line title, a newline, then the full problem statement",
  "starter_code": "optional starter code in {language}",
  "examples": ["input -> expected output"],
  "evaluation_criteria": ["what a reviewer should check"],
  "time_limit_minutes": 20
}}

Return a JSON array of {count} items."""


class CodeChallengeGenerator:
    def __init__(self, llm, model: ModelConfig):
        self.llm = llm
        self.model = model

    async def generate_challenges(self, classification: ProfileClassification, count: int) -> list[CodingChallenge]:
        if count <= 0:
            return []
        years = classification.years_experience
        difficulty = difficulty_for_years(years)
        style = task_style_for_years(years)
        language = challenge_language(classification)

        challenges: list[CodingChallenge] = []
        try:
            raw = await self.llm.call(
                system_user_messages(CODE_SYSTEM, build_code_prompt(classification, count, language, difficulty, style)),
                self.model,
            )
            data = safe_json_parse(raw)
            if isinstance(data, dict):
                data = data.get("challenges")
            if isinstance(data, list):
                for item in data:
                    challenge = _parse_challenge(item, language, difficulty, style)
                    if challenge:
                        challenges.append(challenge)
            else:
                print("[CODE] Generation returned unreadable output")
        except ProviderError as e:
            print(f"[CODE] Generation failed: {e}")

        challenges = challenges[:count]
        shortfall = count - len(challenges)
        if shortfall > 0:
            print(f"[CODE] Topping up {shortfall} of {count} challenges from templates")
            existing = {c.question_text.lower() for c in challenges}
            challenges.extend(fallback_challenges(shortfall, language, difficulty, style, existing))

        for i, challenge in enumerate(challenges):
            challenge.id = f"code-{i + 1}"
        return challenges
