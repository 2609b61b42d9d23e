import asyncio
import json

from code_generator import CodeChallengeGenerator, challenge_language
from conftest import FakeLLMClient, code_items, failing, mcq_items
from mcq_generator import MCQGenerator, mcq_topics
from question_generator import VoiceQuestionGenerator
from schemas import Difficulty, ProfileClassification, TaskStyle


# ── MCQ ──────────────────────────────────────────────────

def test_mcq_uses_llm_questions_when_complete(fake_model, software_classification):
    llm = FakeLLMClient(lambda m, c: json.dumps(mcq_items(20)))
    questions = asyncio.run(MCQGenerator(llm, fake_model).generate_questions(software_classification, 20))
    assert len(questions) == 20
    assert [q.id for q in questions] == [f"mcq-{i}" for i in range(1, 21)]
    assert not any(q.is_fallback for q in questions)
    assert all(q.difficulty == Difficulty.HARD for q in questions)


def test_mcq_tops_up_malformed_items(fake_model, software_classification):
    items = mcq_items(10)
    items[0]["options"] = ["only", "three", "options"]
    items[1]["correct_answer_index"] = 7
    items[2]["options"] = ["same", "same", "other", "another"]
    items[3]["correct_answer_index"] = True
    llm = FakeLLMClient(lambda m, c: "```json\n" + json.dumps(items) + "\n```")

    questions = asyncio.run(MCQGenerator(llm, fake_model).generate_questions(software_classification, 20))

    assert len(questions) == 20
    assert sum(1 for q in questions if not q.is_fallback) == 6
    assert sum(1 for q in questions if q.is_fallback) == 14
    assert len({q.question_text.lower() for q in questions}) == 20
    for q in questions:
        assert len(q.options) == 4
        assert 0 <= q.correct_answer_index <= 3


def test_mcq_accepts_numeric_strings_and_integral_floats(fake_model, software_classification):
    items = mcq_items(3)
    items[0]["correct_answer_index"] = "2"
    items[1]["correct_answer_index"] = 1.0
    items[2]["correct_answer_index"] = 1.5
    llm = FakeLLMClient(lambda m, c: json.dumps(items))

    questions = asyncio.run(MCQGenerator(llm, fake_model).generate_questions(software_classification, 3))

    assert [q.is_fallback for q in questions] == [False, False, True]
    assert [q.correct_answer_index for q in questions[:2]] == [2, 1]


def test_mcq_provider_failure_yields_only_fallbacks(fake_model, software_classification):
    llm = FakeLLMClient(failing)
    questions = asyncio.run(MCQGenerator(llm, fake_model).generate_questions(software_classification, 20))
    assert len(questions) == 20
    assert all(q.is_fallback for q in questions)
    assert len({q.question_text for q in questions}) == 20


def test_mcq_truncates_surplus_questions(fake_model, software_classification):
    llm = FakeLLMClient(lambda m, c: json.dumps(mcq_items(25)))
    questions = asyncio.run(MCQGenerator(llm, fake_model).generate_questions(software_classification, 20))
    assert len(questions) == 20


def test_mcq_zero_count_skips_llm(fake_model, software_classification):
    llm = FakeLLMClient(failing)
    assert asyncio.run(MCQGenerator(llm, fake_model).generate_questions(software_classification, 0)) == []
    assert llm.calls == []


def test_mcq_topics_are_unique_and_capped(software_classification):
    topics = mcq_topics(software_classification)
    assert len(topics) <= 8
    assert len({t.lower() for t in topics}) == len(topics)
    assert topics[0] == "API design"


def test_mcq_client_view_hides_answer(fake_model, software_classification):
    llm = FakeLLMClient(lambda m, c: json.dumps(mcq_items(1)))
    question = asyncio.run(MCQGenerator(llm, fake_model).generate_questions(software_classification, 1))[0]
    view = question.client_view()
    assert "correct_answer_index" not in view
    assert "explanation" not in view
    assert "is_fallback" not in view
    assert view["options"] == question.options


# ── Coding ───────────────────────────────────────────────

def test_code_challenges_use_classification(fake_model, software_classification):
    llm = FakeLLMClient(lambda m, c: json.dumps(code_items(3)))
    challenges = asyncio.run(CodeChallengeGenerator(llm, fake_model).generate_challenges(software_classification, 3))
    assert [c.id for c in challenges] == ["code-1", "code-2", "code-3"]
    assert all(c.language == "Python" for c in challenges)
    assert all(c.task_style == TaskStyle.CODE_REVIEW for c in challenges)
    assert challenges[0].title == "Challenge 0"


def test_code_fallback_when_provider_fails(fake_model, software_classification):
    llm = FakeLLMClient(failing)
    challenges = asyncio.run(CodeChallengeGenerator(llm, fake_model).generate_challenges(software_classification, 3))
    assert len(challenges) == 3
    assert all(c.is_fallback for c in challenges)
    assert len({c.question_text for c in challenges}) == 3
    assert all(c.evaluation_criteria for c in challenges)
    assert challenges[0].starter_code.startswith("#")


def test_code_tops_up_partial_output(fake_model, software_classification):
    items = code_items(2) + [{"starter_code": "no statement"}]
    llm = FakeLLMClient(lambda m, c: json.dumps({"challenges": items}))
    challenges = asyncio.run(CodeChallengeGenerator(llm, fake_model).generate_challenges(software_classification, 3))
    assert len(challenges) == 3
    assert [c.is_fallback for c in challenges] == [False, False, True]


def test_challenge_language_defaults_by_role():
    no_languages = ProfileClassification(role_category="data_ml", primary_languages=[])
    assert challenge_language(no_languages) == "Python"
    assert challenge_language(ProfileClassification(role_category="software_dev")) == "JavaScript"


def test_code_client_view_hides_criteria(fake_model, software_classification):
    llm = FakeLLMClient(lambda m, c: json.dumps(code_items(1)))
    challenge = asyncio.run(CodeChallengeGenerator(llm, fake_model).generate_challenges(software_classification, 1))[0]
    view = challenge.client_view()
    assert "evaluation_criteria" not in view
    assert "is_fallback" not in view
    assert view["title"] == "Challenge 0"


# ── Voice ────────────────────────────────────────────────

def test_voice_questions_from_llm(fake_model, sample_analysis, software_classification):
    counter = {"n": 0}

    def respond(messages, model_config):
        counter["n"] += 1
        return json.dumps({"text": f"How did you approach problem {counter['n']}?", "topic": f"t{counter['n']}"})

    llm = FakeLLMClient(respond)
    questions = asyncio.run(
        VoiceQuestionGenerator(llm, fake_model).generate_questions(sample_analysis, software_classification, 5)
    )
    assert [q.id for q in questions] == [f"voice-{i}" for i in range(1, 6)]
    assert not any(q.is_fallback for q in questions)
    assert "Questions asked so far: 4 of 5" in llm.calls[-1][0][1]["content"]


def test_voice_fallback_per_slot(fake_model, sample_analysis, software_classification):
    def respond(messages, model_config):
        if "Generate question 2 of" in messages[1]["content"]:
            return failing(messages, model_config)
        if "Generate question 3 of" in messages[1]["content"]:
            return "not json at all"
        return json.dumps({"text": "What trade-offs did you make in the settlement service?", "topic": "settlement"})

    llm = FakeLLMClient(respond)
    questions = asyncio.run(
        VoiceQuestionGenerator(llm, fake_model).generate_questions(sample_analysis, software_classification, 4)
    )
    assert [q.is_fallback for q in questions] == [False, True, True, True]
    assert len(questions) == 4
    assert len({q.text for q in questions}) == 4


def test_voice_all_fallback_uses_distinct_topics(fake_model, sample_analysis, software_classification):
    llm = FakeLLMClient(failing)
    questions = asyncio.run(
        VoiceQuestionGenerator(llm, fake_model).generate_questions(sample_analysis, software_classification, 12)
    )
    assert len(questions) == 12
    assert all(q.is_fallback for q in questions)
    assert len({q.topic.lower() for q in questions}) == 12
    assert questions[0].text == "Tell me about your experience with API design."
