"""
Tests for AI question generation and completion insights.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from learnhub.assessments.aggregator import SessionResults
from learnhub.assessments.insights import InsightsGenerator
from learnhub.assessments.models import (
    AIGenerationSettings,
    AssessmentDefinition,
    Difficulty,
    QuestionType,
)
from learnhub.assessments.question_generation import QuestionGenerator
from learnhub.common.cache import MemoryCacheBackend
from learnhub.common.exceptions import MalformedResponseError, UpstreamUnavailableError
from learnhub.llm import LLMGateway, Purpose


def make_gateway(payload=None, error=None):
    gateway = MagicMock()
    gateway.generate_json = AsyncMock(return_value=payload, side_effect=error)
    return gateway


def make_definition(**settings):
    return AssessmentDefinition(
        id="sql-1",
        title="SQL Fundamentals",
        category="databases",
        difficulty=Difficulty.BEGINNER,
        ai_generation=AIGenerationSettings(is_ai_generated=True, **settings),
    )


def make_results(passed=True, final_score=85.0):
    return SessionResults(
        final_score=final_score,
        total_points_earned=17,
        total_points_possible=20,
        passing_score=70,
        passed=passed,
        grade="B",
        questions_answered=2,
        correct_answers=2 if passed else 0,
        total_time_spent=600,
        average_time_per_question=300,
        strengths=["Excellent multiple choice skills"],
        weaknesses=[],
    )


GENERATED = {
    "questions": [
        {
            "type": "multiple_choice",
            "question": "Which clause filters grouped rows?",
            "options": ["WHERE", "HAVING", "ORDER BY", "LIMIT"],
            "correctAnswer": "HAVING",
            "difficulty": "intermediate",
            "skills": ["aggregation"],
            "explanation": "HAVING filters after GROUP BY",
        },
        {
            "type": "text",
            "question": "Explain what an index is.",
            "keyPoints": ["lookup speed", "write cost"],
            "points": 20,
        },
        {"type": "essay"},
        "not a question",
    ]
}


@pytest.mark.asyncio
async def test_generate_normalizes_questions():
    gateway = make_gateway(GENERATED)
    generator = QuestionGenerator(gateway)

    questions = await generator.generate(make_definition())

    assert len(questions) == 2
    choice, short = questions

    assert choice.type == QuestionType.MULTIPLE_CHOICE
    assert [o.id for o in choice.options] == ["a", "b", "c", "d"]
    assert choice.correct_option_ids() == ["b"]
    assert choice.correct_answer is None
    assert choice.difficulty == Difficulty.INTERMEDIATE
    assert choice.skills[0].name == "aggregation"
    assert choice.points == 10
    assert choice.order == 1

    assert short.type == QuestionType.SHORT_ANSWER
    assert short.difficulty == Difficulty.BEGINNER
    assert short.evaluation_criteria.key_points == ["lookup speed", "write cost"]
    assert short.points == 20
    assert short.id.startswith("q2_")

    args = gateway.generate_json.call_args.args
    assert args[1] == Purpose.ASSESSMENT


def test_prompt_uses_generation_settings():
    definition = make_definition(
        prompt="Focus on joins.",
        skills_targeted=["joins", "indexes"],
        question_count=4,
        question_types=[QuestionType.TRUE_FALSE],
    )

    messages = QuestionGenerator(make_gateway()).build_messages(definition)

    user_prompt = messages[1]["content"]
    assert "Generate 4 real, practical assessment questions about joins, indexes." in user_prompt
    assert "Question Types: true_false" in user_prompt
    assert "Focus on joins." in user_prompt
    assert "databases" in messages[0]["content"]


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"questions": "none"}, {"questions": []}, {"questions": [{"type": "essay"}]}])
async def test_generate_rejects_unusable_output(payload):
    generator = QuestionGenerator(make_gateway(payload))

    with pytest.raises(MalformedResponseError):
        await generator.generate(make_definition())


@pytest.mark.asyncio
async def test_insights_from_model():
    gateway = make_gateway({
        "overall_performance": "Solid grasp of SQL basics",
        "strength_areas": ["filtering"],
        "learningGaps": "window functions",
        "nextSteps": ["Try the advanced track"],
        "motivational_message": "Nice work",
    })

    insights = await InsightsGenerator(gateway).generate(make_definition(), make_results())

    assert insights["generated_by"] == "ai"
    assert insights["confidence_level"] == 85
    assert insights["improvement_areas"] == ["window functions"]
    assert insights["next_steps"] == ["Try the advanced track"]
    assert gateway.generate_json.call_args.args[1] == Purpose.ANALYSIS
    assert gateway.generate_json.call_args.kwargs["cacheable"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("passed, next_steps", [
    (True, ["Continue to advanced topics", "Consider related assessments"]),
    (False, ["Review weak areas", "Practice more questions", "Retake assessment"]),
])
async def test_insights_fallback_on_upstream_failure(passed, next_steps):
    gateway = make_gateway(error=UpstreamUnavailableError("down"))

    insights = await InsightsGenerator(gateway).generate(make_definition(), make_results(passed, 85.0))

    assert insights["generated_by"] == "fallback"
    assert insights["confidence_level"] == 60
    assert insights["overall_performance"] == "Completed SQL Fundamentals with 85.0% score"
    assert insights["next_steps"] == next_steps
    assert insights["strength_areas"] == ["Excellent multiple choice skills"]


@pytest.mark.asyncio
async def test_insights_fallback_when_model_omits_summary():
    insights = await InsightsGenerator(make_gateway({"next_steps": ["x"]})).generate(
        make_definition(), make_results()
    )

    assert insights["generated_by"] == "fallback"


@pytest.mark.asyncio
async def test_generate_coerces_loosely_typed_fields():
    gateway = make_gateway({
        "questions": [
            {"type": "essay", "question": "Compare joins.", "points": "15", "timeLimit": "600", "hints": "Think sets"},
            {"type": "essay", "question": "Describe views.", "points": "lots", "timeLimit": "5 minutes", "keyPoints": "reuse"},
            {"type": "essay", "question": "Explain NULL.", "points": -4, "timeLimit": True},
        ]
    })

    questions = await QuestionGenerator(gateway).generate(make_definition())

    assert [q.points for q in questions] == [15, 10, 10]
    assert [q.time_limit for q in questions] == [600, 300, 300]
    assert questions[0].hints == ["Think sets"]
    assert questions[1].evaluation_criteria.key_points == ["reuse"]

    definition = make_definition()
    definition.questions = questions
    definition.recalculate_total_points()
    assert definition.scoring.total_points == 35


@pytest.mark.asyncio
async def test_insights_are_served_from_the_response_cache():
    completion = SimpleNamespace(
        id="cmpl-1",
        model="gpt-4o-mini",
        choices=[SimpleNamespace(
            message=SimpleNamespace(content='{"overall_performance": "Strong"}', role="assistant"),
            finish_reason="stop",
            logprobs=None,
        )],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=4, total_tokens=14),
    )
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion)
    gateway = LLMGateway(client, cache=MemoryCacheBackend(max_size=10), sleep=AsyncMock())
    generator = InsightsGenerator(gateway)

    first = await generator.generate(make_definition(), make_results())
    second = await generator.generate(make_definition(), make_results())

    assert first == second
    assert first["overall_performance"] == "Strong"
    assert client.chat.completions.create.await_count == 1
