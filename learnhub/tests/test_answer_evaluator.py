"""
Tests for the answer evaluator and its per-type strategies.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from learnhub.assessments.evaluation import AnswerEvaluator, evaluate_with_keywords
from learnhub.assessments.models import (
    EvaluationCriteria,
    Question,
    QuestionOption,
    QuestionType,
)
from learnhub.common.exceptions import UpstreamUnavailableError
from learnhub.llm import ChatResponse, Purpose


def make_gateway(content=None, error=None, logprobs=None):
    gateway = MagicMock()
    if error is not None:
        gateway.complete = AsyncMock(side_effect=error)
    else:
        gateway.complete = AsyncMock(return_value=ChatResponse(
            content=content, finish_reason="stop", model="gpt-4o", logprobs=logprobs
        ))
    return gateway


def choice_question(qtype=QuestionType.MULTIPLE_CHOICE, points=10):
    return Question(
        id="q1",
        type=qtype,
        question="Which keyword defines a function in Python?",
        points=points,
        options=[
            QuestionOption("a", "func", explanation="Not a keyword"),
            QuestionOption("b", "def", is_correct=True, explanation="def starts a function definition"),
            QuestionOption("c", "lambda"),
        ],
    )


def multi_select_question(points=10):
    return Question(
        id="q2",
        type=QuestionType.MULTIPLE_SELECT,
        question="Which are immutable?",
        points=points,
        options=[
            QuestionOption("a", "tuple", is_correct=True),
            QuestionOption("b", "str", is_correct=True),
            QuestionOption("c", "frozenset", is_correct=True),
            QuestionOption("d", "list"),
            QuestionOption("e", "dict"),
        ],
    )


def short_answer_question(ai_prompt=None, correct_answer="list comprehension"):
    return Question(
        id="q3",
        type=QuestionType.SHORT_ANSWER,
        question="What builds a list from an iterable in one expression?",
        points=10,
        correct_answer=correct_answer,
        evaluation_criteria=EvaluationCriteria(ai_prompt=ai_prompt, key_points=["comprehension"]),
    )


def essay_question(qtype=QuestionType.ESSAY):
    return Question(
        id="q4",
        type=qtype,
        question="Discuss the trade-offs of the GIL.",
        points=20,
        evaluation_criteria=EvaluationCriteria(key_points=["threads", "multiprocessing"]),
    )


@pytest.mark.asyncio
async def test_choice_correct_and_incorrect():
    evaluator = AnswerEvaluator(make_gateway("{}"))
    question = choice_question()

    correct = await evaluator.evaluate(question, "b")
    wrong = await evaluator.evaluate(question, "a")
    unknown = await evaluator.evaluate(question, "zzz")

    assert correct.is_correct and correct.points_earned == 10
    assert correct.feedback == "def starts a function definition"
    assert correct.confidence == 100
    assert not wrong.is_correct and wrong.points_earned == 0
    assert wrong.feedback == "Not a keyword"
    assert not unknown.is_correct
    assert unknown.feedback == "def starts a function definition"


@pytest.mark.asyncio
async def test_true_false_without_options_uses_correct_answer():
    evaluator = AnswerEvaluator(make_gateway("{}"))
    question = Question(id="tf", type=QuestionType.TRUE_FALSE, question="Lists are mutable.",
                        points=5, correct_answer="true")

    assert (await evaluator.evaluate(question, True)).points_earned == 5
    assert (await evaluator.evaluate(question, "false")).points_earned == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("selection, expected_points, expected_correct", [
    (["a", "b", "c"], 10, True),
    (["a", "b"], 6, False),           # (2 - 0.25) / 3 = 0.583
    (["a", "b", "c", "d"], 8, True),  # (3 - 0.5) / 3 = 0.833
    (["d", "e"], 0, False),
    ([], 0, False),
    ("a", 2, False),                  # (1 - 0.5) / 3 = 0.167
    (["a", "a", "b", "c"], 10, True),
])
async def test_multiple_select_partial_credit(selection, expected_points, expected_correct):
    evaluator = AnswerEvaluator(make_gateway("{}"))

    result = await evaluator.evaluate(multi_select_question(), selection)

    assert result.points_earned == expected_points
    assert result.is_correct is expected_correct


@pytest.mark.asyncio
async def test_multiple_select_adding_correct_options_never_lowers_score():
    evaluator = AnswerEvaluator(make_gateway("{}"))
    question = multi_select_question(points=100)

    previous = -1
    for selection in (["a"], ["a", "b"], ["a", "b", "c"]):
        result = await evaluator.evaluate(question, selection)
        assert result.points_earned >= previous
        previous = result.points_earned


@pytest.mark.asyncio
async def test_multiple_select_feedback_counts_correct_selections():
    evaluator = AnswerEvaluator(make_gateway("{}"))

    result = await evaluator.evaluate(multi_select_question(), ["a", "d"])

    assert result.feedback == "Selected 1 of 3 correct options"


@pytest.mark.parametrize("answer, points, feedback", [
    ("List Comprehension", 10, "Correct answer"),
    ("use a list comprehension here", 7, "Partially correct - contains key elements"),
    ("a comprehension", 5, "Partially correct - contains some key terms"),
    ("a for loop", 0, "Incorrect answer"),
    ("", 0, "Incorrect answer"),
])
def test_keyword_heuristic(answer, points, feedback):
    result = evaluate_with_keywords(short_answer_question(), answer)

    assert result.points_earned == points
    assert result.feedback == feedback
    assert result.is_correct is (points >= 7)


def test_keyword_heuristic_without_correct_answer():
    result = evaluate_with_keywords(short_answer_question(correct_answer=None), "anything")

    assert result.points_earned == 0
    assert result.feedback == "Unable to evaluate - requires manual review"
    assert result.requires_human_review


@pytest.mark.asyncio
async def test_short_answer_without_prompt_skips_ai():
    gateway = make_gateway("{}")
    evaluator = AnswerEvaluator(gateway)

    result = await evaluator.evaluate(short_answer_question(), "list comprehension")

    assert result.points_earned == 10
    gateway.complete.assert_not_awaited()


@pytest.mark.asyncio
async def test_short_answer_ai_grading():
    gateway = make_gateway('{"score": 0.8, "feedback": "Accurate", "keyPointsIdentified": ["comprehension"]}',
                           logprobs=[0.0] * 60)
    evaluator = AnswerEvaluator(gateway)

    result = await evaluator.evaluate(short_answer_question(ai_prompt="Grade strictly."), "a comprehension")

    assert result.is_correct
    assert result.points_earned == 8
    assert result.feedback == "Accurate"
    assert result.confidence == 100
    assert result.ai_evaluation.key_points_covered == ["comprehension"]

    args, kwargs = gateway.complete.call_args
    assert args[1] == Purpose.EVALUATION
    assert kwargs["temperature"] == 0.1
    assert kwargs["max_tokens"] == 300
    assert kwargs["json_response"] is True
    system_prompt = args[0][0]["content"]
    assert "Grade strictly." in system_prompt
    assert "comprehension" in system_prompt


@pytest.mark.asyncio
async def test_short_answer_falls_back_to_keywords_when_ai_fails():
    evaluator = AnswerEvaluator(make_gateway(error=UpstreamUnavailableError("down")))

    result = await evaluator.evaluate(short_answer_question(ai_prompt="Grade."), "list comprehension")

    assert result.points_earned == 10
    assert result.feedback == "Correct answer"


@pytest.mark.asyncio
async def test_code_review_uses_short_answer_path():
    gateway = make_gateway('{"score": 0.3, "feedback": "Misses the bug"}')
    evaluator = AnswerEvaluator(gateway)
    question = Question(id="cr", type=QuestionType.CODE_REVIEW, question="Review this code", points=10,
                        evaluation_criteria=EvaluationCriteria(ai_prompt="Look for the off-by-one."))

    result = await evaluator.evaluate(question, "Looks fine")

    assert result.points_earned == 3
    assert not result.is_correct
    assert gateway.complete.call_args.kwargs["max_tokens"] == 300


@pytest.mark.asyncio
@pytest.mark.parametrize("qtype", [QuestionType.ESSAY, QuestionType.SCENARIO_ANALYSIS])
async def test_essay_ai_grading(qtype):
    gateway = make_gateway('{"score": 0.65, "feedback": "Reasonable", "improvements": ["more detail"]}')
    evaluator = AnswerEvaluator(gateway)

    result = await evaluator.evaluate(essay_question(qtype), "The GIL serializes bytecode...")

    assert result.is_correct
    assert result.points_earned == 13
    assert not result.requires_human_review
    assert result.confidence == 75
    kwargs = gateway.complete.call_args.kwargs
    assert kwargs["temperature"] == 0.2
    assert kwargs["max_tokens"] == 800


@pytest.mark.asyncio
async def test_essay_low_score_requires_review():
    evaluator = AnswerEvaluator(make_gateway('{"score": 0.35, "feedback": "Thin"}'))

    result = await evaluator.evaluate(essay_question(), "short")

    assert not result.is_correct
    assert result.requires_human_review


@pytest.mark.asyncio
async def test_essay_upstream_failure_degrades_to_manual_review():
    evaluator = AnswerEvaluator(make_gateway(error=UpstreamUnavailableError("down")))

    result = await evaluator.evaluate(essay_question(), "My essay")

    assert result.points_earned == 0
    assert result.feedback == "Essay submitted for manual review"
    assert result.requires_human_review
    assert result.confidence == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["", '{"score": 0.9', "I think it is pretty good overall.", "null"])
async def test_malformed_ai_output_never_raises(raw):
    evaluator = AnswerEvaluator(make_gateway(raw))

    result = await evaluator.evaluate(essay_question(), "My essay")

    assert result.points_earned == 0
    assert result.requires_human_review
    assert result.max_points == 20


@pytest.mark.asyncio
async def test_practical_task_always_needs_instructor():
    gateway = make_gateway("{}")
    evaluator = AnswerEvaluator(gateway)
    question = Question(id="pt", type=QuestionType.PRACTICAL_TASK, question="Deploy an app", points=50)

    result = await evaluator.evaluate(question, {"repo": "https://example.com/repo"})

    assert result.points_earned == 0
    assert result.requires_human_review
    assert result.feedback == "Practical task submitted for instructor review"
    gateway.complete.assert_not_awaited()


@pytest.mark.asyncio
async def test_question_level_review_flag_is_honoured():
    evaluator = AnswerEvaluator(make_gateway("{}"))
    question = choice_question()
    question.evaluation_criteria.requires_human_review = True

    result = await evaluator.evaluate(question, "b")

    assert result.is_correct
    assert result.requires_human_review
