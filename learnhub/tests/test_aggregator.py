"""
Tests for the result aggregator.
"""

import datetime

import pytest

from learnhub.assessments.aggregator import ResultAggregator, calculate_grade
from learnhub.assessments.models import (
    Answer,
    AssessmentDefinition,
    Difficulty,
    Question,
    QuestionOption,
    QuestionType,
    ScoringConfig,
    Session,
    SessionConfig,
    SessionStatus,
    SkillTag,
    TimeTracking,
)
from learnhub.common.serialization import to_json

START = datetime.datetime(2024, 5, 1, 9, 0, tzinfo=datetime.timezone.utc)


def question(qid, qtype=QuestionType.MULTIPLE_CHOICE, difficulty=Difficulty.INTERMEDIATE, skills=None, points=10):
    return Question(
        id=qid,
        type=qtype,
        question=f"Question {qid}",
        points=points,
        difficulty=difficulty,
        skills=skills or [],
        options=[QuestionOption("a", "A", is_correct=True), QuestionOption("b", "B")],
    )


def answer(qid, earned, max_points=10, time_spent=30):
    return Answer(
        question_id=qid,
        user_answer="a" if earned else "b",
        is_correct=earned >= max_points * 0.7,
        points_earned=earned,
        max_points=max_points,
        time_spent=time_spent,
    )


def make_session(answers, passing_score=70, total_time=90):
    return Session(
        id="s1",
        user_id="u1",
        assessment_id="a1",
        attempt_number=1,
        status=SessionStatus.COMPLETED,
        time_tracking=TimeTracking(start_time=START, last_activity=START, total_time_spent=total_time),
        answers=answers,
        config=SessionConfig(passing_score=passing_score),
    )


def make_definition(questions, passing_score=70):
    return AssessmentDefinition(
        id="a1",
        title="Python Basics",
        questions=questions,
        scoring=ScoringConfig(passing_score=passing_score),
    )


@pytest.mark.parametrize("score, grade", [
    (100, "A+"), (97.0, "A+"), (96.9, "A"), (93, "A"), (90, "A-"), (87, "B+"), (83, "B"),
    (80, "B-"), (77, "C+"), (73, "C"), (70, "C-"), (67, "D+"), (66.67, "D"), (60.0, "D"),
    (59.9, "F"), (0, "F"),
])
def test_grade_boundaries(score, grade):
    assert calculate_grade(score) == grade


def test_two_of_three_single_choice_fails_with_d():
    definition = make_definition([question("q1"), question("q2"), question("q3")])
    session = make_session([answer("q1", 10), answer("q2", 10), answer("q3", 0)])

    results = ResultAggregator().aggregate(session, definition)

    assert results.final_score == 66.67
    assert results.total_points_earned == 20
    assert results.total_points_possible == 30
    assert results.passed is False
    assert results.grade == "D"
    assert results.questions_answered == 3
    assert results.correct_answers == 2
    assert results.average_time_per_question == 30


def test_breakdowns_and_strengths():
    python = SkillTag("python", 1.0)
    testing = SkillTag("testing", 2.0)
    definition = make_definition([
        question("q1", difficulty=Difficulty.BEGINNER, skills=[python]),
        question("q2", difficulty=Difficulty.BEGINNER, skills=[python, testing]),
        question("q3", qtype=QuestionType.SHORT_ANSWER, difficulty=Difficulty.ADVANCED, skills=[testing]),
        question("q4", qtype=QuestionType.ESSAY, difficulty=Difficulty.EXPERT),
    ])
    session = make_session([answer("q1", 10), answer("q2", 8), answer("q3", 2)])

    results = ResultAggregator().aggregate(session, definition)

    assert results.score_by_difficulty == {"beginner": 90, "advanced": 20}
    assert results.score_by_skill == [
        {"skill": "python", "score": 18.0, "max_score": 20.0, "percentage": 90},
        {"skill": "testing", "score": 20.0, "max_score": 40.0, "percentage": 50},
    ]
    assert results.score_by_question_type == [
        {"type": "multiple_choice", "score": 18, "max_score": 20, "percentage": 90},
        {"type": "short_answer", "score": 2, "max_score": 10, "percentage": 20},
    ]
    assert "Strong performance in beginner level questions" in results.strengths
    assert "Excellent multiple choice skills" in results.strengths
    assert "Strong command of python" in results.strengths
    assert "Needs improvement in advanced level questions" in results.weaknesses
    assert "Difficulty with short answer questions" in results.weaknesses
    assert not any("expert" in w for w in results.weaknesses)
    assert not any("testing" in s or "testing" in w for s in results.strengths for w in results.weaknesses)


def test_passing_score_comes_from_session_snapshot():
    definition = make_definition([question("q1")], passing_score=90)
    session = make_session([answer("q1", 8)], passing_score=80)

    results = ResultAggregator().aggregate(session, definition)

    assert results.passing_score == 80
    assert results.passed is True


def test_empty_session_scores_zero():
    results = ResultAggregator().aggregate(make_session([], total_time=0), make_definition([question("q1")]))

    assert results.final_score == 0
    assert results.grade == "F"
    assert results.average_time_per_question == 0
    assert results.score_by_difficulty == {}


def test_review_flag_propagates():
    flagged = answer("q1", 0)
    flagged.requires_human_review = True

    results = ResultAggregator().aggregate(make_session([flagged]), make_definition([question("q1")]))

    assert results.requires_review is True


def test_aggregation_is_deterministic():
    definition = make_definition([
        question("q1", skills=[SkillTag("b")]),
        question("q2", qtype=QuestionType.TRUE_FALSE, skills=[SkillTag("a")]),
    ])
    session = make_session([answer("q2", 10), answer("q1", 4)])
    aggregator = ResultAggregator()

    first = to_json(aggregator.aggregate(session, definition))
    second = to_json(aggregator.aggregate(session, definition))

    assert first == second
