"""
Tests for the assessment data models.
"""

import datetime
import unittest

from learnhub.assessments.models import (
    AssessmentDefinition,
    AssessmentSettings,
    Question,
    QuestionAnalytics,
    QuestionOption,
    QuestionType,
    Session,
    SessionConfig,
    SessionStatus,
    ShowResults,
    SkillTag,
    TimeConstraints,
    TimeTracking,
    can_transition,
)
from learnhub.common.exceptions import InvalidStateError

START = datetime.datetime(2024, 5, 1, 9, 0, tzinfo=datetime.timezone.utc)


def make_session(config=None):
    return Session(
        id="s1",
        user_id="u1",
        assessment_id="a1",
        attempt_number=1,
        time_tracking=TimeTracking(start_time=START, last_activity=START),
        config=config or SessionConfig(),
    )


class TestSessionStateMachine(unittest.TestCase):
    """Session status transitions."""

    def test_allowed_edges(self):
        allowed = {
            (SessionStatus.IN_PROGRESS, SessionStatus.PAUSED),
            (SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED),
            (SessionStatus.IN_PROGRESS, SessionStatus.TIMEOUT),
            (SessionStatus.IN_PROGRESS, SessionStatus.ABANDONED),
            (SessionStatus.PAUSED, SessionStatus.IN_PROGRESS),
        }
        for current in SessionStatus:
            for target in SessionStatus:
                with self.subTest(current=current, target=target):
                    self.assertEqual(can_transition(current, target), (current, target) in allowed)

    def test_terminal_statuses(self):
        self.assertEqual(
            {s for s in SessionStatus if s.is_terminal},
            {SessionStatus.COMPLETED, SessionStatus.ABANDONED, SessionStatus.TIMEOUT},
        )

    def test_invalid_transition_raises(self):
        session = make_session()
        session.transition_to(SessionStatus.COMPLETED, "complete_session")

        with self.assertRaises(InvalidStateError) as ctx:
            session.transition_to(SessionStatus.IN_PROGRESS, "resume_session")

        self.assertEqual(ctx.exception.status, "completed")
        self.assertEqual(session.status, SessionStatus.COMPLETED)


class TestSessionTiming(unittest.TestCase):

    def test_untimed_sessions_never_go_stale(self):
        session = make_session()
        self.assertIsNone(session.staleness(START + datetime.timedelta(days=3)))
        self.assertIsNone(session.time_remaining(START))

    def test_total_limit_excludes_paused_time(self):
        session = make_session(SessionConfig(has_time_limit=True, total_time_minutes=10))
        session.time_tracking.paused_time = 300
        now = START + datetime.timedelta(minutes=14)

        self.assertIsNone(session.staleness(now))
        self.assertEqual(session.time_remaining(now), 60)
        self.assertEqual(session.staleness(now + datetime.timedelta(minutes=1)), (600, 600))

    def test_paused_sessions_are_not_stale(self):
        session = make_session(SessionConfig(has_time_limit=True, total_time_minutes=1))
        session.status = SessionStatus.PAUSED

        self.assertIsNone(session.staleness(START + datetime.timedelta(hours=1)))


class TestAnswers(unittest.TestCase):

    def test_upsert_keeps_one_answer_per_question(self):
        session = make_session()
        session.upsert_answer("q1", ["a"], 10, START)
        session.upsert_answer("q1", ["a", "b"], 5, START)
        session.upsert_answer("q2", "x", 0, START)

        self.assertEqual(session.answered_ids(), ["q1", "q2"])
        answer = session.get_answer("q1")
        self.assertEqual(answer.user_answer, ["a", "b"])
        self.assertEqual(answer.previous_answers, [["a"]])
        self.assertEqual(answer.time_spent, 15)
        self.assertTrue(answer.changed_answer)

    def test_progress(self):
        session = make_session()
        session.upsert_answer("q2", "x", 0, START)
        session.update_progress(["q1", "q2", "q3"])

        self.assertEqual(session.progress.questions_answered, 1)
        self.assertEqual(session.progress.completion_percentage, 33)
        self.assertEqual(session.progress.current_question_index, 0)


class TestQuestion(unittest.TestCase):

    def test_public_view_strips_correctness_data(self):
        question = Question(
            id="q1",
            type=QuestionType.MULTIPLE_CHOICE,
            question="Pick one",
            options=[QuestionOption("a", "A", is_correct=True, explanation="because")],
            correct_answer="a",
            explanation="secret",
        )

        view = question.public_view()

        self.assertEqual(view["options"], [{"id": "a", "text": "A"}])
        self.assertNotIn("correct_answer", view)
        self.assertNotIn("explanation", view)
        self.assertNotIn("evaluation_criteria", view)

    def test_analytics_running_averages(self):
        analytics = QuestionAnalytics()
        analytics.record(True, 30)
        analytics.record(False, 60)

        self.assertEqual(analytics.times_used, 2)
        self.assertEqual(analytics.correct_percentage, 50)
        self.assertEqual(analytics.average_time_spent, 45)


class TestDocuments(unittest.TestCase):

    def test_definition_round_trip(self):
        definition = AssessmentDefinition(
            id="a1",
            title="Python",
            questions=[Question(id="q1", type=QuestionType.ESSAY, question="Explain", skills=[SkillTag("io", 2)])],
            time_constraints=TimeConstraints(has_time_limit=True, total_time_minutes=30),
            settings=AssessmentSettings(show_results=ShowResults.IMMEDIATELY),
        )

        restored = AssessmentDefinition.from_dict(definition.to_dict())

        self.assertEqual(restored.to_dict(), definition.to_dict())
        self.assertEqual(restored.settings.show_results, ShowResults.IMMEDIATELY)
        self.assertEqual(restored.questions[0].skills[0].weight, 2)

    def test_plain_string_skills_are_accepted(self):
        question = Question.from_dict({"id": "q1", "type": "short_answer", "question": "?", "skills": ["sql"]})

        self.assertEqual(question.skills, [SkillTag("sql", 1.0)])

    def test_session_round_trip(self):
        session = make_session(SessionConfig(show_results=ShowResults.NEVER))
        session.upsert_answer("q1", {"code": "print()"}, 12, START)

        restored = Session.from_dict(session.to_dict())

        self.assertEqual(restored.to_dict(), session.to_dict())
        self.assertEqual(restored.time_tracking.start_time, START)
        self.assertEqual(restored.config.show_results, ShowResults.NEVER)
