"""
Assessment Session Service

This module owns the lifecycle of one user's attempt at an assessment:
eligibility checks, session creation, answer submission and evaluation,
pause/resume, completion with result aggregation, abandonment and the
abandoned-session sweep.

Time limits are enforced lazily: every mutating operation first checks
whether the session has outrun its total or per-question limit, and if so
moves it to ``timeout`` and raises ``SessionTimeoutError``.
"""

import math
import uuid
import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from learnhub.assessments.aggregator import ResultAggregator
from learnhub.assessments.collaborators import CompletionCollaborator, notify_collaborators
from learnhub.assessments.evaluation import AnswerEvaluator
from learnhub.assessments.insights import InsightsGenerator
from learnhub.assessments.models import (
    AssessmentDefinition,
    EvaluationResult,
    Question,
    QuestionType,
    Session,
    SessionConfig,
    SessionStatus,
    ShowResults,
    TimeTracking,
    UserContext,
)
from learnhub.assessments.question_generation import QuestionGenerator
from learnhub.assessments.repositories import AssessmentRepository, SessionRepository
from learnhub.common.exceptions import (
    ConcurrencyConflictError,
    ConfigurationError,
    InvalidStateError,
    LearnHubError,
    NotEligibleError,
    NotFoundError,
    SessionTimeoutError,
)
from learnhub.common.logger import LoggerAdapter, app_logger
from learnhub.common.serialization import to_primitive, utcnow

logger = app_logger.getChild("assessments.service")

Clock = Callable[[], datetime.datetime]


def _session_logger(session: Session) -> LoggerAdapter:
    return LoggerAdapter(logger, {"session_id": session.id, "user_id": session.user_id})


class AssessmentSessionService:
    """
    Service for managing assessment sessions.

    All collaborators are injected; one instance is built at start-up and
    shared. The service holds no per-session state between calls.
    """

    def __init__(
        self,
        assessment_repository: AssessmentRepository,
        session_repository: SessionRepository,
        evaluator: AnswerEvaluator,
        aggregator: Optional[ResultAggregator] = None,
        question_generator: Optional[QuestionGenerator] = None,
        insights_generator: Optional[InsightsGenerator] = None,
        collaborators: Optional[List[CompletionCollaborator]] = None,
        clock: Clock = utcnow,
        abandon_after_hours: float = 24
    ):
        """
        Initialize the session service.

        Args:
            assessment_repository: Storage for assessment definitions
            session_repository: Storage for sessions
            evaluator: Grades submitted answers
            aggregator: Computes results on completion
            question_generator: Materializes AI-generated assessments
            insights_generator: Produces post-completion insights
            collaborators: Notified after each completion
            clock: Returns the current UTC time
            abandon_after_hours: Default inactivity threshold for the sweep
        """
        self.assessments = assessment_repository
        self.sessions = session_repository
        self.evaluator = evaluator
        self.aggregator = aggregator or ResultAggregator()
        self.question_generator = question_generator
        self.insights_generator = insights_generator
        self.collaborators = list(collaborators or [])
        self.clock = clock
        self.abandon_after_hours = abandon_after_hours

    # Lookups

    async def _get_definition(self, assessment_id: str) -> AssessmentDefinition:
        definition = await self.assessments.get_by_id(assessment_id)
        if definition is None:
            raise NotFoundError("Assessment", assessment_id)
        return definition

    async def _get_session(self, session_id: str) -> Session:
        session = await self.sessions.get_by_id(session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        return session

    async def _enforce_time_limits(self, session: Session, now: datetime.datetime) -> None:
        """
        Time out a stale in-progress session.

        Raises:
            SessionTimeoutError: the session exceeded a limit and is now ``timeout``
        """
        stale = session.staleness(now)
        if stale is None:
            return

        elapsed, limit = stale
        session.transition_to(SessionStatus.TIMEOUT, "timeout")
        session.time_tracking.end_time = now
        await self.sessions.save(session)
        _session_logger(session).info(f"Session {session.id} timed out after {elapsed:.0f}s (limit {limit:.0f}s)")
        raise SessionTimeoutError(session.id, elapsed, limit)

    # Eligibility and creation

    async def check_eligibility(
        self,
        user_id: str,
        definition: AssessmentDefinition,
        attempts: Optional[List[Session]] = None
    ) -> Tuple[bool, List[str]]:
        """
        Check whether a user may start another attempt.

        Args:
            user_id: The user
            definition: The assessment
            attempts: The user's previous sessions, fetched when omitted

        Returns:
            Tuple of (eligible, reasons); reasons are empty when eligible
        """
        if attempts is None:
            attempts = await self.sessions.find_user_attempts(user_id, definition.id)

        completed = [s for s in attempts if s.status == SessionStatus.COMPLETED]
        reasons = []

        if len(completed) >= definition.attempt_policy.max_attempts:
            reasons.append("Maximum attempts exceeded")

        ended = [s.time_tracking.end_time for s in completed if s.time_tracking.end_time]
        if ended:
            cooldown_seconds = definition.attempt_policy.cooldown_hours * 3600
            since_last = (self.clock() - max(ended)).total_seconds()
            if since_last < cooldown_seconds:
                remaining_hours = math.ceil((cooldown_seconds - since_last) / 3600)
                reasons.append(f"Must wait {remaining_hours} hours before next attempt")

        return not reasons, reasons

    async def _materialize_questions(self, definition: AssessmentDefinition) -> None:
        if self.question_generator is None:
            raise ConfigurationError(
                f"Assessment {definition.id} needs generated questions but no question generator is configured",
                config_key="question_generator",
            )

        definition.questions = await self.question_generator.generate(definition)
        definition.recalculate_total_points()
        await self.assessments.save(definition)
        logger.info(f"Materialized {len(definition.questions)} questions for assessment {definition.id}")

    async def create_session(
        self,
        user_id: str,
        assessment_id: str,
        device_context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Start a new attempt.

        Returns:
            Dict with the session summary, the learner-facing questions, the
            config snapshot and the remaining time in seconds (timed sessions only)

        Raises:
            NotFoundError: the assessment does not exist
            NotEligibleError: attempt limit or cooldown violated
        """
        definition = await self._get_definition(assessment_id)
        attempts = await self.sessions.find_user_attempts(user_id, assessment_id)

        eligible, reasons = await self.check_eligibility(user_id, definition, attempts)
        if not eligible:
            logger.info(f"User {user_id} not eligible for assessment {assessment_id}: {', '.join(reasons)}")
            raise NotEligibleError(reasons)

        if definition.ai_generation.is_ai_generated and not definition.questions:
            await self._materialize_questions(definition)

        questions = definition.active_questions()
        now = self.clock()
        session = Session(
            id=uuid.uuid4().hex,
            user_id=user_id,
            assessment_id=assessment_id,
            attempt_number=len(attempts) + 1,
            time_tracking=TimeTracking(start_time=now, last_activity=now),
            config=SessionConfig.snapshot(definition),
            user_context=UserContext.from_device_context(device_context),
        )
        session.update_progress([q.id for q in questions])
        await self.sessions.add(session)

        logger.info(
            f"Created session {session.id} for user {user_id}, "
            f"assessment {assessment_id}, attempt {session.attempt_number}"
        )
        return {
            "session": session.summary(),
            "questions": [q.public_view() for q in questions],
            "config": to_primitive(session.config),
            "time_remaining": session.time_remaining(now),
        }

    # Answers

    @staticmethod
    def next_question_id(session: Session, definition: AssessmentDefinition) -> Optional[str]:
        """First active question, in definition order, that has no answer yet."""
        answered = set(session.answered_ids())
        for question in definition.active_questions():
            if question.id not in answered:
                return question.id
        return None

    async def _record_answer(
        self,
        session: Session,
        definition: AssessmentDefinition,
        question_id: str,
        user_answer: Any,
        time_spent: float,
        now: datetime.datetime
    ) -> Tuple[Question, EvaluationResult]:
        question = definition.get_question(question_id)
        if question is None or not question.is_active:
            raise NotFoundError("Question", question_id)

        if time_spent > 0:
            session.record_question_time(question_id, time_spent, now)

        answer = session.upsert_answer(question_id, user_answer, time_spent, now)
        result = await self.evaluator.evaluate(question, user_answer)
        answer.apply(result)

        session.review_required = any(a.requires_human_review for a in session.answers)
        session.time_tracking.last_activity = now
        session.update_progress([q.id for q in definition.active_questions()])
        return question, result

    @staticmethod
    def _evaluation_view(session: Session, question: Question, result: EvaluationResult) -> Dict[str, Any]:
        view = {
            "is_correct": result.is_correct,
            "points_earned": result.points_earned,
            "max_points": result.max_points,
            "feedback": result.feedback,
            "confidence": result.confidence,
            "requires_human_review": result.requires_human_review,
        }
        if session.config.show_results == ShowResults.IMMEDIATELY:
            correct_ids = question.correct_option_ids()
            if question.type == QuestionType.MULTIPLE_SELECT:
                view["correct_answer"] = correct_ids
            elif correct_ids:
                view["correct_answer"] = correct_ids[0]
            else:
                view["correct_answer"] = question.correct_answer
            view["explanation"] = question.explanation
        return view

    async def submit_answer(
        self,
        session_id: str,
        question_id: str,
        user_answer: Any,
        time_spent: float = 0
    ) -> Dict[str, Any]:
        """
        Record and evaluate one answer.

        Returns:
            Dict with the evaluation, the updated progress and the next question id

        Raises:
            NotFoundError: unknown session or question
            SessionTimeoutError: the session ran out of time
            InvalidStateError: the session is not in progress
            ConcurrencyConflictError: the session changed concurrently
        """
        session = await self._get_session(session_id)
        now = self.clock()
        await self._enforce_time_limits(session, now)
        if session.status != SessionStatus.IN_PROGRESS:
            raise InvalidStateError(session.id, session.status.value, "submit_answer")

        definition = await self._get_definition(session.assessment_id)
        question, result = await self._record_answer(
            session, definition, question_id, user_answer, time_spent, now
        )
        await self.sessions.save(session)

        logger.info(
            f"Answer submitted for session {session.id}, question {question_id}: "
            f"{result.points_earned}/{result.max_points} points"
        )
        await self._update_question_analytics(definition.id, question_id, result.is_correct, time_spent)

        return {
            "evaluation": self._evaluation_view(session, question, result),
            "progress": to_primitive(session.progress),
            "next_question_id": self.next_question_id(session, definition),
        }

    async def submit_full_assessment(self, session_id: str, answers: Dict[str, Any]) -> Dict[str, Any]:
        """
        Submit a batch of answers and complete the session.

        Each answer is submitted individually; failures are collected per
        question. Submission stops if the session times out, in which case
        the session is not completed.
        """
        session = await self._get_session(session_id)
        if session.status != SessionStatus.IN_PROGRESS:
            raise InvalidStateError(session.id, session.status.value, "submit_full_assessment")

        submission_results = []
        timed_out = False
        for question_id, user_answer in answers.items():
            try:
                submitted = await self.submit_answer(session_id, question_id, user_answer, 0)
                submission_results.append({
                    "question_id": question_id,
                    "success": True,
                    "result": submitted["evaluation"],
                })
            except SessionTimeoutError as e:
                submission_results.append({"question_id": question_id, "success": False, "error": e.message})
                timed_out = True
                break
            except (NotFoundError, InvalidStateError) as e:
                submission_results.append({"question_id": question_id, "success": False, "error": e.message})

        final_results = None if timed_out else await self.complete_session(session_id)
        successful = sum(1 for r in submission_results if r["success"])
        return {
            "session_id": session_id,
            "submission_results": submission_results,
            "final_results": final_results,
            "summary": {
                "total_questions": len(answers),
                "successful_submissions": successful,
                "failed_submissions": len(submission_results) - successful,
                "timed_out": timed_out,
                "final_score": final_results["results"]["final_score"] if final_results else None,
                "passed": final_results["results"]["passed"] if final_results else False,
            },
        }

    # Pause and resume

    async def pause_session(self, session_id: str) -> Dict[str, Any]:
        session = await self._get_session(session_id)
        now = self.clock()
        await self._enforce_time_limits(session, now)

        session.transition_to(SessionStatus.PAUSED, "pause_session")
        session.time_tracking.paused_at = now
        session.time_tracking.last_activity = now
        await self.sessions.save(session)

        logger.info(f"Paused session {session.id}")
        return session.summary()

    @staticmethod
    def _resume(session: Session, now: datetime.datetime) -> None:
        session.transition_to(SessionStatus.IN_PROGRESS, "resume_session")
        tracking = session.time_tracking
        if tracking.paused_at is not None:
            tracking.paused_time += max(0.0, (now - tracking.paused_at).total_seconds())
        tracking.paused_at = None
        tracking.last_activity = now

    async def resume_session(self, session_id: str) -> Dict[str, Any]:
        """
        Resume a paused session; the paused interval never counts against the time limit.

        Raises:
            InvalidStateError: the session is not paused
        """
        session = await self._get_session(session_id)
        now = self.clock()
        self._resume(session, now)
        await self.sessions.save(session)

        logger.info(f"Resumed session {session.id}")
        summary = session.summary()
        summary["time_remaining"] = session.time_remaining(now)
        return summary

    # Completion

    async def complete_session(
        self,
        session_id: str,
        final_answers: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Finish a session and compute its results.

        Args:
            session_id: The session
            final_answers: Answers still to be recorded, keyed by question id

        Returns:
            Dict with the results, certificate eligibility and insights

        Raises:
            NotFoundError: unknown session, assessment or final-answer question
            SessionTimeoutError: the session ran out of time
            InvalidStateError: the session is already terminal
        """
        session = await self._get_session(session_id)
        now = self.clock()
        await self._enforce_time_limits(session, now)
        if session.status == SessionStatus.PAUSED:
            self._resume(session, now)
        if session.status != SessionStatus.IN_PROGRESS:
            raise InvalidStateError(session.id, session.status.value, "complete_session")

        definition = await self._get_definition(session.assessment_id)

        recorded = []
        for question_id, user_answer in (final_answers or {}).items():
            _, result = await self._record_answer(session, definition, question_id, user_answer, 0, now)
            recorded.append((question_id, result.is_correct))

        session.transition_to(SessionStatus.COMPLETED, "complete_session")
        tracking = session.time_tracking
        tracking.end_time = now
        tracking.last_activity = now
        if not tracking.total_time_spent:
            tracking.total_time_spent = max(0.0, session.elapsed_seconds(now))

        results = self.aggregator.aggregate(session, definition)
        insights = None
        if self.insights_generator is not None:
            insights = await self.insights_generator.generate(definition, results)
            results.recommendations = list(insights.get("next_steps") or [])

        session.results = results.to_dict()
        if insights is not None:
            session.results["ai_insights"] = insights
        await self.sessions.save(session)

        _session_logger(session).info(
            f"Completed session {session.id}: {results.final_score}% "
            f"({'PASSED' if results.passed else 'FAILED'}, grade {results.grade})"
        )

        for question_id, is_correct in recorded:
            await self._update_question_analytics(definition.id, question_id, is_correct, 0)
        await self._update_assessment_analytics(definition.id, results.final_score, results.passed,
                                                results.total_time_spent)
        await notify_collaborators(self.collaborators, session, definition, session.results)

        return {
            "session_id": session.id,
            "results": session.results,
            "assessment": {"id": definition.id, "title": definition.title, "category": definition.category},
            "certificate_eligible": results.passed and session.config.issues_certificate,
            "insights": insights,
        }

    # Abandonment

    async def abandon_session(self, session_id: str) -> Dict[str, Any]:
        session = await self._get_session(session_id)
        now = self.clock()
        await self._enforce_time_limits(session, now)

        session.transition_to(SessionStatus.ABANDONED, "abandon_session")
        session.time_tracking.end_time = now
        await self.sessions.save(session)

        logger.info(f"Abandoned session {session.id}")
        return session.summary()

    async def cleanup_abandoned_sessions(self, hours_old: Optional[float] = None) -> int:
        """
        Close in-progress sessions idle for longer than ``hours_old``.

        Sessions that also outran a time limit end as ``timeout``; the rest
        are marked abandoned.

        Returns:
            Number of sessions closed
        """
        hours = self.abandon_after_hours if hours_old is None else hours_old
        now = self.clock()
        cutoff = now - datetime.timedelta(hours=hours)

        abandoned = timed_out = 0
        for session in await self.sessions.find_inactive(cutoff):
            try:
                stale = session.staleness(now) is not None
                target = SessionStatus.TIMEOUT if stale else SessionStatus.ABANDONED
                session.transition_to(target, "cleanup_abandoned_sessions")
                session.time_tracking.end_time = now
                await self.sessions.save(session)
            except (ConcurrencyConflictError, InvalidStateError) as e:
                logger.warning(f"Skipping session {session.id} during abandoned-session cleanup: {e.message}")
                continue

            if stale:
                timed_out += 1
            else:
                abandoned += 1

        logger.info(
            f"Cleaned up sessions idle for over {hours} hours: {abandoned} abandoned, {timed_out} timed out"
        )
        return abandoned + timed_out

    # Queries

    async def get_session_progress(self, session_id: str) -> Dict[str, Any]:
        session = await self._get_session(session_id)
        definition = await self._get_definition(session.assessment_id)
        now = self.clock()
        return {
            "session": session.summary(),
            "progress": to_primitive(session.progress),
            "answered_question_ids": session.answered_ids(),
            "next_question_id": self.next_question_id(session, definition),
            "time_remaining": session.time_remaining(now),
            "is_stale": session.staleness(now) is not None,
        }

    async def get_best_attempt(self, user_id: str, assessment_id: str) -> Optional[Dict[str, Any]]:
        """The user's completed session with the highest final score, or None."""
        attempts = await self.sessions.find_user_attempts(user_id, assessment_id)
        completed = [s for s in attempts if s.status == SessionStatus.COMPLETED and s.results]
        if not completed:
            return None
        best = max(completed, key=lambda s: s.results.get("final_score", 0))
        return best.summary()

    # Analytics (best effort)

    async def _update_question_analytics(
        self, assessment_id: str, question_id: str, is_correct: bool, time_spent: float
    ) -> None:
        try:
            definition = await self._get_definition(assessment_id)
            question = definition.get_question(question_id)
            if question is None:
                return
            question.analytics.record(is_correct, time_spent)
            await self.assessments.save(definition)
        except LearnHubError as e:
            logger.warning(f"Failed to update analytics for question {question_id}: {e.message}")

    async def _update_assessment_analytics(
        self, assessment_id: str, final_score: float, passed: bool, time_spent: float
    ) -> None:
        try:
            definition = await self._get_definition(assessment_id)
            definition.analytics.record(final_score, passed, time_spent)
            await self.assessments.save(definition)
        except LearnHubError as e:
            logger.warning(f"Failed to update analytics for assessment {assessment_id}: {e.message}")
