"""
Assessment Models

This module defines the data models of the assessment core: assessment
definitions and their questions, user sessions with their answers, and the
transient evaluation result produced by the answer evaluator.

All models are dataclasses with ``to_dict``/``from_dict`` so repositories can
store them as JSON documents.
"""

import copy
import enum
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from learnhub.common.exceptions import InvalidStateError
from learnhub.common.serialization import parse_datetime, to_primitive


class QuestionType(str, enum.Enum):
    """Kinds of assessment items."""
    MULTIPLE_CHOICE = "multiple_choice"
    MULTIPLE_SELECT = "multiple_select"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"
    CODE_REVIEW = "code_review"
    SCENARIO_ANALYSIS = "scenario_analysis"
    PRACTICAL_TASK = "practical_task"


class Difficulty(str, enum.Enum):
    """Difficulty tags, easiest first."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class ShowResults(str, enum.Enum):
    """When correct answers are revealed to the learner."""
    IMMEDIATELY = "immediately"
    AFTER_COMPLETION = "after_completion"
    AFTER_REVIEW = "after_review"
    NEVER = "never"


class SessionStatus(str, enum.Enum):
    """Status of an assessment session."""
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ABANDONED, SessionStatus.TIMEOUT)


# Every status change goes through this table; terminal statuses have no edges.
ALLOWED_TRANSITIONS = {
    SessionStatus.IN_PROGRESS: {
        SessionStatus.PAUSED,
        SessionStatus.COMPLETED,
        SessionStatus.TIMEOUT,
        SessionStatus.ABANDONED,
    },
    SessionStatus.PAUSED: {SessionStatus.IN_PROGRESS},
}


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    """Check whether ``current -> target`` is an edge of the session state machine."""
    return target in ALLOWED_TRANSITIONS.get(current, set())


@dataclass
class SkillTag:
    """A skill exercised by a question, with its weight in skill scoring."""
    name: str
    weight: float = 1.0

    @classmethod
    def from_dict(cls, data: Any) -> "SkillTag":
        if isinstance(data, str):
            return cls(name=data)
        weight = data.get("weight")
        return cls(name=data["name"], weight=1.0 if weight is None else float(weight))


@dataclass
class QuestionOption:
    """One option of a choice question."""
    id: str
    text: str
    is_correct: bool = False
    explanation: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuestionOption":
        return cls(
            id=str(data["id"]),
            text=data.get("text", ""),
            is_correct=bool(data.get("is_correct", False)),
            explanation=data.get("explanation") or "",
        )


@dataclass
class RubricCriterion:
    """One line of a scoring rubric for subjective questions."""
    criterion: str
    weight: float = 1.0
    max_points: Optional[float] = None
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RubricCriterion":
        return cls(
            criterion=data["criterion"],
            weight=float(data.get("weight", 1.0)),
            max_points=data.get("max_points"),
            description=data.get("description") or "",
        )


@dataclass
class EvaluationCriteria:
    """Grading guidance for AI-evaluated questions."""
    ai_prompt: Optional[str] = None
    key_points: List[str] = field(default_factory=list)
    rubric: List[RubricCriterion] = field(default_factory=list)
    requires_human_review: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EvaluationCriteria":
        data = data or {}
        return cls(
            ai_prompt=data.get("ai_prompt"),
            key_points=list(data.get("key_points") or []),
            rubric=[RubricCriterion.from_dict(r) for r in data.get("rubric") or []],
            requires_human_review=bool(data.get("requires_human_review", False)),
        )


@dataclass
class QuestionAnalytics:
    """Running statistics for one question."""
    times_used: int = 0
    correct_percentage: float = 0.0
    average_time_spent: float = 0.0

    def record(self, is_correct: bool, time_spent: float) -> None:
        """Fold one evaluated answer into the running averages."""
        previous = self.times_used
        self.times_used += 1
        self.correct_percentage = (
            self.correct_percentage * previous + (100.0 if is_correct else 0.0)
        ) / self.times_used
        self.average_time_spent = (self.average_time_spent * previous + time_spent) / self.times_used


@dataclass
class Question:
    """
    One assessment item.

    Objective types carry ``options`` or ``correct_answer``; subjective types
    carry ``evaluation_criteria``. Questions are owned by their definition and
    never mutated by a session (analytics counters aside).
    """
    id: str
    type: QuestionType
    question: str
    points: float = 10
    difficulty: Difficulty = Difficulty.INTERMEDIATE
    skills: List[SkillTag] = field(default_factory=list)
    options: List[QuestionOption] = field(default_factory=list)
    correct_answer: Any = None
    evaluation_criteria: EvaluationCriteria = field(default_factory=EvaluationCriteria)
    time_limit: int = 300
    explanation: str = ""
    hints: List[str] = field(default_factory=list)
    order: int = 0
    is_active: bool = True
    analytics: QuestionAnalytics = field(default_factory=QuestionAnalytics)

    def public_view(self) -> Dict[str, Any]:
        """Learner-facing form of the question, with all correctness data removed."""
        return {
            "id": self.id,
            "type": self.type.value,
            "question": self.question,
            "options": [{"id": o.id, "text": o.text} for o in self.options],
            "points": self.points,
            "difficulty": self.difficulty.value,
            "time_limit": self.time_limit,
            "hints": list(self.hints),
            "order": self.order,
        }

    def correct_option_ids(self) -> List[str]:
        return [o.id for o in self.options if o.is_correct]

    def to_dict(self) -> Dict[str, Any]:
        return to_primitive(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        return cls(
            id=str(data["id"]),
            type=QuestionType(data["type"]),
            question=data["question"],
            points=data.get("points", 10),
            difficulty=Difficulty(data.get("difficulty") or Difficulty.INTERMEDIATE.value),
            skills=[SkillTag.from_dict(s) for s in data.get("skills") or []],
            options=[QuestionOption.from_dict(o) for o in data.get("options") or []],
            correct_answer=data.get("correct_answer"),
            evaluation_criteria=EvaluationCriteria.from_dict(data.get("evaluation_criteria")),
            time_limit=int(data.get("time_limit") or 300),
            explanation=data.get("explanation") or "",
            hints=list(data.get("hints") or []),
            order=int(data.get("order") or 0),
            is_active=bool(data.get("is_active", True)),
            analytics=QuestionAnalytics(**(data.get("analytics") or {})),
        )


@dataclass
class ScoringConfig:
    passing_score: float = 70
    total_points: float = 0


@dataclass
class AttemptPolicy:
    max_attempts: int = 3
    cooldown_hours: float = 24


@dataclass
class TimeConstraints:
    has_time_limit: bool = False
    total_time_minutes: Optional[float] = None
    question_time_minutes: Optional[float] = None


@dataclass
class AssessmentSettings:
    allow_review: bool = True
    show_results: ShowResults = ShowResults.AFTER_COMPLETION
    adaptive_questioning: bool = False


@dataclass
class Certification:
    issues_certificate: bool = False
    certificate_template: Optional[str] = None


@dataclass
class AIGenerationSettings:
    """Parameters for generating questions on first use."""
    is_ai_generated: bool = False
    prompt: Optional[str] = None
    skills_targeted: List[str] = field(default_factory=list)
    question_count: Optional[int] = None
    question_types: List[QuestionType] = field(default_factory=list)


@dataclass
class AssessmentAnalytics:
    """Running statistics over completed sessions."""
    total_attempts: int = 0
    average_score: float = 0.0
    pass_rate: float = 0.0
    average_time_spent: float = 0.0

    def record(self, final_score: float, passed: bool, time_spent: float) -> None:
        """Fold one completed session into the running averages."""
        previous = self.total_attempts
        self.total_attempts += 1
        self.average_score = (self.average_score * previous + final_score) / self.total_attempts
        self.pass_rate = (self.pass_rate * previous + (100.0 if passed else 0.0)) / self.total_attempts
        self.average_time_spent = (self.average_time_spent * previous + time_spent) / self.total_attempts


@dataclass
class AssessmentDefinition:
    """
    Static description of an assessment.

    Read-only to the session machine except for analytics counters and the
    one-time materialization of AI-generated questions.
    """
    id: str
    title: str
    description: str = ""
    category: str = ""
    difficulty: Difficulty = Difficulty.INTERMEDIATE
    questions: List[Question] = field(default_factory=list)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    attempt_policy: AttemptPolicy = field(default_factory=AttemptPolicy)
    time_constraints: TimeConstraints = field(default_factory=TimeConstraints)
    settings: AssessmentSettings = field(default_factory=AssessmentSettings)
    certification: Certification = field(default_factory=Certification)
    ai_generation: AIGenerationSettings = field(default_factory=AIGenerationSettings)
    analytics: AssessmentAnalytics = field(default_factory=AssessmentAnalytics)
    version: int = 0

    def active_questions(self) -> List[Question]:
        """Active questions in definition order."""
        return sorted((q for q in self.questions if q.is_active), key=lambda q: q.order)

    def get_question(self, question_id: str) -> Optional[Question]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    def recalculate_total_points(self) -> float:
        self.scoring.total_points = sum(q.points for q in self.questions)
        return self.scoring.total_points

    def to_dict(self) -> Dict[str, Any]:
        return to_primitive(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssessmentDefinition":
        settings = dict(data.get("settings") or {})
        if "show_results" in settings:
            settings["show_results"] = ShowResults(settings["show_results"])
        ai_generation = dict(data.get("ai_generation") or {})
        ai_generation["question_types"] = [
            QuestionType(t) for t in ai_generation.get("question_types") or []
        ]
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            description=data.get("description") or "",
            category=data.get("category") or "",
            difficulty=Difficulty(data.get("difficulty") or Difficulty.INTERMEDIATE.value),
            questions=[Question.from_dict(q) for q in data.get("questions") or []],
            scoring=ScoringConfig(**(data.get("scoring") or {})),
            attempt_policy=AttemptPolicy(**(data.get("attempt_policy") or {})),
            time_constraints=TimeConstraints(**(data.get("time_constraints") or {})),
            settings=AssessmentSettings(**settings),
            certification=Certification(**(data.get("certification") or {})),
            ai_generation=AIGenerationSettings(**ai_generation),
            analytics=AssessmentAnalytics(**(data.get("analytics") or {})),
            version=int(data.get("version") or 0),
        )


@dataclass
class EvaluationResult:
    """
    Output of the answer evaluator for one answer.

    Not persisted on its own; it is merged into the Answer immediately.
    """
    is_correct: bool
    points_earned: float
    max_points: float
    feedback: str = ""
    confidence: Optional[float] = None
    requires_human_review: bool = False
    ai_evaluation: Optional["AIEvaluation"] = None

    def to_dict(self) -> Dict[str, Any]:
        return to_primitive(self)


@dataclass
class AIEvaluation:
    """Payload kept from an AI-graded answer."""
    score: float
    feedback: str = ""
    confidence: Optional[float] = None
    requires_human_review: bool = False
    key_points_covered: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["AIEvaluation"]:
        if not data:
            return None
        return cls(
            score=float(data.get("score", 0)),
            feedback=data.get("feedback") or "",
            confidence=data.get("confidence"),
            requires_human_review=bool(data.get("requires_human_review", False)),
            key_points_covered=list(data.get("key_points_covered") or []),
            suggestions=list(data.get("suggestions") or []),
        )


@dataclass
class Answer:
    """One question's response within a session."""
    question_id: str
    user_answer: Any
    time_spent: float = 0
    is_correct: bool = False
    points_earned: float = 0
    max_points: float = 0
    feedback: str = ""
    attempts: int = 1
    changed_answer: bool = False
    previous_answers: List[Any] = field(default_factory=list)
    ai_evaluation: Optional[AIEvaluation] = None
    requires_human_review: bool = False
    submitted_at: Optional[datetime.datetime] = None

    def apply(self, result: EvaluationResult) -> None:
        """Merge an evaluation result into this answer."""
        self.is_correct = result.is_correct
        self.points_earned = result.points_earned
        self.max_points = result.max_points
        self.feedback = result.feedback
        self.requires_human_review = result.requires_human_review
        self.ai_evaluation = result.ai_evaluation

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Answer":
        return cls(
            question_id=data["question_id"],
            user_answer=data.get("user_answer"),
            time_spent=data.get("time_spent", 0),
            is_correct=bool(data.get("is_correct", False)),
            points_earned=data.get("points_earned", 0),
            max_points=data.get("max_points", 0),
            feedback=data.get("feedback") or "",
            attempts=int(data.get("attempts", 1)),
            changed_answer=bool(data.get("changed_answer", False)),
            previous_answers=list(data.get("previous_answers") or []),
            ai_evaluation=AIEvaluation.from_dict(data.get("ai_evaluation")),
            requires_human_review=bool(data.get("requires_human_review", False)),
            submitted_at=parse_datetime(data.get("submitted_at")),
        )


@dataclass
class SessionConfig:
    """Rules copied from the definition when the session starts."""
    has_time_limit: bool = False
    total_time_minutes: Optional[float] = None
    question_time_minutes: Optional[float] = None
    passing_score: float = 70
    allow_review: bool = True
    show_results: ShowResults = ShowResults.AFTER_COMPLETION
    adaptive_questioning: bool = False
    issues_certificate: bool = False

    @classmethod
    def snapshot(cls, definition: AssessmentDefinition) -> "SessionConfig":
        return cls(
            has_time_limit=definition.time_constraints.has_time_limit,
            total_time_minutes=definition.time_constraints.total_time_minutes,
            question_time_minutes=definition.time_constraints.question_time_minutes,
            passing_score=definition.scoring.passing_score,
            allow_review=definition.settings.allow_review,
            show_results=definition.settings.show_results,
            adaptive_questioning=definition.settings.adaptive_questioning,
            issues_certificate=definition.certification.issues_certificate,
        )

    @property
    def total_limit_seconds(self) -> Optional[float]:
        if not self.has_time_limit or not self.total_time_minutes:
            return None
        return self.total_time_minutes * 60

    @property
    def question_limit_seconds(self) -> Optional[float]:
        if not self.has_time_limit or not self.question_time_minutes:
            return None
        return self.question_time_minutes * 60

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionConfig":
        data = dict(data or {})
        if "show_results" in data:
            data["show_results"] = ShowResults(data["show_results"])
        return cls(**data)


@dataclass
class SessionProgress:
    current_question_index: int = 0
    questions_answered: int = 0
    total_questions: int = 0
    completion_percentage: int = 0


@dataclass
class TimeTracking:
    """
    Session clocks, all in UTC.

    ``paused_time`` accumulates seconds spent paused; it is excluded from the
    elapsed time checked against the session's limit.
    """
    start_time: datetime.datetime
    last_activity: datetime.datetime
    end_time: Optional[datetime.datetime] = None
    paused_at: Optional[datetime.datetime] = None
    paused_time: float = 0
    total_time_spent: float = 0
    question_times: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimeTracking":
        return cls(
            start_time=parse_datetime(data["start_time"]),
            last_activity=parse_datetime(data["last_activity"]),
            end_time=parse_datetime(data.get("end_time")),
            paused_at=parse_datetime(data.get("paused_at")),
            paused_time=data.get("paused_time", 0),
            total_time_spent=data.get("total_time_spent", 0),
            question_times=dict(data.get("question_times") or {}),
        )


@dataclass
class UserContext:
    device: Optional[str] = None
    browser: Optional[str] = None
    screen_size: Optional[str] = None
    timezone: Optional[str] = None

    @classmethod
    def from_device_context(cls, context: Optional[Dict[str, Any]]) -> "UserContext":
        context = context or {}
        return cls(
            device=context.get("device"),
            browser=context.get("browser"),
            screen_size=context.get("screen_size"),
            timezone=context.get("timezone"),
        )


@dataclass
class Session:
    """
    One user's attempt at an assessment.

    ``status`` only moves along ``ALLOWED_TRANSITIONS``. Once the session is
    terminal it is immutable except for late AI-evaluation enrichment.
    ``version`` is the optimistic-concurrency token checked on every save.
    """
    id: str
    user_id: str
    assessment_id: str
    attempt_number: int
    time_tracking: TimeTracking
    status: SessionStatus = SessionStatus.IN_PROGRESS
    answers: List[Answer] = field(default_factory=list)
    progress: SessionProgress = field(default_factory=SessionProgress)
    config: SessionConfig = field(default_factory=SessionConfig)
    user_context: UserContext = field(default_factory=UserContext)
    results: Optional[Dict[str, Any]] = None
    review_required: bool = False
    version: int = 0

    def transition_to(self, target: SessionStatus, operation: str) -> None:
        """
        Move to ``target`` if the state machine allows it.

        Raises:
            InvalidStateError: the edge does not exist
        """
        if not can_transition(self.status, target):
            raise InvalidStateError(self.id, self.status.value, operation)
        self.status = target

    def get_answer(self, question_id: str) -> Optional[Answer]:
        for answer in self.answers:
            if answer.question_id == question_id:
                return answer
        return None

    def answered_ids(self) -> List[str]:
        return [a.question_id for a in self.answers]

    def elapsed_seconds(self, now: datetime.datetime) -> float:
        """Active time since the start, excluding paused intervals."""
        return (now - self.time_tracking.start_time).total_seconds() - self.time_tracking.paused_time

    def staleness(self, now: datetime.datetime) -> Optional[Tuple[float, float]]:
        """
        Return ``(elapsed, limit)`` when an in-progress session has outrun a time limit.

        The total limit is measured from the start minus paused time; the
        per-question limit is measured from the last activity.
        """
        if self.status != SessionStatus.IN_PROGRESS:
            return None

        total_limit = self.config.total_limit_seconds
        if total_limit is not None:
            elapsed = self.elapsed_seconds(now)
            if elapsed >= total_limit:
                return elapsed, total_limit

        question_limit = self.config.question_limit_seconds
        if question_limit is not None:
            idle = (now - self.time_tracking.last_activity).total_seconds()
            if idle >= question_limit:
                return idle, question_limit

        return None

    def time_remaining(self, now: datetime.datetime) -> Optional[int]:
        total_limit = self.config.total_limit_seconds
        if total_limit is None:
            return None
        return max(0, int(total_limit - self.elapsed_seconds(now)))

    def record_question_time(self, question_id: str, seconds: float, now: datetime.datetime) -> None:
        tracking = self.time_tracking
        tracking.question_times[question_id] = tracking.question_times.get(question_id, 0) + seconds
        tracking.total_time_spent += seconds
        tracking.last_activity = now

    def upsert_answer(self, question_id: str, user_answer: Any, time_spent: float,
                      now: datetime.datetime) -> Answer:
        """Append a new answer or overwrite the existing one for ``question_id``."""
        existing = self.get_answer(question_id)
        if existing is not None:
            existing.previous_answers.append(copy.deepcopy(existing.user_answer))
            existing.changed_answer = existing.user_answer != user_answer
            existing.user_answer = user_answer
            existing.time_spent += time_spent
            existing.attempts += 1
            existing.submitted_at = now
            return existing

        answer = Answer(
            question_id=question_id,
            user_answer=user_answer,
            time_spent=time_spent,
            submitted_at=now,
        )
        self.answers.append(answer)
        return answer

    def update_progress(self, ordered_question_ids: List[str]) -> None:
        answered = set(self.answered_ids())
        progress = self.progress
        progress.questions_answered = len(answered)
        progress.total_questions = len(ordered_question_ids)
        progress.completion_percentage = (
            round(len(answered) / progress.total_questions * 100) if progress.total_questions else 0
        )
        progress.current_question_index = next(
            (i for i, qid in enumerate(ordered_question_ids) if qid not in answered),
            len(ordered_question_ids),
        )

    def summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.id,
            "user_id": self.user_id,
            "assessment_id": self.assessment_id,
            "attempt_number": self.attempt_number,
            "status": self.status.value,
            "start_time": self.time_tracking.start_time.isoformat(),
            "end_time": self.time_tracking.end_time.isoformat() if self.time_tracking.end_time else None,
            "progress": to_primitive(self.progress),
            "results": self.results,
            "review_required": self.review_required,
        }

    def to_dict(self) -> Dict[str, Any]:
        return to_primitive(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            assessment_id=data["assessment_id"],
            attempt_number=int(data.get("attempt_number", 1)),
            time_tracking=TimeTracking.from_dict(data["time_tracking"]),
            status=SessionStatus(data.get("status", SessionStatus.IN_PROGRESS.value)),
            answers=[Answer.from_dict(a) for a in data.get("answers") or []],
            progress=SessionProgress(**(data.get("progress") or {})),
            config=SessionConfig.from_dict(data.get("config") or {}),
            user_context=UserContext(**(data.get("user_context") or {})),
            results=data.get("results"),
            review_required=bool(data.get("review_required", False)),
            version=int(data.get("version") or 0),
        )
