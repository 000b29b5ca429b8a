"""
Result Aggregator

Pure computation of a finished session's outcome: overall percentage,
pass/fail, letter grade, breakdowns by difficulty, skill and question type,
and strength/weakness statements. No I/O and no clock reads, so the same
session and definition always produce the same results.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from learnhub.assessments.models import AssessmentDefinition, Difficulty, Question, Session
from learnhub.common.serialization import to_primitive
from learnhub.common.utils import round_half_up, safe_divide

GRADE_TABLE: List[Tuple[float, str]] = [
    (97, "A+"),
    (93, "A"),
    (90, "A-"),
    (87, "B+"),
    (83, "B"),
    (80, "B-"),
    (77, "C+"),
    (73, "C"),
    (70, "C-"),
    (67, "D+"),
    (60, "D"),
]

STRENGTH_THRESHOLD = 80
WEAKNESS_THRESHOLD = 50


def calculate_grade(final_score: float) -> str:
    """Map a 0..100 percentage onto a letter grade."""
    for threshold, grade in GRADE_TABLE:
        if final_score >= threshold:
            return grade
    return "F"


@dataclass
class ScoreBucket:
    """Earned and possible points for one breakdown key."""
    key: str
    score: float = 0
    max_score: float = 0

    @property
    def percentage(self) -> int:
        return round_half_up(safe_divide(self.score, self.max_score) * 100)

    def add(self, earned: float, possible: float, weight: float = 1.0) -> None:
        self.score += earned * weight
        self.max_score += possible * weight

    def to_dict(self, key_name: str) -> Dict[str, Any]:
        return {
            key_name: self.key,
            "score": self.score,
            "max_score": self.max_score,
            "percentage": self.percentage,
        }


@dataclass
class SessionResults:
    """Aggregated outcome stored on a completed session."""
    final_score: float
    total_points_earned: float
    total_points_possible: float
    passing_score: float
    passed: bool
    grade: str
    questions_answered: int
    correct_answers: int
    total_time_spent: float
    average_time_per_question: int
    score_by_difficulty: Dict[str, int] = field(default_factory=dict)
    score_by_skill: List[Dict[str, Any]] = field(default_factory=list)
    score_by_question_type: List[Dict[str, Any]] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    requires_review: bool = False
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return to_primitive(self)


class ResultAggregator:
    """Computes SessionResults from a session and its definition."""

    def aggregate(self, session: Session, definition: AssessmentDefinition) -> SessionResults:
        questions: Dict[str, Question] = {q.id: q for q in definition.questions}
        answers = [a for a in session.answers if a.question_id in questions]

        earned = sum(a.points_earned or 0 for a in answers)
        possible = sum(a.max_points or 0 for a in answers)
        final_score = safe_divide(earned, possible) * 100
        passing_score = session.config.passing_score

        difficulty_buckets: Dict[str, ScoreBucket] = {}
        skill_buckets: Dict[str, ScoreBucket] = {}
        type_buckets: Dict[str, ScoreBucket] = {}

        for answer in answers:
            question = questions[answer.question_id]
            points, max_points = answer.points_earned or 0, answer.max_points or 0

            difficulty = question.difficulty.value
            difficulty_buckets.setdefault(difficulty, ScoreBucket(difficulty)).add(points, max_points)

            question_type = question.type.value
            type_buckets.setdefault(question_type, ScoreBucket(question_type)).add(points, max_points)

            for skill in question.skills:
                skill_buckets.setdefault(skill.name, ScoreBucket(skill.name)).add(
                    points, max_points, skill.weight
                )

        # Fixed easiest-first order for difficulty; names sorted elsewhere
        score_by_difficulty = {
            d.value: difficulty_buckets[d.value].percentage
            for d in Difficulty if d.value in difficulty_buckets
        }
        score_by_skill = [skill_buckets[k].to_dict("skill") for k in sorted(skill_buckets)]
        score_by_type = [type_buckets[k].to_dict("type") for k in sorted(type_buckets)]

        strengths, weaknesses = self._analyze(score_by_difficulty, score_by_type, score_by_skill)

        total_time = session.time_tracking.total_time_spent
        return SessionResults(
            final_score=round_half_up(final_score, 2),
            total_points_earned=earned,
            total_points_possible=possible,
            passing_score=passing_score,
            passed=final_score >= passing_score,
            grade=calculate_grade(final_score),
            questions_answered=len(answers),
            correct_answers=sum(1 for a in answers if a.is_correct),
            total_time_spent=total_time,
            average_time_per_question=round_half_up(safe_divide(total_time, len(answers))),
            score_by_difficulty=score_by_difficulty,
            score_by_skill=score_by_skill,
            score_by_question_type=score_by_type,
            strengths=strengths,
            weaknesses=weaknesses,
            requires_review=any(a.requires_human_review for a in answers),
        )

    @staticmethod
    def _analyze(
        by_difficulty: Dict[str, int],
        by_type: List[Dict[str, Any]],
        by_skill: List[Dict[str, Any]]
    ) -> Tuple[List[str], List[str]]:
        strengths: List[str] = []
        weaknesses: List[str] = []

        for difficulty, percentage in by_difficulty.items():
            if percentage >= STRENGTH_THRESHOLD:
                strengths.append(f"Strong performance in {difficulty} level questions")
            elif percentage < WEAKNESS_THRESHOLD:
                weaknesses.append(f"Needs improvement in {difficulty} level questions")

        for bucket in by_type:
            label = bucket["type"].replace("_", " ")
            if bucket["percentage"] >= STRENGTH_THRESHOLD:
                strengths.append(f"Excellent {label} skills")
            elif bucket["percentage"] < WEAKNESS_THRESHOLD:
                weaknesses.append(f"Difficulty with {label} questions")

        for bucket in by_skill:
            if bucket["percentage"] >= STRENGTH_THRESHOLD:
                strengths.append(f"Strong command of {bucket['skill']}")
            elif bucket["percentage"] < WEAKNESS_THRESHOLD:
                weaknesses.append(f"Needs practice with {bucket['skill']}")

        return strengths, weaknesses
