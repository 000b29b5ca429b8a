"""
Evaluation Strategies

One strategy per family of question types. Objective strategies are pure;
the AI-backed strategies grade through the LLM gateway and degrade to a
keyword heuristic or a human-review result when the gateway fails.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

from learnhub.assessments.evaluation.confidence import DEFAULT_CONFIDENCE, confidence_from_logprobs
from learnhub.assessments.evaluation.parsing import normalize, parse_evaluation
from learnhub.assessments.models import AIEvaluation, EvaluationResult, Question, QuestionType
from learnhub.common.exceptions import EvaluationFailure, UpstreamError
from learnhub.common.logger import app_logger
from learnhub.common.utils import round_half_up, safe_divide, to_text
from learnhub.llm import LLMGateway, Purpose

logger = app_logger.getChild("assessments.evaluation")

OBJECTIVE_CONFIDENCE = 100
MULTIPLE_SELECT_PASS = 0.7


@dataclass(frozen=True)
class GradingProfile:
    """Model settings and thresholds for one kind of AI grading."""
    temperature: float
    max_tokens: int
    pass_threshold: float
    review_below: Optional[float] = None
    review_above: Optional[float] = None


SHORT_ANSWER_PROFILE = GradingProfile(
    temperature=0.1, max_tokens=300, pass_threshold=0.7, review_below=0.3, review_above=0.95
)
ESSAY_PROFILE = GradingProfile(temperature=0.2, max_tokens=800, pass_threshold=0.6, review_below=0.4)

ASSESSOR_PREAMBLE = (
    "You are an expert educational assessor. Evaluate the student's answer "
    "objectively and provide constructive feedback."
)

RESPONSE_FORMAT = """Respond with a JSON object:
{
  "score": 0.0-1.0,
  "feedback": "detailed feedback",
  "strengths": ["what the answer does well"],
  "improvements": ["areas for improvement"],
  "keyPointsIdentified": ["key points present in the answer"],
  "keyPointsMissed": ["key points missing from the answer"],
  "requiresHumanReview": false
}"""

CRITERIA = {
    QuestionType.SHORT_ANSWER: [
        "Accuracy of content (40%)",
        "Completeness of answer (30%)",
        "Clarity and understanding (20%)",
        "Proper terminology usage (10%)",
    ],
    QuestionType.CODE_REVIEW: [
        "Code correctness and functionality (40%)",
        "Code quality and best practices (25%)",
        "Problem-solving approach (20%)",
        "Code efficiency and optimization (15%)",
    ],
    QuestionType.ESSAY: [
        "Content knowledge and accuracy (30%)",
        "Critical thinking and analysis (25%)",
        "Organization and structure (20%)",
        "Writing quality and clarity (15%)",
        "Use of examples/evidence (10%)",
    ],
}


def build_grading_prompt(question: Question) -> str:
    """System prompt for grading ``question``."""
    criteria = CRITERIA.get(question.type, CRITERIA[QuestionType.ESSAY])
    parts = [ASSESSOR_PREAMBLE]
    if question.evaluation_criteria.ai_prompt:
        parts.append(question.evaluation_criteria.ai_prompt)
    parts.append("Evaluation Criteria:\n" + "\n".join(f"- {c}" for c in criteria))

    key_points = question.evaluation_criteria.key_points
    parts.append(f"Key Points to Look For: {', '.join(key_points) if key_points else 'N/A'}")

    rubric = question.evaluation_criteria.rubric
    if rubric:
        lines = [f"- {r.criterion} (weight {r.weight}): {r.description}".rstrip(": ") for r in rubric]
        parts.append("Scoring Rubric:\n" + "\n".join(lines))

    parts.append(RESPONSE_FORMAT)
    return "\n\n".join(parts)


class AIGrader:
    """Sends one answer to the gateway and turns the reply into an EvaluationResult."""

    def __init__(self, gateway: LLMGateway, use_logprobs: bool = True):
        self.gateway = gateway
        self.use_logprobs = use_logprobs

    async def grade(self, question: Question, answer_text: str, profile: GradingProfile) -> EvaluationResult:
        """
        Grade a free-text answer.

        Raises:
            EvaluationFailure: the gateway could not produce a completion
        """
        label = "Student Essay" if profile is ESSAY_PROFILE else "User Answer"
        messages = [
            {"role": "system", "content": build_grading_prompt(question)},
            {"role": "user", "content": f'Question: "{question.question}"\n\n{label}:\n"{answer_text}"'},
        ]
        try:
            response = await self.gateway.complete(
                messages,
                Purpose.EVALUATION,
                temperature=profile.temperature,
                max_tokens=profile.max_tokens,
                logprobs=self.use_logprobs,
                json_response=True,
            )
        except UpstreamError as e:
            raise EvaluationFailure(
                f"AI grading failed for question {question.id}",
                details={"question_id": question.id},
                cause=e,
            )

        confidence = confidence_from_logprobs(response.logprobs) if self.use_logprobs else DEFAULT_CONFIDENCE
        return normalize(
            parse_evaluation(response.content),
            max_points=question.points,
            pass_threshold=profile.pass_threshold,
            review_below=profile.review_below,
            review_above=profile.review_above,
            confidence=confidence,
        )


class EvaluationStrategy(ABC):
    """Grades answers for a set of question types."""

    question_types: List[QuestionType] = []

    @abstractmethod
    async def evaluate(self, question: Question, user_answer: Any) -> EvaluationResult:
        """
        Grade ``user_answer`` against ``question``.

        Implementations never raise for AI failures; they return a degraded result.
        """


def _normalize_choice(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return to_text(value).strip()


class ChoiceStrategy(EvaluationStrategy):
    """Single-choice and true/false questions."""

    question_types = [QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE]

    async def evaluate(self, question: Question, user_answer: Any) -> EvaluationResult:
        selected_id = _normalize_choice(user_answer)
        correct = next((o for o in question.options if o.is_correct), None)

        if correct is None:
            # Option-less true/false questions keep the answer on the question itself
            expected = _normalize_choice(question.correct_answer)
            is_correct = bool(expected) and selected_id.lower() == expected.lower()
            return EvaluationResult(
                is_correct=is_correct,
                points_earned=question.points if is_correct else 0,
                max_points=question.points,
                feedback=question.explanation,
                confidence=OBJECTIVE_CONFIDENCE,
            )

        selected = next((o for o in question.options if o.id == selected_id), None)
        is_correct = selected is not None and selected.is_correct
        feedback = (selected.explanation if selected else "") or correct.explanation
        return EvaluationResult(
            is_correct=is_correct,
            points_earned=question.points if is_correct else 0,
            max_points=question.points,
            feedback=feedback,
            confidence=OBJECTIVE_CONFIDENCE,
        )


class MultipleSelectStrategy(EvaluationStrategy):
    """
    Multi-select questions with partial credit.

    ``score = max(0, correct - 0.5 * incorrect - 0.25 * missed) / total_correct``
    """

    question_types = [QuestionType.MULTIPLE_SELECT]

    async def evaluate(self, question: Question, user_answer: Any) -> EvaluationResult:
        if user_answer is None:
            selections = []
        elif isinstance(user_answer, (list, tuple, set)):
            selections = list(user_answer)
        else:
            selections = [user_answer]
        selected = list(dict.fromkeys(_normalize_choice(s) for s in selections))

        correct_ids = set(question.correct_option_ids())
        if not correct_ids:
            return EvaluationResult(
                is_correct=False,
                points_earned=0,
                max_points=question.points,
                feedback="Question has no correct options configured - requires manual review",
                confidence=OBJECTIVE_CONFIDENCE,
                requires_human_review=True,
            )

        hits = sum(1 for s in selected if s in correct_ids)
        wrong = len(selected) - hits
        missed = len(correct_ids) - hits
        score = safe_divide(max(0.0, hits - 0.5 * wrong - 0.25 * missed), len(correct_ids))

        return EvaluationResult(
            is_correct=score >= MULTIPLE_SELECT_PASS,
            points_earned=round_half_up(question.points * score),
            max_points=question.points,
            feedback=f"Selected {hits} of {len(correct_ids)} correct options",
            confidence=OBJECTIVE_CONFIDENCE,
        )


def evaluate_with_keywords(question: Question, user_answer: Any) -> EvaluationResult:
    """
    Heuristic grading against ``question.correct_answer``.

    Exact match scores 1.0, containment either way 0.7, a shared keyword
    (word longer than two characters) 0.5, anything else 0.
    """
    expected = question.correct_answer
    if not isinstance(expected, str) or not expected.strip():
        return EvaluationResult(
            is_correct=False,
            points_earned=0,
            max_points=question.points,
            feedback="Unable to evaluate - requires manual review",
            requires_human_review=True,
        )

    user_lower = to_text(user_answer).strip().lower()
    correct_lower = expected.strip().lower()

    if not user_lower:
        score, feedback = 0.0, "Incorrect answer"
    elif user_lower == correct_lower:
        score, feedback = 1.0, "Correct answer"
    elif correct_lower in user_lower or user_lower in correct_lower:
        score, feedback = 0.7, "Partially correct - contains key elements"
    elif any(len(word) > 2 and word in user_lower for word in correct_lower.split()):
        score, feedback = 0.5, "Partially correct - contains some key terms"
    else:
        score, feedback = 0.0, "Incorrect answer"

    return EvaluationResult(
        is_correct=score >= 0.7,
        points_earned=round_half_up(question.points * score),
        max_points=question.points,
        feedback=feedback,
    )


class ShortAnswerStrategy(EvaluationStrategy):
    """Short answers and code reviews: AI grading when configured, keywords otherwise."""

    question_types = [QuestionType.SHORT_ANSWER, QuestionType.CODE_REVIEW]

    def __init__(self, grader: AIGrader):
        self.grader = grader

    async def evaluate(self, question: Question, user_answer: Any) -> EvaluationResult:
        if not question.evaluation_criteria.ai_prompt:
            return evaluate_with_keywords(question, user_answer)

        try:
            return await self.grader.grade(question, to_text(user_answer), SHORT_ANSWER_PROFILE)
        except EvaluationFailure as e:
            logger.warning(f"AI evaluation failed for question {question.id}, using keyword fallback: {e}")
            return evaluate_with_keywords(question, user_answer)


class EssayStrategy(EvaluationStrategy):
    """Essays and scenario analyses, always AI graded."""

    question_types = [QuestionType.ESSAY, QuestionType.SCENARIO_ANALYSIS]

    def __init__(self, grader: AIGrader):
        self.grader = grader

    async def evaluate(self, question: Question, user_answer: Any) -> EvaluationResult:
        try:
            return await self.grader.grade(question, to_text(user_answer), ESSAY_PROFILE)
        except EvaluationFailure as e:
            logger.error(f"AI essay evaluation failed for question {question.id}: {e}")
            return EvaluationResult(
                is_correct=False,
                points_earned=0,
                max_points=question.points,
                feedback="Essay submitted for manual review",
                confidence=0,
                requires_human_review=True,
                ai_evaluation=AIEvaluation(
                    score=0,
                    feedback="Automatic evaluation failed - requires human review",
                    confidence=0,
                    requires_human_review=True,
                ),
            )


class PracticalTaskStrategy(EvaluationStrategy):
    """Practical tasks always go to an instructor."""

    question_types = [QuestionType.PRACTICAL_TASK]

    async def evaluate(self, question: Question, user_answer: Any) -> EvaluationResult:
        return EvaluationResult(
            is_correct=False,
            points_earned=0,
            max_points=question.points,
            feedback="Practical task submitted for instructor review",
            confidence=0,
            requires_human_review=True,
        )
