"""
AI Grading Response Parsing

Grading completions are free text that is usually, but not always, a JSON
object. ``parse_evaluation`` turns the raw text into a tagged outcome,
``Parsed`` or ``Unparseable``, and ``normalize`` maps either outcome onto an
``EvaluationResult``. Neither function raises on any input string.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from learnhub.assessments.models import AIEvaluation, EvaluationResult
from learnhub.common.utils import clamp, round_half_up, strip_code_fences, truncate_string

# "7/10", "7 / 10", "7 out of 10", "7 points", "70%"
SCORE_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*(?:(?:/|out\s+of)\s*(\d+(?:\.\d+)?)|(points?)|(%))",
    re.IGNORECASE,
)

UNSCORABLE_FEEDBACK = "Response could not be scored automatically and requires manual review"


class EvaluationPayload(BaseModel):
    """Structured grading returned by the model."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    score: float
    feedback: str = ""
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("improvements", "suggestions"),
    )
    key_points_covered: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "key_points_covered", "keyPointsIdentified", "key_points_identified", "keyPoints", "key_points"
        ),
    )
    key_points_missed: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("key_points_missed", "keyPointsMissed", "missing"),
    )
    requires_human_review: bool = Field(
        default=False,
        validation_alias=AliasChoices("requires_human_review", "requiresHumanReview", "needsReview", "needs_review"),
    )

    @field_validator("score", mode="before")
    @classmethod
    def coerce_score(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().rstrip("%")
        return v

    @field_validator("score")
    @classmethod
    def normalize_score(cls, v: float) -> float:
        """Scores above 1 are percentages; the result is clamped to 0..1."""
        if v != v:
            raise ValueError("score is NaN")
        if v > 1:
            v = v / 100
        return clamp(v, 0.0, 1.0)

    @field_validator("feedback", mode="before")
    @classmethod
    def coerce_feedback(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("strengths", "improvements", "key_points_covered", "key_points_missed", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(item) for item in v]


@dataclass(frozen=True)
class Parsed:
    payload: EvaluationPayload


@dataclass(frozen=True)
class Unparseable:
    raw: str


ParseOutcome = Union[Parsed, Unparseable]


def parse_evaluation(raw: Optional[str]) -> ParseOutcome:
    """
    Parse a grading completion.

    Args:
        raw: Completion text, possibly wrapped in Markdown code fences

    Returns:
        ``Parsed`` when the text holds a JSON object with a usable score,
        otherwise ``Unparseable`` carrying the raw text
    """
    text = raw or ""
    cleaned = strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError):
        data = _extract_embedded_object(cleaned)

    if not isinstance(data, dict):
        return Unparseable(text)

    try:
        return Parsed(EvaluationPayload.model_validate(data))
    except ValidationError:
        return Unparseable(text)


def _extract_embedded_object(text: str) -> Any:
    """Try the outermost ``{...}`` span when the JSON is surrounded by prose."""
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None


def extract_score(raw: str, max_points: float) -> Optional[float]:
    """
    Find a score such as ``7/10`` or ``85%`` in prose.

    Returns:
        The score scaled to 0..1, or None when no pattern matches
    """
    match = SCORE_PATTERN.search(raw or "")
    if not match:
        return None

    value = float(match.group(1))
    if match.group(2):
        denominator = float(match.group(2))
    elif match.group(4):
        denominator = 100.0
    else:
        denominator = float(max_points)

    if denominator <= 0:
        return None
    return clamp(value / denominator, 0.0, 1.0)


def normalize(
    outcome: ParseOutcome,
    *,
    max_points: float,
    pass_threshold: float,
    review_below: Optional[float] = None,
    review_above: Optional[float] = None,
    confidence: Optional[float] = None
) -> EvaluationResult:
    """
    Map a parse outcome onto an EvaluationResult.

    Args:
        outcome: Result of ``parse_evaluation``
        max_points: Points available for the question
        pass_threshold: Minimum 0..1 score counted as correct
        review_below: Scores below this are flagged for human review
        review_above: Scores above this are flagged for human review
        confidence: Confidence (10..100) to attach to the result

    Returns:
        A well-formed result; unscorable outcomes earn zero points and are
        flagged for human review
    """
    if isinstance(outcome, Parsed):
        payload = outcome.payload
        score = payload.score
        feedback = payload.feedback or "No feedback provided"
        flagged = payload.requires_human_review
        key_points = list(payload.key_points_covered)
        suggestions = list(payload.improvements)
    else:
        extracted = extract_score(outcome.raw, max_points)
        if extracted is None:
            return EvaluationResult(
                is_correct=False,
                points_earned=0,
                max_points=max_points,
                feedback=UNSCORABLE_FEEDBACK,
                confidence=confidence,
                requires_human_review=True,
                ai_evaluation=AIEvaluation(
                    score=0,
                    feedback=UNSCORABLE_FEEDBACK,
                    confidence=confidence,
                    requires_human_review=True,
                ),
            )
        score = extracted
        feedback = truncate_string(outcome.raw.strip(), 1000)
        flagged = False
        key_points = []
        suggestions = []

    requires_review = (
        flagged
        or (review_below is not None and score < review_below)
        or (review_above is not None and score > review_above)
    )

    return EvaluationResult(
        is_correct=score >= pass_threshold,
        points_earned=round_half_up(max_points * score),
        max_points=max_points,
        feedback=feedback,
        confidence=confidence,
        requires_human_review=requires_review,
        ai_evaluation=AIEvaluation(
            score=round_half_up(score * 100, 2),
            feedback=feedback,
            confidence=confidence,
            requires_human_review=requires_review,
            key_points_covered=key_points,
            suggestions=suggestions,
        ),
    )
