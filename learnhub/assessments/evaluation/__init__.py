"""
Answer Evaluation

Per-type grading of submitted answers, including AI-backed grading of free
text through the LLM gateway.
"""

from learnhub.assessments.evaluation.confidence import confidence_from_logprobs
from learnhub.assessments.evaluation.evaluator import AnswerEvaluator
from learnhub.assessments.evaluation.parsing import (
    EvaluationPayload,
    Parsed,
    Unparseable,
    extract_score,
    normalize,
    parse_evaluation,
)
from learnhub.assessments.evaluation.strategies import (
    ESSAY_PROFILE,
    SHORT_ANSWER_PROFILE,
    AIGrader,
    EvaluationStrategy,
    GradingProfile,
    evaluate_with_keywords,
)

__all__ = [
    "AnswerEvaluator",
    "AIGrader",
    "EvaluationStrategy",
    "GradingProfile",
    "SHORT_ANSWER_PROFILE",
    "ESSAY_PROFILE",
    "EvaluationPayload",
    "Parsed",
    "Unparseable",
    "parse_evaluation",
    "extract_score",
    "normalize",
    "confidence_from_logprobs",
    "evaluate_with_keywords",
]
