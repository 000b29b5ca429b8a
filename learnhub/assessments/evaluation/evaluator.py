"""
Answer Evaluator

Routes each answer to the strategy registered for its question type.
"""

from typing import Any, Dict, List, Optional

from learnhub.assessments.evaluation.strategies import (
    AIGrader,
    ChoiceStrategy,
    EssayStrategy,
    EvaluationStrategy,
    MultipleSelectStrategy,
    PracticalTaskStrategy,
    ShortAnswerStrategy,
)
from learnhub.assessments.models import EvaluationResult, Question, QuestionType
from learnhub.common.logger import app_logger
from learnhub.llm import LLMGateway

logger = app_logger.getChild("assessments.evaluator")


class AnswerEvaluator:
    """
    Grades one answer against one question.

    ``evaluate`` always returns a well-formed result: AI outages degrade to
    heuristic or human-review results instead of propagating.
    """

    def __init__(self, gateway: LLMGateway, strategies: Optional[List[EvaluationStrategy]] = None,
                 use_logprobs: bool = True):
        if strategies is None:
            grader = AIGrader(gateway, use_logprobs=use_logprobs)
            strategies = [
                ChoiceStrategy(),
                MultipleSelectStrategy(),
                ShortAnswerStrategy(grader),
                EssayStrategy(grader),
                PracticalTaskStrategy(),
            ]

        self._strategies: Dict[QuestionType, EvaluationStrategy] = {}
        for strategy in strategies:
            for question_type in strategy.question_types:
                self._strategies[question_type] = strategy

    async def evaluate(self, question: Question, user_answer: Any) -> EvaluationResult:
        strategy = self._strategies.get(question.type)
        if strategy is None:
            logger.warning(f"No evaluation strategy for question type {question.type.value}")
            return EvaluationResult(
                is_correct=False,
                points_earned=0,
                max_points=question.points,
                feedback="Question type not supported for automatic evaluation",
                requires_human_review=True,
            )

        result = await strategy.evaluate(question, user_answer)
        if question.evaluation_criteria.requires_human_review:
            result.requires_human_review = True

        logger.debug(
            f"Evaluated question {question.id} ({question.type.value}): "
            f"{result.points_earned}/{result.max_points}"
        )
        return result
