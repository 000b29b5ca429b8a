"""
Assessment Core

Assessment definitions, user sessions and their lifecycle, answer
evaluation and result aggregation.
"""

from learnhub.assessments.aggregator import ResultAggregator, SessionResults, calculate_grade
from learnhub.assessments.collaborators import CompletionCollaborator, CompletionLog
from learnhub.assessments.evaluation import AnswerEvaluator
from learnhub.assessments.insights import InsightsGenerator
from learnhub.assessments.models import (
    AssessmentDefinition,
    Question,
    QuestionType,
    Session,
    SessionStatus,
)
from learnhub.assessments.question_generation import QuestionGenerator
from learnhub.assessments.repositories import (
    AssessmentRepository,
    InMemoryAssessmentRepository,
    InMemorySessionRepository,
    SessionRepository,
)
from learnhub.assessments.service import AssessmentSessionService

__all__ = [
    "AssessmentDefinition",
    "Question",
    "QuestionType",
    "Session",
    "SessionStatus",
    "AnswerEvaluator",
    "ResultAggregator",
    "SessionResults",
    "calculate_grade",
    "QuestionGenerator",
    "InsightsGenerator",
    "CompletionCollaborator",
    "CompletionLog",
    "AssessmentRepository",
    "SessionRepository",
    "InMemoryAssessmentRepository",
    "InMemorySessionRepository",
    "AssessmentSessionService",
]
