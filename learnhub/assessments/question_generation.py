"""
AI Question Generation

Materializes the questions of an AI-generated assessment the first time a
session is created for it. The generated questions are stored on the
definition, so every later session reuses the same set.
"""

import math
import string
import uuid
from typing import Any, Callable, Dict, List, Optional

from learnhub.assessments.models import (
    AssessmentDefinition,
    Difficulty,
    Question,
    QuestionOption,
    QuestionType,
)
from learnhub.common.exceptions import MalformedResponseError
from learnhub.common.logger import app_logger, log_execution_time
from learnhub.llm import LLMGateway, Purpose

logger = app_logger.getChild("assessments.question_generation")

DEFAULT_TYPES = [QuestionType.MULTIPLE_CHOICE, QuestionType.SHORT_ANSWER, QuestionType.ESSAY]

# Loose type names models tend to produce
TYPE_ALIASES = {
    "text": QuestionType.SHORT_ANSWER,
    "single_choice": QuestionType.MULTIPLE_CHOICE,
    "multi_select": QuestionType.MULTIPLE_SELECT,
    "boolean": QuestionType.TRUE_FALSE,
}

QUESTION_FORMAT = """Return a JSON object of the form {"questions": [...]} where each question is:
{
  "type": "one of the requested question types",
  "question": "specific question text",
  "options": ["option A", "option B", "option C", "option D"],
  "correctAnswer": "the correct option text (objective types only)",
  "points": 10,
  "difficulty": "beginner | intermediate | advanced | expert",
  "timeLimit": 300,
  "skills": ["skill names exercised"],
  "hints": ["a helpful hint"],
  "explanation": "why the answer is correct or what a good answer contains",
  "keyPoints": ["key points a good free-text answer covers"]
}"""


class QuestionGenerator:
    """Generates assessment questions through the ``assessment`` purpose."""

    def __init__(self, gateway: LLMGateway, default_count: int = 10):
        self.gateway = gateway
        self.default_count = default_count

    def build_messages(self, definition: AssessmentDefinition) -> List[Dict[str, str]]:
        settings = definition.ai_generation
        count = settings.question_count or self.default_count
        types = settings.question_types or DEFAULT_TYPES
        topic = ", ".join(settings.skills_targeted) or definition.category or definition.title

        lines = [
            f"Generate {count} real, practical assessment questions about {topic}.",
            "",
            "Context:",
            f"- Assessment Title: {definition.title}",
            f"- Category: {definition.category or 'general'}",
            f"- Difficulty Level: {definition.difficulty.value}",
            f"- Question Types: {', '.join(t.value for t in types)}",
        ]
        if settings.prompt:
            lines += ["", settings.prompt]
        lines += ["", QUESTION_FORMAT]

        return [
            {
                "role": "system",
                "content": (
                    f"You are an expert {definition.category or 'subject'} educator and assessment designer. "
                    "Create real, specific questions that test actual knowledge and skills. "
                    "Never use placeholder content."
                ),
            },
            {"role": "user", "content": "\n".join(lines)},
        ]

    @log_execution_time(logger)
    async def generate(self, definition: AssessmentDefinition) -> List[Question]:
        """
        Generate questions for ``definition``.

        Raises:
            UpstreamError: the gateway failed
            MalformedResponseError: the model returned no usable questions
        """
        payload = await self.gateway.generate_json(self.build_messages(definition), Purpose.ASSESSMENT)
        raw_questions = payload.get("questions")
        if not isinstance(raw_questions, list):
            raise MalformedResponseError("Question generation response has no 'questions' list")

        batch = uuid.uuid4().hex[:8]
        questions = []
        for raw in raw_questions:
            question = self._normalize(raw, len(questions) + 1, batch, definition.difficulty)
            if question is not None:
                questions.append(question)

        if not questions:
            raise MalformedResponseError("Question generation produced no usable questions")

        logger.info(f"Generated {len(questions)} questions for assessment {definition.id}")
        return questions

    @staticmethod
    def _normalize(raw: Any, index: int, batch: str, default_difficulty: Difficulty) -> Optional[Question]:
        if not isinstance(raw, dict) or not raw.get("question"):
            logger.warning(f"Skipping malformed generated question: {str(raw)[:200]}")
            return None

        type_name = str(raw.get("type") or QuestionType.SHORT_ANSWER.value).lower()
        try:
            question_type = TYPE_ALIASES.get(type_name) or QuestionType(type_name)
        except ValueError:
            question_type = QuestionType.SHORT_ANSWER

        try:
            difficulty = Difficulty(str(raw.get("difficulty") or default_difficulty.value).lower())
        except ValueError:
            difficulty = default_difficulty

        correct_answer = raw.get("correctAnswer", raw.get("correct_answer"))
        options = _normalize_options(raw.get("options") or [], correct_answer)

        return Question.from_dict({
            "id": f"q{index}_{batch}",
            "type": question_type.value,
            "question": str(raw["question"]),
            "points": _positive_number(raw.get("points"), float, 10),
            "difficulty": difficulty.value,
            "skills": _text_list(raw.get("skills")),
            "options": options,
            "correct_answer": None if options else correct_answer,
            "evaluation_criteria": {"key_points": _text_list(raw.get("keyPoints") or raw.get("key_points"))},
            "time_limit": _positive_number(raw.get("timeLimit") or raw.get("time_limit"), int, 300),
            "explanation": raw.get("explanation") or "",
            "hints": _text_list(raw.get("hints")),
            "order": index,
        })


def _positive_number(value: Any, cast: Callable[[float], Any], default: Any) -> Any:
    """Coerce a generated numeric field, using ``default`` for anything unusable."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number) or number <= 0:
        return default
    return cast(number)


def _text_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, (str, dict)):
        return [str(value)]
    if isinstance(value, list):
        return [str(item) for item in value if item not in (None, "")]
    return [str(value)]


def _normalize_options(raw_options: List[Any], correct_answer: Any) -> List[Dict[str, Any]]:
    """Give generated options stable ids and mark the correct ones."""
    if isinstance(correct_answer, list):
        correct = {str(c).strip().lower() for c in correct_answer}
    elif correct_answer is None:
        correct = set()
    else:
        correct = {str(correct_answer).strip().lower()}

    options = []
    for position, raw in enumerate(raw_options):
        option_id = string.ascii_lowercase[position] if position < 26 else str(position)
        if isinstance(raw, dict):
            text = str(raw.get("text", ""))
            is_correct = bool(raw.get("isCorrect", raw.get("is_correct", False)))
            option_id = str(raw.get("id") or option_id)
        else:
            text = str(raw)
            is_correct = False
        if text.strip().lower() in correct or option_id.lower() in correct:
            is_correct = True
        options.append({
            "id": option_id,
            "text": text,
            "is_correct": is_correct,
            "explanation": raw.get("explanation", "") if isinstance(raw, dict) else "",
        })
    return options
