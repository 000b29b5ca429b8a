"""
Completion Insights

Personalized feedback generated after a session completes. When the LLM is
unavailable or returns unusable output, a deterministic summary built from
the aggregated results is returned instead.
"""

import json
from typing import Any, Dict, List

from learnhub.assessments.aggregator import SessionResults
from learnhub.assessments.models import AssessmentDefinition
from learnhub.common.exceptions import UpstreamError
from learnhub.common.logger import app_logger, log_execution_time
from learnhub.llm import LLMGateway, Purpose

logger = app_logger.getChild("assessments.insights")

AI_CONFIDENCE = 85
FALLBACK_CONFIDENCE = 60


class InsightsGenerator:
    """Builds post-assessment insights through the ``analysis`` purpose."""

    def __init__(self, gateway: LLMGateway):
        self.gateway = gateway

    def build_messages(self, definition: AssessmentDefinition, results: SessionResults) -> List[Dict[str, str]]:
        prompt = f"""You are an educational AI assistant analyzing assessment results. Provide personalized learning insights and recommendations.

Assessment Details:
- Title: {definition.title}
- Category: {definition.category or 'general'}
- Final Score: {results.final_score}%
- Passed: {results.passed}
- Grade: {results.grade}
- Time Spent: {round(results.total_time_spent / 60)} minutes

Performance Breakdown:
- Strengths: {', '.join(results.strengths) or 'None identified'}
- Weaknesses: {', '.join(results.weaknesses) or 'None identified'}
- Score by Difficulty: {json.dumps(results.score_by_difficulty, sort_keys=True)}

Respond with a JSON object:
{{
  "overall_performance": "concise overall assessment",
  "strength_areas": ["areas of strength"],
  "improvement_areas": ["specific learning gaps"],
  "learning_recommendations": ["study recommendations"],
  "next_steps": ["actionable next steps"],
  "motivational_message": "short encouragement"
}}"""
        return [{"role": "system", "content": prompt}]

    @log_execution_time(logger)
    async def generate(self, definition: AssessmentDefinition, results: SessionResults) -> Dict[str, Any]:
        """
        Generate insights for a completed session.

        Never raises for upstream failures; those produce the fallback insights.
        """
        try:
            # Identical results get identical insights
            payload = await self.gateway.generate_json(
                self.build_messages(definition, results), Purpose.ANALYSIS, cacheable=True
            )
        except UpstreamError as e:
            logger.warning(f"Failed to generate AI insights for assessment {definition.id}: {e}")
            return self.fallback(definition, results)

        overall = payload.get("overall_performance") or payload.get("overallAssessment")
        if not overall:
            logger.warning(f"AI insights for assessment {definition.id} had no overall assessment")
            return self.fallback(definition, results)

        return {
            "overall_performance": str(overall),
            "strength_areas": _as_list(payload.get("strength_areas")),
            "improvement_areas": _as_list(payload.get("improvement_areas") or payload.get("learningGaps")),
            "learning_recommendations": _as_list(
                payload.get("learning_recommendations") or payload.get("studyRecommendations")
            ),
            "next_steps": _as_list(payload.get("next_steps") or payload.get("nextSteps")),
            "motivational_message": str(payload.get("motivational_message") or ""),
            "confidence_level": AI_CONFIDENCE,
            "generated_by": "ai",
        }

    @staticmethod
    def fallback(definition: AssessmentDefinition, results: SessionResults) -> Dict[str, Any]:
        if results.passed:
            next_steps = ["Continue to advanced topics", "Consider related assessments"]
            message = "Great work, you passed this assessment."
        else:
            next_steps = ["Review weak areas", "Practice more questions", "Retake assessment"]
            message = "Keep going, every attempt builds understanding."

        return {
            "overall_performance": f"Completed {definition.title} with {results.final_score}% score",
            "strength_areas": list(results.strengths),
            "improvement_areas": list(results.weaknesses),
            "learning_recommendations": [
                "Focus on identified weak areas",
                "Review related learning materials",
            ],
            "next_steps": next_steps,
            "motivational_message": message,
            "confidence_level": FALLBACK_CONFIDENCE,
            "generated_by": "fallback",
        }


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]
