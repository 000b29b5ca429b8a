"""
Completion Collaborators

Downstream services (certificates, learning progress, recommendations)
notified after a session completes. They are called sequentially and their
failures are logged by the session service, never propagated.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from learnhub.assessments.models import AssessmentDefinition, Session
from learnhub.common.logger import app_logger

logger = app_logger.getChild("assessments.collaborators")


class CompletionCollaborator(ABC):
    """Receives completed sessions."""

    name: str = "collaborator"

    @abstractmethod
    async def on_session_completed(
        self,
        session: Session,
        definition: AssessmentDefinition,
        results: Dict[str, Any]
    ) -> None:
        """
        Handle a completed session.

        Args:
            session: The completed session
            definition: The assessment the session belongs to
            results: Aggregated results stored on the session
        """


class CompletionLog(CompletionCollaborator):
    """Logs completions; useful as the default when no services are wired."""

    name = "completion_log"

    async def on_session_completed(self, session, definition, results):
        logger.info(
            f"Session {session.id} completed assessment {definition.id}: "
            f"{results.get('final_score')}% ({'PASSED' if results.get('passed') else 'FAILED'})"
        )


async def notify_collaborators(
    collaborators: List[CompletionCollaborator],
    session: Session,
    definition: AssessmentDefinition,
    results: Dict[str, Any]
) -> List[str]:
    """
    Notify every collaborator in order.

    Returns:
        Names of the collaborators that failed
    """
    failed = []
    for collaborator in collaborators:
        try:
            await collaborator.on_session_completed(session, definition, results)
        except Exception as e:
            logger.error(
                f"Completion collaborator {collaborator.name} failed for session {session.id}: {e}",
                exc_info=True,
            )
            failed.append(collaborator.name)
    return failed
