"""
Assessment Repositories

This module defines the repository interfaces used by the session service and
in-memory implementations for development and testing.

Every save is guarded by the document's ``version``: the stored version must
equal the caller's copy, otherwise ``ConcurrencyConflictError`` is raised and
nothing is written. A successful save increments the version on the caller's
object.
"""

import datetime
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from learnhub.assessments.models import AssessmentDefinition, Session, SessionStatus
from learnhub.common.exceptions import ConcurrencyConflictError


class AssessmentRepository(ABC):
    """Storage for assessment definitions."""

    @abstractmethod
    async def get_by_id(self, assessment_id: str) -> Optional[AssessmentDefinition]:
        """
        Retrieve a definition by its ID.

        Args:
            assessment_id: The definition's identifier

        Returns:
            The definition if found, None otherwise
        """

    @abstractmethod
    async def save(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        """
        Insert or update a definition.

        Raises:
            ConcurrencyConflictError: the stored version differs from ``definition.version``
        """


class SessionRepository(ABC):
    """Storage for assessment sessions."""

    @abstractmethod
    async def get_by_id(self, session_id: str) -> Optional[Session]:
        """Retrieve a session by its ID, or None."""

    @abstractmethod
    async def add(self, session: Session) -> Session:
        """Insert a new session."""

    @abstractmethod
    async def save(self, session: Session) -> Session:
        """
        Update an existing session.

        Raises:
            ConcurrencyConflictError: the session changed since it was read
        """

    @abstractmethod
    async def find_user_attempts(self, user_id: str, assessment_id: str) -> List[Session]:
        """All of a user's sessions for one assessment, newest attempt first."""

    @abstractmethod
    async def find_inactive(self, cutoff: datetime.datetime) -> List[Session]:
        """In-progress sessions whose last activity is older than ``cutoff``."""


class InMemoryAssessmentRepository(AssessmentRepository):
    """
    In-memory implementation of the AssessmentRepository.

    Definitions are stored as serialized documents so callers never share
    mutable state with the store.
    """

    def __init__(self, initial_data: Optional[List[AssessmentDefinition]] = None):
        self._documents: Dict[str, dict] = {}
        for definition in initial_data or []:
            self._documents[definition.id] = definition.to_dict()

    async def get_by_id(self, assessment_id: str) -> Optional[AssessmentDefinition]:
        document = self._documents.get(assessment_id)
        return AssessmentDefinition.from_dict(document) if document else None

    async def save(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        stored = self._documents.get(definition.id)
        if stored is not None and stored.get("version", 0) != definition.version:
            raise ConcurrencyConflictError("Assessment", definition.id, definition.version)
        definition.version += 1
        self._documents[definition.id] = definition.to_dict()
        return definition


class InMemorySessionRepository(SessionRepository):
    """In-memory implementation of the SessionRepository."""

    def __init__(self):
        self._documents: Dict[str, dict] = {}

    async def get_by_id(self, session_id: str) -> Optional[Session]:
        document = self._documents.get(session_id)
        return Session.from_dict(document) if document else None

    async def add(self, session: Session) -> Session:
        if session.id in self._documents:
            raise ConcurrencyConflictError("Session", session.id, session.version)
        session.version = 1
        self._documents[session.id] = session.to_dict()
        return session

    async def save(self, session: Session) -> Session:
        stored = self._documents.get(session.id)
        if stored is None or stored.get("version", 0) != session.version:
            raise ConcurrencyConflictError("Session", session.id, session.version)
        session.version += 1
        self._documents[session.id] = session.to_dict()
        return session

    async def find_user_attempts(self, user_id: str, assessment_id: str) -> List[Session]:
        sessions = [
            Session.from_dict(doc) for doc in self._documents.values()
            if doc["user_id"] == user_id and doc["assessment_id"] == assessment_id
        ]
        return sorted(sessions, key=lambda s: s.attempt_number, reverse=True)

    async def find_inactive(self, cutoff: datetime.datetime) -> List[Session]:
        sessions = [Session.from_dict(doc) for doc in self._documents.values()]
        return [
            s for s in sessions
            if s.status == SessionStatus.IN_PROGRESS and s.time_tracking.last_activity < cutoff
        ]
