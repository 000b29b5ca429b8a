"""
SQL Assessment Repositories

SQLAlchemy (asyncio) implementations of the assessment and session
repositories. Updates are conditional on the stored ``version`` so two
requests racing on the same session cannot silently overwrite each other.
"""

import datetime
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from learnhub.assessments.database_models import AssessmentRecord, SessionRecord
from learnhub.assessments.models import AssessmentDefinition, Session, SessionStatus
from learnhub.assessments.repositories import AssessmentRepository, SessionRepository
from learnhub.common.exceptions import ConcurrencyConflictError, DatabaseError
from learnhub.common.logger import app_logger

logger = app_logger.getChild("assessments.sql_repository")


def _naive_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value


class _SqlRepository:
    """Shared transactional scope for the SQL repositories."""

    domain_type = "assessment"

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[AsyncSession]:
        """
        Provide an async transactional scope around a series of operations.
        """
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except ConcurrencyConflictError:
            await session.rollback()
            raise
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database error in {self.domain_type} repository: {e}")
            raise DatabaseError(f"{self.domain_type} repository: {e}", e)
        finally:
            await session.close()


class SqlAssessmentRepository(_SqlRepository, AssessmentRepository):
    """Assessment definitions stored in the ``assessment`` table."""

    domain_type = "assessment"

    async def get_by_id(self, assessment_id: str) -> Optional[AssessmentDefinition]:
        async with self._session_scope() as session:
            record = await session.get(AssessmentRecord, assessment_id)
            if record is None:
                return None
            definition = AssessmentDefinition.from_dict(record.document)
            definition.version = record.version
            return definition

    async def save(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        new_version = definition.version + 1
        document = dict(definition.to_dict(), version=new_version)

        async with self._session_scope() as session:
            if definition.version == 0:
                session.add(AssessmentRecord(
                    id=definition.id,
                    title=definition.title,
                    document=document,
                    version=new_version,
                ))
                try:
                    await session.flush()
                except IntegrityError:
                    raise ConcurrencyConflictError("Assessment", definition.id, definition.version)
            else:
                result = await session.execute(
                    update(AssessmentRecord)
                    .where(AssessmentRecord.id == definition.id)
                    .where(AssessmentRecord.version == definition.version)
                    .values(title=definition.title, document=document, version=new_version)
                )
                if result.rowcount == 0:
                    raise ConcurrencyConflictError("Assessment", definition.id, definition.version)

        definition.version = new_version
        return definition


class SqlSessionRepository(_SqlRepository, SessionRepository):
    """Sessions stored in the ``assessment_session`` table."""

    domain_type = "session"

    @staticmethod
    def _to_session(record: SessionRecord) -> Session:
        session = Session.from_dict(record.document)
        session.version = record.version
        return session

    async def get_by_id(self, session_id: str) -> Optional[Session]:
        async with self._session_scope() as db:
            record = await db.get(SessionRecord, session_id)
            return self._to_session(record) if record else None

    async def add(self, session: Session) -> Session:
        document = dict(session.to_dict(), version=1)
        async with self._session_scope() as db:
            db.add(SessionRecord(
                id=session.id,
                user_id=session.user_id,
                assessment_id=session.assessment_id,
                attempt_number=session.attempt_number,
                status=session.status.value,
                last_activity=_naive_utc(session.time_tracking.last_activity),
                document=document,
                version=1,
            ))
            try:
                await db.flush()
            except IntegrityError:
                raise ConcurrencyConflictError("Session", session.id, session.version)
        session.version = 1
        return session

    async def save(self, session: Session) -> Session:
        new_version = session.version + 1
        document = dict(session.to_dict(), version=new_version)
        async with self._session_scope() as db:
            result = await db.execute(
                update(SessionRecord)
                .where(SessionRecord.id == session.id)
                .where(SessionRecord.version == session.version)
                .values(
                    status=session.status.value,
                    last_activity=_naive_utc(session.time_tracking.last_activity),
                    document=document,
                    version=new_version,
                )
            )
            if result.rowcount == 0:
                raise ConcurrencyConflictError("Session", session.id, session.version)
        session.version = new_version
        return session

    async def find_user_attempts(self, user_id: str, assessment_id: str) -> List[Session]:
        async with self._session_scope() as db:
            result = await db.execute(
                select(SessionRecord)
                .where(SessionRecord.user_id == user_id)
                .where(SessionRecord.assessment_id == assessment_id)
                .order_by(SessionRecord.attempt_number.desc())
            )
            return [self._to_session(record) for record in result.scalars()]

    async def find_inactive(self, cutoff: datetime.datetime) -> List[Session]:
        async with self._session_scope() as db:
            result = await db.execute(
                select(SessionRecord)
                .where(SessionRecord.status == SessionStatus.IN_PROGRESS.value)
                .where(SessionRecord.last_activity < _naive_utc(cutoff))
            )
            return [self._to_session(record) for record in result.scalars()]
