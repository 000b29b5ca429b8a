"""
SQLAlchemy ORM models for assessments.

Definitions and sessions are stored as JSON documents next to the scalar
columns the repositories filter on:
- AssessmentRecord: one assessment definition
- SessionRecord: one user session, indexed by user, assessment, status and activity
"""

import datetime

from sqlalchemy import Column, DateTime, Index, Integer, JSON, String

from learnhub.database.base import ModelBase


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class AssessmentRecord(ModelBase):
    """Stored assessment definition."""
    __tablename__ = 'assessment'

    id = Column(String(255), primary_key=True)
    title = Column(String(255), nullable=False, default="")
    document = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)


class SessionRecord(ModelBase):
    """Stored assessment session."""
    __tablename__ = 'assessment_session'

    id = Column(String(64), primary_key=True)
    user_id = Column(String(255), nullable=False, index=True)
    assessment_id = Column(String(255), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False, default=1)
    status = Column(String(32), nullable=False, index=True)
    # Naive UTC, so comparisons behave the same on SQLite and PostgreSQL
    last_activity = Column(DateTime, nullable=False)
    document = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        Index('ix_assessment_session_user_assessment', 'user_id', 'assessment_id'),
        Index('ix_assessment_session_status_activity', 'status', 'last_activity'),
    )
