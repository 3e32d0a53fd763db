"""
SQLAlchemy base configuration for Identity Reconciliation System
This module sets up the SQLAlchemy declarative base and the shared
columns every table carries (id, timestamps, soft delete marker)
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    """Timezone-aware current UTC time for timestamp columns"""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models"""
    pass


class BaseModel(Base):
    """
    Abstract model with the bookkeeping columns shared by all tables
    """
    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
        comment="Creation timestamp, consistent with id ordering"
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

    deleted_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Soft delete marker; deleted rows are ignored by reconciliation"
    )

    def to_dict(self):
        """Column values keyed by attribute name"""
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}
