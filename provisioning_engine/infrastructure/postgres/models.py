#provisioning_engine\infrastructure\postgres\models.py
"""SQLAlchemy ORM models for database tables."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum as SQLEnum, Integer, JSON, String, Text

from provisioning_engine.core.models import ResourceKind, ResourceState
from provisioning_engine.infrastructure.postgres.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class ResourceRecordORM(Base):
    """
    Resource records table - provisioning state per stack.

    Indexes:
    - Composite primary key on (stack_name, logical_id)
    - Index on state for status queries
    """

    __tablename__ = "resource_records"

    # Primary key
    stack_name = Column(String(128), primary_key=True)
    logical_id = Column(String(128), primary_key=True)

    kind = Column(SQLEnum(ResourceKind, name="resource_kind"), nullable=False)
    state = Column(
        SQLEnum(ResourceState, name="resource_state"),
        nullable=False,
        default=ResourceState.PENDING,
        index=True,
    )

    # Provider side
    physical_id = Column(String(255), nullable=True)
    outputs = Column(JSON, nullable=False, default=dict)
    properties_hash = Column(String(64), nullable=True)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # Optimistic concurrency
    version = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return (
            f"<ResourceRecord(stack={self.stack_name}, id={self.logical_id}, "
            f"state={self.state.value if self.state else None})>"
        )
