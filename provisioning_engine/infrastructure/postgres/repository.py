#provisioning_engine\infrastructure\postgres\repository.py

"""PostgreSQL state repository implementation using SQLAlchemy."""

from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from provisioning_engine.core.errors import (
    RecordAlreadyExists,
    RecordConcurrencyError,
    RecordNotFound,
)
from provisioning_engine.core.models import ResourceRecord
from provisioning_engine.core.repository import StateRepository
from provisioning_engine.infrastructure.postgres.database import (
    get_session_factory,
    session_scope,
)
from provisioning_engine.infrastructure.postgres.models import ResourceRecordORM


# ============================================
# Mapping Functions
# ============================================

def orm_to_domain(orm: ResourceRecordORM) -> ResourceRecord:
    """Convert ORM model to domain model."""
    return ResourceRecord(
        stack_name=orm.stack_name,
        logical_id=orm.logical_id,
        kind=orm.kind,
        state=orm.state,
        physical_id=orm.physical_id,
        outputs=dict(orm.outputs or {}),
        properties_hash=orm.properties_hash,
        error_message=orm.error_message,
        created_at=orm.created_at,
        updated_at=orm.updated_at,
        version=orm.version,
    )


def domain_to_orm(record: ResourceRecord) -> ResourceRecordORM:
    """Convert domain model to ORM model."""
    return ResourceRecordORM(
        stack_name=record.stack_name,
        logical_id=record.logical_id,
        kind=record.kind,
        state=record.state,
        physical_id=record.physical_id,
        outputs=record.outputs,
        properties_hash=record.properties_hash,
        error_message=record.error_message,
        created_at=record.created_at,
        updated_at=record.updated_at,
        version=record.version,
    )


# ============================================
# Repository Implementation
# ============================================

class PostgresStateRepository(StateRepository):
    """
    SQLAlchemy-backed state repository.

    Updates use a conditional UPDATE on ``version`` so two writers never
    silently overwrite each other.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory or get_session_factory()

    def create(self, record: ResourceRecord) -> None:
        try:
            with session_scope(self._session_factory) as session:
                session.add(domain_to_orm(record))
        except IntegrityError as e:
            raise RecordAlreadyExists(
                f"Record ({record.stack_name}, {record.logical_id}) already exists"
            ) from e

    def get(self, stack_name: str, logical_id: str) -> Optional[ResourceRecord]:
        with session_scope(self._session_factory) as session:
            orm = session.get(ResourceRecordORM, (stack_name, logical_id))
            return orm_to_domain(orm) if orm else None

    def update(self, record: ResourceRecord) -> None:
        now = datetime.now(timezone.utc)

        with session_scope(self._session_factory) as session:
            result = session.execute(
                update(ResourceRecordORM)
                .where(
                    ResourceRecordORM.stack_name == record.stack_name,
                    ResourceRecordORM.logical_id == record.logical_id,
                    ResourceRecordORM.version == record.version,
                )
                .values(
                    kind=record.kind,
                    state=record.state,
                    physical_id=record.physical_id,
                    outputs=record.outputs,
                    properties_hash=record.properties_hash,
                    error_message=record.error_message,
                    updated_at=now,
                    version=record.version + 1,
                )
            )

            if result.rowcount == 0:
                exists = session.get(ResourceRecordORM, (record.stack_name, record.logical_id))
                if exists is None:
                    raise RecordNotFound(
                        f"Record ({record.stack_name}, {record.logical_id}) not found"
                    )
                raise RecordConcurrencyError(
                    f"Record ({record.stack_name}, {record.logical_id}) version mismatch"
                )

        record.version += 1
        record.updated_at = now

    def delete(self, stack_name: str, logical_id: str) -> None:
        with session_scope(self._session_factory) as session:
            orm = session.get(ResourceRecordORM, (stack_name, logical_id))
            if orm is not None:
                session.delete(orm)

    def list_stack(self, stack_name: str) -> Iterable[ResourceRecord]:
        with session_scope(self._session_factory) as session:
            rows = (
                session.query(ResourceRecordORM)
                .filter(ResourceRecordORM.stack_name == stack_name)
                .order_by(ResourceRecordORM.created_at)
                .all()
            )
            return [orm_to_domain(r) for r in rows]
