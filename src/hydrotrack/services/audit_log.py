"""Append-only audit logging for package lifecycle events.

Records assignment changes, package deletions, certificate finalization and
stage transitions. Records are never updated or deleted, and they reference
packages by id only so that a deleted package keeps its history.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from hydrotrack.db.models.audit import AuditLogRecord
from hydrotrack.db.models.base import AuditEventType, utcnow

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from hydrotrack.services.authz import Actor

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuditLogEntry:
    """Immutable view of an audit log record.

    Attributes:
        record_id: Unique identifier for this record.
        project_id: Project the package belongs (or belonged) to.
        package_id: Package concerned, if any.
        event_type: Category of event.
        entity_type: Kind of entity touched (package, stage, component...).
        entity_id: Identifier of the entity touched.
        actor_ref: Who performed the action.
        old_value: State before the change.
        new_value: State after the change.
        reason: Free-text justification, when one is required.
        created_at: When the record was written.
    """

    record_id: uuid.UUID
    project_id: uuid.UUID
    package_id: uuid.UUID | None
    event_type: AuditEventType
    entity_type: str
    entity_id: str | None
    actor_ref: str | None
    old_value: dict[str, Any] | None
    new_value: dict[str, Any] | None
    reason: str | None
    created_at: datetime


def to_json_safe(value: Any) -> Any:
    """Convert ids, dates, decimals and enums to JSON-storable values."""
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        items = [to_json_safe(v) for v in value]
        return sorted(items, key=str) if isinstance(value, set | frozenset) else items
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


class AuditLogService:
    """Service for appending and reading lifecycle audit records.

    Example:
        audit = AuditLogService(session)
        await audit.append(
            project_id=package.project_id,
            package_id=package.package_id,
            event_type=AuditEventType.STAGE_SKIPPED,
            entity_type="workflow_stage",
            entity_id=str(stage.stage_id),
            actor=actor,
            reason="Not required by client spec",
        )
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the audit log service.

        Args:
            session: SQLAlchemy async session for database operations.
        """
        self._session = session

    async def append(
        self,
        *,
        project_id: uuid.UUID,
        event_type: AuditEventType,
        entity_type: str,
        package_id: uuid.UUID | None = None,
        entity_id: str | None = None,
        actor: Actor | None = None,
        old_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> AuditLogEntry:
        """Append a record; it is flushed with the caller's transaction.

        Returns:
            The created audit log entry.
        """
        record = AuditLogRecord(
            record_id=uuid.uuid4(),
            created_at=utcnow(),
            project_id=project_id,
            package_id=package_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_ref=actor.label if actor is not None else None,
            old_value=to_json_safe(old_value) if old_value is not None else None,
            new_value=to_json_safe(new_value) if new_value is not None else None,
            reason=reason,
        )
        self._session.add(record)
        await self._session.flush()

        logger.info(
            "Audit record appended",
            extra={
                "event_type": event_type.value,
                "package_id": str(package_id) if package_id else None,
                "entity_type": entity_type,
                "entity_id": entity_id,
            },
        )
        return self._to_entry(record)

    async def get_records(
        self,
        *,
        package_id: uuid.UUID | None = None,
        project_id: uuid.UUID | None = None,
        event_type: AuditEventType | None = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        """Read records, oldest first, filtered by package, project or type."""
        query = select(AuditLogRecord)
        if package_id is not None:
            query = query.where(AuditLogRecord.package_id == package_id)
        if project_id is not None:
            query = query.where(AuditLogRecord.project_id == project_id)
        if event_type is not None:
            query = query.where(AuditLogRecord.event_type == event_type)
        query = query.order_by(AuditLogRecord.created_at, AuditLogRecord.record_id).limit(limit)

        result = await self._session.execute(query)
        return [self._to_entry(r) for r in result.scalars().all()]

    @staticmethod
    def _to_entry(record: AuditLogRecord) -> AuditLogEntry:
        return AuditLogEntry(
            record_id=record.record_id,
            project_id=record.project_id,
            package_id=record.package_id,
            event_type=record.event_type,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            actor_ref=record.actor_ref,
            old_value=record.old_value,
            new_value=record.new_value,
            reason=record.reason,
            created_at=record.created_at,
        )
