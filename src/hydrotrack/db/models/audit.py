"""Audit log records for package lifecycle events.

Records are append-only and deliberately carry no foreign keys so that the
history of a package survives its deletion.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Enum, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from hydrotrack.db.models.base import (
    AuditEventType,
    Base,
    OptionalJSON,
    TimestampTZ,
    UUIDColumn,
    UUIDPrimaryKey,
    enum_values,
)


class AuditLogRecord(Base):
    """One lifecycle event: who did what to which package, and when."""

    __tablename__ = "audit_log_records"

    record_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    project_id: Mapped[UUIDColumn]
    package_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    event_type: Mapped[AuditEventType] = mapped_column(
        Enum(
            AuditEventType,
            name="audit_event_type",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
    )

    # Entity touched by the event (package, stage, component, drawing...)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    actor_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    old_value: Mapped[OptionalJSON]
    new_value: Mapped[OptionalJSON]
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_audit_log_records_package_id", "package_id"),
        Index("ix_audit_log_records_project_created", "project_id", "created_at"),
    )
