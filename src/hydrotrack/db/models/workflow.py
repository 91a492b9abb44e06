"""Workflow models: acceptance stages and their edit history.

Each package gets exactly seven stage rows once its certificate is
finalized. Stage-specific data lives in a single JSON column whose shape is
selected by the stage kind; sign-offs are an open role -> signature map.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hydrotrack.db.models.base import (
    Base,
    OptionalJSON,
    OptionalTimestampTZ,
    StageKind,
    StageStatus,
    TimestampTZ,
    UUIDPrimaryKey,
    enum_values,
)

if TYPE_CHECKING:
    from hydrotrack.db.models.packages import Package


class WorkflowStage(Base):
    """One of the seven ordered acceptance stages of a package."""

    __tablename__ = "workflow_stages"

    stage_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    package_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("packages.package_id", ondelete="CASCADE"),
        nullable=False,
    )

    stage_kind: Mapped[StageKind] = mapped_column(
        Enum(
            StageKind,
            name="stage_kind",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
    )
    stage_order: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[StageStatus] = mapped_column(
        Enum(
            StageStatus,
            name="stage_status",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
        default=StageStatus.NOT_STARTED,
    )

    # Tagged payload, validated per stage kind
    stage_data: Mapped[OptionalJSON]
    # {role: {"name": ..., "date": "YYYY-MM-DD", "user_id": ...}}
    signoffs: Mapped[OptionalJSON]

    skip_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[OptionalTimestampTZ]
    completed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    completed_at: Mapped[OptionalTimestampTZ]
    last_edited_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_edited_at: Mapped[OptionalTimestampTZ]

    package: Mapped[Package] = relationship("Package", back_populates="stages")
    edits: Mapped[list[StageEditRecord]] = relationship(
        "StageEditRecord",
        back_populates="stage",
        order_by="StageEditRecord.edited_at",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("package_id", "stage_order", name="uq_workflow_stages_package_order"),
        CheckConstraint("stage_order BETWEEN 1 AND 7", name="stage_order_range"),
        Index("ix_workflow_stages_package_id", "package_id"),
    )


class StageEditRecord(Base):
    """Append-only audit entry for a correction made to a completed stage."""

    __tablename__ = "stage_edit_records"

    edit_id: Mapped[UUIDPrimaryKey]

    stage_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("workflow_stages.stage_id", ondelete="CASCADE"),
        nullable=False,
    )

    edited_by: Mapped[str] = mapped_column(String(255), nullable=False)
    edited_at: Mapped[TimestampTZ]
    change_description: Mapped[str] = mapped_column(Text, nullable=False)

    previous_data: Mapped[OptionalJSON]
    new_data: Mapped[OptionalJSON]
    previous_signoffs: Mapped[OptionalJSON]
    new_signoffs: Mapped[OptionalJSON]

    stage: Mapped[WorkflowStage] = relationship("WorkflowStage", back_populates="edits")

    __table_args__ = (Index("ix_stage_edit_records_stage_id", "stage_id"),)
