"""Package models: test packages and their assignment links.

A package owns components either by inheriting them from assigned drawings
or through direct component assignment. Direct assignment is globally unique
per component, enforced by the unique constraint on
package_component_assignments.component_id.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from datetime import date  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Date,
    Enum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hydrotrack.db.models.base import (
    Base,
    OptionalTimestampTZ,
    TestType,
    TimestampTZ,
    UUIDColumn,
    UUIDPrimaryKey,
    enum_values,
)

if TYPE_CHECKING:
    from hydrotrack.db.models.certificates import Certificate
    from hydrotrack.db.models.workflow import WorkflowStage


class Package(Base):
    """A named test package within a project."""

    __tablename__ = "packages"

    package_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    # Owning project (external, no FK)
    project_id: Mapped[UUIDColumn]

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    test_type: Mapped[TestType] = mapped_column(
        Enum(
            TestType,
            name="test_type",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
        default=TestType.HYDROSTATIC,
    )
    target_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Set when the final workflow stage is completed
    is_fully_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_at: Mapped[OptionalTimestampTZ]

    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    certificate: Mapped[Certificate | None] = relationship(
        "Certificate",
        back_populates="package",
        uselist=False,
        passive_deletes=True,
    )
    stages: Mapped[list[WorkflowStage]] = relationship(
        "WorkflowStage",
        back_populates="package",
        order_by="WorkflowStage.stage_order",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_packages_project_id_name"),
        Index("ix_packages_project_id", "project_id"),
        # Names are unique per project regardless of case
        Index("uq_packages_project_id_lower_name", "project_id", text("lower(name)"), unique=True),
    )


class PackageDrawingAssignment(Base):
    """Drawing-level assignment: the drawing's components are inherited."""

    __tablename__ = "package_drawing_assignments"

    assignment_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    package_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("packages.package_id", ondelete="CASCADE"),
        nullable=False,
    )
    # External catalog drawing (no FK, catalog is read-only to us)
    drawing_id: Mapped[UUIDColumn]

    assigned_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "package_id", "drawing_id", name="uq_package_drawing_assignments_package_drawing"
        ),
        Index("ix_package_drawing_assignments_drawing_id", "drawing_id"),
    )


class PackageComponentAssignment(Base):
    """Direct component assignment; explicit ownership overriding inheritance."""

    __tablename__ = "package_component_assignments"

    assignment_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    package_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("packages.package_id", ondelete="CASCADE"),
        nullable=False,
    )

    # One direct owner per component, globally
    component_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        unique=True,
    )

    assigned_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (Index("ix_package_component_assignments_package_id", "package_id"),)
