"""Drawing/component catalog tables.

These tables are owned by the catalog/import side of the platform. The
lifecycle engine only reads them (drawing -> component membership); it never
writes or deletes catalog rows.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Boolean, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from hydrotrack.db.models.base import Base, OptionalJSON, TimestampTZ, UUIDColumn, UUIDPrimaryKey


class Drawing(Base):
    """Technical drawing containing one or more components."""

    __tablename__ = "drawings"

    drawing_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    project_id: Mapped[UUIDColumn]
    drawing_no: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    revision: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_retired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("ix_drawings_project_id", "project_id"),)


class Component(Base):
    """Individual piping item (pipe, valve, fitting, weld...)."""

    __tablename__ = "components"

    component_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    project_id: Mapped[UUIDColumn]
    drawing_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("drawings.drawing_id", ondelete="SET NULL"),
        nullable=True,
    )
    component_type: Mapped[str] = mapped_column(String(50), nullable=False)
    identity_key: Mapped[OptionalJSON]
    is_retired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_components_project_id", "project_id"),
        Index("ix_components_drawing_id", "drawing_id"),
    )
