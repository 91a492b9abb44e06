"""Certificate models: test certificates and per-project number sequences.

A certificate is created as a draft and may stay partially filled
indefinitely. Its number is issued from CertificateSequence only when the
certificate is finalized, and the (project_id, certificate_number) unique
constraint backs the counter.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from decimal import Decimal  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from typing import TYPE_CHECKING

from sqlalchemy import Enum, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hydrotrack.db.models.base import (
    Base,
    CertificateStatus,
    OptionalTimestampTZ,
    TimestampTZ,
    UUIDColumn,
    UUIDPrimaryKey,
    enum_values,
)

if TYPE_CHECKING:
    from hydrotrack.db.models.packages import Package


class Certificate(Base):
    """Formal record of a package's test parameters (1:1 with package)."""

    __tablename__ = "certificates"

    certificate_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    package_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("packages.package_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    # Copied from the package; scopes certificate numbering
    project_id: Mapped[UUIDColumn]

    status: Mapped[CertificateStatus] = mapped_column(
        Enum(
            CertificateStatus,
            name="certificate_status",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
        default=CertificateStatus.DRAFT,
    )

    # Issued at finalization, never changed afterwards
    certificate_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Test parameters. Units are free text while drafting and checked
    # against PressureUnit/TemperatureUnit on final submission.
    test_pressure: Mapped[Decimal | None] = mapped_column(Numeric(12, 3), nullable=True)
    pressure_unit: Mapped[str | None] = mapped_column(String(10), nullable=True)
    test_medium: Mapped[str | None] = mapped_column(String(100), nullable=True)
    temperature: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    temperature_unit: Mapped[str | None] = mapped_column(String(10), nullable=True)

    # Descriptive fields
    client: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_spec: Mapped[str | None] = mapped_column(String(255), nullable=True)
    line_number: Mapped[str | None] = mapped_column(String(255), nullable=True)

    submitted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    submitted_at: Mapped[OptionalTimestampTZ]

    package: Mapped[Package] = relationship("Package", back_populates="certificate")

    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "certificate_number",
            name="uq_certificates_project_id_certificate_number",
        ),
        Index("ix_certificates_project_id", "project_id"),
    )


class CertificateSequence(Base):
    """Last issued certificate number for a project.

    Incremented with a single UPDATE ... RETURNING so the row lock serializes
    concurrent finalizations within a project.
    """

    __tablename__ = "certificate_sequences"

    project_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    last_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[TimestampTZ]
