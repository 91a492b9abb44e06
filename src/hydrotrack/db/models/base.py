"""Base model definitions, shared column types, and common enums.

This module provides:
- SQLAlchemy declarative base with naming conventions
- Portable column annotations (UUID keys, timestamps, JSON payloads)
- Enum types used across multiple models
"""

import enum
import uuid
from datetime import UTC, datetime
from typing import Annotated, Any

from sqlalchemy import JSON, DateTime, MetaData, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, mapped_column, registry

# Naming convention for constraints ensures consistent migration generation.
# See: https://alembic.sqlalchemy.org/en/latest/naming.html
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)

type_registry = registry()


def utcnow() -> datetime:
    """Timezone-aware current time used for application-side timestamps."""
    return datetime.now(UTC)


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONPayload = JSON().with_variant(JSONB(), "postgresql")

UUIDPrimaryKey = Annotated[
    uuid.UUID,
    mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4),
]

UUIDColumn = Annotated[uuid.UUID, mapped_column(Uuid(as_uuid=True), nullable=False)]

TimestampTZ = Annotated[
    datetime,
    mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    ),
]

OptionalTimestampTZ = Annotated[
    datetime | None,
    mapped_column(DateTime(timezone=True), nullable=True),
]

OptionalJSON = Annotated[dict[str, Any] | None, mapped_column(JSONPayload, nullable=True)]


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum values (not member names) in database enum types."""
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    """Declarative base for all Hydrotrack models."""

    metadata = metadata
    registry = type_registry


# =============================================================================
# Common Enums
# =============================================================================


class TestType(enum.Enum):
    """Pressure/leak test classification of a package."""

    __test__ = False  # keep pytest from collecting this enum

    HYDROSTATIC = "hydrostatic"
    PNEUMATIC = "pneumatic"
    SENSITIVE_LEAK = "sensitive_leak"
    ALTERNATIVE_LEAK = "alternative_leak"
    IN_SERVICE = "in_service"
    OTHER = "other"


class CertificateStatus(enum.Enum):
    """Submission phase of a test certificate.

    Values:
        DRAFT: Partially filled, no number issued
        FINAL: Validated and numbered; workflow stages instantiated
    """

    DRAFT = "draft"
    FINAL = "final"


class PressureUnit(enum.Enum):
    """Accepted test pressure units."""

    PSIG = "PSIG"
    PSI = "PSI"
    BAR = "BAR"
    KPA = "KPA"


class TemperatureUnit(enum.Enum):
    """Accepted temperature units.

    Each unit carries its absolute-zero value so plausibility checks can be
    expressed in the unit's own scale.
    """

    FAHRENHEIT = "F"
    CELSIUS = "C"
    KELVIN = "K"

    @property
    def absolute_zero(self) -> float:
        return _ABSOLUTE_ZERO[self]


_ABSOLUTE_ZERO = {
    TemperatureUnit.FAHRENHEIT: -459.67,
    TemperatureUnit.CELSIUS: -273.15,
    TemperatureUnit.KELVIN: 0.0,
}


class StageKind(enum.Enum):
    """The seven fixed acceptance stages, valued by their payload tag."""

    PRE_ACCEPTANCE = "pre_acceptance"
    TEST_ACCEPTANCE = "test_acceptance"
    DRAIN_FLUSH = "drain_flush"
    POST_ACCEPTANCE = "post_acceptance"
    COATINGS = "coatings"
    INSULATION = "insulation"
    FINAL_ACCEPTANCE = "final_acceptance"


class StageStatus(enum.Enum):
    """Workflow stage states.

    States:
        NOT_STARTED: Created with the stage sequence, untouched
        IN_PROGRESS: Work has begun on the stage
        COMPLETED: Stage data and sign-offs recorded
        SKIPPED: Stage waived with a recorded reason
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"

    @property
    def is_resolved(self) -> bool:
        """Completed and skipped both satisfy sequential gating."""
        return self in (StageStatus.COMPLETED, StageStatus.SKIPPED)


class AuditEventType(enum.Enum):
    """Audit log event categories."""

    PACKAGE_CREATED = "package_created"
    PACKAGE_UPDATED = "package_updated"
    PACKAGE_DELETED = "package_deleted"
    DRAWING_ASSIGNMENTS_ADDED = "drawing_assignments_added"
    DRAWING_ASSIGNMENT_REMOVED = "drawing_assignment_removed"
    COMPONENT_ASSIGNMENTS_ADDED = "component_assignments_added"
    COMPONENT_ASSIGNMENT_REMOVED = "component_assignment_removed"
    CERTIFICATE_FINALIZED = "certificate_finalized"
    STAGE_STARTED = "stage_started"
    STAGE_COMPLETED = "stage_completed"
    STAGE_SKIPPED = "stage_skipped"
    STAGE_EDITED = "stage_edited"
    PACKAGE_APPROVED = "package_approved"
