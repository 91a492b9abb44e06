"""Certificate manager: test parameters, two-phase submission, numbering.

A certificate starts as a draft that may stay partially filled. Final
submission validates the merged fields, takes the next project-scoped
number and instantiates the workflow stages, all in the caller's
transaction. Numbers come from a per-project counter row incremented with a
single UPDATE ... RETURNING; since the increment happens after validation,
a rejected submission never consumes a number and a rolled-back
transaction rolls the counter back with it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from hydrotrack.core.config import WorkflowSettings
from hydrotrack.db.models.base import (
    AuditEventType,
    CertificateStatus,
    PressureUnit,
    TemperatureUnit,
    utcnow,
)
from hydrotrack.db.models.certificates import Certificate, CertificateSequence
from hydrotrack.services.audit_log import AuditLogService
from hydrotrack.services.errors import (
    CertificateFinalizedError,
    CertificateNotFoundError,
    CertificateNumberConflictError,
    CertificateValidationError,
)
from hydrotrack.services.packages import PackageRepository
from hydrotrack.services.workflow import WorkflowEngine

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from hydrotrack.db.models.workflow import WorkflowStage
    from hydrotrack.services.authz import Actor

logger = logging.getLogger(__name__)

NUMERIC_FIELDS = ("test_pressure", "temperature")
UNIT_FIELDS = ("pressure_unit", "temperature_unit")
TEXT_FIELDS = ("test_medium", "client", "client_spec", "line_number")
CERTIFICATE_FIELDS = (*NUMERIC_FIELDS, *UNIT_FIELDS, *TEXT_FIELDS)

# (precision, scale) of the Numeric columns; values are rounded to the
# stored scale before any check runs
NUMERIC_COLUMNS = {"test_pressure": (12, 3), "temperature": (8, 2)}
MAX_LENGTHS = {
    "pressure_unit": 10,
    "temperature_unit": 10,
    "test_medium": 100,
    "client": 255,
    "client_spec": 255,
    "line_number": 255,
}

PRESSURE_UNITS = frozenset(u.value for u in PressureUnit)
TEMPERATURE_UNITS = frozenset(u.value for u in TemperatureUnit)


@dataclass(frozen=True, slots=True)
class CertificateSubmission:
    """Outcome of a final submission.

    Attributes:
        certificate: The finalized certificate.
        display_number: Number formatted with the configured prefix.
        stages: Workflow stages of the package after submission.
        newly_finalized: False when an already final certificate was resubmitted.
    """

    certificate: Certificate
    display_number: str
    stages: list[WorkflowStage]
    newly_finalized: bool


def format_certificate_number(number: int, prefix: str = "PKG-", width: int = 4) -> str:
    """Display form of a certificate number, e.g. ``PKG-0007``."""
    return f"{prefix}{number:0{width}d}"


def _column_limit(name: str) -> int:
    precision, scale = NUMERIC_COLUMNS[name]
    return 10 ** (precision - scale)


def _to_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("Must be a number")
    try:
        number = Decimal(str(value).strip()) if isinstance(value, (str, float)) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValueError("Must be a number") from e
    if not number.is_finite():
        raise ValueError("Must be a finite number")
    limit = _column_limit(name)
    if abs(number) < limit:
        step = Decimal(1).scaleb(-NUMERIC_COLUMNS[name][1])
        number = number.quantize(step, rounding=ROUND_HALF_UP)
    if abs(number) >= limit:
        raise ValueError(f"Must be between -{limit:,} and {limit:,}")
    return number


def _normalize_unit(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip().upper().removeprefix("°")
    return cleaned or None


def coerce_certificate_fields(
    fields: Mapping[str, Any],
) -> tuple[dict[str, Any], dict[str, list[str]]]:
    """Convert raw input to storable values.

    Numbers become Decimal rounded half-up to the stored scale, units are
    upper-cased, blank strings become None. Values that do not fit their
    column are errors. No business rules are applied here.

    Returns:
        (coerced values, field errors) for values that cannot be stored.
    """
    values: dict[str, Any] = {}
    errors: dict[str, list[str]] = {}
    for name, raw in fields.items():
        if name not in CERTIFICATE_FIELDS:
            errors.setdefault(name, []).append("Unknown certificate field")
            continue
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            values[name] = None
        elif name in NUMERIC_FIELDS:
            try:
                values[name] = _to_decimal(raw, name)
            except ValueError as e:
                errors.setdefault(name, []).append(str(e))
        else:
            text = _normalize_unit(raw) if name in UNIT_FIELDS else str(raw).strip()
            if text is not None and len(text) > MAX_LENGTHS[name]:
                errors.setdefault(name, []).append(
                    f"Must be at most {MAX_LENGTHS[name]} characters"
                )
            else:
                values[name] = text
    return values, errors


def validate_certificate_fields(values: Mapping[str, Any]) -> dict[str, list[str]]:
    """Business validation of coerced certificate values for final submission.

    Returns:
        Field errors; empty when the certificate may be finalized.
    """
    errors: dict[str, list[str]] = {}

    def add(field: str, message: str) -> None:
        errors.setdefault(field, []).append(message)

    pressure = values.get("test_pressure")
    if pressure is None:
        add("test_pressure", "Test pressure is required")
    elif not math.isfinite(pressure) or pressure <= 0:
        add("test_pressure", "Test pressure must be greater than 0")
    elif pressure >= _column_limit("test_pressure"):
        add("test_pressure", f"Test pressure must be less than {_column_limit('test_pressure'):,}")

    pressure_unit = values.get("pressure_unit")
    if pressure_unit is None:
        add("pressure_unit", "Pressure unit is required")
    elif pressure_unit not in PRESSURE_UNITS:
        add("pressure_unit", f"Pressure unit must be one of {', '.join(sorted(PRESSURE_UNITS))}")

    if not (values.get("test_medium") or "").strip():
        add("test_medium", "Test medium is required")

    temperature_unit = values.get("temperature_unit")
    unit: TemperatureUnit | None = None
    if temperature_unit is None:
        add("temperature_unit", "Temperature unit is required")
    elif temperature_unit not in TEMPERATURE_UNITS:
        add(
            "temperature_unit",
            f"Temperature unit must be one of {', '.join(sorted(TEMPERATURE_UNITS))}",
        )
    else:
        unit = TemperatureUnit(temperature_unit)

    temperature = values.get("temperature")
    if temperature is None:
        add("temperature", "Temperature is required")
    elif not math.isfinite(temperature):
        add("temperature", "Temperature must be a finite number")
    elif unit is not None and temperature <= Decimal(str(unit.absolute_zero)):
        add(
            "temperature",
            f"Temperature must be above absolute zero ({unit.absolute_zero} {unit.value})",
        )
    elif abs(temperature) >= _column_limit("temperature"):
        limit = _column_limit("temperature")
        add("temperature", f"Temperature must be between -{limit:,} and {limit:,}")

    return errors


class CertificateManager:
    """Drafts, finalizes and numbers package test certificates.

    Example:
        manager = CertificateManager(session)
        await manager.save_draft(package_id, {"test_medium": "Water"}, actor=actor)
        submission = await manager.submit_final(
            package_id,
            {"test_pressure": 150, "pressure_unit": "PSIG",
             "temperature": 70, "temperature_unit": "F"},
            actor=actor,
        )
        print(submission.display_number)  # PKG-0001
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: WorkflowSettings | None = None,
        workflow: WorkflowEngine | None = None,
    ) -> None:
        """Initialize the certificate manager.

        Args:
            session: SQLAlchemy async session for database operations.
            settings: Numbering display settings.
            workflow: Engine used to instantiate stages on finalization.
        """
        self._session = session
        self._settings = settings or WorkflowSettings()
        self._workflow = workflow or WorkflowEngine(session)
        self._packages = PackageRepository(session)
        self._audit = AuditLogService(session)

    def display_number(self, certificate: Certificate) -> str | None:
        if certificate.certificate_number is None:
            return None
        return format_certificate_number(
            certificate.certificate_number,
            self._settings.certificate_prefix,
            self._settings.certificate_number_width,
        )

    async def _find(self, package_id: UUID) -> Certificate | None:
        result = await self._session.execute(
            select(Certificate).where(Certificate.package_id == package_id)
        )
        return result.scalar_one_or_none()

    async def get_certificate(self, package_id: UUID) -> Certificate:
        """Get a package's certificate.

        Raises:
            PackageNotFoundError: If the package does not exist.
            CertificateNotFoundError: If nothing has been saved yet.
        """
        await self._packages.get_package(package_id)
        certificate = await self._find(package_id)
        if certificate is None:
            raise CertificateNotFoundError(package_id)
        return certificate

    async def save_draft(
        self,
        package_id: UUID,
        fields: Mapping[str, Any],
        *,
        actor: Actor,
    ) -> Certificate:
        """Persist any subset of certificate fields without business checks.

        Raises:
            PackageNotFoundError: If the package does not exist.
            CertificateFinalizedError: If the certificate is already final.
            CertificateValidationError: If a value cannot be stored at all.
        """
        package = await self._packages.get_package(package_id)
        certificate = await self._find(package_id)
        if certificate is not None and certificate.status == CertificateStatus.FINAL:
            raise CertificateFinalizedError(package_id, certificate.certificate_number)

        values, errors = coerce_certificate_fields(fields)
        if errors:
            raise CertificateValidationError(errors)

        if certificate is None:
            certificate = Certificate(
                package_id=package_id,
                project_id=package.project_id,
                status=CertificateStatus.DRAFT,
            )
            self._session.add(certificate)

        for name, value in values.items():
            setattr(certificate, name, value)
        certificate.updated_at = utcnow()
        await self._session.flush()

        logger.debug(
            "Certificate draft saved",
            extra={"package_id": str(package_id), "fields": sorted(values), "actor": actor.label},
        )
        return certificate

    async def submit_final(
        self,
        package_id: UUID,
        fields: Mapping[str, Any] | None = None,
        *,
        actor: Actor,
    ) -> CertificateSubmission:
        """Validate and finalize a certificate.

        Fields are merged over the stored draft. On failure nothing is
        written. On first finalization the next project number is issued
        and the workflow stages are created; resubmitting a final
        certificate updates its fields but keeps its number and stages.

        Raises:
            PackageNotFoundError: If the package does not exist.
            CertificateValidationError: With field -> messages on failure.
            CertificateNumberConflictError: If the issued number collides.
        """
        package = await self._packages.get_package(package_id)
        certificate = await self._find(package_id)

        merged: dict[str, Any] = {
            name: getattr(certificate, name) if certificate is not None else None
            for name in CERTIFICATE_FIELDS
        }
        values, errors = coerce_certificate_fields(fields or {})
        merged.update(values)
        for field, messages in validate_certificate_fields(merged).items():
            if field not in errors:
                errors[field] = messages
        if errors:
            logger.info(
                "Certificate submission rejected",
                extra={"package_id": str(package_id), "fields": sorted(errors)},
            )
            raise CertificateValidationError(errors)

        if certificate is None:
            certificate = Certificate(package_id=package_id, project_id=package.project_id)
            self._session.add(certificate)

        for name, value in merged.items():
            setattr(certificate, name, value)
        now = utcnow()
        certificate.updated_at = now

        newly_finalized = certificate.status != CertificateStatus.FINAL
        if newly_finalized:
            certificate.certificate_number = await self._next_number(package.project_id)
            certificate.status = CertificateStatus.FINAL
            certificate.submitted_by = actor.label
            certificate.submitted_at = now

        try:
            await self._session.flush()
        except IntegrityError as e:
            await self._session.rollback()
            raise CertificateNumberConflictError(
                package.project_id, certificate.certificate_number
            ) from e

        if newly_finalized:
            stages = await self._workflow.instantiate_stages(package_id)
            await self._audit.append(
                project_id=package.project_id,
                package_id=package_id,
                event_type=AuditEventType.CERTIFICATE_FINALIZED,
                entity_type="certificate",
                entity_id=str(certificate.certificate_id),
                actor=actor,
                new_value={"certificate_number": certificate.certificate_number, **merged},
            )
            logger.info(
                "Certificate finalized",
                extra={
                    "package_id": str(package_id),
                    "project_id": str(package.project_id),
                    "certificate_number": certificate.certificate_number,
                },
            )
        else:
            stages = await self._workflow.list_stages(package_id)

        return CertificateSubmission(
            certificate=certificate,
            display_number=self.display_number(certificate) or "",
            stages=stages,
            newly_finalized=newly_finalized,
        )

    async def _next_number(self, project_id: UUID) -> int:
        """Atomically take the next certificate number for a project.

        The UPDATE holds the counter row lock until the caller's transaction
        ends, which serializes concurrent finalizations in the project.
        """
        await self._ensure_sequence(project_id)
        result = await self._session.execute(
            update(CertificateSequence)
            .where(CertificateSequence.project_id == project_id)
            .values(last_number=CertificateSequence.last_number + 1, updated_at=utcnow())
            .returning(CertificateSequence.last_number)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one()

    async def _ensure_sequence(self, project_id: UUID) -> None:
        dialect = self._session.get_bind().dialect.name
        values = {"project_id": project_id, "last_number": 0, "updated_at": utcnow()}

        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            existing = await self._session.get(CertificateSequence, project_id)
            if existing is None:
                self._session.add(CertificateSequence(**values))
                await self._session.flush()
            return

        await self._session.execute(
            insert(CertificateSequence)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["project_id"])
        )
