"""Package repository: package metadata and lifecycle.

Packages are named within a project (names compared case-insensitively).
Deleting a package removes its certificate, workflow stages, stage edit
records and assignment links in the caller's transaction and frees, never
deletes, the catalog components it owned. Certificate numbers already issued
are not reused.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from hydrotrack.db.models.base import AuditEventType, TestType, utcnow
from hydrotrack.db.models.certificates import Certificate
from hydrotrack.db.models.packages import Package
from hydrotrack.db.models.workflow import StageEditRecord, WorkflowStage
from hydrotrack.services.audit_log import AuditLogService
from hydrotrack.services.errors import (
    DuplicatePackageNameError,
    FieldValidationError,
    PackageNotFoundError,
)

if TYPE_CHECKING:
    from datetime import date
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from hydrotrack.services.authz import Actor
    from hydrotrack.services.catalog import CatalogProvider

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 200

# Sentinel for "field not provided" in partial updates
_UNSET = object()


@dataclass(frozen=True, slots=True)
class PackageDeletionResult:
    """Outcome of a package deletion.

    Attributes:
        package_id: The deleted package.
        freed_component_ids: Components the package owned, now unassigned.
        certificate_number: Number of the deleted certificate, if it was final.
    """

    package_id: UUID
    freed_component_ids: frozenset[UUID]
    certificate_number: int | None


def normalize_package_name(name: str | None) -> str:
    """Trim a package name and check it is usable.

    Raises:
        FieldValidationError: If the name is blank or too long.
    """
    cleaned = (name or "").strip()
    if not cleaned:
        raise FieldValidationError.single("name", "Package name is required")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise FieldValidationError.single(
            "name", f"Package name must be at most {MAX_NAME_LENGTH} characters"
        )
    return cleaned


class PackageRepository:
    """Create, read, update and delete test packages.

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._audit = AuditLogService(session)

    async def get_package(self, package_id: UUID) -> Package:
        """Get a package by ID.

        Raises:
            PackageNotFoundError: If the package does not exist.
        """
        result = await self._session.execute(
            select(Package).where(Package.package_id == package_id)
        )
        package = result.scalar_one_or_none()
        if package is None:
            raise PackageNotFoundError(package_id)
        return package

    async def list_packages(self, project_id: UUID) -> list[Package]:
        """List a project's packages ordered by name."""
        result = await self._session.execute(
            select(Package)
            .where(Package.project_id == project_id)
            .order_by(func.lower(Package.name), Package.created_at)
        )
        return list(result.scalars().all())

    async def _ensure_name_available(
        self,
        project_id: UUID,
        name: str,
        exclude_package_id: UUID | None = None,
    ) -> None:
        query = select(Package.package_id).where(
            Package.project_id == project_id,
            func.lower(Package.name) == name.lower(),
        )
        if exclude_package_id is not None:
            query = query.where(Package.package_id != exclude_package_id)
        result = await self._session.execute(query.limit(1))
        if result.scalar_one_or_none() is not None:
            raise DuplicatePackageNameError(project_id, name)

    async def _flush_or_duplicate(self, project_id: UUID, name: str) -> None:
        # The unique constraint catches a concurrent insert of the same name
        try:
            await self._session.flush()
        except IntegrityError as e:
            await self._session.rollback()
            raise DuplicatePackageNameError(project_id, name) from e

    async def create_package(
        self,
        project_id: UUID,
        name: str,
        *,
        actor: Actor,
        test_type: TestType = TestType.HYDROSTATIC,
        description: str | None = None,
        target_date: date | None = None,
    ) -> Package:
        """Create a package.

        Args:
            project_id: Owning project.
            name: Package name; trimmed and unique within the project.
            actor: Creator, recorded as created_by.
            test_type: Pressure/leak test classification.
            description: Optional free text.
            target_date: Optional planned test date.

        Returns:
            The new package.

        Raises:
            FieldValidationError: If the name is blank or too long.
            DuplicatePackageNameError: If the name is already taken.
        """
        cleaned = normalize_package_name(name)
        await self._ensure_name_available(project_id, cleaned)

        package = Package(
            project_id=project_id,
            name=cleaned,
            description=description,
            test_type=test_type,
            target_date=target_date,
            is_fully_approved=False,
            created_by=actor.label,
        )
        self._session.add(package)
        await self._flush_or_duplicate(project_id, cleaned)

        await self._audit.append(
            project_id=project_id,
            package_id=package.package_id,
            event_type=AuditEventType.PACKAGE_CREATED,
            entity_type="package",
            entity_id=str(package.package_id),
            actor=actor,
            new_value={"name": cleaned, "test_type": test_type},
        )

        logger.info(
            "Package created",
            extra={
                "package_id": str(package.package_id),
                "project_id": str(project_id),
                "test_type": test_type.value,
            },
        )
        return package

    async def update_package(
        self,
        package_id: UUID,
        *,
        actor: Actor,
        name: str | None = None,
        description: str | None | object = _UNSET,
        test_type: TestType | None = None,
        target_date: date | None | object = _UNSET,
    ) -> Package:
        """Update package metadata.

        Only provided fields change. description and target_date may be
        cleared by passing None explicitly.

        Raises:
            PackageNotFoundError: If the package does not exist.
            FieldValidationError: If the new name is blank or too long.
            DuplicatePackageNameError: If the new name is already taken.
        """
        package = await self.get_package(package_id)
        changes: dict[str, tuple[object, object]] = {}

        if name is not None:
            cleaned = normalize_package_name(name)
            if cleaned != package.name:
                await self._ensure_name_available(package.project_id, cleaned, package_id)
                changes["name"] = (package.name, cleaned)
                package.name = cleaned
        if description is not _UNSET and description != package.description:
            changes["description"] = (package.description, description)
            package.description = description  # type: ignore[assignment]
        if test_type is not None and test_type != package.test_type:
            changes["test_type"] = (package.test_type, test_type)
            package.test_type = test_type
        if target_date is not _UNSET and target_date != package.target_date:
            changes["target_date"] = (package.target_date, target_date)
            package.target_date = target_date  # type: ignore[assignment]

        if not changes:
            return package

        package.updated_at = utcnow()
        await self._flush_or_duplicate(package.project_id, package.name)

        await self._audit.append(
            project_id=package.project_id,
            package_id=package.package_id,
            event_type=AuditEventType.PACKAGE_UPDATED,
            entity_type="package",
            entity_id=str(package.package_id),
            actor=actor,
            old_value={k: old for k, (old, _) in changes.items()},
            new_value={k: new for k, (_, new) in changes.items()},
        )
        logger.info(
            "Package updated",
            extra={"package_id": str(package_id), "fields": sorted(changes)},
        )
        return package

    async def delete_package(
        self,
        package_id: UUID,
        *,
        actor: Actor,
        catalog: CatalogProvider | None = None,
    ) -> PackageDeletionResult:
        """Delete a package and everything hanging off it.

        Removes stage edit records, stages, the certificate and all
        assignment links, then the package row. Catalog components are left
        untouched; the ones the package owned are returned as freed.

        Raises:
            PackageNotFoundError: If the package does not exist.
        """
        from hydrotrack.services.assignments import AssignmentResolver

        package = await self.get_package(package_id)
        project_id = package.project_id
        name = package.name

        freed = await AssignmentResolver(self._session, catalog).unassign_package(package_id)

        stage_ids = list(
            (
                await self._session.execute(
                    select(WorkflowStage.stage_id).where(WorkflowStage.package_id == package_id)
                )
            )
            .scalars()
            .all()
        )
        if stage_ids:
            await self._session.execute(
                delete(StageEditRecord).where(StageEditRecord.stage_id.in_(stage_ids))
            )
            await self._session.execute(
                delete(WorkflowStage).where(WorkflowStage.package_id == package_id)
            )

        certificate_number = (
            await self._session.execute(
                select(Certificate.certificate_number).where(Certificate.package_id == package_id)
            )
        ).scalar_one_or_none()
        await self._session.execute(delete(Certificate).where(Certificate.package_id == package_id))
        await self._session.execute(delete(Package).where(Package.package_id == package_id))
        await self._session.flush()

        await self._audit.append(
            project_id=project_id,
            package_id=package_id,
            event_type=AuditEventType.PACKAGE_DELETED,
            entity_type="package",
            entity_id=str(package_id),
            actor=actor,
            old_value={
                "name": name,
                "certificate_number": certificate_number,
                "stage_count": len(stage_ids),
                "freed_component_ids": freed,
            },
        )

        logger.info(
            "Package deleted",
            extra={
                "package_id": str(package_id),
                "project_id": str(project_id),
                "freed_components": len(freed),
            },
        )
        return PackageDeletionResult(
            package_id=package_id,
            freed_component_ids=frozenset(freed),
            certificate_number=certificate_number,
        )
