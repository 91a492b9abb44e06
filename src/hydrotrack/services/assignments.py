"""Assignment resolver: package membership and component ownership.

A package gets components in two ways:
- drawing assignment: every active component of the drawing is inherited
- direct assignment: explicit ownership, globally unique per component

Direct assignment always wins. The effective member set of a package is
computed on demand and never stored:

    members(P) = direct(P) | (components(drawings(P)) - direct(any other package))

The one-direct-owner rule is checked under SELECT ... FOR UPDATE in the
caller's transaction and backed by the unique constraint on
package_component_assignments.component_id.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from hydrotrack.db.models.base import AuditEventType
from hydrotrack.db.models.packages import (
    Package,
    PackageComponentAssignment,
    PackageDrawingAssignment,
)
from hydrotrack.services.audit_log import AuditLogService
from hydrotrack.services.catalog import CatalogProvider, SqlCatalog
from hydrotrack.services.errors import (
    AssignmentConflictError,
    FieldValidationError,
    NotFoundError,
)
from hydrotrack.services.packages import PackageRepository

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from hydrotrack.services.authz import Actor

logger = logging.getLogger(__name__)


class MembershipSource(str, Enum):
    """How a component came to belong to a package."""

    DIRECT = "direct"
    INHERITED = "inherited"


@dataclass(frozen=True, slots=True)
class ComponentMembership:
    """One resolved member of a package."""

    component_id: UUID
    source: MembershipSource
    drawing_id: UUID | None


@dataclass(frozen=True, slots=True)
class ComponentOwner:
    """Current direct owner of a component."""

    component_id: UUID
    package_id: UUID
    package_name: str


@dataclass(frozen=True, slots=True)
class AssignmentSummary:
    """Assignment state of a package after a change.

    Attributes:
        package_id: The package.
        drawing_ids: Drawings assigned to the package.
        direct_component_ids: Components directly assigned to the package.
        resolved_component_ids: Effective member set.
        added_ids: Drawings or components newly linked by this call.
    """

    package_id: UUID
    drawing_ids: frozenset[UUID]
    direct_component_ids: frozenset[UUID]
    resolved_component_ids: frozenset[UUID]
    added_ids: frozenset[UUID]

    @property
    def is_empty(self) -> bool:
        """True when the package has no members; callers surface a warning."""
        return not self.resolved_component_ids


@dataclass(frozen=True, slots=True)
class DrawingAssignmentPreview:
    """Per-drawing availability for the assignment picker.

    A component is unavailable once it is directly owned by a package
    (other than the package being edited, when one is given).
    """

    drawing_id: UUID
    drawing_no: str
    title: str | None
    component_count: int
    available_count: int

    @property
    def assigned_count(self) -> int:
        return self.component_count - self.available_count

    @property
    def is_fully_assigned(self) -> bool:
        return self.component_count > 0 and self.available_count == 0


def _dedupe(ids: Iterable[UUID]) -> list[UUID]:
    return list(dict.fromkeys(ids))


class AssignmentResolver:
    """Computes package membership and enforces direct-ownership uniqueness.

    Example:
        resolver = AssignmentResolver(session)
        await resolver.assign_drawings(package_id, [drawing_id], actor=actor)
        members = await resolver.resolve_components(package_id)
    """

    def __init__(self, session: AsyncSession, catalog: CatalogProvider | None = None) -> None:
        """Initialize the resolver.

        Args:
            session: SQLAlchemy async session for database operations.
            catalog: Catalog reader; defaults to the catalog tables.
        """
        self._session = session
        self._catalog = catalog or SqlCatalog(session)
        self._packages = PackageRepository(session)
        self._audit = AuditLogService(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _drawing_ids(self, package_id: UUID) -> set[UUID]:
        result = await self._session.execute(
            select(PackageDrawingAssignment.drawing_id).where(
                PackageDrawingAssignment.package_id == package_id
            )
        )
        return set(result.scalars().all())

    async def _direct_component_ids(self, package_id: UUID) -> set[UUID]:
        result = await self._session.execute(
            select(PackageComponentAssignment.component_id).where(
                PackageComponentAssignment.package_id == package_id
            )
        )
        return set(result.scalars().all())

    async def resolve_membership(self, package_id: UUID) -> list[ComponentMembership]:
        """Effective members of a package, each tagged with its source.

        Retired components are excluded. Direct members come first, then
        inherited ones, each group in a stable order.

        Raises:
            PackageNotFoundError: If the package does not exist.
        """
        package = await self._packages.get_package(package_id)

        direct = await self._catalog.existing_components(
            package.project_id, await self._direct_component_ids(package_id)
        )
        drawing_ids = await self._drawing_ids(package_id)
        drawing_components = await self._catalog.components_for_drawings(
            package.project_id, drawing_ids
        )

        candidates = {c.component_id for c in drawing_components} - direct
        owned_elsewhere: set[UUID] = set()
        if candidates:
            result = await self._session.execute(
                select(PackageComponentAssignment.component_id).where(
                    PackageComponentAssignment.component_id.in_(candidates),
                    PackageComponentAssignment.package_id != package_id,
                )
            )
            owned_elsewhere = set(result.scalars().all())

        members = [
            ComponentMembership(component_id=cid, source=MembershipSource.DIRECT, drawing_id=None)
            for cid in sorted(direct, key=str)
        ]
        members.extend(
            ComponentMembership(
                component_id=c.component_id,
                source=MembershipSource.INHERITED,
                drawing_id=c.drawing_id,
            )
            for c in sorted(drawing_components, key=lambda c: str(c.component_id))
            if c.component_id in candidates and c.component_id not in owned_elsewhere
        )
        return members

    async def resolve_components(self, package_id: UUID) -> frozenset[UUID]:
        """Effective member set of a package (direct | unowned inherited)."""
        return frozenset(m.component_id for m in await self.resolve_membership(package_id))

    async def get_component_owner(self, component_id: UUID) -> ComponentOwner | None:
        """Package that directly owns a component, if any."""
        result = await self._session.execute(
            select(PackageComponentAssignment.package_id, Package.name)
            .join(Package, Package.package_id == PackageComponentAssignment.package_id)
            .where(PackageComponentAssignment.component_id == component_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return ComponentOwner(component_id=component_id, package_id=row[0], package_name=row[1])

    async def get_summary(
        self, package_id: UUID, added_ids: Iterable[UUID] = ()
    ) -> AssignmentSummary:
        return AssignmentSummary(
            package_id=package_id,
            drawing_ids=frozenset(await self._drawing_ids(package_id)),
            direct_component_ids=frozenset(await self._direct_component_ids(package_id)),
            resolved_component_ids=await self.resolve_components(package_id),
            added_ids=frozenset(added_ids),
        )

    async def preview_drawings(
        self,
        project_id: UUID,
        for_package_id: UUID | None = None,
    ) -> list[DrawingAssignmentPreview]:
        """Availability of each active drawing's components.

        Args:
            project_id: Project whose drawings to list.
            for_package_id: Package being edited; its own direct components
                count as available.
        """
        summaries = await self._catalog.drawing_summaries(project_id)
        all_ids = {cid for s in summaries for cid in s.component_ids}

        owned: set[UUID] = set()
        if all_ids:
            query = select(PackageComponentAssignment.component_id).where(
                PackageComponentAssignment.component_id.in_(all_ids)
            )
            if for_package_id is not None:
                query = query.where(PackageComponentAssignment.package_id != for_package_id)
            owned = set((await self._session.execute(query)).scalars().all())

        return [
            DrawingAssignmentPreview(
                drawing_id=s.drawing_id,
                drawing_no=s.drawing_no,
                title=s.title,
                component_count=len(s.component_ids),
                available_count=len(s.component_ids - owned),
            )
            for s in summaries
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def assign_drawings(
        self,
        package_id: UUID,
        drawing_ids: Iterable[UUID],
        *,
        actor: Actor,
    ) -> AssignmentSummary:
        """Link drawings to a package; their unowned components are inherited.

        Already-linked drawings are ignored. No uniqueness check applies:
        inheritance only claims components nobody owns directly.

        Raises:
            PackageNotFoundError: If the package does not exist.
            FieldValidationError: If a drawing is unknown, retired, or from
                another project.
        """
        package = await self._packages.get_package(package_id)
        requested = _dedupe(drawing_ids)

        known = await self._catalog.existing_drawings(package.project_id, requested)
        unknown = [d for d in requested if d not in known]
        if unknown:
            raise FieldValidationError(
                {"drawing_ids": [f"Unknown or retired drawing: {d}" for d in unknown]}
            )

        already = await self._drawing_ids(package_id)
        added = [d for d in requested if d not in already]
        for drawing_id in added:
            self._session.add(
                PackageDrawingAssignment(
                    package_id=package_id,
                    drawing_id=drawing_id,
                    assigned_by=actor.label,
                )
            )
        await self._session.flush()

        if added:
            await self._audit.append(
                project_id=package.project_id,
                package_id=package_id,
                event_type=AuditEventType.DRAWING_ASSIGNMENTS_ADDED,
                entity_type="drawing",
                actor=actor,
                new_value={"drawing_ids": added},
            )
            logger.info(
                "Drawings assigned to package",
                extra={"package_id": str(package_id), "count": len(added)},
            )
        return await self.get_summary(package_id, added)

    async def _conflict_error(
        self, package_id: UUID, component_ids: Iterable[UUID]
    ) -> AssignmentConflictError:
        """Build the conflict for the first component owned elsewhere.

        The owner is reported as unknown when it cannot be read back.
        """
        ordered = sorted(component_ids, key=str)
        for component_id in ordered:
            owner = await self.get_component_owner(component_id)
            if owner is not None and owner.package_id != package_id:
                logger.warning(
                    "Component assignment conflict",
                    extra={
                        "package_id": str(package_id),
                        "component_id": str(component_id),
                        "owner_package_id": str(owner.package_id),
                    },
                )
                return AssignmentConflictError(component_id, owner.package_id, owner.package_name)
        logger.warning(
            "Component assignment conflict with unknown owner",
            extra={"package_id": str(package_id), "component_id": str(ordered[0])},
        )
        return AssignmentConflictError(ordered[0], None, None)

    async def assign_components(
        self,
        package_id: UUID,
        component_ids: Iterable[UUID],
        *,
        actor: Actor,
    ) -> AssignmentSummary:
        """Directly assign components to a package.

        All-or-nothing: if any component is directly owned by another
        package nothing is written. Components inherited by another package
        through a drawing may be taken. Re-assigning to the same package is
        a no-op.

        On a unique-constraint race the session is rolled back before the
        conflict is raised, so callers should run this as its own unit of
        work.

        Raises:
            PackageNotFoundError: If the package does not exist.
            FieldValidationError: If a component is unknown, retired, or
                from another project.
            AssignmentConflictError: If a component has another direct owner.
        """
        package = await self._packages.get_package(package_id)
        project_id = package.project_id
        requested = _dedupe(component_ids)

        known = await self._catalog.existing_components(project_id, requested)
        unknown = [c for c in requested if c not in known]
        if unknown:
            raise FieldValidationError(
                {"component_ids": [f"Unknown or retired component: {c}" for c in unknown]}
            )
        if not requested:
            return await self.get_summary(package_id)

        # Lock existing ownership rows for the rest of the transaction
        result = await self._session.execute(
            select(PackageComponentAssignment)
            .where(PackageComponentAssignment.component_id.in_(requested))
            .with_for_update()
        )
        existing = {a.component_id: a.package_id for a in result.scalars().all()}

        conflicting = [c for c in requested if existing.get(c, package_id) != package_id]
        if conflicting:
            raise await self._conflict_error(package_id, conflicting)

        added = [c for c in requested if c not in existing]
        for component_id in added:
            self._session.add(
                PackageComponentAssignment(
                    package_id=package_id,
                    component_id=component_id,
                    assigned_by=actor.label,
                )
            )
        try:
            await self._session.flush()
        except IntegrityError as e:
            # A concurrent transaction took one of the components first
            await self._session.rollback()
            raise await self._conflict_error(package_id, added) from e

        if added:
            await self._audit.append(
                project_id=project_id,
                package_id=package_id,
                event_type=AuditEventType.COMPONENT_ASSIGNMENTS_ADDED,
                entity_type="component",
                actor=actor,
                new_value={"component_ids": added},
            )
            logger.info(
                "Components assigned to package",
                extra={"package_id": str(package_id), "count": len(added)},
            )
        return await self.get_summary(package_id, added)

    async def remove_drawing_assignment(
        self,
        package_id: UUID,
        drawing_id: UUID,
        *,
        actor: Actor,
    ) -> AssignmentSummary:
        """Unlink one drawing; its inherited components leave the package.

        Raises:
            PackageNotFoundError: If the package does not exist.
            NotFoundError: If the drawing is not assigned to the package.
        """
        package = await self._packages.get_package(package_id)
        result = await self._session.execute(
            delete(PackageDrawingAssignment).where(
                PackageDrawingAssignment.package_id == package_id,
                PackageDrawingAssignment.drawing_id == drawing_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Drawing assignment", f"{package_id}/{drawing_id}")

        await self._audit.append(
            project_id=package.project_id,
            package_id=package_id,
            event_type=AuditEventType.DRAWING_ASSIGNMENT_REMOVED,
            entity_type="drawing",
            entity_id=str(drawing_id),
            actor=actor,
        )
        return await self.get_summary(package_id)

    async def remove_component_assignment(
        self,
        package_id: UUID,
        component_id: UUID,
        *,
        actor: Actor,
        reason: str,
    ) -> AssignmentSummary:
        """Remove a direct assignment; a reason is mandatory.

        The component may still be inherited afterwards if one of the
        package's drawings contains it.

        Raises:
            PackageNotFoundError: If the package does not exist.
            FieldValidationError: If the reason is blank.
            NotFoundError: If the component is not directly assigned here.
        """
        cleaned = (reason or "").strip()
        if not cleaned:
            raise FieldValidationError.single(
                "reason", "A reason is required to remove a component"
            )

        package = await self._packages.get_package(package_id)
        result = await self._session.execute(
            delete(PackageComponentAssignment).where(
                PackageComponentAssignment.package_id == package_id,
                PackageComponentAssignment.component_id == component_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Component assignment", f"{package_id}/{component_id}")

        await self._audit.append(
            project_id=package.project_id,
            package_id=package_id,
            event_type=AuditEventType.COMPONENT_ASSIGNMENT_REMOVED,
            entity_type="component",
            entity_id=str(component_id),
            actor=actor,
            reason=cleaned,
        )
        return await self.get_summary(package_id)

    async def unassign_package(self, package_id: UUID) -> set[UUID]:
        """Remove every drawing and direct link of a package.

        Returns:
            The components the package owned before unlinking.
        """
        freed = set(await self.resolve_components(package_id))
        await self._session.execute(
            delete(PackageDrawingAssignment).where(
                PackageDrawingAssignment.package_id == package_id
            )
        )
        await self._session.execute(
            delete(PackageComponentAssignment).where(
                PackageComponentAssignment.package_id == package_id
            )
        )
        await self._session.flush()
        logger.debug(
            "Package unassigned",
            extra={"package_id": str(package_id), "freed": len(freed)},
        )
        return freed
