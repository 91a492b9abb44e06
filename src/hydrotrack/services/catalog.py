"""Read-only access to the drawing/component catalog.

The catalog is owned by the import side of the platform. The lifecycle
engine depends only on the narrow CatalogProvider protocol; SqlCatalog is
the default implementation reading the drawings and components tables.
Retired drawings and components are invisible through this interface.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import select

from hydrotrack.db.models.catalog import Component, Drawing

if TYPE_CHECKING:
    from collections.abc import Iterable
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True, slots=True)
class CatalogComponent:
    """Component membership as seen by the lifecycle engine."""

    component_id: UUID
    drawing_id: UUID | None
    component_type: str


@dataclass(frozen=True, slots=True)
class DrawingSummary:
    """A drawing and the ids of its active components."""

    drawing_id: UUID
    drawing_no: str
    title: str | None
    component_ids: frozenset[UUID] = field(default_factory=frozenset)


class CatalogProvider(Protocol):
    """Narrow read interface over the external catalog."""

    async def components_for_drawings(
        self, project_id: UUID, drawing_ids: Iterable[UUID]
    ) -> list[CatalogComponent]: ...

    async def existing_components(
        self, project_id: UUID, component_ids: Iterable[UUID]
    ) -> set[UUID]: ...

    async def existing_drawings(
        self, project_id: UUID, drawing_ids: Iterable[UUID]
    ) -> set[UUID]: ...

    async def drawing_summaries(self, project_id: UUID) -> list[DrawingSummary]: ...


class SqlCatalog:
    """CatalogProvider backed by the catalog tables in the same database."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def components_for_drawings(
        self, project_id: UUID, drawing_ids: Iterable[UUID]
    ) -> list[CatalogComponent]:
        ids = list(drawing_ids)
        if not ids:
            return []
        query = (
            select(Component.component_id, Component.drawing_id, Component.component_type)
            .join(Drawing, Drawing.drawing_id == Component.drawing_id)
            .where(
                Component.project_id == project_id,
                Component.drawing_id.in_(ids),
                Component.is_retired.is_(False),
                Drawing.is_retired.is_(False),
            )
        )
        result = await self._session.execute(query)
        return [
            CatalogComponent(component_id=row[0], drawing_id=row[1], component_type=row[2])
            for row in result.all()
        ]

    async def existing_components(
        self, project_id: UUID, component_ids: Iterable[UUID]
    ) -> set[UUID]:
        ids = list(component_ids)
        if not ids:
            return set()
        query = select(Component.component_id).where(
            Component.project_id == project_id,
            Component.component_id.in_(ids),
            Component.is_retired.is_(False),
        )
        result = await self._session.execute(query)
        return set(result.scalars().all())

    async def existing_drawings(self, project_id: UUID, drawing_ids: Iterable[UUID]) -> set[UUID]:
        ids = list(drawing_ids)
        if not ids:
            return set()
        query = select(Drawing.drawing_id).where(
            Drawing.project_id == project_id,
            Drawing.drawing_id.in_(ids),
            Drawing.is_retired.is_(False),
        )
        result = await self._session.execute(query)
        return set(result.scalars().all())

    async def drawing_summaries(self, project_id: UUID) -> list[DrawingSummary]:
        drawings_result = await self._session.execute(
            select(Drawing)
            .where(Drawing.project_id == project_id, Drawing.is_retired.is_(False))
            .order_by(Drawing.drawing_no)
        )
        drawings = list(drawings_result.scalars().all())
        if not drawings:
            return []

        members: dict[UUID, set[UUID]] = defaultdict(set)
        for component in await self.components_for_drawings(
            project_id, [d.drawing_id for d in drawings]
        ):
            if component.drawing_id is not None:
                members[component.drawing_id].add(component.component_id)

        return [
            DrawingSummary(
                drawing_id=d.drawing_id,
                drawing_no=d.drawing_no,
                title=d.title,
                component_ids=frozenset(members.get(d.drawing_id, ())),
            )
            for d in drawings
        ]
