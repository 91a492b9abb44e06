"""Assignment API router.

Drawing assignments make a package inherit the drawing's components;
direct component assignments claim components explicitly and are unique
across packages. Both responses carry the resolved member set.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from hydrotrack.api.dependencies import Assignments, CurrentActor, DbSession
from hydrotrack.api.schemas.assignments import (
    EMPTY_PACKAGE_WARNING,
    AssignComponentsRequest,
    AssignDrawingsRequest,
    AssignmentSummaryResponse,
    ComponentMembershipResponse,
    DrawingPreviewListResponse,
    DrawingPreviewResponse,
    PackageComponentsResponse,
)
from hydrotrack.services.assignments import AssignmentSummary, MembershipSource

router = APIRouter(
    tags=["assignments"],
    responses={
        401: {"description": "Authentication required"},
        404: {"description": "Package or assignment not found"},
    },
)


def _sorted_ids(ids: frozenset[UUID]) -> list[UUID]:
    return sorted(ids, key=str)


def _summary_to_response(summary: AssignmentSummary) -> AssignmentSummaryResponse:
    return AssignmentSummaryResponse(
        package_id=summary.package_id,
        drawing_ids=_sorted_ids(summary.drawing_ids),
        direct_component_ids=_sorted_ids(summary.direct_component_ids),
        component_ids=_sorted_ids(summary.resolved_component_ids),
        added_ids=_sorted_ids(summary.added_ids),
        component_count=len(summary.resolved_component_ids),
        is_empty=summary.is_empty,
        warning=EMPTY_PACKAGE_WARNING if summary.is_empty else None,
    )


@router.post(
    "/packages/{package_id}/drawings",
    response_model=AssignmentSummaryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Assign drawings to a package",
)
async def assign_drawings(
    package_id: UUID,
    request: AssignDrawingsRequest,
    actor: CurrentActor,
    assignments: Assignments,
    db: DbSession,
) -> AssignmentSummaryResponse:
    summary = await assignments.assign_drawings(package_id, request.drawing_ids, actor=actor)
    await db.commit()
    return _summary_to_response(summary)


@router.delete(
    "/packages/{package_id}/drawings/{drawing_id}",
    response_model=AssignmentSummaryResponse,
    summary="Remove a drawing assignment",
)
async def remove_drawing(
    package_id: UUID,
    drawing_id: UUID,
    actor: CurrentActor,
    assignments: Assignments,
    db: DbSession,
) -> AssignmentSummaryResponse:
    summary = await assignments.remove_drawing_assignment(package_id, drawing_id, actor=actor)
    await db.commit()
    return _summary_to_response(summary)


@router.post(
    "/packages/{package_id}/components",
    response_model=AssignmentSummaryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Assign components directly to a package",
    responses={409: {"description": "Component already assigned to another package"}},
)
async def assign_components(
    package_id: UUID,
    request: AssignComponentsRequest,
    actor: CurrentActor,
    assignments: Assignments,
    db: DbSession,
) -> AssignmentSummaryResponse:
    """Claim components for the package.

    The whole request fails with 409 if any component is directly owned by
    another package; the error names the owning package.
    """
    summary = await assignments.assign_components(package_id, request.component_ids, actor=actor)
    await db.commit()
    return _summary_to_response(summary)


@router.delete(
    "/packages/{package_id}/components/{component_id}",
    response_model=AssignmentSummaryResponse,
    summary="Remove a direct component assignment",
)
async def remove_component(
    package_id: UUID,
    component_id: UUID,
    actor: CurrentActor,
    assignments: Assignments,
    db: DbSession,
    reason: Annotated[str, Query(max_length=2000, description="Why the component is removed")],
) -> AssignmentSummaryResponse:
    summary = await assignments.remove_component_assignment(
        package_id, component_id, actor=actor, reason=reason
    )
    await db.commit()
    return _summary_to_response(summary)


@router.get(
    "/packages/{package_id}/components",
    response_model=PackageComponentsResponse,
    summary="List the resolved components of a package",
)
async def list_components(
    package_id: UUID,
    _actor: CurrentActor,
    assignments: Assignments,
) -> PackageComponentsResponse:
    memberships = await assignments.resolve_membership(package_id)
    direct = sum(1 for m in memberships if m.source == MembershipSource.DIRECT)
    return PackageComponentsResponse(
        package_id=package_id,
        items=[
            ComponentMembershipResponse(
                component_id=m.component_id, source=m.source, drawing_id=m.drawing_id
            )
            for m in memberships
        ],
        total=len(memberships),
        direct_count=direct,
        inherited_count=len(memberships) - direct,
    )


@router.get(
    "/projects/{project_id}/drawings/assignment-preview",
    response_model=DrawingPreviewListResponse,
    summary="Preview how many components of each drawing are still available",
)
async def preview_drawings(
    project_id: UUID,
    _actor: CurrentActor,
    assignments: Assignments,
    for_package_id: Annotated[
        UUID | None, Query(description="Package being edited; its own claims count as free")
    ] = None,
) -> DrawingPreviewListResponse:
    previews = await assignments.preview_drawings(project_id, for_package_id)
    items = [
        DrawingPreviewResponse(
            drawing_id=p.drawing_id,
            drawing_no=p.drawing_no,
            title=p.title,
            component_count=p.component_count,
            available_count=p.available_count,
            assigned_count=p.assigned_count,
            is_fully_assigned=p.is_fully_assigned,
        )
        for p in previews
    ]
    return DrawingPreviewListResponse(items=items, total=len(items))
