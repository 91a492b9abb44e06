"""Pydantic schemas for drawing/component assignment endpoints."""

from __future__ import annotations

from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from hydrotrack.services.assignments import MembershipSource

EMPTY_PACKAGE_WARNING = "Package has no components assigned"


class AssignDrawingsRequest(BaseModel):
    """Drawings whose components the package should inherit."""

    drawing_ids: list[UUID] = Field(..., min_length=1, max_length=1000)

    model_config = ConfigDict(extra="forbid")


class AssignComponentsRequest(BaseModel):
    """Components to assign directly to the package."""

    component_ids: list[UUID] = Field(..., min_length=1, max_length=5000)

    model_config = ConfigDict(extra="forbid")


class AssignmentSummaryResponse(BaseModel):
    """Assignment state of a package after a change."""

    package_id: UUID
    drawing_ids: list[UUID] = Field(default_factory=list)
    direct_component_ids: list[UUID] = Field(default_factory=list)
    component_ids: list[UUID] = Field(
        default_factory=list, description="Resolved member set (direct and inherited)"
    )
    added_ids: list[UUID] = Field(default_factory=list, description="Newly linked by this call")
    component_count: int
    is_empty: bool
    warning: str | None = Field(None, description="Set when the package has no members")


class ComponentMembershipResponse(BaseModel):
    """One resolved member of a package."""

    component_id: UUID
    source: MembershipSource
    drawing_id: UUID | None = None


class PackageComponentsResponse(BaseModel):
    """Resolved members of a package."""

    package_id: UUID
    items: list[ComponentMembershipResponse] = Field(default_factory=list)
    total: int
    direct_count: int
    inherited_count: int


class DrawingPreviewResponse(BaseModel):
    """Availability of a drawing's components for assignment."""

    drawing_id: UUID
    drawing_no: str
    title: str | None = None
    component_count: int
    available_count: int
    assigned_count: int
    is_fully_assigned: bool


class DrawingPreviewListResponse(BaseModel):
    items: list[DrawingPreviewResponse] = Field(default_factory=list)
    total: int
