"""Pydantic schemas for package endpoints."""

from __future__ import annotations

# NOTE: date, datetime and UUID must remain at runtime for Pydantic validation
from datetime import date, datetime  # noqa: TC003
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from hydrotrack.db.models.base import TestType


class CreatePackageRequest(BaseModel):
    """Request schema for creating a package."""

    name: str = Field(..., min_length=1, max_length=200, description="Package name")
    description: str | None = Field(None, max_length=2000, description="Free-text description")
    test_type: TestType = Field(TestType.HYDROSTATIC, description="Pressure/leak test type")
    target_date: date | None = Field(None, description="Planned test date")

    model_config = ConfigDict(extra="forbid")


class UpdatePackageRequest(BaseModel):
    """Partial update; description and target_date may be cleared with null."""

    name: str | None = Field(None, min_length=1, max_length=200, description="Package name")
    description: str | None = Field(None, max_length=2000, description="Free-text description")
    test_type: TestType | None = Field(None, description="Pressure/leak test type")
    target_date: date | None = Field(None, description="Planned test date")

    model_config = ConfigDict(extra="forbid")


class PackageResponse(BaseModel):
    """Response schema for package details."""

    package_id: UUID = Field(..., description="Unique package identifier")
    project_id: UUID = Field(..., description="Owning project")
    name: str = Field(..., description="Package name")
    description: str | None = Field(None, description="Free-text description")
    test_type: TestType = Field(..., description="Pressure/leak test type")
    target_date: date | None = Field(None, description="Planned test date")
    is_fully_approved: bool = Field(..., description="Final acceptance completed")
    approved_at: datetime | None = Field(None, description="Final acceptance timestamp")
    created_by: str | None = Field(None, description="Creator")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    model_config = ConfigDict(from_attributes=True)


class PackageListResponse(BaseModel):
    """Packages of a project."""

    items: list[PackageResponse] = Field(default_factory=list)
    total: int = Field(..., description="Number of packages")


class PackageDeletedResponse(BaseModel):
    """Outcome of a package deletion."""

    package_id: UUID = Field(..., description="Deleted package")
    freed_component_ids: list[UUID] = Field(
        default_factory=list, description="Components released by the deletion"
    )
    freed_count: int = Field(..., description="Number of freed components")
    certificate_number: int | None = Field(
        None, description="Number of the deleted certificate (never reused)"
    )
