"""Pydantic schemas for workflow stage endpoints.

Stage payloads and sign-offs are passed through as plain mappings; their
per-stage validation lives in hydrotrack.services.stage_schemas.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003
from typing import Any
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from hydrotrack.db.models.base import StageKind, StageStatus


class CompleteStageRequest(BaseModel):
    """Stage payload and sign-offs for completion."""

    data: dict[str, Any] = Field(default_factory=dict, description="Stage-specific payload")
    signoffs: dict[str, dict[str, Any]] = Field(
        default_factory=dict, description="Role -> {name, date, user_id}"
    )

    model_config = ConfigDict(extra="forbid")


class SkipStageRequest(BaseModel):
    reason: str = Field(..., max_length=2000, description="Why the stage is waived")

    model_config = ConfigDict(extra="forbid")


class EditStageRequest(BaseModel):
    """Correction to a completed stage."""

    data: dict[str, Any] = Field(..., description="Full corrected payload")
    signoffs: dict[str, dict[str, Any]] | None = Field(
        None, description="Replacement sign-offs; omitted keeps the current ones"
    )
    change_description: str | None = Field(None, max_length=2000)

    model_config = ConfigDict(extra="forbid")


class StageResponse(BaseModel):
    """Response schema for a workflow stage."""

    stage_id: UUID
    package_id: UUID
    stage_order: int
    stage_kind: StageKind
    title: str
    status: StageStatus
    required_signoffs: list[str]
    stage_data: dict[str, Any] | None = None
    signoffs: dict[str, Any] | None = None
    skip_reason: str | None = None
    started_at: datetime | None = None
    completed_by: str | None = None
    completed_at: datetime | None = None
    last_edited_by: str | None = None
    last_edited_at: datetime | None = None


class StageListResponse(BaseModel):
    items: list[StageResponse] = Field(default_factory=list)
    total: int


class ProgressResponse(BaseModel):
    """Workflow progress of a package."""

    package_id: UUID
    total: int
    completed: int
    skipped: int
    current_stage_order: int | None = None
    percent_complete: int
    is_fully_approved: bool


class StageEditRecordResponse(BaseModel):
    """One correction made to a completed stage."""

    edit_id: UUID
    stage_id: UUID
    edited_by: str
    edited_at: datetime
    change_description: str
    previous_data: dict[str, Any] | None = None
    new_data: dict[str, Any] | None = None
    previous_signoffs: dict[str, Any] | None = None
    new_signoffs: dict[str, Any] | None = None

    model_config = ConfigDict(from_attributes=True)


class StageEditHistoryResponse(BaseModel):
    items: list[StageEditRecordResponse] = Field(default_factory=list)
    total: int
