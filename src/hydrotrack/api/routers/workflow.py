"""Workflow API router.

Stages are addressed by their order (1..7). Transitions are gated: a stage
may only move once every lower-order stage is completed or skipped.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from hydrotrack.api.dependencies import CurrentActor, DbSession, Workflow
from hydrotrack.api.schemas.workflow import (
    CompleteStageRequest,
    EditStageRequest,
    ProgressResponse,
    SkipStageRequest,
    StageEditHistoryResponse,
    StageEditRecordResponse,
    StageListResponse,
    StageResponse,
)
from hydrotrack.db.models.workflow import WorkflowStage
from hydrotrack.services.stage_schemas import get_stage_definition

router = APIRouter(
    tags=["workflow"],
    responses={
        401: {"description": "Authentication required"},
        404: {"description": "Package or stage not found"},
        409: {"description": "Stage transition not allowed"},
    },
)

StageOrder = Annotated[int, Path(ge=1, le=7, description="Stage order (1..7)")]


def _stage_to_response(stage: WorkflowStage) -> StageResponse:
    definition = get_stage_definition(stage.stage_kind)
    return StageResponse(
        stage_id=stage.stage_id,
        package_id=stage.package_id,
        stage_order=stage.stage_order,
        stage_kind=stage.stage_kind,
        title=definition.title,
        status=stage.status,
        required_signoffs=list(definition.required_signoffs),
        stage_data=stage.stage_data,
        signoffs=stage.signoffs,
        skip_reason=stage.skip_reason,
        started_at=stage.started_at,
        completed_by=stage.completed_by,
        completed_at=stage.completed_at,
        last_edited_by=stage.last_edited_by,
        last_edited_at=stage.last_edited_at,
    )


@router.get(
    "/packages/{package_id}/stages",
    response_model=StageListResponse,
    summary="List the workflow stages of a package",
)
async def list_stages(
    package_id: UUID,
    _actor: CurrentActor,
    workflow: Workflow,
) -> StageListResponse:
    items = [_stage_to_response(s) for s in await workflow.list_stages(package_id)]
    return StageListResponse(items=items, total=len(items))


@router.get(
    "/packages/{package_id}/progress",
    response_model=ProgressResponse,
    summary="Get workflow progress",
)
async def get_progress(
    package_id: UUID,
    _actor: CurrentActor,
    workflow: Workflow,
) -> ProgressResponse:
    progress = await workflow.get_progress(package_id)
    return ProgressResponse(
        package_id=package_id,
        total=progress.total,
        completed=progress.completed,
        skipped=progress.skipped,
        current_stage_order=progress.current_stage_order,
        percent_complete=progress.percent_complete,
        is_fully_approved=progress.is_fully_approved,
    )


@router.post(
    "/packages/{package_id}/stages/{stage_order}/start",
    response_model=StageResponse,
    summary="Start a stage",
)
async def start_stage(
    package_id: UUID,
    stage_order: StageOrder,
    actor: CurrentActor,
    workflow: Workflow,
    db: DbSession,
) -> StageResponse:
    stage = await workflow.start_stage(package_id, stage_order, actor=actor)
    await db.commit()
    return _stage_to_response(stage)


@router.post(
    "/packages/{package_id}/stages/{stage_order}/complete",
    response_model=StageResponse,
    summary="Complete a stage",
    responses={
        403: {"description": "Actor may not sign off"},
        422: {"description": "Invalid stage payload or sign-offs"},
    },
)
async def complete_stage(
    package_id: UUID,
    stage_order: StageOrder,
    request: CompleteStageRequest,
    actor: CurrentActor,
    workflow: Workflow,
    db: DbSession,
) -> StageResponse:
    """Complete a stage; completing final acceptance approves the package."""
    stage = await workflow.complete_stage(
        package_id,
        stage_order,
        data=request.data,
        signoffs=request.signoffs,
        actor=actor,
    )
    await db.commit()
    return _stage_to_response(stage)


@router.post(
    "/packages/{package_id}/stages/{stage_order}/skip",
    response_model=StageResponse,
    summary="Skip a stage",
)
async def skip_stage(
    package_id: UUID,
    stage_order: StageOrder,
    request: SkipStageRequest,
    actor: CurrentActor,
    workflow: Workflow,
    db: DbSession,
) -> StageResponse:
    stage = await workflow.skip_stage(package_id, stage_order, reason=request.reason, actor=actor)
    await db.commit()
    return _stage_to_response(stage)


@router.patch(
    "/packages/{package_id}/stages/{stage_order}",
    response_model=StageResponse,
    summary="Edit a completed stage",
    responses={
        403: {"description": "Actor may not sign off"},
        422: {"description": "Invalid stage payload or sign-offs"},
    },
)
async def edit_stage(
    package_id: UUID,
    stage_order: StageOrder,
    request: EditStageRequest,
    actor: CurrentActor,
    workflow: Workflow,
    db: DbSession,
) -> StageResponse:
    """Correct a completed stage; each change appends an edit record."""
    stage = await workflow.edit_completed_stage(
        package_id,
        stage_order,
        data=request.data,
        signoffs=request.signoffs,
        change_description=request.change_description,
        actor=actor,
    )
    await db.commit()
    return _stage_to_response(stage)


@router.get(
    "/packages/{package_id}/stages/{stage_order}/history",
    response_model=StageEditHistoryResponse,
    summary="Get the edit history of a stage",
)
async def get_stage_history(
    package_id: UUID,
    stage_order: StageOrder,
    _actor: CurrentActor,
    workflow: Workflow,
) -> StageEditHistoryResponse:
    records = await workflow.get_edit_history(package_id, stage_order)
    items = [StageEditRecordResponse.model_validate(r) for r in records]
    return StageEditHistoryResponse(items=items, total=len(items))
