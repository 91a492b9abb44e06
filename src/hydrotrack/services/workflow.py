"""Seven-stage acceptance workflow engine.

Stage states:

    not_started -> in_progress -> completed
         |              |
         +--------------+------> skipped

A stage may leave not_started only when every lower-order stage is
completed or skipped. Completed stages may be edited afterwards; each edit
appends a StageEditRecord and keeps the original completion attribution.
Skipped stages are terminal and the final stage cannot be skipped.
Completing the final stage marks the package fully approved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from sqlalchemy import select

from hydrotrack.db.models.base import AuditEventType, StageStatus, utcnow
from hydrotrack.db.models.workflow import StageEditRecord, WorkflowStage
from hydrotrack.services.audit_log import AuditLogService
from hydrotrack.services.authz import SignoffPolicy, SingleRoleSignoffPolicy, enforce_signoff_policy
from hydrotrack.services.errors import (
    InvalidStageTransitionError,
    StageGatingError,
    StageNotFoundError,
    StageValidationError,
)
from hydrotrack.services.packages import PackageRepository
from hydrotrack.services.stage_schemas import (
    STAGE_DEFINITIONS,
    SignOff,
    dump_signoffs,
    get_stage_definition,
    validate_signoffs,
    validate_stage_payload,
)

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from hydrotrack.services.authz import Actor
    from hydrotrack.services.stage_schemas import StagePayloadBase

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WorkflowProgress:
    """Progress summary of a package's workflow.

    Attributes:
        total: Number of stages (0 until the certificate is finalized).
        completed: Stages completed.
        skipped: Stages skipped.
        current_stage_order: Lowest unresolved stage, None when all resolved.
        is_fully_approved: Final stage completed.
    """

    total: int
    completed: int
    skipped: int
    current_stage_order: int | None
    is_fully_approved: bool

    @property
    def percent_complete(self) -> int:
        if self.total == 0:
            return 0
        return round(100 * (self.completed + self.skipped) / self.total)


def _changed_keys(before: dict[str, Any] | None, after: dict[str, Any] | None) -> list[str]:
    before = before or {}
    after = after or {}
    return sorted(k for k in before.keys() | after.keys() if before.get(k) != after.get(k))


class WorkflowEngine:
    """Drives the acceptance stages of a package.

    Example:
        engine = WorkflowEngine(session)
        await engine.start_stage(package_id, 1, actor=actor)
        await engine.complete_stage(
            package_id,
            1,
            data={"inspector": "J. Ortiz", "inspection_complete": True},
            signoffs={"qc_rep": {"name": "J. Ortiz", "date": "2026-03-02"}},
            actor=actor,
        )
    """

    # Statuses from which each action is allowed
    ALLOWED_FROM: ClassVar[dict[str, frozenset[StageStatus]]] = {
        "start": frozenset({StageStatus.NOT_STARTED}),
        "complete": frozenset({StageStatus.NOT_STARTED, StageStatus.IN_PROGRESS}),
        "skip": frozenset({StageStatus.NOT_STARTED, StageStatus.IN_PROGRESS}),
        "edit": frozenset({StageStatus.COMPLETED}),
    }

    def __init__(
        self,
        session: AsyncSession,
        signoff_policy: SignoffPolicy | None = None,
    ) -> None:
        """Initialize the workflow engine.

        Args:
            session: SQLAlchemy async session for database operations.
            signoff_policy: Decides who may fill sign-off slots; defaults to
                the single qc_manager role policy.
        """
        self._session = session
        self._policy = signoff_policy or SingleRoleSignoffPolicy()
        self._packages = PackageRepository(session)
        self._audit = AuditLogService(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _load_stages(self, package_id: UUID) -> list[WorkflowStage]:
        result = await self._session.execute(
            select(WorkflowStage)
            .where(WorkflowStage.package_id == package_id)
            .order_by(WorkflowStage.stage_order)
        )
        return list(result.scalars().all())

    async def list_stages(self, package_id: UUID) -> list[WorkflowStage]:
        """Stages of a package in order; empty until the certificate is final.

        Raises:
            PackageNotFoundError: If the package does not exist.
        """
        await self._packages.get_package(package_id)
        return await self._load_stages(package_id)

    async def get_stage(self, package_id: UUID, stage_order: int) -> WorkflowStage:
        """Get one stage by its order (1..7).

        Raises:
            PackageNotFoundError: If the package does not exist.
            StageNotFoundError: If the stage does not exist (yet).
        """
        for stage in await self.list_stages(package_id):
            if stage.stage_order == stage_order:
                return stage
        raise StageNotFoundError(package_id, stage_order)

    async def get_progress(self, package_id: UUID) -> WorkflowProgress:
        package = await self._packages.get_package(package_id)
        stages = await self._load_stages(package_id)
        current = next((s.stage_order for s in stages if not s.status.is_resolved), None)
        return WorkflowProgress(
            total=len(stages),
            completed=sum(1 for s in stages if s.status == StageStatus.COMPLETED),
            skipped=sum(1 for s in stages if s.status == StageStatus.SKIPPED),
            current_stage_order=current,
            is_fully_approved=package.is_fully_approved,
        )

    async def get_edit_history(self, package_id: UUID, stage_order: int) -> list[StageEditRecord]:
        """Edit records of a stage, oldest first."""
        stage = await self.get_stage(package_id, stage_order)
        result = await self._session.execute(
            select(StageEditRecord)
            .where(StageEditRecord.stage_id == stage.stage_id)
            .order_by(StageEditRecord.edited_at, StageEditRecord.edit_id)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def instantiate_stages(self, package_id: UUID) -> list[WorkflowStage]:
        """Create the seven stages in not_started; existing ones are kept."""
        stages = await self._load_stages(package_id)
        present = {s.stage_order for s in stages}
        created = 0
        for definition in STAGE_DEFINITIONS:
            if definition.order in present:
                continue
            self._session.add(
                WorkflowStage(
                    package_id=package_id,
                    stage_kind=definition.kind,
                    stage_order=definition.order,
                    status=StageStatus.NOT_STARTED,
                )
            )
            created += 1
        if created:
            await self._session.flush()
            logger.info(
                "Workflow stages instantiated",
                extra={"package_id": str(package_id), "stage_count": created},
            )
        return await self._load_stages(package_id)

    async def _prepare(
        self, package_id: UUID, stage_order: int, action: str
    ) -> tuple[WorkflowStage, list[WorkflowStage]]:
        stages = await self.list_stages(package_id)
        stage = next((s for s in stages if s.stage_order == stage_order), None)
        if stage is None:
            raise StageNotFoundError(package_id, stage_order)

        if stage.status not in self.ALLOWED_FROM[action]:
            raise InvalidStageTransitionError(stage_order, stage.status.value, action)

        if action != "edit":
            self._check_gate(stage, stages)
        return stage, stages

    @staticmethod
    def _check_gate(stage: WorkflowStage, stages: list[WorkflowStage]) -> None:
        for previous in stages:
            if previous.stage_order >= stage.stage_order:
                break
            if not previous.status.is_resolved:
                definition = get_stage_definition(previous.stage_kind)
                raise StageGatingError(stage.stage_order, previous.stage_order, definition.title)

    def _validate_completion(
        self,
        stage: WorkflowStage,
        data: dict[str, Any] | None,
        signoffs: dict[str, Any] | None,
        actor: Actor,
    ) -> tuple[StagePayloadBase, dict[str, SignOff]]:
        errors: dict[str, list[str]] = {}
        payload = validated_signoffs = None
        try:
            payload = validate_stage_payload(stage.stage_kind, data)
        except StageValidationError as e:
            errors.update(e.errors)
        try:
            validated_signoffs = validate_signoffs(stage.stage_kind, signoffs)
        except StageValidationError as e:
            errors.update(e.errors)
        if errors or payload is None or validated_signoffs is None:
            raise StageValidationError(errors)

        enforce_signoff_policy(self._policy, actor, sorted(validated_signoffs))
        for signoff in validated_signoffs.values():
            if signoff.user_id is None:
                signoff.user_id = actor.actor_id
        return payload, validated_signoffs

    async def start_stage(
        self, package_id: UUID, stage_order: int, *, actor: Actor
    ) -> WorkflowStage:
        """Move a stage from not_started to in_progress.

        Raises:
            StageNotFoundError: If the stage does not exist.
            InvalidStageTransitionError: If the stage has already started.
            StageGatingError: If a lower-order stage is unresolved.
        """
        stage, _ = await self._prepare(package_id, stage_order, "start")
        now = utcnow()
        stage.status = StageStatus.IN_PROGRESS
        stage.started_at = now
        stage.updated_at = now
        await self._session.flush()

        await self._record(stage, AuditEventType.STAGE_STARTED, actor)
        return stage

    async def complete_stage(
        self,
        package_id: UUID,
        stage_order: int,
        *,
        data: dict[str, Any] | None,
        signoffs: dict[str, Any] | None,
        actor: Actor,
    ) -> WorkflowStage:
        """Complete a stage with its payload and sign-offs.

        Raises:
            StageNotFoundError: If the stage does not exist.
            InvalidStageTransitionError: If the stage is completed or skipped.
            StageGatingError: If a lower-order stage is unresolved.
            StageValidationError: If the payload or sign-offs are invalid.
            SignoffNotAuthorizedError: If the actor may not sign a slot.
        """
        stage, _ = await self._prepare(package_id, stage_order, "complete")
        payload, validated_signoffs = self._validate_completion(stage, data, signoffs, actor)

        now = utcnow()
        stage.stage_data = payload.model_dump(mode="json")
        stage.signoffs = dump_signoffs(validated_signoffs)
        stage.status = StageStatus.COMPLETED
        stage.started_at = stage.started_at or now
        stage.completed_by = actor.label
        stage.completed_at = now
        stage.updated_at = now
        await self._session.flush()

        await self._record(
            stage,
            AuditEventType.STAGE_COMPLETED,
            actor,
            new_value={"stage_data": stage.stage_data, "signoffs": stage.signoffs},
        )

        if get_stage_definition(stage.stage_kind).is_final:
            await self._approve_package(package_id, actor)
        return stage

    async def _approve_package(self, package_id: UUID, actor: Actor) -> None:
        package = await self._packages.get_package(package_id)
        now = utcnow()
        package.is_fully_approved = True
        package.approved_at = now
        package.updated_at = now
        await self._session.flush()

        await self._audit.append(
            project_id=package.project_id,
            package_id=package_id,
            event_type=AuditEventType.PACKAGE_APPROVED,
            entity_type="package",
            entity_id=str(package_id),
            actor=actor,
        )
        logger.info("Package fully approved", extra={"package_id": str(package_id)})

    async def skip_stage(
        self,
        package_id: UUID,
        stage_order: int,
        *,
        reason: str,
        actor: Actor,
    ) -> WorkflowStage:
        """Skip a stage with a mandatory reason.

        The skipping actor and time are recorded in completed_by and
        completed_at.

        Raises:
            StageValidationError: If the reason is blank.
            StageNotFoundError: If the stage does not exist.
            InvalidStageTransitionError: If the stage is final, completed or
                already skipped.
            StageGatingError: If a lower-order stage is unresolved.
        """
        cleaned = (reason or "").strip()
        if not cleaned:
            raise StageValidationError({"reason": ["A reason is required to skip a stage"]})

        stage = await self.get_stage(package_id, stage_order)
        if get_stage_definition(stage.stage_kind).is_final:
            raise InvalidStageTransitionError(
                stage_order,
                stage.status.value,
                "skip",
                reason="The final acceptance stage cannot be skipped",
            )
        stage, _ = await self._prepare(package_id, stage_order, "skip")

        now = utcnow()
        stage.status = StageStatus.SKIPPED
        stage.skip_reason = cleaned
        stage.completed_by = actor.label
        stage.completed_at = now
        stage.updated_at = now
        await self._session.flush()

        await self._record(stage, AuditEventType.STAGE_SKIPPED, actor, reason=cleaned)
        return stage

    async def edit_completed_stage(
        self,
        package_id: UUID,
        stage_order: int,
        *,
        data: dict[str, Any] | None,
        actor: Actor,
        signoffs: dict[str, Any] | None = None,
        change_description: str | None = None,
    ) -> WorkflowStage:
        """Correct a completed stage and append an edit record.

        The payload is fully re-validated. Sign-offs are kept unless new
        ones are given; either way the actor must be allowed to sign every
        slot on the stage. completed_by/completed_at are left untouched.

        Raises:
            StageNotFoundError: If the stage does not exist.
            InvalidStageTransitionError: If the stage is not completed.
            StageValidationError: If the payload or sign-offs are invalid.
            SignoffNotAuthorizedError: If the actor may not sign a slot.
        """
        stage, _ = await self._prepare(package_id, stage_order, "edit")
        previous_data = stage.stage_data
        previous_signoffs = stage.signoffs

        if signoffs is None:
            enforce_signoff_policy(self._policy, actor, sorted(previous_signoffs or {}))
            payload = validate_stage_payload(stage.stage_kind, data)
            new_signoffs = previous_signoffs
        else:
            payload, validated_signoffs = self._validate_completion(stage, data, signoffs, actor)
            new_signoffs = dump_signoffs(validated_signoffs)
        new_data = payload.model_dump(mode="json")

        changed = _changed_keys(previous_data, new_data)
        signoffs_changed = new_signoffs != previous_signoffs
        if not changed and not signoffs_changed:
            return stage

        description = (change_description or "").strip()
        if not description:
            parts = []
            if changed:
                parts.append("Updated " + ", ".join(changed))
            if signoffs_changed:
                parts.append("Updated sign-offs")
            description = "; ".join(parts)

        now = utcnow()
        self._session.add(
            StageEditRecord(
                stage_id=stage.stage_id,
                edited_by=actor.label,
                edited_at=now,
                change_description=description,
                previous_data=previous_data,
                new_data=new_data,
                previous_signoffs=previous_signoffs,
                new_signoffs=new_signoffs,
            )
        )
        stage.stage_data = new_data
        stage.signoffs = new_signoffs
        stage.last_edited_by = actor.label
        stage.last_edited_at = now
        stage.updated_at = now
        await self._session.flush()

        await self._record(
            stage,
            AuditEventType.STAGE_EDITED,
            actor,
            old_value={"stage_data": previous_data, "signoffs": previous_signoffs},
            new_value={"stage_data": new_data, "signoffs": new_signoffs},
            reason=description,
        )
        return stage

    async def _record(
        self,
        stage: WorkflowStage,
        event_type: AuditEventType,
        actor: Actor,
        *,
        old_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> None:
        package = await self._packages.get_package(stage.package_id)
        await self._audit.append(
            project_id=package.project_id,
            package_id=stage.package_id,
            event_type=event_type,
            entity_type="workflow_stage",
            entity_id=str(stage.stage_id),
            actor=actor,
            old_value=old_value,
            new_value=new_value,
            reason=reason,
        )
        logger.info(
            "Workflow stage transition",
            extra={
                "package_id": str(stage.package_id),
                "stage_order": stage.stage_order,
                "event_type": event_type.value,
                "status": stage.status.value,
            },
        )
