"""Tests for the package repository.

Tests cover:
- Package creation, name normalization and per-project uniqueness
- Partial updates and clearing optional fields
- Listing and lookups
- Deletion cascade: certificate, stages, edit records, assignment links
"""

import uuid
from datetime import date

import pytest
from sqlalchemy import func, select

from hydrotrack.db.models import (
    Certificate,
    Component,
    PackageComponentAssignment,
    PackageDrawingAssignment,
    StageEditRecord,
    WorkflowStage,
)
from hydrotrack.db.models.base import AuditEventType, TestType
from hydrotrack.services.assignments import AssignmentResolver
from hydrotrack.services.audit_log import AuditLogService
from hydrotrack.services.certificates import CertificateManager
from hydrotrack.services.errors import (
    DuplicatePackageNameError,
    FieldValidationError,
    PackageNotFoundError,
)
from hydrotrack.services.packages import PackageRepository, normalize_package_name
from hydrotrack.services.workflow import WorkflowEngine
from tests.factories import complete_stages, finalize, stage_data


async def _count(session, model, *criteria) -> int:
    result = await session.execute(select(func.count()).select_from(model).where(*criteria))
    return result.scalar_one()


class TestNormalizePackageName:
    """Tests for package name normalization."""

    def test_strips_whitespace(self):
        assert normalize_package_name("  Hydro-1  ") == "Hydro-1"

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_blank_name_rejected(self, name):
        with pytest.raises(FieldValidationError) as exc_info:
            normalize_package_name(name)
        assert "name" in exc_info.value.errors

    def test_too_long_name_rejected(self):
        with pytest.raises(FieldValidationError):
            normalize_package_name("x" * 201)


class TestCreatePackage:
    """Tests for package creation."""

    @pytest.mark.asyncio
    async def test_create_package_defaults(self, db_session, catalog, qc_manager):
        """A new package is hydrostatic, unapproved and attributed to its creator."""
        repo = PackageRepository(db_session)
        package = await repo.create_package(catalog.project_id, "Hydro-1", actor=qc_manager)

        assert package.package_id is not None
        assert package.project_id == catalog.project_id
        assert package.name == "Hydro-1"
        assert package.test_type == TestType.HYDROSTATIC
        assert package.is_fully_approved is False
        assert package.created_by == "Dana Reyes"

    @pytest.mark.asyncio
    async def test_create_package_with_metadata(self, db_session, catalog, qc_manager):
        repo = PackageRepository(db_session)
        package = await repo.create_package(
            catalog.project_id,
            "  Pneu-7 ",
            actor=qc_manager,
            test_type=TestType.PNEUMATIC,
            description="Instrument air header",
            target_date=date(2026, 5, 15),
        )

        assert package.name == "Pneu-7"
        assert package.test_type == TestType.PNEUMATIC
        assert package.description == "Instrument air header"
        assert package.target_date == date(2026, 5, 15)

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected_case_insensitively(
        self, db_session, package, qc_manager
    ):
        repo = PackageRepository(db_session)
        with pytest.raises(DuplicatePackageNameError) as exc_info:
            await repo.create_package(package.project_id, "hydro-1", actor=qc_manager)
        assert exc_info.value.detail["name"] == "hydro-1"

    @pytest.mark.asyncio
    async def test_same_name_allowed_in_other_project(self, db_session, package, qc_manager):
        repo = PackageRepository(db_session)
        other = await repo.create_package(uuid.uuid4(), "Hydro-1", actor=qc_manager)
        assert other.package_id != package.package_id

    @pytest.mark.asyncio
    async def test_creation_is_audited(self, db_session, package):
        records = await AuditLogService(db_session).get_records(
            package_id=package.package_id, event_type=AuditEventType.PACKAGE_CREATED
        )
        assert len(records) == 1
        assert records[0].new_value == {"name": "Hydro-1", "test_type": "hydrostatic"}
        assert records[0].actor_ref == "Dana Reyes"


class TestUpdatePackage:
    """Tests for partial package updates."""

    @pytest.mark.asyncio
    async def test_rename(self, db_session, package, qc_manager):
        repo = PackageRepository(db_session)
        updated = await repo.update_package(package.package_id, actor=qc_manager, name="Hydro-1A")
        assert updated.name == "Hydro-1A"

    @pytest.mark.asyncio
    async def test_rename_to_taken_name_rejected(self, db_session, package, qc_manager):
        repo = PackageRepository(db_session)
        await repo.create_package(package.project_id, "Hydro-2", actor=qc_manager)

        with pytest.raises(DuplicatePackageNameError):
            await repo.update_package(package.package_id, actor=qc_manager, name="HYDRO-2")

    @pytest.mark.asyncio
    async def test_case_only_rename_allowed(self, db_session, package, qc_manager):
        repo = PackageRepository(db_session)
        updated = await repo.update_package(package.package_id, actor=qc_manager, name="HYDRO-1")
        assert updated.name == "HYDRO-1"

    @pytest.mark.asyncio
    async def test_clear_target_date(self, db_session, package, qc_manager):
        """Passing None explicitly clears an optional field."""
        repo = PackageRepository(db_session)
        updated = await repo.update_package(package.package_id, actor=qc_manager, target_date=None)
        assert updated.target_date is None

    @pytest.mark.asyncio
    async def test_omitted_fields_unchanged(self, db_session, package, qc_manager):
        repo = PackageRepository(db_session)
        updated = await repo.update_package(
            package.package_id, actor=qc_manager, test_type=TestType.SENSITIVE_LEAK
        )
        assert updated.test_type == TestType.SENSITIVE_LEAK
        assert updated.name == "Hydro-1"
        assert updated.target_date == date(2026, 4, 1)

    @pytest.mark.asyncio
    async def test_no_change_writes_no_audit_record(self, db_session, package, qc_manager):
        repo = PackageRepository(db_session)
        await repo.update_package(package.package_id, actor=qc_manager, name="Hydro-1")

        records = await AuditLogService(db_session).get_records(
            package_id=package.package_id, event_type=AuditEventType.PACKAGE_UPDATED
        )
        assert records == []

    @pytest.mark.asyncio
    async def test_update_records_old_and_new_values(self, db_session, package, qc_manager):
        repo = PackageRepository(db_session)
        await repo.update_package(package.package_id, actor=qc_manager, description="North rack")

        records = await AuditLogService(db_session).get_records(
            package_id=package.package_id, event_type=AuditEventType.PACKAGE_UPDATED
        )
        assert records[0].old_value == {"description": None}
        assert records[0].new_value == {"description": "North rack"}

    @pytest.mark.asyncio
    async def test_update_unknown_package(self, db_session, qc_manager):
        repo = PackageRepository(db_session)
        with pytest.raises(PackageNotFoundError):
            await repo.update_package(uuid.uuid4(), actor=qc_manager, name="X")


class TestListPackages:
    """Tests for package listing."""

    @pytest.mark.asyncio
    async def test_list_is_project_scoped_and_sorted(self, db_session, catalog, qc_manager):
        repo = PackageRepository(db_session)
        await repo.create_package(catalog.project_id, "beta", actor=qc_manager)
        await repo.create_package(catalog.project_id, "Alpha", actor=qc_manager)
        await repo.create_package(uuid.uuid4(), "Gamma", actor=qc_manager)

        names = [p.name for p in await repo.list_packages(catalog.project_id)]
        assert names == ["Alpha", "beta"]

    @pytest.mark.asyncio
    async def test_get_unknown_package(self, db_session):
        with pytest.raises(PackageNotFoundError):
            await PackageRepository(db_session).get_package(uuid.uuid4())


class TestDeletePackage:
    """Tests for package deletion and its cascade."""

    @pytest.mark.asyncio
    async def test_delete_frees_components(self, db_session, catalog, package, qc_manager):
        resolver = AssignmentResolver(db_session)
        await resolver.assign_drawings(
            package.package_id, [catalog.drawings[0].drawing_id], actor=qc_manager
        )
        await resolver.assign_components(
            package.package_id, catalog.loose_component_ids, actor=qc_manager
        )
        expected = set(catalog.components_of(0)) | set(catalog.loose_component_ids)

        result = await PackageRepository(db_session).delete_package(
            package.package_id, actor=qc_manager
        )

        assert result.freed_component_ids == expected
        assert result.certificate_number is None
        assert await _count(db_session, PackageDrawingAssignment) == 0
        assert await _count(db_session, PackageComponentAssignment) == 0

    @pytest.mark.asyncio
    async def test_freed_components_assignable_elsewhere(
        self, db_session, catalog, package, qc_manager
    ):
        resolver = AssignmentResolver(db_session)
        await resolver.assign_components(
            package.package_id, catalog.loose_component_ids, actor=qc_manager
        )
        await PackageRepository(db_session).delete_package(package.package_id, actor=qc_manager)

        other = await PackageRepository(db_session).create_package(
            catalog.project_id, "Hydro-2", actor=qc_manager
        )
        summary = await resolver.assign_components(
            other.package_id, catalog.loose_component_ids, actor=qc_manager
        )
        assert summary.resolved_component_ids == frozenset(catalog.loose_component_ids)

    @pytest.mark.asyncio
    async def test_delete_removes_certificate_stages_and_history(
        self, db_session, package, qc_manager
    ):
        manager = CertificateManager(db_session)
        engine = WorkflowEngine(db_session)
        await finalize(manager, package.package_id, qc_manager)
        await complete_stages(engine, package.package_id, qc_manager, through=1)
        await engine.edit_completed_stage(
            package.package_id,
            1,
            data=stage_data(1, inspector="M. Ortiz"),
            actor=qc_manager,
        )

        result = await PackageRepository(db_session).delete_package(
            package.package_id, actor=qc_manager
        )

        assert result.certificate_number == 1
        assert await _count(db_session, Certificate) == 0
        assert await _count(db_session, WorkflowStage) == 0
        assert await _count(db_session, StageEditRecord) == 0

    @pytest.mark.asyncio
    async def test_catalog_untouched_by_delete(self, db_session, catalog, package, qc_manager):
        before = await _count(db_session, Component)
        await AssignmentResolver(db_session).assign_drawings(
            package.package_id, catalog.drawing_ids, actor=qc_manager
        )
        await PackageRepository(db_session).delete_package(package.package_id, actor=qc_manager)
        assert await _count(db_session, Component) == before

    @pytest.mark.asyncio
    async def test_deletion_audit_record_survives(self, db_session, package, qc_manager):
        await PackageRepository(db_session).delete_package(package.package_id, actor=qc_manager)

        records = await AuditLogService(db_session).get_records(
            package_id=package.package_id, event_type=AuditEventType.PACKAGE_DELETED
        )
        assert len(records) == 1
        assert records[0].old_value["name"] == "Hydro-1"

    @pytest.mark.asyncio
    async def test_deleted_package_not_found(self, db_session, package, qc_manager):
        repo = PackageRepository(db_session)
        await repo.delete_package(package.package_id, actor=qc_manager)
        with pytest.raises(PackageNotFoundError):
            await repo.get_package(package.package_id)

    @pytest.mark.asyncio
    async def test_certificate_number_not_reused_after_delete(
        self, db_session, catalog, package, qc_manager
    ):
        """Numbers issued to deleted packages stay consumed."""
        manager = CertificateManager(db_session)
        await finalize(manager, package.package_id, qc_manager)
        await PackageRepository(db_session).delete_package(package.package_id, actor=qc_manager)

        second = await PackageRepository(db_session).create_package(
            catalog.project_id, "Hydro-2", actor=qc_manager
        )
        await finalize(manager, second.package_id, qc_manager)
        certificate = await manager.get_certificate(second.package_id)
        assert certificate.certificate_number == 2
