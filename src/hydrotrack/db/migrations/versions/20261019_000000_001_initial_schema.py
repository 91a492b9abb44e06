"""Initial schema with all lifecycle tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

Creates all tables for Hydrotrack:
- drawings, components (read-only catalog)
- packages, package_drawing_assignments, package_component_assignments
- certificates, certificate_sequences
- workflow_stages, stage_edit_records
- audit_log_records
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ENUMS = {
    "test_type": (
        "hydrostatic",
        "pneumatic",
        "sensitive_leak",
        "alternative_leak",
        "in_service",
        "other",
    ),
    "certificate_status": ("draft", "final"),
    "stage_kind": (
        "pre_acceptance",
        "test_acceptance",
        "drain_flush",
        "post_acceptance",
        "coatings",
        "insulation",
        "final_acceptance",
    ),
    "stage_status": ("not_started", "in_progress", "completed", "skipped"),
    "audit_event_type": (
        "package_created",
        "package_updated",
        "package_deleted",
        "drawing_assignments_added",
        "drawing_assignment_removed",
        "component_assignments_added",
        "component_assignment_removed",
        "certificate_finalized",
        "stage_started",
        "stage_completed",
        "stage_skipped",
        "stage_edited",
        "package_approved",
    ),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _uuid_pk(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
    )


def upgrade() -> None:
    """Apply migration: Initial schema with all lifecycle tables."""
    for name in ENUMS:
        _enum(name).create(op.get_bind(), checkfirst=True)

    # =========================================================================
    # Catalog
    # =========================================================================
    op.create_table(
        "drawings",
        _uuid_pk("drawing_id"),
        _timestamp("created_at"),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("drawing_no", sa.String(255), nullable=False),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("revision", sa.String(50), nullable=True),
        sa.Column("is_retired", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.PrimaryKeyConstraint("drawing_id", name="pk_drawings"),
    )
    op.create_index("ix_drawings_project_id", "drawings", ["project_id"])

    op.create_table(
        "components",
        _uuid_pk("component_id"),
        _timestamp("created_at"),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("drawing_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("component_type", sa.String(50), nullable=False),
        sa.Column("identity_key", postgresql.JSONB(), nullable=True),
        sa.Column("is_retired", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.PrimaryKeyConstraint("component_id", name="pk_components"),
        sa.ForeignKeyConstraint(
            ["drawing_id"],
            ["drawings.drawing_id"],
            name="fk_components_drawing_id_drawings",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_components_project_id", "components", ["project_id"])
    op.create_index("ix_components_drawing_id", "components", ["drawing_id"])

    # =========================================================================
    # Packages and assignments
    # =========================================================================
    op.create_table(
        "packages",
        _uuid_pk("package_id"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.String(2000), nullable=True),
        sa.Column("test_type", _enum("test_type"), nullable=False),
        sa.Column("target_date", sa.Date(), nullable=True),
        sa.Column("is_fully_approved", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("package_id", name="pk_packages"),
        sa.UniqueConstraint("project_id", "name", name="uq_packages_project_id_name"),
    )
    op.create_index("ix_packages_project_id", "packages", ["project_id"])
    # Case-insensitive name uniqueness within a project
    op.create_index(
        "uq_packages_project_id_lower_name",
        "packages",
        ["project_id", sa.text("lower(name)")],
        unique=True,
    )

    op.create_table(
        "package_drawing_assignments",
        _uuid_pk("assignment_id"),
        _timestamp("created_at"),
        sa.Column("package_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("drawing_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("assigned_by", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("assignment_id", name="pk_package_drawing_assignments"),
        sa.ForeignKeyConstraint(
            ["package_id"],
            ["packages.package_id"],
            name="fk_package_drawing_assignments_package_id_packages",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "package_id", "drawing_id", name="uq_package_drawing_assignments_package_drawing"
        ),
    )
    op.create_index(
        "ix_package_drawing_assignments_drawing_id",
        "package_drawing_assignments",
        ["drawing_id"],
    )

    op.create_table(
        "package_component_assignments",
        _uuid_pk("assignment_id"),
        _timestamp("created_at"),
        sa.Column("package_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("component_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("assigned_by", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("assignment_id", name="pk_package_component_assignments"),
        sa.ForeignKeyConstraint(
            ["package_id"],
            ["packages.package_id"],
            name="fk_package_component_assignments_package_id_packages",
            ondelete="CASCADE",
        ),
        # One direct owner per component
        sa.UniqueConstraint(
            "component_id", name="uq_package_component_assignments_component_id"
        ),
    )
    op.create_index(
        "ix_package_component_assignments_package_id",
        "package_component_assignments",
        ["package_id"],
    )

    # =========================================================================
    # Certificates
    # =========================================================================
    op.create_table(
        "certificates",
        _uuid_pk("certificate_id"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("package_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", _enum("certificate_status"), nullable=False),
        sa.Column("certificate_number", sa.Integer(), nullable=True),
        sa.Column("test_pressure", sa.Numeric(12, 3), nullable=True),
        sa.Column("pressure_unit", sa.String(10), nullable=True),
        sa.Column("test_medium", sa.String(100), nullable=True),
        sa.Column("temperature", sa.Numeric(8, 2), nullable=True),
        sa.Column("temperature_unit", sa.String(10), nullable=True),
        sa.Column("client", sa.String(255), nullable=True),
        sa.Column("client_spec", sa.String(255), nullable=True),
        sa.Column("line_number", sa.String(255), nullable=True),
        sa.Column("submitted_by", sa.String(255), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("certificate_id", name="pk_certificates"),
        sa.ForeignKeyConstraint(
            ["package_id"],
            ["packages.package_id"],
            name="fk_certificates_package_id_packages",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("package_id", name="uq_certificates_package_id"),
        sa.UniqueConstraint(
            "project_id",
            "certificate_number",
            name="uq_certificates_project_id_certificate_number",
        ),
    )
    op.create_index("ix_certificates_project_id", "certificates", ["project_id"])

    op.create_table(
        "certificate_sequences",
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("last_number", sa.Integer(), server_default="0", nullable=False),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("project_id", name="pk_certificate_sequences"),
    )

    # =========================================================================
    # Workflow
    # =========================================================================
    op.create_table(
        "workflow_stages",
        _uuid_pk("stage_id"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("package_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("stage_kind", _enum("stage_kind"), nullable=False),
        sa.Column("stage_order", sa.Integer(), nullable=False),
        sa.Column("status", _enum("stage_status"), nullable=False),
        sa.Column("stage_data", postgresql.JSONB(), nullable=True),
        sa.Column("signoffs", postgresql.JSONB(), nullable=True),
        sa.Column("skip_reason", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.String(255), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_edited_by", sa.String(255), nullable=True),
        sa.Column("last_edited_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("stage_id", name="pk_workflow_stages"),
        sa.ForeignKeyConstraint(
            ["package_id"],
            ["packages.package_id"],
            name="fk_workflow_stages_package_id_packages",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("package_id", "stage_order", name="uq_workflow_stages_package_order"),
        sa.CheckConstraint(
            "stage_order BETWEEN 1 AND 7", name="ck_workflow_stages_stage_order_range"
        ),
    )
    op.create_index("ix_workflow_stages_package_id", "workflow_stages", ["package_id"])

    op.create_table(
        "stage_edit_records",
        _uuid_pk("edit_id"),
        sa.Column("stage_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("edited_by", sa.String(255), nullable=False),
        _timestamp("edited_at"),
        sa.Column("change_description", sa.Text(), nullable=False),
        sa.Column("previous_data", postgresql.JSONB(), nullable=True),
        sa.Column("new_data", postgresql.JSONB(), nullable=True),
        sa.Column("previous_signoffs", postgresql.JSONB(), nullable=True),
        sa.Column("new_signoffs", postgresql.JSONB(), nullable=True),
        sa.PrimaryKeyConstraint("edit_id", name="pk_stage_edit_records"),
        sa.ForeignKeyConstraint(
            ["stage_id"],
            ["workflow_stages.stage_id"],
            name="fk_stage_edit_records_stage_id_workflow_stages",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_stage_edit_records_stage_id", "stage_edit_records", ["stage_id"])

    # =========================================================================
    # Audit
    # =========================================================================
    op.create_table(
        "audit_log_records",
        _uuid_pk("record_id"),
        _timestamp("created_at"),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("package_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("event_type", _enum("audit_event_type"), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(100), nullable=True),
        sa.Column("actor_ref", sa.String(255), nullable=True),
        sa.Column("old_value", postgresql.JSONB(), nullable=True),
        sa.Column("new_value", postgresql.JSONB(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("record_id", name="pk_audit_log_records"),
    )
    op.create_index("ix_audit_log_records_package_id", "audit_log_records", ["package_id"])
    op.create_index(
        "ix_audit_log_records_project_created",
        "audit_log_records",
        ["project_id", "created_at"],
    )


def downgrade() -> None:
    """Revert migration: Drop all lifecycle tables and enum types."""
    for table in (
        "audit_log_records",
        "stage_edit_records",
        "workflow_stages",
        "certificate_sequences",
        "certificates",
        "package_component_assignments",
        "package_drawing_assignments",
        "packages",
        "components",
        "drawings",
    ):
        op.drop_table(table)

    for name in reversed(list(ENUMS)):
        _enum(name).drop(op.get_bind(), checkfirst=True)
