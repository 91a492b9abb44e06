"""SQLAlchemy ORM models for Hydrotrack.

This package contains all database models organized by domain:
- base: Common metadata, column annotations, and enums
- catalog: Drawings and components (read-only catalog)
- packages: Test packages and drawing/component assignment links
- certificates: Test certificates and per-project number sequences
- workflow: Acceptance stages and stage edit history
- audit: Lifecycle audit log
"""

from hydrotrack.db.models.audit import AuditLogRecord
from hydrotrack.db.models.base import Base, metadata
from hydrotrack.db.models.catalog import Component, Drawing
from hydrotrack.db.models.certificates import Certificate, CertificateSequence
from hydrotrack.db.models.packages import (
    Package,
    PackageComponentAssignment,
    PackageDrawingAssignment,
)
from hydrotrack.db.models.workflow import StageEditRecord, WorkflowStage

__all__ = [
    "AuditLogRecord",
    "Base",
    "Certificate",
    "CertificateSequence",
    "Component",
    "Drawing",
    "Package",
    "PackageComponentAssignment",
    "PackageDrawingAssignment",
    "StageEditRecord",
    "WorkflowStage",
    "metadata",
]
