"""Hydrotrack service layer.

This package contains the package lifecycle business logic:
- PackageRepository: package CRUD and cascading deletion
- AssignmentResolver: drawing inheritance, direct ownership, membership
- CertificateManager: drafts, final submission, project-scoped numbering
- WorkflowEngine: gated seven-stage acceptance with sign-offs and edit history
- AuditLogService: append-only lifecycle audit records

Services share the caller's AsyncSession and only flush; the caller commits.
"""

from hydrotrack.services.assignments import AssignmentResolver, AssignmentSummary
from hydrotrack.services.audit_log import AuditLogEntry, AuditLogService
from hydrotrack.services.authz import (
    Actor,
    RoleMatchSignoffPolicy,
    SignoffPolicy,
    SingleRoleSignoffPolicy,
)
from hydrotrack.services.catalog import CatalogProvider, SqlCatalog
from hydrotrack.services.certificates import CertificateManager, CertificateSubmission
from hydrotrack.services.packages import PackageDeletionResult, PackageRepository
from hydrotrack.services.workflow import WorkflowEngine, WorkflowProgress

__all__ = [
    "Actor",
    "AssignmentResolver",
    "AssignmentSummary",
    "AuditLogEntry",
    "AuditLogService",
    "CatalogProvider",
    "CertificateManager",
    "CertificateSubmission",
    "PackageDeletionResult",
    "PackageRepository",
    "RoleMatchSignoffPolicy",
    "SignoffPolicy",
    "SingleRoleSignoffPolicy",
    "SqlCatalog",
    "WorkflowEngine",
    "WorkflowProgress",
]
