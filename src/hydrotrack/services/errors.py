"""Service-layer exception taxonomy.

Every error raised by the lifecycle services derives from ServiceError and
carries an HTTP status, a machine-readable error code and a detail mapping,
so the API error middleware can render them without knowing each type.

Families:
- FieldValidationError (422): field-scoped validation failures
- ConflictError (409): state conflicts the caller can resolve and retry
- GatingError (409): deterministic workflow ordering violations
- NotFoundError (404): missing packages, certificates or stages
- SignoffNotAuthorizedError (403): actor may not fill a sign-off slot
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from uuid import UUID


class ServiceError(Exception):
    """Base class for lifecycle service errors."""

    status_code: ClassVar[int] = 400
    error_code: ClassVar[str] = "service_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def detail(self) -> dict[str, Any] | None:
        return None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class FieldValidationError(ServiceError):
    """One or more fields failed validation.

    Attributes:
        errors: Mapping of field name to the list of messages for that field.
    """

    status_code = 422
    error_code = "validation_error"

    def __init__(self, errors: dict[str, list[str]], message: str | None = None) -> None:
        self.errors = errors
        super().__init__(message or "Validation failed: " + ", ".join(sorted(errors)))

    @classmethod
    def single(cls, field: str, message: str) -> FieldValidationError:
        return cls({field: [message]})

    @property
    def detail(self) -> dict[str, Any]:
        return {"errors": self.errors}


class CertificateValidationError(FieldValidationError):
    """Certificate fields rejected on final submission or draft save."""

    error_code = "certificate_validation_error"


class StageValidationError(FieldValidationError):
    """Stage payload, sign-offs or skip reason rejected."""

    error_code = "stage_validation_error"


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class ConflictError(ServiceError):
    """State conflict; retryable once the caller resolves it."""

    status_code = 409
    error_code = "conflict"


class DuplicatePackageNameError(ConflictError):
    """A package with the same name already exists in the project."""

    error_code = "duplicate_package_name"

    def __init__(self, project_id: UUID, name: str) -> None:
        self.project_id = project_id
        self.name = name
        super().__init__(f"A package named '{name}' already exists in this project")

    @property
    def detail(self) -> dict[str, Any]:
        return {"project_id": str(self.project_id), "name": self.name}


class AssignmentConflictError(ConflictError):
    """A component is already directly assigned to another package."""

    error_code = "assignment_conflict"

    def __init__(
        self,
        component_id: UUID,
        owner_package_id: UUID | None,
        owner_package_name: str | None,
    ) -> None:
        self.component_id = component_id
        self.owner_package_id = owner_package_id
        self.owner_package_name = owner_package_name
        if owner_package_id is None:
            message = f"Component {component_id} is already assigned to another package"
        else:
            owner = owner_package_name or str(owner_package_id)
            message = f"Component {component_id} is already assigned to package '{owner}'"
        super().__init__(message)

    @property
    def detail(self) -> dict[str, Any]:
        return {
            "component_id": str(self.component_id),
            "owner_package_id": (
                str(self.owner_package_id) if self.owner_package_id is not None else None
            ),
            "owner_package_name": self.owner_package_name,
        }


class CertificateFinalizedError(ConflictError):
    """Draft changes are not accepted on a finalized certificate."""

    error_code = "certificate_finalized"

    def __init__(self, package_id: UUID, certificate_number: int | None) -> None:
        self.package_id = package_id
        self.certificate_number = certificate_number
        super().__init__(
            f"Certificate for package {package_id} is final "
            f"(number {certificate_number}); submit changes as a final certificate"
        )

    @property
    def detail(self) -> dict[str, Any]:
        return {
            "package_id": str(self.package_id),
            "certificate_number": self.certificate_number,
        }


class CertificateNumberConflictError(ConflictError):
    """The issued number collided with an existing certificate."""

    error_code = "certificate_number_conflict"

    def __init__(self, project_id: UUID, certificate_number: int | None = None) -> None:
        self.project_id = project_id
        self.certificate_number = certificate_number
        super().__init__(
            f"Certificate number {certificate_number} is already used in project {project_id}"
        )

    @property
    def detail(self) -> dict[str, Any]:
        return {
            "project_id": str(self.project_id),
            "certificate_number": self.certificate_number,
        }


# ---------------------------------------------------------------------------
# Workflow gating
# ---------------------------------------------------------------------------


class GatingError(ServiceError):
    """Workflow ordering violation."""

    status_code = 409
    error_code = "gating_error"


class StageGatingError(GatingError):
    """A lower-order stage is neither completed nor skipped."""

    error_code = "stage_gated"

    def __init__(self, stage_order: int, blocking_order: int, blocking_title: str) -> None:
        self.stage_order = stage_order
        self.blocking_order = blocking_order
        self.blocking_title = blocking_title
        super().__init__(
            f"Stage {stage_order} is blocked: complete or skip "
            f"stage {blocking_order} ({blocking_title}) first"
        )

    @property
    def detail(self) -> dict[str, Any]:
        return {
            "stage_order": self.stage_order,
            "blocking_stage_order": self.blocking_order,
            "blocking_stage_title": self.blocking_title,
        }


class InvalidStageTransitionError(GatingError):
    """The requested move is not allowed from the stage's current status."""

    error_code = "invalid_stage_transition"

    def __init__(
        self,
        stage_order: int,
        current_status: str,
        action: str,
        reason: str | None = None,
    ) -> None:
        self.stage_order = stage_order
        self.current_status = current_status
        self.action = action
        super().__init__(
            reason or f"Cannot {action} stage {stage_order} while it is {current_status}"
        )

    @property
    def detail(self) -> dict[str, Any]:
        return {
            "stage_order": self.stage_order,
            "current_status": self.current_status,
            "action": self.action,
        }


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(ServiceError):
    """Requested entity does not exist."""

    status_code = 404
    error_code = "not_found"

    def __init__(self, resource: str, identifier: object) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class PackageNotFoundError(NotFoundError):
    def __init__(self, package_id: UUID) -> None:
        super().__init__("Package", package_id)


class CertificateNotFoundError(NotFoundError):
    def __init__(self, package_id: UUID) -> None:
        super().__init__("Certificate for package", package_id)


class StageNotFoundError(NotFoundError):
    def __init__(self, package_id: UUID, stage_order: int) -> None:
        self.package_id = package_id
        self.stage_order = stage_order
        super().__init__("Workflow stage", f"{package_id}#{stage_order}")


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class SignoffNotAuthorizedError(ServiceError):
    """The actor's roles do not allow filling a sign-off slot."""

    status_code = 403
    error_code = "signoff_not_authorized"

    def __init__(self, actor_id: str, role: str) -> None:
        self.actor_id = actor_id
        self.role = role
        super().__init__(f"Actor {actor_id} is not authorized to sign off as {role}")

    @property
    def detail(self) -> dict[str, Any]:
        return {"actor_id": self.actor_id, "signoff_role": self.role}
