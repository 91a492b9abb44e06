"""Certificate API router.

Drafts may be saved in any state of completeness; final submission
validates every field, issues the project-scoped number and creates the
workflow stages.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, status

from hydrotrack.api.dependencies import Certificates, CurrentActor, DbSession
from hydrotrack.api.schemas.certificates import (
    CertificateFieldsRequest,
    CertificateResponse,
    CertificateSubmissionResponse,
)
from hydrotrack.db.models.certificates import Certificate
from hydrotrack.services.certificates import CertificateManager

router = APIRouter(
    tags=["certificates"],
    responses={
        401: {"description": "Authentication required"},
        404: {"description": "Package or certificate not found"},
    },
)


def _certificate_to_response(
    certificate: Certificate, manager: CertificateManager
) -> CertificateResponse:
    def _float(value: object) -> float | None:
        return float(value) if value is not None else None  # type: ignore[arg-type]

    return CertificateResponse(
        certificate_id=certificate.certificate_id,
        package_id=certificate.package_id,
        project_id=certificate.project_id,
        status=certificate.status,
        certificate_number=certificate.certificate_number,
        display_number=manager.display_number(certificate),
        test_pressure=_float(certificate.test_pressure),
        pressure_unit=certificate.pressure_unit,
        test_medium=certificate.test_medium,
        temperature=_float(certificate.temperature),
        temperature_unit=certificate.temperature_unit,
        client=certificate.client,
        client_spec=certificate.client_spec,
        line_number=certificate.line_number,
        submitted_by=certificate.submitted_by,
        submitted_at=certificate.submitted_at,
        updated_at=certificate.updated_at,
    )


@router.get(
    "/packages/{package_id}/certificate",
    response_model=CertificateResponse,
    summary="Get the certificate of a package",
)
async def get_certificate(
    package_id: UUID,
    _actor: CurrentActor,
    certificates: Certificates,
) -> CertificateResponse:
    certificate = await certificates.get_certificate(package_id)
    return _certificate_to_response(certificate, certificates)


@router.put(
    "/packages/{package_id}/certificate/draft",
    response_model=CertificateResponse,
    summary="Save certificate draft",
    responses={409: {"description": "Certificate already finalized"}},
)
async def save_draft(
    package_id: UUID,
    request: CertificateFieldsRequest,
    actor: CurrentActor,
    certificates: Certificates,
    db: DbSession,
) -> CertificateResponse:
    """Save the fields present in the body; omitted fields keep their value."""
    certificate = await certificates.save_draft(
        package_id, request.model_dump(exclude_unset=True), actor=actor
    )
    await db.commit()
    return _certificate_to_response(certificate, certificates)


@router.post(
    "/packages/{package_id}/certificate/submit",
    response_model=CertificateSubmissionResponse,
    status_code=status.HTTP_200_OK,
    summary="Submit the final certificate",
    responses={422: {"description": "Certificate fields are incomplete or invalid"}},
)
async def submit_certificate(
    package_id: UUID,
    request: CertificateFieldsRequest,
    actor: CurrentActor,
    certificates: Certificates,
    db: DbSession,
) -> CertificateSubmissionResponse:
    """Finalize the certificate.

    Body fields are merged over the saved draft before validation. The
    first successful submission issues the certificate number and creates
    the seven workflow stages.
    """
    submission = await certificates.submit_final(
        package_id, request.model_dump(exclude_unset=True), actor=actor
    )
    await db.commit()
    return CertificateSubmissionResponse(
        certificate=_certificate_to_response(submission.certificate, certificates),
        newly_finalized=submission.newly_finalized,
        stage_count=len(submission.stages),
    )
