"""Pydantic schemas for certificate endpoints.

Numeric inputs are accepted as numbers or strings; conversion and business
validation happen in the certificate manager so field errors come back in
one format.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from hydrotrack.db.models.base import CertificateStatus

NumericInput = float | int | str


class CertificateFieldsRequest(BaseModel):
    """Any subset of certificate fields."""

    test_pressure: NumericInput | None = Field(None, description="Test pressure (> 0)")
    pressure_unit: str | None = Field(None, max_length=10, description="PSIG, PSI, BAR or KPA")
    test_medium: str | None = Field(None, max_length=100, description="e.g. Water, Nitrogen")
    temperature: NumericInput | None = Field(None, description="Test temperature")
    temperature_unit: str | None = Field(None, max_length=10, description="F, C or K")
    client: str | None = Field(None, max_length=255)
    client_spec: str | None = Field(None, max_length=255)
    line_number: str | None = Field(None, max_length=255)

    model_config = ConfigDict(extra="forbid")


class CertificateResponse(BaseModel):
    """Response schema for certificate details."""

    certificate_id: UUID
    package_id: UUID
    project_id: UUID
    status: CertificateStatus
    certificate_number: int | None = Field(None, description="Issued at finalization")
    display_number: str | None = Field(None, description="Formatted number, e.g. PKG-0001")
    test_pressure: float | None = None
    pressure_unit: str | None = None
    test_medium: str | None = None
    temperature: float | None = None
    temperature_unit: str | None = None
    client: str | None = None
    client_spec: str | None = None
    line_number: str | None = None
    submitted_by: str | None = None
    submitted_at: datetime | None = None
    updated_at: datetime


class CertificateSubmissionResponse(BaseModel):
    """Outcome of a final submission."""

    certificate: CertificateResponse
    newly_finalized: bool
    stage_count: int = Field(..., description="Workflow stages of the package")
