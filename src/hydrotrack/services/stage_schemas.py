"""Stage payload schemas and the fixed acceptance stage registry.

Each stage stores a tagged payload in one JSON column; the tag is the
``stage`` field and selects the payload model through a pydantic
discriminated union. Sign-offs are an open role -> signature map; each
stage definition lists the roles that must be present to complete it.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from datetime import date
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from hydrotrack.db.models.base import StageKind
from hydrotrack.services.errors import StageValidationError

NonEmptyStr = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=2000)
]

QC_REP = "qc_rep"
CLIENT_REP = "client_rep"
MFG_REP = "mfg_rep"


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class StagePayloadBase(BaseModel):
    """Fields shared by every stage payload."""

    model_config = ConfigDict(extra="forbid")

    notes: str | None = Field(default=None, max_length=4000)


class PreAcceptanceData(StagePayloadBase):
    stage: Literal["pre_acceptance"] = "pre_acceptance"
    inspector: NonEmptyStr
    inspection_complete: bool

    @field_validator("inspection_complete")
    @classmethod
    def must_be_complete(cls, v: bool) -> bool:
        if not v:
            msg = "Pre-acceptance inspection must be complete"
            raise ValueError(msg)
        return v


class TestAcceptanceData(StagePayloadBase):
    """Pressure test record: gauges used, their calibration and hold time."""

    __test__ = False  # keep pytest from collecting this model

    stage: Literal["test_acceptance"] = "test_acceptance"
    gauge_numbers: list[NonEmptyStr] = Field(min_length=1)
    calibration_dates: list[date]
    time_held: float = Field(gt=0, allow_inf_nan=False, description="Minutes held at pressure")

    @model_validator(mode="after")
    def one_calibration_per_gauge(self) -> TestAcceptanceData:
        if len(self.calibration_dates) != len(self.gauge_numbers):
            msg = "Provide one calibration date per gauge"
            raise ValueError(msg)
        return self


class DrainFlushData(StagePayloadBase):
    stage: Literal["drain_flush"] = "drain_flush"
    drain_date: date
    flush_date: date


class PostAcceptanceData(StagePayloadBase):
    stage: Literal["post_acceptance"] = "post_acceptance"
    inspection_date: date
    defects_found: bool
    defect_description: str | None = Field(default=None, max_length=4000)

    @model_validator(mode="after")
    def describe_defects(self) -> PostAcceptanceData:
        if self.defects_found and not (self.defect_description or "").strip():
            msg = "Describe the defects found"
            raise ValueError(msg)
        return self


class CoatingsData(StagePayloadBase):
    stage: Literal["coatings"] = "coatings"
    coating_type: NonEmptyStr
    application_date: date
    cure_date: date

    @model_validator(mode="after")
    def cure_after_application(self) -> CoatingsData:
        if self.cure_date < self.application_date:
            msg = "Cure date cannot be before the application date"
            raise ValueError(msg)
        return self


class InsulationData(StagePayloadBase):
    stage: Literal["insulation"] = "insulation"
    insulation_type: NonEmptyStr
    installation_date: date


class FinalAcceptanceData(StagePayloadBase):
    stage: Literal["final_acceptance"] = "final_acceptance"
    final_notes: NonEmptyStr


StagePayload = Annotated[
    PreAcceptanceData
    | TestAcceptanceData
    | DrainFlushData
    | PostAcceptanceData
    | CoatingsData
    | InsulationData
    | FinalAcceptanceData,
    Field(discriminator="stage"),
]

_payload_adapter: TypeAdapter[Any] = TypeAdapter(StagePayload)


class SignOff(BaseModel):
    """A named, dated approval for one sign-off slot."""

    model_config = ConfigDict(extra="forbid")

    name: NonEmptyStr
    date: dt.date
    user_id: str | None = None


# ---------------------------------------------------------------------------
# Stage registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StageDefinition:
    """Static description of one acceptance stage."""

    kind: StageKind
    order: int
    title: str
    payload_model: type[StagePayloadBase]
    required_signoffs: tuple[str, ...]

    @property
    def is_final(self) -> bool:
        return self.order == len(STAGE_DEFINITIONS)


STAGE_DEFINITIONS: tuple[StageDefinition, ...] = (
    StageDefinition(StageKind.PRE_ACCEPTANCE, 1, "Pre-Acceptance", PreAcceptanceData, (QC_REP,)),
    StageDefinition(
        StageKind.TEST_ACCEPTANCE, 2, "Test Acceptance", TestAcceptanceData, (QC_REP, CLIENT_REP)
    ),
    StageDefinition(StageKind.DRAIN_FLUSH, 3, "Drain/Flush Acceptance", DrainFlushData, (QC_REP,)),
    StageDefinition(StageKind.POST_ACCEPTANCE, 4, "Post-Acceptance", PostAcceptanceData, (QC_REP,)),
    StageDefinition(StageKind.COATINGS, 5, "Coatings Acceptance", CoatingsData, (QC_REP,)),
    StageDefinition(StageKind.INSULATION, 6, "Insulation Acceptance", InsulationData, (QC_REP,)),
    StageDefinition(
        StageKind.FINAL_ACCEPTANCE,
        7,
        "Final Acceptance",
        FinalAcceptanceData,
        (QC_REP, CLIENT_REP, MFG_REP),
    ),
)

_BY_KIND = {d.kind: d for d in STAGE_DEFINITIONS}


def get_stage_definition(kind: StageKind) -> StageDefinition:
    return _BY_KIND[kind]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _collect_errors(
    exc: ValidationError,
    prefix: str = "",
    strip_tag: str | None = None,
) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = list(err["loc"])
        if strip_tag is not None and loc and loc[0] == strip_tag:
            loc = loc[1:]
        field = ".".join(str(part) for part in loc)
        if prefix:
            key = f"{prefix}{field}" if field else prefix.rstrip(".")
        else:
            key = field or "stage_data"
        message = err["msg"].removeprefix("Value error, ")
        errors.setdefault(key, []).append(message)
    return errors


def validate_stage_payload(kind: StageKind, data: dict[str, Any] | None) -> StagePayloadBase:
    """Validate a payload against the stage's schema.

    The ``stage`` tag may be omitted; if given it must match the stage.

    Raises:
        StageValidationError: With field -> messages on any failure.
    """
    payload = dict(data or {})
    tag = payload.setdefault("stage", kind.value)
    if tag != kind.value:
        raise StageValidationError(
            {"stage": [f"Payload is for '{tag}' but this stage is '{kind.value}'"]}
        )
    try:
        return _payload_adapter.validate_python(payload)
    except ValidationError as e:
        raise StageValidationError(_collect_errors(e, strip_tag=kind.value)) from e


def validate_signoffs(
    kind: StageKind,
    signoffs: dict[str, Any] | None,
) -> dict[str, SignOff]:
    """Check every required role is signed with a name and a date.

    Roles beyond the required ones are accepted and validated the same way.

    Raises:
        StageValidationError: With ``signoffs.<role>`` keys on any failure.
    """
    definition = get_stage_definition(kind)
    provided = dict(signoffs or {})
    errors: dict[str, list[str]] = {}
    validated: dict[str, SignOff] = {}

    for role in definition.required_signoffs:
        if provided.get(role) is None:
            errors[f"signoffs.{role}"] = [f"Sign-off from {role} is required"]

    for role, entry in provided.items():
        if entry is None:
            continue
        try:
            validated[role] = SignOff.model_validate(entry)
        except ValidationError as e:
            errors.update(_collect_errors(e, prefix=f"signoffs.{role}."))

    if errors:
        raise StageValidationError(errors)
    return validated


def dump_signoffs(signoffs: dict[str, SignOff]) -> dict[str, Any]:
    return {role: s.model_dump(mode="json") for role, s in signoffs.items()}
