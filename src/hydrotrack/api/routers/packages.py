"""Package API router.

Create, list, read, update and delete test packages. Deletion cascades to
the package's certificate, stages and assignment links and reports the
components it freed.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, status

from hydrotrack.api.dependencies import CurrentActor, DbSession, Packages
from hydrotrack.api.schemas.packages import (
    CreatePackageRequest,
    PackageDeletedResponse,
    PackageListResponse,
    PackageResponse,
    UpdatePackageRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["packages"],
    responses={
        401: {"description": "Authentication required"},
        404: {"description": "Package not found"},
    },
)


@router.post(
    "/projects/{project_id}/packages",
    response_model=PackageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a package",
)
async def create_package(
    project_id: UUID,
    request: CreatePackageRequest,
    actor: CurrentActor,
    packages: Packages,
    db: DbSession,
) -> PackageResponse:
    """Create a package in a project.

    Returns 409 if another package of the project already uses the name
    (compared case-insensitively).
    """
    package = await packages.create_package(
        project_id,
        request.name,
        actor=actor,
        test_type=request.test_type,
        description=request.description,
        target_date=request.target_date,
    )
    await db.commit()
    return PackageResponse.model_validate(package)


@router.get(
    "/projects/{project_id}/packages",
    response_model=PackageListResponse,
    summary="List the packages of a project",
)
async def list_packages(
    project_id: UUID,
    _actor: CurrentActor,
    packages: Packages,
) -> PackageListResponse:
    items = [
        PackageResponse.model_validate(p) for p in await packages.list_packages(project_id)
    ]
    return PackageListResponse(items=items, total=len(items))


@router.get(
    "/packages/{package_id}",
    response_model=PackageResponse,
    summary="Get a package",
)
async def get_package(
    package_id: UUID,
    _actor: CurrentActor,
    packages: Packages,
) -> PackageResponse:
    return PackageResponse.model_validate(await packages.get_package(package_id))


@router.patch(
    "/packages/{package_id}",
    response_model=PackageResponse,
    summary="Update package metadata",
)
async def update_package(
    package_id: UUID,
    request: UpdatePackageRequest,
    actor: CurrentActor,
    packages: Packages,
    db: DbSession,
) -> PackageResponse:
    """Update only the fields present in the request body.

    description and target_date are cleared when sent as null; name and
    test_type cannot be cleared.
    """
    given = request.model_fields_set
    optional: dict[str, object] = {
        field: getattr(request, field)
        for field in ("description", "target_date")
        if field in given
    }
    package = await packages.update_package(
        package_id,
        actor=actor,
        name=request.name,
        test_type=request.test_type,
        **optional,  # type: ignore[arg-type]
    )
    await db.commit()
    return PackageResponse.model_validate(package)


@router.delete(
    "/packages/{package_id}",
    response_model=PackageDeletedResponse,
    summary="Delete a package",
)
async def delete_package(
    package_id: UUID,
    actor: CurrentActor,
    packages: Packages,
    db: DbSession,
) -> PackageDeletedResponse:
    result = await packages.delete_package(package_id, actor=actor)
    await db.commit()

    logger.info(
        "Package deleted via API",
        extra={"package_id": str(package_id), "freed": len(result.freed_component_ids)},
    )
    return PackageDeletedResponse(
        package_id=result.package_id,
        freed_component_ids=sorted(result.freed_component_ids, key=str),
        freed_count=len(result.freed_component_ids),
        certificate_number=result.certificate_number,
    )
