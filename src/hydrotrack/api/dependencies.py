"""FastAPI dependencies shared by the routers.

Routers get a request-scoped AsyncSession, the current actor and the
lifecycle services built on that session. The routers commit; services
only flush.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hydrotrack.api.middleware.auth import require_actor
from hydrotrack.core.config import Settings
from hydrotrack.services.assignments import AssignmentResolver
from hydrotrack.services.authz import Actor, SignoffPolicy, SingleRoleSignoffPolicy
from hydrotrack.services.certificates import CertificateManager
from hydrotrack.services.packages import PackageRepository
from hydrotrack.services.workflow import WorkflowEngine


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session.

    Uses the application's async session factory; overridden in tests.
    """
    from hydrotrack.db import get_async_session

    async with get_async_session() as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CurrentActor = Annotated[Actor, Depends(require_actor)]


def get_app_settings(request: Request) -> Settings:
    """Settings the app was created with, else the environment settings."""
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        from hydrotrack.core.settings import get_settings

        settings = get_settings()
    return settings


AppSettings = Annotated[Settings, Depends(get_app_settings)]


def get_signoff_policy(settings: AppSettings) -> SignoffPolicy:
    return SingleRoleSignoffPolicy(settings.workflow.signoff_role)


def get_package_repository(db: DbSession) -> PackageRepository:
    return PackageRepository(db)


def get_assignment_resolver(db: DbSession) -> AssignmentResolver:
    return AssignmentResolver(db)


def get_workflow_engine(
    db: DbSession,
    policy: Annotated[SignoffPolicy, Depends(get_signoff_policy)],
) -> WorkflowEngine:
    return WorkflowEngine(db, signoff_policy=policy)


def get_certificate_manager(
    db: DbSession,
    settings: AppSettings,
    workflow: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
) -> CertificateManager:
    return CertificateManager(db, settings=settings.workflow, workflow=workflow)


Packages = Annotated[PackageRepository, Depends(get_package_repository)]
Assignments = Annotated[AssignmentResolver, Depends(get_assignment_resolver)]
Workflow = Annotated[WorkflowEngine, Depends(get_workflow_engine)]
Certificates = Annotated[CertificateManager, Depends(get_certificate_manager)]
