"""Pytest configuration and shared fixtures.

Service and API tests run against an in-memory SQLite database (aiosqlite)
built from the ORM metadata; every test gets a fresh database.

Environment variables:
    HYDROTRACK_TEST_DATABASE_URL: PostgreSQL URL for tests/integration
        (row locking and concurrent finalization). Those tests are skipped
        when it is not set.
"""

import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hydrotrack.api import create_app
from hydrotrack.api.dependencies import get_db_session
from hydrotrack.core.config import DatabaseSettings, Settings
from hydrotrack.db.models import Base, Component, Drawing
from hydrotrack.services.authz import Actor
from hydrotrack.services.packages import PackageRepository
from tests.factories import actor_headers


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the full schema.

    StaticPool keeps the single in-memory connection alive for the test.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Session on the test database, same options as the application."""
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Catalog fixtures
# ---------------------------------------------------------------------------
@dataclass
class CatalogSeed:
    """Catalog rows created for a test project."""

    project_id: uuid.UUID
    drawings: list[Drawing]
    components: dict[uuid.UUID, list[uuid.UUID]]
    loose_component_ids: list[uuid.UUID] = field(default_factory=list)
    retired_drawing: Drawing | None = None
    retired_component_id: uuid.UUID | None = None
    other_project_component_id: uuid.UUID | None = None
    other_project_drawing_id: uuid.UUID | None = None

    @property
    def drawing_ids(self) -> list[uuid.UUID]:
        return [d.drawing_id for d in self.drawings]

    @property
    def all_component_ids(self) -> set[uuid.UUID]:
        """Active components on the active drawings."""
        return {cid for ids in self.components.values() for cid in ids}

    def components_of(self, index: int) -> list[uuid.UUID]:
        return self.components[self.drawings[index].drawing_id]


def _add_components(
    session: AsyncSession,
    project_id: uuid.UUID,
    drawing_id: uuid.UUID | None,
    count: int,
    *,
    retired: bool = False,
) -> list[uuid.UUID]:
    ids = []
    for n in range(count):
        component = Component(
            component_id=uuid.uuid4(),
            project_id=project_id,
            drawing_id=drawing_id,
            component_type="pipe" if n % 2 else "weld",
            identity_key={"seq": n},
            is_retired=retired,
        )
        session.add(component)
        ids.append(component.component_id)
    return ids


@pytest.fixture
async def catalog(db_session: AsyncSession) -> CatalogSeed:
    """Project with three active drawings holding 20 + 15 + 15 components.

    Also seeds a retired drawing, a retired component on the first drawing,
    components without a drawing, and a drawing/component pair belonging to
    another project.
    """
    project_id = uuid.uuid4()
    drawings = [
        Drawing(
            drawing_id=uuid.uuid4(),
            project_id=project_id,
            drawing_no=f"P-{100 + n}",
            title=f"Line {n + 1} isometric",
        )
        for n in range(3)
    ]
    retired = Drawing(
        drawing_id=uuid.uuid4(),
        project_id=project_id,
        drawing_no="P-900",
        title="Superseded isometric",
        is_retired=True,
    )
    other_drawing = Drawing(drawing_id=uuid.uuid4(), project_id=uuid.uuid4(), drawing_no="X-1")
    db_session.add_all([*drawings, retired, other_drawing])
    await db_session.flush()

    first, second, third = (d.drawing_id for d in drawings)
    components = {
        first: _add_components(db_session, project_id, first, 20),
        second: _add_components(db_session, project_id, second, 15),
        third: _add_components(db_session, project_id, third, 15),
    }
    retired_component = _add_components(
        db_session, project_id, drawings[0].drawing_id, 1, retired=True
    )[0]
    _add_components(db_session, project_id, retired.drawing_id, 5)
    loose = _add_components(db_session, project_id, None, 3)
    other_component = _add_components(
        db_session, other_drawing.project_id, other_drawing.drawing_id, 1
    )[0]
    await db_session.commit()

    return CatalogSeed(
        project_id=project_id,
        drawings=drawings,
        components=components,
        loose_component_ids=loose,
        retired_drawing=retired,
        retired_component_id=retired_component,
        other_project_component_id=other_component,
        other_project_drawing_id=other_drawing.drawing_id,
    )


# ---------------------------------------------------------------------------
# Actor fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def qc_manager() -> Actor:
    """Actor allowed to sign off stages under the default policy."""
    return Actor(actor_id="u-100", display_name="Dana Reyes", roles=frozenset({"qc_manager"}))


@pytest.fixture
def field_engineer() -> Actor:
    """Actor without sign-off rights."""
    return Actor(actor_id="u-200", display_name="Sam Park", roles=frozenset({"field_engineer"}))


@pytest.fixture
async def package(db_session: AsyncSession, catalog: CatalogSeed, qc_manager: Actor):
    """Committed package "Hydro-1" in the catalog project."""
    repo = PackageRepository(db_session)
    created = await repo.create_package(
        catalog.project_id, "Hydro-1", actor=qc_manager, target_date=date(2026, 4, 1)
    )
    await db_session.commit()
    return created


# ---------------------------------------------------------------------------
# API client fixtures (in-process testing via ASGI transport)
# ---------------------------------------------------------------------------
@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        environment="dev",
        debug=True,
        database=DatabaseSettings(url="sqlite+aiosqlite://"),
    )


@pytest.fixture
def test_app(test_settings: Settings, db_session: AsyncSession):
    """App whose routes share the test session."""
    app = create_app(test_settings)

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = _override_session
    return app


@pytest.fixture
async def api_client(test_app, qc_manager: Actor) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client acting as the QC manager."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=actor_headers(qc_manager)
    ) as client:
        yield client


@pytest.fixture
async def anonymous_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client without gateway identity headers."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
