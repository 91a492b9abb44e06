"""Tests for the lifecycle audit log.

Tests cover:
- JSON-safe conversion of stored values
- Append behavior (flush with the caller's transaction)
- Filtered reads against a real session
"""

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from hydrotrack.db.models.base import AuditEventType, StageStatus
from hydrotrack.services.audit_log import AuditLogService, to_json_safe
from hydrotrack.services.authz import Actor


def create_mock_session() -> MagicMock:
    session = MagicMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    return session


class TestToJsonSafe:
    """Tests for to_json_safe."""

    def test_scalars(self):
        value = uuid.UUID("12345678-1234-5678-1234-567812345678")
        assert to_json_safe(value) == "12345678-1234-5678-1234-567812345678"
        assert to_json_safe(Decimal("150.50")) == "150.50"
        assert to_json_safe(date(2026, 3, 2)) == "2026-03-02"
        assert to_json_safe(StageStatus.SKIPPED) == "skipped"
        assert to_json_safe(None) is None

    def test_datetime(self):
        moment = datetime(2026, 3, 2, 8, 30, tzinfo=UTC)
        assert to_json_safe(moment) == "2026-03-02T08:30:00+00:00"

    def test_sets_sorted(self):
        assert to_json_safe({"b", "a"}) == ["a", "b"]

    def test_nested(self):
        component_id = uuid.uuid4()
        value = {"ids": [component_id], "meta": {"pressure": Decimal("1")}}
        assert to_json_safe(value) == {"ids": [str(component_id)], "meta": {"pressure": "1"}}


class TestAuditLogServiceAppend:
    """Tests for the append operation."""

    @pytest.mark.asyncio
    async def test_append_adds_and_flushes(self):
        session = create_mock_session()
        service = AuditLogService(session)
        project_id, package_id = uuid.uuid4(), uuid.uuid4()

        entry = await service.append(
            project_id=project_id,
            package_id=package_id,
            event_type=AuditEventType.COMPONENT_ASSIGNMENT_REMOVED,
            entity_type="component",
            entity_id="c-1",
            actor=Actor("u-100", "Dana Reyes"),
            old_value={"package_id": package_id},
            reason="Moved to tie-in package",
        )

        session.add.assert_called_once()
        session.flush.assert_awaited_once()
        assert entry.actor_ref == "Dana Reyes"
        assert entry.old_value == {"package_id": str(package_id)}
        assert entry.new_value is None
        assert entry.reason == "Moved to tie-in package"

    @pytest.mark.asyncio
    async def test_append_without_actor(self):
        service = AuditLogService(create_mock_session())
        entry = await service.append(
            project_id=uuid.uuid4(),
            event_type=AuditEventType.PACKAGE_CREATED,
            entity_type="package",
        )
        assert entry.actor_ref is None
        assert entry.package_id is None


class TestAuditLogServiceRead:
    """Tests for filtered reads."""

    @pytest.mark.asyncio
    async def test_filters(self, db_session):
        service = AuditLogService(db_session)
        project_id, first, second = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        for package_id, event_type in (
            (first, AuditEventType.PACKAGE_CREATED),
            (first, AuditEventType.PACKAGE_UPDATED),
            (second, AuditEventType.PACKAGE_CREATED),
        ):
            await service.append(
                project_id=project_id,
                package_id=package_id,
                event_type=event_type,
                entity_type="package",
            )
        await service.append(
            project_id=uuid.uuid4(),
            event_type=AuditEventType.PACKAGE_CREATED,
            entity_type="package",
        )

        assert len(await service.get_records(package_id=first)) == 2
        assert len(await service.get_records(project_id=project_id)) == 3
        created = await service.get_records(
            project_id=project_id, event_type=AuditEventType.PACKAGE_CREATED
        )
        assert {r.package_id for r in created} == {first, second}
        assert len(await service.get_records(limit=1)) == 1
