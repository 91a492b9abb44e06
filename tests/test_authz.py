"""Tests for actor identity and sign-off authorization.

Tests cover:
- Actor attribution label and role checks
- Single-role and role-match sign-off policies
- Policy enforcement over several sign-off slots
"""

import pytest

from hydrotrack.services.authz import (
    Actor,
    RoleMatchSignoffPolicy,
    SignoffPolicy,
    SingleRoleSignoffPolicy,
    enforce_signoff_policy,
)
from hydrotrack.services.errors import SignoffNotAuthorizedError

QC_MANAGER = Actor("u-100", "Dana Reyes", frozenset({"qc_manager"}))
CLIENT = Actor("u-400", None, frozenset({"client_rep"}))


class TestActor:
    """Tests for the Actor value object."""

    def test_label_prefers_display_name(self) -> None:
        assert QC_MANAGER.label == "Dana Reyes"

    def test_label_falls_back_to_id(self) -> None:
        assert CLIENT.label == "u-400"

    def test_has_role(self) -> None:
        assert QC_MANAGER.has_role("qc_manager")
        assert not QC_MANAGER.has_role("client_rep")

    def test_default_roles_empty(self) -> None:
        assert Actor("u-1").roles == frozenset()


class TestSingleRoleSignoffPolicy:
    """Tests for the default policy."""

    def test_default_role_signs_every_slot(self) -> None:
        policy = SingleRoleSignoffPolicy()
        assert all(policy.can_sign(QC_MANAGER, role) for role in ("qc_rep", "mfg_rep"))

    def test_other_roles_refused(self) -> None:
        assert not SingleRoleSignoffPolicy().can_sign(CLIENT, "client_rep")

    def test_configured_role(self) -> None:
        assert SingleRoleSignoffPolicy("client_rep").can_sign(CLIENT, "qc_rep")

    def test_satisfies_protocol(self) -> None:
        assert isinstance(SingleRoleSignoffPolicy(), SignoffPolicy)


class TestRoleMatchSignoffPolicy:
    """Tests for the slot-name policy."""

    def test_slot_role_required(self) -> None:
        policy = RoleMatchSignoffPolicy()
        assert policy.can_sign(CLIENT, "client_rep")
        assert not policy.can_sign(CLIENT, "qc_rep")

    def test_override_role(self) -> None:
        policy = RoleMatchSignoffPolicy(override_role="qc_manager")
        assert policy.can_sign(QC_MANAGER, "mfg_rep")
        assert not RoleMatchSignoffPolicy().can_sign(QC_MANAGER, "mfg_rep")


class TestEnforceSignoffPolicy:
    """Tests for enforce_signoff_policy."""

    def test_all_allowed(self) -> None:
        enforce_signoff_policy(SingleRoleSignoffPolicy(), QC_MANAGER, ["qc_rep", "client_rep"])

    def test_first_refused_slot_reported(self) -> None:
        with pytest.raises(SignoffNotAuthorizedError) as exc_info:
            enforce_signoff_policy(RoleMatchSignoffPolicy(), CLIENT, ["client_rep", "qc_rep"])

        assert exc_info.value.role == "qc_rep"
        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == {"actor_id": "u-400", "signoff_role": "qc_rep"}

    def test_no_slots(self) -> None:
        enforce_signoff_policy(SingleRoleSignoffPolicy(), CLIENT, [])
