"""Actor identity and sign-off authorization.

Identity is established upstream (gateway headers, see
hydrotrack.api.middleware.auth); this module only models the resulting
actor and decides whether it may fill a sign-off slot.

The sign-off map on a stage is open (role name -> signature), so the
decision is delegated to a pluggable SignoffPolicy. The default policy
authorizes a single configured role for every slot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from hydrotrack.services.errors import SignoffNotAuthorizedError

logger = logging.getLogger(__name__)

DEFAULT_SIGNOFF_ROLE = "qc_manager"


@dataclass(frozen=True)
class Actor:
    """An authenticated user acting on packages.

    Attributes:
        actor_id: Stable identifier from the identity provider.
        display_name: Human-readable name used for attribution.
        roles: Role names granted by the identity provider.
    """

    actor_id: str
    display_name: str | None = None
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def label(self) -> str:
        """Name recorded in completed_by / edited_by / audit columns."""
        return self.display_name or self.actor_id

    def has_role(self, role: str) -> bool:
        return role in self.roles


@runtime_checkable
class SignoffPolicy(Protocol):
    """Decides whether an actor may fill a given sign-off slot."""

    def can_sign(self, actor: Actor, signoff_role: str) -> bool: ...


class SingleRoleSignoffPolicy:
    """Every slot may be filled by holders of one configured role."""

    def __init__(self, authorized_role: str = DEFAULT_SIGNOFF_ROLE) -> None:
        self.authorized_role = authorized_role

    def can_sign(self, actor: Actor, signoff_role: str) -> bool:  # noqa: ARG002
        return actor.has_role(self.authorized_role)


class RoleMatchSignoffPolicy:
    """A slot may be filled by holders of the slot's own role name.

    An optional override role (e.g. a QC manager) may fill any slot.
    """

    def __init__(self, override_role: str | None = None) -> None:
        self.override_role = override_role

    def can_sign(self, actor: Actor, signoff_role: str) -> bool:
        if self.override_role is not None and actor.has_role(self.override_role):
            return True
        return actor.has_role(signoff_role)


def enforce_signoff_policy(
    policy: SignoffPolicy,
    actor: Actor,
    signoff_roles: list[str],
) -> None:
    """Raise if the actor may not fill any of the given slots.

    Raises:
        SignoffNotAuthorizedError: For the first slot that is refused.
    """
    for role in signoff_roles:
        if not policy.can_sign(actor, role):
            logger.warning(
                "Sign-off refused",
                extra={"actor_id": actor.actor_id, "signoff_role": role},
            )
            raise SignoffNotAuthorizedError(actor.actor_id, role)
