"""
Authorization Guard.

Resolves the caller into an ``Actor`` and answers role / ownership questions.
Everything here except ``authenticate`` is pure: no store access and no side
effects, so guards can run before any state is touched.

Cross-org checks raise AuthorizationError here. Callers that load an entity
by id scope the lookup to ``actor.org_id`` first, so a foreign entity is
already a NotFoundError before a guard ever sees it.
"""

import logging
from dataclasses import dataclass

from nippo.core.exceptions import AuthenticationError, AuthorizationError
from nippo.models.auth import Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """The resolved caller."""

    id: int
    org_id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role.at_least(Role.MANAGER)


def authenticate(store, identity_ref: str | None) -> Actor:
    """Map an external identity reference to an active profile."""
    if not identity_ref:
        raise AuthenticationError()
    profile = store.profile_by_identity(identity_ref)
    if profile is None or not profile.is_active:
        logger.info("Authentication failed: no active profile for identity %s", identity_ref)
        raise AuthenticationError("No active profile for this identity")
    return Actor(id=profile.id, org_id=profile.org_id, role=Role(profile.role))


def require_org_member(actor: Actor | None, org_id: int) -> Actor:
    if actor is None:
        raise AuthenticationError()
    if actor.org_id != org_id:
        raise AuthorizationError("Actor does not belong to this organization")
    return actor


def require_role(actor: Actor | None, min_role: Role, org_id: int) -> Actor:
    """Pass when *actor* is in *org_id* with a role at least *min_role*."""
    require_org_member(actor, org_id)
    if not actor.role.at_least(min_role):
        raise AuthorizationError(
            f"Role '{Role(min_role).value}' or higher required",
            required_role=Role(min_role).value,
        )
    return actor


def require_ownership_or_manager(actor: Actor | None, resource_author_id: int, org_id: int) -> Actor:
    """Pass for the resource's author, or any manager+ of the same org."""
    require_org_member(actor, org_id)
    if actor.id == resource_author_id or actor.is_manager:
        return actor
    raise AuthorizationError("Only the author or a manager may do this")
