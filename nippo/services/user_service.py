"""
User profile provisioning and role administration.

Profiles are created on first authenticated sign-in and are never physically
deleted by end users. Role changes are an administrative event.
"""

import logging

from nippo.core.exceptions import AuthorizationError, ValidationError
from nippo.models.auth import Role, UserProfile
from nippo.services import audit_events as ev
from nippo.services.auth_guard import require_role

logger = logging.getLogger(__name__)


def _parse_role(value) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise ValidationError(f"Unknown role '{value}'", details={"role": [r.value for r in Role]})


def provision_profile(store, identity_ref, org_id, role=Role.USER, display_name=None) -> UserProfile:
    """Return the profile for *identity_ref*, creating it on first sign-in.

    Idempotent: a second call for the same identity returns the existing
    profile unchanged.
    """
    if not isinstance(identity_ref, str) or not identity_ref.strip():
        raise ValidationError("identity_ref is required", details={"identity_ref": "required"})
    existing = store.profile_by_identity(identity_ref)
    if existing is not None:
        return existing

    role = _parse_role(role)
    org = store.get_organization(org_id)
    if org is None or not org.is_active:
        raise ValidationError("Unknown organization", details={"org_id": org_id})

    profile = store.add(UserProfile(
        org_id=org.id,
        external_identity_ref=identity_ref,
        display_name=display_name,
        role=role,
    ))
    store.flush()
    store.record_event(profile.id, org.id, ev.ProfileProvisioned(user_id=profile.id, role=role.value))
    logger.info("Provisioned profile %s in org %s as %s", profile.id, org.id, role.value,
                extra={"org_id": org.id, "actor_id": profile.id})
    return profile


def change_role(store, actor, user_id, role) -> UserProfile:
    """Change another member's role. Admin only; admins cannot change their own role."""
    require_role(actor, Role.ADMIN, actor.org_id)
    new_role = _parse_role(role)
    if user_id == actor.id:
        raise AuthorizationError("Admins cannot change their own role")
    profile = store.get_scoped(UserProfile, user_id, org_id=actor.org_id)

    old_role = Role(profile.role)
    profile.role = new_role
    store.flush()
    store.record_event(actor.id, actor.org_id, ev.RoleChanged(
        user_id=profile.id, old_role=old_role.value, new_role=new_role.value,
    ))
    logger.info("Role of user %s changed %s -> %s", profile.id, old_role.value, new_role.value,
                extra={"org_id": actor.org_id, "actor_id": actor.id})
    return profile
