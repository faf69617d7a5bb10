"""
Authorization Guard tests.

The guard functions are pure, so most cases use hand-built Actors; only
``authenticate`` touches the store.
"""

import pytest

from nippo.core.exceptions import AuthenticationError, AuthorizationError
from nippo.models.auth import Role
from nippo.services.auth_guard import (
    Actor,
    authenticate,
    require_org_member,
    require_ownership_or_manager,
    require_role,
)

from tests.factories import make_user


def _actor(role, actor_id=1, org_id=10):
    return Actor(id=actor_id, org_id=org_id, role=Role(role))


class TestRoleHierarchy:
    def test_ranks_are_ordered(self):
        assert Role.USER.rank < Role.MANAGER.rank < Role.ADMIN.rank

    @pytest.mark.parametrize("role,minimum,expected", [
        ("user", "user", True),
        ("user", "manager", False),
        ("manager", "user", True),
        ("manager", "admin", False),
        ("admin", "manager", True),
    ])
    def test_at_least(self, role, minimum, expected):
        assert Role(role).at_least(Role(minimum)) is expected


class TestRequireRole:
    def test_passes_when_rank_sufficient(self):
        actor = _actor("manager")
        assert require_role(actor, Role.USER, 10) is actor

    def test_rejects_lower_rank(self):
        with pytest.raises(AuthorizationError) as exc:
            require_role(_actor("user"), Role.MANAGER, 10)
        assert exc.value.required_role == "manager"

    def test_rejects_other_org_even_for_admin(self):
        with pytest.raises(AuthorizationError):
            require_role(_actor("admin"), Role.USER, 99)

    def test_missing_actor_is_unauthenticated(self):
        with pytest.raises(AuthenticationError):
            require_role(None, Role.USER, 10)


class TestRequireOwnershipOrManager:
    def test_author_passes(self):
        actor = _actor("user", actor_id=5)
        assert require_ownership_or_manager(actor, 5, 10) is actor

    def test_manager_passes_for_someone_else(self):
        assert require_ownership_or_manager(_actor("manager", actor_id=6), 5, 10)

    def test_other_user_rejected(self):
        with pytest.raises(AuthorizationError):
            require_ownership_or_manager(_actor("user", actor_id=6), 5, 10)

    def test_manager_of_other_org_rejected(self):
        with pytest.raises(AuthorizationError):
            require_ownership_or_manager(_actor("manager", actor_id=6, org_id=11), 5, 10)

    def test_org_member_helper(self):
        actor = _actor("user")
        assert require_org_member(actor, 10) is actor


class TestAuthenticate:
    def test_resolves_profile(self, store, org):
        profile = make_user(org, "manager")
        actor = authenticate(store, profile.external_identity_ref)
        assert actor == Actor(id=profile.id, org_id=org.id, role=Role.MANAGER)

    def test_missing_identity(self, store):
        with pytest.raises(AuthenticationError):
            authenticate(store, None)

    def test_unknown_identity(self, store):
        with pytest.raises(AuthenticationError):
            authenticate(store, "idp|nobody")

    def test_inactive_profile(self, store, session, org):
        profile = make_user(org)
        profile.is_active = False
        session.commit()
        with pytest.raises(AuthenticationError):
            authenticate(store, profile.external_identity_ref)
