"""Profile provisioning, role administration and project master data."""

import pytest

from nippo.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from nippo.models.audit import AuditLog
from nippo.models.auth import Role
from nippo.models.project import ApprovalFlowRule, Project, WorkCategory
from nippo.services import project_service, user_service
from nippo.services import report_lifecycle as lc
from nippo.services.work_item_service import create_work_item

from tests.factories import actor_of, make_org, make_project, make_rule, make_user


class TestProvisioning:
    def test_first_sign_in_creates_user(self, store, session, org):
        with store.transaction():
            profile = user_service.provision_profile(store, "idp|new-person", org.id, display_name="New")
        assert profile.role is Role.USER
        assert profile.org_id == org.id
        log = session.query(AuditLog).filter_by(action="profile_provisioned").one()
        assert log.actor_id == profile.id

    def test_idempotent(self, store, session, org):
        with store.transaction():
            first = user_service.provision_profile(store, "idp|again", org.id)
        with store.transaction():
            second = user_service.provision_profile(store, "idp|again", org.id)
        assert first.id == second.id
        assert session.query(AuditLog).filter_by(action="profile_provisioned").count() == 1

    def test_unknown_org(self, store):
        with pytest.raises(ValidationError):
            user_service.provision_profile(store, "idp|lost", 9999)

    def test_inactive_org(self, store):
        closed = make_org("Closed", is_active=False)
        with pytest.raises(ValidationError):
            user_service.provision_profile(store, "idp|late", closed.id)

    def test_blank_identity(self, store, org):
        with pytest.raises(ValidationError):
            user_service.provision_profile(store, "  ", org.id)


class TestRoleChange:
    def test_admin_promotes(self, store, session, admin, author):
        with store.transaction():
            profile = user_service.change_role(store, actor_of(admin), author.id, "manager")
        assert profile.role is Role.MANAGER
        log = session.query(AuditLog).filter_by(action="role_changed").one()
        assert log.payload == {"user_id": author.id, "old_role": "user", "new_role": "manager"}

    def test_admin_cannot_demote_self(self, store, admin):
        with pytest.raises(AuthorizationError):
            user_service.change_role(store, actor_of(admin), admin.id, "user")

    def test_manager_cannot_change_roles(self, store, manager, author):
        with pytest.raises(AuthorizationError):
            user_service.change_role(store, actor_of(manager), author.id, "manager")

    def test_unknown_role(self, store, admin, author):
        with pytest.raises(ValidationError):
            user_service.change_role(store, actor_of(admin), author.id, "owner")

    def test_member_of_other_org(self, store, admin):
        stranger = make_user(make_org("Other"))
        with pytest.raises(NotFoundError):
            user_service.change_role(store, actor_of(admin), stranger.id, "manager")


class TestProjects:
    def test_admin_creates_project_and_category(self, store, admin, author):
        with store.transaction():
            project = project_service.create_project(store, actor_of(admin), "  Mobile App ")
        with store.transaction():
            project_service.create_work_category(store, actor_of(admin), project.id, "Testing")

        assert [p.name for p in project_service.list_projects(store, actor_of(author))] == ["Mobile App"]
        names = [c.name for c in project_service.list_work_categories(store, actor_of(author), project.id)]
        assert names == ["Testing"]

    def test_duplicate_project_name(self, store, admin, project):
        with pytest.raises(ValidationError):
            project_service.create_project(store, actor_of(admin), project.name)

    def test_duplicate_category_name(self, store, admin, project, category):
        with pytest.raises(ValidationError):
            project_service.create_work_category(store, actor_of(admin), project.id, category.name)

    def test_same_name_in_other_org(self, store, project):
        other_admin = make_user(make_org("Other"), "admin")
        with store.transaction():
            created = project_service.create_project(store, actor_of(other_admin), project.name)
        assert created.org_id == other_admin.org_id

    def test_users_cannot_create_projects(self, store, author):
        with pytest.raises(AuthorizationError):
            project_service.create_project(store, actor_of(author), "Side project")


def _book_work(store, author, project, category):
    with store.transaction():
        report = lc.create_report(store, actor_of(author), "2024-05-01", "Daily", "Content")
        create_work_item(store, actor_of(author), report.id, project.id, category.id, "Build", 60)


class TestProjectMaintenance:
    def test_rename_and_describe(self, store, session, admin, project):
        with store.transaction():
            updated = project_service.update_project(
                store, actor_of(admin), project.id, name=" Platform ", description="Core services",
            )
        assert (updated.name, updated.description) == ("Platform", "Core services")
        log = session.query(AuditLog).filter_by(action="project_updated").one()
        assert sorted(log.payload["changed_fields"]) == ["description", "name"]

    def test_rename_to_taken_name(self, store, org, admin, project):
        make_project(org, "Taken")
        with pytest.raises(ValidationError):
            project_service.update_project(store, actor_of(admin), project.id, name="Taken")

    def test_keeping_own_name_is_fine(self, store, admin, project):
        with store.transaction():
            assert project_service.update_project(store, actor_of(admin), project.id, name="Core").name == "Core"

    def test_delete_takes_categories_and_rules(self, store, session, admin, manager, project):
        make_rule(project, manager)
        project_id = project.id
        with store.transaction():
            project_service.delete_project(store, actor_of(admin), project_id)

        assert session.get(Project, project_id) is None
        assert session.query(WorkCategory).filter_by(project_id=project_id).count() == 0
        assert session.query(ApprovalFlowRule).filter_by(project_id=project_id).count() == 0
        log = session.query(AuditLog).filter_by(action="project_deleted").one()
        assert (log.payload["removed_categories"], log.payload["removed_rules"]) == (1, 1)

    def test_project_in_use_cannot_be_deleted(self, store, admin, author, project, category):
        _book_work(store, author, project, category)
        with pytest.raises(ValidationError) as exc:
            project_service.delete_project(store, actor_of(admin), project.id)
        assert exc.value.details == {"work_items": 1}

    def test_manager_cannot_delete(self, store, manager, project):
        with pytest.raises(AuthorizationError):
            project_service.delete_project(store, actor_of(manager), project.id)

    def test_other_org_project_is_invisible(self, store, project):
        other_admin = make_user(make_org("Other"), "admin")
        with pytest.raises(NotFoundError):
            project_service.update_project(store, actor_of(other_admin), project.id, name="Mine")


class TestCategoryMaintenance:
    def test_rename(self, store, session, admin, category):
        with store.transaction():
            assert project_service.update_work_category(store, actor_of(admin), category.id, "Review").name == "Review"
        assert session.query(AuditLog).filter_by(action="work_category_updated").count() == 1

    def test_rename_to_sibling_name(self, store, org, admin):
        project = make_project(org, "Multi", categories=("One", "Two"))
        first = project.categories[0]
        with pytest.raises(ValidationError):
            project_service.update_work_category(store, actor_of(admin), first.id, "Two")

    def test_delete_unused(self, store, session, admin, category):
        category_id = category.id
        with store.transaction():
            project_service.delete_work_category(store, actor_of(admin), category_id)
        assert session.get(WorkCategory, category_id) is None

    def test_category_in_use_cannot_be_deleted(self, store, admin, author, project, category):
        _book_work(store, author, project, category)
        with pytest.raises(ValidationError):
            project_service.delete_work_category(store, actor_of(admin), category.id)

    def test_other_org_category_is_invisible(self, store, category):
        other_admin = make_user(make_org("Other"), "admin")
        with pytest.raises(NotFoundError):
            project_service.delete_work_category(store, actor_of(other_admin), category.id)
