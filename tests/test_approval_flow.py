"""
Approval Flow Resolver and rule administration tests.

Resolution precedence:
  specific rule for the applicant > all generic rules > nobody
"""

import pytest

from nippo.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from nippo.models.audit import AuditLog
from nippo.models.project import ApprovalFlowRule
from nippo.models.report import Report
from nippo.models.work_item import WorkItem
from nippo.services.approval_flow_service import (
    find_approvers,
    list_rules,
    remove_rule,
    resolve_report_approvers,
    set_rule,
)

from tests.factories import actor_of, make_org, make_project, make_rule, make_user


def _ids(profiles):
    return [p.id for p in profiles]


class TestFindApprovers:
    def test_specific_rule_wins_over_generic(self, store, project, author, manager, manager2):
        make_rule(project, manager2)
        make_rule(project, manager, applicant=author)
        assert _ids(find_approvers(store, project.id, author.id)) == [manager.id]

    def test_generic_rules_apply_to_everyone_else(self, store, org, project, author, manager, manager2):
        other = make_user(org)
        make_rule(project, manager, applicant=other)
        make_rule(project, manager2)
        assert _ids(find_approvers(store, project.id, author.id)) == [manager2.id]

    def test_all_generic_approvers_in_rule_order(self, store, project, author, manager, manager2):
        make_rule(project, manager2)
        make_rule(project, manager)
        assert _ids(find_approvers(store, project.id, author.id)) == [manager2.id, manager.id]

    def test_duplicate_generic_approver_listed_once(self, store, project, author, manager):
        make_rule(project, manager)
        make_rule(project, manager)
        assert _ids(find_approvers(store, project.id, author.id)) == [manager.id]

    def test_no_rules_means_no_approvers(self, store, project, author):
        assert find_approvers(store, project.id, author.id) == []

    def test_inactive_specific_approver_does_not_fall_back(self, store, session, project, author,
                                                            manager, manager2):
        make_rule(project, manager2)
        make_rule(project, manager, applicant=author)
        manager.is_active = False
        session.commit()
        assert find_approvers(store, project.id, author.id) == []


class TestResolveReportApprovers:
    def _report_with_items(self, session, author, projects):
        report = Report(
            org_id=author.org_id, author_id=author.id, report_date="2024-05-01",
            title="t", content="c", report_metadata={},
        )
        session.add(report)
        session.flush()
        for project in projects:
            session.add(WorkItem(
                report_id=report.id, project_id=project.id,
                work_category_id=project.categories[0].id,
                description="work", duration_minutes=30,
            ))
        session.commit()
        return report

    def test_union_over_projects(self, store, session, org, author, manager, manager2):
        p1 = make_project(org, "Alpha")
        p2 = make_project(org, "Beta")
        make_rule(p1, manager)
        make_rule(p2, manager2)
        make_rule(p2, manager)
        report = self._report_with_items(session, author, [p1, p2])
        assert _ids(resolve_report_approvers(store, report)) == [manager.id, manager2.id]

    def test_author_never_approves_own_report(self, store, session, org, project, manager):
        lead = make_user(org, "manager", "Lead")
        make_rule(project, lead)
        make_rule(project, manager)
        report = self._report_with_items(session, lead, [project])
        assert _ids(resolve_report_approvers(store, report)) == [manager.id]

    def test_report_without_items_has_no_approvers(self, store, session, author, manager, project):
        make_rule(project, manager)
        report = self._report_with_items(session, author, [])
        assert resolve_report_approvers(store, report) == []


class TestRuleAdministration:
    def test_admin_creates_generic_rule(self, store, session, admin, project, manager):
        rule = set_rule(store, actor_of(admin), project.id, manager.id)
        session.commit()
        assert rule.applicant_id is None
        assert rule.approver_id == manager.id
        log = session.query(AuditLog).filter_by(action="approval_flow_set").one()
        assert log.payload["created"] is True

    def test_specific_rule_is_replaced_not_duplicated(self, store, session, admin, project,
                                                      author, manager, manager2):
        first = set_rule(store, actor_of(admin), project.id, manager.id, applicant_id=author.id)
        second = set_rule(store, actor_of(admin), project.id, manager2.id, applicant_id=author.id)
        session.commit()
        assert first.id == second.id
        assert session.query(ApprovalFlowRule).count() == 1
        assert _ids(find_approvers(store, project.id, author.id)) == [manager2.id]

    def test_generic_rules_for_two_approvers_coexist(self, store, session, admin, project, manager, manager2):
        set_rule(store, actor_of(admin), project.id, manager.id)
        set_rule(store, actor_of(admin), project.id, manager.id, approval_level=2)
        set_rule(store, actor_of(admin), project.id, manager2.id)
        session.commit()
        assert session.query(ApprovalFlowRule).count() == 2

    def test_manager_cannot_set_rules(self, store, project, manager, manager2):
        with pytest.raises(AuthorizationError):
            set_rule(store, actor_of(manager), project.id, manager2.id)

    def test_approver_must_be_manager(self, store, org, admin, project):
        plain = make_user(org)
        with pytest.raises(ValidationError):
            set_rule(store, actor_of(admin), project.id, plain.id)

    def test_applicant_cannot_be_own_approver(self, store, admin, project, manager):
        with pytest.raises(ValidationError):
            set_rule(store, actor_of(admin), project.id, manager.id, applicant_id=manager.id)

    def test_approver_from_other_org_is_not_found(self, store, admin, project):
        foreign = make_user(make_org("Other"), "manager")
        with pytest.raises(NotFoundError):
            set_rule(store, actor_of(admin), project.id, foreign.id)

    def test_list_puts_specific_rules_first(self, store, author, project, manager, manager2):
        generic = make_rule(project, manager2)
        specific = make_rule(project, manager, applicant=author)
        rules = list_rules(store, actor_of(author), project.id)
        assert [r.id for r in rules] == [specific.id, generic.id]

    def test_remove_rule(self, store, session, admin, project, author, manager):
        rule = make_rule(project, manager)
        remove_rule(store, actor_of(admin), rule.id)
        session.commit()
        assert find_approvers(store, project.id, author.id) == []
        assert session.query(AuditLog).filter_by(action="approval_flow_removed").count() == 1
