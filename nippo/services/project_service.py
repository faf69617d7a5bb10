"""Project and work-category master data.

Admins maintain both. A project or category that work items still book
against cannot be deleted; deleting a project takes its categories and
approval routing rules with it.
"""

import logging

from sqlalchemy import func, select

from nippo.core.exceptions import NotFoundError, ValidationError
from nippo.models.auth import Role
from nippo.models.project import ApprovalFlowRule, Project, WorkCategory
from nippo.models.work_item import WorkItem
from nippo.services import audit_events as ev
from nippo.services.auth_guard import require_role
from nippo.services.report_lifecycle import clean_text

logger = logging.getLogger(__name__)

NAME_MAX = 200


def _ensure_project_name_free(store, org_id, name, exclude_id=None):
    stmt = select(Project.id).where(Project.org_id == org_id, Project.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Project.id != exclude_id)
    if store.scalar(stmt) is not None:
        raise ValidationError(f"Project '{name}' already exists", details={"name": "duplicate"})


def _ensure_category_name_free(store, project_id, name, exclude_id=None):
    stmt = select(WorkCategory.id).where(WorkCategory.project_id == project_id, WorkCategory.name == name)
    if exclude_id is not None:
        stmt = stmt.where(WorkCategory.id != exclude_id)
    if store.scalar(stmt) is not None:
        raise ValidationError(f"Category '{name}' already exists in this project", details={"name": "duplicate"})


def _ensure_unused(store, column, value, label):
    in_use = store.scalar(select(func.count(WorkItem.id)).where(column == value))
    if in_use:
        raise ValidationError(
            f"{label} is used by {in_use} work item(s) and cannot be deleted",
            details={"work_items": in_use},
        )


def list_projects(store, actor) -> list[Project]:
    require_role(actor, Role.USER, actor.org_id)
    return store.scalars(
        select(Project).where(Project.org_id == actor.org_id).order_by(Project.name)
    )


def create_project(store, actor, name, description=None) -> Project:
    require_role(actor, Role.ADMIN, actor.org_id)
    name = clean_text(name, "name", NAME_MAX)
    _ensure_project_name_free(store, actor.org_id, name)

    project = store.add(Project(org_id=actor.org_id, name=name, description=description))
    store.flush()
    store.record_event(actor.id, actor.org_id, ev.ProjectCreated(project_id=project.id, name=name))
    logger.info("Project %s created: %s", project.id, name, extra={"org_id": actor.org_id})
    return project


def list_work_categories(store, actor, project_id) -> list[WorkCategory]:
    require_role(actor, Role.USER, actor.org_id)
    project = store.get_scoped(Project, project_id, org_id=actor.org_id)
    return store.scalars(
        select(WorkCategory).where(WorkCategory.project_id == project.id).order_by(WorkCategory.name)
    )


def create_work_category(store, actor, project_id, name) -> WorkCategory:
    require_role(actor, Role.ADMIN, actor.org_id)
    project = store.get_scoped(Project, project_id, org_id=actor.org_id)
    name = clean_text(name, "name", NAME_MAX)
    _ensure_category_name_free(store, project.id, name)

    category = store.add(WorkCategory(project_id=project.id, name=name))
    store.flush()
    store.record_event(actor.id, actor.org_id, ev.WorkCategoryCreated(
        project_id=project.id, work_category_id=category.id, name=name,
    ))
    return category


def update_project(store, actor, project_id, name=None, description=None) -> Project:
    """Rename a project and/or replace its description. ``None`` leaves a field alone."""
    require_role(actor, Role.ADMIN, actor.org_id)
    project = store.get_scoped(Project, project_id, org_id=actor.org_id)

    values = {}
    if name is not None:
        values["name"] = clean_text(name, "name", NAME_MAX)
        _ensure_project_name_free(store, actor.org_id, values["name"], exclude_id=project.id)
    if description is not None:
        if not isinstance(description, str):
            raise ValidationError("description must be a string", details={"description": "not a string"})
        values["description"] = description.strip() or None

    changed = [k for k, v in values.items() if getattr(project, k) != v]
    for key, value in values.items():
        setattr(project, key, value)
    store.flush()

    store.record_event(actor.id, actor.org_id, ev.ProjectUpdated(project_id=project.id, changed_fields=changed))
    logger.info("Project %s updated (%s)", project.id, ",".join(changed) or "-", extra={"org_id": actor.org_id})
    return project


def delete_project(store, actor, project_id) -> None:
    require_role(actor, Role.ADMIN, actor.org_id)
    project = store.get_scoped(Project, project_id, org_id=actor.org_id)
    _ensure_unused(store, WorkItem.project_id, project.id, f"Project '{project.name}'")

    rules = store.scalars(select(ApprovalFlowRule).where(ApprovalFlowRule.project_id == project.id))
    for rule in rules:
        store.delete(rule)
    store.flush()
    removed_categories = len(project.categories)
    name = project.name
    store.delete(project)
    store.flush()

    store.record_event(actor.id, actor.org_id, ev.ProjectDeleted(
        project_id=project_id,
        name=name,
        removed_categories=removed_categories,
        removed_rules=len(rules),
    ))
    logger.info("Project %s deleted with %d categories and %d rules", project_id,
                removed_categories, len(rules), extra={"org_id": actor.org_id})


def _get_category(store, actor, category_id) -> WorkCategory:
    """Load a category through its project so the org scope applies."""
    category = store.scalar(
        select(WorkCategory)
        .join(Project, Project.id == WorkCategory.project_id)
        .where(WorkCategory.id == category_id, Project.org_id == actor.org_id)
    )
    if category is None:
        raise NotFoundError(resource="WorkCategory", resource_id=category_id)
    return category


def update_work_category(store, actor, category_id, name) -> WorkCategory:
    require_role(actor, Role.ADMIN, actor.org_id)
    category = _get_category(store, actor, category_id)
    name = clean_text(name, "name", NAME_MAX)
    _ensure_category_name_free(store, category.project_id, name, exclude_id=category.id)

    category.name = name
    store.flush()
    store.record_event(actor.id, actor.org_id, ev.WorkCategoryUpdated(
        project_id=category.project_id, work_category_id=category.id, name=name,
    ))
    return category


def delete_work_category(store, actor, category_id) -> None:
    require_role(actor, Role.ADMIN, actor.org_id)
    category = _get_category(store, actor, category_id)
    _ensure_unused(store, WorkItem.work_category_id, category.id, f"Category '{category.name}'")

    project_id = category.project_id
    store.delete(category)
    store.flush()
    store.record_event(actor.id, actor.org_id, ev.WorkCategoryDeleted(
        project_id=project_id, work_category_id=category_id,
    ))
    logger.info("Work category %s deleted from project %s", category_id, project_id,
                extra={"org_id": actor.org_id})
