"""
Org-scoped query helpers.

Every get-by-id in the service layer goes through these helpers instead of
``session.get(Model, pk)``. A bare ``get`` ignores the organization and would
let a caller from one org read or mutate another org's rows.

Usage:
    # Scope by org_id (OrgModel subclasses)
    report = get_scoped(session, Report, report_id, org_id=actor.org_id)

    # Scope by parent id (child tables without their own org_id)
    category = get_scoped(session, WorkCategory, cat_id, project_id=project.id)

    # When None is an acceptable outcome
    rule = get_scoped_or_none(session, ApprovalFlowRule, rule_id, org_id=org_id)

Scope field resolution:
    Each keyword argument maps directly to a column name on the model. If the
    model lacks every provided column, a ValueError is raised at call time so
    the bug surfaces in tests rather than as an unscoped lookup in production.
"""

import logging

from sqlalchemy import select

from nippo.core.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def get_scoped(session, model, pk: int, *, org_id: int | None = None,
               project_id: int | None = None, report_id: int | None = None):
    """Fetch a single entity by PK with a mandatory scope filter.

    Cross-org access is indistinguishable from a missing record: both raise
    NotFoundError and map to HTTP 404.

    Raises:
        ValueError: If no scope is provided, or none of the provided scope
                    fields exist on the model.
        NotFoundError: If the entity does not exist within the scope.
    """
    provided_scopes = {
        "org_id": org_id,
        "project_id": project_id,
        "report_id": report_id,
    }
    provided_scopes = {k: v for k, v in provided_scopes.items() if v is not None}

    if not provided_scopes:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter "
            "(org_id, project_id or report_id)."
        )

    applicable_scopes = {
        field: value
        for field, value in provided_scopes.items()
        if hasattr(model, field)
    }

    missing_fields = set(provided_scopes) - set(applicable_scopes)
    if missing_fields:
        logger.warning(
            "get_scoped(%s, %s): scope field(s) %s not found on model, "
            "those filters were NOT applied.",
            model.__name__,
            pk,
            sorted(missing_fields),
        )

    if not applicable_scopes:
        raise ValueError(
            f"{model.__name__} id={pk}: none of the provided scope fields "
            f"{sorted(provided_scopes)} exist on {model.__name__}. "
            "Refusing to perform an unscoped lookup."
        )

    stmt = select(model).where(model.id == pk)
    for field, value in applicable_scopes.items():
        stmt = stmt.where(getattr(model, field) == value)

    result = session.execute(stmt).scalar_one_or_none()

    if result is None:
        logger.debug(
            "get_scoped: %s id=%s not found in scope %s",
            model.__name__,
            pk,
            applicable_scopes,
        )
        raise NotFoundError(resource=model.__name__, resource_id=pk)

    return result


def get_scoped_or_none(session, model, pk: int, *, org_id: int | None = None,
                       project_id: int | None = None, report_id: int | None = None):
    """Same as get_scoped but returns None instead of raising NotFoundError."""
    try:
        return get_scoped(
            session, model, pk,
            org_id=org_id, project_id=project_id, report_id=report_id,
        )
    except NotFoundError:
        return None
