"""
Platform-wide exception hierarchy.

Every service in the report lifecycle raises one of these types. Blueprints
never build error responses by hand: the handlers registered in
``nippo.utils.errors.register_error_handlers`` map each type to one HTTP
status and one machine-readable code.

Usage:
    from nippo.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Report", resource_id=42)
    raise ValidationError("title is required", details={"title": "required"})
    raise ConflictError(resource="Report", resource_id=42, stored_version=v)
"""


class AuthenticationError(Exception):
    """Raised when no valid caller identity can be resolved.

    Maps to HTTP 401. Clients are expected to send the user back to sign-in.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class AuthorizationError(Exception):
    """Raised when the caller is known but lacks the role or ownership needed.

    Maps to HTTP 403. Never retried automatically.

    Args:
        message: Human-readable explanation.
        required_role: The minimum role that would have been accepted, if the
                       failure was a role check.
    """

    def __init__(self, message: str, required_role: str | None = None) -> None:
        self.required_role = required_role
        super().__init__(message)


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Security note: Used for BOTH genuinely missing records AND cross-org
    access attempts. A 403 would confirm the resource exists; a 404 does not.

    Args:
        resource: Human-readable model/entity name (e.g. "Report", "WorkItem").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        org_id: Optional, the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        org_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.org_id = org_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if org_id is not None:
            msg += f" (org={org_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Covers bad dates, duplicate reports, a rejection without a reason and
    invalid state transitions. Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Field-level breakdown. Keys are field names; values are
                 error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an optimistic-lock check fails.

    Another writer committed since the caller last read the entity. The
    caller must re-fetch and either discard local changes or save again with
    the fresh version. Maps to HTTP 409.

    Args:
        resource: Model name.
        resource_id: PK of the entity that moved on.
        stored_version: The version currently persisted.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        stored_version: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.stored_version = stored_version
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += f" was modified concurrently (stored version={stored_version})"
        super().__init__(msg)


class ImmutableRecordError(Exception):
    """Raised when code tries to UPDATE or DELETE an append-only row.

    Audit entries are written once and never touched again. Hitting this
    exception is always a programming error and surfaces as HTTP 500.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} id={resource_id} is append-only and cannot be modified")
