"""
Service-layer exception hierarchy.

Services raise these types; blueprints register handlers against them once
(see ``coursedesk.blueprints.register_error_handlers``) and get consistent
HTTP status codes everywhere.

Usage:
    from coursedesk.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="CourseInstance", resource_id=42)
    raise ValidationError(
        "Seat allocation rejected",
        details={"seats_allocated": "Cannot allocate more than the remaining 3 seats"},
    )
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable model/entity name (e.g. "Client", "Student").
        resource_id: The key that was looked up. Included in logs and message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint) — this
    exception signals that the data was well-formed but violated a business
    rule (capacity exceeded, missing required field, invalid step transition).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for inline form errors.
                 Keys are field names; values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PermissionDeniedError(Exception):
    """Raised when the acting role may not perform an action.

    Maps to HTTP 403.
    """

    def __init__(self, action: str, role: str | None = None) -> None:
        self.action = action
        self.role = role
        msg = f"Permission denied: {action}"
        if role:
            msg += f" (role={role})"
        super().__init__(msg)


class AuthenticationRequiredError(Exception):
    """Raised when an operation needs a real authenticated user id.

    Maps to HTTP 401.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)
