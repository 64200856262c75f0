"""
Exception hierarchy shared by every service module.

Services raise only these types; blueprints register handlers against them
once (see ``contrivance.utils.errors.register_error_handlers``) and get
consistent HTTP status codes everywhere.

Usage:
    from contrivance.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Spreadsheet", resource_id=42)
    raise ValidationError("name is required", details={"name": "required"})
"""


class NotFoundError(Exception):
    """Raised when a referenced spreadsheet, column, row, todo, session,
    response or note does not exist.

    Maps to HTTP 404. Kept distinct from ValidationError so callers can tell
    "bad input" from "stale reference".

    Args:
        resource: Human-readable entity name (e.g. "Spreadsheet", "Row").
        resource_id: The PK that was looked up.
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
    """Raised when input is well-formed but violates a business rule
    (missing required column value, bad number, unknown vertical, ...).

    Maps to HTTP 422. No partial write happens before this is raised.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

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


class StorageUnavailableError(Exception):
    """Raised when the relational store cannot be reached or times out.

    Maps to HTTP 503. The core never retries on its own.
    """


class CollaboratorUnavailableError(Exception):
    """Raised when an external collaborator (CRM, chat completion) is not
    configured or its call failed after the gateway's own retries.

    Maps to HTTP 503.

    Args:
        service: Collaborator name ("crm", "chat").
        message: What went wrong.
    """

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(f"{service}: {message}")
