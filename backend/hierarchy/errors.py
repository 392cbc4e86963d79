"""
Exception types raised by the hierarchy core.

Route handlers in main.py register one handler per type, so every
operation maps to the same HTTP status codes:

    ValidationError -> 400
    ForbiddenError  -> 403
    NotFoundError   -> 404

Anything else (database outages, driver errors) is left unclassified.
"""


class ValidationError(Exception):
    """Raised when input is missing a required field or names an unknown field.

    Always raised before any write reaches the store.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown, keyed by field name.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when a mutation targets an entity owned by another identity."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} access forbidden")


class NotFoundError(Exception):
    """Raised when an entity does not exist for the calling identity.

    Used both for genuinely missing records and for reads of entities owned
    by someone else, so the response never confirms another owner's data.

    Args:
        resource: Human-readable entity name (e.g. "Task", "Portfolio").
        resource_id: The id that was looked up. Logged, not returned.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")
