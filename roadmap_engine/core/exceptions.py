"""
Engine-wide exception hierarchy.

Services raise these; the blueprint maps each type to one HTTP status and
error code, so callers never import service-specific exception classes.

Usage:
    from roadmap_engine.core.exceptions import NotFoundError, InvalidStateError

    raise NotFoundError(resource="ProjectRoadmapStage", resource_id=42)
    raise InvalidStateError("ProjectRoadmapStage", 42, current="active", expected="pending")
"""


class NotFoundError(Exception):
    """Raised when a referenced stage, template or task does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable model/entity name (e.g. "ProjectRoadmapStage").
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


class InvalidStateError(Exception):
    """Raised when a lifecycle operation is applied to a record in the wrong state.

    Example: starting a stage that is already active. Maps to HTTP 409.

    Args:
        resource: Model name.
        resource_id: PK of the record.
        current: Status the record is in.
        expected: Status (or "a|b" alternatives) the operation requires.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None,
        *,
        current: str,
        expected: str,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.current = current
        self.expected = expected
        super().__init__(
            f"{resource} id={resource_id} is '{current}', expected '{expected}'"
        )


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

    Used for duplicate Task generation from a repeated activation, a
    template applied twice, or a taken stage order_index. Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")
