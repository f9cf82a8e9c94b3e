"""
Service-wide exception hierarchy.

Every service in ``fieldops.services`` raises these types and nothing else
for business-rule failures. Blueprints register one handler per type in
``fieldops.blueprints.register_error_handlers`` and get consistent HTTP
status codes everywhere:

    NotFoundError           → 404
    ValidationError         → 422
    ConflictError           → 409
    InvalidTransitionError  → 409
    AlreadyProcessedError   → 409

Usage:
    from fieldops.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Job", resource_id=42)
    raise ValidationError("end must be after start", details={"scheduled_end": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given tenant.

    Used for BOTH genuinely missing records AND cross-tenant access attempts.
    A 403 would confirm the resource exists; a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Job", "Quote").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional, the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Covers bad intervals, negative money values, unknown statuses and
    references to ids that do not exist in the caller's tenant.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique value.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        if value is None:
            msg = f"{resource} {field} is already taken"
        else:
            msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class InvalidTransitionError(Exception):
    """Raised when a lifecycle operation is not permitted from the current state.

    Args:
        resource: Model name ("Job", "Quote", "TimeEntry").
        current: Status the entity is in.
        target: Status (or operation name) that was requested.
        message: Optional override for the default message.
    """

    def __init__(
        self,
        resource: str,
        current: str,
        target: str,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.current = current
        self.target = target
        super().__init__(message or f"{resource} cannot move from {current!r} to {target!r}")


class AlreadyProcessedError(Exception):
    """Raised when a one-shot operation is repeated.

    Examples: completing a completed job, converting a converted quote,
    clocking in while an entry is still open.
    """

    def __init__(self, resource: str, resource_id: int | str | None, message: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(message)
