"""Domain error taxonomy.

Each expected error carries the HTTP status the API layer answers with.
Routes translate these into ``HTTPException``; anything else is a 500.
"""


class PortalError(Exception):
    """Base class for expected domain errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    """Missing or malformed input."""

    status_code = 400

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []


class TransitionError(ValidationError):
    """Requested status change is not allowed from the current status."""

    def __init__(self, current: str, requested: str, message: str | None = None):
        super().__init__(
            message or f"无效的状态变更: {current} -> {requested}",
            fields=["status"],
        )
        self.current = current
        self.requested = requested


class AuthorizationError(PortalError):
    """Acting user's role or identity does not permit the operation."""

    status_code = 403


class NotFoundError(PortalError):
    """Unknown entity id."""

    status_code = 404


class ConflictError(PortalError):
    """Request collides with existing state (e.g. overlapping time slot)."""

    status_code = 409

    def __init__(self, message: str, conflict_with: str | None = None):
        super().__init__(message)
        self.conflict_with = conflict_with


class ConcurrencyError(ConflictError):
    """Raised when an optimistic version check fails."""


class TransportError(Exception):
    """Push transport failure. Logged by the bus, never surfaced to callers."""
