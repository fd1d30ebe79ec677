"""Custom exceptions for service request management."""


class ServiceRequestError(Exception):
    """Base class for lifecycle errors surfaced to callers."""
    pass


class RequestValidationError(ServiceRequestError):
    """Raised when request data is malformed or missing required fields."""

    def __init__(self, errors):
        self.errors = errors
        fields = ", ".join(sorted(errors)) if isinstance(errors, dict) else str(errors)
        super().__init__(f"Invalid service request data: {fields}")


class NotFoundError(ServiceRequestError):
    """Raised when a referenced id does not exist."""
    pass


class ServiceRequestNotFoundError(NotFoundError):
    """Raised when a service request cannot be found."""
    pass


class MechanicNotFoundError(NotFoundError):
    """Raised when a mechanic profile cannot be found."""
    pass


class InvalidTransitionError(ServiceRequestError):
    """Raised when a status change is not permitted from the current status."""

    def __init__(self, current_status, requested_status, message=None):
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            message or f"Cannot move request from '{current_status}' to '{requested_status}'"
        )


class AlreadyResolvedError(ServiceRequestError):
    """
    Raised when accept is attempted after the request left 'pending'.

    Carries the request as it is now. This is a lost race, not a fault:
    callers should report it and not retry.
    """

    def __init__(self, request):
        self.request = request
        super().__init__(f"Request {request.id} is already {request.status}")
