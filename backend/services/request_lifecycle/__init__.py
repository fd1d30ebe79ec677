"""
Service request lifecycle - status transitions and the accept race.

This module handles:
    - Creating service requests
    - Awarding a request to exactly one mechanic
    - Progressing, completing and cancelling requests
    - Notes, ratings and the mechanic catch-up query
"""

from .lifecycle import (
    TRANSITIONS,
    TERMINAL_STATUSES,
    can_transition,
    get_service_request,
    get_mechanic,
    create_service_request,
    accept_service_request,
    update_request_status,
    cancel_service_request,
    list_service_requests,
    list_nearby_requests_for_mechanic,
    add_request_note,
    rate_service_request,
)

from .exceptions import (
    ServiceRequestError,
    RequestValidationError,
    NotFoundError,
    ServiceRequestNotFoundError,
    MechanicNotFoundError,
    InvalidTransitionError,
    AlreadyResolvedError,
)

__all__ = [
    # Lifecycle operations
    "TRANSITIONS",
    "TERMINAL_STATUSES",
    "can_transition",
    "get_service_request",
    "get_mechanic",
    "create_service_request",
    "accept_service_request",
    "update_request_status",
    "cancel_service_request",
    "list_service_requests",
    "list_nearby_requests_for_mechanic",
    "add_request_note",
    "rate_service_request",
    # Exceptions
    "ServiceRequestError",
    "RequestValidationError",
    "NotFoundError",
    "ServiceRequestNotFoundError",
    "MechanicNotFoundError",
    "InvalidTransitionError",
    "AlreadyResolvedError",
]
