"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - request_lifecycle: Service request state machine and accept race
    - matching: Candidate search and dispatch fan-out
"""

# Expose commonly used functions at package level
from .matching import (
    find_candidates,
    dispatch_service_request,
    schedule_dispatch,
    DispatchReport,
)
from .request_lifecycle import (
    create_service_request,
    accept_service_request,
    cancel_service_request,
    update_request_status,
    list_nearby_requests_for_mechanic,
    add_request_note,
    rate_service_request,
    ServiceRequestError,
    RequestValidationError,
    ServiceRequestNotFoundError,
    MechanicNotFoundError,
    InvalidTransitionError,
    AlreadyResolvedError,
)

__all__ = [
    # Matching
    "find_candidates",
    "dispatch_service_request",
    "schedule_dispatch",
    "DispatchReport",
    # Request lifecycle
    "create_service_request",
    "accept_service_request",
    "cancel_service_request",
    "update_request_status",
    "list_nearby_requests_for_mechanic",
    "add_request_note",
    "rate_service_request",
    # Exceptions
    "ServiceRequestError",
    "RequestValidationError",
    "ServiceRequestNotFoundError",
    "MechanicNotFoundError",
    "InvalidTransitionError",
    "AlreadyResolvedError",
]
