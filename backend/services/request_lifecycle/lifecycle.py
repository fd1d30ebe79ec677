"""
Core service request lifecycle operations.

This module owns every status change of a ServiceRequest. Each write is a
conditional UPDATE keyed on the status the caller observed, so two concurrent
callers can never both move a request out of the same state.

    pending -> accepted -> in-progress -> completed
    pending -> cancelled
    accepted -> cancelled
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.utils import timezone

from common.conf import dispatch_setting
from common.utils import bounding_box, distance_km, offers_service
from mechanics.models import Mechanic
from service_requests.models import RequestNote, RequestStatus, ServiceRequest
from .exceptions import (
    AlreadyResolvedError,
    InvalidTransitionError,
    MechanicNotFoundError,
    RequestValidationError,
    ServiceRequestNotFoundError,
)
from .locks import request_lock

logger = logging.getLogger(__name__)


TRANSITIONS = {
    RequestStatus.PENDING: {RequestStatus.ACCEPTED, RequestStatus.CANCELLED},
    RequestStatus.ACCEPTED: {RequestStatus.IN_PROGRESS, RequestStatus.CANCELLED},
    RequestStatus.IN_PROGRESS: {RequestStatus.COMPLETED},
    RequestStatus.COMPLETED: set(),
    RequestStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = {RequestStatus.COMPLETED, RequestStatus.CANCELLED}


def can_transition(current: str, new: str) -> bool:
    """Whether the transition table allows current -> new."""
    return new in TRANSITIONS.get(current, set())


def get_service_request(request_id) -> ServiceRequest:
    try:
        return ServiceRequest.objects.select_related('accepted_by', 'customer').get(pk=request_id)
    except (ServiceRequest.DoesNotExist, ValueError):
        raise ServiceRequestNotFoundError(f"No service request with id {request_id}")


def get_mechanic(mechanic_id) -> Mechanic:
    try:
        return Mechanic.objects.select_related('user').get(pk=mechanic_id)
    except (Mechanic.DoesNotExist, ValueError):
        raise MechanicNotFoundError(f"No mechanic with id {mechanic_id}")


# ===================== Customer Operations =====================

@transaction.atomic
def create_service_request(data: Dict[str, Any], customer=None, dispatch: bool = True) -> ServiceRequest:
    """
    Create a new pending service request and schedule dispatch to nearby mechanics.

    Args:
        data: Raw request fields (location, service_type, description, vehicle info, contact)
        customer: Authenticated user raising the request, or None for guests
        dispatch: Schedule the candidate fan-out once the request is committed

    Returns:
        The created ServiceRequest

    Raises:
        RequestValidationError: If required fields are missing or invalid
    """
    from service_requests.serializers import ServiceRequestCreateSerializer

    serializer = ServiceRequestCreateSerializer(data=data)
    if not serializer.is_valid():
        raise RequestValidationError(serializer.errors)

    request = serializer.save(customer=customer, status=RequestStatus.PENDING)
    logger.info(
        "Created service request %s (%s at %s,%s)",
        request.id, request.service_type, request.latitude, request.longitude
    )

    if dispatch:
        from services.matching import schedule_dispatch
        schedule_dispatch(request.id)

    return request


def cancel_service_request(request_id, reason: str = "") -> ServiceRequest:
    """
    Cancel a request that is still pending or accepted.

    Raises:
        ServiceRequestNotFoundError: Unknown request id
        InvalidTransitionError: Request already in progress, completed or cancelled
    """
    with request_lock(request_id):
        request = get_service_request(request_id)
        current = request.status
        if not can_transition(current, RequestStatus.CANCELLED):
            raise InvalidTransitionError(current, RequestStatus.CANCELLED)

        updated = ServiceRequest.objects.filter(pk=request.pk, status=current).update(
            status=RequestStatus.CANCELLED,
            cancelled_at=timezone.now(),
            cancellation_reason=reason or "",
        )
        request = get_service_request(request_id)

    if not updated:
        raise InvalidTransitionError(request.status, RequestStatus.CANCELLED)

    logger.info("Service request %s cancelled (was %s)", request.id, current)
    _on_commit(lambda: _announce_request_closed(request))
    _on_commit(lambda: _notify_customer(
        request,
        'Service Request Cancelled',
        f'Your service request for {request.service_type} has been cancelled.',
    ))
    return request


# ===================== Mechanic Operations =====================

def accept_service_request(request_id, mechanic_id, estimated_cost: Optional[Decimal] = None) -> ServiceRequest:
    """
    Award a pending request to a mechanic.

    The award is a single conditional UPDATE (status must still be pending),
    so among any number of concurrent callers exactly one succeeds.

    Args:
        request_id: ID of the request to accept
        mechanic_id: ID of the accepting mechanic
        estimated_cost: Optional non-negative quote

    Returns:
        The accepted ServiceRequest

    Raises:
        ServiceRequestNotFoundError / MechanicNotFoundError: Unknown ids
        RequestValidationError: Negative estimated cost
        AlreadyResolvedError: The request already left pending (lost the race)
    """
    if estimated_cost is not None and Decimal(str(estimated_cost)) < 0:
        raise RequestValidationError({"estimated_cost": ["Cost cannot be negative."]})

    with request_lock(request_id):
        get_service_request(request_id)
        mechanic = get_mechanic(mechanic_id)

        updated = ServiceRequest.objects.filter(pk=request_id, status=RequestStatus.PENDING).update(
            status=RequestStatus.ACCEPTED,
            accepted_by=mechanic,
            estimated_cost=estimated_cost,
            accepted_at=timezone.now(),
        )
        request = get_service_request(request_id)

    if not updated:
        logger.info(
            "Mechanic %s lost accept race for request %s (now %s)",
            mechanic.id, request.id, request.status
        )
        raise AlreadyResolvedError(request)

    logger.info("Service request %s accepted by mechanic %s", request.id, mechanic.id)
    _on_commit(lambda: _announce_request_closed(request))
    _on_commit(lambda: _notify_customer(
        request,
        'Service Request Accepted',
        f'Your service request for {request.service_type} has been accepted by '
        f'{mechanic.business_name}. Estimated cost: {request.estimated_cost or "to be confirmed"}.',
    ))
    return request


def update_request_status(
    request_id,
    new_status: str,
    mechanic_id=None,
    estimated_cost: Optional[Decimal] = None,
    actual_cost: Optional[Decimal] = None,
) -> ServiceRequest:
    """
    Move a request along the transition table.

    Moving to 'accepted' needs the accepting mechanic and goes through
    accept_service_request; moving to 'cancelled' goes through
    cancel_service_request. Completing stamps completed_at.

    Raises:
        InvalidTransitionError: new_status is not reachable from the current status
    """
    if new_status not in TRANSITIONS:
        raise RequestValidationError({"status": [f"Unknown status '{new_status}'."]})

    if new_status == RequestStatus.ACCEPTED:
        current = get_service_request(request_id).status
        if not can_transition(current, new_status):
            raise InvalidTransitionError(current, new_status)
        if mechanic_id is None:
            raise RequestValidationError({"mechanic_id": ["Required to accept a request."]})
        return accept_service_request(request_id, mechanic_id, estimated_cost)

    if new_status == RequestStatus.CANCELLED:
        return cancel_service_request(request_id)

    if actual_cost is not None and Decimal(str(actual_cost)) < 0:
        raise RequestValidationError({"actual_cost": ["Cost cannot be negative."]})

    with request_lock(request_id):
        request = get_service_request(request_id)
        current = request.status
        if not can_transition(current, new_status):
            raise InvalidTransitionError(current, new_status)

        fields: Dict[str, Any] = {"status": new_status}
        if new_status == RequestStatus.COMPLETED:
            fields["completed_at"] = timezone.now()
            if actual_cost is not None:
                fields["actual_cost"] = actual_cost

        updated = ServiceRequest.objects.filter(pk=request.pk, status=current).update(**fields)
        request = get_service_request(request_id)

    if not updated:
        raise InvalidTransitionError(request.status, new_status)

    logger.info("Service request %s moved %s -> %s", request.id, current, new_status)
    _on_commit(lambda: _notify_customer(
        request,
        'Service Request Update',
        f'Your service request for {request.service_type} has been updated to {new_status}.',
    ))
    return request


def list_service_requests(customer=None, mechanic_id=None, status: Optional[str] = None):
    """
    Requests newest first, optionally scoped to a customer or to the
    mechanic they were awarded to, and filtered by status.
    """
    if status is not None and status not in TRANSITIONS:
        raise RequestValidationError({"status": [f"Unknown status '{status}'."]})

    requests = ServiceRequest.objects.select_related('accepted_by', 'customer').prefetch_related('notes')
    if customer is not None:
        requests = requests.filter(customer=customer)
    if mechanic_id is not None:
        requests = requests.filter(accepted_by_id=mechanic_id)
    if status is not None:
        requests = requests.filter(status=status)
    return requests.order_by('-created_at', '-id')


def list_nearby_requests_for_mechanic(
    mechanic_id,
    within_hours: Optional[float] = None,
    radius_km: Optional[float] = None,
) -> List[ServiceRequest]:
    """
    Pending requests near a mechanic, newest first (notification catch-up view).

    Only requests for services the mechanic offers and raised within the last
    within_hours are returned. Each request is annotated with distance_km.
    """
    mechanic = get_mechanic(mechanic_id)
    center = mechanic.location
    if center is None:
        return []

    if within_hours is None:
        within_hours = dispatch_setting("NEARBY_WINDOW_HOURS")
    if radius_km is None:
        radius_km = dispatch_setting("DEFAULT_RADIUS_KM")

    since = timezone.now() - timedelta(hours=float(within_hours))
    min_lat, max_lat, min_lon, max_lon = bounding_box(center, radius_km)

    pending = ServiceRequest.objects.filter(
        status=RequestStatus.PENDING,
        created_at__gte=since,
        latitude__range=(min_lat, max_lat),
        longitude__range=(min_lon, max_lon),
    ).order_by('-created_at')

    nearby = []
    for request in pending:
        if not offers_service(mechanic.services_offered, request.service_type):
            continue
        distance = distance_km(center, request.location)
        if distance <= radius_km:
            request.distance_km = distance
            nearby.append(request)
    return nearby


# ===================== Shared Operations =====================

def add_request_note(request_id, message: str, author_role: str) -> RequestNote:
    """Append a note from the customer or the mechanic."""
    from service_requests.serializers import NoteCreateSerializer

    serializer = NoteCreateSerializer(data={"message": message, "author_role": author_role})
    if not serializer.is_valid():
        raise RequestValidationError(serializer.errors)

    request = get_service_request(request_id)
    return RequestNote.objects.create(request=request, **serializer.validated_data)


@transaction.atomic
def rate_service_request(request_id, rating: int, review: str = "") -> ServiceRequest:
    """
    Record the customer's rating once the job is completed.

    The rating and the mechanic roll-up commit together.

    Raises:
        RequestValidationError: Rating outside 1-5 or review too long
        InvalidTransitionError: Request not completed, or already rated
    """
    from service_requests.serializers import ReviewSerializer

    serializer = ReviewSerializer(data={"rating": rating, "review": review or ""})
    if not serializer.is_valid():
        raise RequestValidationError(serializer.errors)

    updated = ServiceRequest.objects.filter(
        pk=request_id, status=RequestStatus.COMPLETED, rating__isnull=True
    ).update(**serializer.validated_data)
    request = get_service_request(request_id)

    if not updated:
        if request.status != RequestStatus.COMPLETED:
            raise InvalidTransitionError(request.status, 'rated', "Only completed requests can be rated")
        raise InvalidTransitionError(request.status, 'rated', "This request has already been rated")

    if request.accepted_by_id:
        _roll_up_rating(request.accepted_by_id, request.rating)

    logger.info("Service request %s rated %s", request.id, request.rating)
    return request


# ===================== Helper Functions =====================

def _on_commit(callback):
    """Run side effects only once the state change is durable."""
    transaction.on_commit(callback)


@transaction.atomic
def _roll_up_rating(mechanic_id, rating: int):
    """Fold one more rating into the mechanic's running average."""
    mechanic = Mechanic.objects.select_for_update().get(pk=mechanic_id)
    total = mechanic.rating * mechanic.review_count + rating
    mechanic.review_count += 1
    mechanic.rating = round(total / mechanic.review_count, 2)
    mechanic.save(update_fields=['rating', 'review_count'])


def _announce_request_closed(request: ServiceRequest):
    """Tell connected mechanics the request is no longer open."""
    try:
        from realtime.notifications import broadcast_request_closed
        broadcast_request_closed(request)
    except Exception:
        logger.exception("Failed to announce closure of request %s", request.id)


def _notify_customer(request: ServiceRequest, subject: str, message: str):
    """Queue an email to the customer, if we have an address."""
    if not request.contact_email:
        return
    try:
        from service_requests.tasks import notify_customer_task
        notify_customer_task.delay(request.id, subject, message)
    except Exception:
        logger.exception("Failed to queue customer notification for request %s", request.id)
