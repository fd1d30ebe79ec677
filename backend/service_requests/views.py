import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotAuthenticated
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAuthenticated

from accounts.models import User
from common.conf import dispatch_setting
from common.utils import GeoPoint
from mechanics.models import Mechanic
from mechanics.serializers import MechanicCandidateSerializer
from .serializers import (
    ServiceRequestSerializer,
    AcceptRequestSerializer,
    StatusUpdateSerializer,
    CancelRequestSerializer,
    NoteCreateSerializer,
    RequestNoteSerializer,
    ReviewSerializer,
    CandidateQuerySerializer,
)

# Import from services layer
from services.matching import find_candidates
from services.request_lifecycle import (
    create_service_request,
    accept_service_request,
    update_request_status,
    cancel_service_request,
    list_service_requests,
    add_request_note,
    rate_service_request,
    get_service_request,
    RequestValidationError,
    NotFoundError,
    InvalidTransitionError,
    AlreadyResolvedError,
)

logger = logging.getLogger(__name__)


# ==================== Helpers ====================

def _error_response(exc):
    """Translate a lifecycle exception into an HTTP response."""
    if isinstance(exc, RequestValidationError):
        return Response(
            {'error': 'validation_error', 'message': 'Invalid request data', 'errors': exc.errors},
            status=status.HTTP_400_BAD_REQUEST
        )
    if isinstance(exc, NotFoundError):
        return Response(
            {'error': 'not_found', 'message': str(exc)},
            status=status.HTTP_404_NOT_FOUND
        )
    if isinstance(exc, AlreadyResolvedError):
        return Response(
            {
                'error': 'already_resolved',
                'message': 'This request was already taken or cancelled.',
                'request': ServiceRequestSerializer(exc.request).data,
            },
            status=status.HTTP_409_CONFLICT
        )
    if isinstance(exc, InvalidTransitionError):
        return Response(
            {
                'error': 'invalid_transition',
                'message': str(exc),
                'status': exc.current_status,
            },
            status=status.HTTP_409_CONFLICT
        )
    raise exc


def _forbidden(message):
    return Response({'error': 'forbidden', 'message': message}, status=status.HTTP_403_FORBIDDEN)


def _mechanic_for(user):
    """The caller's mechanic profile, or None."""
    if not user.is_authenticated or user.role != User.ROLE_MECHANIC:
        return None
    try:
        return user.mechanic_profile
    except Mechanic.DoesNotExist:
        return None


def _owns_request(user, service_request):
    """Customers may act on their own requests; admins on any."""
    if user.role == User.ROLE_ADMIN or user.is_staff:
        return True
    return service_request.customer_id is not None and service_request.customer_id == user.id


# ==================== Customer APIs ====================

@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def service_requests_root(request):
    """GET lists the caller's requests; POST raises a new one."""
    if request.method == 'GET':
        return _list_requests(request)
    return _create_request(request)


def _list_requests(request):
    """
    Customers see their own requests, mechanics the jobs awarded to them,
    admins everything. Optional ?status= filter, newest first.
    """
    user = request.user
    if not user.is_authenticated:
        raise NotAuthenticated()

    status_filter = request.query_params.get('status') or None
    mechanic = _mechanic_for(user)
    if mechanic is not None:
        scope = {'mechanic_id': mechanic.id}
    elif user.role == User.ROLE_ADMIN or user.is_staff:
        scope = {}
    elif user.role == User.ROLE_MECHANIC:
        return _forbidden('Mechanic profile not found')
    else:
        scope = {'customer': user}

    try:
        requests = list_service_requests(status=status_filter, **scope)
    except RequestValidationError as e:
        return _error_response(e)

    serializer = ServiceRequestSerializer(requests, many=True)
    return Response({'count': len(serializer.data), 'requests': serializer.data})


def _create_request(request):
    """Raise a new service request. Guests may submit with contact details."""
    customer = request.user if request.user.is_authenticated else None
    if customer is not None and customer.role == User.ROLE_MECHANIC:
        return _forbidden('Mechanics cannot raise service requests')

    try:
        service_request = create_service_request(request.data, customer=customer)
    except RequestValidationError as e:
        return _error_response(e)

    response_serializer = ServiceRequestSerializer(service_request)
    return Response({
        **response_serializer.data,
        'message': 'Notifying nearby mechanics...',
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def request_detail(request, request_id):
    """Current state of a request, for its customer or any mechanic."""
    try:
        service_request = get_service_request(request_id)
    except NotFoundError as e:
        return _error_response(e)

    if _mechanic_for(request.user) is None and not _owns_request(request.user, service_request):
        return _forbidden('Not your service request')

    return Response(ServiceRequestSerializer(service_request).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_request(request, request_id):
    """Cancel a request that is still pending or accepted."""
    serializer = CancelRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        service_request = get_service_request(request_id)
        if not _owns_request(request.user, service_request):
            return _forbidden('Only the customer can cancel this request')
        service_request = cancel_service_request(
            request_id, reason=serializer.validated_data.get('reason', '')
        )
    except (NotFoundError, InvalidTransitionError) as e:
        return _error_response(e)

    return Response({
        'success': True,
        'message': 'Service request cancelled',
        'request': ServiceRequestSerializer(service_request).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def review_request(request, request_id):
    """Rate a completed request (once)."""
    serializer = ReviewSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        service_request = get_service_request(request_id)
        if not _owns_request(request.user, service_request):
            return _forbidden('Only the customer can review this request')
        service_request = rate_service_request(
            request_id,
            serializer.validated_data['rating'],
            serializer.validated_data.get('review', ''),
        )
    except (RequestValidationError, NotFoundError, InvalidTransitionError) as e:
        return _error_response(e)

    return Response(ServiceRequestSerializer(service_request).data)


# ==================== Mechanic APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def accept_request(request, request_id):
    """Claim a pending request. Exactly one concurrent caller wins; the rest get 409."""
    mechanic = _mechanic_for(request.user)
    if mechanic is None:
        return _forbidden('Only mechanics can accept service requests')

    serializer = AcceptRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        service_request = accept_service_request(
            request_id, mechanic.id, serializer.validated_data.get('estimated_cost')
        )
    except (RequestValidationError, NotFoundError, AlreadyResolvedError) as e:
        return _error_response(e)

    return Response({
        'success': True,
        'request': ServiceRequestSerializer(service_request).data,
        'message': 'Service request accepted. Head to the customer location.',
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def update_status(request, request_id):
    """Move an awarded request forward (in-progress, completed) or cancel it."""
    mechanic = _mechanic_for(request.user)
    if mechanic is None:
        return _forbidden('Only mechanics can update request status')

    serializer = StatusUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    new_status = serializer.validated_data['status']

    try:
        service_request = get_service_request(request_id)
        if service_request.accepted_by_id not in (None, mechanic.id):
            return _forbidden('This request was awarded to another mechanic')
        service_request = update_request_status(
            request_id,
            new_status,
            mechanic_id=mechanic.id,
            actual_cost=serializer.validated_data.get('actual_cost'),
        )
    except (RequestValidationError, NotFoundError, InvalidTransitionError, AlreadyResolvedError) as e:
        return _error_response(e)

    return Response({
        'success': True,
        'request': ServiceRequestSerializer(service_request).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def find_request_candidates(request):
    """Preview which mechanics a request at this location would reach."""
    serializer = CandidateQuerySerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    radius_km = data.get('radius_km')
    if radius_km is None:
        radius_km = float(dispatch_setting('DEFAULT_RADIUS_KM'))

    candidates = find_candidates(
        GeoPoint(data['latitude'], data['longitude']),
        radius_km,
        data['service_type'],
    )
    return Response({
        'radius_km': radius_km,
        'count': len(candidates),
        'mechanics': MechanicCandidateSerializer(candidates, many=True).data,
    })


# ==================== Shared APIs ====================

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def request_notes(request, request_id):
    """List or append notes on a request."""
    try:
        service_request = get_service_request(request_id)
    except NotFoundError as e:
        return _error_response(e)

    mechanic = _mechanic_for(request.user)
    if mechanic is not None:
        if service_request.accepted_by_id != mechanic.id:
            return _forbidden('Only the assigned mechanic can access notes')
        author_role = 'mechanic'
    elif _owns_request(request.user, service_request):
        author_role = 'customer'
    else:
        return _forbidden('Not your service request')

    if request.method == 'GET':
        notes = service_request.notes.all()
        return Response(RequestNoteSerializer(notes, many=True).data)

    serializer = NoteCreateSerializer(data={'message': request.data.get('message'), 'author_role': author_role})
    serializer.is_valid(raise_exception=True)

    try:
        note = add_request_note(request_id, serializer.validated_data['message'], author_role)
    except (RequestValidationError, NotFoundError) as e:
        return _error_response(e)

    return Response(RequestNoteSerializer(note).data, status=status.HTTP_201_CREATED)
