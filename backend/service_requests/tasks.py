"""Celery tasks for service request background processing."""

from celery import shared_task
import logging

from realtime.exceptions import DeliveryError

logger = logging.getLogger(__name__)


@shared_task
def notify_customer_task(request_id: int, subject: str, message: str):
    """
    Email the customer about a change to their request.

    Best effort: a missing request or a failed send is logged, never retried.
    """
    from common.notifier import get_notifier
    from service_requests.models import ServiceRequest

    try:
        service_request = ServiceRequest.objects.select_related('customer').get(id=request_id)
    except ServiceRequest.DoesNotExist:
        logger.warning(f"Service request {request_id} not found for customer notification")
        return False

    try:
        get_notifier().send(service_request.contact_email, subject, message)
    except DeliveryError as e:
        logger.warning(f"Customer notification for request {request_id} failed: {e}")
        return False

    logger.info(f"Customer notified about request {request_id}: {subject}")
    return True
