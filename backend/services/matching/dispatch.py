"""
Dispatch a new service request to its candidate mechanics.

1. Load the request and find candidates around it
2. Split candidates into those with a live channel and those without
3. Push an offer over each live channel, email everyone else
4. Report what was delivered

No reservation happens here. A notified mechanic may already be too late
when they accept; the accept step alone decides the winner.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from asgiref.sync import async_to_sync, sync_to_async
from channels.db import database_sync_to_async
from django.db import close_old_connections, transaction

from common.conf import dispatch_setting
from common.notifier import Notifier, get_notifier
from common.utils import display_km
from mechanics.models import Mechanic
from realtime.notifications import send_to_channel
from realtime.presence import PresenceRegistry, get_presence_registry
from service_requests.models import RequestStatus, ServiceRequest
from services.request_lifecycle import get_service_request
from .candidate_index import find_candidates
from .fanout import EMAIL, LIVE, Delivery, DeliveryFailure, fan_out

logger = logging.getLogger(__name__)

OFFER_EVENT = "service_request_offer"

# Report buckets
BUCKET_LIVE = "live_notified"
BUCKET_OFFLINE = "offline_notified"
BUCKET_FALLBACK_TO_LIVE = "fallback_to_live_notified"


@dataclass
class DispatchReport:
    """Outcome of one dispatch."""
    request_id: int
    total_candidates: int = 0
    live_notified: int = 0
    offline_notified: int = 0
    # Fallback emails that also went to live candidates
    fallback_to_live_notified: int = 0
    failures: List[DeliveryFailure] = field(default_factory=list)
    skipped_reason: str = ""

    def as_dict(self):
        return {
            "request_id": self.request_id,
            "total_candidates": self.total_candidates,
            "live_notified": self.live_notified,
            "offline_notified": self.offline_notified,
            "fallback_to_live_notified": self.fallback_to_live_notified,
            "failures": [f.as_dict() for f in self.failures],
            "skipped_reason": self.skipped_reason,
        }


def partition_by_presence(
    candidates: List[Mechanic],
    registry: PresenceRegistry,
) -> Tuple[List[Tuple[Mechanic, str]], List[Mechanic]]:
    """
    Split candidates by live channel membership.

    Returns:
        ([(mechanic, channel_name), ...] reachable live, [mechanic, ...] offline)
    """
    live, offline = [], []
    for mechanic in candidates:
        channel_name = registry.channel_of(mechanic.id)
        if channel_name:
            live.append((mechanic, channel_name))
        else:
            offline.append(mechanic)
    return live, offline


def build_offer_email(request: ServiceRequest, mechanic: Mechanic) -> Tuple[str, str]:
    """Subject and body of the fallback message."""
    subject = "New Service Request Near You"
    body = (
        "New service request near you!\n\n"
        f"Service: {request.service_type}\n"
        f"Description: {request.description}\n"
        f"Location: {request.latitude}, {request.longitude}\n"
        f"Distance: {display_km(mechanic.distance_km)} km\n\n"
        "Please check your dashboard to accept this request."
    )
    return subject, body


@database_sync_to_async
def _load_dispatch_context(request_id):
    from service_requests.serializers import ServiceRequestOfferSerializer

    request = get_service_request(request_id)
    if request.status != RequestStatus.PENDING:
        return request, [], None

    candidates = find_candidates(
        request.location,
        float(dispatch_setting("DEFAULT_RADIUS_KM")),
        request.service_type,
    )
    # Resolve contact addresses here, outside the event loop
    for mechanic in candidates:
        mechanic.contact_address = mechanic.contact_email
    offer = dict(ServiceRequestOfferSerializer(request).data)
    return request, candidates, offer


def _live_delivery(mechanic: Mechanic, channel_name: str, offer) -> Delivery:
    payload = {"request": offer, "distance_km": display_km(mechanic.distance_km)}

    async def send():
        await send_to_channel(channel_name, OFFER_EVENT, payload)

    return Delivery(mechanic_id=mechanic.id, route=LIVE, send=send, bucket=BUCKET_LIVE)


def _email_delivery(mechanic: Mechanic, request: ServiceRequest, notifier: Notifier, bucket: str) -> Delivery:
    subject, body = build_offer_email(request, mechanic)
    address = mechanic.contact_address

    async def send():
        await sync_to_async(notifier.send, thread_sensitive=False)(address, subject, body)

    return Delivery(mechanic_id=mechanic.id, route=EMAIL, send=send, bucket=bucket)


async def adispatch_service_request(
    request_id,
    registry: Optional[PresenceRegistry] = None,
    notifier: Optional[Notifier] = None,
) -> DispatchReport:
    """
    Notify every candidate for a request and report the outcome.

    Delivery failures are logged and returned in the report, never raised.

    Raises:
        ServiceRequestNotFoundError: Unknown request id
    """
    if registry is None:
        registry = get_presence_registry()
    if notifier is None:
        notifier = get_notifier()

    request, candidates, offer = await _load_dispatch_context(request_id)
    report = DispatchReport(request_id=request.id, total_candidates=len(candidates))

    if offer is None:
        report.skipped_reason = f"request is {request.status}"
        logger.info("Skipping dispatch of request %s: %s", request.id, report.skipped_reason)
        return report

    if not candidates:
        logger.info("No candidates for request %s (%s)", request.id, request.service_type)
        return report

    live, offline = partition_by_presence(candidates, registry)
    fallback_to_live = dispatch_setting("FALLBACK_TO_LIVE_CANDIDATES")

    deliveries: List[Delivery] = []
    for mechanic, channel_name in live:
        deliveries.append(_live_delivery(mechanic, channel_name, offer))
        if fallback_to_live:
            deliveries.append(_email_delivery(mechanic, request, notifier, BUCKET_FALLBACK_TO_LIVE))
    for mechanic in offline:
        deliveries.append(_email_delivery(mechanic, request, notifier, BUCKET_OFFLINE))

    succeeded, failures = await fan_out(
        deliveries,
        max_concurrency=dispatch_setting("MAX_CONCURRENT_SENDS"),
        timeout=dispatch_setting("SEND_TIMEOUT_SECONDS"),
    )

    for delivery in succeeded:
        setattr(report, delivery.bucket, getattr(report, delivery.bucket) + 1)
    report.failures = failures

    logger.info(
        "Dispatched request %s: %d candidates, %d live, %d offline, %d failed",
        request.id, report.total_candidates, report.live_notified,
        report.offline_notified, len(failures)
    )
    return report


def dispatch_service_request(
    request_id,
    registry: Optional[PresenceRegistry] = None,
    notifier: Optional[Notifier] = None,
) -> DispatchReport:
    """Synchronous entry point for adispatch_service_request."""
    return async_to_sync(adispatch_service_request)(request_id, registry=registry, notifier=notifier)


# ---------------------- Fire-and-forget scheduling ----------------------

_executor: Optional[ThreadPoolExecutor] = None


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(
            max_workers=dispatch_setting("DISPATCH_WORKERS"),
            thread_name_prefix="dispatch",
        )
    return _executor


def _run_dispatch(request_id):
    try:
        dispatch_service_request(request_id)
    except Exception:
        logger.exception("Dispatch failed for request %s", request_id)
    finally:
        # Close stale DB connections held by the worker thread
        close_old_connections()


def schedule_dispatch(request_id) -> None:
    """
    Dispatch request_id in the background once the current transaction commits.

    Runs in this process because the presence registry is process-local.
    """
    transaction.on_commit(lambda: _get_executor().submit(_run_dispatch, request_id))
