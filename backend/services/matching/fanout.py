"""
Bounded-concurrency delivery of one notification to many recipients.

Every send runs under a shared semaphore and its own timeout. A failing or
slow recipient is recorded as a DeliveryFailure and never stops the others.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Delivery routes
LIVE = "live"
EMAIL = "email"


@dataclass
class Delivery:
    """One message to one recipient over one route."""
    mechanic_id: int
    route: str
    send: Callable[[], Awaitable[None]]
    # Counted under this report bucket when it succeeds
    bucket: str = ""


@dataclass
class DeliveryFailure:
    """A recipient that could not be reached."""
    mechanic_id: int
    route: str
    reason: str

    def as_dict(self):
        return {"mechanic_id": self.mechanic_id, "route": self.route, "reason": self.reason}


async def _deliver(delivery: Delivery, semaphore: asyncio.Semaphore, timeout: float) -> Optional[DeliveryFailure]:
    async with semaphore:
        try:
            await asyncio.wait_for(delivery.send(), timeout=timeout)
        except asyncio.TimeoutError:
            reason = f"timed out after {timeout}s"
        except Exception as e:
            reason = str(e) or e.__class__.__name__
        else:
            return None

    logger.warning(
        "Delivery to mechanic %s via %s failed: %s",
        delivery.mechanic_id, delivery.route, reason
    )
    return DeliveryFailure(mechanic_id=delivery.mechanic_id, route=delivery.route, reason=reason)


async def fan_out(
    deliveries: List[Delivery],
    max_concurrency: int,
    timeout: float,
) -> Tuple[List[Delivery], List[DeliveryFailure]]:
    """
    Run all deliveries concurrently.

    Args:
        deliveries: Messages to send
        max_concurrency: Sends allowed in flight at once
        timeout: Seconds allowed per send

    Returns:
        (succeeded deliveries, failures)
    """
    if not deliveries:
        return [], []

    semaphore = asyncio.Semaphore(max(1, int(max_concurrency)))
    outcomes = await asyncio.gather(
        *(_deliver(delivery, semaphore, float(timeout)) for delivery in deliveries)
    )

    succeeded = [d for d, failure in zip(deliveries, outcomes) if failure is None]
    failures = [failure for failure in outcomes if failure is not None]
    return succeeded, failures
