"""
Tracking timeline derivation.

Everything here is computed on read from the delivery row; nothing is
stored. Functions take ``now`` explicitly so callers and tests control time.
"""

import math
from datetime import datetime
from typing import Dict, List, Optional

from backend.app.core.clock import as_utc, utcnow
from backend.app.models.delivery import Delivery
from backend.app.models.delivery_enums import DeliveryStatus
from backend.app.schemas.delivery import StatusInfo, TrackingEvent

WAREHOUSE = "Warehouse"

STATUS_DESCRIPTIONS: Dict[DeliveryStatus, StatusInfo] = {
    DeliveryStatus.PENDING: StatusInfo(
        title="Order Processing",
        description="Your order is being prepared for shipment",
        icon="📦",
    ),
    DeliveryStatus.PICKED_UP: StatusInfo(
        title="Picked Up",
        description="Package has been picked up by our driver",
        icon="🚚",
    ),
    DeliveryStatus.IN_TRANSIT: StatusInfo(
        title="In Transit",
        description="Your package is on the way",
        icon="🛣️",
    ),
    DeliveryStatus.DELIVERED: StatusInfo(
        title="Delivered",
        description="Package has been successfully delivered",
        icon="✅",
    ),
    DeliveryStatus.FAILED: StatusInfo(
        title="Delivery Failed",
        description="Delivery attempt was unsuccessful",
        icon="❌",
    ),
    DeliveryStatus.CANCELLED: StatusInfo(
        title="Cancelled",
        description="Delivery has been cancelled",
        icon="🚫",
    ),
}


def status_info(status) -> StatusInfo:
    try:
        return STATUS_DESCRIPTIONS[DeliveryStatus(status)]
    except (KeyError, ValueError):
        return StatusInfo(title=str(status), description="Status update", icon="📋")


def _destination(delivery: Delivery) -> str:
    address = delivery.shipping_address or {}
    return address.get("city") or "Destination"


def build_tracking_events(delivery: Delivery, driver_name: Optional[str] = None) -> List[TrackingEvent]:
    """
    Build the milestone timeline for a delivery.

    The "order confirmed" event is always present; the others appear only
    when their timestamp is set. Sorted by timestamp, oldest first.
    """
    events = [
        TrackingEvent(
            status=DeliveryStatus.PENDING,
            timestamp=delivery.created_at,
            title="Order Confirmed",
            description="Your order has been confirmed and is being prepared",
            location=WAREHOUSE,
        )
    ]

    if delivery.pickup_time:
        events.append(TrackingEvent(
            status=DeliveryStatus.PICKED_UP,
            timestamp=delivery.pickup_time,
            title="Package Picked Up",
            description=f"Picked up by {driver_name or 'driver'}",
            location=WAREHOUSE,
        ))

    if delivery.in_transit_time:
        events.append(TrackingEvent(
            status=DeliveryStatus.IN_TRANSIT,
            timestamp=delivery.in_transit_time,
            title="In Transit",
            description="Package is on the way to your address",
            location=delivery.current_location or "On the road",
        ))

    if delivery.actual_delivery_date:
        events.append(TrackingEvent(
            status=DeliveryStatus.DELIVERED,
            timestamp=delivery.actual_delivery_date,
            title="Delivered",
            description="Package successfully delivered",
            location=_destination(delivery),
        ))

    # stable: equal timestamps keep milestone order
    return sorted(events, key=lambda event: event.timestamp)


def is_delayed(
    estimated_delivery: Optional[datetime],
    status: DeliveryStatus,
    now: Optional[datetime] = None,
) -> bool:
    if estimated_delivery is None or status == DeliveryStatus.DELIVERED:
        return False
    now = as_utc(now) if now else utcnow()
    return now > as_utc(estimated_delivery)


def estimated_remaining_hours(
    estimated_delivery: Optional[datetime],
    status: DeliveryStatus,
    now: Optional[datetime] = None,
) -> Optional[int]:
    """Whole hours (rounded up) until the estimate, never negative; None once delivered."""
    if estimated_delivery is None or status == DeliveryStatus.DELIVERED:
        return None
    now = as_utc(now) if now else utcnow()
    seconds = (as_utc(estimated_delivery) - now).total_seconds()
    return max(0, math.ceil(seconds / 3600))
