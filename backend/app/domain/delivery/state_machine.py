"""
Delivery status state machine.

The legal moves are a closed table keyed by ``(state, event)``. A request to
move a delivery to a target status is first mapped to the single event that
produces it, then looked up in the table; anything not in the table is
rejected.

    pending    --PICK_UP--> picked_up
    pending    --CANCEL---> cancelled
    picked_up  --DEPART---> in_transit
    picked_up  --CANCEL---> cancelled
    in_transit --DELIVER--> delivered
    in_transit --FAIL-----> failed
    failed     --PICK_UP--> picked_up   (retry, unbounded)

``delivered`` and ``cancelled`` are terminal.
"""

import enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from backend.app.core.exceptions import InvalidStatusTransitionError
from backend.app.models.delivery_enums import DeliveryStatus


class DeliveryEvent(str, enum.Enum):
    PICK_UP = "PICK_UP"
    DEPART = "DEPART"
    DELIVER = "DELIVER"
    FAIL = "FAIL"
    CANCEL = "CANCEL"


TRANSITIONS: Dict[Tuple[DeliveryStatus, DeliveryEvent], DeliveryStatus] = {
    (DeliveryStatus.PENDING, DeliveryEvent.PICK_UP): DeliveryStatus.PICKED_UP,
    (DeliveryStatus.PENDING, DeliveryEvent.CANCEL): DeliveryStatus.CANCELLED,
    (DeliveryStatus.PICKED_UP, DeliveryEvent.DEPART): DeliveryStatus.IN_TRANSIT,
    (DeliveryStatus.PICKED_UP, DeliveryEvent.CANCEL): DeliveryStatus.CANCELLED,
    (DeliveryStatus.IN_TRANSIT, DeliveryEvent.DELIVER): DeliveryStatus.DELIVERED,
    (DeliveryStatus.IN_TRANSIT, DeliveryEvent.FAIL): DeliveryStatus.FAILED,
    (DeliveryStatus.FAILED, DeliveryEvent.PICK_UP): DeliveryStatus.PICKED_UP,
}

# Each reachable status is produced by exactly one event.
EVENT_FOR_TARGET: Dict[DeliveryStatus, DeliveryEvent] = {
    DeliveryStatus.PICKED_UP: DeliveryEvent.PICK_UP,
    DeliveryStatus.IN_TRANSIT: DeliveryEvent.DEPART,
    DeliveryStatus.DELIVERED: DeliveryEvent.DELIVER,
    DeliveryStatus.FAILED: DeliveryEvent.FAIL,
    DeliveryStatus.CANCELLED: DeliveryEvent.CANCEL,
}

TERMINAL_STATES: FrozenSet[DeliveryStatus] = frozenset({
    DeliveryStatus.DELIVERED,
    DeliveryStatus.CANCELLED,
})

# Statuses that still count against a driver's workload
ACTIVE_STATES: FrozenSet[DeliveryStatus] = frozenset({
    DeliveryStatus.PENDING,
    DeliveryStatus.PICKED_UP,
    DeliveryStatus.IN_TRANSIT,
})


def apply_event(current: DeliveryStatus, event: DeliveryEvent) -> Optional[DeliveryStatus]:
    """Return the state ``event`` leads to from ``current``, or None if illegal."""
    return TRANSITIONS.get((current, event))


def can_transition(current: DeliveryStatus, target: DeliveryStatus) -> bool:
    event = EVENT_FOR_TARGET.get(target)
    if event is None:
        return False
    return apply_event(current, event) == target


def resolve_transition(current: DeliveryStatus, target: DeliveryStatus) -> DeliveryStatus:
    """
    Validate a requested move and return the new status.

    Raises:
        InvalidStatusTransitionError: the move is not in the table
    """
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(
            current_status=DeliveryStatus(current).value,
            requested_status=DeliveryStatus(target).value,
        )
    return target


def allowed_targets(current: DeliveryStatus) -> List[DeliveryStatus]:
    """Statuses reachable from ``current`` in one step, in table order."""
    return [target for (state, _event), target in TRANSITIONS.items() if state == current]


def is_retry(current: DeliveryStatus, target: DeliveryStatus) -> bool:
    return current == DeliveryStatus.FAILED and target == DeliveryStatus.PICKED_UP
