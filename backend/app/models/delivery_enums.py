"""
Delivery-related enumerations.
"""

import enum


class DeliveryStatus(str, enum.Enum):
    """
    Delivery status enumeration.

    Legal moves live in ``backend.app.domain.delivery.state_machine``.
    """
    PENDING = "pending"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"


class DriverStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
