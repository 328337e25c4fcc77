"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    auth, orders, deliveries, delivery_drivers, notifications
)

router = APIRouter()

# Authentication
router.include_router(auth.router)

# Order desk
router.include_router(orders.router)

# Delivery lifecycle and public tracking
router.include_router(deliveries.router)
router.include_router(delivery_drivers.router)

# Member notifications
router.include_router(notifications.router)
