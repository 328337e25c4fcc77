"""
Delivery API endpoints.

Create deliveries for paid orders, move them through their status
lifecycle, and expose the owner detail view and the public tracking page.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.db.session import get_db
from backend.app.models.delivery_enums import DeliveryStatus
from backend.app.schemas.delivery import (
    DeliveryCreate, DeliveryUpdate, DeliveryResponse, DeliveryDetailResponse, PublicTrackingResponse
)
from backend.app.schemas.common import ApiResponse, PaginatedResponse, Pagination
from backend.app.core.config import settings
from backend.app.core.guards import OwnershipGuard
from backend.app.core.dependencies import get_current_user
from backend.app.domain.delivery.delivery_service import DeliveryService

router = APIRouter(prefix="/deliveries", tags=["Deliveries"])
ownership_guard = OwnershipGuard()


@router.post("", response_model=ApiResponse[DeliveryResponse], status_code=status.HTTP_201_CREATED)
async def create_delivery(
    delivery_data: DeliveryCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Create the delivery for a paid or processing order.

    - Generates the tracking number
    - Copies the order's shipping address
    - Marks the order as shipped
    """
    delivery = await DeliveryService.create_delivery(db, delivery_data, current_user)
    return ApiResponse(
        data=await DeliveryService.build_response(db, delivery),
        message="Delivery created successfully"
    )


@router.get("", response_model=PaginatedResponse[DeliveryResponse])
async def list_deliveries(
    status_filter: Optional[DeliveryStatus] = Query(None, alias="status"),
    tracking_number: Optional[str] = Query(None, description="Substring, case-insensitive"),
    driver_id: Optional[int] = Query(None),
    order_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(settings.delivery_page_size_default, ge=1, description="Items per page"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List deliveries, newest first.

    Members see deliveries of their own orders; ADMIN sees all.
    """
    limit = min(limit, settings.delivery_page_size_max)

    deliveries, total = await DeliveryService.list_deliveries(
        db,
        member_id=ownership_guard.filter_by_ownership(current_user),
        status=status_filter,
        tracking_number=tracking_number,
        driver_id=driver_id,
        order_id=order_id,
        page=page,
        limit=limit,
    )

    return PaginatedResponse(
        data=await DeliveryService.build_responses(db, deliveries),
        pagination=Pagination.build(page, limit, total)
    )


@router.get("/track/{tracking_number}", response_model=ApiResponse[PublicTrackingResponse])
async def track_delivery(
    tracking_number: str = Path(..., min_length=1, max_length=50),
    db: AsyncSession = Depends(get_db)
):
    """Public tracking page data. No authentication."""
    delivery = await DeliveryService.get_by_tracking_number(db, tracking_number)
    return ApiResponse(data=await DeliveryService.build_public_tracking(db, delivery))


@router.get("/{delivery_id}", response_model=ApiResponse[DeliveryDetailResponse])
async def get_delivery(
    delivery_id: int = Path(..., description="Delivery ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delivery detail with tracking history (order owner only)."""
    delivery, order = await DeliveryService.get_delivery_with_order(db, delivery_id)
    ownership_guard.enforce(order.member_id, current_user, "delivery")

    return ApiResponse(data=await DeliveryService.build_detail(db, delivery))


@router.put("/{delivery_id}", response_model=ApiResponse[DeliveryResponse])
async def update_delivery(
    delivery_id: int = Path(..., description="Delivery ID"),
    changes: DeliveryUpdate = ...,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Update delivery status and/or notes, location and estimate.

    Illegal status moves are rejected with 400 and change nothing.
    """
    delivery, order = await DeliveryService.get_delivery_with_order(db, delivery_id)
    ownership_guard.enforce(order.member_id, current_user, "delivery")

    delivery = await DeliveryService.update_delivery(db, delivery, changes, current_user)
    message = (
        "Delivery status updated successfully" if changes.status is not None
        else "Delivery updated successfully"
    )
    return ApiResponse(data=await DeliveryService.build_response(db, delivery), message=message)
