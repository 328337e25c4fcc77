"""
Order desk API endpoints.

Members place orders and confirm payment; koperasi staff move paid orders
into processing. Orders reach ``shipped`` and ``delivered`` only through
their delivery.
"""

from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from backend.app.db.session import get_db
from backend.app.models.order import Order, OrderItem
from backend.app.models.order_enums import OrderStatus, PaymentStatus
from backend.app.models.delivery import Delivery
from backend.app.models.enums import UserRole
from backend.app.schemas.order import (
    OrderCreate, PaymentConfirm, OrderResponse, OrderItemResponse, OrderDeliverySummary
)
from backend.app.schemas.common import ApiResponse, PaginatedResponse, Pagination
from backend.app.core.config import settings
from backend.app.core.clock import utcnow
from backend.app.core.exceptions import ResourceNotFoundError, ValidationError
from backend.app.core.guards import require_role, OwnershipGuard
from backend.app.core.dependencies import get_current_user
from backend.app.domain.orders.pricing import compute_totals, line_subtotal, generate_order_number
from backend.app.services.audit import log_actor_event, AuditAction

router = APIRouter(prefix="/orders", tags=["Orders"])
ownership_guard = OwnershipGuard()

CANCELLABLE_STATES = (OrderStatus.PENDING_PAYMENT, OrderStatus.PAID)


async def _build_responses(db: AsyncSession, orders: List[Order]) -> List[OrderResponse]:
    """Attach items and the delivery summary to each order."""
    order_ids = [o.id for o in orders]
    items_by_order: Dict[int, List[OrderItem]] = {oid: [] for oid in order_ids}
    deliveries: Dict[int, Delivery] = {}

    if order_ids:
        items = await db.execute(
            select(OrderItem).where(OrderItem.order_id.in_(order_ids)).order_by(OrderItem.id)
        )
        for item in items.scalars().all():
            items_by_order[item.order_id].append(item)

        rows = await db.execute(select(Delivery).where(Delivery.order_id.in_(order_ids)))
        deliveries = {d.order_id: d for d in rows.scalars().all()}

    responses = []
    for order in orders:
        items = items_by_order.get(order.id, [])
        delivery = deliveries.get(order.id)
        responses.append(OrderResponse.model_validate(order).model_copy(update={
            "items": [OrderItemResponse.model_validate(i) for i in items],
            "total_items": sum(i.quantity for i in items),
            "delivery": OrderDeliverySummary.model_validate(delivery) if delivery else None,
        }))
    return responses


async def _get_owned_order(db: AsyncSession, order_id: int, current_user: dict) -> Order:
    order = await db.get(Order, order_id)
    if not order:
        raise ResourceNotFoundError("Order", order_id)
    ownership_guard.enforce(order.member_id, current_user, "order")
    return order


@router.post("", response_model=ApiResponse[OrderResponse], status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: OrderCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Place an order for the current member.

    Totals are computed server-side: item subtotal, weight-based shipping
    fee and the flat admin fee.
    """
    totals = compute_totals(order_data.items)

    order = Order(
        order_number=generate_order_number(),
        member_id=current_user["user_id"],
        tenant_id=current_user.get("tenant_id"),
        subtotal_amount=totals.subtotal,
        shipping_fee=totals.shipping_fee,
        admin_fee=totals.admin_fee,
        total_amount=totals.total,
        shipping_address=order_data.shipping_address.model_dump(exclude_none=True),
        notes=order_data.notes,
        payment_method=order_data.payment_method,
        payment_status=PaymentStatus.PENDING,
        status=OrderStatus.PENDING_PAYMENT,
    )
    db.add(order)
    await db.flush()

    for item in order_data.items:
        db.add(OrderItem(
            order_id=order.id,
            product_name=item.product_name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            weight_grams=item.weight_grams,
            subtotal=line_subtotal(item),
        ))

    await db.commit()
    await db.refresh(order)

    await log_actor_event(
        db,
        AuditAction.ORDER_CREATED,
        current_user,
        entity_type="order",
        entity_id=order.id,
        metadata={
            "order_number": order.order_number,
            "total_amount": str(totals.total),
            "weight_grams": totals.total_weight_grams,
        }
    )

    data = (await _build_responses(db, [order]))[0]
    return ApiResponse(data=data, message="Order created")


@router.get("", response_model=PaginatedResponse[OrderResponse])
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.delivery_page_size_default, ge=1),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List orders, newest first. Members only see their own."""
    limit = min(limit, settings.delivery_page_size_max)

    filters = []
    member_id = ownership_guard.filter_by_ownership(current_user)
    if member_id is not None:
        filters.append(Order.member_id == member_id)
    if status_filter is not None:
        filters.append(Order.status == status_filter)

    total = (await db.execute(select(func.count(Order.id)).where(*filters))).scalar() or 0

    result = await db.execute(
        select(Order)
        .where(*filters)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    orders = list(result.scalars().all())

    return PaginatedResponse(
        data=await _build_responses(db, orders),
        pagination=Pagination.build(page, limit, total)
    )


@router.get("/{order_id}", response_model=ApiResponse[OrderResponse])
async def get_order(
    order_id: int = Path(..., description="Order ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    order = await _get_owned_order(db, order_id, current_user)
    data = (await _build_responses(db, [order]))[0]
    return ApiResponse(data=data)


@router.post("/{order_id}/payment", response_model=ApiResponse[OrderResponse])
async def confirm_payment(
    order_id: int = Path(..., description="Order ID"),
    payment: Optional[PaymentConfirm] = None,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Confirm payment of an order awaiting payment (owner only)."""
    order = await _get_owned_order(db, order_id, current_user)

    if order.status != OrderStatus.PENDING_PAYMENT:
        raise ValidationError(
            "Order is not awaiting payment",
            details={"order_status": order.status.value}
        )

    if payment is not None:
        if payment.payment_method is not None:
            order.payment_method = payment.payment_method
        if payment.payment_proof_url:
            order.payment_proof_url = payment.payment_proof_url

    order.status = OrderStatus.PAID
    order.payment_status = PaymentStatus.PAID
    order.payment_date = utcnow()

    await db.commit()
    await db.refresh(order)

    await log_actor_event(
        db,
        AuditAction.ORDER_PAID,
        current_user,
        entity_type="order",
        entity_id=order.id,
        metadata={"payment_method": order.payment_method.value}
    )

    data = (await _build_responses(db, [order]))[0]
    return ApiResponse(data=data, message="Payment confirmed")


@router.post("/{order_id}/cancel", response_model=ApiResponse[OrderResponse])
async def cancel_order(
    order_id: int = Path(..., description="Order ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Cancel an order that has not been handed to delivery yet."""
    order = await _get_owned_order(db, order_id, current_user)

    if order.status not in CANCELLABLE_STATES:
        raise ValidationError(
            "Order can no longer be cancelled",
            details={"order_status": order.status.value}
        )

    previous = order.status
    order.status = OrderStatus.CANCELLED

    await db.commit()
    await db.refresh(order)

    await log_actor_event(
        db,
        AuditAction.ORDER_CANCELLED,
        current_user,
        entity_type="order",
        entity_id=order.id,
        metadata={"from": previous.value}
    )

    data = (await _build_responses(db, [order]))[0]
    return ApiResponse(data=data, message="Order cancelled")


@router.post("/{order_id}/process", response_model=ApiResponse[OrderResponse])
async def process_order(
    order_id: int = Path(..., description="Order ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Move a paid order into processing (koperasi staff only)."""
    order = await db.get(Order, order_id)
    if not order:
        raise ResourceNotFoundError("Order", order_id)

    if order.status != OrderStatus.PAID:
        raise ValidationError(
            "Only paid orders can be processed",
            details={"order_status": order.status.value}
        )

    order.status = OrderStatus.PROCESSING

    await db.commit()
    await db.refresh(order)

    await log_actor_event(
        db,
        AuditAction.ORDER_PROCESSING,
        current_user,
        entity_type="order",
        entity_id=order.id
    )

    data = (await _build_responses(db, [order]))[0]
    return ApiResponse(data=data, message="Order is being processed")
