"""
Delivery Lifecycle Service (Domain Logic).

Creates deliveries for paid orders, moves them through the status state
machine, cascades "delivered" back to the order and assembles the read
models used by the API.

Create and update each commit the delivery row, the cascaded order change
and the member notification in a single transaction. Concurrent updates to
the same delivery are last-write-wins.
"""

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.core.config import settings
from backend.app.core.exceptions import ConflictError, ResourceNotFoundError
from backend.app.domain.delivery import state_machine
from backend.app.domain.delivery.tracking import (
    build_tracking_events, estimated_remaining_hours, is_delayed, status_info
)
from backend.app.models.delivery import Delivery
from backend.app.models.delivery_enums import DeliveryStatus
from backend.app.models.driver import Driver
from backend.app.models.notification import NotificationType
from backend.app.models.order import Order, OrderItem
from backend.app.models.order_enums import OrderStatus
from backend.app.models.user import User
from backend.app.schemas.delivery import (
    DeliveryCreate, DeliveryUpdate, DeliveryResponse, DeliveryDetailResponse,
    DeliveryOrderSummary, DeliveryItemSummary, DriverSummary, MemberSummary,
    PublicTrackingResponse, PublicOrderInfo, PublicDriverInfo, ShippingInfo,
)
from backend.app.services.audit import log_actor_event, AuditAction
from backend.app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

TRACKING_ALPHABET = string.ascii_uppercase + string.digits
TRACKING_SUFFIX_LENGTH = 6
TRACKING_NUMBER_ATTEMPTS = 5

# Orders a delivery may be created for
DELIVERABLE_ORDER_STATES = frozenset({OrderStatus.PAID, OrderStatus.PROCESSING})

# Address keys never shown on the public tracking page
PRIVATE_ADDRESS_KEYS = frozenset({"phone"})


class DeliveryService:

    # --- Tracking numbers ---

    @staticmethod
    def generate_tracking_number(now: Optional[datetime] = None) -> str:
        """
        Build a tracking code: ``TRK-<last 8 digits of epoch ms>-<6 x [A-Z0-9]>``.
        """
        now = now or utcnow()
        timestamp = str(int(now.timestamp() * 1000))[-8:]
        suffix = "".join(secrets.choice(TRACKING_ALPHABET) for _ in range(TRACKING_SUFFIX_LENGTH))
        return f"{settings.tracking_prefix}-{timestamp}-{suffix}".upper()

    @staticmethod
    async def _unique_tracking_number(db: AsyncSession) -> str:
        for _ in range(TRACKING_NUMBER_ATTEMPTS):
            candidate = DeliveryService.generate_tracking_number()
            taken = await db.execute(
                select(Delivery.id).where(Delivery.tracking_number == candidate)
            )
            if taken.scalar_one_or_none() is None:
                return candidate
        raise ConflictError("Could not allocate a unique tracking number")

    # --- Lookups ---

    @staticmethod
    async def get_delivery(db: AsyncSession, delivery_id: int) -> Delivery:
        result = await db.execute(select(Delivery).where(Delivery.id == delivery_id))
        delivery = result.scalar_one_or_none()
        if not delivery:
            raise ResourceNotFoundError("Delivery", delivery_id)
        return delivery

    @staticmethod
    async def get_by_tracking_number(db: AsyncSession, tracking_number: str) -> Delivery:
        code = tracking_number.strip().upper()
        result = await db.execute(select(Delivery).where(Delivery.tracking_number == code))
        delivery = result.scalar_one_or_none()
        if not delivery:
            raise ResourceNotFoundError("Tracking number")
        return delivery

    @staticmethod
    async def get_delivery_with_order(db: AsyncSession, delivery_id: int) -> Tuple[Delivery, Order]:
        delivery = await DeliveryService.get_delivery(db, delivery_id)
        order = await db.get(Order, delivery.order_id)
        if not order:
            raise ResourceNotFoundError("Order", delivery.order_id)
        return delivery, order

    # --- Commands ---

    @staticmethod
    async def create_delivery(
        db: AsyncSession,
        data: DeliveryCreate,
        current_user: Optional[dict] = None
    ) -> Delivery:
        """
        Create the delivery for a paid/processing order and mark the order shipped.

        Raises:
            ResourceNotFoundError: order or driver missing
            ConflictError: order not deliverable yet, or already has a delivery
        """
        order = await db.get(Order, data.order_id)
        if not order:
            raise ResourceNotFoundError("Order", data.order_id)

        if order.status not in DELIVERABLE_ORDER_STATES:
            raise ConflictError(
                "Order must be paid or processing to create delivery",
                details={"order_status": order.status.value}
            )

        existing = await db.execute(
            select(Delivery.id).where(Delivery.order_id == order.id)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(
                "Delivery already exists for this order",
                details={"order_id": order.id}
            )

        if data.driver_id is not None and await db.get(Driver, data.driver_id) is None:
            raise ResourceNotFoundError("Driver", data.driver_id)

        now = utcnow()
        delivery = Delivery(
            order_id=order.id,
            tracking_number=await DeliveryService._unique_tracking_number(db),
            status=DeliveryStatus.PENDING,
            shipping_provider=data.shipping_provider,
            driver_id=data.driver_id,
            estimated_delivery_date=(
                data.estimated_delivery_date
                or now + timedelta(days=settings.default_delivery_days)
            ),
            shipping_address=order.shipping_address,
        )
        db.add(delivery)
        order.status = OrderStatus.SHIPPED

        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(
                "Delivery already exists for this order",
                details={"order_id": data.order_id}
            )

        await NotificationService.create_notification(
            db,
            user_id=order.member_id,
            title="Order Shipped",
            message=f"Order {order.order_number} is on its way. Tracking number: {delivery.tracking_number}",
            type=NotificationType.DELIVERY_UPDATE,
            metadata={"delivery_id": delivery.id, "tracking_number": delivery.tracking_number}
        )

        await db.commit()
        await db.refresh(delivery)
        await db.refresh(order)

        logger.info(
            "Delivery %s created for order %s (tracking %s)",
            delivery.id, order.id, delivery.tracking_number
        )

        await log_actor_event(
            db,
            AuditAction.DELIVERY_CREATED,
            current_user,
            entity_type="delivery",
            entity_id=delivery.id,
            metadata={
                "order_id": order.id,
                "tracking_number": delivery.tracking_number,
                "driver_id": delivery.driver_id,
                "shipping_provider": delivery.shipping_provider,
            }
        )

        return delivery

    @staticmethod
    async def update_delivery(
        db: AsyncSession,
        delivery: Delivery,
        changes: DeliveryUpdate,
        current_user: Optional[dict] = None
    ) -> Delivery:
        """
        Apply a status move and/or free-text edits to a delivery.

        The transition is validated before anything is touched, so a rejected
        move leaves the row exactly as it was.

        Raises:
            InvalidStatusTransitionError: requested status is not reachable
        """
        fields = changes.model_dump(exclude_unset=True)
        requested = fields.pop("status", None)
        previous = delivery.status

        new_status = None
        if requested is not None:
            new_status = state_machine.resolve_transition(previous, requested)

        order = None
        if new_status is not None:
            now = utcnow()
            retry = state_machine.is_retry(previous, new_status)
            delivery.status = new_status

            if new_status == DeliveryStatus.PICKED_UP:
                delivery.pickup_time = now
                if retry:
                    # the earlier attempt's transit leg no longer describes the parcel
                    delivery.in_transit_time = None
                    logger.warning("Delivery %s re-picked up after a failed attempt", delivery.id)
            elif new_status == DeliveryStatus.IN_TRANSIT:
                delivery.in_transit_time = now
            elif new_status == DeliveryStatus.DELIVERED:
                delivery.actual_delivery_date = now

            order = await db.get(Order, delivery.order_id)
            if order and new_status == DeliveryStatus.DELIVERED:
                order.status = OrderStatus.DELIVERED

        for field, value in fields.items():
            setattr(delivery, field, value)

        if order is not None:
            info = status_info(new_status)
            await NotificationService.create_notification(
                db,
                user_id=order.member_id,
                title=info.title,
                message=f"Delivery {delivery.tracking_number}: {info.description}",
                type=NotificationType.DELIVERY_UPDATE,
                metadata={"delivery_id": delivery.id, "status": new_status.value}
            )

        await db.commit()
        await db.refresh(delivery)

        if new_status is not None:
            logger.info(
                "Delivery %s moved %s -> %s", delivery.id, previous.value, new_status.value
            )
            await log_actor_event(
                db,
                AuditAction.DELIVERY_RETRIED if state_machine.is_retry(previous, new_status)
                else AuditAction.DELIVERY_STATUS_CHANGED,
                current_user,
                entity_type="delivery",
                entity_id=delivery.id,
                metadata={
                    "from": previous.value,
                    "to": new_status.value,
                    "order_id": delivery.order_id,
                    "updated_fields": sorted(fields.keys()),
                }
            )
        elif fields:
            await log_actor_event(
                db,
                AuditAction.DELIVERY_UPDATED,
                current_user,
                entity_type="delivery",
                entity_id=delivery.id,
                metadata={"updated_fields": sorted(fields.keys())}
            )

        return delivery

    # --- Queries ---

    @staticmethod
    async def list_deliveries(
        db: AsyncSession,
        member_id: Optional[int] = None,
        status: Optional[DeliveryStatus] = None,
        tracking_number: Optional[str] = None,
        driver_id: Optional[int] = None,
        order_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Delivery], int]:
        """
        Filtered, paginated deliveries, newest first.

        ``member_id`` restricts the list to deliveries of that member's orders.
        """
        filters = []
        if member_id is not None:
            filters.append(Order.member_id == member_id)
        if status is not None:
            filters.append(Delivery.status == status)
        if tracking_number:
            filters.append(Delivery.tracking_number.icontains(tracking_number.strip(), autoescape=True))
        if driver_id is not None:
            filters.append(Delivery.driver_id == driver_id)
        if order_id is not None:
            filters.append(Delivery.order_id == order_id)

        count_query = (
            select(func.count(Delivery.id))
            .select_from(Delivery)
            .join(Order, Order.id == Delivery.order_id)
            .where(*filters)
        )
        total = (await db.execute(count_query)).scalar() or 0

        query = (
            select(Delivery)
            .join(Order, Order.id == Delivery.order_id)
            .where(*filters)
            .order_by(Delivery.created_at.desc(), Delivery.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        deliveries = (await db.execute(query)).scalars().all()
        return list(deliveries), total

    # --- Read models ---

    @staticmethod
    async def _load_related(
        db: AsyncSession, deliveries: Iterable[Delivery]
    ) -> Tuple[Dict[int, Order], Dict[int, User], Dict[int, Driver]]:
        deliveries = list(deliveries)
        order_ids = {d.order_id for d in deliveries}
        driver_ids = {d.driver_id for d in deliveries if d.driver_id is not None}

        orders: Dict[int, Order] = {}
        if order_ids:
            result = await db.execute(select(Order).where(Order.id.in_(order_ids)))
            orders = {o.id: o for o in result.scalars().all()}

        members: Dict[int, User] = {}
        member_ids = {o.member_id for o in orders.values()}
        if member_ids:
            result = await db.execute(select(User).where(User.id.in_(member_ids)))
            members = {u.id: u for u in result.scalars().all()}

        drivers: Dict[int, Driver] = {}
        if driver_ids:
            result = await db.execute(select(Driver).where(Driver.id.in_(driver_ids)))
            drivers = {d.id: d for d in result.scalars().all()}

        return orders, members, drivers

    @staticmethod
    def _order_summary(order: Optional[Order], member: Optional[User]) -> Optional[DeliveryOrderSummary]:
        if order is None:
            return None
        summary = DeliveryOrderSummary.model_validate(order)
        if member is not None:
            summary = summary.model_copy(update={"member": MemberSummary.model_validate(member)})
        return summary

    @staticmethod
    async def build_responses(db: AsyncSession, deliveries: List[Delivery]) -> List[DeliveryResponse]:
        """Deliveries enriched with order (+member) and driver summaries."""
        orders, members, drivers = await DeliveryService._load_related(db, deliveries)

        responses = []
        for delivery in deliveries:
            order = orders.get(delivery.order_id)
            member = members.get(order.member_id) if order else None
            driver = drivers.get(delivery.driver_id) if delivery.driver_id else None
            responses.append(
                DeliveryResponse.model_validate(delivery).model_copy(update={
                    "order": DeliveryService._order_summary(order, member),
                    "driver": DriverSummary.model_validate(driver) if driver else None,
                })
            )
        return responses

    @staticmethod
    async def build_response(db: AsyncSession, delivery: Delivery) -> DeliveryResponse:
        return (await DeliveryService.build_responses(db, [delivery]))[0]

    @staticmethod
    async def _order_items(db: AsyncSession, order_id: int) -> List[DeliveryItemSummary]:
        result = await db.execute(
            select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
        )
        return [DeliveryItemSummary.model_validate(item) for item in result.scalars().all()]

    @staticmethod
    async def build_detail(
        db: AsyncSession, delivery: Delivery, now: Optional[datetime] = None
    ) -> DeliveryDetailResponse:
        """Owner view: delivery, items, timeline and delay figures."""
        base = await DeliveryService.build_response(db, delivery)
        driver_name = base.driver.full_name if base.driver else None

        return DeliveryDetailResponse(
            **base.model_dump(),
            items=await DeliveryService._order_items(db, delivery.order_id),
            tracking_history=build_tracking_events(delivery, driver_name),
            estimated_remaining_time=estimated_remaining_hours(
                delivery.estimated_delivery_date, delivery.status, now
            ),
            is_delayed=is_delayed(delivery.estimated_delivery_date, delivery.status, now),
            allowed_transitions=state_machine.allowed_targets(delivery.status),
        )

    @staticmethod
    async def build_public_tracking(
        db: AsyncSession, delivery: Delivery, now: Optional[datetime] = None
    ) -> PublicTrackingResponse:
        """Anonymous view keyed by tracking number; no phones, no internal ids."""
        orders, members, drivers = await DeliveryService._load_related(db, [delivery])
        order = orders.get(delivery.order_id)
        member = members.get(order.member_id) if order else None
        driver = drivers.get(delivery.driver_id) if delivery.driver_id else None

        address = {
            key: value
            for key, value in (delivery.shipping_address or {}).items()
            if key not in PRIVATE_ADDRESS_KEYS
        }

        order_info = None
        if order is not None:
            order_info = PublicOrderInfo(
                order_number=order.order_number,
                total_amount=order.total_amount,
                recipient=address.get("recipient_name") or (member.full_name if member else None),
                address=address or None,
            )

        driver_info = None
        if driver is not None:
            driver_info = PublicDriverInfo(
                name=driver.full_name,
                vehicle=f"{driver.vehicle_type} - {driver.license_plate}",
            )

        return PublicTrackingResponse(
            tracking_number=delivery.tracking_number,
            current_status=delivery.status,
            current_status_info=status_info(delivery.status),
            order_info=order_info,
            driver_info=driver_info,
            shipping_info=ShippingInfo(
                provider=delivery.shipping_provider,
                estimated_delivery=delivery.estimated_delivery_date,
                actual_delivery=delivery.actual_delivery_date,
                is_delayed=is_delayed(delivery.estimated_delivery_date, delivery.status, now),
                estimated_remaining_time=estimated_remaining_hours(
                    delivery.estimated_delivery_date, delivery.status, now
                ),
            ),
            tracking_events=build_tracking_events(delivery, driver.full_name if driver else None),
            items=await DeliveryService._order_items(db, delivery.order_id),
        )
