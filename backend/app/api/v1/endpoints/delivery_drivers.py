"""
Delivery driver registry endpoints.

Drivers belong to a koperasi and are assigned to deliveries by staff.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, case
from backend.app.db.session import get_db
from backend.app.models.driver import Driver
from backend.app.models.delivery import Delivery
from backend.app.models.koperasi import Koperasi
from backend.app.models.delivery_enums import DriverStatus
from backend.app.models.enums import UserRole
from backend.app.schemas.driver import DriverCreate, DriverResponse
from backend.app.schemas.common import ApiResponse
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.core.guards import require_role
from backend.app.core.dependencies import get_current_user
from backend.app.domain.delivery.state_machine import ACTIVE_STATES
from backend.app.services.audit import log_actor_event, AuditAction

router = APIRouter(prefix="/delivery-drivers", tags=["Delivery Drivers"])


@router.post("", response_model=ApiResponse[DriverResponse], status_code=status.HTTP_201_CREATED)
async def create_driver(
    driver_data: DriverCreate,
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Register a driver (ADMIN only). New drivers are active and available."""
    if not await db.get(Koperasi, driver_data.tenant_id):
        raise ResourceNotFoundError("Koperasi", driver_data.tenant_id)

    driver = Driver(
        tenant_id=driver_data.tenant_id,
        full_name=driver_data.full_name,
        phone=driver_data.phone,
        vehicle_type=driver_data.vehicle_type,
        license_plate=driver_data.license_plate,
        driver_license_number=driver_data.driver_license_number,
        coverage_areas=driver_data.coverage_areas,
        status=DriverStatus.ACTIVE,
        is_available=True,
        rating=5.0,
    )

    db.add(driver)
    await db.commit()
    await db.refresh(driver)

    await log_actor_event(
        db,
        AuditAction.DRIVER_CREATED,
        current_user,
        entity_type="driver",
        entity_id=driver.id,
        metadata={"license_plate": driver.license_plate, "tenant_id": driver.tenant_id}
    )

    return ApiResponse(data=DriverResponse.model_validate(driver), message="Driver created successfully")


@router.get("", response_model=ApiResponse[list[DriverResponse]])
async def list_drivers(
    status_filter: DriverStatus = Query(DriverStatus.ACTIVE, alias="status"),
    tenant_id: Optional[int] = Query(None),
    available_only: bool = Query(False),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List drivers with their workload.

    ``active_deliveries`` counts pending, picked up and in-transit deliveries.
    """
    active_count = func.coalesce(
        func.sum(case((Delivery.status.in_(list(ACTIVE_STATES)), 1), else_=0)), 0
    )
    query = (
        select(Driver, active_count, func.count(Delivery.id))
        .outerjoin(Delivery, Delivery.driver_id == Driver.id)
        .where(Driver.status == status_filter)
        .group_by(Driver.id)
        .order_by(Driver.full_name)
    )
    if tenant_id is not None:
        query = query.where(Driver.tenant_id == tenant_id)
    if available_only:
        query = query.where(Driver.is_available == True)

    result = await db.execute(query)

    drivers = [
        DriverResponse.model_validate(driver).model_copy(update={
            "active_deliveries": int(active or 0),
            "total_deliveries": int(total or 0),
        })
        for driver, active, total in result.all()
    ]
    return ApiResponse(data=drivers)
