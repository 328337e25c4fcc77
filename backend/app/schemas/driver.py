"""
Delivery driver schemas.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from backend.app.models.delivery_enums import DriverStatus
from backend.app.schemas.common import UtcDatetime


class DriverCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    full_name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=5, max_length=30)
    vehicle_type: str = Field(..., min_length=1, max_length=50, description="e.g. motorcycle, pickup")
    license_plate: str = Field(..., min_length=1, max_length=20)
    driver_license_number: Optional[str] = Field(None, max_length=50)
    tenant_id: int
    coverage_areas: List[str] = Field(default_factory=list)

    @field_validator("license_plate")
    @classmethod
    def normalize_plate(cls, v: str) -> str:
        return v.strip().upper()


class DriverResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    full_name: str
    phone: str
    vehicle_type: str
    license_plate: str
    driver_license_number: Optional[str]
    coverage_areas: List[str]
    status: DriverStatus
    is_available: bool
    rating: float
    created_at: UtcDatetime
    updated_at: UtcDatetime
    active_deliveries: int = 0
    total_deliveries: int = 0
