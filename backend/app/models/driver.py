"""
Delivery driver database model.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.delivery_enums import DriverStatus


class Driver(Base):
    """
    Driver model.

    A member of the koperasi delivery fleet. Drivers are not login users;
    staff assign them to deliveries.
    """
    __tablename__ = "delivery_drivers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("koperasi.id"), nullable=False, index=True)

    full_name = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=False)

    vehicle_type = Column(String(50), nullable=False)
    license_plate = Column(String(20), nullable=False)
    driver_license_number = Column(String(50), nullable=True)
    coverage_areas = Column(JSON, nullable=False, default=list)

    status = Column(Enum(DriverStatus), default=DriverStatus.ACTIVE, nullable=False, index=True)
    is_available = Column(Boolean, default=True, nullable=False, index=True)
    rating = Column(Float, default=5.0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Driver(id={self.id}, name='{self.full_name}', plate='{self.license_plate}')>"
