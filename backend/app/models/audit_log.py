"""
Audit Log Database Model.

Tracks logins and every state change made to orders, deliveries and drivers.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged (see ``backend.app.services.audit.AuditAction``):
    - LOGIN_SUCCESS / LOGIN_FAILED / TOKEN_REVOKED / USER_CREATED
    - ORDER_CREATED / ORDER_PAID / ORDER_CANCELLED / ORDER_PROCESSING
    - DELIVERY_CREATED / DELIVERY_STATUS_CHANGED / DELIVERY_RETRIED / DELIVERY_UPDATED
    - DRIVER_CREATED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for anonymous/system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    action = Column(String(100), nullable=False, index=True)

    # What was acted upon
    entity_type = Column(String(50), nullable=True, index=True)
    entity_id = Column(Integer, nullable=True, index=True)

    meta_data = Column(JSON, nullable=True)
    ip_address = Column(String(50), nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
