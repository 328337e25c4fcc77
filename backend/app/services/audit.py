"""
Audit logging service.

Provides centralized, database-backed audit entries for logins and for
every order, delivery and driver state change.
"""

import logging
from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """Standardized audit action constants."""
    USER_CREATED = "USER_CREATED"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    TOKEN_REVOKED = "TOKEN_REVOKED"

    # Orders
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_PAID = "ORDER_PAID"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_PROCESSING = "ORDER_PROCESSING"

    # Deliveries
    DELIVERY_CREATED = "DELIVERY_CREATED"
    DELIVERY_STATUS_CHANGED = "DELIVERY_STATUS_CHANGED"
    DELIVERY_RETRIED = "DELIVERY_RETRIED"
    DELIVERY_UPDATED = "DELIVERY_UPDATED"

    # Drivers
    DRIVER_CREATED = "DRIVER_CREATED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Write an audit entry and commit it.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_username: Username of actor
        entity_type: Kind of record acted upon ("order", "delivery", ...)
        entity_id: ID of that record
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    logger.info("audit %s %s:%s by %s", action, entity_type, entity_id, actor_username)
    return audit_log


async def log_actor_event(
    db: AsyncSession,
    action: str,
    current_user: Optional[dict],
    entity_type: str,
    entity_id: int,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Shortcut for endpoints: pull actor fields from the JWT payload."""
    return await log_event(
        db=db,
        action=action,
        actor_id=current_user.get("user_id") if current_user else None,
        actor_username=current_user.get("sub") if current_user else None,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata=metadata
    )


async def log_auth_event(
    db: AsyncSession,
    action: str,
    user_id: Optional[int],
    username: Optional[str],
    ip_address: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log an authentication event (login success/failure, logout).
    """
    return await log_event(
        db=db,
        action=action,
        actor_id=user_id,
        actor_username=username,
        entity_type="user",
        entity_id=user_id,
        ip_address=ip_address,
        metadata=metadata
    )


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
