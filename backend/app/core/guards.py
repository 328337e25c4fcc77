"""
Security guards for role-based and ownership-based access control.

Provides dependencies for protecting endpoints.
"""

from typing import List, Optional
from fastapi import Depends, HTTPException, status
from backend.app.models.enums import UserRole
from backend.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/delivery-drivers")
        async def create_driver(current_user: dict = Depends(require_role([UserRole.ADMIN]))):
            ...

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )

        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


def is_admin(current_user: dict) -> bool:
    return current_user.get("role") == UserRole.ADMIN.value


def verify_ownership(resource_owner_id: int, current_user: dict) -> bool:
    """
    Verify that the current user owns the resource.

    Admins pass every ownership check; members only see what they own.
    """
    if is_admin(current_user):
        return True

    return current_user.get("user_id") == resource_owner_id


class OwnershipGuard:
    """
    Class-based ownership guard.

    Usage:
        ownership_guard = OwnershipGuard()

        @router.get("/orders/{order_id}")
        async def get_order(order_id: int, current_user: dict = Depends(get_current_user), ...):
            order = await load_order(db, order_id)
            ownership_guard.enforce(order.member_id, current_user, "order")
            return order
    """

    def enforce(
        self,
        resource_owner_id: int,
        current_user: dict,
        resource_name: str = "resource"
    ):
        """
        Enforce ownership validation, raise 403 if access denied.
        """
        if not verify_ownership(resource_owner_id, current_user):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Forbidden - Not your {resource_name}"
            )

    def filter_by_ownership(self, current_user: dict) -> Optional[int]:
        """
        Get the member_id to filter list queries by.

        For admins: Returns None (no filtering needed)
        For members: Returns their user_id
        """
        if is_admin(current_user):
            return None

        return current_user.get("user_id")
