"""
User roles enumeration.

Defines the role types for the koperasi backend.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Koperasi staff; manages drivers and processes orders
        MEMBER: Cooperative member who places orders (default role)
    """
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
