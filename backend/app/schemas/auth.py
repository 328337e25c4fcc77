"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import datetime
from typing import Optional
from backend.app.models.enums import UserRole


class UserRegister(BaseModel):
    """
    Schema for member registration.

    Used by POST /auth/register. Staff accounts are seeded, never registered.
    """
    model_config = ConfigDict(extra="forbid")

    email: EmailStr = Field(..., description="User email address")
    username: str = Field(..., min_length=3, max_length=50, description="Unique username")
    password: str = Field(..., min_length=6, description="Password (min 6 characters)")
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    tenant_id: Optional[int] = Field(None, description="Koperasi the member belongs to")


class UserLogin(BaseModel):
    """
    Schema for user login. Accepts username or email.
    """
    model_config = ConfigDict(extra="forbid")

    username: str = Field(..., description="Username or email")
    password: str = Field(..., description="Password")


class TokenResponse(BaseModel):
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user_id: int
    username: str
    email: str
    role: UserRole
    tenant_id: Optional[int] = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    username: str
    full_name: str
    phone: Optional[str] = None
    role: UserRole
    tenant_id: Optional[int] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
